from __future__ import annotations

from typing import Optional

from src.gallery.downloader.database import DedupDatabase
from src.gallery.fs.storage import GalleryStorageManager


def format_database(
    database: DedupDatabase,
    *,
    storage: Optional[GalleryStorageManager] = None,
) -> list[str]:
    """
    Render the database for `list`: one header line per fingerprint, then one
    indented line per image record. Fingerprints are sorted; records keep page
    order. With `storage`, fingerprints whose directory is gone are flagged.
    """
    lines: list[str] = []
    for fingerprint, records in sorted(database.items()):
        header = f"{fingerprint} ({len(records)} images)"
        if storage is not None and not storage.has_fingerprint_dir(fingerprint):
            header += " [missing]"
        lines.append(header)
        for record in records:
            lines.append(f"    {record.name or '-'}  {record.url}")
    return lines
