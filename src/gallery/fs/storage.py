"""
Gallery storage directory structure management.

Directory structure:
    <download_root>/<fingerprint>/<file name>
"""

from __future__ import annotations

import shutil
from pathlib import Path
from typing import Sequence


class GalleryStorageManager:
    """
    Manages one directory per page fingerprint under a common root.

    The existence of a fingerprint directory is what `fix` treats as
    "already downloaded".
    """

    def __init__(self, download_root: Path | str):
        """
        Initialize the storage manager.

        Args:
            download_root: The root directory for all downloads.
        """
        self._download_root = Path(download_root)

    @property
    def download_root(self) -> Path:
        """Get the download root directory."""
        return self._download_root

    def fingerprint_dir(self, fingerprint: str) -> Path:
        """Directory that holds the images of one fingerprint."""
        return self._download_root / fingerprint.lower()

    def has_fingerprint_dir(self, fingerprint: str) -> bool:
        return self.fingerprint_dir(fingerprint).is_dir()

    def ensure_fingerprint_dir(self, fingerprint: str) -> Path:
        """
        Create the fingerprint directory (and any missing ancestors).

        Raises:
            OSError: If the directory cannot be created.
        """
        path = self.fingerprint_dir(fingerprint)
        path.mkdir(parents=True, exist_ok=True)
        return path

    def remove_fingerprint_dir(self, fingerprint: str) -> None:
        shutil.rmtree(self.fingerprint_dir(fingerprint), ignore_errors=True)

    def missing_files(self, fingerprint: str, names: Sequence[str]) -> list[str]:
        """
        File names absent from the fingerprint directory.

        Args:
            fingerprint: The page fingerprint.
            names: Expected file names, in page order.

        Returns:
            The names without a file on disk (all of them if the directory
            itself is missing).
        """
        directory = self.fingerprint_dir(fingerprint)
        if not directory.is_dir():
            return list(names)
        return [name for name in names if not (directory / name).is_file()]
