from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Sequence

import httpx

from src.gallery.cookies.store import load_cookie_jar
from src.gallery.downloader.database import DatabaseLock, DatabaseStore, DedupDatabase, ImageRecord
from src.gallery.downloader.downloader import ImageDownloader, ImageTarget
from src.gallery.fs.naming import record_file_name, unique_file_names
from src.gallery.fs.storage import GalleryStorageManager
from src.gallery.net.client import build_client
from src.gallery.settings.models import ScraperSettings
from src.shared.page_status import PageStatus

logger = logging.getLogger(__name__)


@dataclass
class RepairOutcome:
    fingerprint: str
    status: PageStatus
    images: int = 0
    error: Optional[str] = None


@dataclass
class FixReport:
    outcomes: list[RepairOutcome] = field(default_factory=list)

    @property
    def failed(self) -> list[RepairOutcome]:
        return [o for o in self.outcomes if o.status == PageStatus.FAILED]

    def count(self, status: PageStatus) -> int:
        return sum(1 for o in self.outcomes if o.status == status)


def record_targets(records: Sequence[ImageRecord]) -> list[ImageTarget]:
    """Stored records -> download targets (unnamed records use the URL's last segment)."""
    candidates = [(record.url, record_file_name(record, index)) for index, record in enumerate(records)]
    return [
        ImageTarget(url=url, name=name)
        for (url, _), name in zip(candidates, unique_file_names(candidates))
    ]


async def repair_entry(
    fingerprint: str,
    records: Sequence[ImageRecord],
    *,
    storage: GalleryStorageManager,
    downloader: ImageDownloader,
    verify_files: bool = False,
) -> RepairOutcome:
    """
    Bring one fingerprint directory back.

    By default an existing directory counts as complete, whatever it holds.
    With `verify_files`, each record's file is checked and only the missing
    ones are fetched.

    Raises:
        DownloadSetError / OSError: The repair failed. A directory created by
            this attempt is removed first so a later run retries it.
    """
    targets = record_targets(records)
    existed = storage.has_fingerprint_dir(fingerprint)

    if verify_files:
        missing = set(storage.missing_files(fingerprint, [t.name for t in targets]))
        targets = [t for t in targets if t.name in missing]
    elif existed:
        targets = []

    if not targets:
        logger.debug("Present: %s", fingerprint)
        return RepairOutcome(fingerprint=fingerprint, status=PageStatus.PRESENT)

    logger.info("Repairing %s (%d images)", fingerprint, len(targets))
    try:
        directory = storage.ensure_fingerprint_dir(fingerprint)
        await downloader.download_set(directory, targets)
    except Exception:
        if not existed:
            storage.remove_fingerprint_dir(fingerprint)
        raise
    return RepairOutcome(fingerprint=fingerprint, status=PageStatus.REPAIRED, images=len(targets))


async def reconcile(
    database: DedupDatabase,
    *,
    storage: GalleryStorageManager,
    downloader: ImageDownloader,
    fail_fast: bool = False,
    verify_files: bool = False,
) -> FixReport:
    """
    Walk the database and repair every missing fingerprint directory.

    Entries are handled one after another. With `fail_fast` the first failed
    repair aborts the walk; otherwise it is logged and the walk continues.
    """
    report = FixReport()
    for fingerprint, records in database.items():
        try:
            outcome = await repair_entry(
                fingerprint,
                records,
                storage=storage,
                downloader=downloader,
                verify_files=verify_files,
            )
        except Exception as exc:  # noqa: BLE001
            if fail_fast:
                raise
            logger.error("Repair of %s failed: %s", fingerprint, exc)
            outcome = RepairOutcome(
                fingerprint=fingerprint,
                status=PageStatus.FAILED,
                images=len(records),
                error=str(exc) or type(exc).__name__,
            )
        report.outcomes.append(outcome)
    return report


async def run_fix(
    data_path: Path,
    *,
    cookie_file: Optional[Path] = None,
    settings: Optional[ScraperSettings] = None,
    fail_fast: bool = False,
    verify_files: bool = False,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FixReport:
    """
    The `fix` command.

    The cookie jar is used for the requests but never written back, and the
    database is only read.

    Raises:
        DatabaseError: The database file is unusable or locked.
        CookieFileError: The cookie file exists but is unusable.
        DownloadSetError: A repair failed and `fail_fast` is set.
    """
    settings = settings or ScraperSettings()

    with DatabaseLock(data_path):
        database = DatabaseStore(data_path).load()
        if not len(database):
            logger.info("Database %s is empty, nothing to fix", data_path)
            return FixReport()

        jar = load_cookie_jar(cookie_file)
        async with build_client(settings, cookies=jar, transport=transport) as client:
            report = await reconcile(
                database,
                storage=GalleryStorageManager(settings.download_root),
                downloader=ImageDownloader(client, retry=settings.get_retry()),
                fail_fast=fail_fast,
                verify_files=verify_files,
            )

    logger.info(
        "Fix done: %d present, %d repaired, %d failed",
        report.count(PageStatus.PRESENT),
        report.count(PageStatus.REPAIRED),
        report.count(PageStatus.FAILED),
    )
    return report
