from __future__ import annotations

import asyncio
import logging
from contextlib import nullcontext
from dataclasses import dataclass, field
from http.cookiejar import CookieJar
from pathlib import Path
from typing import Optional, Sequence

import httpx

from src.gallery.cookies.store import load_cookie_jar, save_cookie_jar
from src.gallery.downloader.database import (
    DatabaseLock,
    DatabaseStore,
    DedupDatabase,
    ImageRecord,
)
from src.gallery.downloader.downloader import ImageDownloader, ImageTarget
from src.gallery.fs.hashing import compute_fingerprint
from src.gallery.fs.storage import GalleryStorageManager
from src.gallery.net.client import build_client, fetch_page
from src.gallery.net.retry import RetryConfig
from src.gallery.scraper.extractor import extract_images
from src.gallery.settings.models import ScraperSettings
from src.shared.page_status import PageStatus
from src.shared.validators.page_url import validate_page_url

logger = logging.getLogger(__name__)


class NoUrlsError(ValueError):
    """`download` was started without any page URL."""


@dataclass
class PageOutcome:
    url: str
    status: PageStatus
    fingerprint: Optional[str] = None
    images: int = 0
    error: Optional[str] = None


@dataclass
class DownloadReport:
    outcomes: list[PageOutcome] = field(default_factory=list)
    database_saved: bool = False
    cookies_saved: bool = False

    @property
    def changed(self) -> bool:
        return any(o.status.is_change() for o in self.outcomes)

    def count(self, status: PageStatus) -> int:
        return sum(1 for o in self.outcomes if o.status == status)


@dataclass
class PageContext:
    """Everything the page tasks of one run share."""
    client: httpx.AsyncClient
    downloader: ImageDownloader
    database: DedupDatabase
    storage: GalleryStorageManager
    retry: Optional[RetryConfig] = None
    # Fingerprint -> event set once the page downloading it has finished
    in_flight: dict[str, asyncio.Event] = field(default_factory=dict)


async def run_single_page(url: str, ctx: PageContext) -> PageOutcome:
    """
    One page unit: fetch -> extract -> fingerprint -> dedup check -> download -> insert.

    The fingerprint is inserted only after every image of the page was
    written. Any error propagates to the caller and nothing is recorded.

    When another page of the run is already downloading the same set, this
    page waits for it: it is Unchanged if that download got recorded, and
    downloads the set itself otherwise.
    """
    html = await fetch_page(ctx.client, url, retry=ctx.retry)
    images = extract_images(html, url)
    fingerprint = compute_fingerprint(image.url for image in images)

    while True:
        if ctx.database.contains(fingerprint):
            logger.info("Already downloaded: %s (%s)", url, fingerprint)
            return PageOutcome(url=url, status=PageStatus.UNCHANGED, fingerprint=fingerprint, images=len(images))
        owner = ctx.in_flight.get(fingerprint)
        if owner is None:
            break
        logger.info("Waiting for another page downloading %s (%s)", fingerprint, url)
        await owner.wait()

    logger.info("Not downloaded yet: %s -> %s (%d images)", url, fingerprint, len(images))
    done = asyncio.Event()
    ctx.in_flight[fingerprint] = done
    try:
        directory = ctx.storage.ensure_fingerprint_dir(fingerprint)
        await ctx.downloader.download_set(
            directory,
            [ImageTarget(url=image.url, name=image.name) for image in images],
        )
        ctx.database.insert(fingerprint, [ImageRecord(url=image.url, name=image.name) for image in images])
    finally:
        del ctx.in_flight[fingerprint]
        done.set()

    return PageOutcome(url=url, status=PageStatus.DOWNLOADED, fingerprint=fingerprint, images=len(images))


async def _run_page_isolated(url: str, ctx: PageContext) -> PageOutcome:
    validation = validate_page_url(url)
    if not validation.valid or validation.url is None:
        logger.error("Skipping %r: %s", url, validation.error)
        return PageOutcome(url=url, status=PageStatus.FAILED, error=validation.error)

    try:
        return await run_single_page(validation.url, ctx)
    except Exception as exc:  # noqa: BLE001
        logger.error("Page %s failed: %s", url, exc)
        return PageOutcome(url=url, status=PageStatus.FAILED, error=str(exc) or type(exc).__name__)


async def run_pages(urls: Sequence[str], ctx: PageContext) -> list[PageOutcome]:
    """Run every page concurrently; a failing page never stops the others."""
    tasks = [asyncio.create_task(_run_page_isolated(url, ctx)) for url in urls]
    return list(await asyncio.gather(*tasks))


async def run_download(
    urls: Sequence[str],
    *,
    data_path: Optional[Path] = None,
    cookie_file: Optional[Path] = None,
    settings: Optional[ScraperSettings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> DownloadReport:
    """
    The `download` command.

    Args:
        urls: Gallery page URLs.
        data_path: Database snapshot; without it the run dedups in memory only.
        cookie_file: Cookie file loaded at start and rewritten at the end.
        settings: Download root and HTTP tuning.
        transport: Optional httpx transport override.

    Raises:
        NoUrlsError: No URL was given (checked before any work).
        DatabaseError: The database file exists but is unusable, or is locked.
        CookieFileError: The cookie file exists but is unusable.
    """
    if not urls:
        raise NoUrlsError("No url provided")

    settings = settings or ScraperSettings()
    lock = DatabaseLock(data_path) if data_path is not None else nullcontext()

    with lock:
        store = DatabaseStore(data_path) if data_path is not None else None
        database = store.load() if store is not None else DedupDatabase()
        jar: CookieJar = load_cookie_jar(cookie_file)

        retry = settings.get_retry()
        async with build_client(settings, cookies=jar, transport=transport) as client:
            ctx = PageContext(
                client=client,
                downloader=ImageDownloader(client, retry=retry),
                database=database,
                storage=GalleryStorageManager(settings.download_root),
                retry=retry,
            )
            logger.info("Running %d urls", len(urls))
            report = DownloadReport(outcomes=await run_pages(urls, ctx))

        if cookie_file is not None:
            save_cookie_jar(jar, cookie_file)
            report.cookies_saved = True

        if store is not None:
            report.database_saved = store.save_if_changed(database)

    logger.info(
        "Done: %d downloaded, %d unchanged, %d failed (%s)",
        report.count(PageStatus.DOWNLOADED),
        report.count(PageStatus.UNCHANGED),
        report.count(PageStatus.FAILED),
        ctx.downloader.stats.to_dict(),
    )
    return report
