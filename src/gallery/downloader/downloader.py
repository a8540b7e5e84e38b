"""
Concurrent image downloader.

Downloads one page's image set into its fingerprint directory:
- Directory structure: <root>/<fingerprint>/<name>
- One asyncio task per target file, all started before any is awaited
- All-or-nothing: the set only counts as done when every transfer succeeded

Every transfer is joined before a failure is reported, so no write is still in
flight when the caller decides what to do with the set.
"""

from __future__ import annotations

import asyncio
import logging
import os
import tempfile
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Sequence

import httpx

from ..net.client import fetch_bytes
from ..net.retry import RetryConfig


class DownloadStatus(str, Enum):
    """Status of a single transfer."""
    SUCCESS = "success"
    FAILED = "failed"


@dataclass(frozen=True)
class ImageTarget:
    """An image to fetch and the file name to store it under."""
    url: str
    name: str


@dataclass
class DownloadResult:
    """Result of a single image transfer."""
    status: DownloadStatus
    url: str
    file_path: Path

    # Set on success
    size: int = 0

    # Set on failure
    error: Optional[str] = None


@dataclass
class DownloadStats:
    """Statistics across every set downloaded by one downloader."""
    images_downloaded: int = 0
    failed: int = 0
    total_bytes: int = 0

    def increment(self, result: DownloadResult) -> None:
        """Update stats based on a download result."""
        if result.status == DownloadStatus.SUCCESS:
            self.images_downloaded += 1
            self.total_bytes += result.size
        else:
            self.failed += 1

    def to_dict(self) -> dict:
        return {
            "images_downloaded": self.images_downloaded,
            "failed": self.failed,
            "total_bytes": self.total_bytes,
        }


class DownloadSetError(RuntimeError):
    """At least one transfer of an image set failed."""

    def __init__(self, directory: Path, results: Sequence[DownloadResult]) -> None:
        self.directory = directory
        self.results = list(results)
        self.failures = [r for r in self.results if r.status == DownloadStatus.FAILED]
        examples = "; ".join(f"{r.url} -> {r.error or 'unknown error'}" for r in self.failures[:3])
        super().__init__(
            f"{len(self.failures)}/{len(self.results)} image downloads failed "
            f"for {directory}. examples: {examples}"
        )


class TargetConflictError(ValueError):
    """Two different URLs of one set would be written to the same file."""


def unique_targets(images: Sequence[ImageTarget]) -> list[ImageTarget]:
    """
    Collapse repeated entries (same URL under the same name), keeping page order.

    Raises:
        TargetConflictError: A file name is claimed by more than one URL.
    """
    by_name: dict[str, ImageTarget] = {}
    for image in images:
        existing = by_name.setdefault(image.name, image)
        if existing.url != image.url:
            raise TargetConflictError(
                f"{image.name} is the target of both {existing.url} and {image.url}"
            )
    return list(by_name.values())


class ImageDownloader:
    """
    Downloads image sets over a shared HTTP client.

    Usage:
        async with build_client(settings, cookies=jar) as client:
            downloader = ImageDownloader(client, retry=settings.get_retry())
            results = await downloader.download_set(directory, targets)
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        retry: Optional[RetryConfig] = None,
    ) -> None:
        self._client = client
        self._retry = retry
        self._stats = DownloadStats()
        self._log = logging.getLogger(__name__)

    @property
    def stats(self) -> DownloadStats:
        return self._stats

    async def download_set(
        self,
        directory: Path,
        images: Sequence[ImageTarget],
    ) -> list[DownloadResult]:
        """
        Download every image of a set into `directory`.

        Args:
            directory: Target directory, created with its ancestors if missing.
            images: URL / file name pairs in page order.

        Returns:
            One successful DownloadResult per distinct target file.

        Raises:
            DownloadSetError: If any transfer failed (raised after all
                transfers have finished).
            TargetConflictError: Two URLs share a file name (raised before
                anything is fetched).
            OSError: If the directory cannot be created.
        """
        targets = unique_targets(images)
        directory.mkdir(parents=True, exist_ok=True)

        tasks = [
            asyncio.create_task(self._transfer(image, directory / image.name))
            for image in targets
        ]
        results: list[DownloadResult] = list(await asyncio.gather(*tasks)) if tasks else []

        for result in results:
            self._stats.increment(result)

        if any(r.status == DownloadStatus.FAILED for r in results):
            raise DownloadSetError(directory, results)
        return results

    async def _transfer(self, image: ImageTarget, path: Path) -> DownloadResult:
        """One image: GET, full-body read, file write. Errors become FAILED results."""
        self._log.info("Downloading %s -> %s", image.url, path)
        try:
            content = await fetch_bytes(self._client, image.url, retry=self._retry)
            await asyncio.to_thread(_atomic_write_bytes, path, content)
        except Exception as exc:  # noqa: BLE001
            self._log.warning("Failed to download %s: %s", image.url, exc)
            return DownloadResult(
                status=DownloadStatus.FAILED,
                url=image.url,
                file_path=path,
                error=str(exc) or type(exc).__name__,
            )
        self._log.debug("Saved %s (%d bytes)", path, len(content))
        return DownloadResult(
            status=DownloadStatus.SUCCESS,
            url=image.url,
            file_path=path,
            size=len(content),
        )


def _atomic_write_bytes(final_path: Path, content: bytes) -> None:
    """Write to a temp file beside the target, then replace the target."""
    fd, tmp_path_str = tempfile.mkstemp(
        dir=str(final_path.parent),
        prefix=f".{final_path.name}.",
        suffix=".tmp",
    )
    tmp_path = Path(tmp_path_str)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, final_path)
    finally:
        try:
            tmp_path.unlink()
        except FileNotFoundError:
            pass
