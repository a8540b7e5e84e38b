"""
Image downloader with fingerprint-based deduplication.

Provides:
- The persistent fingerprint -> image records database (database.py)
- Concurrent, all-or-nothing image set downloads (downloader.py)
"""

from .database import (
    DatabaseError,
    DatabaseLock,
    DatabaseLockedError,
    DatabaseStore,
    DedupDatabase,
    ImageRecord,
)
from .downloader import (
    DownloadResult,
    DownloadSetError,
    DownloadStats,
    DownloadStatus,
    ImageDownloader,
    ImageTarget,
    TargetConflictError,
)

__all__ = [
    "DatabaseError",
    "DatabaseLock",
    "DatabaseLockedError",
    "DatabaseStore",
    "DedupDatabase",
    "ImageRecord",
    "DownloadResult",
    "DownloadSetError",
    "DownloadStats",
    "DownloadStatus",
    "ImageDownloader",
    "ImageTarget",
    "TargetConflictError",
]
