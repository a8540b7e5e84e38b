"""
Tests for the fix command's reconciler.

- An existing fingerprint directory is trusted, no request is made
- A deleted directory is recreated with exactly the recorded images
- Failure handling: isolate by default, abort with fail_fast
- verify_files refetches only the files that are gone
"""

import asyncio
import tempfile
import unittest
from pathlib import Path

import httpx

from src.gallery.downloader.database import DatabaseStore, DedupDatabase, ImageRecord
from src.gallery.downloader.downloader import DownloadSetError, ImageDownloader
from src.gallery.fs.storage import GalleryStorageManager
from src.gallery.net.retry import RetryConfig
from src.gallery.pipeline.reconcile import reconcile, record_targets, run_fix
from src.gallery.settings.models import ScraperSettings
from src.shared.page_status import PageStatus


FP_A = "0123456789abcdef0123456789abcdef"
FP_B = "fedcba9876543210fedcba9876543210"

RECORDS_A = [
    ImageRecord(url="https://ex.test/i/a.jpg", name="photo.jpg"),
    ImageRecord(url="https://ex.test/i/b.jpg", name=None),
]
RECORDS_B = [ImageRecord(url="https://ex.test/i/c.png", name="c.png")]

NO_RETRY = RetryConfig(enabled=False)


class RecordingHandler:
    def __init__(self, broken=()):
        self.broken = set(broken)
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request.url.path)
        if request.url.path in self.broken:
            return httpx.Response(503)
        return httpx.Response(200, content=f"img:{request.url.path}".encode())


def _database():
    db = DedupDatabase()
    db.insert(FP_A, RECORDS_A)
    db.insert(FP_B, RECORDS_B)
    return db


async def _reconcile(db, storage, handler, **kwargs):
    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        downloader = ImageDownloader(client, retry=NO_RETRY)
        return await reconcile(db, storage=storage, downloader=downloader, **kwargs)


class TestRecordTargets(unittest.TestCase):
    def test_unnamed_records_use_url_segment(self):
        self.assertEqual(
            [(t.url, t.name) for t in record_targets(RECORDS_A)],
            [("https://ex.test/i/a.jpg", "photo.jpg"), ("https://ex.test/i/b.jpg", "b.jpg")],
        )

    def test_unnamed_records_keep_query_and_stay_distinct(self):
        records = [
            ImageRecord(url="https://ex.test/show.php?id=1"),
            ImageRecord(url="https://ex.test/show.php?id=2"),
            ImageRecord(url="https://ex.test/1/a.jpg"),
            ImageRecord(url="https://ex.test/2/a.jpg"),
        ]
        self.assertEqual(
            [t.name for t in record_targets(records)],
            ["show.php_id=1", "show.php_id=2", "a.jpg", "a-3.jpg"],
        )


class TestReconcile(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name) / "data"
        self.storage = GalleryStorageManager(self.root)

    def tearDown(self):
        self._tmp.cleanup()

    def test_existing_directories_are_trusted(self):
        self.storage.ensure_fingerprint_dir(FP_A)
        self.storage.ensure_fingerprint_dir(FP_B)
        handler = RecordingHandler()

        report = asyncio.run(_reconcile(_database(), self.storage, handler))

        self.assertEqual([o.status for o in report.outcomes], [PageStatus.PRESENT] * 2)
        self.assertEqual(handler.requests, [])

    def test_missing_directory_is_recreated_from_records(self):
        self.storage.ensure_fingerprint_dir(FP_B)
        handler = RecordingHandler()

        report = asyncio.run(_reconcile(_database(), self.storage, handler))

        self.assertEqual(report.outcomes[0].status, PageStatus.REPAIRED)
        self.assertEqual(report.outcomes[1].status, PageStatus.PRESENT)
        self.assertEqual(sorted(handler.requests), ["/i/a.jpg", "/i/b.jpg"])
        directory = self.root / FP_A
        self.assertEqual(sorted(p.name for p in directory.iterdir()), ["b.jpg", "photo.jpg"])
        self.assertEqual((directory / "photo.jpg").read_bytes(), b"img:/i/a.jpg")

    def test_failure_is_isolated_by_default(self):
        handler = RecordingHandler(broken={"/i/b.jpg"})

        report = asyncio.run(_reconcile(_database(), self.storage, handler))

        self.assertEqual([o.status for o in report.outcomes], [PageStatus.FAILED, PageStatus.REPAIRED])
        self.assertEqual([o.fingerprint for o in report.failed], [FP_A])
        # The half-written directory is removed so the next fix retries it
        self.assertFalse(self.storage.has_fingerprint_dir(FP_A))
        self.assertTrue((self.root / FP_B / "c.png").is_file())

    def test_fail_fast_aborts(self):
        handler = RecordingHandler(broken={"/i/a.jpg"})

        with self.assertRaises(DownloadSetError):
            asyncio.run(_reconcile(_database(), self.storage, handler, fail_fast=True))

        self.assertNotIn("/i/c.png", handler.requests)
        self.assertFalse(self.storage.has_fingerprint_dir(FP_A))

    def test_failed_repair_keeps_a_directory_that_existed(self):
        directory = self.storage.ensure_fingerprint_dir(FP_A)
        (directory / "photo.jpg").write_bytes(b"kept")
        handler = RecordingHandler(broken={"/i/b.jpg"})

        db = DedupDatabase()
        db.insert(FP_A, RECORDS_A)
        report = asyncio.run(_reconcile(db, self.storage, handler, verify_files=True))

        self.assertEqual(report.outcomes[0].status, PageStatus.FAILED)
        self.assertEqual((directory / "photo.jpg").read_bytes(), b"kept")

    def test_verify_files_fetches_only_missing(self):
        directory = self.storage.ensure_fingerprint_dir(FP_A)
        (directory / "photo.jpg").write_bytes(b"kept")
        self.storage.ensure_fingerprint_dir(FP_B)
        (self.root / FP_B / "c.png").write_bytes(b"kept")
        handler = RecordingHandler()

        report = asyncio.run(_reconcile(_database(), self.storage, handler, verify_files=True))

        self.assertEqual([o.status for o in report.outcomes], [PageStatus.REPAIRED, PageStatus.PRESENT])
        self.assertEqual(handler.requests, ["/i/b.jpg"])
        self.assertEqual((directory / "photo.jpg").read_bytes(), b"kept")


class TestRunFix(unittest.TestCase):
    def test_empty_database_does_nothing(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            handler = RecordingHandler()
            report = asyncio.run(
                run_fix(
                    Path(tmpdir) / "missing.db",
                    settings=ScraperSettings(download_root=str(Path(tmpdir) / "data")),
                    transport=httpx.MockTransport(handler),
                )
            )
            self.assertEqual(report.outcomes, [])
            self.assertEqual(handler.requests, [])

    def test_repairs_and_leaves_database_file_alone(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            tmp = Path(tmpdir)
            store = DatabaseStore(tmp / "data.db")
            store.save(_database())
            before = store.path.stat().st_mtime_ns
            handler = RecordingHandler()

            report = asyncio.run(
                run_fix(
                    store.path,
                    settings=ScraperSettings(download_root=str(tmp / "data"), retry=NO_RETRY),
                    transport=httpx.MockTransport(handler),
                )
            )

            self.assertEqual(report.count(PageStatus.REPAIRED), 2)
            self.assertTrue((tmp / "data" / FP_B / "c.png").is_file())
            self.assertEqual(store.path.stat().st_mtime_ns, before)


if __name__ == "__main__":
    unittest.main()
