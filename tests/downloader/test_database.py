"""
Tests for the fingerprint database and its snapshot file.

- Insert is first-wins and flags the database as changed
- Snapshot encode/decode reproduces the mapping and record order
- Missing file -> empty database; corrupt file -> DatabaseError
- The file is only rewritten when something was inserted
- The lock file keeps a second run out
"""

import tempfile
import unittest
from pathlib import Path

from src.gallery.downloader.database import (
    DatabaseError,
    DatabaseLock,
    DatabaseLockedError,
    DatabaseStore,
    DedupDatabase,
    ImageRecord,
    decode_database,
    encode_database,
)


FP_A = "0123456789abcdef0123456789abcdef"
FP_B = "fedcba9876543210fedcba9876543210"

RECORDS_A = [
    ImageRecord(url="https://ex.test/i/a.jpg", name="a.jpg"),
    ImageRecord(url="https://ex.test/i/b.jpg", name="b.jpg"),
]
RECORDS_B = [
    ImageRecord(url="https://ex.test/i/z.png", name=None),
    ImageRecord(url="https://ex.test/i/y.png", name="cover.png"),
]


class TestDedupDatabase(unittest.TestCase):
    def test_insert_new_key(self):
        db = DedupDatabase()
        self.assertFalse(db.changed)
        self.assertFalse(db.contains(FP_A))

        self.assertTrue(db.insert(FP_A, RECORDS_A))

        self.assertTrue(db.changed)
        self.assertTrue(db.contains(FP_A))
        self.assertIn(FP_A, db)
        self.assertEqual(list(db.get(FP_A)), RECORDS_A)
        self.assertEqual(len(db), 1)

    def test_existing_key_is_never_overwritten(self):
        db = DedupDatabase()
        db.insert(FP_A, RECORDS_A)

        self.assertFalse(db.insert(FP_A, RECORDS_B))
        self.assertEqual(list(db.get(FP_A)), RECORDS_A)

    def test_keys_are_case_insensitive(self):
        db = DedupDatabase()
        db.insert(FP_A.upper(), RECORDS_A)
        self.assertTrue(db.contains(FP_A))

    def test_get_unknown_returns_none(self):
        self.assertIsNone(DedupDatabase().get(FP_A))


class TestSnapshotEncoding(unittest.TestCase):
    def test_round_trip_preserves_mapping_and_record_order(self):
        db = DedupDatabase()
        db.insert(FP_A, RECORDS_A)
        db.insert(FP_B, RECORDS_B)

        restored = decode_database(encode_database(db))

        self.assertEqual(dict(restored.items()), dict(db.items()))
        self.assertEqual(list(restored.get(FP_B)), RECORDS_B)
        self.assertIsNone(restored.get(FP_B)[0].name)
        self.assertFalse(restored.changed)

    def test_round_trip_empty(self):
        self.assertEqual(len(decode_database(encode_database(DedupDatabase()))), 0)

    def test_garbage_is_rejected(self):
        with self.assertRaises(DatabaseError):
            decode_database(b"\x00\x01not json")

    def test_foreign_json_is_rejected(self):
        with self.assertRaises(DatabaseError):
            decode_database(b'{"settings": true}')

    def test_unknown_version_is_rejected(self):
        with self.assertRaisesRegex(DatabaseError, "version"):
            decode_database(b'{"format": "gallery-scraper/dedup-db", "version": 99, "topics": {}}')

    def test_bad_record_is_rejected(self):
        payload = b'{"format": "gallery-scraper/dedup-db", "version": 1, "topics": {"ab": [{"name": "x"}]}}'
        with self.assertRaisesRegex(DatabaseError, "url"):
            decode_database(payload)


class TestDatabaseStore(unittest.TestCase):
    def test_missing_file_loads_empty(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            db = DatabaseStore(Path(tmpdir) / "data.db").load()
            self.assertEqual(len(db), 0)

    def test_corrupt_file_raises(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "data.db"
            path.write_bytes(b"{truncated")
            with self.assertRaises(DatabaseError):
                DatabaseStore(path).load()

    def test_save_and_load(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            store = DatabaseStore(Path(tmpdir) / "nested" / "data.db")
            db = DedupDatabase()
            db.insert(FP_A, RECORDS_A)
            store.save(db)

            loaded = store.load()
            self.assertEqual(list(loaded.get(FP_A)), RECORDS_A)
            # No temp files left behind
            self.assertEqual([p.name for p in store.path.parent.iterdir()], ["data.db"])

    def test_save_if_changed_skips_unchanged(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            store = DatabaseStore(Path(tmpdir) / "data.db")
            self.assertFalse(store.save_if_changed(DedupDatabase()))
            self.assertFalse(store.path.exists())

            db = DedupDatabase()
            db.insert(FP_A, RECORDS_A)
            self.assertTrue(store.save_if_changed(db))

            before = store.path.stat().st_mtime_ns
            reloaded = store.load()
            self.assertFalse(store.save_if_changed(reloaded))
            self.assertEqual(store.path.stat().st_mtime_ns, before)


class TestDatabaseLock(unittest.TestCase):
    def test_second_lock_is_refused(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            db_path = Path(tmpdir) / "data.db"
            with DatabaseLock(db_path) as lock:
                self.assertTrue(lock.path.exists())
                with self.assertRaises(DatabaseLockedError):
                    DatabaseLock(db_path).acquire()
            self.assertFalse(lock.path.exists())

    def test_lock_released_on_error(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            db_path = Path(tmpdir) / "data.db"
            with self.assertRaises(RuntimeError):
                with DatabaseLock(db_path):
                    raise RuntimeError("boom")
            DatabaseLock(db_path).acquire()


if __name__ == "__main__":
    unittest.main()
