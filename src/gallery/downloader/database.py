"""
Fingerprint-keyed dedup database.

Maps a page fingerprint (lowercase hex) to the ordered image records that were
downloaded for it. A key is only ever inserted once the whole image set has
been written to disk, and existing keys are never modified.

The database is loaded once per run, mutated in memory, and written back only
when something was inserted. Snapshots are JSON documents tagged with a format
name and version so a foreign or truncated file is reported instead of being
silently replaced.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterator, Optional, Sequence

SNAPSHOT_FORMAT = "gallery-scraper/dedup-db"
SNAPSHOT_VERSION = 1

logger = logging.getLogger(__name__)


class DatabaseError(RuntimeError):
    """The persisted database exists but cannot be used."""


class DatabaseLockedError(DatabaseError):
    """Another process holds the database lock."""


@dataclass(frozen=True)
class ImageRecord:
    """One downloaded image: its absolute URL and the local file name."""
    url: str
    name: Optional[str] = None

    def to_persist_dict(self) -> dict[str, Any]:
        return {"name": self.name, "url": self.url}

    @classmethod
    def from_persist_dict(cls, data: Any) -> "ImageRecord":
        if not isinstance(data, dict):
            raise DatabaseError(f"image record must be an object, got {type(data).__name__}")
        url = data.get("url")
        name = data.get("name")
        if not isinstance(url, str) or not url:
            raise DatabaseError("image record is missing its url")
        if name is not None and not isinstance(name, str):
            raise DatabaseError(f"image record name must be a string: {name!r}")
        return cls(url=url, name=name)


@dataclass
class DedupDatabase:
    """
    In-memory fingerprint -> records mapping.

    Usage:
        db = DatabaseStore(path).load()
        if not db.contains(fp):
            ...download...
            db.insert(fp, records)
        DatabaseStore(path).save_if_changed(db)
    """

    _topics: dict[str, tuple[ImageRecord, ...]] = field(default_factory=dict)
    _changed: bool = False

    @property
    def changed(self) -> bool:
        """True once any insertion happened since load."""
        return self._changed

    def contains(self, fingerprint: str) -> bool:
        return fingerprint.lower() in self._topics

    def __contains__(self, fingerprint: object) -> bool:
        return isinstance(fingerprint, str) and self.contains(fingerprint)

    def __len__(self) -> int:
        return len(self._topics)

    def get(self, fingerprint: str) -> Optional[tuple[ImageRecord, ...]]:
        return self._topics.get(fingerprint.lower())

    def insert(self, fingerprint: str, records: Sequence[ImageRecord]) -> bool:
        """
        Record a fully downloaded image set.

        Args:
            fingerprint: The page fingerprint.
            records: Image records in page order.

        Returns:
            True if the key was new. An existing key is left untouched.
        """
        key = fingerprint.lower()
        if key in self._topics:
            return False
        self._topics[key] = tuple(records)
        self._changed = True
        return True

    def items(self) -> Iterator[tuple[str, tuple[ImageRecord, ...]]]:
        return iter(list(self._topics.items()))

    def to_persist_dict(self) -> dict[str, Any]:
        return {
            "format": SNAPSHOT_FORMAT,
            "version": SNAPSHOT_VERSION,
            "topics": {
                key: [record.to_persist_dict() for record in records]
                for key, records in self._topics.items()
            },
        }

    @classmethod
    def from_persist_dict(cls, data: Any) -> "DedupDatabase":
        if not isinstance(data, dict) or data.get("format") != SNAPSHOT_FORMAT:
            raise DatabaseError("not a gallery-scraper database snapshot")
        version = data.get("version")
        if version != SNAPSHOT_VERSION:
            raise DatabaseError(f"unsupported database version: {version!r}")
        raw_topics = data.get("topics")
        if not isinstance(raw_topics, dict):
            raise DatabaseError("database snapshot has no topics mapping")

        topics: dict[str, tuple[ImageRecord, ...]] = {}
        for key, raw_records in raw_topics.items():
            if not isinstance(raw_records, list):
                raise DatabaseError(f"records for {key} must be a list")
            topics[str(key).lower()] = tuple(ImageRecord.from_persist_dict(r) for r in raw_records)
        return cls(_topics=topics)


def encode_database(db: DedupDatabase) -> bytes:
    return json.dumps(db.to_persist_dict(), ensure_ascii=False, separators=(",", ":")).encode("utf-8")


def decode_database(payload: bytes) -> DedupDatabase:
    try:
        data = json.loads(payload.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as exc:
        raise DatabaseError(f"database snapshot is corrupt: {exc}") from exc
    return DedupDatabase.from_persist_dict(data)


class DatabaseStore:
    """Loads and saves database snapshots at a fixed path."""

    def __init__(self, path: Path | str) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> DedupDatabase:
        """
        Load the snapshot.

        Returns:
            The stored database, or an empty one if the file does not exist.

        Raises:
            DatabaseError: The file exists but cannot be read or decoded.
        """
        try:
            payload = self._path.read_bytes()
        except FileNotFoundError:
            logger.info("No database at %s, starting empty", self._path)
            return DedupDatabase()
        except OSError as exc:
            raise DatabaseError(f"cannot read database {self._path}: {exc}") from exc

        try:
            db = decode_database(payload)
        except DatabaseError as exc:
            raise DatabaseError(f"{self._path}: {exc}") from exc
        logger.info("Loaded %d fingerprints from %s", len(db), self._path)
        return db

    def save(self, db: DedupDatabase) -> None:
        """Write the full snapshot, replacing the previous file atomically."""
        payload = encode_database(db)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path_str = tempfile.mkstemp(
            dir=str(self._path.parent),
            prefix=f".{self._path.name}.",
            suffix=".tmp",
        )
        tmp_path = Path(tmp_path_str)
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self._path)
        finally:
            try:
                tmp_path.unlink()
            except FileNotFoundError:
                pass

    def save_if_changed(self, db: DedupDatabase) -> bool:
        """Save only when an insertion happened. Returns whether the file was written."""
        if not db.changed:
            logger.info("No change, database %s left untouched", self._path)
            return False
        self.save(db)
        logger.info("Saved %d fingerprints to %s", len(db), self._path)
        return True


class DatabaseLock:
    """
    Advisory lock file next to the database (<path>.lock).

    Held for the whole of a `download` or `fix` run. A stale lock left by a
    crashed process has to be removed by hand; the error message names it.
    """

    def __init__(self, db_path: Path | str) -> None:
        db_path = Path(db_path)
        self._path = db_path.with_name(db_path.name + ".lock")
        self._held = False

    @property
    def path(self) -> Path:
        return self._path

    def acquire(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        try:
            fd = os.open(str(self._path), os.O_CREAT | os.O_EXCL | os.O_WRONLY)
        except FileExistsError as exc:
            raise DatabaseLockedError(
                f"database is in use by another run (remove {self._path} if that run is gone)"
            ) from exc
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(f"{os.getpid()}\n")
        self._held = True

    def release(self) -> None:
        if not self._held:
            return
        try:
            self._path.unlink()
        except FileNotFoundError:
            pass
        self._held = False

    def __enter__(self) -> "DatabaseLock":
        self.acquire()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.release()
