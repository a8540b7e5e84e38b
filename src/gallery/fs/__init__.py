"""
File system utilities for gallery storage.

Provides:
- Directory structure management (storage.py)
- File naming conventions (naming.py)
- Page fingerprints used for dedup and directory names (hashing.py)
"""

from .storage import GalleryStorageManager
from .naming import (
    candidate_name,
    is_image_name,
    last_url_segment,
    record_file_name,
    unique_file_names,
)
from .hashing import Fingerprint, compute_fingerprint

__all__ = [
    "GalleryStorageManager",
    "candidate_name",
    "is_image_name",
    "last_url_segment",
    "record_file_name",
    "unique_file_names",
    "Fingerprint",
    "compute_fingerprint",
]
