"""
Content fingerprints for gallery pages.

A page's fingerprint is an MD5-sized digest seeded from a fixed constant and
XOR-folded with the MD5 of every resolved image URL on the page. XOR makes the
result independent of the order images appear in. The fingerprint doubles as
the dedup key and the name of the page's image directory.

Two identical URLs on one page cancel each other out; this is accepted, the
same as any other XOR collision.
"""

from __future__ import annotations

import hashlib
from typing import Iterable


# Hash algorithm folded into the accumulator
HASH_ALGORITHM = "md5"

# Fixed seed; an empty page fingerprints to md5(SEED)
FINGERPRINT_SEED = b"start"

DIGEST_SIZE = hashlib.new(HASH_ALGORITHM).digest_size


def compute_url_digest(url: str) -> bytes:
    """Digest of one absolute URL string."""
    return hashlib.new(HASH_ALGORITHM, url.encode("utf-8")).digest()


class Fingerprint:
    """
    Incremental XOR-fold accumulator.

    Usage:
        fp = Fingerprint()
        for url in urls:
            fp.update(url)
        key = fp.hexdigest()
    """

    def __init__(self) -> None:
        self._acc = bytearray(hashlib.new(HASH_ALGORITHM, FINGERPRINT_SEED).digest())
        self._count = 0

    def update(self, url: str) -> None:
        """Fold one URL into the fingerprint."""
        for i, b in enumerate(compute_url_digest(url)):
            self._acc[i] ^= b
        self._count += 1

    def digest(self) -> bytes:
        return bytes(self._acc)

    def hexdigest(self) -> str:
        """Lowercase hexadecimal fingerprint."""
        return self._acc.hex()

    @property
    def count(self) -> int:
        """Number of URLs folded in so far."""
        return self._count


def compute_fingerprint(urls: Iterable[str]) -> str:
    """
    Fingerprint a page's full set of resolved image URLs.

    Args:
        urls: Absolute image URLs (any order).

    Returns:
        32-character lowercase hex string.
    """
    fp = Fingerprint()
    for url in urls:
        fp.update(url)
    return fp.hexdigest()
