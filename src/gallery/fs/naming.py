"""
Local file naming for downloaded images.

Files live at <base>/<fingerprint>/<name>. The name is the image's `alt` text
when that already looks like an image file name, otherwise the last segment
of its URL, query string included (`show.php?id=2` -> `show.php_id=2`).

Within one image set every distinct URL gets its own name: a name already
taken by another URL gets the image's page index appended to its stem.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Optional, Sequence
from urllib.parse import unquote, urlsplit

if TYPE_CHECKING:
    from ..downloader.database import ImageRecord


# Case-sensitive: "photo.JPG" is not a file name here.
IMAGE_NAME_PATTERN = re.compile(r"^.*\.(jpg|png|jpeg)$")

# Characters that cannot appear in a file name on common filesystems
UNSAFE_CHARS = re.compile(r'[\\/:*?"<>|\x00-\x1f]')

FALLBACK_STEM = "image"


def is_image_name(value: Optional[str]) -> bool:
    """Check whether `alt` text is usable as a file name."""
    if not value:
        return False
    return IMAGE_NAME_PATTERN.match(value) is not None


def last_url_segment(reference: str) -> str:
    """
    Everything after the last '/' of a URL or relative reference.

    The query string is kept, the fragment is dropped and percent-escapes are
    decoded. Returns an empty string for references ending in '/' without a
    query.
    """
    parts = urlsplit(reference)
    segment = parts.path.rsplit("/", 1)[-1]
    if parts.query:
        segment = f"{segment}?{parts.query}"
    return unquote(segment)


def safe_file_name(name: str) -> str:
    """
    Reduce a candidate name to a single path component.

    Directory parts are dropped and characters that are invalid in file names
    are replaced with '_'. Returns an empty string if nothing usable remains.
    """
    name = name.replace("\\", "/").rsplit("/", 1)[-1].strip()
    name = UNSAFE_CHARS.sub("_", name)
    if name in (".", ".."):
        return ""
    return name


def candidate_name(alt: Optional[str], resolved_url: str, index: int) -> str:
    """
    Choose the local file name for an image.

    Args:
        alt: The element's alt attribute, if any.
        resolved_url: The absolute image URL.
        index: Position of the image on the page (for the last-resort name).
    """
    if is_image_name(alt):
        name = safe_file_name(alt or "")
        if name:
            return name
    name = safe_file_name(last_url_segment(resolved_url))
    return name or f"{FALLBACK_STEM}-{index}"


def record_file_name(record: "ImageRecord", index: int = 0) -> str:
    """File name for a stored record; records without a name fall back to the URL."""
    if record.name:
        name = safe_file_name(record.name)
        if name:
            return name
    name = safe_file_name(last_url_segment(record.url))
    return name or f"{FALLBACK_STEM}-{index}"


def indexed_name(name: str, suffix: str) -> str:
    """`photo.jpg` + `3` -> `photo-3.jpg`."""
    stem, dot, ext = name.rpartition(".")
    if dot and stem:
        return f"{stem}-{suffix}.{ext}"
    return f"{name}-{suffix}"


def unique_file_names(entries: Sequence[tuple[str, str]]) -> list[str]:
    """
    Make the names of one image set distinct per URL.

    Args:
        entries: (url, candidate name) pairs in page order.

    Returns:
        One name per entry. A repeat of the same URL under the same name keeps
        it; a name that an earlier, different URL already holds is suffixed
        with the entry's index.
    """
    owners: dict[str, str] = {}
    names: list[str] = []
    for index, (url, name) in enumerate(entries):
        chosen = name
        attempt = 0
        while owners.get(chosen, url) != url:
            attempt += 1
            suffix = str(index) if attempt == 1 else f"{index}-{attempt}"
            chosen = indexed_name(name, suffix)
        owners[chosen] = url
        names.append(chosen)
    return names
