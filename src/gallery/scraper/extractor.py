from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Optional
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup

from ..fs.naming import candidate_name, unique_file_names

logger = logging.getLogger(__name__)

HTML_PARSER = "html.parser"

# Lightbox thumbnails carry the full-size image in onclick="Previewurl('...')"
PREVIEW_ONCLICK_PATTERN = re.compile(r"^Previewurl\('(.*)'\)$")

FETCHABLE_SCHEMES = frozenset({"http", "https"})


class UrlError(ValueError):
    """An image reference could not be resolved to an absolute http(s) URL."""


@dataclass(frozen=True)
class ExtractedImage:
    url: str   # absolute, resolved against the page URL
    name: str  # candidate local file name


def _attr(tag: Any, name: str) -> Optional[str]:
    value = tag.get(name)
    if value is None:
        return None
    if isinstance(value, list):
        value = " ".join(value)
    return str(value)


def image_reference(tag: Any) -> Optional[str]:
    """
    The true source of an <img>.

    `src` unless `onclick` is a Previewurl('...') call, whose argument wins.
    """
    onclick = _attr(tag, "onclick")
    if onclick is not None:
        match = PREVIEW_ONCLICK_PATTERN.match(onclick)
        if match:
            return match.group(1)
    return _attr(tag, "src")


def resolve_reference(page_url: str, reference: str) -> str:
    """
    Resolve an image reference against its page.

    Raises:
        UrlError: The result is not an absolute http(s) URL.
    """
    try:
        resolved = urljoin(page_url, reference.strip())
        parsed = urlparse(resolved)
    except ValueError as exc:
        raise UrlError(f"cannot resolve {reference!r} against {page_url}: {exc}") from exc

    if parsed.scheme.lower() not in FETCHABLE_SCHEMES or not parsed.netloc:
        raise UrlError(f"cannot resolve {reference!r} against {page_url} to an http(s) URL")
    return resolved


def extract_images(html: str, page_url: str) -> list[ExtractedImage]:
    """
    Collect the images of a gallery page in document order.

    Args:
        html: Page body.
        page_url: Absolute URL the page was fetched from.

    Returns:
        One ExtractedImage per <img> that has a source, with names that are
        distinct per URL.

    Raises:
        UrlError: Any image reference fails to resolve (the page is unusable).
    """
    soup = BeautifulSoup(html, HTML_PARSER)
    candidates: list[tuple[str, str]] = []

    for index, tag in enumerate(soup.find_all("img")):
        reference = image_reference(tag)
        if reference is None or not reference.strip():
            logger.debug("Skipping <img> without a source on %s", page_url)
            continue

        url = resolve_reference(page_url, reference)
        candidates.append((url, candidate_name(_attr(tag, "alt"), url, index)))

    names = unique_file_names(candidates)
    return [ExtractedImage(url=url, name=name) for (url, _), name in zip(candidates, names)]
