"""
Gallery page URL validation.

Rules:
- Absolute URL with an http:// or https:// scheme
- A host must be present
- Surrounding whitespace is ignored; fragments are dropped (never sent)
- Valid input returns the normalized URL
- Invalid input returns a human-readable reason
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional
from urllib.parse import urldefrag, urlparse


ALLOWED_SCHEMES = ("http", "https")


@dataclass(frozen=True)
class ValidationResult:
    """URL validation result"""

    valid: bool
    url: Optional[str] = None
    error: Optional[str] = None

    def __bool__(self) -> bool:
        return self.valid


def validate_page_url(url: str) -> ValidationResult:
    """
    Check that a page URL can be fetched.

    Args:
        url: URL string as given on the command line.

    Returns:
        ValidationResult with the normalized url on success, or an error.
    """
    if not url or not url.strip():
        return ValidationResult(valid=False, error="URL must not be empty")

    url = url.strip()

    try:
        parsed = urlparse(url)
    except ValueError:
        return ValidationResult(valid=False, error=f"malformed URL: {url}")

    if not parsed.scheme:
        return ValidationResult(
            valid=False,
            error=f"URL is missing its scheme (expected http:// or https://): {url}",
        )

    if parsed.scheme.lower() not in ALLOWED_SCHEMES:
        return ValidationResult(
            valid=False,
            error=f"unsupported scheme {parsed.scheme}:// (use http:// or https://)",
        )

    if not parsed.hostname:
        return ValidationResult(valid=False, error=f"URL has no host: {url}")

    try:
        parsed.port
    except ValueError:
        return ValidationResult(valid=False, error=f"URL has an invalid port: {url}")

    return ValidationResult(valid=True, url=urldefrag(url)[0])
