"""
Network utilities: shared HTTP client and retry with exponential backoff.
"""

from .retry import (
    RetryConfig,
    with_retry_async,
)
from .client import build_client, fetch_bytes, fetch_page

__all__ = [
    "RetryConfig",
    "with_retry_async",
    "build_client",
    "fetch_bytes",
    "fetch_page",
]
