"""
Exponential backoff retry logic for transient HTTP failures (429, 5xx, transport errors).

Only the async flavour is needed: every request in a run goes through the
shared `httpx.AsyncClient`.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional, Set, TypeVar

import httpx

DEFAULT_MAX_RETRIES = 2
DEFAULT_BASE_DELAY_S = 1.5
DEFAULT_MAX_DELAY_S = 30.0
DEFAULT_JITTER_FACTOR = 0.25  # 25% jitter on top of computed delay

# HTTP status codes that trigger retry
DEFAULT_RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})

T = TypeVar("T")
logger = logging.getLogger(__name__)


@dataclass
class RetryConfig:
    """
    Configuration for retry with exponential backoff.

    Attributes:
        max_retries: Maximum number of retry attempts (0 = no retries).
        base_delay_s: Initial delay before first retry.
        max_delay_s: Maximum delay cap (exponential backoff won't exceed this).
        jitter_factor: Random jitter as fraction of computed delay (0.0-1.0).
        retryable_status_codes: HTTP status codes that should trigger retry.
        retry_transport_errors: Retry connect/read failures and timeouts.
        enabled: If False, retry logic is disabled.
    """
    max_retries: int = DEFAULT_MAX_RETRIES
    base_delay_s: float = DEFAULT_BASE_DELAY_S
    max_delay_s: float = DEFAULT_MAX_DELAY_S
    jitter_factor: float = DEFAULT_JITTER_FACTOR
    retryable_status_codes: Set[int] = field(
        default_factory=lambda: set(DEFAULT_RETRYABLE_STATUS_CODES)
    )
    retry_transport_errors: bool = True
    enabled: bool = True

    @classmethod
    def from_persist_dict(cls, data: dict) -> "RetryConfig":
        max_retries = data.get("max_retries", DEFAULT_MAX_RETRIES)
        base_delay = data.get("base_delay_s", DEFAULT_BASE_DELAY_S)
        max_delay = data.get("max_delay_s", DEFAULT_MAX_DELAY_S)
        jitter_factor = data.get("jitter_factor", DEFAULT_JITTER_FACTOR)
        status_codes = data.get("retryable_status_codes", list(DEFAULT_RETRYABLE_STATUS_CODES))

        try:
            max_retries = int(max_retries)
        except (TypeError, ValueError):
            max_retries = DEFAULT_MAX_RETRIES

        try:
            base_delay = float(base_delay)
        except (TypeError, ValueError):
            base_delay = DEFAULT_BASE_DELAY_S

        try:
            max_delay = float(max_delay)
        except (TypeError, ValueError):
            max_delay = DEFAULT_MAX_DELAY_S

        try:
            jitter_factor = float(jitter_factor)
        except (TypeError, ValueError):
            jitter_factor = DEFAULT_JITTER_FACTOR

        if isinstance(status_codes, (list, tuple)):
            parsed_codes = set()
            for code in status_codes:
                try:
                    parsed_codes.add(int(code))
                except (TypeError, ValueError):
                    pass
            if not parsed_codes:
                parsed_codes = set(DEFAULT_RETRYABLE_STATUS_CODES)
        else:
            parsed_codes = set(DEFAULT_RETRYABLE_STATUS_CODES)

        return cls(
            max_retries=max(0, max_retries),
            base_delay_s=max(0.0, base_delay),
            max_delay_s=max(0.0, max_delay),
            jitter_factor=max(0.0, min(1.0, jitter_factor)),
            retryable_status_codes=parsed_codes,
            retry_transport_errors=bool(data.get("retry_transport_errors", True)),
            enabled=bool(data.get("enabled", True)),
        )

    def compute_delay(self, attempt: int) -> float:
        """
        Compute delay for given attempt using exponential backoff with jitter.

        Args:
            attempt: Current attempt number (0-indexed).

        Returns:
            Delay in seconds before next retry.
        """
        delay = min(self.base_delay_s * (2 ** attempt), self.max_delay_s)
        jitter = delay * random.uniform(0, self.jitter_factor)
        return delay + jitter

    def is_retryable_status(self, status_code: int) -> bool:
        """Check if HTTP status code should trigger retry."""
        return status_code in self.retryable_status_codes

    def should_retry(self, exc: BaseException) -> bool:
        """Decide whether a failed attempt is worth repeating."""
        status = _extract_status_code(exc)
        if status is not None:
            return self.is_retryable_status(status)
        if isinstance(exc, httpx.TransportError):
            return self.retry_transport_errors
        return False


async def with_retry_async(
    func: Callable[[], Awaitable[T]],
    *,
    config: Optional[RetryConfig] = None,
    on_retry: Optional[Callable[[int, Exception, float], None]] = None,
) -> T:
    """
    Execute an async function with retry and exponential backoff.

    Args:
        func: Zero-argument callable returning an awaitable.
        config: Retry configuration.
        on_retry: Optional callback called before each retry with
                  (attempt, exception, delay).

    Returns:
        The result of func().

    Raises:
        The last exception if all retries are exhausted, or immediately
        for errors that are not retryable.
    """
    cfg = config or RetryConfig()

    if not cfg.enabled:
        return await func()

    attempt = 0
    while True:
        try:
            return await func()
        except Exception as exc:
            if attempt >= cfg.max_retries or not cfg.should_retry(exc):
                raise
            delay = cfg.compute_delay(attempt)
            if on_retry:
                on_retry(attempt, exc, delay)
            else:
                logger.warning(
                    "Retry %d/%d after %.2fs: %s",
                    attempt + 1,
                    cfg.max_retries,
                    delay,
                    exc,
                )
            await asyncio.sleep(delay)
            attempt += 1


def _extract_status_code(exc: BaseException) -> Optional[int]:
    """Try to extract the HTTP status code carried by an exception."""
    # httpx.HTTPStatusError
    response = getattr(exc, "response", None)
    if response is not None and hasattr(response, "status_code"):
        try:
            return int(response.status_code)
        except (TypeError, ValueError):
            pass

    return None
