from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from ..net.retry import RetryConfig


DEFAULT_DOWNLOAD_ROOT = "data"
DEFAULT_TIMEOUT_S = 30.0
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/120.0.0.0 Safari/537.36"
)


@dataclass
class ScraperSettings:
    download_root: str = DEFAULT_DOWNLOAD_ROOT
    timeout_s: float = DEFAULT_TIMEOUT_S
    user_agent: str = DEFAULT_USER_AGENT
    retry: Optional[RetryConfig] = None

    def get_retry(self) -> RetryConfig:
        """Get retry config, using defaults if not set."""
        return self.retry or RetryConfig()

    @classmethod
    def from_persist_dict(cls, data: dict[str, Any]) -> "ScraperSettings":
        download_root = str(data.get("download_root", DEFAULT_DOWNLOAD_ROOT) or DEFAULT_DOWNLOAD_ROOT)
        user_agent = str(data.get("user_agent", DEFAULT_USER_AGENT) or DEFAULT_USER_AGENT)

        try:
            timeout_s = float(data.get("timeout_s", DEFAULT_TIMEOUT_S))
        except (TypeError, ValueError):
            timeout_s = DEFAULT_TIMEOUT_S
        if timeout_s <= 0:
            timeout_s = DEFAULT_TIMEOUT_S

        raw_retry = data.get("retry")
        retry = None
        if isinstance(raw_retry, dict):
            retry = RetryConfig.from_persist_dict(raw_retry)

        return cls(
            download_root=download_root,
            timeout_s=timeout_s,
            user_agent=user_agent,
            retry=retry,
        )
