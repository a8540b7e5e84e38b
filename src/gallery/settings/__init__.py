"""
Run settings: download root, HTTP timeout, User-Agent and retry tuning.
"""

from .models import ScraperSettings
from .store import SettingsStore

__all__ = [
    "ScraperSettings",
    "SettingsStore",
]
