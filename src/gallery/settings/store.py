from __future__ import annotations

import json
import logging
from pathlib import Path

from .models import ScraperSettings

logger = logging.getLogger(__name__)


class SettingsStore:
    def __init__(self, *, path: Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> ScraperSettings:
        if not self._path.exists():
            return ScraperSettings()

        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable settings file %s: %s", self._path, exc)
            return ScraperSettings()

        if not isinstance(raw, dict):
            return ScraperSettings()

        return ScraperSettings.from_persist_dict(raw)

