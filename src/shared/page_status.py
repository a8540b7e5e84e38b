"""
Per-unit outcome shared by the download and fix pipelines and their tests.

download: Downloaded / Unchanged / Failed
fix:      Present / Repaired / Failed
"""

from __future__ import annotations

from enum import Enum


class PageStatus(str, Enum):
    DOWNLOADED = "Downloaded"
    UNCHANGED = "Unchanged"
    PRESENT = "Present"
    REPAIRED = "Repaired"
    FAILED = "Failed"

    def is_change(self) -> bool:
        """Whether the unit wrote new files."""
        return self in (PageStatus.DOWNLOADED, PageStatus.REPAIRED)
