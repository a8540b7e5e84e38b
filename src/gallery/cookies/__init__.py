"""
Session cookies shared by every request of a run.

Provides:
- Cookie file load/save for the jar (store.py)
- Browser export translation into the cookie file format (translate.py)
"""

from .store import CookieFileError, load_cookie_jar, save_cookie_jar
from .translate import TranslateError, TranslateResult, translate_export, translate_text

__all__ = [
    "CookieFileError",
    "load_cookie_jar",
    "save_cookie_jar",
    "TranslateError",
    "TranslateResult",
    "translate_export",
    "translate_text",
]
