"""
Browser cookie export -> cookie file records.

Accepts the JSON list produced by common browser cookie-export extensions
(name, value, domain, path, expirationDate as fractional Unix seconds, ...)
and emits one cookie file record per cookie. A malformed entry is reported
with its index and skipped; the rest of the batch is still translated.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional, TextIO

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .store import cookie_to_record, make_cookie

logger = logging.getLogger(__name__)


class BrowserCookie(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    name: str = Field(min_length=1)
    value: str = ""
    domain: str = Field(min_length=1)
    path: str = "/"
    expiration_date: Optional[float] = Field(default=None, alias="expirationDate")
    secure: bool = False
    http_only: bool = Field(default=False, alias="httpOnly")


@dataclass(frozen=True)
class TranslateError:
    index: int
    reason: str

    def __str__(self) -> str:
        return f"cookie #{self.index}: {self.reason}"


@dataclass
class TranslateResult:
    records: list[dict[str, Any]] = field(default_factory=list)
    errors: list[TranslateError] = field(default_factory=list)


def expiration_to_epoch(expiration_date: float) -> int:
    """
    Whole seconds for a fractional epoch timestamp.

    Raises:
        ValueError: The value is not a representable date (NaN, infinite,
            or out of range).
    """
    try:
        dt = datetime.fromtimestamp(expiration_date, tz=timezone.utc)
    except (OverflowError, OSError, ValueError) as exc:
        raise ValueError(f"invalid expirationDate {expiration_date!r}: {exc}") from exc
    return int(dt.timestamp())


def translate_cookie(entry: Any) -> dict[str, Any]:
    """
    Translate one export entry.

    Raises:
        ValidationError: The entry does not look like an exported cookie.
        ValueError: Its expirationDate cannot be turned into a timestamp.
    """
    cookie = BrowserCookie.model_validate(entry)
    expires = None
    if cookie.expiration_date is not None:
        expires = expiration_to_epoch(cookie.expiration_date)

    jar_cookie = make_cookie(
        name=cookie.name,
        value=cookie.value,
        domain=cookie.domain,
        host_only=False,
        path=cookie.path,
        expires=expires,
        secure=cookie.secure,
        http_only=cookie.http_only,
    )
    return cookie_to_record(jar_cookie)


def translate_export(data: Any) -> TranslateResult:
    """
    Translate a whole export.

    Args:
        data: Decoded export JSON: a list of cookies, or an object with a
            "cookies" list.

    Raises:
        ValueError: The export has no cookie list at all.
    """
    if isinstance(data, dict) and isinstance(data.get("cookies"), list):
        data = data["cookies"]
    if not isinstance(data, list):
        raise ValueError("cookie export must be a JSON list of cookies")

    result = TranslateResult()
    for index, entry in enumerate(data):
        try:
            result.records.append(translate_cookie(entry))
        except ValidationError as exc:
            reason = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or 'entry'}: {err['msg']}"
                for err in exc.errors()
            )
            result.errors.append(TranslateError(index=index, reason=reason))
        except ValueError as exc:
            result.errors.append(TranslateError(index=index, reason=str(exc)))

    for error in result.errors:
        logger.warning("Skipping %s", error)
    return result


def translate_text(text: str) -> TranslateResult:
    try:
        data = json.loads(text)
    except ValueError as exc:
        raise ValueError(f"cookie export is not valid JSON: {exc}") from exc
    return translate_export(data)


def write_records(records: list[dict[str, Any]], stream: TextIO) -> None:
    for record in records:
        stream.write(json.dumps(record, ensure_ascii=False) + "\n")
