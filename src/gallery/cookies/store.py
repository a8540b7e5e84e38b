"""
Cookie jar persistence.

The cookie file holds one JSON object per line:

    {"raw_cookie": "sid=abc; Secure; HttpOnly",
     "path": "/",
     "domain": {"Suffix": "example.com"},        # or {"HostOnly": "example.com"}
     "expires": {"AtUtc": "2030-01-01T00:00:00Z"}}  # or "SessionEnd"

`translate` produces the same records from a browser export. Only persistent,
unexpired cookies are written back.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import time
from datetime import datetime, timezone
from http.cookiejar import Cookie, CookieJar
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)

SESSION_END = "SessionEnd"


class CookieFileError(RuntimeError):
    """A cookie file exists but cannot be parsed."""


def format_utc_z(dt: datetime) -> str:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def parse_utc(value: str) -> datetime:
    raw = value.strip()
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    dt = datetime.fromisoformat(raw)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def make_cookie(
    *,
    name: str,
    value: str,
    domain: str,
    host_only: bool,
    path: str = "/",
    expires: Optional[int] = None,
    secure: bool = False,
    http_only: bool = False,
) -> Cookie:
    """Build a jar cookie. Domain cookies get the leading dot http.cookiejar expects."""
    domain = domain.strip().lstrip(".").lower()
    if not host_only:
        domain = "." + domain
    return Cookie(
        version=0,
        name=name,
        value=value,
        port=None,
        port_specified=False,
        domain=domain,
        domain_specified=not host_only,
        domain_initial_dot=not host_only,
        path=path or "/",
        path_specified=True,
        secure=secure,
        expires=expires,
        discard=expires is None,
        comment=None,
        comment_url=None,
        rest={"HttpOnly": None} if http_only else {},
    )


def cookie_to_record(cookie: Cookie) -> dict[str, Any]:
    raw = f"{cookie.name}={cookie.value if cookie.value is not None else ''}"
    if cookie.secure:
        raw += "; Secure"
    if cookie.has_nonstandard_attr("HttpOnly"):
        raw += "; HttpOnly"

    if cookie.domain.startswith("."):
        domain: dict[str, str] = {"Suffix": cookie.domain[1:]}
    else:
        domain = {"HostOnly": cookie.domain}

    expires: Any = SESSION_END
    if cookie.expires is not None:
        expires = {"AtUtc": format_utc_z(datetime.fromtimestamp(cookie.expires, tz=timezone.utc))}

    return {
        "raw_cookie": raw,
        "path": cookie.path,
        "domain": domain,
        "expires": expires,
    }


def cookie_from_record(record: Any) -> Cookie:
    """
    Rebuild a jar cookie from one persisted record.

    Raises:
        ValueError: The record does not follow the cookie file schema.
    """
    if not isinstance(record, dict):
        raise ValueError("cookie record must be an object")

    raw = record.get("raw_cookie")
    if not isinstance(raw, str) or "=" not in raw:
        raise ValueError(f"invalid raw_cookie: {raw!r}")
    pair, *attributes = [part.strip() for part in raw.split(";")]
    name, value = pair.split("=", 1)
    flags = {attr.lower() for attr in attributes}

    raw_path = record.get("path", "/")
    if isinstance(raw_path, list) and raw_path:
        raw_path = raw_path[0]
    if not isinstance(raw_path, str):
        raise ValueError(f"invalid path: {raw_path!r}")

    raw_domain = record.get("domain")
    if isinstance(raw_domain, dict) and isinstance(raw_domain.get("Suffix"), str):
        domain, host_only = raw_domain["Suffix"], False
    elif isinstance(raw_domain, dict) and isinstance(raw_domain.get("HostOnly"), str):
        domain, host_only = raw_domain["HostOnly"], True
    else:
        raise ValueError(f"invalid domain: {raw_domain!r}")

    raw_expires = record.get("expires", SESSION_END)
    expires: Optional[int] = None
    if isinstance(raw_expires, dict) and isinstance(raw_expires.get("AtUtc"), str):
        expires = int(parse_utc(raw_expires["AtUtc"]).timestamp())
    elif raw_expires != SESSION_END:
        raise ValueError(f"invalid expires: {raw_expires!r}")

    return make_cookie(
        name=name.strip(),
        value=value.strip(),
        domain=domain,
        host_only=host_only,
        path=raw_path,
        expires=expires,
        secure="secure" in flags,
        http_only="httponly" in flags,
    )


def load_cookie_jar(path: Optional[Path]) -> CookieJar:
    """
    Load the cookie file into a fresh jar.

    A missing path or missing file gives an empty jar. Expired cookies are
    dropped.

    Raises:
        CookieFileError: The file exists but a line is not a valid record.
    """
    jar = CookieJar()
    if path is None:
        return jar

    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        logger.info("No cookie file at %s, starting with an empty jar", path)
        return jar
    except OSError as exc:
        raise CookieFileError(f"cannot read cookie file {path}: {exc}") from exc

    now = time.time()
    loaded = 0
    for lineno, line in enumerate(text.splitlines(), start=1):
        if not line.strip():
            continue
        try:
            cookie = cookie_from_record(json.loads(line))
        except ValueError as exc:
            raise CookieFileError(f"{path}:{lineno}: {exc}") from exc
        if cookie.is_expired(now):
            continue
        jar.set_cookie(cookie)
        loaded += 1

    logger.info("Loaded %d cookies from %s", loaded, path)
    return jar


def save_cookie_jar(jar: CookieJar, path: Path) -> int:
    """
    Write every persistent, unexpired cookie to `path` (atomic replace).

    Returns:
        Number of cookies written.
    """
    path = Path(path)
    now = time.time()
    lines = [
        json.dumps(cookie_to_record(cookie), ensure_ascii=False)
        for cookie in jar
        if cookie.expires is not None and not cookie.is_expired(now)
    ]

    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path_str = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp")
    tmp_path = Path(tmp_path_str)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            for line in lines:
                f.write(line + "\n")
        os.replace(tmp_path, path)
    finally:
        try:
            tmp_path.unlink()
        except FileNotFoundError:
            pass

    logger.info("Saved %d cookies to %s", len(lines), path)
    return len(lines)
