"""
Tests for the cookie file (one JSON record per line).

- Records load into a jar and are written back in the same format
- Expired cookies are dropped, session cookies are never persisted
- A broken line is an error that names the line
"""

import json
import tempfile
import time
import unittest
from http.cookiejar import CookieJar
from pathlib import Path

from src.gallery.cookies.store import (
    CookieFileError,
    cookie_from_record,
    cookie_to_record,
    load_cookie_jar,
    make_cookie,
    save_cookie_jar,
)


FUTURE = {"AtUtc": "2099-06-01T12:00:00Z"}
PAST = {"AtUtc": "2001-01-01T00:00:00Z"}


def _write_lines(path: Path, records) -> None:
    path.write_text("".join(json.dumps(r) + "\n" for r in records), encoding="utf-8")


class TestRecords(unittest.TestCase):
    def test_suffix_domain_record(self):
        cookie = cookie_from_record(
            {
                "raw_cookie": "sid=abc; Secure; HttpOnly",
                "path": "/gallery",
                "domain": {"Suffix": "ex.test"},
                "expires": FUTURE,
            }
        )
        self.assertEqual((cookie.name, cookie.value), ("sid", "abc"))
        self.assertEqual(cookie.domain, ".ex.test")
        self.assertEqual(cookie.path, "/gallery")
        self.assertTrue(cookie.secure)
        self.assertTrue(cookie.has_nonstandard_attr("HttpOnly"))

        self.assertEqual(
            cookie_to_record(cookie),
            {
                "raw_cookie": "sid=abc; Secure; HttpOnly",
                "path": "/gallery",
                "domain": {"Suffix": "ex.test"},
                "expires": FUTURE,
            },
        )

    def test_host_only_session_record(self):
        cookie = cookie_from_record(
            {"raw_cookie": "a=1", "path": "/", "domain": {"HostOnly": "ex.test"}, "expires": "SessionEnd"}
        )
        self.assertEqual(cookie.domain, "ex.test")
        self.assertIsNone(cookie.expires)
        self.assertEqual(cookie_to_record(cookie)["domain"], {"HostOnly": "ex.test"})
        self.assertEqual(cookie_to_record(cookie)["expires"], "SessionEnd")

    def test_path_given_as_list(self):
        cookie = cookie_from_record(
            {"raw_cookie": "a=1", "path": ["/x", True], "domain": {"HostOnly": "ex.test"}, "expires": FUTURE}
        )
        self.assertEqual(cookie.path, "/x")

    def test_invalid_records(self):
        for record in (
            [],
            {"raw_cookie": "novalue", "domain": {"HostOnly": "ex.test"}},
            {"raw_cookie": "a=1", "domain": "ex.test"},
            {"raw_cookie": "a=1", "domain": {"HostOnly": "ex.test"}, "expires": 12},
            {"raw_cookie": "a=1", "domain": {"HostOnly": "ex.test"}, "expires": {"AtUtc": "soon"}},
        ):
            with self.subTest(record=record):
                with self.assertRaises(ValueError):
                    cookie_from_record(record)


class TestCookieFile(unittest.TestCase):
    def test_missing_file_gives_empty_jar(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            self.assertEqual(len(load_cookie_jar(Path(tmpdir) / "cookies.json")), 0)
        self.assertEqual(len(load_cookie_jar(None)), 0)

    def test_load_skips_expired(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "cookies.json"
            _write_lines(
                path,
                [
                    {"raw_cookie": "fresh=1", "path": "/", "domain": {"Suffix": "ex.test"}, "expires": FUTURE},
                    {"raw_cookie": "stale=1", "path": "/", "domain": {"Suffix": "ex.test"}, "expires": PAST},
                ],
            )
            jar = load_cookie_jar(path)
            self.assertEqual([c.name for c in jar], ["fresh"])

    def test_corrupt_line_names_the_line(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "cookies.json"
            path.write_text(
                json.dumps({"raw_cookie": "a=1", "path": "/", "domain": {"Suffix": "ex.test"}, "expires": FUTURE})
                + "\n{not json\n",
                encoding="utf-8",
            )
            with self.assertRaisesRegex(CookieFileError, ":2:"):
                load_cookie_jar(path)

    def test_save_writes_only_persistent_cookies(self):
        jar = CookieJar()
        jar.set_cookie(make_cookie(name="keep", value="1", domain="ex.test", host_only=True,
                                   expires=int(time.time()) + 3600))
        jar.set_cookie(make_cookie(name="session", value="1", domain="ex.test", host_only=True))
        jar.set_cookie(make_cookie(name="gone", value="1", domain="ex.test", host_only=True,
                                   expires=int(time.time()) - 3600))

        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "cookies.json"
            self.assertEqual(save_cookie_jar(jar, path), 1)

            lines = path.read_text(encoding="utf-8").splitlines()
            self.assertEqual(len(lines), 1)
            self.assertEqual(json.loads(lines[0])["raw_cookie"], "keep=1")

    def test_round_trip_through_file(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "cookies.json"
            records = [
                {"raw_cookie": "a=1; Secure", "path": "/", "domain": {"Suffix": "ex.test"}, "expires": FUTURE},
                {"raw_cookie": "b=2", "path": "/p", "domain": {"HostOnly": "cdn.ex.test"}, "expires": FUTURE},
            ]
            _write_lines(path, records)

            save_cookie_jar(load_cookie_jar(path), path)

            saved = [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]
            self.assertEqual(
                sorted(saved, key=lambda r: r["raw_cookie"]),
                records,
            )


if __name__ == "__main__":
    unittest.main()
