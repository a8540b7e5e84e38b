#!/usr/bin/env python3
from __future__ import annotations

"""
gallery-scraper command line.

  download  fetch gallery pages and download image sets not seen before
  fix       re-download recorded image sets whose directory is missing
  list      print the database
  translate convert a browser cookie export into the cookie file format

Examples:
  gallery-scraper download --cookie-file cookies.json --data-path data.db https://ex.test/g.html
  gallery-scraper fix --data-path data.db
  gallery-scraper translate --file export.json --output cookies.json
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

from src.gallery.cookies.translate import translate_text, write_records
from src.gallery.downloader.database import DatabaseStore
from src.gallery.fs.storage import GalleryStorageManager
from src.gallery.pipeline.download_run import NoUrlsError, run_download
from src.gallery.pipeline.listing import format_database
from src.gallery.pipeline.reconcile import run_fix
from src.gallery.settings.models import ScraperSettings
from src.gallery.settings.store import SettingsStore

logger = logging.getLogger("gallery_scraper")


def configure_logging(verbose: bool, quiet: bool) -> None:
    level = logging.DEBUG if verbose else logging.WARNING if quiet else logging.INFO
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    if not verbose:
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)


def load_settings(args: argparse.Namespace) -> ScraperSettings:
    if args.config:
        settings = SettingsStore(path=Path(args.config)).load()
    else:
        settings = ScraperSettings()
    if getattr(args, "download_root", None):
        settings.download_root = args.download_root
    return settings


def cmd_download(args: argparse.Namespace, settings: ScraperSettings) -> int:
    report = asyncio.run(
        run_download(
            args.url,
            data_path=args.data_path,
            cookie_file=args.cookie_file,
            settings=settings,
        )
    )
    if not report.changed:
        logger.info("No change, no need to save the data")
    return 0


def cmd_fix(args: argparse.Namespace, settings: ScraperSettings) -> int:
    report = asyncio.run(
        run_fix(
            args.data_path,
            cookie_file=args.cookie_file,
            settings=settings,
            fail_fast=args.fail_fast,
            verify_files=args.verify_files,
        )
    )
    if report.failed:
        logger.error("%d fingerprints could not be repaired", len(report.failed))
        return 1
    return 0


def cmd_list(args: argparse.Namespace, settings: ScraperSettings) -> int:
    database = DatabaseStore(args.data_path).load()
    storage = GalleryStorageManager(settings.download_root)
    for line in format_database(database, storage=storage):
        print(line)
    return 0


def cmd_translate(args: argparse.Namespace, settings: ScraperSettings) -> int:
    if args.file is not None:
        text = Path(args.file).read_text(encoding="utf-8")
    else:
        text = args.input

    result = translate_text(text)
    if args.output is not None:
        with open(args.output, "w", encoding="utf-8") as f:
            write_records(result.records, f)
    else:
        write_records(result.records, sys.stdout)

    if result.errors:
        logger.warning(
            "Translated %d cookies, skipped %d malformed entries",
            len(result.records),
            len(result.errors),
        )
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="gallery-scraper",
        description="Download gallery image sets, deduplicated by image-set fingerprint.",
    )
    p.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    p.add_argument("-q", "--quiet", action="store_true", help="only warnings and errors")
    p.add_argument("--config", default="", help="settings JSON (download_root, timeout_s, user_agent, retry)")
    p.add_argument("--download-root", default="", help="override the image directory root (default: data)")

    sub = p.add_subparsers(dest="command", required=True)

    dl = sub.add_parser("download", help="download new image sets from gallery pages")
    dl.add_argument("-c", "--cookie-file", type=Path, default=None, help="cookie file, loaded and saved back")
    dl.add_argument("-d", "--data-path", type=Path, default=None, help="database file")
    dl.add_argument("url", nargs="*", help="gallery page URLs")
    dl.set_defaults(func=cmd_download)

    fx = sub.add_parser("fix", help="re-download recorded sets whose directory is missing")
    fx.add_argument("-c", "--cookie-file", type=Path, default=None, help="cookie file (not saved back)")
    fx.add_argument("-d", "--data-path", type=Path, required=True, help="database file")
    fx.add_argument("--fail-fast", action="store_true", help="stop at the first failed repair")
    fx.add_argument(
        "--verify-files",
        action="store_true",
        help="check every recorded file, not just the directory",
    )
    fx.set_defaults(func=cmd_fix)

    ls = sub.add_parser("list", help="print the database")
    ls.add_argument("-d", "--data-path", type=Path, required=True, help="database file")
    ls.set_defaults(func=cmd_list)

    tr = sub.add_parser("translate", help="convert a browser cookie export into a cookie file")
    source = tr.add_mutually_exclusive_group(required=True)
    source.add_argument("-i", "--input", default=None, help="export JSON text")
    source.add_argument("-f", "--file", type=Path, default=None, help="export JSON file")
    tr.add_argument("-o", "--output", type=Path, default=None, help="write here instead of stdout")
    tr.set_defaults(func=cmd_translate)

    return p


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose, args.quiet)
    settings = load_settings(args)

    try:
        return args.func(args, settings)
    except NoUrlsError as exc:
        logger.error("%s", exc)
        return 2
    except Exception as exc:  # noqa: BLE001
        logger.debug("%s failed", args.command, exc_info=True)
        logger.error("%s failed: %s", args.command, exc)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
