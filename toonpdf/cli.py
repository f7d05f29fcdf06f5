# -*- coding: utf-8 -*-
"""Command line entry point: ``toonpdf URL [OUT_DIR] [NAME.pdf]``."""

from __future__ import annotations

import argparse
import logging
from typing import List, Optional, Sequence, Tuple

from playwright.async_api import Error as PlaywrightError

from . import config
from .errors import ToonPdfError
from .job import run_download_job
from .models import JobOptions

LOG = logging.getLogger("toonpdf.cli")


def split_targets(extra: Sequence[str]) -> Tuple[Optional[str], Optional[str]]:
    """Sort the optional positionals into (out_dir, pdf_name).

    Either order is accepted: whatever ends in ``.pdf`` is the file name.
    """
    out_dir: Optional[str] = None
    pdf_name: Optional[str] = None
    for value in extra:
        if value.lower().endswith(".pdf"):
            pdf_name = value
        else:
            out_dir = value
    return out_dir, pdf_name


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="toonpdf",
        description="Render a webtoon episode and bind its panels into a PDF.",
    )
    parser.add_argument("url", help="Episode URL (absolute, /path or host/path).")
    parser.add_argument(
        "targets",
        nargs="*",
        metavar="TARGET",
        help="Output directory and/or PDF file name (anything ending in .pdf).",
    )
    parser.add_argument(
        "--wait",
        type=int,
        default=0,
        metavar="MS",
        help="Extra wait after the page loads, before scrolling.",
    )
    parser.add_argument("--debug", action="store_true", help="Verbose console output.")
    parser.add_argument(
        "--stitch",
        action="store_true",
        help="Merge fallback screenshots into a single tall page.",
    )
    parser.add_argument(
        "--headful",
        action="store_true",
        help="Show the browser window (overrides HEADLESS).",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if len(args.targets) > 2:
        parser.error("at most two TARGET values (directory and PDF name) are accepted")
    if args.wait < 0:
        parser.error("--wait must be >= 0")

    config.load_env()
    config.setup_logging(debug=args.debug)

    out_dir, pdf_name = split_targets(args.targets)
    options = JobOptions(
        wait_ms=args.wait,
        debug=args.debug,
        headless=False if args.headful else config.headless(),
        stitch=args.stitch,
        executable_path=config.chrome_path(),
    )
    try:
        run_download_job(args.url, out_dir, pdf_name, options)
    except ToonPdfError as exc:
        LOG.error("%s: %s", exc.__class__.__name__, exc)
        return exc.exit_code
    except PlaywrightError as exc:
        LOG.error("Browser error: %s", exc)
        return 1
    except OSError as exc:
        LOG.error("I/O error: %s", exc)
        return 1
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
