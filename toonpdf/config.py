# -*- coding: utf-8 -*-
"""Environment settings and logging setup shared by the CLI and the job server."""

from __future__ import annotations

import logging
import os
import pathlib
import sys
from logging.handlers import RotatingFileHandler
from typing import Optional

from dotenv import load_dotenv

from .urls import DEFAULT_SITE_ORIGIN

BASE_DIR = pathlib.Path.cwd()
ENV_PATH = BASE_DIR / ".env"

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
LOG_MAX_BYTES = 2 * 1024 * 1024
LOG_BACKUPS = 5
NOISY_LOGGERS = ("asyncio", "PIL", "uvicorn.access")


def load_env() -> None:
    if ENV_PATH.exists():
        load_dotenv(ENV_PATH)
    else:
        load_dotenv()


def resolve_dir(env_key: str, default_name: str) -> pathlib.Path:
    candidate = os.getenv(env_key, "").strip()
    if candidate:
        path = pathlib.Path(candidate).expanduser()
        if not path.is_absolute():
            path = BASE_DIR / path
        return path
    return BASE_DIR / default_name


def env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name, "").strip().lower()
    if not raw:
        return default
    return raw not in ("0", "false", "no", "off")


def headless() -> bool:
    return env_flag("HEADLESS", True)


def chrome_path() -> Optional[str]:
    return os.getenv("CHROME_PATH", "").strip() or None


def site_origin() -> str:
    return os.getenv("TOONPDF_SITE_ORIGIN", "").strip() or DEFAULT_SITE_ORIGIN


def jobs_dir() -> pathlib.Path:
    return resolve_dir("JOBS_DIR", "jobs")


def server_port() -> int:
    return int(os.getenv("PORT", "4000") or "4000")


def server_host() -> str:
    return os.getenv("HOST", "0.0.0.0").strip() or "0.0.0.0"


class _BelowLevel(logging.Filter):
    def __init__(self, level: int):
        super().__init__()
        self.level = level

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno < self.level


def setup_logging(
    debug: bool = False,
    log_dir: Optional[pathlib.Path] = None,
    file_name: str = "toonpdf.log",
) -> None:
    """Progress on stdout, errors on stderr, everything in a rotating file.

    The job server relays the stdout lines verbatim, so the console format is
    the bare message.
    """
    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    console_level = logging.DEBUG if debug else logging.INFO

    for noisy in NOISY_LOGGERS:
        logging.getLogger(noisy).setLevel(logging.WARNING)

    for handler in list(root.handlers):
        if getattr(handler, "_toonpdf", False):
            root.removeHandler(handler)
            handler.close()

    out = logging.StreamHandler(sys.stdout)
    out.setLevel(console_level)
    out.addFilter(_BelowLevel(logging.ERROR))
    out.setFormatter(logging.Formatter("%(message)s"))

    err = logging.StreamHandler(sys.stderr)
    err.setLevel(logging.ERROR)
    err.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))

    handlers = [out, err]
    file_error: Optional[OSError] = None

    log_dir = log_dir or resolve_dir("LOG_DIR", "logs")
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        fh = RotatingFileHandler(
            log_dir / file_name,
            maxBytes=LOG_MAX_BYTES,
            backupCount=LOG_BACKUPS,
            encoding="utf-8",
        )
    except OSError as exc:
        file_error = exc
    else:
        fh.setLevel(logging.DEBUG)
        fh.setFormatter(logging.Formatter(LOG_FORMAT))
        handlers.append(fh)

    for handler in handlers:
        handler._toonpdf = True  # type: ignore[attr-defined]
        root.addHandler(handler)
    if file_error is not None:
        logging.getLogger("toonpdf").warning("File logging disabled: %s", file_error)
