# -*- coding: utf-8 -*-
from __future__ import annotations

import pathlib
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class ImageCandidate:
    """A located image that has not been downloaded yet.

    ``sequence_index`` is the reading-order position. It is assigned once by
    the locator and names the file the image is saved under.
    """

    source_url: str
    vertical_position: int
    sequence_index: int


@dataclass
class SavedAsset:
    file_path: pathlib.Path
    origin: Optional[ImageCandidate] = None


@dataclass
class JobOptions:
    wait_ms: int = 0
    debug: bool = False
    headless: bool = True
    stitch: bool = False
    executable_path: Optional[str] = None


@dataclass
class JobResult:
    pdf_path: pathlib.Path
    pages: int = 0
    candidates: int = 0
    saved: int = 0
    skipped: int = 0
    used_fallback: bool = False
