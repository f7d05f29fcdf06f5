# -*- coding: utf-8 -*-
"""One job: render, locate, acquire (or fall back), assemble."""

from __future__ import annotations

import asyncio
import logging
import pathlib
from typing import List, Optional, Union

from . import config
from .acquirer import acquire
from .assembler import assemble
from .errors import NoImagesError
from .fallback import capture_by_scrolling
from .locator import locate
from .models import JobOptions, JobResult
from .renderer import PageRenderer
from .urls import normalize_url, series_dir_from_url

LOG = logging.getLogger("toonpdf.job")

PathLike = Union[str, pathlib.Path]


def default_targets(url: str, out_dir: Optional[PathLike], file_name: Optional[str]):
    """Fill in the output directory and PDF name the CLI was not given."""
    out = pathlib.Path(out_dir) if out_dir else pathlib.Path(series_dir_from_url(url))
    name = file_name or f"{out.name}.pdf"
    if not name.lower().endswith(".pdf"):
        name += ".pdf"
    return out, name


async def run_job(
    url: str,
    out_dir: Optional[PathLike] = None,
    file_name: Optional[str] = None,
    options: Optional[JobOptions] = None,
) -> JobResult:
    options = options or JobOptions()
    final_url = normalize_url(url, config.site_origin())
    out, name = default_targets(final_url, out_dir, file_name)
    out.mkdir(parents=True, exist_ok=True)
    pdf_path = (out / name).resolve()

    LOG.info("Opening %s", final_url)
    async with PageRenderer(
        headless=options.headless, executable_path=options.executable_path
    ) as renderer:
        rendered = await renderer.render(final_url, options.wait_ms)

        candidates = await locate(rendered)
        LOG.info("%d images detected (after sorting). Downloading...", len(candidates))

        saved = await acquire(rendered, candidates, out)
        files: List[pathlib.Path] = [asset.file_path for asset in saved]

        used_fallback = False
        if not files:
            LOG.warning("No image captured; falling back to scrolling screenshots...")
            files = await capture_by_scrolling(rendered, out, stitch=options.stitch)
            used_fallback = True

    if not files:
        raise NoImagesError("No image could be harvested from the page.")

    LOG.info("Building PDF from %d image(s) -> %s", len(files), pdf_path)
    built = assemble(files, pdf_path)
    LOG.info("PDF written: %s", built.pdf_path)
    return JobResult(
        pdf_path=built.pdf_path,
        pages=built.pages,
        candidates=len(candidates),
        saved=len(saved),
        skipped=built.skipped,
        used_fallback=used_fallback,
    )


def run_download_job(
    url: str,
    out_dir: Optional[PathLike] = None,
    file_name: Optional[str] = None,
    options: Optional[JobOptions] = None,
) -> JobResult:
    return asyncio.run(run_job(url, out_dir, file_name, options))
