# -*- coding: utf-8 -*-
# Screenshot fallback used when no image could be captured from the network.

from __future__ import annotations

import asyncio
import logging
import pathlib
from typing import List, Sequence

from PIL import Image

from .errors import AssetSkipped
from .imaging import read_dimensions
from .renderer import VIEWPORT, RenderedPage

LOG = logging.getLogger("toonpdf.fallback")

SHOT_OVERLAP_PX = 40
SHOT_PAUSE_MS = 300
SHOT_MAX_SLICES = 1000
STITCHED_NAME = "shot_stitched.png"

DOC_HEIGHT_JS = """
() => {
  const b = document.body, d = document.documentElement;
  return Math.max(
    b ? b.scrollHeight : 0, d ? d.scrollHeight : 0,
    b ? b.offsetHeight : 0, d ? d.offsetHeight : 0,
    b ? b.clientHeight : 0, d ? d.clientHeight : 0
  );
}
"""
SCROLL_TO_JS = "(y) => { window.scrollTo(0, y); return Math.round(window.scrollY || 0); }"


def stitch_slices(
    parts: Sequence[pathlib.Path], offsets: Sequence[int], target: pathlib.Path
) -> pathlib.Path:
    """Paste each slice at the scroll offset it was taken from.

    The browser clamps the last scroll to the bottom of the page, so the last
    slice usually overlaps the previous one by more than the fixed overlap.
    """
    sizes = [read_dimensions(p) for p in parts]
    width = max(w for w, _ in sizes)
    height = max(off + h for off, (_, h) in zip(offsets, sizes))
    canvas = Image.new("RGB", (width, height), (255, 255, 255))
    for p, off in zip(parts, offsets):
        with Image.open(p) as im:
            canvas.paste(im.convert("RGB"), (0, off))
    canvas.save(target, format="PNG")
    for p in parts:
        try:
            p.unlink()
        except OSError as exc:
            LOG.warning("Could not delete slice %s: %s", p, exc)
    LOG.info("Stitched %d slices into %s (%dx%d).", len(parts), target.name, width, height)
    return target


async def capture_by_scrolling(
    rendered: RenderedPage, out_dir: pathlib.Path, stitch: bool = False
) -> List[pathlib.Path]:
    out_dir.mkdir(parents=True, exist_ok=True)
    page = rendered.page
    total = int(await page.evaluate(DOC_HEIGHT_JS) or 0)
    viewport = page.viewport_size or VIEWPORT
    step = int(viewport["height"]) - SHOT_OVERLAP_PX

    parts: List[pathlib.Path] = []
    offsets: List[int] = []
    y = 0
    while y < total:
        actual = await page.evaluate(SCROLL_TO_JS, y)
        await asyncio.sleep(SHOT_PAUSE_MS / 1000)
        fp = out_dir / f"shot_{len(parts):04d}.png"
        await page.screenshot(path=str(fp), full_page=False)
        parts.append(fp)
        offsets.append(int(actual or 0))
        if step <= 0 or len(parts) >= SHOT_MAX_SLICES:
            break
        y += step

    LOG.info("%d screenshots saved (scroll fallback).", len(parts))
    if stitch and len(parts) > 1:
        try:
            return [stitch_slices(parts, offsets, out_dir / STITCHED_NAME)]
        except AssetSkipped as exc:
            LOG.warning("Stitching failed, keeping %d separate slices: %s", len(parts), exc)
    return parts
