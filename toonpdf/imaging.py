# -*- coding: utf-8 -*-
"""Pillow-backed image metadata and format conversion."""

from __future__ import annotations

import io
import logging
import pathlib
from dataclasses import dataclass
from typing import Tuple

from PIL import Image

from .errors import AssetSkipped

LOG = logging.getLogger("toonpdf.imaging")

# Formats and modes img2pdf can embed without re-encoding.
EMBEDDABLE_MODES = {
    "JPEG": {"RGB", "L", "CMYK"},
    "PNG": {"RGB", "L"},
}
FLAT_SUFFIX = ".flat.png"
PNG_COMPRESS_LEVEL = 9


@dataclass
class PreparedImage:
    source: pathlib.Path
    path: pathlib.Path
    width: int
    height: int

    @property
    def converted(self) -> bool:
        return self.path != self.source


def has_alpha(im: Image.Image) -> bool:
    return im.mode in ("RGBA", "LA", "PA") or (
        im.mode == "P" and "transparency" in im.info
    )


def flatten(im: Image.Image) -> Image.Image:
    """Composite transparent images onto white and return an RGB/L image."""
    if has_alpha(im):
        rgba = im.convert("RGBA")
        bg = Image.new("RGB", rgba.size, (255, 255, 255))
        bg.paste(rgba, mask=rgba.split()[3])
        return bg
    if im.mode in ("RGB", "L"):
        return im
    return im.convert("RGB")


def transcode_to_png(data: bytes) -> bytes:
    with Image.open(io.BytesIO(data)) as im:
        im.load()
        out = io.BytesIO()
        im.save(out, format="PNG", compress_level=PNG_COMPRESS_LEVEL)
    return out.getvalue()


def read_dimensions(path: pathlib.Path) -> Tuple[int, int]:
    try:
        with Image.open(path) as im:
            return im.size
    except (OSError, ValueError, Image.DecompressionBombError) as exc:
        raise AssetSkipped(str(exc)) from exc


def prepare_for_pdf(path: pathlib.Path) -> PreparedImage:
    """Decode ``path`` fully and make sure img2pdf can embed it.

    Raises ``AssetSkipped`` when the file cannot be decoded or reports a zero
    dimension. Files img2pdf cannot take directly are flattened into a sibling
    ``*.flat.png``.
    """
    try:
        with Image.open(path) as im:
            im.load()
            width, height = im.size
            if not width or not height:
                raise AssetSkipped("missing dimensions")
            fmt = (im.format or "").upper()
            if im.mode in EMBEDDABLE_MODES.get(fmt, ()) and not has_alpha(im):
                return PreparedImage(path, path, width, height)
            target = path.with_name(path.stem + FLAT_SUFFIX)
            flatten(im).save(target, format="PNG", compress_level=PNG_COMPRESS_LEVEL)
            LOG.debug("Converted %s (%s/%s) to %s", path.name, fmt, im.mode, target.name)
            return PreparedImage(path, target, width, height)
    except AssetSkipped:
        raise
    except (OSError, ValueError, SyntaxError, Image.DecompressionBombError) as exc:
        raise AssetSkipped(str(exc) or exc.__class__.__name__) from exc
