# -*- coding: utf-8 -*-
"""Bind an ordered list of images into one PDF, one page per image.

Pages get the image's exact pixel size: img2pdf runs with a fixed 72 dpi
layout, so W x H pixels become a W x H point page. Past 14400 pt img2pdf
scales the MediaBox down and sets /UserUnit; MediaBox times UserUnit is still
W x H. A file that cannot be read costs one page, never the whole batch.
"""

from __future__ import annotations

import logging
import pathlib
from dataclasses import dataclass
from typing import Iterable, List, Sequence, Union

import img2pdf
import pikepdf

from .errors import AssetSkipped, NoImagesError
from .imaging import PreparedImage, prepare_for_pdf

LOG = logging.getLogger("toonpdf.assembler")

PDF_DPI = 72

PathLike = Union[str, pathlib.Path]


@dataclass
class AssemblyResult:
    pdf_path: pathlib.Path
    pages: int
    skipped: int = 0


def _convert(images: Sequence[PreparedImage]) -> bytes:
    return img2pdf.convert(
        [str(img.path) for img in images],
        layout_fun=img2pdf.get_fixed_dpi_layout_fun((PDF_DPI, PDF_DPI)),
        rotation=img2pdf.Rotation.ifvalid,
    )


def _embeddable(images: Sequence[PreparedImage]) -> List[PreparedImage]:
    ok: List[PreparedImage] = []
    for img in images:
        try:
            _convert([img])
        except Exception as exc:  # img2pdf signals rejects with bare Exception subclasses
            LOG.warning("Skip: %s - %s", img.source, exc)
            continue
        ok.append(img)
    return ok


def count_pages(pdf_path: pathlib.Path) -> int:
    try:
        with pikepdf.open(pdf_path) as pdf:
            return len(pdf.pages)
    except pikepdf.PdfError as exc:
        LOG.warning("Could not read back %s: %s", pdf_path, exc)
        return 0


def cleanup(paths: Iterable[pathlib.Path]) -> int:
    removed = 0
    for p in paths:
        try:
            p.unlink()
        except FileNotFoundError:
            continue
        except OSError as exc:
            LOG.warning("Could not delete %s: %s", p, exc)
            continue
        removed += 1
        LOG.debug("Deleted %s", p)
    return removed


def assemble(files: Sequence[PathLike], out_pdf: PathLike) -> AssemblyResult:
    out_pdf = pathlib.Path(out_pdf)
    sources = [pathlib.Path(f) for f in files]
    if not sources:
        raise NoImagesError("No images to build the PDF from.")

    prepared: List[PreparedImage] = []
    skipped = 0
    for src in sources:
        try:
            prepared.append(prepare_for_pdf(src))
        except AssetSkipped as exc:
            skipped += 1
            LOG.warning("Skip: %s - %s", src, exc)
    intermediates = [img.path for img in prepared if img.converted]

    if not prepared:
        raise NoImagesError(f"None of the {len(sources)} image(s) could be read.")

    try:
        data = _convert(prepared)
    except Exception as exc:  # see _embeddable
        LOG.warning("Batch conversion failed (%s); checking images one by one.", exc)
        embeddable = _embeddable(prepared)
        skipped += len(prepared) - len(embeddable)
        prepared = embeddable
        if not prepared:
            cleanup(intermediates)
            raise NoImagesError("No image could be embedded in the PDF.") from exc
        data = _convert(prepared)

    out_pdf.parent.mkdir(parents=True, exist_ok=True)
    with open(out_pdf, "wb") as f:
        f.write(data)

    pages = count_pages(out_pdf)
    if pages != len(prepared):
        LOG.warning("PDF has %d page(s), expected %d.", pages, len(prepared))
    if skipped:
        LOG.warning("%d image(s) skipped while building the PDF.", skipped)

    cleanup(sources + intermediates)
    return AssemblyResult(pdf_path=out_pdf, pages=pages, skipped=skipped)
