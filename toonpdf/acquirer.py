# -*- coding: utf-8 -*-
"""Passive network capture of the located images.

Rather than downloading again, the acquirer listens to the page's own image
responses, keeps the ones that match a candidate and writes each one once,
named after its sequence index. To make sure every candidate is requested at
least once, the page is asked to load each URL through a throwaway ``Image``.
"""

from __future__ import annotations

import asyncio
import logging
import pathlib
import time
from typing import Dict, List, Optional, Sequence, Set
from urllib.parse import urlparse

from PIL import Image
from playwright.async_api import Error as PlaywrightError, Page, Request, Response

from .errors import AssetSkipped
from .imaging import transcode_to_png
from .models import ImageCandidate, SavedAsset
from .renderer import RenderedPage
from .urls import strip_fragment

LOG = logging.getLogger("toonpdf.acquirer")

SAFE_EXTENSIONS = ("jpg", "jpeg", "png", "webp", "avif")
TRANSCODE_EXTENSIONS = ("webp", "avif")
DEFAULT_EXTENSION = "jpg"
INDEX_WIDTH = 4

NETWORK_IDLE_MS = 1_500
NETWORK_IDLE_TIMEOUT_MS = 30_000
IDLE_POLL_S = 0.1

TRIGGER_LOAD_JS = """
async (src) => {
  try {
    const el = new Image();
    el.decoding = 'sync';
    el.referrerPolicy = 'no-referrer-when-downgrade';
    el.src = new URL(src, location.href).href;
    await el.decode().catch(() => {});
  } catch (e) {}
}
"""


def url_extension(url: str) -> str:
    name = pathlib.PurePosixPath(urlparse(url).path).name
    if "." not in name:
        return ""
    return name.rsplit(".", 1)[-1].lower()


def file_name_for(candidate: ImageCandidate) -> str:
    ext = url_extension(candidate.source_url)
    if ext not in SAFE_EXTENSIONS:
        ext = DEFAULT_EXTENSION
    return f"{candidate.sequence_index:0{INDEX_WIDTH}d}.{ext}"


def write_asset(data: bytes, out_dir: pathlib.Path, candidate: ImageCandidate) -> pathlib.Path:
    """Write one captured body, converting WebP/AVIF to PNG on the way."""
    fp = out_dir / file_name_for(candidate)
    if fp.suffix.lstrip(".") in TRANSCODE_EXTENSIONS:
        try:
            data = transcode_to_png(data)
        except (OSError, ValueError, SyntaxError, Image.DecompressionBombError) as exc:
            raise AssetSkipped(f"cannot decode {fp.suffix} image: {exc}") from exc
        fp = fp.with_suffix(".png")
    fp.write_bytes(data)
    return fp


def is_image_response(resp: Response) -> bool:
    """Only successful image bodies count; the resource type is used when the header is missing."""
    if not resp.ok:
        return False
    ct = (resp.headers.get("content-type") or "").strip().lower()
    if ct:
        return ct.startswith("image/")
    try:
        return resp.request.resource_type == "image"
    except PlaywrightError:
        return False


class ResponseCapture:
    """Collect candidate images from the response stream, one task per URL."""

    def __init__(self, candidates: Sequence[ImageCandidate], out_dir: pathlib.Path):
        self.out_dir = out_dir
        self._wanted: Dict[str, ImageCandidate] = {c.source_url: c for c in candidates}
        self._pending: Dict[str, asyncio.Task] = {}
        self._saved: List[SavedAsset] = []
        self.failed = 0

    def handler(self, resp: Response) -> None:
        if not is_image_response(resp):
            return
        url = strip_fragment(resp.url)
        candidate = self._wanted.get(url)
        if candidate is None or url in self._pending:
            return
        self._pending[url] = asyncio.create_task(self._consume(resp, candidate))

    async def _consume(self, resp: Response, candidate: ImageCandidate) -> Optional[SavedAsset]:
        try:
            body = await resp.body()
            fp = write_asset(body, self.out_dir, candidate)
        except (PlaywrightError, AssetSkipped, OSError) as exc:
            self.failed += 1
            LOG.warning("Skip: %s - %s", candidate.source_url, exc)
            return None
        asset = SavedAsset(file_path=fp, origin=candidate)
        self._saved.append(asset)
        LOG.info("Saved image: %s", fp)
        return asset

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def join(self) -> None:
        joined: Set[str] = set()
        while True:
            fresh = [url for url in self._pending if url not in joined]
            if not fresh:
                return
            joined.update(fresh)
            await asyncio.gather(*(self._pending[url] for url in fresh))

    @property
    def saved(self) -> List[SavedAsset]:
        return sorted(self._saved, key=lambda a: a.file_path.name)


class NetworkIdleWatcher:
    """Track in-flight requests so the caller can wait for a quiet network."""

    def __init__(self):
        self.inflight = 0
        self.last_activity = time.monotonic()

    def _started(self, request: Request) -> None:
        self.inflight += 1
        self.last_activity = time.monotonic()

    def _finished(self, request: Request) -> None:
        self.inflight = max(0, self.inflight - 1)
        self.last_activity = time.monotonic()

    def attach(self, page: Page) -> None:
        page.on("request", self._started)
        page.on("requestfinished", self._finished)
        page.on("requestfailed", self._finished)

    def detach(self, page: Page) -> None:
        page.remove_listener("request", self._started)
        page.remove_listener("requestfinished", self._finished)
        page.remove_listener("requestfailed", self._finished)

    async def wait(
        self, idle_ms: int = NETWORK_IDLE_MS, timeout_ms: int = NETWORK_IDLE_TIMEOUT_MS
    ) -> bool:
        end = time.monotonic() + timeout_ms / 1000
        while time.monotonic() < end:
            quiet_for = (time.monotonic() - self.last_activity) * 1000
            if self.inflight <= 0 and quiet_for >= idle_ms:
                return True
            await asyncio.sleep(IDLE_POLL_S)
        return False


async def trigger_load(page: Page, url: str) -> None:
    try:
        await page.evaluate(TRIGGER_LOAD_JS, url)
    except PlaywrightError as exc:
        LOG.debug("Load trigger failed for %s: %s", url, exc)


async def acquire(
    rendered: RenderedPage,
    candidates: Sequence[ImageCandidate],
    out_dir: pathlib.Path,
) -> List[SavedAsset]:
    out_dir.mkdir(parents=True, exist_ok=True)
    page = rendered.page
    capture = ResponseCapture(candidates, out_dir)
    idle = NetworkIdleWatcher()

    idle.attach(page)
    page.on("response", capture.handler)
    try:
        for candidate in candidates:
            await trigger_load(page, candidate.source_url)
        LOG.debug("%d capture(s) in flight after load triggers.", capture.pending)
        if not await idle.wait(NETWORK_IDLE_MS, NETWORK_IDLE_TIMEOUT_MS):
            LOG.debug("Network still busy after %d ms; joining captures.", NETWORK_IDLE_TIMEOUT_MS)
        await capture.join()
    finally:
        page.remove_listener("response", capture.handler)
        idle.detach(page)

    saved = capture.saved
    LOG.info("%d/%d images saved.", len(saved), len(candidates))
    return saved
