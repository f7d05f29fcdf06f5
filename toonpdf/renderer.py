# -*- coding: utf-8 -*-
# Playwright session owner: navigation plus lazy-content scrolling.

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import List, Optional

from playwright.async_api import (
    Browser,
    BrowserContext,
    Error as PlaywrightError,
    Frame,
    Page,
    Playwright,
    async_playwright,
)

from .errors import NavigationError, ProcessSpawnError

LOG = logging.getLogger("toonpdf.renderer")

# ===== Browser settings =====
USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124 Safari/537.36"
)
VIEWPORT = {"width": 1280, "height": 1800}
LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
]
NAVIGATION_TIMEOUT_MS = 0  # 0 disables the timeout

# ===== Scroll settings =====
SCROLL_PAUSE_MS = 400
SCROLL_STABLE_ROUNDS = 3
SCROLL_MAX_ROUNDS = 150

AUTO_SCROLL_JS = """
async ({pause, stableRounds, maxRounds}) => {
  const sleep = (ms) => new Promise((r) => setTimeout(r, ms));
  const scroller = document.scrollingElement || document.documentElement;
  let last = 0, stable = 0, rounds = 0;
  for (; rounds < maxRounds; rounds++) {
    window.scrollBy(0, window.innerHeight);
    await sleep(pause);
    const h = scroller ? scroller.scrollHeight : 0;
    if (h === last) {
      if (++stable >= stableRounds) break;
    } else {
      stable = 0;
      last = h;
    }
  }
  window.scrollTo(0, 0);
  return rounds;
}
"""


@dataclass
class RenderedPage:
    page: Page
    url: str

    @property
    def main_frame(self) -> Frame:
        return self.page.main_frame

    @property
    def frames(self) -> List[Frame]:
        main = self.page.main_frame
        return [main] + [fr for fr in self.page.frames if fr != main]


async def auto_scroll(frame: Frame) -> int:
    """Scroll one frame until its height stops growing, then back to the top."""
    return await frame.evaluate(
        AUTO_SCROLL_JS,
        {
            "pause": SCROLL_PAUSE_MS,
            "stableRounds": SCROLL_STABLE_ROUNDS,
            "maxRounds": SCROLL_MAX_ROUNDS,
        },
    )


async def scroll_all_frames(rendered: RenderedPage) -> None:
    rounds = await auto_scroll(rendered.main_frame)
    LOG.debug("Main frame scrolled in %d rounds.", rounds)
    for fr in rendered.frames[1:]:
        try:
            rounds = await auto_scroll(fr)
            LOG.debug("Frame %s scrolled in %d rounds.", fr.url, rounds)
        except PlaywrightError as exc:
            LOG.debug("Skipping frame %s: %s", fr.url, exc)


class PageRenderer:
    """One browser, one context, one page for the lifetime of a job."""

    def __init__(self, headless: bool = True, executable_path: Optional[str] = None):
        self.headless = headless
        self.executable_path = executable_path
        self._pw_cm = None
        self._pw: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._ctx: Optional[BrowserContext] = None
        self.page: Optional[Page] = None

    async def __aenter__(self) -> "PageRenderer":
        try:
            self._pw_cm = async_playwright()
            self._pw = await self._pw_cm.__aenter__()
            self._browser = await self._pw.chromium.launch(
                headless=self.headless,
                executable_path=self.executable_path,
                args=LAUNCH_ARGS,
            )
            self._ctx = await self._browser.new_context(
                user_agent=USER_AGENT, viewport=VIEWPORT
            )
            self.page = await self._ctx.new_page()
        except PlaywrightError as exc:
            await self.close()
            raise ProcessSpawnError(f"Could not launch the browser: {exc}") from exc
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        if self._ctx is not None:
            try:
                await self._ctx.close()
            except PlaywrightError as exc:
                LOG.debug("Context close failed: %s", exc)
            self._ctx = None
        if self._browser is not None:
            try:
                await self._browser.close()
            except PlaywrightError as exc:
                LOG.debug("Browser close failed: %s", exc)
            self._browser = None
        if self._pw_cm is not None:
            await self._pw_cm.__aexit__(None, None, None)
            self._pw_cm = None
            self._pw = None
        self.page = None

    async def render(self, url: str, wait_ms: int = 0) -> RenderedPage:
        if self.page is None:
            raise RuntimeError("PageRenderer is not open.")
        page = self.page
        try:
            await page.goto(
                url, wait_until="domcontentloaded", timeout=NAVIGATION_TIMEOUT_MS
            )
        except PlaywrightError as exc:
            raise NavigationError(f"Could not load {url}: {exc}") from exc
        if wait_ms > 0:
            LOG.debug("Waiting %d ms before scrolling.", wait_ms)
            await asyncio.sleep(wait_ms / 1000)
        rendered = RenderedPage(page=page, url=page.url or url)
        await scroll_all_frames(rendered)
        return rendered
