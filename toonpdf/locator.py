# -*- coding: utf-8 -*-
"""Find every panel image on a rendered page, in reading order.

The in-page script only reports raw element data (sources, srcsets, computed
backgrounds and layout rectangles). Picking the best source, filtering by size
and resolving URLs all happen here in Python.
"""

from __future__ import annotations

import logging
import math
import re
from typing import Any, Dict, Iterable, List, Optional, Tuple

from playwright.async_api import Error as PlaywrightError, Frame

from .models import ImageCandidate
from .renderer import RenderedPage
from .urls import pick_largest_from_srcset, resolve_url

LOG = logging.getLogger("toonpdf.locator")

MIN_EDGE_PX = 50
BG_URL_RE = re.compile(r"""url\((['"]?)(.*?)\1\)""")

COLLECT_JS = r"""
() => {
  const rectOf = (el) => {
    if (!el || !el.getBoundingClientRect) return {top: 0, width: 0, height: 0};
    const r = el.getBoundingClientRect();
    return {top: r.top, width: r.width, height: r.height};
  };
  const items = [];
  document.querySelectorAll('img').forEach((img) => {
    items.push({
      kind: 'img',
      src: img.currentSrc || img.src || '',
      srcset: img.getAttribute('srcset') || '',
      rect: rectOf(img),
    });
  });
  document.querySelectorAll('source[srcset]').forEach((s) => {
    items.push({
      kind: 'source',
      src: '',
      srcset: s.getAttribute('srcset') || '',
      rect: rectOf(s.parentElement),
    });
  });
  document.querySelectorAll('*').forEach((el) => {
    const bg = getComputedStyle(el).backgroundImage || '';
    if (bg && bg !== 'none') {
      items.push({kind: 'background', src: bg, srcset: '', rect: rectOf(el)});
    }
  });
  return {
    baseUrl: document.baseURI || location.href,
    scrollY: window.scrollY || 0,
    items,
  };
}
"""


def _js_round(value: float) -> int:
    return int(math.floor(value + 0.5))


def raw_source(item: Dict[str, Any]) -> str:
    kind = item.get("kind")
    srcset = item.get("srcset") or ""
    if kind == "img":
        best = pick_largest_from_srcset(srcset) if srcset else ""
        return best or (item.get("src") or "")
    if kind == "source":
        return pick_largest_from_srcset(srcset)
    if kind == "background":
        m = BG_URL_RE.search(item.get("src") or "")
        return m.group(2) if m else ""
    return ""


def resolve_item(
    item: Dict[str, Any], base_url: str, scroll_y: float
) -> Optional[Tuple[str, int]]:
    rect = item.get("rect") or {}
    width = float(rect.get("width") or 0)
    height = float(rect.get("height") or 0)
    if width <= MIN_EDGE_PX or height <= MIN_EDGE_PX:
        return None
    src = raw_source(item).strip()
    if not src or src.lower().startswith("data:"):
        return None
    url = resolve_url(src, base_url)
    if not url:
        return None
    return url, _js_round(float(rect.get("top") or 0) + float(scroll_y or 0))


def candidates_from_snapshot(snapshot: Dict[str, Any]) -> List[Tuple[str, int]]:
    base_url = snapshot.get("baseUrl") or ""
    scroll_y = snapshot.get("scrollY") or 0
    out: List[Tuple[str, int]] = []
    for item in snapshot.get("items") or []:
        resolved = resolve_item(item, base_url, scroll_y)
        if resolved:
            out.append(resolved)
    return out


def merge_candidates(found: Iterable[Tuple[str, int]]) -> List[ImageCandidate]:
    """Stable-sort by vertical position, keep the first hit per URL, number densely."""
    ordered = sorted(found, key=lambda item: item[1])
    seen = set()
    out: List[ImageCandidate] = []
    for url, y in ordered:
        if url in seen:
            continue
        seen.add(url)
        out.append(ImageCandidate(source_url=url, vertical_position=y, sequence_index=len(out)))
    return out


async def collect_frame(frame: Frame) -> List[Tuple[str, int]]:
    snapshot = await frame.evaluate(COLLECT_JS)
    return candidates_from_snapshot(snapshot or {})


async def locate(rendered: RenderedPage) -> List[ImageCandidate]:
    found: List[Tuple[str, int]] = []
    for fr in rendered.frames:
        try:
            found.extend(await collect_frame(fr))
        except PlaywrightError as exc:
            LOG.debug("Could not inspect frame %s: %s", fr.url, exc)
    candidates = merge_candidates(found)
    LOG.debug("Located %d unique images from %d raw hits.", len(candidates), len(found))
    return candidates
