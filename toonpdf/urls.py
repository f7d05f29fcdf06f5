# -*- coding: utf-8 -*-
"""URL helpers: input normalisation, resource identity and output naming."""

from __future__ import annotations

import re
import unicodedata
from typing import List, Optional, Tuple
from urllib.parse import parse_qs, unquote, urldefrag, urljoin, urlparse

from .errors import InputError

DEFAULT_SITE_ORIGIN = "https://www.webtoons.com"

VIEWER_QUERY_RE = re.compile(r"^/?viewer\?", re.I)
SRCSET_DENSITY_WEIGHT = 1000

GENERIC_SEGMENTS = {
    "viewer",
    "read",
    "reader",
    "manga",
    "comic",
    "webtoon",
    "webtoons",
    "series",
    "title",
    "chapters",
    "chapter",
    "episode",
    "ep",
    "view",
    "fr",
    "en",
    "es",
    "ko",
}
EPISODE_PATTERNS = (
    re.compile(r"(ep|episode)[\s\-_]*([0-9]+)$", re.I),
    re.compile(r"(ch|chap|chapter)[\s\-_]*([0-9]+)$", re.I),
    re.compile(r"^([0-9]+)$"),
)
CHAPTER_TAG_RE = re.compile(r"chap|chapter|ch", re.I)
EPISODE_QUERY_KEYS = ("episode_no", "ep", "episode", "chapter", "ch")
SLUG_MAX_LEN = 80


def normalize_url(raw: Optional[str], site_origin: Optional[str] = None) -> str:
    value = (raw or "").strip()
    if not value:
        raise InputError("URL missing or invalid.")
    origin = (site_origin or DEFAULT_SITE_ORIGIN).rstrip("/")
    parsed = urlparse(value)
    if parsed.scheme and (parsed.netloc or parsed.scheme.lower() == "file"):
        return value
    if value.startswith("//"):
        return "https:" + value
    if VIEWER_QUERY_RE.match(value):
        return f"{origin}/en/viewer?" + VIEWER_QUERY_RE.sub("", value, count=1)
    if value.startswith("/"):
        return origin + value
    return "https://" + value


def strip_fragment(u: str) -> str:
    return urldefrag(u)[0] if u else u


def resolve_url(u: str, base: str) -> str:
    if not u:
        return ""
    return strip_fragment(urljoin(base, u.strip()))


def _descriptor_weight(descriptor: str) -> float:
    descriptor = descriptor.strip().lower()
    try:
        if descriptor.endswith("w"):
            return float(int(float(descriptor[:-1])))
        if descriptor.endswith("x"):
            return float(descriptor[:-1]) * SRCSET_DENSITY_WEIGHT
    except ValueError:
        return 0.0
    return 0.0


def parse_srcset(srcset: str) -> List[Tuple[str, float]]:
    out: List[Tuple[str, float]] = []
    for part in (srcset or "").split(","):
        tokens = part.strip().split()
        if not tokens:
            continue
        weight = _descriptor_weight(tokens[1]) if len(tokens) > 1 else 0.0
        out.append((tokens[0], weight))
    return out


def pick_largest_from_srcset(srcset: str) -> str:
    """Return the srcset entry with the biggest width/density descriptor.

    ``480w`` counts as 480 and ``2x`` as 2000, so density descriptors win over
    any realistic width. Ties keep the first entry.
    """
    entries = parse_srcset(srcset)
    if not entries:
        return ""
    best_url, best_weight = entries[0]
    for url, weight in entries[1:]:
        if weight > best_weight:
            best_url, best_weight = url, weight
    return best_url


def slugify(s: str) -> str:
    s = unicodedata.normalize("NFKD", s)
    s = "".join(ch for ch in s if not unicodedata.combining(ch))
    s = re.sub(r"[^a-z0-9]+", "-", s, flags=re.I)
    s = re.sub(r"-+", "-", s).strip("-")
    return s.lower()[:SLUG_MAX_LEN]


def _is_meaningful(segment: str) -> bool:
    return bool(segment) and segment.lower() not in GENERIC_SEGMENTS


def find_episode_token(segments: List[str], query: str) -> Tuple[str, int]:
    """Return (token, segment index) such as ``("ep12", 3)``.

    The index is -1 when the token came from the query string, and the token is
    empty when nothing looks like an episode or chapter number.
    """
    for idx in range(len(segments) - 1, -1, -1):
        for rx in EPISODE_PATTERNS:
            m = rx.search(segments[idx])
            if not m:
                continue
            if m.lastindex and m.lastindex >= 2:
                tag, num = m.group(1), m.group(2)
            else:
                tag, num = "", m.group(1)
            prefix = "ch" if CHAPTER_TAG_RE.search(tag) else "ep"
            return f"{prefix}{num}", idx
    params = parse_qs(query or "")
    for key in EPISODE_QUERY_KEYS:
        values = params.get(key)
        if values and values[0].isdigit():
            return f"ep{values[0]}", -1
    return "", -1


def series_dir_from_url(href: str) -> str:
    """Derive a filesystem-friendly ``<series>-<epN>`` name from an episode URL."""
    try:
        parsed = urlparse(href)
    except ValueError:
        return "episode"
    segments = [unquote(seg) for seg in parsed.path.split("/") if seg]
    token, ep_idx = find_episode_token(segments, parsed.query)

    scope = segments[:ep_idx] if ep_idx >= 0 else segments
    tail = [seg for seg in scope if _is_meaningful(seg)][-2:]
    base = slugify("-".join(tail)) or "episode"
    if token:
        ep_slug = slugify(token)
        if not re.search(rf"(^|-){re.escape(ep_slug)}(-|$)", base):
            base = f"{base}-{ep_slug}"
    return base or "episode"
