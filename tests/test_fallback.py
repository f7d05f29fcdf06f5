import asyncio

import pytest
from PIL import Image

from conftest import FakePage, make_image
from toonpdf import fallback
from toonpdf.fallback import DOC_HEIGHT_JS, capture_by_scrolling
from toonpdf.renderer import RenderedPage


class ScrollingPage(FakePage):
    def __init__(self, doc_height, viewport=(200, 300)):
        super().__init__()
        self.doc_height = doc_height
        self.viewport_size = {"width": viewport[0], "height": viewport[1]}
        self.scroll_y = 0
        self.shots = []

    async def evaluate(self, script, arg=None):
        if script == DOC_HEIGHT_JS:
            return self.doc_height
        bottom = max(0, self.doc_height - self.viewport_size["height"])
        self.scroll_y = min(int(arg), bottom)
        return self.scroll_y

    async def screenshot(self, path, full_page=False):
        assert full_page is False
        self.shots.append(self.scroll_y)
        size = (self.viewport_size["width"], self.viewport_size["height"])
        make_image(path, size=size, fmt="PNG")


@pytest.fixture(autouse=True)
def no_pause(monkeypatch):
    monkeypatch.setattr(fallback, "SHOT_PAUSE_MS", 0)


def capture(page, out_dir, stitch=False):
    return asyncio.run(capture_by_scrolling(RenderedPage(page=page, url=page.url), out_dir, stitch))


def test_slices_cover_the_document_with_overlap(tmp_path):
    page = ScrollingPage(doc_height=700)

    parts = capture(page, tmp_path)

    assert [p.name for p in parts] == ["shot_0000.png", "shot_0001.png", "shot_0002.png"]
    assert page.shots == [0, 260, 400]
    for p in parts:
        with Image.open(p) as im:
            assert im.size == (200, 300)


def test_empty_document_yields_no_slices(tmp_path):
    assert capture(ScrollingPage(doc_height=0), tmp_path) == []


def test_short_document_yields_one_slice(tmp_path):
    parts = capture(ScrollingPage(doc_height=120), tmp_path)
    assert len(parts) == 1


def test_slice_cap(tmp_path, monkeypatch):
    monkeypatch.setattr(fallback, "SHOT_MAX_SLICES", 2)
    parts = capture(ScrollingPage(doc_height=5000), tmp_path)
    assert len(parts) == 2


def test_stitch_pastes_slices_at_their_offsets(tmp_path):
    parts = capture(ScrollingPage(doc_height=700), tmp_path, stitch=True)

    assert [p.name for p in parts] == ["shot_stitched.png"]
    with Image.open(parts[0]) as im:
        assert im.size == (200, 700)
    assert sorted(p.name for p in tmp_path.iterdir()) == ["shot_stitched.png"]


def test_stitch_skipped_for_single_slice(tmp_path):
    parts = capture(ScrollingPage(doc_height=100), tmp_path, stitch=True)
    assert [p.name for p in parts] == ["shot_0000.png"]
