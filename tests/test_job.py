import asyncio
import pathlib

import pikepdf
import pytest

from conftest import make_image
from toonpdf import job
from toonpdf.errors import InputError, NoImagesError
from toonpdf.job import default_targets, run_job
from toonpdf.models import ImageCandidate, JobOptions, SavedAsset

URL = "https://www.webtoons.com/en/romance/bittersweet-sweetheart/ep-1/viewer?title_no=1&episode_no=1"


class FakeRenderer:
    instances = []

    def __init__(self, headless=True, executable_path=None):
        self.headless = headless
        self.executable_path = executable_path
        self.closed = False
        FakeRenderer.instances.append(self)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.closed = True

    async def render(self, url, wait_ms=0):
        self.url = url
        self.wait_ms = wait_ms
        return object()


@pytest.fixture
def pipeline(monkeypatch):
    FakeRenderer.instances = []
    state = {"candidates": [], "fallback_calls": 0, "fallback_files": []}

    async def fake_locate(rendered):
        return list(state["candidates"])

    async def fake_acquire(rendered, candidates, out_dir):
        if state.get("acquire_fails"):
            return []
        saved = []
        for c in candidates:
            fp = make_image(out_dir / f"{c.sequence_index:04d}.jpg", size=(300, 400 + c.sequence_index), fmt="JPEG")
            saved.append(SavedAsset(file_path=fp, origin=c))
        return saved

    async def fake_fallback(rendered, out_dir, stitch=False):
        state["fallback_calls"] += 1
        state["stitch"] = stitch
        return [make_image(out_dir / name, size=(200, 300), fmt="PNG") for name in state["fallback_files"]]

    monkeypatch.setattr(job, "PageRenderer", FakeRenderer)
    monkeypatch.setattr(job, "locate", fake_locate)
    monkeypatch.setattr(job, "acquire", fake_acquire)
    monkeypatch.setattr(job, "capture_by_scrolling", fake_fallback)
    monkeypatch.delenv("TOONPDF_SITE_ORIGIN", raising=False)
    return state


def candidates(n):
    return [ImageCandidate(f"https://cdn.x/{i}.jpg", i * 1000, i) for i in range(n)]


def test_five_images_make_five_pages(tmp_path, pipeline):
    pipeline["candidates"] = candidates(5)
    out = tmp_path / "out"

    result = asyncio.run(run_job(URL, out, "ep1.pdf", JobOptions(wait_ms=250)))

    assert result.pages == 5
    assert result.candidates == 5
    assert result.saved == 5
    assert not result.used_fallback
    assert pipeline["fallback_calls"] == 0
    assert result.pdf_path == (out / "ep1.pdf").resolve()
    assert sorted(p.name for p in out.iterdir()) == ["ep1.pdf"]
    with pikepdf.open(result.pdf_path) as pdf:
        boxes = [[float(v) for v in page.mediabox] for page in pdf.pages]
    assert boxes == [[0, 0, 300, 400 + i] for i in range(5)]
    renderer = FakeRenderer.instances[0]
    assert renderer.url == URL
    assert renderer.wait_ms == 250
    assert renderer.closed


def test_no_candidates_falls_back_to_screenshots(tmp_path, pipeline):
    pipeline["fallback_files"] = ["shot_0000.png", "shot_0001.png"]

    result = asyncio.run(run_job(URL, tmp_path, "ep.pdf", JobOptions(stitch=True)))

    assert result.used_fallback
    assert result.pages == 2
    assert pipeline["fallback_calls"] == 1
    assert pipeline["stitch"] is True


def test_candidates_without_captures_fall_back(tmp_path, pipeline):
    pipeline["candidates"] = candidates(3)
    pipeline["acquire_fails"] = True
    pipeline["fallback_files"] = ["shot_0000.png"]

    result = asyncio.run(run_job(URL, tmp_path, "ep.pdf"))

    assert result.used_fallback
    assert result.candidates == 3
    assert result.saved == 0
    assert result.pages == 1
    assert pipeline["fallback_calls"] == 1
    assert pipeline["stitch"] is False


def test_nothing_harvested_raises(tmp_path, pipeline):
    with pytest.raises(NoImagesError):
        asyncio.run(run_job(URL, tmp_path, "ep.pdf"))
    assert not (tmp_path / "ep.pdf").exists()


@pytest.mark.parametrize("raw", ["", "   "])
def test_blank_url_fails_before_browser_starts(tmp_path, pipeline, raw):
    with pytest.raises(InputError):
        asyncio.run(run_job(raw, tmp_path))
    assert FakeRenderer.instances == []


def test_relative_url_is_completed(tmp_path, pipeline, monkeypatch):
    monkeypatch.setenv("TOONPDF_SITE_ORIGIN", "https://mirror.test")
    pipeline["candidates"] = candidates(1)
    asyncio.run(run_job("/en/x/ep-3/viewer", tmp_path, "ep.pdf"))
    assert FakeRenderer.instances[0].url == "https://mirror.test/en/x/ep-3/viewer"


def test_default_targets():
    out, name = default_targets(URL, None, None)
    assert out == pathlib.Path("romance-bittersweet-sweetheart-ep1")
    assert name == "romance-bittersweet-sweetheart-ep1.pdf"

    out, name = default_targets(URL, "some/dir", "chapter")
    assert out == pathlib.Path("some/dir")
    assert name == "chapter.pdf"

    _, name = default_targets(URL, "some/dir", None)
    assert name == "dir.pdf"
