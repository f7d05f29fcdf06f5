import logging
import pathlib

import pytest
from PIL import Image


def make_image(path, size=(100, 200), mode="RGB", fmt=None, color=None):
    path = pathlib.Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    if color is None:
        color = {"RGB": (200, 30, 30), "RGBA": (0, 120, 255, 128), "L": 128}.get(mode, 0)
    Image.new(mode, size, color).save(path, format=fmt)
    return path


@pytest.fixture
def image_factory(tmp_path):
    def factory(name, size=(100, 200), mode="RGB", fmt=None):
        return make_image(tmp_path / name, size=size, mode=mode, fmt=fmt)

    return factory


@pytest.fixture(autouse=True)
def _reset_toonpdf_logging():
    yield
    root = logging.getLogger()
    for handler in list(root.handlers):
        if getattr(handler, "_toonpdf", False):
            root.removeHandler(handler)
            handler.close()


class FakeFrame:
    def __init__(self, snapshot=None, error=None, url="about:blank"):
        self.snapshot = snapshot
        self.error = error
        self.url = url

    async def evaluate(self, script, arg=None):
        if self.error is not None:
            raise self.error
        return self.snapshot


class FakePage:
    def __init__(self, main_frame=None, frames=None, url="https://example.com/ep-1"):
        self.main_frame = main_frame or FakeFrame()
        self.frames = [self.main_frame] + list(frames or [])
        self.url = url
        self.listeners = {}

    def on(self, event, handler):
        self.listeners.setdefault(event, []).append(handler)

    def remove_listener(self, event, handler):
        self.listeners.get(event, []).remove(handler)

    def emit(self, event, payload):
        for handler in list(self.listeners.get(event, [])):
            handler(payload)
