"""Render a webtoon episode page and bind its panels into a single PDF."""

__version__ = "0.1.0"
