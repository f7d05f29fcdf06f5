# -*- coding: utf-8 -*-
"""Error taxonomy for the scrape-and-bind pipeline.

Everything that stops a job derives from ``ToonPdfError`` and carries the exit
code the CLI reports. ``AssetSkipped`` is the one per-item error: components
raise it internally and catch it themselves, so it never ends a job.
"""

from __future__ import annotations


class ToonPdfError(Exception):
    exit_code = 1


class InputError(ToonPdfError):
    """Missing or unusable URL; raised before any browser is launched."""

    exit_code = 2


class NavigationError(ToonPdfError):
    """The browser could not load the target page."""


class NoImagesError(ToonPdfError):
    """Nothing could be harvested, not even through the screenshot fallback."""


class ProcessSpawnError(ToonPdfError):
    """The browser (or a job subprocess) could not be started."""


class AssetSkipped(ToonPdfError):
    """A single image could not be downloaded, decoded or embedded."""
