"""Exception taxonomy.

``WallpaperError`` and its subclasses abort a run, with one exception:
``DecodeError`` is raised per candidate and absorbed by the scoring
pipeline, which turns it into a worst-case score.
"""

from __future__ import annotations


class WallpaperError(Exception):
    """Base class for all color-wallpaper errors."""


class SourceError(WallpaperError):
    """A batch of candidates could not be obtained."""


class DecodeError(WallpaperError):
    """A single candidate could not be fetched or decoded."""


class SetterError(WallpaperError):
    """The external wallpaper command failed."""
