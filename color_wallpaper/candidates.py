"""Candidate data model and the sources that produce batches of candidates."""

from __future__ import annotations

import logging
import os
import random
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from functools import partial
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol

import numpy as np

from color_wallpaper.color_utils import Color
from color_wallpaper.errors import DecodeError, SourceError
from color_wallpaper.image_io import load_image

if TYPE_CHECKING:
    from color_wallpaper.wallhaven import SearchPage

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS: frozenset[str] = frozenset({".png", ".jpg", ".jpeg"})


@dataclass(frozen=True)
class Candidate:
    """One image under consideration.

    Attributes:
        id:          File path or thumbnail URL.
        fetch:       Loads and decodes the pixels; called at most once, at scoring time.
        preview_ref: Whatever the source needs to turn the winner into a wallpaper.
    """

    id: str
    fetch: Callable[[], np.ndarray] = field(repr=False, compare=False)
    preview_ref: Any = None


@dataclass(frozen=True)
class ScoredCandidate:
    """A candidate with its average colour and distance to the target.

    ``index`` is the candidate's position in its batch. A candidate that
    could not be fetched carries ``error`` and the worst possible distance.
    """

    candidate: Candidate
    index: int
    avg_color: Color | None
    distance: float
    error: str | None = None

    @property
    def failed(self) -> bool:
        return self.error is not None


@dataclass
class Batch:
    """Candidates fetched and scored together.

    ``total_pages`` is set only by pages that expose pagination metadata.
    """

    candidates: list[Candidate]
    total_pages: int | None = None

    def __len__(self) -> int:
        return len(self.candidates)


class CandidateSource(Protocol):
    def next_batch(self) -> Batch | None:
        """Return the next batch, or None once the source is exhausted."""
        ...


class SearchClient(Protocol):
    def fetch_search_page(self, page: int) -> SearchPage: ...

    def fetch_image(self, url: str) -> np.ndarray: ...


# -- local directory ---------------------------------------------------

def _raise_walk_error(err: OSError) -> None:
    msg = f"Could not read directory {err.filename}: {err.strerror}"
    raise SourceError(msg) from err


def collect_images(
    root: str | Path,
    extensions: Iterable[str] = IMAGE_EXTENSIONS,
) -> list[Path]:
    """Recursively list regular files under *root* with an allowed extension.

    The extension check is case-insensitive. The result is sorted.

    Raises:
        SourceError: *root* or one of its subdirectories cannot be read.
    """
    allowed = {ext.lower() for ext in extensions}
    root = Path(root)
    if not root.is_dir():
        msg = f"{root} is not a directory"
        raise SourceError(msg)

    files = []
    for dirpath, _dirnames, filenames in os.walk(root, onerror=_raise_walk_error):
        for name in filenames:
            path = Path(dirpath) / name
            if path.suffix.lower() in allowed and path.is_file():
                files.append(path)
    return sorted(files)


def sample_paths(
    paths: Sequence[Path],
    max_items: int,
    rng: random.Random | None = None,
) -> list[Path]:
    """Shuffle and truncate to *max_items* when there are more paths than that."""
    if max_items <= 0 or max_items >= len(paths):
        return list(paths)
    rng = rng or random.Random()
    shuffled = list(paths)
    rng.shuffle(shuffled)
    return shuffled[:max_items]


class LocalSource:
    """A single batch holding every image file under a directory."""

    def __init__(
        self,
        root: str | Path,
        max_items: int = 0,
        rng: random.Random | None = None,
        extensions: Iterable[str] = IMAGE_EXTENSIONS,
    ) -> None:
        self.root = Path(root)
        self.max_items = max_items
        self.rng = rng or random.Random()
        self.extensions = frozenset(extensions)
        self._emitted = False

    def next_batch(self) -> Batch | None:
        if self._emitted:
            return None
        self._emitted = True

        paths = collect_images(self.root, self.extensions)
        if self.max_items and len(paths) > self.max_items:
            logger.info(
                "Sampling %d of %d files in %s", self.max_items, len(paths), self.root,
            )
        paths = sample_paths(paths, self.max_items, self.rng)
        logger.debug("Collected %d image files", len(paths))
        return Batch([
            Candidate(id=str(p), fetch=partial(load_image, p), preview_ref=p)
            for p in paths
        ])


# -- remote search -----------------------------------------------------

def _missing_thumbnail() -> np.ndarray:
    msg = "Thumbnail has no image source"
    raise DecodeError(msg)


class RemoteSource:
    """Paginated search results, one page per batch.

    The total page count becomes known only once a page carries it; after
    that the source reports exhaustion past the last page.
    """

    def __init__(self, client: SearchClient) -> None:
        self.client = client
        self.page = 1
        self.total_pages: int | None = None

    def next_batch(self) -> Batch | None:
        if self.total_pages is not None and self.page > self.total_pages:
            return None

        result = self.client.fetch_search_page(self.page)
        if not result.thumbs:
            msg = f"Could not find thumbnails on page {self.page}"
            raise SourceError(msg)
        if result.total_pages is not None:
            self.total_pages = result.total_pages

        candidates = []
        for i, thumb in enumerate(result.thumbs):
            if thumb.thumbnail_url:
                fetch = partial(self.client.fetch_image, thumb.thumbnail_url)
                ident = thumb.thumbnail_url
            else:
                fetch = _missing_thumbnail
                ident = f"page{self.page}#{i}"
            candidates.append(
                Candidate(id=ident, fetch=fetch, preview_ref=thumb.preview_url),
            )

        self.page += 1
        return Batch(candidates, total_pages=result.total_pages)
