"""Centralised configuration via frozen dataclasses."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from color_wallpaper.candidates import IMAGE_EXTENSIONS
from color_wallpaper.color_utils import MAX_DISTANCE, Color

USER_AGENT = (
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/72.0.3626.122 Safari/537.36"
)


@dataclass(frozen=True)
class WorkerBudget:
    """Worker counts of the three local scoring stages.

    Attributes:
        decode:   Threads opening and decoding image files.
        average:  Threads reducing pixel buffers to an average colour.
        distance: Threads comparing averages with the target colour.
    """

    decode: int = 1
    average: int = 1
    distance: int = 1

    def __post_init__(self) -> None:
        for name in ("decode", "average", "distance"):
            if getattr(self, name) < 1:
                msg = f"Worker count '{name}' must be at least 1"
                raise ValueError(msg)

    @classmethod
    def from_cpu_count(cls, cpus: int | None = None) -> WorkerBudget:
        """Give a quarter of the CPUs to averaging, one to distances, the rest to decoding."""
        if cpus is None:
            if hasattr(os, "sched_getaffinity"):
                cpus = len(os.sched_getaffinity(0))
            else:
                cpus = os.cpu_count() or 1
        average = max(1, cpus // 4)
        distance = 1
        decode = max(1, cpus - average - distance)
        return cls(decode=decode, average=average, distance=distance)


@dataclass(frozen=True)
class WallpaperConfig:
    """All tuneable parameters for a selection run.

    Attributes:
        target:       Colour to match (None = no distance criterion).
        threshold:    Largest acceptable distance in threshold-bounded search.
                      Must be positive; larger than MAX_DISTANCE is clamped.
        max_items:    Local mode only: evaluate at most this many files (0 = all).
        page_budget:  Remote mode only: last page to scan (None = until the end).
        seed:         Random seed for sampling and random picks.
        workers:      Stage sizes of the local scoring pipeline.
        setter:       Command that sets the wallpaper; the path is appended.
        images_root:  Downloads go to ``images_root/<resolution>``.
    """

    target: Color | None = None
    threshold: float = MAX_DISTANCE
    max_items: int = 0
    page_budget: int | None = None
    seed: int | None = None
    workers: WorkerBudget = field(default_factory=WorkerBudget.from_cpu_count)
    setter: tuple[str, ...] = ("fbsetbg", "-t")

    images_root: Path = field(default_factory=lambda: Path.home() / "Images")

    SUPPORTED_EXTENSIONS: frozenset[str] = IMAGE_EXTENSIONS

    def __post_init__(self) -> None:
        if not self.threshold > 0:
            msg = f"Threshold must be positive, got {self.threshold}"
            raise ValueError(msg)
        if self.threshold > MAX_DISTANCE:
            object.__setattr__(self, "threshold", MAX_DISTANCE)
        if self.max_items < 0:
            msg = f"max_items must not be negative, got {self.max_items}"
            raise ValueError(msg)
        if self.page_budget is not None and self.page_budget < 1:
            object.__setattr__(self, "page_budget", None)
        if not self.setter:
            msg = "Wallpaper setter command must not be empty"
            raise ValueError(msg)


@dataclass(frozen=True)
class WallhavenConfig:
    """Connection and query parameters of the wallhaven search.

    ``categories`` and ``purity`` are wallhaven bit strings: ``"100"`` keeps
    General / SFW only.
    """

    base_url: str = "https://wallhaven.cc"
    categories: str = "100"
    purity: str = "100"
    sorting: str = "random"
    resolution: str | None = None
    user_agent: str = USER_AGENT
    timeout: float = 30.0
    verify: bool = True
