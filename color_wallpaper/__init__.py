"""
Color Wallpaper
===============

Pick a wallpaper whose average colour is closest to a target colour and
set it. Ships two candidate sources:

- **Local directory** (exact best of every, or a random sample of, image files)
- **wallhaven.cc search** (page-by-page search bounded by a distance threshold)
"""

__version__ = "1.0.0"

from color_wallpaper.candidates import (
    Batch,
    Candidate,
    LocalSource,
    RemoteSource,
    ScoredCandidate,
    collect_images,
    sample_paths,
)
from color_wallpaper.color_utils import (
    MAX_DISTANCE,
    Color,
    average_color,
    color_distance,
    parse_hex,
    to_hex,
)
from color_wallpaper.config import WallhavenConfig, WallpaperConfig, WorkerBudget
from color_wallpaper.pipeline import score_candidate, score_concurrent, score_staged
from color_wallpaper.selection import (
    SearchState,
    Selection,
    ThresholdSearch,
    batch_best,
    fold_best,
    pick_first,
    pick_random,
    select_best_of_batch,
)

__all__ = [
    "MAX_DISTANCE",
    "Batch",
    "Candidate",
    "Color",
    "LocalSource",
    "RemoteSource",
    "ScoredCandidate",
    "SearchState",
    "Selection",
    "ThresholdSearch",
    "WallhavenConfig",
    "WallpaperConfig",
    "WorkerBudget",
    "average_color",
    "batch_best",
    "collect_images",
    "color_distance",
    "fold_best",
    "parse_hex",
    "pick_first",
    "pick_random",
    "sample_paths",
    "score_candidate",
    "score_concurrent",
    "score_staged",
    "select_best_of_batch",
    "to_hex",
]
