"""OS collaborators: screen resolution, download folder, wallpaper command."""

from __future__ import annotations

import logging
import re
import subprocess
from collections.abc import Sequence
from pathlib import Path

from color_wallpaper.errors import SetterError, WallpaperError

logger = logging.getLogger(__name__)

_DIMENSIONS_RE = re.compile(r"dimensions:\s*(\d+x\d+)")


def set_wallpaper(path: str | Path, command: Sequence[str] = ("fbsetbg", "-t")) -> None:
    """Run ``command path``; a failure is reported, never retried."""
    argv = [*command, str(path)]
    logger.debug("Running %s", " ".join(argv))
    try:
        subprocess.run(argv, check=True, capture_output=True, text=True)
    except FileNotFoundError as err:
        msg = f"Wallpaper command not found: {command[0]}"
        raise SetterError(msg) from err
    except subprocess.CalledProcessError as err:
        detail = (err.stderr or "").strip() or f"exit status {err.returncode}"
        msg = f"Could not set wallpaper {path}: {detail}"
        raise SetterError(msg) from err


def detect_resolution() -> str:
    """Current X screen size as ``WIDTHxHEIGHT``, read from ``xdpyinfo``."""
    try:
        out = subprocess.run(
            ["xdpyinfo"], check=True, capture_output=True, text=True,
        ).stdout
    except (OSError, subprocess.CalledProcessError) as err:
        msg = f"Could not detect screen resolution: {err}"
        raise WallpaperError(msg) from err

    match = _DIMENSIONS_RE.search(out)
    if match is None:
        msg = "xdpyinfo did not report screen dimensions"
        raise WallpaperError(msg)
    return match.group(1)


def prepare_images_dir(root: str | Path, resolution: str) -> Path:
    """``root/resolution``, created when missing."""
    path = Path(root) / resolution
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as err:
        msg = f"Could not create {path}: {err}"
        raise WallpaperError(msg) from err
    return path
