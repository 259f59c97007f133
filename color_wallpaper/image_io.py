"""Image decoding into RGBA pixel buffers."""

from __future__ import annotations

import io
from pathlib import Path

import numpy as np
from PIL import Image

from color_wallpaper.errors import DecodeError


def _to_rgba_array(img: Image.Image) -> np.ndarray:
    return np.asarray(img.convert("RGBA"), dtype=np.uint8)


def load_image(path: str | Path) -> np.ndarray:
    """Decode an image file.

    Returns:
        (H, W, 4) uint8 array.

    Raises:
        DecodeError: the file cannot be read or is not a decodable image.
    """
    try:
        with Image.open(path) as img:
            return _to_rgba_array(img)
    except (OSError, ValueError) as err:
        msg = f"Could not decode {path}: {err}"
        raise DecodeError(msg) from err


def decode_image(data: bytes, name: str = "<bytes>") -> np.ndarray:
    """Decode an in-memory encoded image (e.g. an HTTP response body)."""
    try:
        with Image.open(io.BytesIO(data)) as img:
            return _to_rgba_array(img)
    except (OSError, ValueError) as err:
        msg = f"Could not decode {name}: {err}"
        raise DecodeError(msg) from err
