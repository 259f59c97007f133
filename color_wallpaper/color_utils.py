"""Average colour, RGBA distance and hex conversion."""

from __future__ import annotations

import math
import re
from typing import NamedTuple

import numpy as np


class Color(NamedTuple):
    """Non-premultiplied 8-bit RGBA colour."""

    r: int
    g: int
    b: int
    a: int = 0xFF


_HEX_RE = re.compile(r"^#?([0-9a-fA-F]{2})([0-9a-fA-F]{2})([0-9a-fA-F]{2})$")


def color_distance(c1: Color, c2: Color) -> float:
    """Euclidean distance between two colours over all four channels."""
    return math.sqrt(sum((float(x) - float(y)) ** 2 for x, y in zip(c1, c2)))


# Distance between fully transparent black and opaque white.
MAX_DISTANCE = color_distance(Color(0, 0, 0, 0), Color(255, 255, 255, 255))


def average_color(pixels: np.ndarray) -> Color:
    """Mean of every channel across all samples, truncated to uint8.

    Args:
        pixels: (H, W, 4) or (H, W, 3) uint8. Three channels are read as opaque.

    Returns:
        The average colour. An empty buffer averages to transparent black.
    """
    channels = pixels.shape[-1]
    flat = pixels.reshape(-1, channels)
    if len(flat) == 0:
        return Color(0, 0, 0, 0)
    sums = flat.astype(np.uint64).sum(axis=0)
    means = [int(s) // len(flat) for s in sums]
    if channels == 3:
        means.append(0xFF)
    return Color(*means)


def to_hex(color: Color) -> str:
    """Format as ``#rrggbb``; alpha is appended only when not opaque."""
    text = f"#{color.r:02x}{color.g:02x}{color.b:02x}"
    if color.a != 0xFF:
        text += f"{color.a:02x}"
    return text


def parse_hex(text: str) -> Color:
    """Parse ``rrggbb`` or ``#rrggbb`` into an opaque colour."""
    match = _HEX_RE.match(text.strip())
    if match is None:
        msg = f"Colour '{text}' is not in 'rrggbb' or '#rrggbb' format"
        raise ValueError(msg)
    r, g, b = (int(part, 16) for part in match.groups())
    return Color(r, g, b)
