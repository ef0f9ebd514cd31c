"""
Index-color hit testing.

Every drawn item gets a unique RGB color derived from its draw index, and is
rendered in that color into an offscreen :class:`IndexRaster`. Looking up
what is under the pointer is then a matter of reading a small window of
pixels around it and decoding their colors back to indices.

Index ``-1`` is reserved for the background and encodes to black.
"""

from __future__ import annotations

from typing import Iterable, Optional, Sequence, Tuple

import numpy as np

from .logger import get_logger

logger = get_logger(__name__)

RGB = Tuple[int, int, int]

MAX_CODE = 0xFFFFFF
WHITE: RGB = (255, 255, 255)
DEFAULT_QUORUM = 5
DEFAULT_WINDOW = 3


def encode_index(index: int) -> RGB:
    """Color of draw index ``index``. Indices past the 24-bit range clamp to white.

    Raises:
        ValueError: If ``index`` is below -1.
    """
    if index < -1:
        raise ValueError(f"Index must be >= -1, got {index}")
    code = index + 1
    if code > MAX_CODE:
        return WHITE
    b = code // 65536
    g = (code - b * 65536) // 256
    r = code - b * 65536 - g * 256
    return (r, g, b)


def decode_color(rgb: Sequence[int]) -> int:
    """Inverse of :func:`encode_index`. Alpha, if present, is ignored."""
    return int(rgb[0]) + int(rgb[1]) * 256 + int(rgb[2]) * 65536 - 1


def index_to_css(index: int) -> str:
    r, g, b = encode_index(index)
    return f"rgb({r},{g},{b})"


def decode_samples(samples: Iterable[Sequence[int]], quorum: int = DEFAULT_QUORUM) -> Optional[int]:
    """Decode a pixel window to one index.

    At least ``quorum`` samples must decode to the same index. When several
    indices reach the quorum the smallest wins.

    Args:
        samples: RGB or RGBA samples, e.g. the 9 pixels of a 3x3 window.
        quorum: Number of agreeing samples required.

    Returns:
        The decoded index, or None for no hit (including a background quorum).
    """
    pixels = np.asarray(list(samples), dtype=np.int64)
    if pixels.size == 0:
        return None
    if pixels.ndim != 2 or pixels.shape[1] not in (3, 4):
        raise ValueError("Samples must be RGB or RGBA triples")

    codes = pixels[:, 0] + pixels[:, 1] * 256 + pixels[:, 2] * 65536 - 1
    values, counts = np.unique(codes, return_counts=True)
    agreed = values[counts >= quorum]
    if agreed.size == 0 or agreed[0] == -1:
        return None
    return int(agreed[0])


class IndexRaster:
    """Offscreen RGB buffer that index colors are drawn into.

    Pixel ``(x, y)`` covers ``[x, x + 1) x [y, y + 1)``; shapes fill every
    pixel whose center they cover, with no anti-aliasing.
    """

    def __init__(self, width: int, height: int):
        self.width = max(0, int(width))
        self.height = max(0, int(height))
        self.pixels = np.zeros((self.height, self.width, 3), dtype=np.uint8)

    def clear(self) -> None:
        self.pixels.fill(0)

    def _bounds(self, x0: float, y0: float, x1: float, y1: float):
        left = max(0, int(np.floor(x0)))
        top = max(0, int(np.floor(y0)))
        right = min(self.width, int(np.ceil(x1)) + 1)
        bottom = min(self.height, int(np.ceil(y1)) + 1)
        return left, top, right, bottom

    def fill_circle(self, cx: float, cy: float, radius: float, color: RGB) -> None:
        left, top, right, bottom = self._bounds(cx - radius, cy - radius, cx + radius, cy + radius)
        if left >= right or top >= bottom:
            return
        ys, xs = np.mgrid[top:bottom, left:right]
        inside = (xs + 0.5 - cx) ** 2 + (ys + 0.5 - cy) ** 2 <= radius * radius
        self.pixels[top:bottom, left:right][inside] = color

    def stroke_segment(
        self, start: Tuple[float, float], end: Tuple[float, float], width: float, color: RGB
    ) -> None:
        half = width / 2
        (x0, y0), (x1, y1) = start, end
        left, top, right, bottom = self._bounds(
            min(x0, x1) - half, min(y0, y1) - half, max(x0, x1) + half, max(y0, y1) + half
        )
        if left >= right or top >= bottom:
            return
        ys, xs = np.mgrid[top:bottom, left:right]
        px, py = xs + 0.5, ys + 0.5
        dx, dy = x1 - x0, y1 - y0
        length_sq = dx * dx + dy * dy
        if length_sq == 0:
            t = np.zeros_like(px)
        else:
            t = np.clip(((px - x0) * dx + (py - y0) * dy) / length_sq, 0.0, 1.0)
        dist_sq = (px - (x0 + t * dx)) ** 2 + (py - (y0 + t * dy)) ** 2
        self.pixels[top:bottom, left:right][dist_sq <= half * half] = color

    def stroke_polyline(self, points: Sequence[Tuple[float, float]], width: float, color: RGB) -> None:
        if len(points) == 1:
            self.stroke_segment(points[0], points[0], width, color)
        for start, end in zip(points, points[1:]):
            self.stroke_segment(start, end, width, color)

    def window(self, x: int, y: int, size: int = DEFAULT_WINDOW) -> np.ndarray:
        """``size * size`` RGB samples centered on ``(x, y)``, row by row.

        Samples outside the raster read as black (background).
        """
        if size < 1 or size % 2 == 0:
            raise ValueError(f"Window size must be a positive odd number, got {size}")
        half = size // 2
        out = np.zeros((size, size, 3), dtype=np.uint8)
        for row in range(size):
            sy = y - half + row
            if not 0 <= sy < self.height:
                continue
            for col in range(size):
                sx = x - half + col
                if 0 <= sx < self.width:
                    out[row, col] = self.pixels[sy, sx]
        return out.reshape(-1, 3)


class IndexColorHitTester:
    """Maps decoded draw indices back to row indices.

    ``lookup[i]`` is the row drawn with index color ``i``.
    """

    def __init__(self, lookup: Sequence[int], quorum: int = DEFAULT_QUORUM):
        self.lookup = list(lookup)
        self.quorum = quorum

    def decode(self, samples: Iterable[Sequence[int]]) -> Optional[int]:
        slot = decode_samples(samples, self.quorum)
        if slot is None:
            return None
        if slot >= len(self.lookup):
            logger.debug("Decoded index %d outside of %d drawn items", slot, len(self.lookup))
            return None
        return self.lookup[slot]

    def hit_test(self, raster: IndexRaster, x: int, y: int, size: int = DEFAULT_WINDOW) -> Optional[int]:
        return self.decode(raster.window(x, y, size))
