"""
Value <-> pixel mappings for chart axes.

Three scale kinds, chosen per dimension by :func:`build_scale`:
- ``LogScale`` for numeric dimensions marked as logarithmic
- ``PointScale`` for string dimensions (evenly spaced domain items)
- ``LinearScale`` for every other numeric dimension

Ranges are plain attributes and are reassigned whenever a chart is resized;
nothing derived from a range is cached on the scale itself.
"""

from __future__ import annotations

import math
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np

from .dataset_model import Dataset, Dimension
from .logger import get_logger

logger = get_logger(__name__)

Range = Tuple[float, float]

# Fraction of the axis height reserved below the numeric range for NaN values
NAN_MARGIN_RATIO = 1 / 11


def _to_float(value: Any) -> float:
    if value is None:
        return math.nan
    try:
        return float(value)
    except (TypeError, ValueError):
        return math.nan


class LinearScale:
    """Continuous linear mapping from a numeric domain to a range."""

    kind = "linear"

    def __init__(self, domain: Sequence[float], range: Range = (0.0, 1.0)):
        self.domain = (float(domain[0]), float(domain[1]))
        self.range = range

    def _transform(self, values: np.ndarray) -> np.ndarray:
        return values

    def _untransform(self, values: np.ndarray) -> np.ndarray:
        return values

    def forward_array(self, values: np.ndarray) -> np.ndarray:
        """Vectorized :meth:`forward`. NaN stays NaN."""
        r0, r1 = self.range
        with np.errstate(invalid="ignore", divide="ignore"):
            t = self._transform(np.asarray(values, dtype=np.float64))
            d0, d1 = self._transform(np.asarray(self.domain, dtype=np.float64))
            if d0 == d1:
                return np.where(np.isnan(t), np.nan, (r0 + r1) / 2)
            return r0 + (t - d0) / (d1 - d0) * (r1 - r0)

    def forward(self, value: Any) -> float:
        return float(self.forward_array(np.array([_to_float(value)]))[0])

    def invert(self, coordinate: float) -> float:
        r0, r1 = self.range
        d0, d1 = self._transform(np.asarray(self.domain, dtype=np.float64))
        if math.isnan(coordinate):
            return math.nan
        t = d0 if r0 == r1 else d0 + (coordinate - r0) / (r1 - r0) * (d1 - d0)
        return float(self._untransform(np.array([t]))[0])

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "domain": list(self.domain), "range": list(self.range)}


class LogScale(LinearScale):
    """Base-10 logarithmic mapping. Non-positive values map to NaN."""

    kind = "log"

    def _transform(self, values: np.ndarray) -> np.ndarray:
        with np.errstate(invalid="ignore", divide="ignore"):
            return np.where(values > 0, np.log10(np.where(values > 0, values, 1.0)), np.nan)

    def _untransform(self, values: np.ndarray) -> np.ndarray:
        return np.power(10.0, values)


class PointScale:
    """Ordinal mapping of domain items to evenly spaced points.

    Spacing follows d3's point scale: ``padding`` is outer padding in units
    of the step, points are centered in the range.
    """

    kind = "point"

    def __init__(self, domain: Iterable[Any], range: Range = (0.0, 1.0), padding: float = 0.0):
        self.domain = list(domain)
        self.range = range
        self.padding = padding

    def positions(self) -> List[float]:
        """Coordinate of each domain item, in domain order."""
        n = len(self.domain)
        r0, r1 = self.range
        reverse = r1 < r0
        start, stop = (r1, r0) if reverse else (r0, r1)
        step = (stop - start) / max(1, n - 1 + self.padding * 2)
        start += (stop - start - step * (n - 1)) * 0.5
        values = [start + step * i for i in range(n)]
        if reverse:
            values.reverse()
        return values

    def lookup(self) -> Dict[Any, float]:
        return dict(zip(self.domain, self.positions()))

    @property
    def step(self) -> float:
        positions = self.positions()
        return abs(positions[1] - positions[0]) if len(positions) > 1 else 0.0

    def forward(self, value: Any) -> float:
        return self.lookup().get(value, math.nan)

    def invert(self, coordinate: float) -> Optional[Any]:
        """Nearest domain item to ``coordinate`` (None for an empty domain)."""
        if not self.domain or math.isnan(coordinate):
            return None
        positions = self.positions()
        nearest = min(range(len(positions)), key=lambda i: abs(positions[i] - coordinate))
        return self.domain[nearest]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "domain": list(self.domain),
            "range": list(self.range),
            "padding": self.padding,
        }


def build_scale(dimension: Dimension, rng: Range = (0.0, 1.0), log: bool = False):
    """Create the scale for one dimension (log > point > linear)."""
    if log and dimension.is_numeric:
        if dimension.domain[0] > 0:
            return LogScale(dimension.domain, rng)
        logger.warning(
            "Dimension '%s' has non-positive values %s, using a linear scale",
            dimension.name,
            list(dimension.domain),
        )
    elif log:
        logger.warning("Ignoring log scale for string dimension '%s'", dimension.name)

    if dimension.is_string:
        return PointScale(dimension.domain, rng)
    return LinearScale(dimension.domain, rng)


class ScaleRegistry:
    """Vertical value axes for a set of dataset dimensions.

    Numeric axes span ``[height - nan_margin, 0]`` and keep the bottom
    ``nan_margin`` pixels for NaN and absent values, which sit at ``height``.
    String axes span the full ``[height, 0]``.
    """

    def __init__(
        self,
        dataset: Dataset,
        dimensions: Sequence[str],
        log_dimensions: Iterable[str] = (),
        height: float = 1.0,
    ):
        self.dataset = dataset
        self.dimensions = list(dimensions)
        self.log_dimensions = set(log_dimensions)
        self.height = float(height)
        self._scales = {
            d: build_scale(dataset.dimension(d), log=d in self.log_dimensions)
            for d in self.dimensions
        }
        self._coordinates: Dict[str, np.ndarray] = {}
        self.set_range(height)

    @property
    def nan_margin(self) -> float:
        return self.height * NAN_MARGIN_RATIO

    def set_range(self, height: float) -> None:
        """Reassign the range of every scale for a new axis height."""
        self.height = float(height)
        for name, scale in self._scales.items():
            if isinstance(scale, PointScale):
                scale.range = (self.height, 0.0)
            else:
                scale.range = (self.height - self.nan_margin, 0.0)
        self._coordinates.clear()

    def scale(self, dimension: str):
        return self._scales[dimension]

    def coordinates(self, dimension: str) -> np.ndarray:
        """Axis position of every row on ``dimension``.

        NaN and absent numeric values are placed at ``height``. Absent
        string values have no position (NaN).
        """
        if dimension not in self._coordinates:
            scale = self._scales[dimension]
            if isinstance(scale, PointScale):
                lookup = scale.lookup()
                values = np.array(
                    [lookup.get(v, math.nan) for v in self.dataset.string_column(dimension)],
                    dtype=np.float64,
                )
            else:
                values = scale.forward_array(self.dataset.numeric_column(dimension))
                values = np.where(np.isnan(values), self.height, values)
            values.setflags(write=False)
            self._coordinates[dimension] = values
        return self._coordinates[dimension]

    def position(self, dimension: str, index: int) -> float:
        return float(self.coordinates(dimension)[index])

    def to_dict(self) -> Dict[str, Any]:
        return {
            "height": self.height,
            "nan_margin": self.nan_margin,
            "scales": {d: s.to_dict() for d, s in self._scales.items()},
        }
