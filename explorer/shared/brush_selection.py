"""
Multi-axis brushing.

Each dimension may carry one brush extent ``(lo, hi)`` in axis (pixel)
coordinates. A row is selected when its coordinate falls inside every stored
extent, bounds included. The selection is recomputed from scratch after every
change and published only when it differs from the previous one.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np

from .events import EventChannel
from .logger import get_logger
from .scales import ScaleRegistry

logger = get_logger(__name__)

Extent = Tuple[float, float]

BRUSH_PADDING = 5.0


class BrushSelectionEngine:
    """Brush extents per dimension and the row selection they produce."""

    def __init__(
        self,
        scales: ScaleRegistry,
        channel: Optional[EventChannel] = None,
        padding: float = BRUSH_PADDING,
    ):
        self.scales = scales
        self.channel = channel
        self.padding = padding
        self._extents: Dict[str, Extent] = {}
        self._selection: List[int] = list(range(scales.dataset.row_count))

    @property
    def selection(self) -> List[int]:
        return list(self._selection)

    @property
    def extents(self) -> Dict[str, Extent]:
        return dict(self._extents)

    def _check_dimension(self, dimension: str) -> None:
        if dimension not in self.scales.dimensions:
            raise KeyError(dimension)

    def _store(self, dimension: str, extent: Optional[Sequence[float]]) -> None:
        if extent is None:
            self._extents.pop(dimension, None)
            return
        lo, hi = sorted((float(extent[0]), float(extent[1])))
        if lo == hi:
            self._extents.pop(dimension, None)
        else:
            self._extents[dimension] = (lo, hi)

    def set_extent(self, dimension: str, extent: Optional[Sequence[float]]) -> List[int]:
        """Store or clear the brush on ``dimension`` and recompute.

        A zero-width extent clears the brush.

        Raises:
            KeyError: If ``dimension`` is not an axis of this chart.
        """
        self._check_dimension(dimension)
        self._store(dimension, extent)
        return self.recompute()

    def recompute(self) -> List[int]:
        """Intersect every stored extent into the row selection."""
        mask = np.ones(self.scales.dataset.row_count, dtype=bool)
        for dimension in self.scales.dimensions:
            extent = self._extents.get(dimension)
            if extent is None:
                continue
            coords = self.scales.coordinates(dimension)
            mask &= (extent[0] <= coords) & (coords <= extent[1])

        selection = [int(i) for i in np.flatnonzero(mask)]
        if selection != self._selection:
            self._selection = selection
            logger.debug("Selection changed: %d rows", len(selection))
            if self.channel is not None:
                self.channel.publish(list(selection))
        return self.selection

    def set_selection(self, rows: Iterable[int]) -> List[int]:
        """Fit every brush around ``rows`` and recompute.

        Each extent is the padded span of the rows' coordinates on that axis.
        An axis on which none of the rows has a position is left unbrushed.

        Raises:
            ValueError: If ``rows`` is empty or holds an out-of-range index.
        """
        indices = np.asarray(sorted(set(int(r) for r in rows)), dtype=np.int64)
        if indices.size == 0:
            raise ValueError("Cannot fit brushes around an empty selection")
        row_count = self.scales.dataset.row_count
        if indices[0] < 0 or indices[-1] >= row_count:
            raise ValueError(f"Row indices must be in 0..{row_count - 1}")

        height = self.scales.height
        for dimension in self.scales.dimensions:
            coords = self.scales.coordinates(dimension)[indices]
            coords = coords[~np.isnan(coords)]
            if coords.size == 0:
                self._extents.pop(dimension, None)
                continue
            lo = max(0.0, float(coords.min()) - self.padding)
            hi = min(height, float(coords.max()) + self.padding)
            self._store(dimension, (lo, hi))
        return self.recompute()

    def rescale(self, old_height: float, new_height: float) -> None:
        """Stretch stored extents to a new axis height without recomputing."""
        if old_height <= 0:
            self._extents.clear()
            return
        ratio = new_height / old_height
        for dimension, (lo, hi) in list(self._extents.items()):
            self._store(dimension, (lo * ratio, hi * ratio))

    def clear(self) -> List[int]:
        """Remove every brush and recompute."""
        self._extents.clear()
        return self.recompute()
