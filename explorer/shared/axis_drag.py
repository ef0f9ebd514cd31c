"""
Axis reordering by drag gestures.

Committed axis positions come from a horizontal point scale (padding 1) over
``[0, width]``. While an axis is dragged its position is overridden by the
pointer position, and the committed order is the stable sort of every axis
by its effective position.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional

from .events import EventChannel
from .logger import get_logger
from .scales import PointScale

logger = get_logger(__name__)


class AxisDragReorderer:
    """Committed dimension order plus in-progress drag overrides."""

    def __init__(
        self,
        dimensions: Iterable[str],
        width: float,
        channel: Optional[EventChannel] = None,
    ):
        self._order: List[str] = list(dimensions)
        self._overrides: Dict[str, float] = {}
        self.channel = channel
        self.scale = PointScale(self._order, (0.0, float(width)), padding=1)

    @property
    def order(self) -> List[str]:
        return list(self._order)

    @property
    def width(self) -> float:
        return self.scale.range[1]

    @property
    def dragging(self) -> Dict[str, float]:
        return dict(self._overrides)

    def _check_dimension(self, dimension: str) -> None:
        if dimension not in self._order:
            raise KeyError(dimension)

    def _commit(self, order: List[str]) -> None:
        self._order = order
        self.scale.domain = list(order)

    def set_width(self, width: float) -> None:
        self.scale.range = (0.0, float(width))

    def position(self, dimension: str) -> float:
        """Effective x position: the drag override, else the committed one."""
        override = self._overrides.get(dimension)
        return self.scale.forward(dimension) if override is None else override

    def positions(self) -> Dict[str, float]:
        return {d: self.position(d) for d in self._order}

    def begin_drag(self, dimension: str) -> float:
        self._check_dimension(dimension)
        self._overrides[dimension] = self.scale.forward(dimension)
        return self._overrides[dimension]

    def update_drag(self, dimension: str, x: float) -> List[str]:
        """Move a dragged axis to ``x`` (clamped to the chart width).

        Publishes the new order on the channel when it changes.
        """
        self._check_dimension(dimension)
        self._overrides[dimension] = min(self.width, max(0.0, float(x)))

        previous = self._order
        # sorted() is stable, so ties keep the previous order
        reordered = sorted(previous, key=self.position)
        self._commit(reordered)
        if reordered != previous:
            logger.debug("Axis order changed: %s", reordered)
            if self.channel is not None:
                self.channel.publish(list(reordered))
        return self.order

    def end_drag(self, dimension: str) -> float:
        """Finish a drag. Returns the axis' snapped (committed) position."""
        self._check_dimension(dimension)
        self._overrides.pop(dimension, None)
        return self.scale.forward(dimension)

    def set_order(self, order: Iterable[str]) -> List[str]:
        """Impose an explicit order.

        Unknown names are dropped and dimensions missing from ``order`` are
        appended in their current relative order.
        """
        known = set(self._order)
        requested = []
        for name in order:
            if name in known and name not in requested:
                requested.append(name)
        requested.extend(d for d in self._order if d not in requested)

        self._overrides.clear()
        self._commit(requested)
        return self.order
