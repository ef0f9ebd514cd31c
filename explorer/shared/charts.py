"""
Chart state behind the linked views.

A chart owns the geometry of one view (scales, brushes, axis order) and an
offscreen index raster used for pointer hit testing. Rendering the visible
chart is left to the client; this module only computes where things are.

Charts share one capability interface, :class:`BaseChart`. Concrete charts
are looked up by name in :data:`CHART_REGISTRY`.
"""

from __future__ import annotations

import math
import re
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence, Tuple, Type

from .axis_drag import AxisDragReorderer
from .brush_selection import BrushSelectionEngine
from .dataset_model import Dataset
from .draw_task import DrawScheduler
from .events import EventBus
from .index_color import IndexColorHitTester, IndexRaster, encode_index
from .logger import get_logger
from .scales import ScaleRegistry, build_scale

logger = get_logger(__name__)

Point = Tuple[float, float]

CHART_EVENTS = ("selectionchange", "mouseover", "click", "axisorderchange")

DEFAULT_WIDTH = 800
DEFAULT_HEIGHT = 400

PCOORD_LINE_WIDTH = 3
SCATTER_POINT_RADIUS = 10


def filter_dimensions(dataset: Dataset, filter_regex: Optional[str]) -> List[str]:
    """Dimensions whose name does not match ``filter_regex``."""
    if not filter_regex:
        return dataset.dimension_names
    pattern = re.compile(filter_regex)
    return [d for d in dataset.dimension_names if not pattern.search(d)]


def log_dimensions(dataset: Dataset, dimensions: Sequence[str], log_regex: Optional[str]) -> List[str]:
    """Dimensions to draw on a log scale."""
    if not log_regex:
        return []
    pattern = re.compile(log_regex)
    return [d for d in dimensions if pattern.search(d)]


class BaseChart(ABC):
    """Capability interface shared by every chart.

    Subclasses provide sizing, selection, the list of index-drawn items and
    how one item is drawn into the index raster. Hit testing, pointer events
    and the batched index redraw are common.
    """

    kind = "chart"

    def __init__(
        self,
        dataset: Dataset,
        filter_regex: Optional[str] = None,
        log_regex: Optional[str] = None,
        width: float = DEFAULT_WIDTH,
        height: float = DEFAULT_HEIGHT,
    ):
        self.dataset = dataset
        self.filter_regex = filter_regex
        self.log_regex = log_regex
        self.dimensions = filter_dimensions(dataset, filter_regex)
        if not self.dimensions:
            raise ValueError(f"No dimensions left after filtering with '{filter_regex}'")
        self.log_dimensions = log_dimensions(dataset, self.dimensions, log_regex)

        self.width = float(width)
        self.height = float(height)
        self.bus = EventBus(CHART_EVENTS)
        self.scheduler = DrawScheduler()
        self.raster = IndexRaster(int(width), int(height))
        self._index_lookup: List[int] = []
        self.last_mouseover: Optional[int] = None

    @abstractmethod
    def update_size(self, width: float, height: float) -> None:
        """Resize the chart's drawing area."""

    @abstractmethod
    def set_selection(self, rows: Sequence[int]) -> List[int]:
        """Make the chart show ``rows``. Returns the resulting selection."""

    @property
    @abstractmethod
    def selection(self) -> List[int]:
        """Rows currently shown."""

    @abstractmethod
    def index_items(self) -> List[int]:
        """Rows drawn into the index raster, in draw order."""

    @abstractmethod
    def draw_index_item(self, raster: IndexRaster, slot: int, row: int) -> None:
        """Draw ``row`` into ``raster`` with the index color of ``slot``."""

    def _resize_raster(self) -> None:
        self.raster = IndexRaster(int(self.width), int(self.height))
        self._index_lookup = []

    async def redraw_index(self) -> int:
        """Redraw the index raster in batches. Returns the number of drawn items."""
        raster = IndexRaster(int(self.width), int(self.height))
        items = self.index_items()
        self.raster = raster
        self._index_lookup = items
        self.scheduler.restart(
            list(enumerate(items)),
            lambda item: self.draw_index_item(raster, item[0], item[1]),
        )
        return await self.scheduler.wait()

    def hit_test(self, x: int, y: int, size: int = 3) -> Optional[int]:
        """Row under pixel ``(x, y)``, or None."""
        if x < 0 or y < 0:
            return None
        return IndexColorHitTester(self._index_lookup).hit_test(self.raster, x, y, size)

    def pointer_move(self, x: int, y: int) -> Optional[int]:
        """Hit test and publish ``mouseover`` when the row under the pointer changes."""
        row = self.hit_test(x, y)
        if row != self.last_mouseover:
            self.last_mouseover = row
            self.bus.publish("mouseover", row)
        return row

    def click(self, x: int, y: int) -> Optional[int]:
        row = self.hit_test(x, y)
        if row is not None:
            self.bus.publish("click", row)
        return row

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "width": self.width,
            "height": self.height,
            "dimensions": list(self.dimensions),
            "log_dimensions": list(self.log_dimensions),
            "selection_count": len(self.selection),
            "drawing": self.scheduler.running,
        }


class PcoordChart(BaseChart):
    """Parallel coordinates: one vertical axis per dimension."""

    kind = "pcoord"

    def __init__(self, dataset: Dataset, filter_regex=None, log_regex=None,
                 width: float = DEFAULT_WIDTH, height: float = DEFAULT_HEIGHT):
        super().__init__(dataset, filter_regex, log_regex, width, height)
        self.scales = ScaleRegistry(dataset, self.dimensions, self.log_dimensions, self.height)
        self.brushes = BrushSelectionEngine(self.scales, self.bus.channel("selectionchange"))
        self.axes = AxisDragReorderer(self.dimensions, self.width, self.bus.channel("axisorderchange"))

    @property
    def order(self) -> List[str]:
        return self.axes.order

    @property
    def selection(self) -> List[int]:
        return self.brushes.selection

    def update_size(self, width: float, height: float) -> None:
        old_height = self.height
        self.width = float(width)
        self.height = float(height)
        self.scales.set_range(self.height)
        self.brushes.rescale(old_height, self.height)
        self.axes.set_width(self.width)
        self._resize_raster()

    def set_selection(self, rows: Sequence[int]) -> List[int]:
        return self.brushes.set_selection(rows)

    def set_extent(self, dimension: str, extent: Optional[Sequence[float]]) -> List[int]:
        return self.brushes.set_extent(dimension, extent)

    def clear_brushes(self) -> List[int]:
        return self.brushes.clear()

    def set_axis_order(self, order: Sequence[str]) -> List[str]:
        return self.axes.set_order(order)

    def y_position(self, dimension: str, row: int) -> float:
        return self.scales.position(dimension, row)

    def path_sections(self, row: int) -> List[List[Point]]:
        """Polyline pieces of ``row`` in axis order.

        The line is broken wherever the row has an absent value. A piece
        touching a single axis becomes a short horizontal stroke across it.
        """
        values = self.dataset.row(row)
        order = self.axes.order
        single = self.width / len(order) / 5

        sections: List[List[str]] = []
        current: List[str] = []
        for dimension in order:
            if values[dimension] is not None:
                current.append(dimension)
            elif current:
                sections.append(current)
                current = []
        if current:
            sections.append(current)

        pieces: List[List[Point]] = []
        for section in sections:
            points = [(self.axes.position(d), self.y_position(d, row)) for d in section]
            if len(points) == 1:
                x, y = points[0]
                points = [(x - single / 2, y), (x + single / 2, y)]
            pieces.append(points)
        return pieces

    def index_items(self) -> List[int]:
        return self.selection

    def draw_index_item(self, raster: IndexRaster, slot: int, row: int) -> None:
        color = encode_index(slot)
        for points in self.path_sections(row):
            raster.stroke_polyline(points, PCOORD_LINE_WIDTH, color)

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({
            "order": self.order,
            "positions": self.axes.positions(),
            "dragging": self.axes.dragging,
            "extents": {d: list(e) for d, e in self.brushes.extents.items()},
            "scales": self.scales.to_dict(),
        })
        return data


class ScatterChart(BaseChart):
    """Scatter plot of two dimensions."""

    kind = "scatter"

    def __init__(self, dataset: Dataset, filter_regex=None, log_regex=None,
                 width: float = DEFAULT_WIDTH, height: float = DEFAULT_HEIGHT):
        super().__init__(dataset, filter_regex, log_regex, width, height)
        self.x_dimension = self.dimensions[0]
        self.y_dimension = self.dimensions[1] if len(self.dimensions) > 1 else self.dimensions[0]
        self._selection: List[int] = list(range(dataset.row_count))
        self._build_scales()

    def _build_scales(self) -> None:
        self.x = build_scale(
            self.dataset.dimension(self.x_dimension),
            (0.0, self.width),
            log=self.x_dimension in self.log_dimensions,
        )
        self.y = build_scale(
            self.dataset.dimension(self.y_dimension),
            (self.height, 0.0),
            log=self.y_dimension in self.log_dimensions,
        )

    @property
    def selection(self) -> List[int]:
        return list(self._selection)

    def set_axes(self, x_dimension: Optional[str] = None, y_dimension: Optional[str] = None) -> None:
        """Change the plotted dimensions (KeyError for a filtered or unknown one)."""
        for name in (x_dimension, y_dimension):
            if name is not None and name not in self.dimensions:
                raise KeyError(name)
        if x_dimension is not None:
            self.x_dimension = x_dimension
        if y_dimension is not None:
            self.y_dimension = y_dimension
        self._build_scales()

    def update_size(self, width: float, height: float) -> None:
        self.width = float(width)
        self.height = float(height)
        self.x.range = (0.0, self.width)
        self.y.range = (self.height, 0.0)
        self._resize_raster()

    def set_selection(self, rows: Sequence[int]) -> List[int]:
        row_count = self.dataset.row_count
        self._selection = sorted({int(r) for r in rows if 0 <= int(r) < row_count})
        return self.selection

    def position(self, row: int) -> Point:
        values = self.dataset.row(row)
        return (self.x.forward(values[self.x_dimension]), self.y.forward(values[self.y_dimension]))

    def plottable_points(self, rows: Optional[Sequence[int]] = None) -> List[int]:
        """Rows that have a position on both axes."""
        rows = self._selection if rows is None else rows
        plottable = []
        for row in rows:
            x, y = self.position(row)
            if not (math.isnan(x) or math.isnan(y)):
                plottable.append(row)
        return plottable

    @property
    def unplottable_count(self) -> int:
        return len(self._selection) - len(self.plottable_points())

    def index_items(self) -> List[int]:
        return self.plottable_points()

    def draw_index_item(self, raster: IndexRaster, slot: int, row: int) -> None:
        x, y = self.position(row)
        raster.fill_circle(x, y, SCATTER_POINT_RADIUS, encode_index(slot))

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        plottable = self.plottable_points()
        data.update({
            "x_dimension": self.x_dimension,
            "y_dimension": self.y_dimension,
            "x_scale": self.x.to_dict(),
            "y_scale": self.y.to_dict(),
            "plottable_count": len(plottable),
            "unplottable_count": len(self._selection) - len(plottable),
            "points": [
                {"index": row, "x": x, "y": y}
                for row, (x, y) in ((r, self.position(r)) for r in plottable)
            ],
        })
        return data


CHART_REGISTRY: Dict[str, Type[BaseChart]] = {
    "pcoord": PcoordChart,
    "scatter": ScatterChart,
}
