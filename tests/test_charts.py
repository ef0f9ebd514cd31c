"""
Tests for chart geometry and pointer picking.

Charts use the sample dataset with the default "^FILE" filter, so the axes
are time, phi, theta and label. At 400x110 the pcoord axes sit at x=80, 160,
240 and 320.

Run tests:
    pytest tests/test_charts.py -v
"""

import asyncio
import sys
from pathlib import Path

import pytest

webapp_root = Path(__file__).parent.parent
if str(webapp_root) not in sys.path:
    sys.path.insert(0, str(webapp_root))

from explorer.shared.charts import (
    CHART_REGISTRY,
    PcoordChart,
    ScatterChart,
    filter_dimensions,
    log_dimensions,
)
from explorer.shared.scales import LinearScale, LogScale, PointScale


@pytest.fixture
def pcoord(dataset):
    return PcoordChart(dataset, "^FILE", "^$", width=400, height=110)


@pytest.fixture
def scatter(dataset):
    return ScatterChart(dataset, "^FILE", "^$", width=400, height=110)


class TestDimensionFilters:
    def test_filter(self, dataset):
        assert filter_dimensions(dataset, "^FILE") == ["time", "phi", "theta", "label"]
        assert filter_dimensions(dataset, None) == dataset.dimension_names
        assert filter_dimensions(dataset, "^(phi|theta)$") == ["time", "label", "FILE"]

    def test_log_regex(self, dataset):
        dims = ["time", "phi", "theta"]
        assert log_dimensions(dataset, dims, "^$") == []
        assert log_dimensions(dataset, dims, "^(phi|theta)$") == ["phi", "theta"]
        assert log_dimensions(dataset, dims, None) == []

    def test_everything_filtered(self, dataset):
        with pytest.raises(ValueError):
            PcoordChart(dataset, ".")

    def test_registry(self):
        assert CHART_REGISTRY == {"pcoord": PcoordChart, "scatter": ScatterChart}


class TestPcoordChart:
    def test_axes(self, pcoord):
        assert pcoord.order == ["time", "phi", "theta", "label"]
        assert pcoord.axes.positions() == {"time": 80.0, "phi": 160.0, "theta": 240.0, "label": 320.0}

    def test_brush_publishes_selection(self, pcoord):
        received = []
        pcoord.bus.subscribe("selectionchange", received.append)
        pcoord.set_extent("time", (50, 120))
        assert pcoord.selection == [0, 1]
        assert received == [[0, 1]]

    def test_drag_publishes_order(self, pcoord):
        received = []
        pcoord.bus.subscribe("axisorderchange", received.append)
        pcoord.axes.begin_drag("time")
        pcoord.axes.update_drag("time", 200)
        assert received == [["phi", "time", "theta", "label"]]

    def test_set_axis_order(self, pcoord):
        assert pcoord.set_axis_order(["label"]) == ["label", "time", "phi", "theta"]

    def test_path_of_complete_row(self, pcoord):
        assert pcoord.path_sections(0) == [
            [(80.0, pytest.approx(100.0)), (160.0, pytest.approx(100.0)),
             (240.0, pytest.approx(100.0)), (320.0, 110.0)],
        ]

    def test_path_breaks_at_absent_value(self, pcoord):
        # phi is absent in row 3; time becomes a short stroke of width/axes/5
        assert pcoord.path_sections(3) == [
            [(70.0, 0.0), (90.0, 0.0)],
            [(240.0, 0.0), (320.0, 0.0)],
        ]

    def test_update_size(self, pcoord):
        pcoord.set_extent("time", (50, 100))
        pcoord.update_size(800, 220)
        assert pcoord.axes.position("time") == 160.0
        assert pcoord.brushes.extents["time"] == (100.0, 200.0)
        assert pcoord.raster.pixels.shape == (220, 800, 3)
        assert pcoord.selection == [0, 1]

    def test_to_dict(self, pcoord):
        data = pcoord.to_dict()
        assert data["kind"] == "pcoord"
        assert data["dimensions"] == ["time", "phi", "theta", "label"]
        assert data["order"] == ["time", "phi", "theta", "label"]
        assert data["extents"] == {}
        assert set(data["scales"]["scales"]) == {"time", "phi", "theta", "label"}

    def test_log_scale(self, dataset):
        chart = PcoordChart(dataset, "^FILE", "^(phi|time)$", width=400, height=110)
        assert chart.log_dimensions == ["time", "phi"]
        assert isinstance(chart.scales.scale("phi"), LogScale)
        # time includes 0, so it stays linear
        assert type(chart.scales.scale("time")) is LinearScale


class TestPcoordPicking:
    def test_hit_test_after_redraw(self, pcoord):
        assert asyncio.run(pcoord.redraw_index()) == 4
        # row 0 runs horizontally at y=100 between the time and phi axes
        assert pcoord.hit_test(120, 100) == 0
        assert pcoord.hit_test(120, 200) is None
        assert pcoord.hit_test(-1, 100) is None

    def test_only_selected_rows_are_hit(self, pcoord):
        pcoord.set_extent("time", (0, 50))
        assert asyncio.run(pcoord.redraw_index()) == 2
        assert pcoord.hit_test(120, 100) is None

    def test_pointer_move_publishes_changes(self, pcoord):
        asyncio.run(pcoord.redraw_index())
        received = []
        pcoord.bus.subscribe("mouseover", received.append)

        pcoord.pointer_move(120, 100)
        pcoord.pointer_move(121, 100)
        pcoord.pointer_move(120, 5)

        assert received == [0, None]

    def test_click(self, pcoord):
        asyncio.run(pcoord.redraw_index())
        received = []
        pcoord.bus.subscribe("click", received.append)

        assert pcoord.click(120, 100) == 0
        assert pcoord.click(120, 5) is None
        assert received == [0]


class TestScatterChart:
    def test_default_axes(self, scatter):
        assert scatter.x_dimension == "time"
        assert scatter.y_dimension == "phi"

    def test_positions(self, scatter):
        assert scatter.position(0) == (0.0, 110.0)
        x, y = scatter.position(1)
        assert x == pytest.approx(400 / 3)
        assert y == pytest.approx(55.0)

    def test_absent_values_are_not_plottable(self, scatter):
        assert scatter.plottable_points() == [0, 1, 2]
        assert scatter.unplottable_count == 1

    def test_set_axes(self, scatter):
        scatter.set_axes("label", "theta")
        assert isinstance(scatter.x, PointScale)
        assert scatter.position(1)[0] == 200.0
        assert scatter.plottable_points() == [0, 1, 3]

    def test_filtered_axis_rejected(self, scatter):
        with pytest.raises(KeyError):
            scatter.set_axes("FILE")

    def test_set_selection(self, scatter):
        assert scatter.set_selection([3, 1, 1, 99]) == [1, 3]
        assert scatter.plottable_points() == [1]

    def test_single_dimension_uses_it_twice(self, dataset):
        chart = ScatterChart(dataset, "^(FILE|phi|theta|label)$")
        assert chart.x_dimension == chart.y_dimension == "time"

    def test_update_size(self, scatter):
        scatter.update_size(800, 220)
        assert scatter.position(0) == (0.0, 220.0)

    def test_hit_test(self, scatter):
        assert asyncio.run(scatter.redraw_index()) == 3
        assert scatter.hit_test(133, 55) == 1
        assert scatter.hit_test(200, 100) is None

    def test_to_dict(self, scatter):
        data = scatter.to_dict()
        assert data["kind"] == "scatter"
        assert data["plottable_count"] == 3
        assert data["unplottable_count"] == 1
        assert [p["index"] for p in data["points"]] == [0, 1, 2]
