"""
Tests for the explorer session.

Tests:
- Load lifecycle (ready, error, stale loads)
- Database switching and saved view settings
- Linked-view wiring between charts
- Picks, highlight and axis orderings
- Outbox of WebSocket notifications

Run tests:
    pytest tests/test_session.py -v
"""

import asyncio
import sys
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

webapp_root = Path(__file__).parent.parent
if str(webapp_root) not in sys.path:
    sys.path.insert(0, str(webapp_root))

from explorer.app_config import AppConfig, DatabaseEntry, DatabaseRegistry
from explorer.session import LoadSuperseded, NoDatasetLoaded, Session, SessionState
from explorer.shared.dataset_model import load_dataset
from explorer.shared.errors import IngestionFailure, StructuralError, ViewSettingsError


def queued(session):
    """Names of the notification helpers waiting in the outbox."""
    return [notify.__name__ for notify, _ in session.outbox]


@pytest.fixture
def session():
    return Session(DatabaseRegistry(), AppConfig(databases_path=Path("databases.json")))


@pytest.fixture
def loaded(session, sample_csv, sample_axis_order):
    session.load_text(sample_csv, sample_axis_order, name="sample")
    session.outbox.clear()
    return session


@pytest.fixture
def registry_session(tmp_path, database_dir, sample_csv):
    other = tmp_path / "other.cdb"
    other.mkdir()
    (other / "data.csv").write_text(sample_csv, encoding="utf-8")
    registry = DatabaseRegistry(
        [
            DatabaseEntry("ensemble", "ensemble.cdb", picked=[1, 99]),
            DatabaseEntry("other", "other.cdb", filter="^(FILE|label)$"),
            DatabaseEntry("missing", "missing.cdb"),
            DatabaseEntry("broken", "other.cdb", filter="["),
        ],
        base_dir=tmp_path,
    )
    return Session(registry, AppConfig(databases_path=tmp_path / "databases.json"))


# ============================================================================
# Lifecycle
# ============================================================================


class TestLifecycle:
    def test_initial_state(self, session):
        assert session.state == SessionState.NO_DATASET
        with pytest.raises(NoDatasetLoaded):
            session.require_dataset()
        with pytest.raises(NoDatasetLoaded):
            session.pcoord

    def test_load_text(self, session, sample_csv):
        dataset = session.load_text(sample_csv, name="sample")
        assert session.state == SessionState.READY
        assert session.dataset is dataset
        assert session.name == "sample"
        assert set(session.charts) == {"pcoord", "scatter"}
        assert queued(session) == [
            "notify_dataset_loading",
            "notify_dataset_ready",
            "notify_selection_changed",
        ]

    def test_axis_warning_is_queued(self, session, sample_csv):
        session.load_text(sample_csv, "category,name,bogus\nv,a,1\n")
        assert "notify_dataset_warning" in queued(session)

    def test_failed_load_keeps_previous_dataset(self, loaded):
        previous = loaded.dataset
        with pytest.raises(StructuralError):
            loaded.load_text("a\n")
        assert loaded.state == SessionState.ERROR
        assert loaded.dataset is previous
        assert "first and second lines" in loaded.error
        assert queued(loaded) == ["notify_dataset_loading", "notify_dataset_failed"]

    def test_stale_load_is_discarded(self, session, dataset):
        token = session.begin_load("first")
        session.begin_load("second")
        assert not session.finish_load(token, "first", dataset)
        assert session.dataset is None
        assert not session.fail_load(token, "first", RuntimeError("late"))
        assert session.state == SessionState.LOADING

    def test_flush_events(self, loaded):
        loaded.set_highlight([1])
        with patch("websocket.manager.ws_manager.broadcast_to_channel", new_callable=AsyncMock) as broadcast:
            sent = asyncio.run(loaded.flush_events())
        assert sent == 1
        assert loaded.outbox == []
        channel, message = broadcast.call_args.args
        assert channel == "picks"
        assert message.data == {"rows": [1]}

    def test_summary(self, loaded):
        summary = loaded.summary()
        assert summary["state"] == "ready"
        assert summary["row_count"] == 4
        assert summary["selection_count"] == 4
        assert summary["picked"] == []

    def test_everything_filtered_falls_back_to_all_dimensions(self, session, sample_csv):
        entry = DatabaseEntry("x", "x.cdb", filter=".")
        token = session.begin_load("x")
        session.finish_load(token, "x", load_dataset(sample_csv), entry=entry)
        assert "FILE" in session.pcoord.dimensions


# ============================================================================
# Databases
# ============================================================================


class TestLoadDatabase:
    def test_load(self, registry_session):
        dataset = asyncio.run(registry_session.load_database(0))
        assert registry_session.state == SessionState.READY
        assert registry_session.entry_index == 0
        assert dataset.has_axis_ordering
        # out-of-range picks from databases.json are dropped
        assert registry_session.picked == [1]

    def test_entry_filter_is_applied(self, registry_session):
        asyncio.run(registry_session.load_database(1))
        assert registry_session.pcoord.dimensions == ["time", "phi", "theta"]

    def test_switch_saves_picks(self, registry_session):
        asyncio.run(registry_session.load_database(0))
        registry_session.toggle_pick(2)
        asyncio.run(registry_session.load_database(1))
        assert registry_session.registry.get(0).picked == [1, 2]
        assert registry_session.settings()[0]["picked"] == [1, 2]

    def test_missing_directory(self, registry_session):
        with pytest.raises(IngestionFailure):
            asyncio.run(registry_session.load_database(2))
        assert registry_session.state == SessionState.ERROR

    def test_unknown_index(self, registry_session):
        with pytest.raises(IndexError):
            asyncio.run(registry_session.load_database(7))

    def test_superseded_load(self, registry_session, sample_csv):
        async def interleaved(directory, timeout):
            registry_session.begin_load("newer")
            return sample_csv, None

        with patch("explorer.session.fetch_database", side_effect=interleaved):
            with pytest.raises(LoadSuperseded):
                asyncio.run(registry_session.load_database(0))
        assert registry_session.dataset is None

    def test_invalid_filter_keeps_previous_dataset(self, registry_session):
        previous = asyncio.run(registry_session.load_database(0))
        with pytest.raises(ViewSettingsError):
            asyncio.run(registry_session.load_database(3))
        assert registry_session.state == SessionState.ERROR
        assert registry_session.dataset is previous
        assert registry_session.pcoord.dataset is previous
        assert registry_session.name == "ensemble"
        assert registry_session.entry_index == 0
        assert "pattern" in registry_session.error

    def test_loading_is_sent_before_fetch(self, registry_session, sample_csv):
        sent = []

        async def record(message_type, channel, data):
            sent.append(message_type.value)
            return 0

        async def fetch(directory, timeout):
            sent.append("fetch")
            return sample_csv, None

        with patch("websocket.manager._broadcast", side_effect=record), \
                patch("explorer.session.fetch_database", side_effect=fetch):
            asyncio.run(registry_session.load_database(0))
        assert sent == ["dataset_loading", "fetch"]
        assert "notify_dataset_ready" in queued(registry_session)

    def test_superseded_failure(self, registry_session):
        async def interleaved(directory, timeout):
            registry_session.begin_load("newer")
            raise IngestionFailure(directory, "timed out")

        with patch("explorer.session.fetch_database", side_effect=interleaved):
            with pytest.raises(LoadSuperseded):
                asyncio.run(registry_session.load_database(0))
        assert registry_session.state == SessionState.LOADING
        assert registry_session.error is None


# ============================================================================
# Linked Views
# ============================================================================


class TestLinkedViews:
    def test_brush_drives_scatter_selection(self, loaded):
        loaded.pcoord.set_extent("time", (0, 200))
        assert loaded.pcoord.selection == [2, 3]
        assert loaded.scatter.selection == [2, 3]
        assert queued(loaded) == ["notify_selection_changed"]

    def test_drag_queues_axis_order(self, loaded):
        loaded.pcoord.axes.begin_drag("time")
        loaded.pcoord.axes.update_drag("time", 800)
        assert queued(loaded) == ["notify_axis_order_changed"]

    def test_mouseover_sets_highlight(self, loaded):
        loaded.scatter.bus.publish("mouseover", 2)
        assert loaded.highlighted == [2]
        loaded.scatter.bus.publish("mouseover", None)
        assert loaded.highlighted == []
        assert queued(loaded) == [
            "notify_highlight_changed",
            "notify_mouseover",
            "notify_highlight_changed",
            "notify_mouseover",
        ]

    def test_click_toggles_pick(self, loaded):
        loaded.pcoord.bus.publish("click", 1)
        assert loaded.picked == [1]
        loaded.scatter.bus.publish("click", 1)
        assert loaded.picked == []

    def test_chart_sizes_survive_reload(self, loaded, sample_csv):
        loaded.pcoord.update_size(1000, 500)
        loaded.load_text(sample_csv)
        assert (loaded.pcoord.width, loaded.pcoord.height) == (1000.0, 500.0)

    def test_unknown_chart(self, loaded):
        with pytest.raises(KeyError):
            loaded.chart("table")


# ============================================================================
# Picks, Highlight, Axis Orderings
# ============================================================================


class TestViewState:
    def test_toggle_pick(self, loaded):
        assert loaded.toggle_pick(3) is True
        assert loaded.toggle_pick(0) is True
        assert loaded.picked == [3, 0]
        assert loaded.toggle_pick(3) is False
        assert loaded.picked == [0]

    def test_pick_out_of_range(self, loaded):
        with pytest.raises(IndexError):
            loaded.toggle_pick(4)

    def test_highlight_only_queues_changes(self, loaded):
        loaded.set_highlight([0, 1])
        loaded.set_highlight([0, 1])
        assert queued(loaded) == ["notify_highlight_changed"]

    def test_highlight_out_of_range(self, loaded):
        with pytest.raises(IndexError):
            loaded.set_highlight([9])

    def test_named_axis_ordering(self, loaded):
        ordering = loaded.set_axis_ordering("view", "reverse")
        assert ordering.order == ("theta", "phi", "time")
        assert loaded.pcoord.order == ["theta", "phi", "time", "label"]
        notify, args = loaded.outbox[-1]
        assert notify.__name__ == "notify_axis_order_set"
        assert args == (["theta", "phi", "time", "label"], "view", "reverse")

    def test_unknown_axis_ordering(self, loaded):
        with pytest.raises(KeyError):
            loaded.set_axis_ordering("view", "nope")

    def test_no_axis_ordering(self, session, sample_csv):
        session.load_text(sample_csv)
        with pytest.raises(KeyError):
            session.set_axis_ordering("view", "default")

    def test_explicit_axis_order(self, loaded):
        assert loaded.set_axis_order(["label", "nope"]) == ["label", "time", "phi", "theta"]
        assert queued(loaded) == ["notify_axis_order_set"]
