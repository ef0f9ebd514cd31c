"""
Explorer session.

One :class:`Session` per process owns the loaded dataset, the charts built on
it and the view state shared by every linked view (picked and highlighted
rows). Routers get it through the :func:`get_session` dependency.

Lifecycle: NO_DATASET -> LOADING -> READY -> (LOADING | ERROR). Every load
takes a generation token; a load that completes after a newer one started is
discarded. A failed load leaves the previous dataset in place.

Chart events are turned into WebSocket notifications queued on an outbox;
routers call :meth:`Session.flush_events` once their operation is done.
"""

import re
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from websocket import (
    notify_axis_order_changed,
    notify_axis_order_set,
    notify_dataset_failed,
    notify_dataset_loading,
    notify_dataset_ready,
    notify_dataset_warning,
    notify_highlight_changed,
    notify_mouseover,
    notify_picked_changed,
    notify_selection_changed,
)

from .app_config import (
    DEFAULT_FILTER,
    DEFAULT_LOGSCALE,
    AppConfig,
    DatabaseEntry,
    DatabaseRegistry,
)
from .ingestion import fetch_database
from .shared.axis_ordering import NamedOrdering
from .shared.charts import CHART_REGISTRY, BaseChart, PcoordChart, ScatterChart, filter_dimensions
from .shared.dataset_model import Dataset, load_dataset
from .shared.errors import IngestionFailure, StructuralError, ViewSettingsError
from .shared.logger import get_logger

logger = get_logger(__name__)


class SessionState(str, Enum):
    NO_DATASET = "no_dataset"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


class NoDatasetLoaded(RuntimeError):
    """Raised by operations that need a dataset before one is loaded."""


class LoadSuperseded(RuntimeError):
    """Raised when a load finishes after a newer load was requested."""


Notification = Tuple[Callable[..., Awaitable[None]], tuple]


class Session:
    """Dataset, charts and shared view state of the explorer."""

    def __init__(self, registry: Optional[DatabaseRegistry] = None, config: Optional[AppConfig] = None):
        self.config = config or AppConfig.from_env()
        self.registry = registry if registry is not None else DatabaseRegistry()
        self.reset()

    def reset(self) -> None:
        self.state = SessionState.NO_DATASET
        self.dataset: Optional[Dataset] = None
        self.name: Optional[str] = None
        self.entry_index: Optional[int] = None
        self.entry: Optional[DatabaseEntry] = None
        self.error: Optional[str] = None
        self.generation = 0
        self.charts: Dict[str, BaseChart] = {}
        self.picked: List[int] = []
        self.highlighted: List[int] = []
        self.outbox: List[Notification] = []

    # ----------------------------------------------------------------- events

    def _queue(self, notify: Callable[..., Awaitable[None]], *args: Any) -> None:
        self.outbox.append((notify, args))

    async def flush_events(self) -> int:
        """Broadcast queued notifications in order. Returns how many were sent."""
        pending, self.outbox = self.outbox, []
        for notify, args in pending:
            await notify(*args)
        return len(pending)

    # -------------------------------------------------------------- lifecycle

    def begin_load(self, name: str) -> int:
        """Enter LOADING and return the generation token of this load."""
        self.generation += 1
        self.state = SessionState.LOADING
        self.error = None
        logger.info("Loading dataset '%s' (generation %d)", name, self.generation)
        self._queue(notify_dataset_loading, name, self.generation)
        return self.generation

    def is_current(self, token: int) -> bool:
        return token == self.generation

    def finish_load(
        self,
        token: int,
        name: str,
        dataset: Dataset,
        entry_index: Optional[int] = None,
        entry: Optional[DatabaseEntry] = None,
    ) -> bool:
        """Install a loaded dataset. Returns False (and changes nothing) if stale.

        Charts are built before any session state changes, so a failure
        leaves the previous dataset and charts in place.

        Raises:
            ViewSettingsError: If the entry's filter or logscale pattern is invalid.
        """
        if not self.is_current(token):
            logger.info("Discarding stale load of '%s' (generation %d)", name, token)
            return False

        charts = self._build_charts(dataset, entry)

        self.dataset = dataset
        self.name = name
        self.entry_index = entry_index
        self.entry = entry
        self.highlighted = []
        self.picked = [i for i in (entry.picked if entry else []) if 0 <= i < dataset.row_count]
        self.charts = charts
        self._wire_charts()
        self.state = SessionState.READY

        logger.info("Dataset '%s' ready: %d rows, %d dimensions",
                    name, dataset.row_count, len(dataset.dimensions))
        self._queue(notify_dataset_ready, self.summary())
        for warning in dataset.warnings:
            self._queue(notify_dataset_warning, name, warning)
        self._queue(notify_selection_changed, self.pcoord.selection, dataset.row_count)
        return True

    def fail_load(self, token: int, name: str, error: Exception) -> bool:
        """Record a failed load. The previous dataset stays in place."""
        if not self.is_current(token):
            return False
        self.state = SessionState.ERROR
        self.error = str(error)
        logger.error("Failed to load dataset '%s': %s", name, error)
        self._queue(notify_dataset_failed, name, self.error)
        return True

    def load_text(self, primary_text: str, axis_ordering_text: Optional[str] = None,
                  name: str = "inline") -> Dataset:
        """Load a dataset from CSV text.

        Raises:
            StructuralError: If the primary table is malformed.
        """
        token = self.begin_load(name)
        try:
            dataset = load_dataset(primary_text, axis_ordering_text)
            self.finish_load(token, name, dataset)
        except (StructuralError, ViewSettingsError) as e:
            self.fail_load(token, name, e)
            raise
        return dataset

    async def load_database(self, index: int) -> Dataset:
        """Switch to database ``index`` of the registry.

        The view settings of the current database are saved back into the
        registry first. The ``dataset_loading`` notification is sent before
        the files are fetched.

        Raises:
            IndexError: If there is no such database.
            IngestionFailure: If data.csv cannot be read.
            StructuralError: If data.csv is malformed.
            ViewSettingsError: If the entry's filter or logscale pattern is invalid.
            LoadSuperseded: If another load started meanwhile.
        """
        entry = self.registry.get(index)
        self.save_settings()

        token = self.begin_load(entry.name)
        await self.flush_events()

        directory = self.registry.resolve_directory(entry)
        try:
            primary, axis = await fetch_database(directory, self.config.fetch_timeout)
            if not self.is_current(token):
                raise LoadSuperseded(f"Load of '{entry.name}' was superseded")
            dataset = load_dataset(primary, axis)
            installed = self.finish_load(token, entry.name, dataset, index, self.registry.get(index))
        except (IngestionFailure, StructuralError, ViewSettingsError) as e:
            if not self.fail_load(token, entry.name, e):
                raise LoadSuperseded(f"Load of '{entry.name}' was superseded") from e
            raise

        if not installed:
            raise LoadSuperseded(f"Load of '{entry.name}' was superseded")
        return dataset

    def save_settings(self) -> None:
        """Store the current picks back into the registry entry."""
        if self.entry_index is None or self.entry is None:
            return
        self.entry = self.registry.update(self.entry_index, picked=list(self.picked))

    # ----------------------------------------------------------------- charts

    def _build_charts(self, dataset: Dataset, entry: Optional[DatabaseEntry]) -> Dict[str, BaseChart]:
        """Charts for ``dataset`` under ``entry``'s view settings, sized like the current ones.

        Raises:
            ViewSettingsError: If the filter or logscale pattern is invalid.
        """
        filter_regex = entry.effective_filter if entry else DEFAULT_FILTER
        log_regex = entry.effective_logscale if entry else DEFAULT_LOGSCALE

        try:
            if not filter_dimensions(dataset, filter_regex):
                filter_regex = None
            return {
                name: cls(dataset, filter_regex, log_regex, **self._size_of(self.charts.get(name)))
                for name, cls in CHART_REGISTRY.items()
            }
        except re.error as e:
            raise ViewSettingsError(f"Invalid filter or logscale pattern: {e}") from e

    def _wire_charts(self) -> None:
        self.pcoord.bus.subscribe("selectionchange", self._on_selection_change)
        self.pcoord.bus.subscribe("axisorderchange", self._on_axis_order_change)
        for name, chart in self.charts.items():
            chart.bus.subscribe("mouseover", lambda row, name=name: self._on_mouseover(name, row))
            chart.bus.subscribe("click", self._on_click)

        self.scatter.set_selection(self.pcoord.selection)

    @staticmethod
    def _size_of(chart: Optional[BaseChart]) -> Dict[str, float]:
        if chart is None:
            return {}
        return {"width": chart.width, "height": chart.height}

    def _on_selection_change(self, selection: List[int]) -> None:
        self.scatter.set_selection(selection)
        self._queue(notify_selection_changed, selection, self.dataset.row_count)

    def _on_axis_order_change(self, order: List[str]) -> None:
        self._queue(notify_axis_order_changed, order)

    def _on_mouseover(self, chart: str, row: Optional[int]) -> None:
        self.set_highlight([] if row is None else [row])
        values = None if row is None else self.dataset.row_to_json(row)
        self._queue(notify_mouseover, chart, row, values)

    def _on_click(self, row: int) -> None:
        self.toggle_pick(row)

    def require_dataset(self) -> Dataset:
        if self.dataset is None:
            raise NoDatasetLoaded("No dataset loaded")
        return self.dataset

    def chart(self, name: str) -> BaseChart:
        """Chart called ``name`` (KeyError if unknown)."""
        self.require_dataset()
        return self.charts[name]

    @property
    def pcoord(self) -> PcoordChart:
        return self.chart("pcoord")

    @property
    def scatter(self) -> ScatterChart:
        return self.chart("scatter")

    async def ensure_index_raster(self, name: str) -> BaseChart:
        """Redraw the index raster of a chart so hit tests see its current state."""
        chart = self.chart(name)
        await chart.redraw_index()
        return chart

    # ------------------------------------------------------- selection & axes

    def set_axis_ordering(self, category: str, name: str) -> NamedOrdering:
        """Apply a named axis ordering of the dataset.

        Raises:
            KeyError: If the dataset has no such ordering.
        """
        dataset = self.require_dataset()
        if dataset.axis_ordering is None:
            raise KeyError("Dataset has no axis ordering")
        ordering = dataset.axis_ordering.get(category, name)
        order = self.pcoord.set_axis_order(ordering.order)
        self._queue(notify_axis_order_set, order, category, name)
        return ordering

    def set_axis_order(self, order: List[str]) -> List[str]:
        applied = self.pcoord.set_axis_order(order)
        self._queue(notify_axis_order_set, applied, None, None)
        return applied

    # ---------------------------------------------------------- picks & hover

    def set_highlight(self, rows: List[int]) -> List[int]:
        dataset = self.require_dataset()
        for row in rows:
            dataset.row(row)
        rows = list(rows)
        if rows != self.highlighted:
            self.highlighted = rows
            self._queue(notify_highlight_changed, list(rows))
        return self.highlighted

    def toggle_pick(self, row: int) -> bool:
        """Pick ``row`` or un-pick it if already picked. Returns the new state."""
        self.require_dataset().row(row)
        if row in self.picked:
            self.picked.remove(row)
            picked = False
        else:
            self.picked.append(row)
            picked = True
        self._queue(notify_picked_changed, list(self.picked))
        return picked

    # ---------------------------------------------------------- serialization

    def summary(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "state": self.state.value,
            "name": self.name,
            "database_index": self.entry_index,
            "generation": self.generation,
            "error": self.error,
        }
        if self.dataset is not None:
            data.update(self.dataset.to_summary())
            data["selection_count"] = len(self.pcoord.selection)
            data["picked"] = list(self.picked)
            data["highlighted"] = list(self.highlighted)
        return data

    def settings(self) -> List[Dict[str, Any]]:
        """databases.json content with the current view settings saved in."""
        self.save_settings()
        return self.registry.to_list()


# Global session instance
session = Session()


def get_session() -> Session:
    """FastAPI dependency returning the process session."""
    return session
