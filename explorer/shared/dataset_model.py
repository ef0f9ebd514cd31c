"""
Dataset model for Cinema databases.

Turns the text of a ``data.csv`` table (and optionally an ``axis_order.csv``
table) into an immutable :class:`Dataset`: dimension names, inferred
dimension types and domains, and the list of rows. Also implements the
"find similar" query used by the query panel.

Values in a row are:
- ``float`` for numeric dimensions (``nan`` for "NaN" or unparseable text)
- ``str`` for string dimensions
- ``None`` when the value is absent (empty unquoted field in the CSV)
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np

from .axis_ordering import AxisOrderCatalog, check_axis_ordering_errors, parse_axis_ordering
from .csv_parser import parse_csv, parse_number
from .errors import AxisOrderingWarning, StructuralError
from .logger import get_logger

logger = get_logger(__name__)

Value = Union[float, str, None]


class DimensionType(str, Enum):
    """Type of a dimension (column)."""

    INTEGER = "integer"
    FLOAT = "float"
    STRING = "string"


def is_numeric_text(text: Optional[str]) -> bool:
    return parse_number(text) is not None


@dataclass(frozen=True)
class Dimension:
    """A named column of the dataset with its inferred type and domain.

    ``domain`` is ``(min, max)`` for numeric dimensions and the tuple of
    distinct observed values in first-seen order for string dimensions.
    """

    name: str
    type: DimensionType
    domain: Tuple[Any, ...]

    @property
    def is_string(self) -> bool:
        return self.type == DimensionType.STRING

    @property
    def is_numeric(self) -> bool:
        return not self.is_string

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "type": self.type.value,
            "domain": list(self.domain),
        }


def check_errors(data: Sequence[Sequence[Optional[str]]]) -> Optional[str]:
    """Check parsed CSV rows for structural errors.

    Returns:
        An error message, or None when the table is usable.
    """
    if len(data) < 2:
        return "The first and second lines in the file are required."

    if len(data[0]) < 2:
        return "The dataset must include at least two dimensions."

    if any(v is None for v in data[0]) or any(v is None for v in data[1]):
        return "Empty values may not occur in the header (first line) or first data row (second line)."

    width = len(data[0])
    for line, row in enumerate(data, start=1):
        if len(row) != width:
            return (
                "Each line must have an equal number of comma separated values (columns). "
                f"Line {line} has {len(row)}, expected {width}."
            )

    seen = set()
    for name in data[0]:
        key = name.strip()
        if key in seen:
            return f"Dimension '{key}' appears more than once in the header."
        seen.add(key)

    return None


def _infer_dimension(name: str, raw: List[Optional[str]]) -> Tuple[Dimension, List[Value]]:
    """Infer type and domain of one column and convert its values."""
    if is_numeric_text(raw[0]):
        values: List[Value] = []
        for text in raw:
            if text is None:
                values.append(None)
            else:
                number = parse_number(text)
                values.append(math.nan if number is None else number)

        finite = [v for v in values if v is not None and not math.isnan(v)]
        first = values[0]
        if math.isnan(first) or not all(v.is_integer() for v in finite):
            dim_type = DimensionType.FLOAT
        else:
            dim_type = DimensionType.INTEGER

        domain = (min(finite), max(finite)) if finite else (0.0, 0.0)
        return Dimension(name, dim_type, domain), values

    unique = dict.fromkeys(v for v in raw if v is not None)
    return Dimension(name, DimensionType.STRING, tuple(unique)), list(raw)


class Dataset:
    """Immutable ensemble of rows with typed dimensions.

    Rows are referenced everywhere by their zero-based index. Build one with
    :func:`load_dataset`.
    """

    def __init__(
        self,
        dimensions: Sequence[Dimension],
        columns: Mapping[str, Sequence[Value]],
        axis_ordering: Optional[AxisOrderCatalog] = None,
        warnings: Optional[List[str]] = None,
    ):
        self._dimensions = tuple(dimensions)
        self._by_name = {d.name: d for d in self._dimensions}
        self.axis_ordering = axis_ordering
        self.warnings: Tuple[str, ...] = tuple(warnings or ())

        row_count = len(next(iter(columns.values()))) if columns else 0
        self._rows = tuple(
            MappingProxyType({d.name: columns[d.name][i] for d in self._dimensions})
            for i in range(row_count)
        )

        # Column caches used by vectorized queries
        self._numeric: Dict[str, np.ndarray] = {}
        self._absent: Dict[str, np.ndarray] = {}
        self._strings: Dict[str, Tuple[Optional[str], ...]] = {}
        for d in self._dimensions:
            col = columns[d.name]
            self._absent[d.name] = np.array([v is None for v in col], dtype=bool)
            if d.is_string:
                self._strings[d.name] = tuple(col)
            else:
                self._numeric[d.name] = np.array(
                    [math.nan if v is None else v for v in col], dtype=np.float64
                )
                self._numeric[d.name].setflags(write=False)
            self._absent[d.name].setflags(write=False)

    # ----------------------------------------------------------------- access

    @property
    def dimensions(self) -> Tuple[Dimension, ...]:
        return self._dimensions

    @property
    def dimension_names(self) -> List[str]:
        return [d.name for d in self._dimensions]

    @property
    def row_count(self) -> int:
        return len(self._rows)

    @property
    def rows(self) -> Tuple[Mapping[str, Value], ...]:
        return self._rows

    @property
    def has_axis_ordering(self) -> bool:
        return self.axis_ordering is not None

    def dimension(self, name: str) -> Dimension:
        """Return the dimension called ``name`` (KeyError if unknown)."""
        return self._by_name[name]

    def has_dimension(self, name: str) -> bool:
        return name in self._by_name

    def is_string_dimension(self, name: str) -> bool:
        return self._by_name[name].is_string

    def row(self, index: int) -> Mapping[str, Value]:
        if not 0 <= index < len(self._rows):
            raise IndexError(f"Row index {index} out of range (0..{len(self._rows) - 1})")
        return self._rows[index]

    def numeric_column(self, name: str) -> np.ndarray:
        """Values of a numeric dimension as a read-only float array (absent -> nan)."""
        return self._numeric[name]

    def string_column(self, name: str) -> Tuple[Optional[str], ...]:
        return self._strings[name]

    def absent_mask(self, name: str) -> np.ndarray:
        return self._absent[name]

    def column(self, name: str) -> Union[np.ndarray, List[Optional[str]]]:
        """All values of one dimension (float array or list of strings)."""
        if self._by_name[name].is_string:
            return list(self._strings[name])
        return self._numeric[name]

    # ------------------------------------------------------------- similarity

    def _coerce_query_value(self, dimension: Dimension, value: Any) -> Value:
        if dimension.is_string:
            if isinstance(value, float) and value.is_integer():
                return str(int(value))
            return str(value)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return float(value)
        number = parse_number(str(value))
        return math.nan if number is None else number

    def get_similar(self, query: Mapping[str, Any], threshold: float) -> List[int]:
        """Get the indices of rows similar to a (partial) query row.

        The distance to a row is a Manhattan distance where every numeric
        dimension is normalized to its domain:
        - string dimensions add 0 when equal, 1 otherwise
        - a NaN query value is 0 from NaN and 1 from anything else (absent too)
        - an absent or NaN row value is 1 from a non-NaN query value
        - otherwise the absolute difference of the normalized values

        The NaN row rule follows the documented intent of the Cinema viewer,
        not its code: there the NaN term itself is NaN, so such a row is never
        similar whatever the threshold. Here it only costs 1.

        Dimensions missing from the query (or given as None) add nothing.

        Args:
            query: Mapping of dimension name to value.
            threshold: Maximum (inclusive) total distance.

        Returns:
            Indices of similar rows in ascending order.
        """
        distance = np.zeros(self.row_count, dtype=np.float64)

        for name, raw in query.items():
            if raw is None:
                continue
            if name not in self._by_name:
                logger.debug("Ignoring unknown dimension '%s' in similarity query", name)
                continue
            dimension = self._by_name[name]
            value = self._coerce_query_value(dimension, raw)
            absent = self._absent[name]

            if dimension.is_string:
                distance += np.fromiter(
                    (0.0 if v == value else 1.0 for v in self._strings[name]),
                    dtype=np.float64,
                    count=self.row_count,
                )
                continue

            column = self._numeric[name]
            is_nan = np.isnan(column)
            if math.isnan(value):
                distance += np.where(is_nan & ~absent, 0.0, 1.0)
            else:
                low, high = dimension.domain
                width = high - low
                if width == 0:
                    normalized = np.zeros_like(column)
                    query_position = 0.0
                else:
                    normalized = (column - low) / width
                    query_position = (value - low) / width
                term = np.abs(query_position - normalized)
                distance += np.where(is_nan, 1.0, term)

        return [int(i) for i in np.flatnonzero(distance <= threshold)]

    def similarity_bounds(
        self, query: Mapping[str, Any], threshold: float
    ) -> Tuple[Dict[str, Value], Dict[str, Value]]:
        """Lower and upper rows bracketing a similarity query, for overlays.

        The threshold is spread evenly over the queried dimensions. On a
        0..100 scale of each numeric domain, a dimension may move by
        ``threshold / n * 100`` each way, clamped to the domain. String and
        NaN query values are repeated unchanged in both rows.

        Returns:
            Tuple of (lower, upper) partial rows.
        """
        terms = {}
        for name, raw in query.items():
            if raw is None or name not in self._by_name:
                continue
            terms[name] = self._coerce_query_value(self._by_name[name], raw)

        lower: Dict[str, Value] = {}
        upper: Dict[str, Value] = {}
        if not terms:
            return lower, upper

        allowance = threshold / len(terms) * 100
        for name, value in terms.items():
            dimension = self._by_name[name]
            if dimension.is_string or math.isnan(value):
                lower[name] = upper[name] = value
                continue
            low, high = dimension.domain
            width = high - low
            position = 0.0 if width == 0 else (value - low) / width * 100
            lower[name] = low + max(position - allowance, 0.0) / 100 * width
            upper[name] = low + min(position + allowance, 100.0) / 100 * width
        return lower, upper

    # ---------------------------------------------------------- serialization

    def row_to_json(self, index: int) -> Dict[str, Any]:
        """Row as JSON-safe values (NaN becomes the string "NaN")."""
        out: Dict[str, Any] = {}
        for d in self._dimensions:
            value = self._rows[index][d.name]
            if isinstance(value, float):
                if math.isnan(value):
                    value = "NaN"
                elif d.type == DimensionType.INTEGER:
                    value = int(value)
            out[d.name] = value
        return out

    def to_summary(self) -> Dict[str, Any]:
        return {
            "row_count": self.row_count,
            "dimensions": [d.to_dict() for d in self._dimensions],
            "has_axis_ordering": self.has_axis_ordering,
            "warnings": list(self.warnings),
        }


def _build_columns(
    data: Sequence[Sequence[Optional[str]]],
) -> Tuple[List[Dimension], Dict[str, List[Value]]]:
    error = check_errors(data)
    if error:
        raise StructuralError(error)

    names = [name.strip() for name in data[0]]
    records = data[1:]

    dimensions: List[Dimension] = []
    columns: Dict[str, List[Value]] = {}
    for i, name in enumerate(names):
        raw = [None if r[i] is None else r[i].strip() for r in records]
        dimension, values = _infer_dimension(name, raw)
        dimensions.append(dimension)
        columns[name] = values
    return dimensions, columns


def load_dataset(primary_text: str, axis_ordering_text: Optional[str] = None) -> Dataset:
    """Load a dataset from the text of its data table and optional axis table.

    Errors in the primary table are fatal. Errors in the axis-ordering table
    are logged and the dataset is returned without axis ordering.

    Args:
        primary_text: Text of ``data.csv``.
        axis_ordering_text: Text of ``axis_order.csv`` or None.

    Raises:
        StructuralError: If the primary table is malformed.
    """
    dimensions, columns = _build_columns(parse_csv(primary_text))

    catalog = None
    warnings: List[str] = []
    if axis_ordering_text is not None:
        axis_rows = parse_csv(axis_ordering_text)
        error = check_axis_ordering_errors(axis_rows, [d.name for d in dimensions])
        if error:
            warning = AxisOrderingWarning(f"ERROR in axis_order.csv: {error}")
            logger.warning("%s", warning)
            warnings.append(str(warning))
        else:
            catalog = parse_axis_ordering(axis_rows)

    return Dataset(dimensions, columns, axis_ordering=catalog, warnings=warnings)
