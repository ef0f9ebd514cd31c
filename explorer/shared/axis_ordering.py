"""
Named axis orderings loaded from ``axis_order.csv``.

The table layout is ``category, name, rank(dim1), rank(dim2), ...``. The
header row names the ranked dimensions in columns 2..N. Every following row
is one ordering inside its category: the ranked dimensions sorted by rank
ascending, with absent ranks at the end.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .csv_parser import parse_number


@dataclass(frozen=True)
class NamedOrdering:
    """One named permutation of dimension names."""

    name: str
    order: Tuple[str, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "order": list(self.order)}


@dataclass
class AxisOrderCatalog:
    """Orderings grouped by category, in file order."""

    orderings: Dict[str, List[NamedOrdering]] = field(default_factory=dict)

    @property
    def categories(self) -> List[str]:
        return list(self.orderings)

    def get(self, category: str, name: str) -> NamedOrdering:
        """Look up one ordering (KeyError if either key is unknown)."""
        for ordering in self.orderings[category]:
            if ordering.name == name:
                return ordering
        raise KeyError(f"No ordering '{name}' in category '{category}'")

    def to_dict(self) -> Dict[str, List[Dict[str, Any]]]:
        return {
            category: [o.to_dict() for o in items]
            for category, items in self.orderings.items()
        }


def _is_rank(value: Optional[str]) -> bool:
    if value is None:
        return True
    number = parse_number(value)
    return number is not None and not math.isnan(number)


def check_axis_ordering_errors(
    rows: Sequence[Sequence[Optional[str]]], dimensions: Sequence[str]
) -> Optional[str]:
    """Validate a parsed axis-ordering table against the dataset dimensions.

    Returns:
        An error message, or None when the table is usable.
    """
    if len(rows) < 2:
        return "The first and second lines in the file are required."

    width = len(rows[0])

    for line, row in enumerate(rows, start=1):
        if len(row) != width:
            return (
                "Each line must have an equal number of comma separated values (columns). "
                f"Line {line} has {len(row)}, expected {width}."
            )

    known = set(dimensions)
    for name in rows[0][2:]:
        if name is None or name.strip() not in known:
            return f"Dimension in axis order file '{name}' is not valid."

    for row in rows:
        if row[0] is None:
            return "Category cannot be undefined."
        if row[1] is None:
            return "Value cannot be undefined."

    for line, row in enumerate(rows[1:], start=2):
        for value in row[2:]:
            if not _is_rank(value):
                return f"Values for dimensions cannot be NaN (line {line}, value '{value}')."

    return None


def parse_axis_ordering(rows: Sequence[Sequence[Optional[str]]]) -> AxisOrderCatalog:
    """Build a catalog from a table that passed :func:`check_axis_ordering_errors`."""
    names = [name.strip() for name in rows[0][2:]]
    catalog = AxisOrderCatalog()

    for row in rows[1:]:
        category = row[0].strip()
        ranks = [parse_number(v) for v in row[2:]]
        # sorted() is stable, so equal ranks keep column order
        positions = sorted(
            range(len(names)),
            key=lambda i: (ranks[i] is None, 0.0 if ranks[i] is None else ranks[i]),
        )
        ordering = NamedOrdering(row[1].strip(), tuple(names[i] for i in positions))
        catalog.orderings.setdefault(category, []).append(ordering)

    return catalog
