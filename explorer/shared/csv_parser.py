"""
CSV lexing for Cinema databases.

The parser is deliberately tolerant: it never raises on malformed quoting and
leaves structural validation to the dataset model. It distinguishes an absent
value (empty unquoted field, returned as ``None``) from an empty string
(``""`` in the source, returned as ``""``).
"""

from __future__ import annotations

import re
from typing import Iterable, List, Optional, Sequence

#                     (delimiter)         (quoted value)           (value)
_CSV_TOKEN = re.compile(r'(,|\r?\n|\r|^)(?:"([^"]*(?:""[^"]*)*)"|([^,\r\n]*))')

_NEEDS_QUOTES = re.compile(r'[",\r\n]')

_NUMBER = re.compile(r"[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")

Row = List[Optional[str]]


def parse_number(text: Optional[str]) -> Optional[float]:
    """Parse a cell as a number.

    Accepts finite decimal literals and "NaN" (any case). Returns None for
    anything else, including absent cells.
    """
    if text is None:
        return None
    stripped = text.strip()
    if stripped.lower() == "nan":
        return float("nan")
    if _NUMBER.fullmatch(stripped):
        number = float(stripped)
        if number not in (float("inf"), float("-inf")):
            return number
    return None


def parse_csv(text: str) -> List[Row]:
    """Parse CSV text into a list of rows of optional strings.

    Args:
        text: Raw CSV text. Fields are separated by commas, records by
            CR, LF or CRLF. Quoted fields may span delimiters and use
            ``""`` for a literal quote.

    Returns:
        List of rows. Empty unquoted fields are ``None``. An empty document
        yields no rows, and a trailing newline does not produce an extra row.
    """
    rows: List[Row] = []
    if text == "":
        return rows

    for match in _CSV_TOKEN.finditer(text):
        delimiter, quoted, value = match.groups()

        # Anything but a comma starts a new record
        if delimiter != ",":
            rows.append([])

        if quoted is not None:
            rows[-1].append(quoted.replace('""', '"'))
        elif value == "":
            rows[-1].append(None)
        else:
            rows[-1].append(value.replace('""', '"'))

    if len(rows) > 1 and len(rows[-1]) == 1 and rows[-1][0] is None:
        rows.pop()
    return rows


def _format_field(value: Optional[str]) -> str:
    if value is None:
        return ""
    if value == "" or _NEEDS_QUOTES.search(value):
        return '"' + value.replace('"', '""') + '"'
    return value


def format_csv(rows: Iterable[Sequence[Optional[str]]], newline: str = "\n") -> str:
    """Serialize rows back into CSV text readable by :func:`parse_csv`.

    ``None`` is written as an empty unquoted field and ``""`` as a quoted
    empty field, so absent and empty values survive a round trip.
    """
    return newline.join(",".join(_format_field(v) for v in row) for row in rows)
