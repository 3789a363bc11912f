"""A1 notation helpers.

Row indexes passed to these helpers are 0-based sheet positions (row 0 is the
header row); A1 notation itself is 1-based.
"""

import re
from dataclasses import dataclass
from typing import Optional

_CELLS = re.compile(r"^([A-Za-z]*)(\d*)(?::([A-Za-z]*)(\d*))?$")


def quote_sheet(title: str) -> str:
    """Quote a sheet title for use in A1 notation."""
    return "'" + title.replace("'", "''") + "'"


def sheet_range(title: str) -> str:
    """Range covering every populated cell of a sheet."""
    return quote_sheet(title)


def header_range(title: str) -> str:
    return f"{quote_sheet(title)}!1:1"


def row_range(title: str, row_index: int) -> str:
    """Range anchored at column A of the 0-based ``row_index``."""
    return f"{quote_sheet(title)}!A{row_index + 1}"


@dataclass(frozen=True)
class A1Range:
    """Parsed A1 range. Rows are 1-based and inclusive; None means open."""
    sheet: str
    start_row: Optional[int] = None
    end_row: Optional[int] = None
    start_column: int = 0


def column_index(letters: str) -> int:
    """0-based index of a column given its letters (``A`` -> 0, ``AA`` -> 26)."""
    index = 0
    for char in letters.upper():
        index = index * 26 + (ord(char) - ord("A") + 1)
    return max(index - 1, 0)


def parse_range(range_: str) -> A1Range:
    """Parse the A1 forms produced by this module (and plain ``Sheet!A1:Z``).

    Raises:
        ValueError: If the range can't be parsed
    """
    if range_.startswith("'"):
        pos = 1
        title_chars = []
        while pos < len(range_):
            char = range_[pos]
            if char == "'":
                if range_[pos + 1:pos + 2] == "'":
                    title_chars.append("'")
                    pos += 2
                    continue
                break
            title_chars.append(char)
            pos += 1
        else:
            raise ValueError(f"Unterminated sheet name in range: {range_}")
        title = "".join(title_chars)
        rest = range_[pos + 1:]
    else:
        title, _, cells = range_.partition("!")
        rest = "!" + cells if cells else ""

    if not rest:
        return A1Range(sheet=title)
    if not rest.startswith("!"):
        raise ValueError(f"Invalid range: {range_}")

    match = _CELLS.match(rest[1:])
    if not match:
        raise ValueError(f"Invalid range: {range_}")
    start_col, start_row, end_col, end_row = match.groups()
    has_end = end_col is not None or end_row is not None
    first = int(start_row) if start_row else None
    if has_end:
        last = int(end_row) if end_row else None
    else:
        last = first
    return A1Range(
        sheet=title,
        start_row=first,
        end_row=last,
        start_column=column_index(start_col) if start_col else 0,
    )
