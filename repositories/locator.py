"""Header mapping and row location.

Sheets address rows by position, and positions shift whenever a row above is
deleted. ``RowLocator`` hides that: callers ask for an entity's row by id and
get it pinned for the duration of their write. ``SheetRowLocator`` re-reads
the sheet each time and serializes locate-then-write per sheet within the
process. Across processes a concurrent delete can still shift rows between
the read and the write.
"""

import asyncio
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncContextManager, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from models.schema import SheetLayout
from storage.base import RowNotFoundError, SchemaMismatchError
from storage.client import TabularClient
from storage.ranges import sheet_range
from utils.sanitize import unsanitize_cell


class HeaderMap:
    """Column positions of a sheet, keyed by header label.

    Labels match case-insensitively with surrounding whitespace ignored. If a
    label appears twice, the leftmost column wins.
    """

    def __init__(self, header: Sequence[str]) -> None:
        self.labels = [str(label).strip() for label in header]
        self._index: Dict[str, int] = {}
        for position, label in enumerate(self.labels):
            key = label.casefold()
            if key and key not in self._index:
                self._index[key] = position

    @property
    def is_empty(self) -> bool:
        return not self._index

    def index(self, label: str) -> Optional[int]:
        return self._index.get(label.strip().casefold())

    def require(self, labels: Iterable[str], sheet: str) -> None:
        """Raise ``SchemaMismatchError`` naming every missing label."""
        missing = [label for label in labels if self.index(label) is None]
        if missing:
            raise SchemaMismatchError(
                f"Sheet '{sheet}' is missing column(s): {', '.join(missing)}"
            )

    def record(self, row: Sequence[str], labels: Iterable[str]) -> Dict[str, str]:
        """Raw cell values of ``row`` for each label ("" when absent)."""
        values = {}
        for label in labels:
            position = self.index(label)
            values[label] = row[position] if position is not None and position < len(row) else ""
        return values

    def build_row(self, values: Mapping[str, str], base: Sequence[str] = ()) -> List[str]:
        """Lay ``values`` out in column order on top of ``base``.

        Cells of ``base`` under unknown columns are kept; labels without a
        column are dropped.
        """
        row = list(base)
        width = max(len(self.labels), len(row))
        row.extend([""] * (width - len(row)))
        for label, value in values.items():
            position = self.index(label)
            if position is not None:
                row[position] = value
        return row


@dataclass
class RowLocation:
    """An entity's row as found right before a write.

    Attributes:
        index: 0-based sheet position (the header is row 0)
        values: Raw cell values of the row
        header: Header of the sheet at the time of the read
    """
    index: int
    values: List[str]
    header: HeaderMap


class RowLocator(ABC):
    """Finds the row holding an entity so that it can be rewritten or removed."""

    @abstractmethod
    def pinned(self, spreadsheet_id: str, layout: SheetLayout,
               entity_id: str) -> AsyncContextManager[RowLocation]:
        """Locate the entity's row and keep it valid until the block exits.

        Raises:
            RowNotFoundError: If no row carries ``entity_id``
            SchemaMismatchError: If the sheet has no id column
            StorageError: If the sheet can't be read
        """
        pass


class SheetRowLocator(RowLocator):
    """Locates rows by scanning the id column of a fresh read."""

    def __init__(self, client: TabularClient) -> None:
        self.client = client
        self._locks: Dict[Tuple[str, str], asyncio.Lock] = {}

    def _lock(self, spreadsheet_id: str, sheet: str) -> asyncio.Lock:
        key = (spreadsheet_id, sheet)
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    @asynccontextmanager
    async def pinned(self, spreadsheet_id: str, layout: SheetLayout, entity_id: str):
        async with self._lock(spreadsheet_id, layout.name):
            rows = (await self.client.read_range(spreadsheet_id, sheet_range(layout.name))).unwrap()
            header = HeaderMap(rows[0] if rows else [])
            header.require([layout.id_column], layout.name)
            id_position = header.index(layout.id_column)
            for index, row in enumerate(rows[1:], start=1):
                if id_position < len(row) and unsanitize_cell(row[id_position]).strip() == entity_id:
                    yield RowLocation(index=index, values=list(row), header=header)
                    return
            raise RowNotFoundError(
                f"No row with id {entity_id} in sheet '{layout.name}'", status=404
            )
