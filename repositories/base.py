"""Base class for entity repositories backed by one sheet per parent.

A repository maps an entity type onto the rows of a sheet. Columns are found
by header label (``HeaderMap``), values are sanitized on the way in and
un-escaped on the way out, and rows are addressed through a ``RowLocator``.
Every public operation returns a tri-state ``Result`` and records its
progress in ``state``.
"""

import asyncio
import dataclasses
import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Any, Callable, Dict, Generic, List, Mapping, Optional, Tuple, Type, TypeVar

from models.entities import new_id
from models.schema import SheetLayout
from storage.base import SchemaMismatchError, StorageError
from storage.cache import LocalCache
from storage.client import TabularClient
from storage.ranges import header_range, row_range, sheet_range
from storage.registry import is_transient, log_retry
from storage.result import Error, OperationState, Result, Success, failure
from utils.retry import retry_async_on_transient_error
from utils.sanitize import sanitize_cell, sanitize_list, unsanitize_cell

from .locator import HeaderMap, RowLocator

logger = logging.getLogger(__name__)

T = TypeVar("T")
P = TypeVar("P")


def parse_int(value: str, default: int = 0) -> int:
    """Lenient integer parsing for human-editable cells."""
    try:
        return int(float(value.strip()))
    except (ValueError, AttributeError):
        return default


def parse_bool(value: str) -> bool:
    return value.strip().lower() in ("true", "yes", "1", "y")


def to_cell(value: Any) -> str:
    """Sanitized cell text for a field value."""
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, (list, tuple)):
        return sanitize_list(value)
    return sanitize_cell(value)


class SheetRepository(ABC, Generic[T, P]):
    """CRUD over the rows of ``layout`` in the spreadsheet of a parent ``P``.

    Subclasses define the layout, the entity type, and the mapping between
    entities and records (``{header label: value}``).
    """

    layout: SheetLayout
    entity_type: Type[T]

    def __init__(self, client: TabularClient, cache: LocalCache, locator: RowLocator,
                 max_retries: int = 3, base_delay: float = 0.5) -> None:
        self.client = client
        self.cache = cache
        self.locator = locator
        self.state: Dict[str, OperationState] = defaultdict(lambda: OperationState.IDLE)
        self._headers: Dict[Tuple[str, str], HeaderMap] = {}
        self._cache_locks: Dict[str, asyncio.Lock] = {}
        self._lookup_sheet_id = retry_async_on_transient_error(
            is_retryable=is_transient,
            max_retries=max_retries,
            base_delay=base_delay,
            on_retry=log_retry,
        )(self._sheet_id)

    # =========================================================================
    # Mapping hooks
    # =========================================================================

    @abstractmethod
    def spreadsheet_id(self, parent: P) -> str:
        """Spreadsheet holding this repository's sheet for ``parent``."""
        pass

    @abstractmethod
    def cache_key(self, parent: Optional[P]) -> str:
        pass

    @abstractmethod
    def to_record(self, entity: T) -> Dict[str, Any]:
        """Field values keyed by header label (unsanitized)."""
        pass

    @abstractmethod
    def from_record(self, record: Mapping[str, str], parent: P) -> T:
        """Build an entity from raw cell values keyed by header label."""
        pass

    def prepare(self, entity: T, parent: P) -> T:
        """Entity as it will be written by an insert; assigns a new id."""
        if getattr(entity, "id", ""):
            return entity
        return dataclasses.replace(entity, id=new_id())

    def prepare_update(self, entity: T, parent: P) -> T:
        return entity

    def with_row(self, entity: T, index: int) -> T:
        """Attach the observed sheet position, for entities that track it."""
        return entity

    def order(self, entities: List[T]) -> List[T]:
        return entities

    async def resolve_parent(self, parent: Optional[P]) -> P:
        if parent is None:
            raise ValueError(f"{type(self).__name__} needs a parent")
        return parent

    @staticmethod
    def text(record: Mapping[str, str], label: str) -> str:
        return unsanitize_cell(record.get(label, ""))

    # =========================================================================
    # Public operations
    # =========================================================================

    async def list(self, parent: Optional[P] = None,
                   prefer_cache: bool = False) -> "Result[List[T]]":
        """All entities of ``parent``, in sheet order.

        Args:
            parent: Owning object
            prefer_cache: Answer from the local snapshot if there is one

        Returns:
            Result carrying the entities. A failed remote read is reported
            as a failure even when a snapshot exists.
        """
        return await self._track("list", self._list(parent, prefer_cache))

    async def insert(self, entity: T, parent: Optional[P] = None) -> "Result[T]":
        """Append one entity; the result carries it with its new id."""
        result = await self._track("insert", self._insert_many([entity], parent))
        if isinstance(result, Success):
            return Success(result.value[0])
        return result

    async def insert_many(self, entities: List[T],
                          parent: Optional[P] = None) -> "Result[List[T]]":
        """Append several entities with a single append call."""
        return await self._track("insert", self._insert_many(entities, parent))

    async def update(self, entity: T, parent: Optional[P] = None) -> "Result[T]":
        """Rewrite the entity's row, located by id right before the write."""
        return await self._track("update", self._update(entity, parent))

    async def delete(self, entity: T, parent: Optional[P] = None) -> "Result[None]":
        """Remove the entity's row from the sheet."""
        return await self._track("delete", self._delete(entity, parent))

    def cached(self, parent: Optional[P] = None) -> Optional[List[T]]:
        """Local snapshot of ``parent``'s entities; None if never cached."""
        return self.cache.load(self.cache_key(parent), self.entity_type)

    # =========================================================================
    # Implementation
    # =========================================================================

    async def _track(self, operation: str, work) -> Result:
        self.state[operation] = OperationState.IN_FLIGHT
        try:
            result = await work
        except asyncio.CancelledError:
            self.state[operation] = OperationState.IDLE
            raise
        self.state[operation] = OperationState.of(result)
        return result

    async def _list(self, parent: Optional[P], prefer_cache: bool) -> "Result[List[T]]":
        if prefer_cache:
            snapshot = await self.client.run_blocking(self.cached, parent)
            if snapshot is not None:
                return Success(snapshot)
        try:
            parent = await self.resolve_parent(parent)
            entities = await self._read_all(parent)
        except StorageError as e:
            return failure(e)
        await self._save_cache(self.cache_key(parent), entities)
        return Success(entities)

    async def _read_all(self, parent: P) -> List[T]:
        spreadsheet_id = self.spreadsheet_id(parent)
        name = self.layout.name
        rows = (await self.client.read_range(spreadsheet_id, sheet_range(name))).unwrap()
        header = HeaderMap(rows[0] if rows else [])
        if header.is_empty:
            return []
        header.require(self.layout.required, name)
        self._headers[(spreadsheet_id, name)] = header

        entities = []
        for index, row in enumerate(rows[1:], start=1):
            if not any(cell.strip() for cell in row):
                continue
            record = header.record(row, self.layout.columns)
            if not self.text(record, self.layout.id_column).strip():
                logger.warning("Skipping row %d of '%s' in %s: no id",
                               index + 1, name, spreadsheet_id)
                continue
            entities.append(self.with_row(self.from_record(record, parent), index))
        return self.order(entities)

    async def _header(self, spreadsheet_id: str) -> HeaderMap:
        """Header of the sheet, read once per session.

        A sheet without any header gets the layout's header written first.
        """
        name = self.layout.name
        key = (spreadsheet_id, name)
        header = self._headers.get(key)
        if header is not None:
            return header
        rows = (await self.client.read_range(spreadsheet_id, header_range(name))).unwrap()
        header = HeaderMap(rows[0] if rows else [])
        if header.is_empty:
            (await self.client.update_range(
                spreadsheet_id, row_range(name, 0), [list(self.layout.columns)]
            )).unwrap()
            logger.info("Wrote missing header row of '%s' in %s", name, spreadsheet_id)
            header = HeaderMap(self.layout.columns)
        header.require(self.layout.required, name)
        self._headers[key] = header
        return header

    def _cells(self, entity: T) -> Dict[str, str]:
        return {label: to_cell(value) for label, value in self.to_record(entity).items()}

    async def _insert_many(self, entities: List[T], parent: Optional[P]) -> "Result[List[T]]":
        if not entities:
            return Success([])
        try:
            parent = await self.resolve_parent(parent)
            spreadsheet_id = self.spreadsheet_id(parent)
            header = await self._header(spreadsheet_id)
            prepared = [self.prepare(e, parent) for e in entities]
            rows = [header.build_row(self._cells(e)) for e in prepared]
            confirmation = (await self.client.append_rows(
                spreadsheet_id, sheet_range(self.layout.name), rows
            )).unwrap()
            if confirmation.updated_rows != len(rows):
                raise StorageError(
                    f"Append to '{self.layout.name}' confirmed "
                    f"{confirmation.updated_rows} of {len(rows)} row(s)"
                )
        except StorageError as e:
            return failure(e)
        except ValueError as e:
            return Error(e)
        await self._patch_cache(parent, lambda items: items + prepared)
        return Success(prepared)

    async def _update(self, entity: T, parent: Optional[P]) -> "Result[T]":
        entity_id = getattr(entity, "id", "")
        if not entity_id:
            return Error(ValueError("Cannot update an entity that has no id"))
        try:
            parent = await self.resolve_parent(parent)
            spreadsheet_id = self.spreadsheet_id(parent)
            entity = self.prepare_update(entity, parent)
            async with self.locator.pinned(spreadsheet_id, self.layout, entity_id) as location:
                location.header.require(self.layout.required, self.layout.name)
                row = location.header.build_row(self._cells(entity), base=location.values)
                (await self.client.update_range(
                    spreadsheet_id, row_range(self.layout.name, location.index), [row]
                )).unwrap()
            updated = self.with_row(entity, location.index)
        except StorageError as e:
            return failure(e)
        except ValueError as e:
            return Error(e)
        await self._patch_cache(parent, lambda items: [
            updated if getattr(i, "id", None) == entity_id else i for i in items
        ])
        return Success(updated)

    async def _delete(self, entity: T, parent: Optional[P]) -> "Result[None]":
        entity_id = getattr(entity, "id", "")
        if not entity_id:
            return Error(ValueError("Cannot delete an entity that has no id"))
        try:
            parent = await self.resolve_parent(parent)
            spreadsheet_id = self.spreadsheet_id(parent)
            sheet_id = await self._lookup_sheet_id(spreadsheet_id, self.layout.name)
            async with self.locator.pinned(spreadsheet_id, self.layout, entity_id) as location:
                (await self.client.delete_rows(
                    spreadsheet_id, sheet_id, location.index, location.index + 1
                )).unwrap()
        except StorageError as e:
            return failure(e)
        await self._patch_cache(parent, lambda items: [
            i for i in items if getattr(i, "id", None) != entity_id
        ])
        return Success(None)

    async def _sheet_id(self, spreadsheet_id: str, title: str) -> int:
        return (await self.client.get_sheet_id(spreadsheet_id, title)).unwrap()

    # =========================================================================
    # Cache maintenance
    # =========================================================================

    async def _save_cache(self, key: str, entities: List[T]) -> None:
        try:
            await self.client.run_blocking(self.cache.save, key, entities)
        except OSError as e:
            logger.warning("Could not write cache snapshot '%s': %s", key, e)

    async def _patch_cache(self, parent: P, change: Callable[[List[T]], List[T]]) -> None:
        """Apply a successful write to an existing snapshot."""
        key = self.cache_key(parent)
        lock = self._cache_locks.get(key)
        if lock is None:
            lock = self._cache_locks[key] = asyncio.Lock()
        async with lock:
            snapshot = await self.client.run_blocking(self.cache.load, key, self.entity_type)
            if snapshot is None:
                return
            await self._save_cache(key, change(snapshot))
