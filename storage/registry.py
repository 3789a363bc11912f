"""Registry and bootstrap resolution.

The application keeps everything under one root folder in the user's Drive.
Inside it, a single registry spreadsheet lists every case. Both are created
lazily by ``RegistryResolver`` using search-before-create, so resolving is
idempotent and repeated or concurrent cold starts end up on the same objects.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional

from models.schema import (
    APP_ROOT_FOLDER_NAME,
    CASE_REGISTRY_SPREADSHEET_NAME,
    CASES,
    SheetLayout,
)
from utils.retry import retry_async_on_transient_error
from .base import FileInfo, FOLDER_MIME_TYPE, SPREADSHEET_MIME_TYPE, StorageError
from .client import TabularClient
from .ranges import header_range, row_range
from .result import Result, Success, failure

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RegistryHandle:
    """Ids of the application root folder and the case registry."""
    root_folder_id: str
    registry_spreadsheet_id: str


def is_transient(exc: Exception) -> bool:
    return isinstance(exc, StorageError) and exc.transient


def log_retry(exc: Exception, attempt: int, delay: float) -> None:
    logger.warning("Transient failure on attempt %d (%s), retrying in %.1fs",
                   attempt, exc, delay)


def _canonical(items: List[FileInfo]) -> FileInfo:
    """Oldest item wins; ties are broken by id so every caller agrees."""
    return min(items, key=lambda f: (f.created_time, f.id))


async def get_or_create(client: TabularClient, name: str, parent_id: str,
                        mime_type: str,
                        create: Callable[[], Awaitable[Result[FileInfo]]]) -> FileInfo:
    """Find an item by name in a folder, creating it only if absent.

    After creating, the folder is searched again. If a concurrent caller
    created the same item, the oldest one is kept and our own copy is moved
    to the trash.

    Raises:
        StorageError: If a search or the create fails
    """
    existing = (await client.find_files(name, parent_id, mime_type)).unwrap()
    if existing:
        if len(existing) > 1:
            logger.warning("Found %d items named '%s'; using the oldest",
                           len(existing), name)
        return _canonical(existing)

    created = (await create()).unwrap()
    peers = (await client.find_files(name, parent_id, mime_type)).unwrap()
    winner = _canonical(peers + [created])
    if winner.id != created.id:
        logger.warning("'%s' was created concurrently; keeping %s, trashing %s",
                       name, winner.id, created.id)
        trashed = await client.trash_file(created.id)
        if not isinstance(trashed, Success):
            logger.error("Could not trash duplicate '%s' (%s); remove it by hand",
                         name, created.id)
    return winner


async def ensure_sheet_header(client: TabularClient, spreadsheet_id: str,
                              layout: SheetLayout) -> None:
    """Make sure a sheet exists and has a header row.

    An existing header is left alone; checking it is up to the reader.

    Raises:
        StorageError: If any remote call fails
    """
    sheets = (await client.list_sheets(spreadsheet_id)).unwrap()
    if layout.name not in {s.title for s in sheets}:
        (await client.add_sheet(spreadsheet_id, layout.name)).unwrap()
    header = (await client.read_range(spreadsheet_id, header_range(layout.name))).unwrap()
    if not header or not any(cell.strip() for cell in header[0]):
        (await client.update_range(
            spreadsheet_id, row_range(layout.name, 0), [list(layout.columns)]
        )).unwrap()
        logger.info("Wrote header row of '%s' in %s", layout.name, spreadsheet_id)


class RegistryResolver:
    """Resolves (and lazily creates) the root folder and case registry.

    Concurrent ``resolve()`` calls share one in-flight bootstrap. Once
    resolved, the handle is kept for the lifetime of the resolver.

    Args:
        client: Remote tabular client
        root_folder_name: Name of the application root folder
        registry_name: Name of the registry spreadsheet
        root_parent_id: Folder the root folder lives in ("root" is My Drive)
        max_retries: Retries of the whole bootstrap on transient failures
        base_delay: First retry delay in seconds
    """

    def __init__(self, client: TabularClient,
                 root_folder_name: str = APP_ROOT_FOLDER_NAME,
                 registry_name: str = CASE_REGISTRY_SPREADSHEET_NAME,
                 root_parent_id: str = "root",
                 max_retries: int = 3,
                 base_delay: float = 1.0) -> None:
        self.client = client
        self.root_folder_name = root_folder_name
        self.registry_name = registry_name
        self.root_parent_id = root_parent_id
        self._handle: Optional[RegistryHandle] = None
        self._inflight: Optional[asyncio.Future] = None
        self._bootstrap_with_retry = retry_async_on_transient_error(
            is_retryable=is_transient,
            max_retries=max_retries,
            base_delay=base_delay,
            max_delay=30.0,
            on_retry=log_retry,
        )(self._bootstrap)

    @property
    def handle(self) -> Optional[RegistryHandle]:
        """The resolved handle, or None before the first successful resolve."""
        return self._handle

    def reset(self) -> None:
        """Forget the resolved handle; the next resolve searches again."""
        self._handle = None

    async def resolve(self) -> "Result[RegistryHandle]":
        if self._handle is not None:
            return Success(self._handle)
        if self._inflight is None or self._inflight.done():
            self._inflight = asyncio.ensure_future(self._resolve())
        # Shielded so that one cancelled caller doesn't cancel the others.
        return await asyncio.shield(self._inflight)

    async def _resolve(self) -> "Result[RegistryHandle]":
        try:
            handle = await self._bootstrap_with_retry()
        except StorageError as e:
            logger.error("Bootstrap of '%s' failed: %s", self.root_folder_name, e)
            return failure(e)
        self._handle = handle
        return Success(handle)

    async def _bootstrap(self) -> RegistryHandle:
        root = await get_or_create(
            self.client, self.root_folder_name, self.root_parent_id, FOLDER_MIME_TYPE,
            lambda: self.client.create_folder(self.root_folder_name, self.root_parent_id),
        )
        registry = await get_or_create(
            self.client, self.registry_name, root.id, SPREADSHEET_MIME_TYPE,
            lambda: self.client.create_spreadsheet(self.registry_name, root.id, [CASES.name]),
        )
        await ensure_sheet_header(self.client, registry.id, CASES)
        logger.info("Resolved registry %s in root folder %s", registry.id, root.id)
        return RegistryHandle(root_folder_id=root.id, registry_spreadsheet_id=registry.id)
