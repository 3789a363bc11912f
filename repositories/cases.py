"""Case repository: rows of the registry's ``Cases`` sheet."""

import asyncio
import dataclasses
import logging
from typing import Any, Dict, List, Mapping, Optional

from models.entities import Case, now_ms
from models.schema import CASE_SHEETS, CASES
from storage.base import DuplicateCaseError, FOLDER_MIME_TYPE, FileInfo, StorageError
from storage.cache import LocalCache
from storage.client import TabularClient
from storage.ranges import row_range
from storage.registry import RegistryHandle, RegistryResolver, get_or_create
from storage.result import Error, Result, Success, failure

from .base import SheetRepository, parse_bool, parse_int
from .locator import RowLocator

logger = logging.getLogger(__name__)

EVIDENCE_FOLDER_NAME = "Evidence"


def same_name(a: str, b: str) -> bool:
    """Case names compare case-insensitively, ignoring surrounding spaces."""
    return a.strip().casefold() == b.strip().casefold()


class CaseRepository(SheetRepository[Case, RegistryHandle]):
    """Registered cases. The parent is the registry, resolved on demand."""

    layout = CASES
    entity_type = Case

    def __init__(self, client: TabularClient, cache: LocalCache, locator: RowLocator,
                 resolver: RegistryResolver, **kwargs) -> None:
        super().__init__(client, cache, locator, **kwargs)
        self.resolver = resolver
        self._names: Optional[asyncio.Lock] = None

    async def resolve_parent(self, parent: Optional[RegistryHandle]) -> RegistryHandle:
        if parent is not None:
            return parent
        return (await self.resolver.resolve()).unwrap()

    def spreadsheet_id(self, parent: RegistryHandle) -> str:
        return parent.registry_spreadsheet_id

    def cache_key(self, parent: Optional[RegistryHandle]) -> str:
        return "cases"

    def to_record(self, case: Case) -> Dict[str, Any]:
        return {
            "ID": case.id,
            "Case Name": case.name,
            "Spreadsheet ID": case.spreadsheet_id,
            "Folder ID": case.folder_id,
            "Plaintiffs": case.plaintiffs,
            "Defendants": case.defendants,
            "Court": case.court,
            "Archived": case.is_archived,
            "Last Modified": case.last_modified,
        }

    def from_record(self, record: Mapping[str, str], parent: RegistryHandle) -> Case:
        return Case(
            id=self.text(record, "ID").strip(),
            name=self.text(record, "Case Name"),
            spreadsheet_id=self.text(record, "Spreadsheet ID").strip(),
            folder_id=self.text(record, "Folder ID").strip(),
            plaintiffs=self.text(record, "Plaintiffs"),
            defendants=self.text(record, "Defendants"),
            court=self.text(record, "Court"),
            is_archived=parse_bool(self.text(record, "Archived")),
            last_modified=parse_int(self.text(record, "Last Modified")),
        )

    def prepare(self, case: Case, parent: RegistryHandle) -> Case:
        case = super().prepare(case, parent)
        return dataclasses.replace(case, last_modified=case.last_modified or now_ms())

    def prepare_update(self, case: Case, parent: RegistryHandle) -> Case:
        return dataclasses.replace(case, last_modified=now_ms())

    def order(self, cases: List[Case]) -> List[Case]:
        # Most recently modified first
        return sorted(cases, key=lambda c: c.last_modified, reverse=True)

    # =========================================================================
    # Name uniqueness
    # =========================================================================

    def _names_lock(self) -> asyncio.Lock:
        if self._names is None:
            self._names = asyncio.Lock()
        return self._names

    @staticmethod
    def check_names(cases: List[Case], registered: List[Case]) -> None:
        """Raise ``DuplicateCaseError`` if a name is already claimed.

        A name is claimed by any registered case with a different id and by
        earlier cases of the same batch. Comparison ignores letter case.
        """
        claimed = list(registered)
        for case in cases:
            for other in claimed:
                if same_name(other.name, case.name) and not (case.id and other.id == case.id):
                    raise DuplicateCaseError(f"A case named '{case.name.strip()}' already exists")
            claimed.append(case)

    async def _insert_many(self, cases: List[Case],
                           parent: Optional[RegistryHandle]) -> "Result[List[Case]]":
        async with self._names_lock():
            return await self._register(cases, parent)

    async def _register(self, cases: List[Case],
                        parent: Optional[RegistryHandle]) -> "Result[List[Case]]":
        cases = [dataclasses.replace(c, name=c.name.strip()) for c in cases]
        if any(not c.name for c in cases):
            return Error(ValueError("Case name must not be empty"))
        try:
            handle = await self.resolve_parent(parent)
            self.check_names(cases, await self._read_all(handle))
        except StorageError as e:
            return failure(e)
        return await super()._insert_many(cases, handle)

    async def _update(self, case: Case, parent: Optional[RegistryHandle]) -> "Result[Case]":
        if not case.name.strip():
            return Error(ValueError("Case name must not be empty"))
        case = dataclasses.replace(case, name=case.name.strip())
        async with self._names_lock():
            try:
                handle = await self.resolve_parent(parent)
                registered = await self._read_all(handle)
                current = next((c for c in registered if case.id and c.id == case.id), None)
                # A rename must not take another case's name
                if current is None or not same_name(current.name, case.name):
                    self.check_names([case], registered)
            except StorageError as e:
                return failure(e)
            return await super()._update(case, handle)

    # =========================================================================
    # Case lifecycle
    # =========================================================================

    async def find_by_name(self, name: str,
                           parent: Optional[RegistryHandle] = None) -> "Result[Optional[Case]]":
        """The registered case with this name (ignoring case), if any."""
        result = await self.list(parent)
        if not isinstance(result, Success):
            return result
        for case in result.value:
            if same_name(case.name, name):
                return Success(case)
        return Success(None)

    async def create(self, case: Case,
                     parent: Optional[RegistryHandle] = None) -> "Result[Case]":
        """Create a case: folder, spreadsheet with its sheets, registry row.

        Steps run in order and stop at the first failure. Nothing is rolled
        back; remote objects created before a failure are logged as orphaned.
        A name already in the registry fails with ``DuplicateCaseError``
        before anything is created.
        """
        return await self._track("create", self._create(case, parent))

    async def _create(self, case: Case, parent: Optional[RegistryHandle]) -> "Result[Case]":
        name = case.name.strip()
        if not name:
            return Error(ValueError("Case name must not be empty"))
        case = dataclasses.replace(case, name=name)

        async with self._names_lock():
            folder: Optional[FileInfo] = None
            spreadsheet: Optional[FileInfo] = None
            try:
                handle = await self.resolve_parent(parent)
                self.check_names([case], await self._read_all(handle))

                root_id = handle.root_folder_id
                folder = await get_or_create(
                    self.client, name, root_id, FOLDER_MIME_TYPE,
                    lambda: self.client.create_folder(name, root_id),
                )
                spreadsheet = (await self.client.create_spreadsheet(
                    name, folder.id, [layout.name for layout in CASE_SHEETS]
                )).unwrap()
                for layout in CASE_SHEETS:
                    (await self.client.update_range(
                        spreadsheet.id, row_range(layout.name, 0), [list(layout.columns)]
                    )).unwrap()

                new_case = dataclasses.replace(
                    case, spreadsheet_id=spreadsheet.id, folder_id=folder.id
                )
                created = (await super()._insert_many([new_case], handle)).unwrap()[0]
            except StorageError as e:
                if folder is not None:
                    logger.error(
                        "Creating case '%s' failed after remote objects were created; "
                        "orphaned folder %s, spreadsheet %s: %s",
                        name, folder.id, spreadsheet.id if spreadsheet else "(none)", e,
                    )
                return failure(e)

        logger.info("Created case '%s' (spreadsheet %s)", name, created.spreadsheet_id)
        return Success(created)

    async def archive(self, case: Case,
                      parent: Optional[RegistryHandle] = None) -> "Result[Case]":
        """Flag the case as archived in the registry."""
        return await self.update(dataclasses.replace(case, is_archived=True), parent)

    async def delete(self, case: Case, parent: Optional[RegistryHandle] = None,
                     trash_files: bool = False) -> "Result[None]":
        """Remove the registry row, and optionally trash the case's files.

        Args:
            case: Case to delete
            parent: Registry; resolved if None
            trash_files: Also move the case folder (or spreadsheet, if the
                         case has no folder) to the trash
        """
        result = await super().delete(case, parent)
        if not trash_files or not isinstance(result, Success):
            return result
        target = case.folder_id or case.spreadsheet_id
        if not target:
            return result
        trashed = await self.client.trash_file(target)
        if not isinstance(trashed, Success):
            logger.error("Case '%s' was unregistered but %s could not be trashed",
                         case.name, target)
            return trashed
        logger.info("Deleted case '%s' and trashed %s", case.name, target)
        return result

    # =========================================================================
    # Evidence files
    # =========================================================================

    async def evidence_folder(self, case: Case) -> "Result[FileInfo]":
        """The ``Evidence`` folder inside the case folder, created on first use."""
        if not case.folder_id:
            return Error(ValueError(f"Case '{case.name}' has no folder"))
        try:
            folder = await get_or_create(
                self.client, EVIDENCE_FOLDER_NAME, case.folder_id, FOLDER_MIME_TYPE,
                lambda: self.client.create_folder(EVIDENCE_FOLDER_NAME, case.folder_id),
            )
        except StorageError as e:
            return failure(e)
        return Success(folder)

    async def upload_evidence_file(self, case: Case, local_path: str,
                                   mime_type: Optional[str] = None) -> "Result[FileInfo]":
        """Store a raw evidence file (scan, photo, recording) with the case.

        Args:
            case: Registered case
            local_path: File to upload; its base name becomes the item name
            mime_type: Content type; guessed from the name when None
        """
        return await self._track("upload", self._upload(case, local_path, mime_type))

    async def _upload(self, case: Case, local_path: str,
                      mime_type: Optional[str]) -> "Result[FileInfo]":
        folder = await self.evidence_folder(case)
        if not isinstance(folder, Success):
            return folder
        result = await self.client.upload_file(local_path, folder.value.id, mime_type=mime_type)
        if isinstance(result, Success):
            logger.info("Uploaded '%s' to case '%s'", result.value.name, case.name)
        return result
