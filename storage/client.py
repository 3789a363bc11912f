"""Async remote tabular client.

``TabularClient`` is the single point where remote calls happen. It runs the
blocking driver methods on an executor so the event loop never waits on I/O,
performs no retries, and returns a tri-state ``Result`` for every call.
"""

import asyncio
import functools
import logging
from concurrent.futures import Executor
from typing import Any, Dict, List, Optional, Sequence

from .base import (
    AppendResult,
    AuthRecoverableError,
    FileInfo,
    SheetInfo,
    StorageError,
    TabularDriver,
)
from .ranges import sheet_range
from .result import Error, Result, Success, UserRecoverableError

logger = logging.getLogger(__name__)

# Raised while picking apart a reply that lacks the expected shape
MALFORMED_RESPONSE_ERRORS = (KeyError, IndexError, TypeError, ValueError)


class TabularClient:
    """Async facade over a ``TabularDriver``.

    Args:
        driver: Backend that performs the blocking calls
        executor: Executor for the blocking calls; the loop's default
                  thread pool when None
    """

    def __init__(self, driver: TabularDriver, executor: Optional[Executor] = None) -> None:
        self.driver = driver
        self._executor = executor

    async def _call(self, action: str, func, *args, **kwargs) -> Result:
        loop = asyncio.get_running_loop()
        try:
            value = await loop.run_in_executor(
                self._executor, functools.partial(func, *args, **kwargs)
            )
        except AuthRecoverableError as e:
            logger.warning("%s needs re-authorization: %s", action, e)
            return UserRecoverableError(e)
        except StorageError as e:
            logger.error("%s failed: %s", action, e)
            return Error(e)
        except MALFORMED_RESPONSE_ERRORS as e:
            logger.error("%s returned a malformed response: %s", action, e)
            return Error(StorageError(f"{action}: malformed response: {e!r}"))
        return Success(value)

    # =========================================================================
    # Files and Folders
    # =========================================================================

    async def get_file(self, file_id: str) -> "Result[FileInfo]":
        return await self._call("get_file", self.driver.get_file, file_id)

    async def find_files(self, name: str, parent_id: str,
                         mime_type: Optional[str] = None) -> "Result[List[FileInfo]]":
        return await self._call("find_files", self.driver.find_files, name, parent_id, mime_type)

    async def create_folder(self, name: str, parent_id: str) -> "Result[FileInfo]":
        return await self._call("create_folder", self.driver.create_folder, name, parent_id)

    async def create_spreadsheet(self, title: str, parent_id: str,
                                 sheet_titles: Sequence[str]) -> "Result[FileInfo]":
        return await self._call("create_spreadsheet", self.driver.create_spreadsheet,
                                title, parent_id, list(sheet_titles))

    async def upload_file(self, local_path: str, parent_id: str, name: Optional[str] = None,
                          mime_type: Optional[str] = None) -> "Result[FileInfo]":
        return await self._call("upload_file", self.driver.upload_file,
                                local_path, parent_id, name, mime_type)

    async def trash_file(self, file_id: str) -> "Result[None]":
        return await self._call("trash_file", self.driver.trash_file, file_id)

    async def run_blocking(self, func, *args):
        """Run local blocking work (disk I/O) on the client's executor."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, functools.partial(func, *args))

    # =========================================================================
    # Spreadsheets
    # =========================================================================

    async def list_sheets(self, spreadsheet_id: str) -> "Result[List[SheetInfo]]":
        return await self._call("list_sheets", self.driver.list_sheets, spreadsheet_id)

    async def get_sheet_id(self, spreadsheet_id: str, title: str) -> "Result[int]":
        """Resolve a sheet's numeric id from its title."""
        result = await self.list_sheets(spreadsheet_id)
        if not isinstance(result, Success):
            return result
        for sheet in result.value:
            if sheet.title == title:
                return Success(sheet.sheet_id)
        return Error(StorageError(f"Sheet '{title}' not found in {spreadsheet_id}", status=404))

    async def read_range(self, spreadsheet_id: str, range_: str) -> "Result[List[List[str]]]":
        return await self._call("read_range", self.driver.read_range, spreadsheet_id, range_)

    async def read_spreadsheet(self, spreadsheet_id: str) -> "Result[Dict[str, List[List[str]]]]":
        """Read every sheet of a spreadsheet into ``{title: rows}``."""
        sheets = await self.list_sheets(spreadsheet_id)
        if not isinstance(sheets, Success):
            return sheets
        dataset = {}
        for sheet in sheets.value:
            rows = await self.read_range(spreadsheet_id, sheet_range(sheet.title))
            if not isinstance(rows, Success):
                return rows
            dataset[sheet.title] = rows.value
        return Success(dataset)

    async def append_rows(self, spreadsheet_id: str, range_: str,
                          rows: Sequence[Sequence[str]]) -> "Result[AppendResult]":
        return await self._call("append_rows", self.driver.append_rows,
                                spreadsheet_id, range_, [list(r) for r in rows])

    async def update_range(self, spreadsheet_id: str, range_: str,
                           rows: Sequence[Sequence[str]]) -> "Result[int]":
        return await self._call("update_range", self.driver.update_range,
                                spreadsheet_id, range_, [list(r) for r in rows])

    async def batch_update(self, spreadsheet_id: str,
                           requests: Sequence[Dict[str, Any]]) -> "Result[List[Dict[str, Any]]]":
        return await self._call("batch_update", self.driver.batch_update,
                                spreadsheet_id, list(requests))

    async def add_sheet(self, spreadsheet_id: str, title: str) -> "Result[SheetInfo]":
        result = await self.batch_update(
            spreadsheet_id, [{'addSheet': {'properties': {'title': title}}}]
        )
        if not isinstance(result, Success):
            return result
        try:
            props = result.value[0]['addSheet']['properties']
            return Success(SheetInfo(sheet_id=props['sheetId'], title=props['title']))
        except MALFORMED_RESPONSE_ERRORS as e:
            logger.error("add_sheet returned a malformed reply: %r", result.value)
            return Error(StorageError(f"Adding sheet '{title}' returned a malformed reply: {e!r}"))

    async def delete_rows(self, spreadsheet_id: str, sheet_id: int,
                          start_index: int, end_index: int) -> "Result[None]":
        """Delete rows ``[start_index, end_index)`` (0-based) of a sheet."""
        result = await self.batch_update(spreadsheet_id, [{
            'deleteDimension': {
                'range': {
                    'sheetId': sheet_id,
                    'dimension': 'ROWS',
                    'startIndex': start_index,
                    'endIndex': end_index,
                }
            }
        }])
        if not isinstance(result, Success):
            return result
        return Success(None)
