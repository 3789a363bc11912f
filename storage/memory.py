"""In-memory tabular driver.

Implements the same contract as the Google Sheets driver against plain Python
structures. Useful for offline development and as the backend in tests.
"""

import itertools
import mimetypes
import os
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Sequence

from .base import (
    AppendResult,
    FileInfo,
    FOLDER_MIME_TYPE,
    SheetInfo,
    SPREADSHEET_MIME_TYPE,
    StorageError,
    TabularDriver,
)
from .ranges import A1Range, parse_range, quote_sheet

_EPOCH = datetime(2024, 1, 1)


@dataclass
class _Item:
    info: FileInfo
    trashed: bool = False


@dataclass
class _Sheet:
    sheet_id: int
    title: str
    rows: List[List[str]] = field(default_factory=list)


def _trim(row: List[str]) -> List[str]:
    end = len(row)
    while end and row[end - 1] == "":
        end -= 1
    return row[:end]


class MemoryDriver(TabularDriver):
    """Thread-safe in-process tabular store.

    The root folder id is ``"root"``, as in Google Drive.
    """

    ROOT_ID = "root"

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._items: Dict[str, _Item] = {}
        self._sheets: Dict[str, List[_Sheet]] = {}
        self._content: Dict[str, bytes] = {}
        self._clock = itertools.count(1)
        self._sheet_ids = itertools.count(1)

    @property
    def display_name(self) -> str:
        return "In-memory store"

    def _new_info(self, name: str, parent_id: str, mime_type: str) -> FileInfo:
        tick = next(self._clock)
        created = (_EPOCH + timedelta(microseconds=tick)).strftime("%Y-%m-%dT%H:%M:%S.%fZ")
        return FileInfo(
            id=uuid.uuid4().hex,
            name=name,
            mime_type=mime_type,
            parents=[parent_id],
            created_time=created,
        )

    def _item(self, file_id: str) -> _Item:
        item = self._items.get(file_id)
        if item is None:
            raise StorageError(f"File not found: {file_id}", status=404)
        return item

    def _spreadsheet(self, spreadsheet_id: str) -> List[_Sheet]:
        sheets = self._sheets.get(spreadsheet_id)
        if sheets is None:
            raise StorageError(f"Spreadsheet not found: {spreadsheet_id}", status=404)
        return sheets

    def _sheet(self, spreadsheet_id: str, title: str) -> _Sheet:
        for sheet in self._spreadsheet(spreadsheet_id):
            if sheet.title == title:
                return sheet
        raise StorageError(f"Unable to parse range: {quote_sheet(title)}", status=400)

    def _parent_exists(self, parent_id: str) -> None:
        if parent_id != self.ROOT_ID:
            self._item(parent_id)

    @staticmethod
    def _range(range_: str) -> A1Range:
        try:
            return parse_range(range_)
        except ValueError as e:
            raise StorageError(f"Unable to parse range: {range_}", status=400) from e

    # =========================================================================
    # Files and Folders
    # =========================================================================

    def get_file(self, file_id: str) -> FileInfo:
        with self._lock:
            return self._item(file_id).info

    def find_files(self, name: str, parent_id: str,
                   mime_type: Optional[str] = None) -> List[FileInfo]:
        with self._lock:
            found = [
                item.info for item in self._items.values()
                if not item.trashed
                and item.info.name == name
                and parent_id in item.info.parents
                and (mime_type is None or item.info.mime_type == mime_type)
            ]
        return sorted(found, key=lambda f: f.created_time)

    def create_folder(self, name: str, parent_id: str) -> FileInfo:
        with self._lock:
            self._parent_exists(parent_id)
            info = self._new_info(name, parent_id, FOLDER_MIME_TYPE)
            self._items[info.id] = _Item(info)
            return info

    def create_spreadsheet(self, title: str, parent_id: str,
                           sheet_titles: Sequence[str]) -> FileInfo:
        if not sheet_titles:
            raise StorageError("A spreadsheet needs at least one sheet")
        with self._lock:
            self._parent_exists(parent_id)
            info = self._new_info(title, parent_id, SPREADSHEET_MIME_TYPE)
            self._items[info.id] = _Item(info)
            self._sheets[info.id] = [
                _Sheet(sheet_id=next(self._sheet_ids), title=t) for t in sheet_titles
            ]
            return info

    def upload_file(self, local_path: str, parent_id: str, name: Optional[str] = None,
                    mime_type: Optional[str] = None) -> FileInfo:
        try:
            with open(local_path, "rb") as f:
                data = f.read()
        except OSError as e:
            raise StorageError(f"Upload of {local_path} failed: {e}") from e
        name = name or os.path.basename(local_path)
        mime_type = mime_type or mimetypes.guess_type(name)[0] or "application/octet-stream"
        with self._lock:
            self._parent_exists(parent_id)
            info = self._new_info(name, parent_id, mime_type)
            self._items[info.id] = _Item(info)
            self._content[info.id] = data
            return info

    def trash_file(self, file_id: str) -> None:
        with self._lock:
            self._item(file_id).trashed = True

    # =========================================================================
    # Spreadsheets
    # =========================================================================

    def list_sheets(self, spreadsheet_id: str) -> List[SheetInfo]:
        with self._lock:
            return [SheetInfo(s.sheet_id, s.title) for s in self._spreadsheet(spreadsheet_id)]

    def read_range(self, spreadsheet_id: str, range_: str) -> List[List[str]]:
        parsed = self._range(range_)
        with self._lock:
            sheet = self._sheet(spreadsheet_id, parsed.sheet)
            start = (parsed.start_row or 1) - 1
            end = parsed.end_row if parsed.end_row is not None else len(sheet.rows)
            rows = [_trim(list(r[parsed.start_column:])) for r in sheet.rows[start:end]]
        while rows and not rows[-1]:
            rows.pop()
        return rows

    def append_rows(self, spreadsheet_id: str, range_: str,
                    rows: Sequence[Sequence[str]]) -> AppendResult:
        parsed = self._range(range_)
        with self._lock:
            sheet = self._sheet(spreadsheet_id, parsed.sheet)
            last = len(sheet.rows)
            while last and not _trim(sheet.rows[last - 1]):
                last -= 1
            new_rows = [["" if c is None else str(c) for c in r] for r in rows]
            sheet.rows[last:last] = new_rows
        first_a1 = last + 1
        return AppendResult(
            updated_range=f"{quote_sheet(parsed.sheet)}!A{first_a1}:A{first_a1 + len(new_rows) - 1}",
            updated_rows=len(new_rows),
        )

    def update_range(self, spreadsheet_id: str, range_: str,
                     rows: Sequence[Sequence[str]]) -> int:
        parsed = self._range(range_)
        with self._lock:
            sheet = self._sheet(spreadsheet_id, parsed.sheet)
            start = (parsed.start_row or 1) - 1
            for offset, values in enumerate(rows):
                index = start + offset
                while len(sheet.rows) <= index:
                    sheet.rows.append([])
                target = sheet.rows[index]
                for col, value in enumerate(values, start=parsed.start_column):
                    while len(target) <= col:
                        target.append("")
                    target[col] = "" if value is None else str(value)
        return len(rows)

    def batch_update(self, spreadsheet_id: str,
                     requests: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
        with self._lock:
            sheets = self._spreadsheet(spreadsheet_id)
            replies = []
            for request in requests:
                if 'addSheet' in request:
                    title = request['addSheet']['properties']['title']
                    if any(s.title == title for s in sheets):
                        raise StorageError(f"A sheet with the name \"{title}\" already exists",
                                           status=400)
                    sheet = _Sheet(sheet_id=next(self._sheet_ids), title=title)
                    sheets.append(sheet)
                    replies.append({'addSheet': {'properties': {
                        'sheetId': sheet.sheet_id, 'title': sheet.title}}})
                elif 'deleteDimension' in request:
                    span = request['deleteDimension']['range']
                    if span.get('dimension') != 'ROWS':
                        raise StorageError("Only ROWS dimension is supported", status=400)
                    sheet = self._sheet_by_id(sheets, span['sheetId'])
                    del sheet.rows[span['startIndex']:span['endIndex']]
                    replies.append({})
                elif 'updateSheetProperties' in request:
                    props = request['updateSheetProperties']['properties']
                    self._sheet_by_id(sheets, props['sheetId']).title = props['title']
                    replies.append({})
                else:
                    raise StorageError(f"Unsupported request: {sorted(request)}", status=400)
            return replies

    @staticmethod
    def _sheet_by_id(sheets: List[_Sheet], sheet_id: int) -> _Sheet:
        for sheet in sheets:
            if sheet.sheet_id == sheet_id:
                return sheet
        raise StorageError(f"No grid with id: {sheet_id}", status=400)

    # =========================================================================
    # Inspection
    # =========================================================================

    def rows(self, spreadsheet_id: str, title: str) -> List[List[str]]:
        """Copy of a sheet's raw rows, header included."""
        with self._lock:
            return [list(r) for r in self._sheet(spreadsheet_id, title).rows]

    def content(self, file_id: str) -> bytes:
        """Bytes of an uploaded file."""
        with self._lock:
            self._item(file_id)
            return self._content.get(file_id, b"")

    def items(self, mime_type: Optional[str] = None,
              include_trashed: bool = False) -> List[FileInfo]:
        """Every stored file/folder, optionally filtered."""
        with self._lock:
            return [
                item.info for item in self._items.values()
                if (include_trashed or not item.trashed)
                and (mime_type is None or item.info.mime_type == mime_type)
            ]
