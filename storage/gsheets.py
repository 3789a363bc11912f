"""Google Sheets / Google Drive tabular driver."""

import logging
import os
from typing import Any, Dict, List, Optional, Sequence

from google.auth.exceptions import RefreshError
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from googleapiclient.http import MediaFileUpload

from .base import (
    AppendResult,
    AuthRecoverableError,
    FileInfo,
    FOLDER_MIME_TYPE,
    SheetInfo,
    SPREADSHEET_MIME_TYPE,
    StorageError,
    TabularDriver,
)
from .credentials import CredentialProvider
from utils.retry import is_transient_network_error, TRANSIENT_HTTP_STATUS_CODES

logger = logging.getLogger(__name__)

FILE_FIELDS = "id, name, mimeType, parents, createdTime"

# 403 reasons that a fresh consent with the right scopes fixes
_AUTH_REASONS = ("insufficientPermissions", "insufficient authentication scopes",
                 "ACCESS_TOKEN_SCOPE_INSUFFICIENT")


# ---------------------------------------------------------------------------
# Error translation
# ---------------------------------------------------------------------------

def _error_content(exc: HttpError) -> str:
    content = getattr(exc, "content", b"") or b""
    if isinstance(content, bytes):
        return content.decode("utf-8", errors="ignore")
    return str(content)


def _translate_error(exc: Exception, action: str) -> StorageError:
    """Map a Google client exception onto the storage exception hierarchy."""
    if isinstance(exc, StorageError):
        return exc
    if isinstance(exc, RefreshError):
        return AuthRecoverableError(f"{action}: credentials need re-authorization: {exc}")
    if isinstance(exc, HttpError):
        status = exc.resp.status
        if status == 401:
            return AuthRecoverableError(f"{action}: not authorized (HTTP 401)", status=status)
        if status == 403 and any(r in _error_content(exc) for r in _AUTH_REASONS):
            return AuthRecoverableError(
                f"{action}: insufficient permissions (HTTP 403)", status=status
            )
        return StorageError(
            f"{action} failed: HTTP {status}: {exc}",
            status=status,
            transient=status in TRANSIENT_HTTP_STATUS_CODES,
        )
    return StorageError(
        f"{action} failed: {exc}",
        transient=is_transient_network_error(exc),
    )


def _escape_query_value(value: str) -> str:
    """Escape a value for use in Google Drive API query strings."""
    return value.replace("\\", "\\\\").replace("'", "\\'")


def _file_info(item: Dict[str, Any]) -> FileInfo:
    return FileInfo(
        id=item['id'],
        name=item.get('name', ''),
        mime_type=item.get('mimeType', ''),
        parents=list(item.get('parents', [])),
        created_time=item.get('createdTime', ''),
    )


def _as_strings(rows: List[List[Any]]) -> List[List[str]]:
    return [["" if cell is None else str(cell) for cell in row] for row in rows]


class GSheetsDriver(TabularDriver):
    """Tabular driver backed by Google Drive v3 and Google Sheets v4.

    Credentials are requested from the provider for every operation and the
    API service objects are built for that operation only: the underlying
    httplib2 transport is not thread-safe and calls run on a thread pool.
    """

    def __init__(self, credentials_provider: CredentialProvider) -> None:
        self.credentials_provider = credentials_provider

    @property
    def display_name(self) -> str:
        return "Google Sheets"

    def _service(self, name: str, version: str):
        try:
            creds = self.credentials_provider.get_credentials()
            return build(name, version, credentials=creds, cache_discovery=False)
        except Exception as e:
            raise _translate_error(e, f"Connect to {name}") from e

    def _drive(self):
        return self._service('drive', 'v3')

    def _sheets(self):
        return self._service('sheets', 'v4')

    def _execute(self, request, action: str):
        try:
            return request.execute()
        except Exception as e:
            raise _translate_error(e, action) from e

    # =========================================================================
    # Files and Folders
    # =========================================================================

    def get_file(self, file_id: str) -> FileInfo:
        item = self._execute(self._drive().files().get(
            fileId=file_id,
            fields=FILE_FIELDS,
            supportsAllDrives=True,
        ), f"Get file {file_id}")
        return _file_info(item)

    def find_files(self, name: str, parent_id: str,
                   mime_type: Optional[str] = None) -> List[FileInfo]:
        action = f"Search for '{name}'"
        service = self._drive()
        query = (f"name='{_escape_query_value(name)}' and "
                 f"'{_escape_query_value(parent_id)}' in parents and trashed=false")
        if mime_type:
            query += f" and mimeType='{mime_type}'"

        results = []
        page_token = None
        while True:
            response = self._execute(service.files().list(
                q=query,
                spaces='drive',
                orderBy='createdTime',
                pageSize=100,
                fields=f"nextPageToken, files({FILE_FIELDS})",
                pageToken=page_token,
                supportsAllDrives=True,
                includeItemsFromAllDrives=True,
            ), action)
            results.extend(_file_info(item) for item in response.get('files', []))
            page_token = response.get('nextPageToken')
            if not page_token:
                break
        return results

    def create_folder(self, name: str, parent_id: str) -> FileInfo:
        item = self._execute(self._drive().files().create(
            body={
                'name': name,
                'mimeType': FOLDER_MIME_TYPE,
                'parents': [parent_id],
            },
            fields=FILE_FIELDS,
            supportsAllDrives=True,
        ), f"Create folder '{name}'")
        logger.info("Created folder '%s' (%s)", name, item['id'])
        return _file_info(item)

    def create_spreadsheet(self, title: str, parent_id: str,
                           sheet_titles: Sequence[str]) -> FileInfo:
        if not sheet_titles:
            raise StorageError("A spreadsheet needs at least one sheet")
        action = f"Create spreadsheet '{title}'"

        # Creating through Drive places the file in its folder in one call.
        item = self._execute(self._drive().files().create(
            body={
                'name': title,
                'mimeType': SPREADSHEET_MIME_TYPE,
                'parents': [parent_id],
            },
            fields=FILE_FIELDS,
            supportsAllDrives=True,
        ), action)
        info = _file_info(item)

        # A new spreadsheet has one default sheet; rename it, then add the rest.
        sheets = self._sheets().spreadsheets()
        default = self._execute(sheets.get(
            spreadsheetId=info.id,
            fields='sheets.properties(sheetId,title)',
        ), action)
        first_id = default['sheets'][0]['properties']['sheetId']
        requests = [{
            'updateSheetProperties': {
                'properties': {'sheetId': first_id, 'title': sheet_titles[0]},
                'fields': 'title',
            }
        }]
        requests.extend(
            {'addSheet': {'properties': {'title': t}}} for t in sheet_titles[1:]
        )
        self._execute(sheets.batchUpdate(
            spreadsheetId=info.id, body={'requests': requests}
        ), action)
        logger.info("Created spreadsheet '%s' (%s)", title, info.id)
        return info

    def upload_file(self, local_path: str, parent_id: str, name: Optional[str] = None,
                    mime_type: Optional[str] = None) -> FileInfo:
        name = name or os.path.basename(local_path)
        action = f"Upload '{name}'"
        try:
            media = MediaFileUpload(local_path, mimetype=mime_type, resumable=True)
        except (OSError, ValueError) as e:
            raise StorageError(f"{action} failed: {e}") from e
        item = self._execute(self._drive().files().create(
            body={'name': name, 'parents': [parent_id]},
            media_body=media,
            fields=FILE_FIELDS,
            supportsAllDrives=True,
        ), action)
        logger.info("Uploaded '%s' (%s)", name, item['id'])
        return _file_info(item)

    def trash_file(self, file_id: str) -> None:
        self._execute(self._drive().files().update(
            fileId=file_id,
            body={'trashed': True},
            supportsAllDrives=True,
        ), f"Trash {file_id}")

    # =========================================================================
    # Spreadsheets
    # =========================================================================

    def list_sheets(self, spreadsheet_id: str) -> List[SheetInfo]:
        response = self._execute(self._sheets().spreadsheets().get(
            spreadsheetId=spreadsheet_id,
            fields='sheets.properties(sheetId,title)',
        ), f"List sheets of {spreadsheet_id}")
        return [
            SheetInfo(sheet_id=s['properties']['sheetId'], title=s['properties']['title'])
            for s in response.get('sheets', [])
        ]

    def read_range(self, spreadsheet_id: str, range_: str) -> List[List[str]]:
        response = self._execute(self._sheets().spreadsheets().values().get(
            spreadsheetId=spreadsheet_id,
            range=range_,
        ), f"Read {range_}")
        return _as_strings(response.get('values', []))

    def append_rows(self, spreadsheet_id: str, range_: str,
                    rows: Sequence[Sequence[str]]) -> AppendResult:
        response = self._execute(self._sheets().spreadsheets().values().append(
            spreadsheetId=spreadsheet_id,
            range=range_,
            valueInputOption='RAW',
            insertDataOption='INSERT_ROWS',
            body={'values': [list(r) for r in rows]},
        ), f"Append to {range_}")
        updates = response.get('updates', {})
        return AppendResult(
            updated_range=updates.get('updatedRange', ''),
            updated_rows=int(updates.get('updatedRows', 0)),
        )

    def update_range(self, spreadsheet_id: str, range_: str,
                     rows: Sequence[Sequence[str]]) -> int:
        response = self._execute(self._sheets().spreadsheets().values().update(
            spreadsheetId=spreadsheet_id,
            range=range_,
            valueInputOption='RAW',
            body={'values': [list(r) for r in rows]},
        ), f"Update {range_}")
        return int(response.get('updatedRows', 0))

    def batch_update(self, spreadsheet_id: str,
                     requests: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
        response = self._execute(self._sheets().spreadsheets().batchUpdate(
            spreadsheetId=spreadsheet_id,
            body={'requests': list(requests)},
        ), f"Batch update of {spreadsheet_id}")
        return response.get('replies', [])
