"""Base classes for tabular storage drivers.

This module defines the exception hierarchy and the synchronous interface that
every backend (Google Sheets, in-memory) implements. Drivers raise; the async
``TabularClient`` turns their outcome into tri-state results.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"
SPREADSHEET_MIME_TYPE = "application/vnd.google-apps.spreadsheet"


class StorageError(Exception):
    """Base exception for storage operations.

    Attributes:
        status: HTTP status code reported by the remote store, if any
        transient: True if repeating the same request may succeed
    """

    def __init__(self, message: str, status: Optional[int] = None,
                 transient: bool = False) -> None:
        super().__init__(message)
        self.status = status
        self.transient = transient


class AuthRecoverableError(StorageError):
    """Credentials are missing, expired or lack scope; the user can fix it
    by re-authorizing."""
    pass


class SchemaMismatchError(StorageError):
    """A sheet's header row does not carry the columns the engine expects."""
    pass


class RowNotFoundError(StorageError):
    """No row carries the requested entity id."""
    pass


class DuplicateCaseError(StorageError):
    """A case with the same name (ignoring case) is already registered."""
    pass


@dataclass
class FileInfo:
    """Information about a file or folder in remote storage.

    Attributes:
        id: Backend identifier (e.g., Google Drive file ID)
        name: Display name
        mime_type: MIME type; folders and spreadsheets use Google's types
        parents: IDs of the containing folders
        created_time: RFC 3339 creation timestamp, used to order duplicates
    """
    id: str
    name: str
    mime_type: str = ""
    parents: List[str] = field(default_factory=list)
    created_time: str = ""

    @property
    def is_folder(self) -> bool:
        return self.mime_type == FOLDER_MIME_TYPE


@dataclass
class SheetInfo:
    """A single sheet (tab) within a spreadsheet."""
    sheet_id: int
    title: str


@dataclass
class AppendResult:
    """Server confirmation of an append.

    Attributes:
        updated_range: A1 range the rows were written to
        updated_rows: Number of rows the server reports as written
    """
    updated_range: str
    updated_rows: int


class TabularDriver(ABC):
    """Abstract base class for tabular storage backends.

    Methods are blocking and raise ``StorageError`` (or a subclass) on
    failure. They are never retried here.
    """

    @property
    @abstractmethod
    def display_name(self) -> str:
        """Human-readable name for this backend."""
        pass

    # =========================================================================
    # Files and Folders
    # =========================================================================

    @abstractmethod
    def get_file(self, file_id: str) -> FileInfo:
        """Fetch metadata for a single file or folder.

        Raises:
            StorageError: If the file doesn't exist or can't be accessed
        """
        pass

    @abstractmethod
    def find_files(self, name: str, parent_id: str,
                   mime_type: Optional[str] = None) -> List[FileInfo]:
        """Find non-trashed items with an exact name inside a folder.

        Args:
            name: Exact item name
            parent_id: Folder to search in
            mime_type: Restrict results to this MIME type

        Returns:
            Matching items ordered by creation time, oldest first
        """
        pass

    @abstractmethod
    def create_folder(self, name: str, parent_id: str) -> FileInfo:
        """Create a folder. Does not check for an existing one."""
        pass

    @abstractmethod
    def create_spreadsheet(self, title: str, parent_id: str,
                           sheet_titles: Sequence[str]) -> FileInfo:
        """Create a spreadsheet inside a folder with the given sheets.

        Args:
            title: Spreadsheet file name
            parent_id: Folder to place it in
            sheet_titles: Sheet names, in order; at least one
        """
        pass

    @abstractmethod
    def upload_file(self, local_path: str, parent_id: str, name: Optional[str] = None,
                    mime_type: Optional[str] = None) -> FileInfo:
        """Upload a local file into a folder as a new item.

        Args:
            local_path: File to upload
            parent_id: Destination folder
            name: Item name; the file's base name when None
            mime_type: Content type; guessed by the backend when None

        Raises:
            StorageError: If the file can't be read or the upload fails
        """
        pass

    @abstractmethod
    def trash_file(self, file_id: str) -> None:
        """Move a file or folder to the trash."""
        pass

    # =========================================================================
    # Spreadsheets
    # =========================================================================

    @abstractmethod
    def list_sheets(self, spreadsheet_id: str) -> List[SheetInfo]:
        """List the sheets of a spreadsheet with their numeric ids."""
        pass

    @abstractmethod
    def read_range(self, spreadsheet_id: str, range_: str) -> List[List[str]]:
        """Read cell values in an A1 range as rows of strings.

        Trailing empty cells and rows are omitted, as the Sheets API does.
        """
        pass

    @abstractmethod
    def append_rows(self, spreadsheet_id: str, range_: str,
                    rows: Sequence[Sequence[str]]) -> AppendResult:
        """Append rows after the last non-empty row of the range's sheet."""
        pass

    @abstractmethod
    def update_range(self, spreadsheet_id: str, range_: str,
                     rows: Sequence[Sequence[str]]) -> int:
        """Overwrite cells starting at the range's top-left cell.

        Returns:
            Number of rows the server reports as updated
        """
        pass

    @abstractmethod
    def batch_update(self, spreadsheet_id: str,
                     requests: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Apply structural requests (addSheet, deleteDimension, ...).

        Returns:
            One reply dict per request
        """
        pass
