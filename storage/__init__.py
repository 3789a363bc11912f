"""Remote tabular storage for casesheets.

Provides a uniform interface over spreadsheet backends:
- GSheetsDriver: Google Sheets and Google Drive
- MemoryDriver: in-process store (offline development, tests)

Drivers are synchronous and raise ``StorageError``. ``TabularClient`` runs
them off the event loop and returns tri-state results.

Usage:
    from storage import create_driver, TabularClient

    client = TabularClient(create_driver("gsheets", ServiceAccountProvider()))
"""

from typing import Optional

from .base import (
    AppendResult,
    AuthRecoverableError,
    DuplicateCaseError,
    FileInfo,
    FOLDER_MIME_TYPE,
    RowNotFoundError,
    SchemaMismatchError,
    SheetInfo,
    SPREADSHEET_MIME_TYPE,
    StorageError,
    TabularDriver,
)
from .result import (
    Error,
    Failure,
    OperationState,
    Result,
    Success,
    UserRecoverableError,
    failure,
    match_result,
)
from .credentials import CredentialProvider, InstalledAppProvider, ServiceAccountProvider
from .gsheets import GSheetsDriver
from .memory import MemoryDriver
from .client import TabularClient
from .cache import LocalCache
from .registry import RegistryHandle, RegistryResolver


def create_driver(backend: str,
                  credentials_provider: Optional[CredentialProvider] = None) -> TabularDriver:
    """Create a tabular driver.

    Args:
        backend: "gsheets" or "memory"
        credentials_provider: Required for "gsheets"

    Returns:
        TabularDriver instance for the backend

    Raises:
        ValueError: If the backend is unknown or misconfigured
    """
    backend = backend.lower()
    if backend == "gsheets":
        if credentials_provider is None:
            raise ValueError("The gsheets backend needs a credentials provider")
        return GSheetsDriver(credentials_provider)
    elif backend == "memory":
        return MemoryDriver()
    else:
        raise ValueError(
            f"Unknown storage backend: {backend}. "
            "Must be 'gsheets' or 'memory'"
        )


__all__ = [
    # Drivers
    'TabularDriver',
    'GSheetsDriver',
    'MemoryDriver',
    'create_driver',

    # Credentials
    'CredentialProvider',
    'ServiceAccountProvider',
    'InstalledAppProvider',

    # Client, cache, registry
    'TabularClient',
    'LocalCache',
    'RegistryHandle',
    'RegistryResolver',

    # Data and errors
    'AppendResult',
    'FileInfo',
    'SheetInfo',
    'FOLDER_MIME_TYPE',
    'SPREADSHEET_MIME_TYPE',
    'StorageError',
    'AuthRecoverableError',
    'SchemaMismatchError',
    'RowNotFoundError',
    'DuplicateCaseError',

    # Results
    'Result',
    'Success',
    'Error',
    'UserRecoverableError',
    'Failure',
    'failure',
    'match_result',
    'OperationState',
]
