"""CaseSheets - application wiring and logging setup."""

import logging
from concurrent.futures import Executor, ThreadPoolExecutor
from typing import Optional

from models.schema import APP_ROOT_FOLDER_NAME, ImportSchema, load_import_schema
from repositories import (
    AllegationRepository,
    CaseRepository,
    EvidenceRepository,
    FilterRepository,
    SheetRowLocator,
)
from storage import (
    LocalCache,
    RegistryResolver,
    TabularClient,
    TabularDriver,
    create_driver,
)
from workflows import ImportService

from .config import Settings

__version__ = "0.1.0"

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Send log records to stderr at ``level``."""
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)
    # The discovery client logs a warning per build() about its file cache.
    logging.getLogger("googleapiclient.discovery_cache").setLevel(logging.ERROR)


class CaseSheets:
    """Application-scoped object graph.

    Builds one client, resolver, row locator and cache, and hands them to
    every repository and to the import service. Construct once at startup
    and pass it (or its members) to whatever needs them.

    Args:
        driver: Tabular backend
        cache: Local snapshot cache
        import_schema: Import schema; the shipped default if None
        root_folder_name: Name of the application root folder
        root_parent_id: Folder the root folder lives in
        executor: Executor for blocking remote calls. If None, a thread pool
                  owned by this object is created and shut down by ``close``.
    """

    def __init__(self, driver: TabularDriver, cache: LocalCache,
                 import_schema: Optional[ImportSchema] = None,
                 root_folder_name: str = APP_ROOT_FOLDER_NAME,
                 root_parent_id: str = "root",
                 executor: Optional[Executor] = None) -> None:
        self._owned_executor = None
        if executor is None:
            executor = self._owned_executor = ThreadPoolExecutor(
                max_workers=8, thread_name_prefix="casesheets-io"
            )
        self.cache = cache
        self.client = TabularClient(driver, executor)
        self.resolver = RegistryResolver(
            self.client, root_folder_name=root_folder_name, root_parent_id=root_parent_id
        )
        self.locator = SheetRowLocator(self.client)
        self.cases = CaseRepository(self.client, cache, self.locator, self.resolver)
        self.evidence = EvidenceRepository(self.client, cache, self.locator)
        self.allegations = AllegationRepository(self.client, cache, self.locator)
        self.filters = FilterRepository(self.client, cache, self.locator)
        self.importer = ImportService(
            self.client, self.cases, self.allegations, self.evidence,
            import_schema or load_import_schema(),
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "CaseSheets":
        """Wire the Google Sheets backend as configured by ``settings``."""
        driver = create_driver("gsheets", settings.credentials_provider())
        return cls(
            driver,
            LocalCache(settings.cache_dir),
            import_schema=load_import_schema(settings.import_schema),
            root_folder_name=settings.root_folder,
            root_parent_id=settings.root_parent,
        )

    def close(self) -> None:
        """Release the owned thread pool."""
        if self._owned_executor is not None:
            self._owned_executor.shutdown(wait=True)
            self._owned_executor = None


__all__ = [
    'CaseSheets',
    'Settings',
    'configure_logging',
    '__version__',
]
