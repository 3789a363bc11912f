"""Shared fixtures.

Everything runs against the in-memory driver, so no credentials are needed.
"""

import shutil
import tempfile

import pytest

from casesheets import CaseSheets
from models import Case, new_id
from models.schema import CASE_SHEETS
from storage import LocalCache, MemoryDriver, RegistryResolver, TabularClient


@pytest.fixture
def temp_dir():
    """Create a temporary directory for testing."""
    dir_path = tempfile.mkdtemp(prefix="casesheets_test_")
    yield dir_path
    shutil.rmtree(dir_path, ignore_errors=True)


@pytest.fixture
def driver():
    return MemoryDriver()


@pytest.fixture
def client(driver):
    return TabularClient(driver)


@pytest.fixture
def cache(temp_dir):
    return LocalCache(temp_dir)


@pytest.fixture
def resolver(client):
    return RegistryResolver(client, base_delay=0.0)


@pytest.fixture
def app(driver, cache):
    """Fully wired application on the in-memory driver."""
    instance = CaseSheets(driver, cache)
    yield instance
    instance.close()


@pytest.fixture
def case(driver):
    """A case whose spreadsheet exists with header rows, but isn't registered."""
    folder = driver.create_folder("Acme v. Doe", MemoryDriver.ROOT_ID)
    spreadsheet = driver.create_spreadsheet(
        "Acme v. Doe", folder.id, [layout.name for layout in CASE_SHEETS]
    )
    for layout in CASE_SHEETS:
        driver.update_range(spreadsheet.id, f"'{layout.name}'!A1", [list(layout.columns)])
    return Case(name="Acme v. Doe", spreadsheet_id=spreadsheet.id,
                folder_id=folder.id, id=new_id())
