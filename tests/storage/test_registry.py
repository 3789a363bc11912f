"""Tests for bootstrap resolution of the root folder and case registry."""

import asyncio
import time

import pytest

from models.schema import CASES
from storage import (
    AuthRecoverableError,
    Error,
    FOLDER_MIME_TYPE,
    MemoryDriver,
    RegistryResolver,
    SPREADSHEET_MIME_TYPE,
    StorageError,
    Success,
    TabularClient,
    UserRecoverableError,
)
from storage.registry import ensure_sheet_header, get_or_create


class SlowCreateDriver(MemoryDriver):
    """Creates take a while, so concurrent searches all come back empty."""

    def __init__(self, delay=0.05):
        super().__init__()
        self.delay = delay
        self.creates = 0

    def create_folder(self, name, parent_id):
        self.creates += 1
        time.sleep(self.delay)
        return super().create_folder(name, parent_id)

    def create_spreadsheet(self, title, parent_id, sheet_titles):
        self.creates += 1
        time.sleep(self.delay)
        return super().create_spreadsheet(title, parent_id, sheet_titles)


class FlakyDriver(MemoryDriver):
    """Raises ``exc`` from the first ``failures`` searches."""

    def __init__(self, exc, failures=1):
        super().__init__()
        self.exc = exc
        self.failures = failures
        self.searches = 0

    def find_files(self, name, parent_id, mime_type=None):
        self.searches += 1
        if self.searches <= self.failures:
            raise self.exc
        return super().find_files(name, parent_id, mime_type)


def live(driver, mime_type):
    return driver.items(mime_type)


class TestResolve:

    @pytest.mark.asyncio
    async def test_cold_start_creates_root_and_registry(self, driver, resolver):
        result = await resolver.resolve()
        assert isinstance(result, Success)
        handle = result.value

        root = driver.get_file(handle.root_folder_id)
        assert root.name == "CaseSheets"
        assert root.parents == ["root"]
        registry = driver.get_file(handle.registry_spreadsheet_id)
        assert registry.name == "CaseSheets Case Registry"
        assert registry.parents == [root.id]
        assert driver.rows(registry.id, CASES.name) == [list(CASES.columns)]

    @pytest.mark.asyncio
    async def test_resolve_is_idempotent(self, driver, client, resolver):
        first = (await resolver.resolve()).unwrap()
        second = (await resolver.resolve()).unwrap()
        fresh = (await RegistryResolver(client, base_delay=0.0).resolve()).unwrap()

        assert first == second == fresh
        assert len(live(driver, FOLDER_MIME_TYPE)) == 1
        assert len(live(driver, SPREADSHEET_MIME_TYPE)) == 1

    @pytest.mark.asyncio
    async def test_existing_structure_is_reused(self, driver, client):
        root = driver.create_folder("CaseSheets", "root")
        registry = driver.create_spreadsheet("CaseSheets Case Registry", root.id, ["Cases"])
        handle = (await RegistryResolver(client).resolve()).unwrap()
        assert handle.root_folder_id == root.id
        assert handle.registry_spreadsheet_id == registry.id

    @pytest.mark.asyncio
    async def test_missing_cases_sheet_is_added(self, driver, client):
        root = driver.create_folder("CaseSheets", "root")
        registry = driver.create_spreadsheet("CaseSheets Case Registry", root.id, ["Sheet1"])
        await RegistryResolver(client).resolve()
        titles = [s.title for s in driver.list_sheets(registry.id)]
        assert titles == ["Sheet1", "Cases"]
        assert driver.rows(registry.id, "Cases")[0] == list(CASES.columns)

    @pytest.mark.asyncio
    async def test_reset_searches_again(self, driver, resolver):
        first = (await resolver.resolve()).unwrap()
        resolver.reset()
        assert resolver.handle is None
        assert (await resolver.resolve()).unwrap() == first
        assert len(live(driver, FOLDER_MIME_TYPE)) == 1


class TestConcurrentColdStart:

    @pytest.mark.asyncio
    async def test_one_resolver_bootstraps_once(self):
        driver = SlowCreateDriver()
        resolver = RegistryResolver(TabularClient(driver), base_delay=0.0)
        results = await asyncio.gather(*(resolver.resolve() for _ in range(5)))
        assert len({r.unwrap() for r in results}) == 1
        assert driver.creates == 2

    @pytest.mark.asyncio
    async def test_independent_resolvers_converge(self):
        driver = SlowCreateDriver()
        client = TabularClient(driver)
        resolvers = [RegistryResolver(client, base_delay=0.0) for _ in range(3)]
        results = await asyncio.gather(*(r.resolve() for r in resolvers))

        handles = {r.unwrap() for r in results}
        assert len(handles) == 1
        handle = handles.pop()
        assert [f.id for f in live(driver, FOLDER_MIME_TYPE)] == [handle.root_folder_id]
        assert [f.id for f in live(driver, SPREADSHEET_MIME_TYPE)] == [
            handle.registry_spreadsheet_id
        ]


class TestFailures:

    @pytest.mark.asyncio
    async def test_transient_failure_is_retried(self):
        driver = FlakyDriver(StorageError("busy", status=503, transient=True), failures=2)
        resolver = RegistryResolver(TabularClient(driver), base_delay=0.0)
        assert isinstance(await resolver.resolve(), Success)
        assert len(live(driver, FOLDER_MIME_TYPE)) == 1

    @pytest.mark.asyncio
    async def test_retries_are_bounded(self):
        driver = FlakyDriver(StorageError("busy", status=503, transient=True), failures=100)
        resolver = RegistryResolver(TabularClient(driver), max_retries=2, base_delay=0.0)
        result = await resolver.resolve()
        assert isinstance(result, Error)
        assert driver.searches == 3
        assert resolver.handle is None

    @pytest.mark.asyncio
    async def test_auth_failure_is_recoverable_and_not_retried(self):
        driver = FlakyDriver(AuthRecoverableError("consent revoked"), failures=100)
        resolver = RegistryResolver(TabularClient(driver), base_delay=0.0)
        result = await resolver.resolve()
        assert isinstance(result, UserRecoverableError)
        assert driver.searches == 1

    @pytest.mark.asyncio
    async def test_failed_resolve_can_be_retried_later(self):
        driver = FlakyDriver(StorageError("not found", status=404), failures=1)
        resolver = RegistryResolver(TabularClient(driver), base_delay=0.0)
        assert isinstance(await resolver.resolve(), Error)
        assert isinstance(await resolver.resolve(), Success)


class TestHelpers:

    @pytest.mark.asyncio
    async def test_get_or_create_prefers_oldest(self, driver, client):
        older = driver.create_folder("Dup", "root")
        driver.create_folder("Dup", "root")

        async def create():
            raise AssertionError("should not create")

        found = await get_or_create(client, "Dup", "root", FOLDER_MIME_TYPE, create)
        assert found.id == older.id

    @pytest.mark.asyncio
    async def test_get_or_create_trashes_lost_race(self, driver, client):
        async def create():
            # Another writer got there first while ours was in flight.
            winner = driver.create_folder("Race", "root")
            mine = await client.create_folder("Race", "root")
            create.winner = winner
            return mine

        found = await get_or_create(client, "Race", "root", FOLDER_MIME_TYPE, create)
        assert found.id == create.winner.id
        assert [f.id for f in live(driver, FOLDER_MIME_TYPE)] == [create.winner.id]

    @pytest.mark.asyncio
    async def test_ensure_sheet_header_keeps_existing_header(self, driver, client):
        sheet = driver.create_spreadsheet("R", "root", ["Cases"])
        driver.update_range(sheet.id, "'Cases'!A1", [["ID", "Name", "Custom"]])
        await ensure_sheet_header(client, sheet.id, CASES)
        assert driver.rows(sheet.id, "Cases") == [["ID", "Name", "Custom"]]
