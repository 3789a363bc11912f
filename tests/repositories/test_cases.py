"""Tests for CaseRepository: registry rows and the case lifecycle."""

import asyncio
import dataclasses
import logging
import os

import pytest

from casesheets import CaseSheets
from models import Case
from models.schema import CASE_SHEETS, CASES
from repositories.cases import EVIDENCE_FOLDER_NAME
from storage import (
    DuplicateCaseError,
    Error,
    FOLDER_MIME_TYPE,
    MemoryDriver,
    OperationState,
    SPREADSHEET_MIME_TYPE,
    StorageError,
    Success,
)


class QuotaDriver(MemoryDriver):
    """Only the first ``allowed`` spreadsheets can be created."""

    def __init__(self, allowed=1):
        super().__init__()
        self.allowed = allowed

    def create_spreadsheet(self, title, parent_id, sheet_titles):
        if self.allowed <= 0:
            raise StorageError("quota exceeded", status=403)
        self.allowed -= 1
        return super().create_spreadsheet(title, parent_id, sheet_titles)


@pytest.fixture
def cases(app):
    return app.cases


def counts(driver):
    return (len(driver.items(FOLDER_MIME_TYPE)), len(driver.items(SPREADSHEET_MIME_TYPE)))


class TestCreate:

    @pytest.mark.asyncio
    async def test_create_builds_folder_spreadsheet_and_row(self, cases, driver):
        created = (await cases.create(Case(name=" Acme v. Doe ", court="N.D. Cal."))).unwrap()
        handle = cases.resolver.handle

        assert created.name == "Acme v. Doe"
        assert created.id and created.last_modified > 0
        folder = driver.get_file(created.folder_id)
        assert folder.parents == [handle.root_folder_id]
        spreadsheet = driver.get_file(created.spreadsheet_id)
        assert spreadsheet.parents == [folder.id]
        for layout in CASE_SHEETS:
            assert driver.rows(spreadsheet.id, layout.name) == [list(layout.columns)]

        registry = driver.rows(handle.registry_spreadsheet_id, CASES.name)
        assert len(registry) == 2
        assert (await cases.list()).unwrap() == [created]

    @pytest.mark.asyncio
    async def test_duplicate_name_creates_nothing(self, cases, driver):
        (await cases.create(Case(name="Acme v. Doe"))).unwrap()
        before = counts(driver)

        result = await cases.create(Case(name="ACME V. DOE  "))
        assert isinstance(result, Error)
        assert isinstance(result.exception, DuplicateCaseError)
        assert counts(driver) == before

    @pytest.mark.asyncio
    async def test_empty_name(self, cases, driver):
        result = await cases.create(Case(name="   "))
        assert isinstance(result, Error)
        assert counts(driver) == (0, 0)

    @pytest.mark.asyncio
    async def test_formula_name_round_trips(self, cases, driver):
        created = (await cases.create(Case(name="=Smith", plaintiffs="-Jones"))).unwrap()
        registry = driver.rows(cases.resolver.handle.registry_spreadsheet_id, CASES.name)
        assert "'=Smith" in registry[1]
        listed = (await cases.list()).unwrap()[0]
        assert (listed.name, listed.plaintiffs) == ("=Smith", "-Jones") == (
            created.name, created.plaintiffs
        )

    @pytest.mark.asyncio
    async def test_failure_midway_reports_orphans(self, cache, caplog):
        driver = QuotaDriver()
        app = CaseSheets(driver, cache)
        try:
            with caplog.at_level(logging.ERROR):
                result = await app.cases.create(Case(name="Acme"))
            listed = (await app.cases.list()).unwrap()
        finally:
            app.close()
        assert isinstance(result, Error)
        assert listed == []
        assert "orphaned folder" in caplog.text


class TestQueries:

    @pytest.mark.asyncio
    async def test_newest_first(self, cases):
        (await cases.create(Case(name="Old", last_modified=1000))).unwrap()
        (await cases.create(Case(name="New", last_modified=2000))).unwrap()
        assert [c.name for c in (await cases.list()).unwrap()] == ["New", "Old"]

    @pytest.mark.asyncio
    async def test_find_by_name(self, cases):
        created = (await cases.create(Case(name="Acme v. Doe"))).unwrap()
        assert (await cases.find_by_name("acme v. doe")).unwrap() == created
        assert (await cases.find_by_name("Other")).unwrap() is None

    @pytest.mark.asyncio
    async def test_empty_registry(self, cases):
        assert (await cases.list()).unwrap() == []
        assert cases.cached() == []


class TestLifecycle:

    @pytest.mark.asyncio
    async def test_archive(self, cases):
        created = (await cases.create(Case(name="Acme", last_modified=1))).unwrap()
        archived = (await cases.archive(created)).unwrap()
        assert archived.is_archived
        assert archived.last_modified > 1
        listed = (await cases.list()).unwrap()[0]
        assert listed.is_archived

    @pytest.mark.asyncio
    async def test_delete_keeps_files_by_default(self, cases, driver):
        created = (await cases.create(Case(name="Acme"))).unwrap()
        assert await cases.delete(created) == Success(None)
        assert (await cases.list()).unwrap() == []
        assert driver.get_file(created.folder_id)
        assert created.folder_id in [f.id for f in driver.items(FOLDER_MIME_TYPE)]

    @pytest.mark.asyncio
    async def test_delete_and_trash(self, cases, driver):
        created = (await cases.create(Case(name="Acme"))).unwrap()
        assert await cases.delete(created, trash_files=True) == Success(None)
        assert created.folder_id not in [f.id for f in driver.items(FOLDER_MIME_TYPE)]
        assert (await cases.find_by_name("Acme")).unwrap() is None

    @pytest.mark.asyncio
    async def test_name_is_free_after_delete(self, cases):
        created = (await cases.create(Case(name="Acme"))).unwrap()
        await cases.delete(created, trash_files=True)
        assert isinstance(await cases.create(Case(name="Acme")), Success)


class TestNameUniqueness:

    @pytest.mark.asyncio
    async def test_insert_rejects_taken_name(self, cases):
        (await cases.create(Case(name="Acme v. Doe"))).unwrap()
        result = await cases.insert(Case(name="ACME V. DOE", spreadsheet_id="s2"))
        assert isinstance(result, Error)
        assert isinstance(result.exception, DuplicateCaseError)
        assert [c.name for c in (await cases.list()).unwrap()] == ["Acme v. Doe"]

    @pytest.mark.asyncio
    async def test_insert_many_rejects_repeats_within_batch(self, cases, driver):
        result = await cases.insert_many([Case(name="Alpha"), Case(name=" alpha")])
        assert isinstance(result.exception, DuplicateCaseError)
        assert (await cases.list()).unwrap() == []

    @pytest.mark.asyncio
    async def test_insert_rejects_empty_name(self, cases):
        assert isinstance(await cases.insert(Case(name="  ")), Error)

    @pytest.mark.asyncio
    async def test_concurrent_inserts_register_one(self, cases):
        first, second = await asyncio.gather(
            cases.insert(Case(name="Acme")), cases.insert(Case(name="acme"))
        )
        assert sorted(type(r).__name__ for r in (first, second)) == ["Error", "Success"]
        assert len((await cases.list()).unwrap()) == 1

    @pytest.mark.asyncio
    async def test_rename_onto_other_case_is_rejected(self, cases):
        alpha = (await cases.create(Case(name="Alpha"))).unwrap()
        (await cases.create(Case(name="Beta"))).unwrap()

        result = await cases.update(dataclasses.replace(alpha, name="beta"))
        assert isinstance(result, Error)
        assert isinstance(result.exception, DuplicateCaseError)
        assert sorted(c.name for c in (await cases.list()).unwrap()) == ["Alpha", "Beta"]

    @pytest.mark.asyncio
    async def test_rename_to_free_name_or_own_spelling(self, cases):
        alpha = (await cases.create(Case(name="Alpha"))).unwrap()
        (await cases.create(Case(name="Beta"))).unwrap()

        renamed = (await cases.update(dataclasses.replace(alpha, name="ALPHA"))).unwrap()
        renamed = (await cases.update(dataclasses.replace(renamed, name="Gamma"))).unwrap()
        assert (await cases.find_by_name("gamma")).unwrap().id == alpha.id

    @pytest.mark.asyncio
    async def test_archive_ignores_names_of_other_rows(self, cases, driver):
        created = (await cases.create(Case(name="Acme"))).unwrap()
        registry = cases.resolver.handle.registry_spreadsheet_id
        # A duplicate typed into the sheet by hand
        driver.append_rows(registry, "'Cases'", [["hand-1", "ACME", "s", "f"]])
        assert (await cases.archive(created)).unwrap().is_archived


class TestEvidenceFiles:

    @pytest.fixture
    def scan(self, temp_dir):
        path = os.path.join(temp_dir, "scan.pdf")
        with open(path, "wb") as f:
            f.write(b"%PDF-1.4")
        return path

    @pytest.mark.asyncio
    async def test_upload_into_evidence_folder(self, cases, driver, scan):
        created = (await cases.create(Case(name="Acme"))).unwrap()
        uploaded = (await cases.upload_evidence_file(created, scan)).unwrap()

        folder = driver.get_file(uploaded.parents[0])
        assert (folder.name, folder.parents) == (EVIDENCE_FOLDER_NAME, [created.folder_id])
        assert uploaded.mime_type == "application/pdf"
        assert driver.content(uploaded.id) == b"%PDF-1.4"
        assert cases.state["upload"] is OperationState.SUCCESS

    @pytest.mark.asyncio
    async def test_evidence_folder_is_reused(self, cases, driver, scan):
        created = (await cases.create(Case(name="Acme"))).unwrap()
        first = (await cases.upload_evidence_file(created, scan)).unwrap()
        second = (await cases.upload_evidence_file(created, scan, mime_type="text/plain")).unwrap()
        assert first.parents == second.parents
        assert len(driver.find_files(EVIDENCE_FOLDER_NAME, created.folder_id)) == 1

    @pytest.mark.asyncio
    async def test_case_without_folder(self, cases, scan):
        result = await cases.upload_evidence_file(Case(name="Loose", spreadsheet_id="s"), scan)
        assert isinstance(result, Error)
        assert cases.state["upload"] is OperationState.ERROR

    @pytest.mark.asyncio
    async def test_missing_file(self, cases, temp_dir):
        created = (await cases.create(Case(name="Acme"))).unwrap()
        result = await cases.upload_evidence_file(created, os.path.join(temp_dir, "absent.pdf"))
        assert isinstance(result, Error)
