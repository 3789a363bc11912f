"""Tests for ImportService."""

import re

import pytest

from models import Case
from models.schema import CASES, ImportSchema
from storage import (
    DuplicateCaseError,
    Error,
    FOLDER_MIME_TYPE,
    SPREADSHEET_MIME_TYPE,
)
from workflows.importer import IMPORTED_CATEGORY, IMPORTED_SOURCE, ImportService


def acme_dataset():
    return {
        "Case Info": [["Case Name", "Acme v. Doe"], ["Court", "N.D. Cal."]],
        "Allegations": [["Allegation"], ["Breach of contract"], [""]],
        "Evidence": [["Content", "Tags"], ["Signed contract", "contract, 2019"]],
    }


def counts(driver):
    return (len(driver.items(FOLDER_MIME_TYPE)), len(driver.items(SPREADSHEET_MIME_TYPE)))


def registry_rows(app, driver):
    return driver.rows(app.resolver.handle.registry_spreadsheet_id, CASES.name)


class TestImportCase:

    @pytest.mark.asyncio
    async def test_acme_scenario(self, app, driver):
        case = (await app.importer.import_case(acme_dataset())).unwrap()
        assert case.name == "Acme v. Doe"

        rows = driver.rows(case.spreadsheet_id, "Evidence")
        assert len(rows) == 2
        evidence = (await app.evidence.list(case)).unwrap()
        assert [(e.content, e.tags) for e in evidence] == [("Signed contract", ["contract", "2019"])]
        assert evidence[0].source_document == IMPORTED_SOURCE
        assert evidence[0].category == IMPORTED_CATEGORY

        allegations = (await app.allegations.list(case)).unwrap()
        assert [a.text for a in allegations] == ["Breach of contract"]
        assert (await app.cases.find_by_name("acme v. doe")).unwrap() == case

    @pytest.mark.asyncio
    async def test_duplicate_name_aborts_before_creating(self, app, driver):
        (await app.cases.create(Case(name="ACME v. DOE"))).unwrap()
        before = counts(driver)
        registered = len(registry_rows(app, driver))

        result = await app.importer.import_case(acme_dataset())
        assert isinstance(result, Error)
        assert isinstance(result.exception, DuplicateCaseError)
        assert counts(driver) == before
        assert len(registry_rows(app, driver)) == registered

    @pytest.mark.asyncio
    async def test_placeholder_name(self, app):
        dataset = {"Evidence": [["Content"], ["Photo of the scene"]]}
        case = (await app.importer.import_case(dataset)).unwrap()
        assert re.fullmatch(r"Imported Case \d{4}-\d\d-\d\d \d\d:\d\d:\d\d", case.name)

    @pytest.mark.asyncio
    async def test_case_without_rows(self, app, driver):
        case = (await app.importer.import_case({"Case Info": [["Case Name", "Empty"]]})).unwrap()
        assert len(driver.rows(case.spreadsheet_id, "Evidence")) == 1
        assert (await app.evidence.list(case)).unwrap() == []

    @pytest.mark.asyncio
    async def test_registry_failure_creates_nothing(self, app, driver):
        app.resolver.root_parent_id = "missing-folder"
        result = await app.importer.import_case(acme_dataset())
        assert isinstance(result, Error)
        assert counts(driver) == (0, 0)


class TestImportSpreadsheet:

    @pytest.mark.asyncio
    async def test_reads_external_spreadsheet(self, app, driver):
        external = driver.create_spreadsheet("Export", "root", ["Case Info", "Allegations", "Evidence"])
        for title, rows in acme_dataset().items():
            driver.update_range(external.id, f"'{title}'!A1", rows)

        case = (await app.importer.import_spreadsheet(external.id)).unwrap()
        assert case.name == "Acme v. Doe"
        assert len((await app.evidence.list(case)).unwrap()) == 1

    @pytest.mark.asyncio
    async def test_unreadable_spreadsheet(self, app):
        result = await app.importer.import_spreadsheet("missing")
        assert isinstance(result, Error)
        assert app.resolver.handle is None


class TestProjection:

    @pytest.fixture
    def service(self):
        schema = ImportSchema.from_dict({
            "case_info_sheet": {"name": "Info", "case_name_label": "Matter",
                                "case_name_column": "Value"},
            "allegations_sheet": {"name": "Claims", "allegation_column": "Claim"},
            "evidence_sheet": {"name": "Exhibits", "content_column": "Description",
                               "tags_column": "Labels"},
        })
        return ImportService(None, None, None, None, schema)

    def test_columns_by_label(self, service):
        dataset = {
            "Info": [["Field", "Value"], ["matter ", "In re Widget"]],
            "Claims": [["#", "Claim"], ["1", "Negligence"]],
            "Exhibits": [["Labels", "Description"], ["a,b", "Invoice"]],
        }
        assert service.case_name(dataset) == "In re Widget"
        assert [a.text for a in service.allegations_from(dataset)] == ["Negligence"]
        items = service.evidence_from(dataset)
        assert [(e.content, e.tags) for e in items] == [("Invoice", ["a", "b"])]

    def test_blank_and_duplicate_rows_are_skipped(self, service):
        dataset = {"Exhibits": [
            ["Description"], ["Invoice"], [""], ["  "], ["invoice"], [], ["Receipt"],
        ]}
        assert [e.content for e in service.evidence_from(dataset)] == ["Invoice", "Receipt"]

    def test_duplicate_allegations_are_skipped(self, service):
        dataset = {"Claims": [["Claim"], ["Fraud"], ["FRAUD"], ["Theft"]]}
        assert [a.text for a in service.allegations_from(dataset)] == ["Fraud", "Theft"]

    def test_missing_column_yields_nothing(self, service):
        assert service.evidence_from({"Exhibits": [["Other"], ["x"]]}) == []
        assert service.allegations_from({"Claims": [["Other"], ["x"]]}) == []

    def test_sheet_names_match_case_insensitively(self, service):
        assert service.case_name({"INFO": [["Field", "Value"], ["Matter", "X"]]}) == "X"

    def test_missing_name_value_uses_placeholder(self, service):
        name = service.case_name({"Info": [["Field", "Value"], ["Matter", ""]]})
        assert name.startswith("Imported Case ")
