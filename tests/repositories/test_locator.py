"""Tests for HeaderMap and SheetRowLocator."""

import asyncio

import pytest

from models.schema import ALLEGATIONS
from repositories import HeaderMap, SheetRowLocator
from storage import RowNotFoundError, SchemaMismatchError


@pytest.fixture
def spreadsheet(driver):
    sheet = driver.create_spreadsheet("Case", "root", ["Allegations"])
    driver.update_range(sheet.id, "'Allegations'!A1", [
        ["Allegation", "ID"],
        ["First", "a1"],
        ["Second", "a2"],
    ])
    return sheet


class TestHeaderMap:

    def test_labels_match_case_insensitively(self):
        header = HeaderMap([" id ", "Content", "TAGS"])
        assert header.index("ID") == 0
        assert header.index("tags") == 2
        assert header.index("Missing") is None

    def test_leftmost_duplicate_wins(self):
        assert HeaderMap(["ID", "Name", "id"]).index("ID") == 0

    def test_blank_header_is_empty(self):
        assert HeaderMap(["", "  "]).is_empty
        assert HeaderMap([]).is_empty

    def test_require_names_all_missing_columns(self):
        with pytest.raises(SchemaMismatchError) as exc_info:
            HeaderMap(["ID"]).require(["ID", "Name", "Value"], "Filters")
        message = str(exc_info.value)
        assert "Name" in message and "Value" in message

    def test_record_fills_absent_cells(self):
        header = HeaderMap(["ID", "Name", "Value"])
        assert header.record(["1", "n"], ["ID", "Value", "Other"]) == {
            "ID": "1", "Value": "", "Other": ""
        }

    def test_build_row_keeps_unknown_columns(self):
        header = HeaderMap(["Name", "Notes", "ID"])
        row = header.build_row({"ID": "1", "Name": "new", "Dropped": "x"},
                               base=["old", "keep me", "1"])
        assert row == ["new", "keep me", "1"]

    def test_build_row_pads_to_header_width(self):
        assert HeaderMap(["A", "B", "C"]).build_row({"A": "x"}) == ["x", "", ""]


class TestSheetRowLocator:

    @pytest.mark.asyncio
    async def test_finds_row_by_id_in_any_column(self, client, spreadsheet):
        locator = SheetRowLocator(client)
        async with locator.pinned(spreadsheet.id, ALLEGATIONS, "a2") as location:
            assert location.index == 2
            assert location.values == ["Second", "a2"]
            assert location.header.index("ID") == 1

    @pytest.mark.asyncio
    async def test_unknown_id(self, client, spreadsheet):
        locator = SheetRowLocator(client)
        with pytest.raises(RowNotFoundError):
            async with locator.pinned(spreadsheet.id, ALLEGATIONS, "nope"):
                pass

    @pytest.mark.asyncio
    async def test_sheet_without_id_column(self, driver, client):
        sheet = driver.create_spreadsheet("Case", "root", ["Allegations"])
        driver.update_range(sheet.id, "'Allegations'!A1", [["Allegation"], ["x"]])
        with pytest.raises(SchemaMismatchError):
            async with SheetRowLocator(client).pinned(sheet.id, ALLEGATIONS, "x"):
                pass

    @pytest.mark.asyncio
    async def test_writes_to_one_sheet_are_serialized(self, client, spreadsheet):
        locator = SheetRowLocator(client)
        events = []

        async def hold(entity_id):
            async with locator.pinned(spreadsheet.id, ALLEGATIONS, entity_id):
                events.append(("enter", entity_id))
                await asyncio.sleep(0.01)
                events.append(("exit", entity_id))

        await asyncio.gather(hold("a1"), hold("a2"))
        assert [kind for kind, _ in events] == ["enter", "exit", "enter", "exit"]
