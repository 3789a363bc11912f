"""Filter repository: saved evidence filters in a case's ``Filters`` sheet."""

import dataclasses
from typing import Any, Dict, Mapping, Optional

from models.entities import Case, Filter
from models.schema import FILTERS

from .base import SheetRepository


class FilterRepository(SheetRepository[Filter, Case]):
    layout = FILTERS
    entity_type = Filter

    def spreadsheet_id(self, case: Case) -> str:
        return case.spreadsheet_id

    def cache_key(self, case: Optional[Case]) -> str:
        if case is None:
            raise ValueError("Filters are cached per case")
        return f"filters_{case.spreadsheet_id}"

    def to_record(self, item: Filter) -> Dict[str, Any]:
        return {"ID": item.id, "Name": item.name, "Value": item.value}

    def from_record(self, record: Mapping[str, str], case: Case) -> Filter:
        return Filter(
            id=self.text(record, "ID").strip(),
            case_id=case.id,
            name=self.text(record, "Name"),
            value=self.text(record, "Value"),
        )

    def prepare(self, item: Filter, case: Case) -> Filter:
        return dataclasses.replace(super().prepare(item, case), case_id=case.id)
