"""Allegation repository: rows of a case's ``Allegations`` sheet."""

import dataclasses
from typing import Any, Dict, Mapping, Optional

from models.entities import Allegation, Case
from models.schema import ALLEGATIONS

from .base import SheetRepository


class AllegationRepository(SheetRepository[Allegation, Case]):
    layout = ALLEGATIONS
    entity_type = Allegation

    def spreadsheet_id(self, case: Case) -> str:
        return case.spreadsheet_id

    def cache_key(self, case: Optional[Case]) -> str:
        if case is None:
            raise ValueError("Allegations are cached per case")
        return f"allegations_{case.spreadsheet_id}"

    def to_record(self, allegation: Allegation) -> Dict[str, Any]:
        return {"ID": allegation.id, "Allegation": allegation.text}

    def from_record(self, record: Mapping[str, str], case: Case) -> Allegation:
        return Allegation(
            id=self.text(record, "ID").strip(),
            case_id=case.id,
            text=self.text(record, "Allegation"),
        )

    def prepare(self, allegation: Allegation, case: Case) -> Allegation:
        return dataclasses.replace(super().prepare(allegation, case), case_id=case.id)
