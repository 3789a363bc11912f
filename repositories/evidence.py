"""Evidence repository: rows of a case's ``Evidence`` sheet."""

import dataclasses
from typing import Any, Dict, Mapping, Optional

from models.entities import Case, Evidence
from models.schema import EVIDENCE
from utils.sanitize import split_list

from .base import SheetRepository, parse_int


class EvidenceRepository(SheetRepository[Evidence, Case]):
    layout = EVIDENCE
    entity_type = Evidence

    def spreadsheet_id(self, case: Case) -> str:
        return case.spreadsheet_id

    def cache_key(self, case: Optional[Case]) -> str:
        if case is None:
            raise ValueError("Evidence is cached per case")
        return f"evidence_{case.spreadsheet_id}"

    def to_record(self, evidence: Evidence) -> Dict[str, Any]:
        return {
            "ID": evidence.id,
            "Content": evidence.content,
            "Timestamp": evidence.timestamp,
            "Source Document": evidence.source_document,
            "Document Date": evidence.document_date,
            "Tags": evidence.tags,
            "Allegation ID": evidence.allegation_id or "",
            "Category": evidence.category,
            "Commentary": evidence.commentary,
        }

    def from_record(self, record: Mapping[str, str], case: Case) -> Evidence:
        return Evidence(
            id=self.text(record, "ID").strip(),
            case_id=case.id,
            content=self.text(record, "Content"),
            timestamp=parse_int(self.text(record, "Timestamp")),
            source_document=self.text(record, "Source Document"),
            document_date=parse_int(self.text(record, "Document Date")),
            tags=split_list(record.get("Tags", "")),
            allegation_id=self.text(record, "Allegation ID").strip() or None,
            category=self.text(record, "Category"),
            commentary=self.text(record, "Commentary"),
        )

    def prepare(self, evidence: Evidence, case: Case) -> Evidence:
        evidence = super().prepare(evidence, case)
        return dataclasses.replace(evidence, case_id=case.id)

    def with_row(self, evidence: Evidence, index: int) -> Evidence:
        return dataclasses.replace(evidence, row=index)
