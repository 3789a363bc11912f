"""Import of an external spreadsheet dataset as a new case.

The dataset is a mapping of sheet name to rows, as produced by
``TabularClient.read_spreadsheet``. Where the case name, allegations and
evidence live inside it is described by an ``ImportSchema``.
"""

import logging
from datetime import datetime
from typing import Any, List, Mapping, Optional, Sequence

from models.entities import Allegation, Case, Evidence, now_ms
from models.schema import ImportSchema, resolve_column
from repositories import AllegationRepository, CaseRepository, EvidenceRepository
from storage.base import DuplicateCaseError
from storage.client import TabularClient
from storage.result import Error, Result, Success

logger = logging.getLogger(__name__)

Rows = Sequence[Sequence[Any]]
Dataset = Mapping[str, Rows]

PLACEHOLDER_NAME = "Imported Case"
IMPORTED_SOURCE = "Imported from spreadsheet"
IMPORTED_CATEGORY = "Imported"


def _cell(row: Sequence[Any], index: Optional[int]) -> str:
    if index is None or index >= len(row) or row[index] is None:
        return ""
    return str(row[index]).strip()


def _sheet(dataset: Dataset, name: str) -> Rows:
    """Rows of a sheet by name; an exact match wins over a case-insensitive one."""
    if name in dataset:
        return dataset[name]
    for title, rows in dataset.items():
        if title.strip().casefold() == name.strip().casefold():
            return rows
    logger.info("Dataset has no '%s' sheet", name)
    return []


def _unique(values: List[str]) -> List[str]:
    """Drop blank values and repeats (case-insensitive), keeping first seen."""
    seen = set()
    kept = []
    for value in values:
        key = value.casefold()
        if not value or key in seen:
            continue
        seen.add(key)
        kept.append(value)
    return kept


class ImportService:
    """Creates a case from an external dataset and fills its sheets.

    Steps run in order and stop at the first failure; there is no rollback.
    """

    def __init__(self, client: TabularClient, cases: CaseRepository,
                 allegations: AllegationRepository, evidence: EvidenceRepository,
                 schema: ImportSchema) -> None:
        self.client = client
        self.cases = cases
        self.allegations = allegations
        self.evidence = evidence
        self.schema = schema

    async def import_spreadsheet(self, spreadsheet_id: str) -> "Result[Case]":
        """Read every sheet of an external spreadsheet and import it."""
        dataset = await self.client.read_spreadsheet(spreadsheet_id)
        if not isinstance(dataset, Success):
            return dataset
        return await self.import_case(dataset.value)

    async def import_case(self, dataset: Dataset) -> "Result[Case]":
        """Import ``dataset`` as a new case.

        Returns:
            Result carrying the created case. A name already registered
            (ignoring case) fails with ``DuplicateCaseError`` before anything
            is created.
        """
        registry = await self.cases.resolver.resolve()
        if not isinstance(registry, Success):
            logger.error("Import aborted: case registry unavailable")
            return registry
        handle = registry.value

        name = self.case_name(dataset)
        existing = await self.cases.find_by_name(name, handle)
        if not isinstance(existing, Success):
            return existing
        if existing.value is not None:
            logger.warning("Import aborted: a case named '%s' already exists", name)
            return Error(DuplicateCaseError(f"A case named '{name}' already exists"))

        allegations = self.allegations_from(dataset)
        evidence = self.evidence_from(dataset)

        created = await self.cases.create(Case(name=name), handle)
        if not isinstance(created, Success):
            return created
        case = created.value

        if allegations:
            written = await self.allegations.insert_many(allegations, case)
            if not isinstance(written, Success):
                self._log_partial(case, "allegations")
                return written
        if evidence:
            written = await self.evidence.insert_many(evidence, case)
            if not isinstance(written, Success):
                self._log_partial(case, "evidence")
                return written

        logger.info("Imported case '%s' with %d allegation(s) and %d evidence item(s)",
                    case.name, len(allegations), len(evidence))
        return Success(case)

    # =========================================================================
    # Projection
    # =========================================================================

    def case_name(self, dataset: Dataset) -> str:
        """Case name from the labelled row of the case info sheet.

        Falls back to a timestamped placeholder when the sheet, the row or
        the value is missing.
        """
        info = self.schema.case_info_sheet
        rows = _sheet(dataset, info.name)
        column = resolve_column(info.case_name_column, rows[0] if rows else [])
        label = info.case_name_label.strip().casefold()
        for row in rows:
            if _cell(row, 0).casefold() == label:
                value = _cell(row, column)
                if value:
                    return value
        placeholder = f"{PLACEHOLDER_NAME} {datetime.now():%Y-%m-%d %H:%M:%S}"
        logger.info("No case name in dataset; using '%s'", placeholder)
        return placeholder

    def allegations_from(self, dataset: Dataset) -> List[Allegation]:
        sheet = self.schema.allegations_sheet
        rows = _sheet(dataset, sheet.name)
        if not rows:
            return []
        column = resolve_column(sheet.allegation_column, rows[0])
        if column is None:
            logger.warning("Allegations sheet has no column '%s'", sheet.allegation_column)
            return []
        texts = _unique([_cell(row, column) for row in rows[1:]])
        return [Allegation(text=text) for text in texts]

    def evidence_from(self, dataset: Dataset) -> List[Evidence]:
        sheet = self.schema.evidence_sheet
        rows = _sheet(dataset, sheet.name)
        if not rows:
            return []
        content_column = resolve_column(sheet.content_column, rows[0])
        if content_column is None:
            logger.warning("Evidence sheet has no column '%s'", sheet.content_column)
            return []
        tags_column = resolve_column(sheet.tags_column, rows[0])

        items = []
        seen = set()
        skipped = 0
        now = now_ms()
        for row in rows[1:]:
            content = _cell(row, content_column)
            key = content.casefold()
            if not content or key in seen:
                skipped += 1
                continue
            seen.add(key)
            tags = [t.strip() for t in _cell(row, tags_column).split(",") if t.strip()]
            items.append(Evidence(
                content=content,
                timestamp=now,
                source_document=IMPORTED_SOURCE,
                document_date=now,
                category=IMPORTED_CATEGORY,
                tags=tags,
            ))
        if skipped:
            logger.info("Skipped %d blank or duplicate evidence row(s)", skipped)
        return items

    @staticmethod
    def _log_partial(case: Case, what: str) -> None:
        logger.error(
            "Import of '%s' failed while writing %s; the case is registered but "
            "incomplete (folder %s, spreadsheet %s)",
            case.name, what, case.folder_id, case.spreadsheet_id,
        )
