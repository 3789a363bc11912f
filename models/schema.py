"""Sheet layouts owned by the engine and the configurable import schema.

Header labels are the contract between the engine and the sheets: they are
matched by name, so humans may reorder columns but must not rename them.
"""

import json
import os
from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence, Tuple, Union

APP_ROOT_FOLDER_NAME = "CaseSheets"
CASE_REGISTRY_SPREADSHEET_NAME = "CaseSheets Case Registry"

DEFAULT_IMPORT_SCHEMA_PATH = os.path.join(os.path.dirname(__file__), "import_schema.json")


@dataclass(frozen=True)
class SheetLayout:
    """Name and header row of a sheet the engine writes.

    Columns listed in ``optional`` may be absent from an existing sheet;
    their values are then neither read nor written.
    """
    name: str
    columns: Tuple[str, ...]
    id_column: str = "ID"
    optional: Tuple[str, ...] = ()

    @property
    def required(self) -> Tuple[str, ...]:
        return tuple(c for c in self.columns if c not in self.optional)


CASES = SheetLayout("Cases", (
    "ID", "Case Name", "Spreadsheet ID", "Folder ID", "Plaintiffs",
    "Defendants", "Court", "Archived", "Last Modified",
), optional=("Plaintiffs", "Defendants", "Court", "Archived", "Last Modified"))

EVIDENCE = SheetLayout("Evidence", (
    "ID", "Content", "Timestamp", "Source Document", "Document Date",
    "Tags", "Allegation ID", "Category", "Commentary",
), optional=("Commentary",))

ALLEGATIONS = SheetLayout("Allegations", ("ID", "Allegation"))

FILTERS = SheetLayout("Filters", ("ID", "Name", "Value"))

# Sheets created in every new case spreadsheet, in tab order
CASE_SHEETS = (EVIDENCE, ALLEGATIONS, FILTERS)


# ---------------------------------------------------------------------------
# Import schema
# ---------------------------------------------------------------------------

Column = Union[int, str]


class SchemaError(ValueError):
    """The import schema file is missing or malformed."""
    pass


def resolve_column(column: Optional[Column], header: Sequence[str]) -> Optional[int]:
    """Turn a schema column (0-based index or header label) into an index.

    Returns None when a label isn't present in ``header``.
    """
    if column is None:
        return None
    if isinstance(column, int):
        return column
    wanted = column.strip().casefold()
    for index, label in enumerate(header):
        if str(label).strip().casefold() == wanted:
            return index
    return None


@dataclass(frozen=True)
class CaseInfoSheet:
    name: str
    case_name_label: str
    case_name_column: Column


@dataclass(frozen=True)
class AllegationsSheet:
    name: str
    allegation_column: Column


@dataclass(frozen=True)
class EvidenceSheet:
    name: str
    content_column: Column
    tags_column: Optional[Column] = None


@dataclass(frozen=True)
class ImportSchema:
    """Where the import pipeline finds things in an external dataset."""
    case_info_sheet: CaseInfoSheet
    allegations_sheet: AllegationsSheet
    evidence_sheet: EvidenceSheet

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ImportSchema":
        """Build from parsed JSON.

        Raises:
            SchemaError: If a section or key is missing or has the wrong type
        """
        try:
            info = data["case_info_sheet"]
            allegations = data["allegations_sheet"]
            evidence = data["evidence_sheet"]
            schema = cls(
                case_info_sheet=CaseInfoSheet(
                    name=_text(info["name"]),
                    case_name_label=_text(info["case_name_label"]),
                    case_name_column=_column(info["case_name_column"]),
                ),
                allegations_sheet=AllegationsSheet(
                    name=_text(allegations["name"]),
                    allegation_column=_column(allegations["allegation_column"]),
                ),
                evidence_sheet=EvidenceSheet(
                    name=_text(evidence["name"]),
                    content_column=_column(evidence["content_column"]),
                    tags_column=_column(evidence.get("tags_column"), optional=True),
                ),
            )
        except KeyError as e:
            raise SchemaError(f"Import schema is missing key {e}")
        except TypeError as e:
            raise SchemaError(f"Import schema is malformed: {e}")
        return schema


def _text(value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise SchemaError(f"Expected a non-empty string, got {value!r}")
    return value


def _column(value: Any, optional: bool = False) -> Optional[Column]:
    if value is None and optional:
        return None
    if isinstance(value, bool):
        raise SchemaError(f"Expected a column index or label, got {value!r}")
    if isinstance(value, int):
        if value < 0:
            raise SchemaError(f"Column index must not be negative: {value}")
        return value
    return _text(value)


def load_import_schema(path: Optional[str] = None) -> ImportSchema:
    """Load the import schema from a JSON file (the shipped default if None).

    Raises:
        SchemaError: If the file can't be read or doesn't describe a schema
    """
    path = path or DEFAULT_IMPORT_SCHEMA_PATH
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except OSError as e:
        raise SchemaError(f"Cannot read import schema {path}: {e}")
    except ValueError as e:
        raise SchemaError(f"Import schema {path} is not valid JSON: {e}")
    if not isinstance(data, dict):
        raise SchemaError(f"Import schema {path} must be a JSON object")
    return ImportSchema.from_dict(data)
