"""Domain model for casesheets.

Provides the entities stored in spreadsheets and the schema describing where
they live:
- Entities: Case, Evidence, Allegation, Filter
- Sheet layouts: fixed header rows of the sheets the engine owns
- Import schema: configurable locations inside an external dataset

Usage:
    from models import Evidence, EVIDENCE, load_import_schema

    schema = load_import_schema()
"""

from .entities import Allegation, Case, Evidence, Filter, new_id, now_ms
from .schema import (
    ALLEGATIONS,
    APP_ROOT_FOLDER_NAME,
    CASE_REGISTRY_SPREADSHEET_NAME,
    CASE_SHEETS,
    CASES,
    EVIDENCE,
    FILTERS,
    ImportSchema,
    SchemaError,
    SheetLayout,
    load_import_schema,
    resolve_column,
)


__all__ = [
    # Entities
    'Allegation',
    'Case',
    'Evidence',
    'Filter',
    'new_id',
    'now_ms',

    # Sheet layouts
    'SheetLayout',
    'CASES',
    'EVIDENCE',
    'ALLEGATIONS',
    'FILTERS',
    'CASE_SHEETS',
    'APP_ROOT_FOLDER_NAME',
    'CASE_REGISTRY_SPREADSHEET_NAME',

    # Import schema
    'ImportSchema',
    'SchemaError',
    'load_import_schema',
    'resolve_column',
]
