"""Workflow layer for casesheets.

Contains multi-step flows built on the repositories:
- Import: create a case from an external spreadsheet dataset
"""

from .importer import (
    Dataset,
    ImportService,
    IMPORTED_CATEGORY,
    IMPORTED_SOURCE,
    PLACEHOLDER_NAME,
)


__all__ = [
    'Dataset',
    'ImportService',
    'IMPORTED_CATEGORY',
    'IMPORTED_SOURCE',
    'PLACEHOLDER_NAME',
]
