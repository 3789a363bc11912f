"""Entity repositories for casesheets.

Each repository maps one entity type onto the rows of a sheet:
- CaseRepository: the registry's Cases sheet
- EvidenceRepository, AllegationRepository, FilterRepository: sheets of a
  case's own spreadsheet

Usage:
    from repositories import EvidenceRepository

    result = await evidence.list(case)
"""

from .base import SheetRepository
from .locator import HeaderMap, RowLocation, RowLocator, SheetRowLocator
from .cases import CaseRepository
from .evidence import EvidenceRepository
from .allegations import AllegationRepository
from .filters import FilterRepository


__all__ = [
    'SheetRepository',
    'HeaderMap',
    'RowLocation',
    'RowLocator',
    'SheetRowLocator',
    'CaseRepository',
    'EvidenceRepository',
    'AllegationRepository',
    'FilterRepository',
]
