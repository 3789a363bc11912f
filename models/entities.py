"""Domain entities persisted as spreadsheet rows."""

import dataclasses
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional


def new_id() -> str:
    """Generate a stable entity id."""
    return uuid.uuid4().hex


def now_ms() -> int:
    """Current time as epoch milliseconds."""
    return int(time.time() * 1000)


class _Record:
    """Dict conversion shared by all entities (used by the local cache)."""

    def to_dict(self) -> Dict[str, Any]:
        return dataclasses.asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]):
        names = {f.name for f in dataclasses.fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in names})


@dataclass
class Case(_Record):
    """A legal case, registered in the case registry.

    Attributes:
        name: Unique (case-insensitive) name within the registry
        spreadsheet_id: The case's own spreadsheet
        folder_id: Drive folder holding the spreadsheet
        is_archived: Archived cases stay registered but are hidden by default
        last_modified: Epoch ms of the last registry update
    """
    name: str
    spreadsheet_id: str = ""
    folder_id: str = ""
    plaintiffs: str = ""
    defendants: str = ""
    court: str = ""
    is_archived: bool = False
    last_modified: int = 0
    id: str = ""


@dataclass
class Allegation(_Record):
    text: str
    case_id: str = ""
    id: str = ""


@dataclass
class Evidence(_Record):
    """A single evidentiary artifact belonging to a case.

    ``row`` is the 0-based sheet position observed when the item was read.
    It is informational only: updates and deletes locate the row again by id.
    """
    content: str
    case_id: str = ""
    timestamp: int = 0
    source_document: str = ""
    document_date: int = 0
    allegation_id: Optional[str] = None
    category: str = ""
    tags: List[str] = field(default_factory=list)
    commentary: str = ""
    id: str = ""
    row: Optional[int] = field(default=None, compare=False)

    def allegation_in(self, allegations: Iterable[Allegation]) -> Optional[Allegation]:
        """The referenced allegation, or None if unset or dangling."""
        if not self.allegation_id:
            return None
        for allegation in allegations:
            if allegation.id == self.allegation_id:
                return allegation
        return None


@dataclass
class Filter(_Record):
    """A saved evidence filter of a case."""
    name: str
    value: str = ""
    case_id: str = ""
    id: str = ""
