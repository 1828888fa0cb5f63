"""Data transfer objects for records, generations, and operation results."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, IntFlag
from typing import Any, Mapping, Optional, Sequence, Tuple

from ..settings import IngestMode
from .schema import Language


class TitleFlag(IntFlag):
    """Classification flags stored in the ``flags`` column."""

    NONE = 0
    PRIMARY = 1
    OFFICIAL = 2
    SYNONYM = 4
    SHORT = 8


@dataclass(frozen=True)
class Record:
    """One catalog entry.

    ``children`` maps a child-table name to the rows stored for this record;
    each row is a tuple matching the child table's declared columns.  ``id``
    is ``None`` until the store assigns one.
    """

    natural_key: str
    language: Language
    text: str
    flags: TitleFlag = TitleFlag.NONE
    children: Mapping[str, Sequence[Tuple[Any, ...]]] = field(default_factory=dict)
    id: Optional[int] = None
    inserted_at: Optional[datetime] = None


@dataclass(frozen=True)
class ScoredRecord:
    """A record returned by ranked search together with its relevance."""

    record: Record
    score: float


class GenerationState(str, Enum):
    """Lifecycle of an ingest batch: alive → dead → reclaimed."""

    ALIVE = "alive"
    DEAD = "dead"
    RECLAIMED = "reclaimed"


@dataclass(frozen=True)
class Generation:
    """The ID span produced by one ingest and its liveness."""

    id: int
    dataset: str
    first_id: int
    last_id: int
    created_at: datetime
    dead: bool = False
    dead_at: Optional[datetime] = None
    reclaimed_at: Optional[datetime] = None

    @property
    def state(self) -> GenerationState:
        if not self.dead:
            return GenerationState.ALIVE
        if self.reclaimed_at is None:
            return GenerationState.DEAD
        return GenerationState.RECLAIMED

    @property
    def size(self) -> int:
        return self.last_id - self.first_id + 1


@dataclass(frozen=True)
class LiveRange:
    """Inclusive ID interval authoritative for ranked queries."""

    first_id: int
    last_id: int

    def __contains__(self, record_id: object) -> bool:
        return isinstance(record_id, int) and self.first_id <= record_id <= self.last_id


@dataclass(frozen=True)
class IngestResult:
    """Outcome of a bulk ingest.

    ``first_id``, ``last_id`` and ``generation_id`` are ``None`` when the input
    was empty, in which case no generation row was recorded.
    """

    dataset: str
    mode: IngestMode
    count: int
    first_id: Optional[int]
    last_id: Optional[int]
    generation_id: Optional[int]
    killed: int
    duration_ms: float


@dataclass(frozen=True)
class SweepResult:
    """Result of a retention sweep."""

    generations_reclaimed: int
    rows_deleted: int
    reclaimed_ids: Tuple[int, ...]
    duration_ms: float


__all__ = [
    "TitleFlag",
    "Record",
    "ScoredRecord",
    "GenerationState",
    "Generation",
    "LiveRange",
    "IngestResult",
    "SweepResult",
]
