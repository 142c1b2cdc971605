from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Sequence

from ..models import BookingStatus
from .solver import TableOption

# Statuses that hold a table.
OCCUPYING_STATUSES = frozenset({BookingStatus.PENDING, BookingStatus.CONFIRMED, BookingStatus.SEATED})


@dataclass(frozen=True)
class Commitment:
    """An existing booking reduced to what the overlap check needs."""

    booking_id: int
    starts_at: datetime
    ends_at: datetime
    party_size: int
    table_ids: frozenset[int]
    status: BookingStatus = BookingStatus.CONFIRMED


@dataclass(frozen=True)
class OverlapSummary:
    commitments: tuple[Commitment, ...] = ()
    committed_table_ids: frozenset[int] = field(default_factory=frozenset)
    seated_people: int = 0


def intervals_overlap(start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime) -> bool:
    """Half-open intersection: touching endpoints do not overlap."""
    return start_a < end_b and start_b < end_a


def overlapping(commitments: Iterable[Commitment], start: datetime, end: datetime) -> list[Commitment]:
    return [
        c
        for c in commitments
        if c.status in OCCUPYING_STATUSES and intervals_overlap(c.starts_at, c.ends_at, start, end)
    ]


def summarize_overlap(commitments: Iterable[Commitment], start: datetime, end: datetime) -> OverlapSummary:
    hits = overlapping(commitments, start, end)
    committed: set[int] = set()
    for commitment in hits:
        committed.update(commitment.table_ids)
    return OverlapSummary(
        commitments=tuple(hits),
        committed_table_ids=frozenset(committed),
        seated_people=sum(c.party_size for c in hits),
    )


def free_candidates(tables: Sequence[TableOption], committed_table_ids: frozenset[int]) -> list[TableOption]:
    """Tables passed in must already be active and reservable."""
    return [t for t in tables if t.id not in committed_table_ids]


def conflicting_tables(
    commitments: Iterable[Commitment],
    table_ids: Iterable[int],
    start: datetime,
    end: datetime,
) -> set[int]:
    wanted = set(table_ids)
    taken: set[int] = set()
    for commitment in overlapping(commitments, start, end):
        taken.update(commitment.table_ids & wanted)
    return taken
