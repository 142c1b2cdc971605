"""Per-table, per-day availability snapshots.

Snapshots are a pure projection of the calendar, the table catalog and the
occupying bookings of one day. Rebuilding with the same inputs produces the
same snapshots, so the cache can always be thrown away and recomputed.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from enum import StrEnum
from typing import Any, Iterable, Optional, Sequence

from .calendar import CalendarRules, day_bounds, operating_window
from .overlap import Commitment, OCCUPYING_STATUSES, intervals_overlap
from .solver import TableOption


class BlockReason(StrEnum):
    BOOKING = "booking"
    CLOSED = "closed"
    MAINTENANCE = "maintenance"
    EVENT = "event"
    OTHER = "other"


@dataclass(frozen=True)
class TimeRange:
    start: datetime
    end: datetime

    def to_dict(self) -> dict[str, Any]:
        return {"start": self.start.isoformat(), "end": self.end.isoformat()}


@dataclass(frozen=True)
class BlockedRange:
    start: datetime
    end: datetime
    reason: BlockReason
    booking_id: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "reason": self.reason.value,
        }
        if self.booking_id is not None:
            payload["booking_id"] = self.booking_id
        return payload


@dataclass(frozen=True)
class TableDaySnapshot:
    day: date
    table_id: int
    free: tuple[TimeRange, ...]
    blocked: tuple[BlockedRange, ...]

    def free_payload(self) -> list[dict[str, Any]]:
        return [slot.to_dict() for slot in self.free]

    def blocked_payload(self) -> list[dict[str, Any]]:
        return [block.to_dict() for block in self.blocked]


def partition(start: datetime, end: datetime, slot_minutes: int) -> list[TimeRange]:
    """Split [start, end) into whole slots; a trailing partial slot is dropped."""
    if slot_minutes <= 0:
        raise ValueError("slot_minutes must be positive")
    step = timedelta(minutes=slot_minutes)
    slots: list[TimeRange] = []
    cursor = start
    while cursor + step <= end:
        slots.append(TimeRange(cursor, cursor + step))
        cursor += step
    return slots


def build_day_snapshots(
    rules: CalendarRules,
    day: date,
    tables: Sequence[TableOption],
    commitments: Iterable[Commitment],
    *,
    slot_minutes: int,
) -> list[TableDaySnapshot]:
    """``tables`` are the active tables; ``commitments`` the bookings dated ``day``."""
    ordered_tables = sorted(tables, key=lambda t: t.id)
    window, _ = operating_window(rules, day)
    if window is None:
        day_start, day_end = day_bounds(day)
        closed = (BlockedRange(day_start, day_end, BlockReason.CLOSED),)
        return [TableDaySnapshot(day=day, table_id=t.id, free=(), blocked=closed) for t in ordered_tables]

    slots = partition(window.opens_at, window.closes_at, slot_minutes)
    occupying = sorted(
        (c for c in commitments if c.status in OCCUPYING_STATUSES),
        key=lambda c: (c.starts_at, c.booking_id),
    )

    snapshots: list[TableDaySnapshot] = []
    for table in ordered_tables:
        blocked = tuple(
            BlockedRange(c.starts_at, c.ends_at, BlockReason.BOOKING, booking_id=c.booking_id)
            for c in occupying
            if table.id in c.table_ids
        )
        free = tuple(
            slot
            for slot in slots
            if not any(intervals_overlap(slot.start, slot.end, b.start, b.end) for b in blocked)
        )
        snapshots.append(TableDaySnapshot(day=day, table_id=table.id, free=free, blocked=blocked))
    return snapshots
