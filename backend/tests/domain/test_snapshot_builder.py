from datetime import date, datetime, time

import pytest

from seating.domain.availability import BlockReason, TimeRange, build_day_snapshots, partition
from seating.domain.calendar import CalendarRules, ClosedDay, DayHours
from seating.domain.overlap import Commitment
from seating.domain.solver import TableOption
from seating.models import BookingStatus

FRIDAY = date(2030, 3, 15)
RULES = CalendarRules(weekly={4: DayHours(opens_at=time(18, 0), closes_at=time(20, 0))})
TABLES = [
    TableOption(id=2, label="A2", capacity=2, section="indoor"),
    TableOption(id=1, label="A1", capacity=2, section="indoor"),
]


def _at(hour: int, minute: int = 0) -> datetime:
    return datetime(2030, 3, 15, hour, minute)


def _booking(booking_id: int, start: datetime, end: datetime, status: BookingStatus = BookingStatus.CONFIRMED) -> Commitment:
    return Commitment(
        booking_id=booking_id,
        starts_at=start,
        ends_at=end,
        party_size=2,
        table_ids=frozenset({1}),
        status=status,
    )


def test_partition_drops_trailing_partial_slot() -> None:
    slots = partition(_at(18), _at(19, 40), 30)
    assert slots == [TimeRange(_at(18), _at(18, 30)), TimeRange(_at(18, 30), _at(19)), TimeRange(_at(19), _at(19, 30))]


def test_partition_rejects_non_positive_slot() -> None:
    with pytest.raises(ValueError):
        partition(_at(18), _at(20), 0)


def test_booking_blocks_overlapping_slots_only() -> None:
    snapshots = build_day_snapshots(RULES, FRIDAY, TABLES, [_booking(7, _at(18, 30), _at(19, 30))], slot_minutes=30)
    assert [s.table_id for s in snapshots] == [1, 2]

    first, second = snapshots
    assert first.free == (TimeRange(_at(18), _at(18, 30)), TimeRange(_at(19, 30), _at(20)))
    assert len(first.blocked) == 1
    assert first.blocked[0].reason is BlockReason.BOOKING
    assert first.blocked[0].booking_id == 7
    assert len(second.free) == 4
    assert second.blocked == ()


def test_released_bookings_free_their_slots() -> None:
    commitments = [_booking(7, _at(18), _at(20), status=BookingStatus.CANCELLED)]
    snapshots = build_day_snapshots(RULES, FRIDAY, TABLES, commitments, slot_minutes=30)
    assert all(len(s.free) == 4 and not s.blocked for s in snapshots)


def test_closed_day_blocks_whole_day() -> None:
    rules = CalendarRules(weekly=RULES.weekly, closed_days=(ClosedDay(day=FRIDAY, reason="Holiday"),))
    snapshots = build_day_snapshots(rules, FRIDAY, TABLES, [], slot_minutes=30)
    for snapshot in snapshots:
        assert snapshot.free == ()
        assert snapshot.blocked_payload() == [
            {"start": "2030-03-15T00:00:00", "end": "2030-03-16T00:00:00", "reason": "closed"}
        ]


def test_rebuild_is_deterministic() -> None:
    commitments = [
        _booking(9, _at(19), _at(20)),
        _booking(3, _at(18), _at(19)),
    ]
    first = build_day_snapshots(RULES, FRIDAY, TABLES, commitments, slot_minutes=15)
    second = build_day_snapshots(RULES, FRIDAY, list(reversed(TABLES)), list(reversed(commitments)), slot_minutes=15)
    assert first == second
    assert [s.blocked_payload() for s in first] == [s.blocked_payload() for s in second]
    assert [b["booking_id"] for b in first[0].blocked_payload()] == [3, 9]
