from typing import Iterable

from ..domain.calendar import CalendarRules, ClosedDay, DayHours, EventOverride
from ..domain.overlap import Commitment
from ..domain.services import BookingRules, VenueSnapshot
from ..domain.solver import TableOption
from ..models import Booking, DiningTable, VenueSettings


def venue_snapshot(venue: VenueSettings) -> VenueSnapshot:
    calendar = CalendarRules(
        weekly={
            h.weekday: DayHours(opens_at=h.opens_at, closes_at=h.closes_at, is_closed=h.is_closed)
            for h in venue.opening_hours
        },
        closed_days=tuple(ClosedDay(day=c.date, reason=c.reason) for c in venue.closed_dates),
        events=tuple(
            EventOverride(
                name=e.name,
                day=e.date,
                opens_at=e.opens_at,
                closes_at=e.closes_at,
                custom_capacity=e.custom_capacity,
            )
            for e in venue.special_events
        ),
    )
    rules = BookingRules(
        slot_minutes=venue.slot_minutes,
        min_advance_minutes=venue.min_advance_minutes,
        max_advance_days=venue.max_advance_days,
        default_duration_minutes=venue.default_duration_minutes,
        max_duration_minutes=venue.max_duration_minutes,
        buffer_minutes=venue.buffer_minutes,
        max_online_party_size=venue.max_online_party_size,
        capacity_threshold_percent=venue.capacity_threshold_percent,
        party_size_min=venue.party_size_min,
        party_size_max=venue.party_size_max,
    )
    return VenueSnapshot(calendar=calendar, rules=rules, max_capacity=venue.max_capacity)


def table_option(table: DiningTable) -> TableOption:
    return TableOption(id=table.id, label=table.label, capacity=table.capacity, section=str(table.section))


def bookable_options(tables: Iterable[DiningTable]) -> list[TableOption]:
    return [table_option(t) for t in tables if t.is_active and t.is_reservable]


def commitment(booking: Booking) -> Commitment:
    return Commitment(
        booking_id=booking.id,
        starts_at=booking.starts_at,
        ends_at=booking.ends_at,
        party_size=booking.party_size,
        table_ids=frozenset(booking.table_ids),
        status=booking.status,
    )
