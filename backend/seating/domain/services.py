from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Iterable, Optional, Sequence

from .calendar import CalendarRules, effective_capacity, is_open_during
from .capacity import capacity_allows
from .errors import (
    BookingRuleViolationError,
    CapacityExceededError,
    NoTablesAvailableError,
    PartySizeRejectedError,
    TableConflictError,
    VenueClosedError,
)
from .overlap import Commitment, OverlapSummary, free_candidates, summarize_overlap
from .solver import MAX_COMBINATION_SIZE, TableOption, choose_tables

MIN_DURATION_MINUTES = 15
# Hard ceiling for every booking, staff included; overlap queries look back one day.
MAX_SPAN_MINUTES = 24 * 60


@dataclass(frozen=True)
class BookingRules:
    slot_minutes: int = 15
    min_advance_minutes: int = 60
    max_advance_days: int = 30
    default_duration_minutes: int = 120
    max_duration_minutes: int = 120
    # Stored and exposed, but not applied to the overlap check yet.
    buffer_minutes: int = 15
    max_online_party_size: int = 10
    capacity_threshold_percent: int = 90
    party_size_min: int = 1
    party_size_max: int = 10


@dataclass(frozen=True)
class VenueSnapshot:
    calendar: CalendarRules
    rules: BookingRules
    max_capacity: int


@dataclass(frozen=True)
class SeatingRequest:
    day: date
    starts_at: datetime
    duration_minutes: int
    party_size: int
    is_staff: bool = False
    requested_table_ids: tuple[int, ...] = ()

    @property
    def ends_at(self) -> datetime:
        return self.starts_at + timedelta(minutes=self.duration_minutes)


@dataclass(frozen=True)
class SeatingDecision:
    tables: tuple[TableOption, ...]
    overlap: OverlapSummary

    @property
    def table_ids(self) -> list[int]:
        return [t.id for t in self.tables]

    @property
    def capacity(self) -> int:
        return sum(t.capacity for t in self.tables)


def build_request(
    venue: VenueSnapshot,
    *,
    day: date,
    at: time,
    party_size: int,
    duration_minutes: Optional[int] = None,
    is_staff: bool = False,
    requested_table_ids: Iterable[int] = (),
) -> SeatingRequest:
    duration = duration_minutes if duration_minutes is not None else venue.rules.default_duration_minutes
    return SeatingRequest(
        day=day,
        starts_at=datetime.combine(day, at),
        duration_minutes=duration,
        party_size=party_size,
        is_staff=is_staff,
        requested_table_ids=tuple(sorted(set(requested_table_ids))),
    )


def validate_booking_rules(rules: BookingRules, request: SeatingRequest, *, now: datetime) -> None:
    """Online limits. Staff only keep the duration bounds."""
    if request.party_size < 1:
        raise PartySizeRejectedError("party size must be at least 1")
    if request.duration_minutes < MIN_DURATION_MINUTES:
        raise BookingRuleViolationError(f"bookings last at least {MIN_DURATION_MINUTES} minutes")
    if request.duration_minutes > MAX_SPAN_MINUTES:
        raise BookingRuleViolationError("bookings cannot last longer than a day")
    if request.is_staff:
        return

    if request.party_size > rules.max_online_party_size:
        raise PartySizeRejectedError(
            f"Online booking is limited to parties of {rules.max_online_party_size} or fewer. "
            "Please contact the venue directly."
        )
    if not rules.party_size_min <= request.party_size <= rules.party_size_max:
        raise PartySizeRejectedError(
            f"party size must be between {rules.party_size_min} and {rules.party_size_max}"
        )
    if request.duration_minutes > rules.max_duration_minutes:
        raise BookingRuleViolationError(f"bookings last at most {rules.max_duration_minutes} minutes")
    if request.starts_at < now + timedelta(minutes=rules.min_advance_minutes):
        raise BookingRuleViolationError(
            f"bookings must be made at least {rules.min_advance_minutes} minutes in advance"
        )
    if request.starts_at > now + timedelta(days=rules.max_advance_days):
        raise BookingRuleViolationError(
            f"bookings can be made at most {rules.max_advance_days} days in advance"
        )


def plan_seating(
    venue: VenueSnapshot,
    request: SeatingRequest,
    tables: Sequence[TableOption],
    commitments: Iterable[Commitment],
    *,
    now: datetime,
    max_tables: int = MAX_COMBINATION_SIZE,
) -> SeatingDecision:
    """
    Decide which tables seat the request. ``tables`` are the active, reservable
    tables; ``commitments`` the bookings of the day (the booking being edited,
    if any, already removed). Raises a DomainError when the request cannot be seated.
    """
    status = is_open_during(venue.calendar, request.day, request.starts_at, request.ends_at)
    if not status.is_open:
        raise VenueClosedError(status.reason or "Venue is closed")

    validate_booking_rules(venue.rules, request, now=now)

    summary = summarize_overlap(commitments, request.starts_at, request.ends_at)
    candidates = free_candidates(tables, summary.committed_table_ids)

    if request.requested_table_ids:
        chosen = _requested_tables(tables, candidates, request)
    else:
        if not candidates:
            raise NoTablesAvailableError("No tables available for the requested time")
        chosen = choose_tables(candidates, request.party_size, max_tables=max_tables)
        if not chosen:
            raise NoTablesAvailableError("no suitable table configuration")

    enforce_capacity(venue, request, summary.seated_people)
    return SeatingDecision(tables=tuple(chosen), overlap=summary)


def enforce_capacity(venue: VenueSnapshot, request: SeatingRequest, seated_people: int) -> None:
    """
    ``seated_people`` is the party sum of the other bookings overlapping the
    request. Staff requests always pass.
    """
    capacity = effective_capacity(venue.calendar, request.day, venue.max_capacity)
    if not capacity_allows(
        seated_people,
        request.party_size,
        venue_max_capacity=capacity,
        threshold_percent=venue.rules.capacity_threshold_percent,
        is_staff=request.is_staff,
    ):
        raise CapacityExceededError("This booking would exceed the venue capacity for this time slot")


def _requested_tables(
    tables: Sequence[TableOption],
    candidates: Sequence[TableOption],
    request: SeatingRequest,
) -> list[TableOption]:
    bookable = {t.id: t for t in tables}
    free = {t.id for t in candidates}
    chosen: list[TableOption] = []
    for table_id in request.requested_table_ids:
        table = bookable.get(table_id)
        if table is None:
            raise TableConflictError(f"table {table_id} is not bookable")
        if table_id not in free:
            raise TableConflictError("One or more selected tables are not available")
        chosen.append(table)
    if not request.is_staff and sum(t.capacity for t in chosen) < request.party_size:
        raise NoTablesAvailableError("selected tables cannot seat the party")
    return chosen
