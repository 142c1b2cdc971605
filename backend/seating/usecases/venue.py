from dataclasses import dataclass
from datetime import date, time
from typing import Any, Optional, Sequence

from ..domain.errors import AlreadyExistsError
from ..domain.repositories import AvailabilityRepository, BookingRepository, TableRepository, VenueRepository
from ..domain.services import MAX_SPAN_MINUTES
from ..models import ClosedDate, OpeningHours, SpecialEvent, VenueSettings
from .availability import load_venue, rebuild_availability, rebuild_cached_days

RULE_DEFAULTS: dict[str, int] = {
    "slot_minutes": 15,
    "min_advance_minutes": 60,
    "max_advance_days": 30,
    "default_duration_minutes": 120,
    "max_duration_minutes": 120,
    "buffer_minutes": 15,
    "max_online_party_size": 10,
    "capacity_threshold_percent": 90,
    "party_size_min": 1,
    "party_size_max": 10,
}
RULE_FIELDS = frozenset(RULE_DEFAULTS)


@dataclass(frozen=True)
class WeeklyHours:
    weekday: int
    opens_at: time
    closes_at: time
    is_closed: bool = False


def _validate_rules(venue: VenueSettings) -> None:
    if not 15 <= venue.slot_minutes <= 240:
        raise ValueError("slot_minutes must be between 15 and 240")
    if not 1 <= venue.capacity_threshold_percent <= 100:
        raise ValueError("capacity_threshold_percent must be between 1 and 100")
    if venue.party_size_min < 1 or venue.party_size_min > venue.party_size_max:
        raise ValueError("party size range is invalid")
    if not 30 <= venue.max_duration_minutes <= MAX_SPAN_MINUTES:
        raise ValueError("max_duration_minutes must be between 30 and one day")
    if venue.default_duration_minutes > venue.max_duration_minutes:
        raise ValueError("durations are invalid")
    if venue.min_advance_minutes < 0 or venue.max_advance_days < 1 or venue.buffer_minutes < 0:
        raise ValueError("advance window and buffer must not be negative")
    if venue.max_capacity < 1 or venue.max_online_party_size < 1:
        raise ValueError("capacities must be >= 1")


def _apply_hours(venue: VenueSettings, hours: Sequence[WeeklyHours]) -> None:
    # Update rows in place: replacing them would collide on (venue_id, weekday).
    if len({h.weekday for h in hours}) != len(hours):
        raise ValueError("each weekday may appear only once")
    existing = {row.weekday: row for row in venue.opening_hours}
    wanted = {h.weekday: h for h in hours}
    for weekday, row in existing.items():
        if weekday not in wanted:
            venue.opening_hours.remove(row)
    for weekday, entry in sorted(wanted.items()):
        if not 0 <= weekday <= 6:
            raise ValueError("weekday must be between 0 (Monday) and 6 (Sunday)")
        row = existing.get(weekday)
        if row is None:
            venue.opening_hours.append(
                OpeningHours(
                    weekday=weekday,
                    opens_at=entry.opens_at,
                    closes_at=entry.closes_at,
                    is_closed=entry.is_closed,
                )
            )
        else:
            row.opens_at = entry.opens_at
            row.closes_at = entry.closes_at
            row.is_closed = entry.is_closed


async def create_venue(
    venue_repo: VenueRepository,
    *,
    name: str,
    max_capacity: int,
    rules: dict[str, Any],
    hours: Sequence[WeeklyHours] = (),
) -> VenueSettings:
    if await venue_repo.get() is not None:
        raise AlreadyExistsError("Venue settings already exist. Update them instead.")
    unknown = set(rules) - RULE_FIELDS
    if unknown:
        raise ValueError(f"unknown booking rules: {', '.join(sorted(unknown))}")
    venue = VenueSettings(
        name=name,
        max_capacity=max_capacity,
        opening_hours=[],
        closed_dates=[],
        special_events=[],
        **{f: rules.get(f, default) for f, default in RULE_DEFAULTS.items()},
    )
    _validate_rules(venue)
    _apply_hours(venue, hours)
    return await venue_repo.create(venue)


async def update_venue(
    venue_repo: VenueRepository,
    table_repo: TableRepository,
    booking_repo: BookingRepository,
    availability_repo: AvailabilityRepository,
    *,
    today: date,
    name: Optional[str] = None,
    max_capacity: Optional[int] = None,
    rules: Optional[dict[str, Any]] = None,
) -> VenueSettings:
    """A new slot width re-partitions every cached day from ``today`` on."""
    venue = await load_venue(venue_repo)
    changes = rules or {}
    unknown = set(changes) - RULE_FIELDS
    if unknown:
        raise ValueError(f"unknown booking rules: {', '.join(sorted(unknown))}")
    previous_slot = venue.slot_minutes
    if name is not None:
        venue.name = name
    if max_capacity is not None:
        venue.max_capacity = max_capacity
    for field_name, value in changes.items():
        setattr(venue, field_name, value)
    _validate_rules(venue)
    venue = await venue_repo.save(venue)
    if venue.slot_minutes != previous_slot:
        await rebuild_cached_days(venue_repo, table_repo, booking_repo, availability_repo, today=today)
    return venue


async def set_opening_hours(
    venue_repo: VenueRepository,
    table_repo: TableRepository,
    booking_repo: BookingRepository,
    availability_repo: AvailabilityRepository,
    *,
    hours: Sequence[WeeklyHours],
    today: date,
) -> VenueSettings:
    venue = await load_venue(venue_repo)
    _apply_hours(venue, hours)
    venue = await venue_repo.save(venue)
    await rebuild_cached_days(venue_repo, table_repo, booking_repo, availability_repo, today=today)
    return venue


async def add_closed_date(
    venue_repo: VenueRepository,
    table_repo: TableRepository,
    booking_repo: BookingRepository,
    availability_repo: AvailabilityRepository,
    *,
    day: date,
    reason: Optional[str],
) -> VenueSettings:
    venue = await load_venue(venue_repo)
    if any(c.date == day for c in venue.closed_dates):
        raise AlreadyExistsError(f"{day.isoformat()} is already a closed date")
    venue.closed_dates.append(ClosedDate(date=day, reason=reason))
    venue = await venue_repo.save(venue)
    await rebuild_availability(venue_repo, table_repo, booking_repo, availability_repo, day=day)
    return venue


async def add_special_event(
    venue_repo: VenueRepository,
    table_repo: TableRepository,
    booking_repo: BookingRepository,
    availability_repo: AvailabilityRepository,
    *,
    name: str,
    day: date,
    opens_at: Optional[time] = None,
    closes_at: Optional[time] = None,
    custom_capacity: Optional[int] = None,
    notes: Optional[str] = None,
) -> VenueSettings:
    if (opens_at is None) != (closes_at is None):
        raise ValueError("custom hours need both opens_at and closes_at")
    if custom_capacity is not None and custom_capacity < 1:
        raise ValueError("custom_capacity must be >= 1")
    venue = await load_venue(venue_repo)
    if any(e.date == day for e in venue.special_events):
        raise AlreadyExistsError(f"a special event already exists on {day.isoformat()}")
    venue.special_events.append(
        SpecialEvent(
            name=name,
            date=day,
            opens_at=opens_at,
            closes_at=closes_at,
            custom_capacity=custom_capacity,
            notes=notes,
        )
    )
    venue = await venue_repo.save(venue)
    await rebuild_availability(venue_repo, table_repo, booking_repo, availability_repo, day=day)
    return venue
