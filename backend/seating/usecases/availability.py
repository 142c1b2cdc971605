import logging
from datetime import date, datetime, time
from typing import Iterable, Optional

from ..domain.availability import TableDaySnapshot, build_day_snapshots
from ..domain.errors import NotFoundError
from ..domain.repositories import AvailabilityRepository, BookingRepository, TableRepository, VenueRepository
from ..domain.services import SeatingDecision, build_request, plan_seating
from ..domain.solver import MAX_COMBINATION_SIZE
from ..models import AvailabilitySnapshot, DiningTable, VenueSettings
from .snapshots import bookable_options, commitment, table_option, venue_snapshot

logger = logging.getLogger(__name__)


async def load_venue(venue_repo: VenueRepository) -> VenueSettings:
    venue = await venue_repo.get()
    if venue is None:
        raise NotFoundError("Venue settings not found")
    return venue


async def check_availability(
    venue_repo: VenueRepository,
    table_repo: TableRepository,
    booking_repo: BookingRepository,
    *,
    day: date,
    at: time,
    party_size: int,
    duration_minutes: Optional[int],
    is_staff: bool,
    now: datetime,
    max_tables: int = MAX_COMBINATION_SIZE,
) -> SeatingDecision:
    """Read-only: raises a DomainError explaining why the request cannot be seated."""
    venue = venue_snapshot(await load_venue(venue_repo))
    request = build_request(
        venue,
        day=day,
        at=at,
        party_size=party_size,
        duration_minutes=duration_minutes,
        is_staff=is_staff,
    )
    tables = bookable_options(await table_repo.list_active())
    bookings = await booking_repo.list_overlapping(request.starts_at, request.ends_at)
    return plan_seating(
        venue,
        request,
        tables,
        [commitment(b) for b in bookings],
        now=now,
        max_tables=max_tables,
    )


async def rebuild_availability(
    venue_repo: VenueRepository,
    table_repo: TableRepository,
    booking_repo: BookingRepository,
    availability_repo: AvailabilityRepository,
    *,
    day: date,
) -> list[TableDaySnapshot]:
    venue = await load_venue(venue_repo)
    snapshot = venue_snapshot(venue)
    tables = [table_option(t) for t in await table_repo.list_active()]
    bookings = await booking_repo.list_for_day(day)
    snapshots = build_day_snapshots(
        snapshot.calendar,
        day,
        tables,
        [commitment(b) for b in bookings],
        slot_minutes=snapshot.rules.slot_minutes,
    )
    await availability_repo.replace_day(day, snapshots)
    logger.debug("rebuilt availability for %s (%d tables)", day, len(snapshots))
    return snapshots


async def get_table_availability(
    venue_repo: VenueRepository,
    table_repo: TableRepository,
    booking_repo: BookingRepository,
    availability_repo: AvailabilityRepository,
    *,
    day: date,
) -> list[tuple[DiningTable, AvailabilitySnapshot]]:
    """Serve the stored snapshot; build it only when the day has none yet."""
    rows = await availability_repo.list_day(day)
    if not rows:
        await rebuild_availability(venue_repo, table_repo, booking_repo, availability_repo, day=day)
        rows = await availability_repo.list_day(day)
    tables = {t.id: t for t in await table_repo.list_active()}
    return [(tables[row.table_id], row) for row in rows if row.table_id in tables]


async def rebuild_cached_days(
    venue_repo: VenueRepository,
    table_repo: TableRepository,
    booking_repo: BookingRepository,
    availability_repo: AvailabilityRepository,
    *,
    today: date,
    also: Iterable[date] = (),
) -> list[date]:
    """
    Rebuild every cached day from ``today`` on, plus ``also``. Used after
    changes that reshape whole days, such as opening hours or the table set.
    """
    days = sorted(set(await availability_repo.cached_days(today)) | {d for d in also if d >= today})
    for day in days:
        await rebuild_availability(venue_repo, table_repo, booking_repo, availability_repo, day=day)
    if days:
        logger.info("rebuilt availability for %d cached day(s) from %s", len(days), today)
    return days
