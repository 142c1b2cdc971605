import logging
from dataclasses import dataclass, replace
from datetime import date, datetime, time, timezone
from typing import Awaitable, Callable, Iterable, Optional, Sequence, TypeVar

from ..domain.errors import (
    CommitConflictError,
    InvalidStatusTransitionError,
    NoTablesAvailableError,
    NotFoundError,
    TableConflictError,
    VersionConflictError,
)
from ..domain.lifecycle import is_editable, releases_tables, validate_transition
from ..domain.overlap import Commitment, summarize_overlap
from ..domain.repositories import AvailabilityRepository, BookingRepository, TableRepository, VenueRepository
from ..domain.services import (
    SeatingDecision,
    SeatingRequest,
    VenueSnapshot,
    build_request,
    enforce_capacity,
    plan_seating,
)
from ..domain.solver import MAX_COMBINATION_SIZE, TableOption
from ..models import Booking, BookingSource, BookingStatus, DiningTable
from .availability import load_venue, rebuild_availability
from .snapshots import bookable_options, commitment, venue_snapshot

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class Customer:
    name: str
    email: str
    phone: str
    user_id: Optional[int] = None


async def with_conflict_retry(attempt: Callable[[], Awaitable[T]], *, retries: int) -> T:
    """
    Run ``attempt`` (one full transaction) and re-run it when the commit-time
    check finds the tables taken. Other errors propagate on the first try.
    """
    remaining = retries
    while True:
        try:
            return await attempt()
        except CommitConflictError as exc:
            if remaining <= 0:
                raise
            remaining -= 1
            logger.info("table conflict at commit, re-validating: %s", exc.reason)


async def _lock_and_verify(
    table_repo: TableRepository,
    booking_repo: BookingRepository,
    venue: VenueSnapshot,
    request: SeatingRequest,
    decision: SeatingDecision,
    *,
    exclude_booking_id: Optional[int] = None,
) -> list[DiningTable]:
    """
    Take the table row locks, then re-read who holds them in the window and
    re-check the capacity guard against bookings committed since planning.
    """
    wanted = decision.table_ids
    locked = await table_repo.lock(wanted)
    if sorted(t.id for t in locked) != sorted(wanted) or not all(t.is_active and t.is_reservable for t in locked):
        raise CommitConflictError("One or more selected tables are no longer bookable")

    clashes = [
        b
        for b in await booking_repo.list_overlapping(request.starts_at, request.ends_at, table_ids=wanted)
        if b.id != exclude_booking_id
    ]
    if clashes:
        raise CommitConflictError("One or more selected tables were just booked")

    if not request.is_staff:
        others = [
            commitment(b)
            for b in await booking_repo.list_overlapping(request.starts_at, request.ends_at)
            if b.id != exclude_booking_id
        ]
        enforce_capacity(venue, request, summarize_overlap(others, request.starts_at, request.ends_at).seated_people)
    by_id = {t.id: t for t in locked}
    return [by_id[table_id] for table_id in wanted]


async def assign_and_book(
    venue_repo: VenueRepository,
    table_repo: TableRepository,
    booking_repo: BookingRepository,
    availability_repo: AvailabilityRepository,
    *,
    day: date,
    at: time,
    party_size: int,
    duration_minutes: Optional[int],
    customer: Customer,
    is_staff: bool,
    now: datetime,
    requested_table_ids: Iterable[int] = (),
    special_requests: Optional[str] = None,
    created_by: Optional[int] = None,
    max_tables: int = MAX_COMBINATION_SIZE,
) -> Booking:
    """One attempt; must run inside a single transaction."""
    venue = venue_snapshot(await load_venue(venue_repo))
    request = build_request(
        venue,
        day=day,
        at=at,
        party_size=party_size,
        duration_minutes=duration_minutes,
        is_staff=is_staff,
        requested_table_ids=requested_table_ids,
    )
    tables = bookable_options(await table_repo.list_active())
    bookings = await booking_repo.list_overlapping(request.starts_at, request.ends_at)
    decision = plan_seating(venue, request, tables, [commitment(b) for b in bookings], now=now, max_tables=max_tables)

    assigned = await _lock_and_verify(table_repo, booking_repo, venue, request, decision)
    booking = await booking_repo.create(
        customer_name=customer.name,
        customer_email=customer.email,
        customer_phone=customer.phone,
        user_id=customer.user_id,
        party_size=party_size,
        day=day,
        starts_at=request.starts_at,
        ends_at=request.ends_at,
        duration_minutes=request.duration_minutes,
        tables=assigned,
        status=BookingStatus.CONFIRMED if is_staff else BookingStatus.PENDING,
        source=BookingSource.MANUAL if is_staff else BookingSource.ONLINE,
        special_requests=special_requests,
        created_by=created_by,
    )
    await rebuild_availability(venue_repo, table_repo, booking_repo, availability_repo, day=day)
    logger.info("booking %s assigned tables %s on %s", booking.id, decision.table_ids, day)
    return booking


async def get_booking(
    booking_repo: BookingRepository,
    *,
    booking_id: int,
    owner_id: Optional[int] = None,
) -> Booking:
    """``owner_id`` restricts the lookup to that customer's bookings."""
    booking = await booking_repo.get(booking_id)
    if booking is None or (owner_id is not None and booking.user_id != owner_id):
        raise NotFoundError("Booking not found")
    return booking


async def list_bookings(
    booking_repo: BookingRepository,
    *,
    day: Optional[date],
    status: Optional[BookingStatus],
    owner_id: Optional[int],
    page: int,
    limit: int,
) -> tuple[list[Booking], int]:
    if page < 1 or limit < 1:
        raise ValueError("page and limit must be >= 1")
    return await booking_repo.search(
        day=day,
        status=status,
        user_id=owner_id,
        offset=(page - 1) * limit,
        limit=limit,
    )


async def _load_for_change(
    booking_repo: BookingRepository,
    *,
    booking_id: int,
    version: Optional[int],
    owner_id: Optional[int] = None,
) -> Booking:
    booking = await booking_repo.get_for_update(booking_id)
    if booking is None or (owner_id is not None and booking.user_id != owner_id):
        raise NotFoundError("Booking not found")
    if version is not None and booking.version != version:
        raise VersionConflictError("version mismatch")
    return booking


async def change_status(
    venue_repo: VenueRepository,
    table_repo: TableRepository,
    booking_repo: BookingRepository,
    availability_repo: AvailabilityRepository,
    *,
    booking_id: int,
    new_status: BookingStatus,
    version: Optional[int] = None,
    owner_id: Optional[int] = None,
) -> tuple[Booking, BookingStatus]:
    """Returns the booking and the status it had before the call."""
    booking = await _load_for_change(booking_repo, booking_id=booking_id, version=version, owner_id=owner_id)
    previous = booking.status
    if not validate_transition(previous, new_status):
        return booking, previous

    booking.status = new_status
    booking.version += 1
    booking.updated_at = datetime.now(timezone.utc).replace(tzinfo=None)
    updated = await booking_repo.save(booking)
    if releases_tables(new_status):
        await rebuild_availability(venue_repo, table_repo, booking_repo, availability_repo, day=updated.date)
    return updated, previous


async def reschedule_booking(
    venue_repo: VenueRepository,
    table_repo: TableRepository,
    booking_repo: BookingRepository,
    availability_repo: AvailabilityRepository,
    *,
    booking_id: int,
    version: int,
    is_staff: bool,
    now: datetime,
    owner_id: Optional[int] = None,
    day: Optional[date] = None,
    at: Optional[time] = None,
    duration_minutes: Optional[int] = None,
    party_size: Optional[int] = None,
    max_tables: int = MAX_COMBINATION_SIZE,
) -> tuple[Booking, date]:
    """Move or resize a booking. Returns the booking and its previous day."""
    booking = await _load_for_change(booking_repo, booking_id=booking_id, version=version, owner_id=owner_id)
    if not is_editable(booking.status):
        raise InvalidStatusTransitionError(f"a {booking.status} booking cannot be changed")

    previous_day = booking.date
    venue = venue_snapshot(await load_venue(venue_repo))
    request = build_request(
        venue,
        day=day or booking.date,
        at=at or booking.starts_at.time(),
        party_size=party_size or booking.party_size,
        duration_minutes=duration_minutes or booking.duration_minutes,
        is_staff=is_staff,
    )
    tables = bookable_options(await table_repo.list_active())
    others = [
        commitment(b)
        for b in await booking_repo.list_overlapping(request.starts_at, request.ends_at)
        if b.id != booking.id
    ]
    decision = _plan_keeping_tables(venue, request, tables, others, booking.table_ids, now=now, max_tables=max_tables)

    assigned = await _lock_and_verify(table_repo, booking_repo, venue, request, decision, exclude_booking_id=booking.id)
    booking.date = request.day
    booking.starts_at = request.starts_at
    booking.ends_at = request.ends_at
    booking.duration_minutes = request.duration_minutes
    booking.party_size = request.party_size
    booking.tables = assigned
    booking.version += 1
    booking.updated_at = datetime.now(timezone.utc).replace(tzinfo=None)
    updated = await booking_repo.save(booking)

    await rebuild_availability(venue_repo, table_repo, booking_repo, availability_repo, day=previous_day)
    if updated.date != previous_day:
        await rebuild_availability(venue_repo, table_repo, booking_repo, availability_repo, day=updated.date)
    return updated, previous_day


DETAIL_FIELDS = frozenset({"customer_name", "customer_email", "customer_phone", "special_requests", "notes"})
REQUIRED_CONTACT_FIELDS = ("customer_name", "customer_email", "customer_phone")


async def update_booking_details(
    venue_repo: VenueRepository,
    table_repo: TableRepository,
    booking_repo: BookingRepository,
    availability_repo: AvailabilityRepository,
    *,
    booking_id: int,
    version: int,
    changes: dict[str, Optional[str]],
    now: datetime,
    table_ids: Optional[Sequence[int]] = None,
    owner_id: Optional[int] = None,
    max_tables: int = MAX_COMBINATION_SIZE,
) -> Booking:
    """
    Edit contact details and notes, or pin the booking to ``table_ids`` in
    its current window. Table moves run the same locked re-check as a new
    booking and are checked as staff, so online limits do not apply.
    """
    unknown = set(changes) - DETAIL_FIELDS
    if unknown:
        raise ValueError(f"unknown booking fields: {', '.join(sorted(unknown))}")
    cleared = sorted(f for f in REQUIRED_CONTACT_FIELDS if f in changes and changes[f] is None)
    if cleared:
        raise ValueError(f"{', '.join(cleared)} cannot be cleared")
    booking = await _load_for_change(booking_repo, booking_id=booking_id, version=version, owner_id=owner_id)

    moved = False
    if table_ids is not None and sorted(set(table_ids)) != sorted(booking.table_ids):
        moved = True
        if not is_editable(booking.status):
            raise InvalidStatusTransitionError(f"a {booking.status} booking cannot be changed")
        venue = venue_snapshot(await load_venue(venue_repo))
        request = build_request(
            venue,
            day=booking.date,
            at=booking.starts_at.time(),
            party_size=booking.party_size,
            duration_minutes=booking.duration_minutes,
            is_staff=True,
            requested_table_ids=table_ids,
        )
        tables = bookable_options(await table_repo.list_active())
        others = [
            commitment(b)
            for b in await booking_repo.list_overlapping(request.starts_at, request.ends_at)
            if b.id != booking.id
        ]
        decision = plan_seating(venue, request, tables, others, now=now, max_tables=max_tables)
        booking.tables = await _lock_and_verify(
            table_repo, booking_repo, venue, request, decision, exclude_booking_id=booking.id
        )

    for field_name, value in changes.items():
        setattr(booking, field_name, value)
    booking.version += 1
    booking.updated_at = datetime.now(timezone.utc).replace(tzinfo=None)
    updated = await booking_repo.save(booking)
    if moved:
        await rebuild_availability(venue_repo, table_repo, booking_repo, availability_repo, day=updated.date)
        logger.info("booking %s moved to tables %s", updated.id, updated.table_ids)
    return updated


def _plan_keeping_tables(
    venue: VenueSnapshot,
    request: SeatingRequest,
    tables: Sequence[TableOption],
    others: Sequence[Commitment],
    current_table_ids: Sequence[int],
    *,
    now: datetime,
    max_tables: int,
) -> SeatingDecision:
    """Prefer the tables the booking already holds; fall back to a fresh assignment."""
    if current_table_ids:
        keep = replace(request, requested_table_ids=tuple(sorted(current_table_ids)))
        try:
            decision = plan_seating(venue, keep, tables, others, now=now, max_tables=max_tables)
        except (TableConflictError, NoTablesAvailableError):
            pass
        else:
            if decision.capacity >= request.party_size:
                return decision
    return plan_seating(venue, request, tables, others, now=now, max_tables=max_tables)
