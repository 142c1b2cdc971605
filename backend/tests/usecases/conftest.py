from datetime import date, datetime, time, timedelta
from typing import Any, Iterable, Optional, Sequence

import pytest

from seating.domain.availability import TableDaySnapshot
from seating.domain.overlap import OCCUPYING_STATUSES
from seating.models import (
    AvailabilitySnapshot,
    Booking,
    BookingSource,
    BookingStatus,
    DiningTable,
    OpeningHours,
    TableSection,
    VenueSettings,
)
from seating.usecases.venue import RULE_DEFAULTS

CREATED = datetime(2030, 1, 1, 9, 0)


class FakeVenueRepo:
    def __init__(self, venue: Optional[VenueSettings] = None) -> None:
        self.venue = venue

    async def get(self) -> Optional[VenueSettings]:
        return self.venue

    async def create(self, venue: VenueSettings) -> VenueSettings:
        venue.id = 1
        self.venue = venue
        return venue

    async def save(self, venue: VenueSettings) -> VenueSettings:
        self.venue = venue
        return venue


class FakeTableRepo:
    def __init__(self, tables: Iterable[DiningTable] = ()) -> None:
        self.tables = {t.id: t for t in tables}
        self.bookings: Optional["FakeBookingRepo"] = None
        self.locked: list[list[int]] = []

    async def get(self, table_id: int) -> Optional[DiningTable]:
        return self.tables.get(table_id)

    async def list_all(self) -> list[DiningTable]:
        return sorted(self.tables.values(), key=lambda t: t.label)

    async def list_active(self) -> list[DiningTable]:
        return [t for _, t in sorted(self.tables.items()) if t.is_active]

    async def lock(self, table_ids: Iterable[int]) -> list[DiningTable]:
        ids = sorted(set(table_ids))
        self.locked.append(ids)
        return [self.tables[i] for i in ids if i in self.tables]

    async def create(self, **fields: Any) -> DiningTable:
        table = DiningTable(id=max(self.tables, default=0) + 1, created_at=CREATED, updated_at=CREATED, **fields)
        self.tables[table.id] = table
        return table

    async def save(self, table: DiningTable) -> DiningTable:
        self.tables[table.id] = table
        return table

    async def delete(self, table: DiningTable) -> None:
        del self.tables[table.id]

    async def is_referenced(self, table_id: int) -> bool:
        assert self.bookings is not None
        return any(table_id in b.table_ids for b in self.bookings.rows.values())


class FakeBookingRepo:
    def __init__(self) -> None:
        self.rows: dict[int, Booking] = {}

    async def get(self, booking_id: int) -> Optional[Booking]:
        return self.rows.get(booking_id)

    async def get_for_update(self, booking_id: int) -> Optional[Booking]:
        return self.rows.get(booking_id)

    async def list_for_day(self, day: date) -> list[Booking]:
        rows = [b for b in self.rows.values() if b.date == day and b.status in OCCUPYING_STATUSES]
        return sorted(rows, key=lambda b: (b.starts_at, b.id))

    async def list_overlapping(
        self,
        start: datetime,
        end: datetime,
        *,
        table_ids: Optional[Iterable[int]] = None,
    ) -> list[Booking]:
        wanted = set(table_ids) if table_ids is not None else None
        rows = [
            b
            for b in self.rows.values()
            if b.status in OCCUPYING_STATUSES
            and b.starts_at < end
            and b.ends_at > start
            and (wanted is None or wanted & set(b.table_ids))
        ]
        return sorted(rows, key=lambda b: (b.starts_at, b.id))

    async def create(self, *, day: date, tables: Sequence[DiningTable], **fields: Any) -> Booking:
        booking = Booking(
            id=max(self.rows, default=0) + 1,
            date=day,
            tables=list(tables),
            version=1,
            created_at=CREATED,
            updated_at=CREATED,
            **fields,
        )
        self.rows[booking.id] = booking
        return booking

    async def save(self, booking: Booking) -> Booking:
        self.rows[booking.id] = booking
        return booking

    async def search(
        self,
        *,
        day: Optional[date],
        status: Optional[BookingStatus],
        user_id: Optional[int],
        offset: int,
        limit: int,
    ) -> tuple[list[Booking], int]:
        rows = [
            b
            for b in sorted(self.rows.values(), key=lambda b: (b.starts_at, b.id))
            if (day is None or b.date == day)
            and (status is None or b.status == status)
            and (user_id is None or b.user_id == user_id)
        ]
        return rows[offset : offset + limit], len(rows)

    async def future_days_for_table(self, table_id: int, from_day: date) -> list[date]:
        return sorted(
            {
                b.date
                for b in self.rows.values()
                if table_id in b.table_ids
                and b.date >= from_day
                and b.status in (BookingStatus.PENDING, BookingStatus.CONFIRMED)
            }
        )


class FakeAvailabilityRepo:
    def __init__(self) -> None:
        self.days: dict[date, list[AvailabilitySnapshot]] = {}
        self.rebuilt: list[date] = []

    async def replace_day(self, day: date, snapshots: Sequence[TableDaySnapshot]) -> None:
        self.rebuilt.append(day)
        self.days[day] = [
            AvailabilitySnapshot(
                date=s.day,
                table_id=s.table_id,
                free_slots=s.free_payload(),
                blocked_slots=s.blocked_payload(),
            )
            for s in snapshots
        ]

    async def list_day(self, day: date) -> list[AvailabilitySnapshot]:
        return list(self.days.get(day, []))

    async def cached_days(self, from_day: date) -> list[date]:
        return sorted(d for d in self.days if d >= from_day)


def make_venue(**overrides: Any) -> VenueSettings:
    """Open Wednesday to Saturday 18:00-23:45; rules at their defaults."""
    fields: dict[str, Any] = {"name": "Bistro", "max_capacity": 40, **RULE_DEFAULTS}
    fields.update(overrides)
    return VenueSettings(
        id=1,
        opening_hours=[
            OpeningHours(weekday=weekday, opens_at=time(18, 0), closes_at=time(23, 45), is_closed=False)
            for weekday in (2, 3, 4, 5)
        ],
        closed_dates=[],
        special_events=[],
        created_at=CREATED,
        updated_at=CREATED,
        **fields,
    )


def make_table(table_id: int, capacity: int, *, active: bool = True, reservable: bool = True) -> DiningTable:
    return DiningTable(
        id=table_id,
        label=f"A{table_id}",
        capacity=capacity,
        section=TableSection.INDOOR,
        is_active=active,
        is_reservable=reservable,
        notes=None,
        created_at=CREATED,
        updated_at=CREATED,
    )


def make_booking(
    booking_id: int,
    tables: Sequence[DiningTable],
    *,
    starts_at: datetime,
    duration_minutes: int = 120,
    party_size: int = 2,
    status: BookingStatus = BookingStatus.CONFIRMED,
    user_id: Optional[int] = None,
) -> Booking:
    return Booking(
        id=booking_id,
        customer_name="Guest",
        customer_email="guest@example.com",
        customer_phone="0100000000",
        user_id=user_id,
        party_size=party_size,
        date=starts_at.date(),
        starts_at=starts_at,
        ends_at=starts_at + timedelta(minutes=duration_minutes),
        duration_minutes=duration_minutes,
        tables=list(tables),
        status=status,
        source=BookingSource.ONLINE,
        special_requests=None,
        notes=None,
        created_by=None,
        version=1,
        created_at=CREATED,
        updated_at=CREATED,
    )


class Repos:
    def __init__(self, venue: Optional[VenueSettings], tables: Iterable[DiningTable]) -> None:
        self.venue = FakeVenueRepo(venue)
        self.tables = FakeTableRepo(tables)
        self.bookings = FakeBookingRepo()
        self.tables.bookings = self.bookings
        self.availability = FakeAvailabilityRepo()

    def all(self) -> tuple[FakeVenueRepo, FakeTableRepo, FakeBookingRepo, FakeAvailabilityRepo]:
        return self.venue, self.tables, self.bookings, self.availability

    def add(self, booking: Booking) -> Booking:
        self.bookings.rows[booking.id] = booking
        return booking


@pytest.fixture
def repos() -> Repos:
    return Repos(make_venue(), [make_table(1, 2), make_table(2, 2), make_table(6, 6)])


@pytest.fixture
def factories() -> dict[str, Any]:
    return {"venue": make_venue, "table": make_table, "booking": make_booking, "repos": Repos}
