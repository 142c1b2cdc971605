from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Any, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import Select, delete, exists, func, select
from sqlalchemy.dialects.mysql import insert as mysql_insert
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..domain.availability import TableDaySnapshot
from ..domain.overlap import OCCUPYING_STATUSES
from ..domain.repositories import AvailabilityRepository, BookingRepository, TableRepository, VenueRepository
from ..domain.services import MAX_SPAN_MINUTES
from ..models import (
    AvailabilitySnapshot,
    Booking,
    BookingSource,
    BookingStatus,
    DiningTable,
    VenueSettings,
    booking_tables,
)


def _utc_now_naive() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class SqlAlchemyVenueRepository(VenueRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self) -> VenueSettings | None:
        stmt = (
            select(VenueSettings)
            .options(
                selectinload(VenueSettings.opening_hours),
                selectinload(VenueSettings.closed_dates),
                selectinload(VenueSettings.special_events),
            )
            .order_by(VenueSettings.id)
            .limit(1)
        )
        result = await self.session.scalar(stmt)
        return result if isinstance(result, VenueSettings) else None

    async def create(self, venue: VenueSettings) -> VenueSettings:
        now = _utc_now_naive()
        venue.created_at = now
        venue.updated_at = now
        self.session.add(venue)
        await self.session.flush()
        return venue

    async def save(self, venue: VenueSettings) -> VenueSettings:
        venue.updated_at = _utc_now_naive()
        self.session.add(venue)
        await self.session.flush()
        return venue


class SqlAlchemyTableRepository(TableRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, table_id: int) -> DiningTable | None:
        result = await self.session.get(DiningTable, table_id)
        return result if isinstance(result, DiningTable) else None

    async def list_all(self) -> List[DiningTable]:
        rows = await self.session.scalars(select(DiningTable).order_by(DiningTable.label))
        return list(rows.all())

    async def list_active(self) -> List[DiningTable]:
        stmt = select(DiningTable).where(DiningTable.is_active.is_(True)).order_by(DiningTable.id)
        rows = await self.session.scalars(stmt)
        return list(rows.all())

    async def lock(self, table_ids: Iterable[int]) -> List[DiningTable]:
        # Row locks taken in id order so two writers never wait on each other in a cycle.
        ids = sorted(set(table_ids))
        if not ids:
            return []
        stmt = select(DiningTable).where(DiningTable.id.in_(ids)).order_by(DiningTable.id).with_for_update()
        rows = await self.session.scalars(stmt)
        return list(rows.all())

    async def create(self, **fields: Any) -> DiningTable:
        now = _utc_now_naive()
        table = DiningTable(**fields, created_at=now, updated_at=now)
        self.session.add(table)
        await self.session.flush()
        return table

    async def save(self, table: DiningTable) -> DiningTable:
        table.updated_at = _utc_now_naive()
        self.session.add(table)
        await self.session.flush()
        return table

    async def delete(self, table: DiningTable) -> None:
        await self.session.execute(delete(AvailabilitySnapshot).where(AvailabilitySnapshot.table_id == table.id))
        await self.session.delete(table)
        await self.session.flush()

    async def is_referenced(self, table_id: int) -> bool:
        stmt = select(exists().where(booking_tables.c.table_id == table_id))
        return bool(await self.session.scalar(stmt))


class SqlAlchemyBookingRepository(BookingRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, booking_id: int) -> Booking | None:
        result = await self.session.get(Booking, booking_id)
        return result if isinstance(result, Booking) else None

    async def get_for_update(self, booking_id: int) -> Booking | None:
        result = await self.session.scalar(select(Booking).where(Booking.id == booking_id).with_for_update())
        return result if isinstance(result, Booking) else None

    async def list_for_day(self, day: date) -> List[Booking]:
        stmt = (
            select(Booking)
            .where(Booking.date == day, Booking.status.in_(OCCUPYING_STATUSES))
            .order_by(Booking.starts_at, Booking.id)
        )
        rows = await self.session.scalars(stmt)
        return list(rows.all())

    async def list_overlapping(
        self,
        start: datetime,
        end: datetime,
        *,
        table_ids: Optional[Iterable[int]] = None,
    ) -> List[Booking]:
        """
        Plain read. Callers re-checking their tables already hold those table
        rows locked, and the engine runs at READ COMMITTED, so the read sees
        every booking committed while the lock was awaited.
        """
        # A booking lasts at most a day, so it starts on the window's day or the day before.
        stmt: Select[Tuple[Booking]] = select(Booking).where(
            Booking.date.between(start.date() - timedelta(minutes=MAX_SPAN_MINUTES), end.date()),
            Booking.status.in_(OCCUPYING_STATUSES),
            Booking.starts_at < end,
            Booking.ends_at > start,
        )
        if table_ids is not None:
            ids = sorted(set(table_ids))
            stmt = (
                stmt.join(booking_tables, booking_tables.c.booking_id == Booking.id)
                .where(booking_tables.c.table_id.in_(ids))
                .distinct()
            )
        rows = await self.session.scalars(stmt.order_by(Booking.starts_at, Booking.id))
        return list(rows.all())

    async def create(
        self,
        *,
        customer_name: str,
        customer_email: str,
        customer_phone: str,
        user_id: Optional[int],
        party_size: int,
        day: date,
        starts_at: datetime,
        ends_at: datetime,
        duration_minutes: int,
        tables: Sequence[DiningTable],
        status: BookingStatus,
        source: BookingSource,
        special_requests: Optional[str],
        created_by: Optional[int],
    ) -> Booking:
        now = _utc_now_naive()
        booking = Booking(
            customer_name=customer_name,
            customer_email=customer_email,
            customer_phone=customer_phone,
            user_id=user_id,
            party_size=party_size,
            date=day,
            starts_at=starts_at,
            ends_at=ends_at,
            duration_minutes=duration_minutes,
            tables=list(tables),
            status=status,
            source=source,
            special_requests=special_requests,
            created_by=created_by,
            version=1,
            created_at=now,
            updated_at=now,
        )
        self.session.add(booking)
        await self.session.flush()
        return booking

    async def save(self, booking: Booking) -> Booking:
        self.session.add(booking)
        await self.session.flush()
        return booking

    async def search(
        self,
        *,
        day: Optional[date],
        status: Optional[BookingStatus],
        user_id: Optional[int],
        offset: int,
        limit: int,
    ) -> Tuple[List[Booking], int]:
        stmt = select(Booking)
        if day is not None:
            stmt = stmt.where(Booking.date == day)
        if status is not None:
            stmt = stmt.where(Booking.status == status)
        if user_id is not None:
            stmt = stmt.where(Booking.user_id == user_id)
        total = await self.session.scalar(select(func.count()).select_from(stmt.subquery()))
        rows = await self.session.scalars(stmt.order_by(Booking.starts_at, Booking.id).offset(offset).limit(limit))
        return list(rows.all()), int(total or 0)

    async def future_days_for_table(self, table_id: int, from_day: date) -> List[date]:
        stmt = (
            select(Booking.date)
            .join(booking_tables, booking_tables.c.booking_id == Booking.id)
            .where(
                booking_tables.c.table_id == table_id,
                Booking.date >= from_day,
                Booking.status.in_((BookingStatus.PENDING, BookingStatus.CONFIRMED)),
            )
            .distinct()
            .order_by(Booking.date)
        )
        rows = await self.session.scalars(stmt)
        return list(rows.all())


class SqlAlchemyAvailabilityRepository(AvailabilityRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def replace_day(self, day: date, snapshots: Sequence[TableDaySnapshot]) -> None:
        # Upsert keyed on (date, table_id), then drop rows of tables no longer in the day.
        if snapshots:
            stmt = mysql_insert(AvailabilitySnapshot).values(
                [
                    {
                        "date": snap.day,
                        "table_id": snap.table_id,
                        "free_slots": snap.free_payload(),
                        "blocked_slots": snap.blocked_payload(),
                    }
                    for snap in snapshots
                ]
            )
            await self.session.execute(
                stmt.on_duplicate_key_update(
                    free_slots=stmt.inserted.free_slots,
                    blocked_slots=stmt.inserted.blocked_slots,
                )
            )
        stale = delete(AvailabilitySnapshot).where(AvailabilitySnapshot.date == day)
        kept = [snap.table_id for snap in snapshots]
        if kept:
            stale = stale.where(AvailabilitySnapshot.table_id.not_in(kept))
        await self.session.execute(stale)

    async def list_day(self, day: date) -> List[AvailabilitySnapshot]:
        stmt = (
            select(AvailabilitySnapshot)
            .where(AvailabilitySnapshot.date == day)
            .order_by(AvailabilitySnapshot.table_id)
            .execution_options(populate_existing=True)
        )
        rows = await self.session.scalars(stmt)
        return list(rows.all())

    async def cached_days(self, from_day: date) -> List[date]:
        stmt = (
            select(AvailabilitySnapshot.date)
            .where(AvailabilitySnapshot.date >= from_day)
            .distinct()
            .order_by(AvailabilitySnapshot.date)
        )
        rows = await self.session.scalars(stmt)
        return list(rows.all())
