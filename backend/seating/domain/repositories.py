from __future__ import annotations

from datetime import date, datetime
from typing import Any, Iterable, Optional, Protocol, Sequence

from ..models import AvailabilitySnapshot, Booking, BookingSource, BookingStatus, DiningTable, VenueSettings
from .availability import TableDaySnapshot


class VenueRepository(Protocol):
    async def get(self) -> VenueSettings | None: ...

    async def create(self, venue: VenueSettings) -> VenueSettings: ...

    async def save(self, venue: VenueSettings) -> VenueSettings: ...


class TableRepository(Protocol):
    async def get(self, table_id: int) -> DiningTable | None: ...

    async def list_all(self) -> list[DiningTable]: ...

    async def list_active(self) -> list[DiningTable]: ...

    async def lock(self, table_ids: Iterable[int]) -> list[DiningTable]: ...

    async def create(self, **fields: Any) -> DiningTable: ...

    async def save(self, table: DiningTable) -> DiningTable: ...

    async def delete(self, table: DiningTable) -> None: ...

    async def is_referenced(self, table_id: int) -> bool: ...


class BookingRepository(Protocol):
    async def get(self, booking_id: int) -> Booking | None: ...

    async def get_for_update(self, booking_id: int) -> Booking | None: ...

    async def list_for_day(self, day: date) -> list[Booking]: ...

    async def list_overlapping(
        self,
        start: datetime,
        end: datetime,
        *,
        table_ids: Optional[Iterable[int]] = None,
    ) -> list[Booking]: ...

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
    ) -> Booking: ...

    async def save(self, booking: Booking) -> Booking: ...

    async def search(
        self,
        *,
        day: Optional[date],
        status: Optional[BookingStatus],
        user_id: Optional[int],
        offset: int,
        limit: int,
    ) -> tuple[list[Booking], int]: ...

    async def future_days_for_table(self, table_id: int, from_day: date) -> list[date]: ...


class AvailabilityRepository(Protocol):
    async def replace_day(self, day: date, snapshots: Sequence[TableDaySnapshot]) -> None: ...

    async def list_day(self, day: date) -> list[AvailabilitySnapshot]: ...

    async def cached_days(self, from_day: date) -> list[date]: ...
