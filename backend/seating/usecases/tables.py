import logging
from datetime import date
from typing import Any, Optional

from ..domain.errors import NotFoundError, TableInUseError
from ..domain.repositories import AvailabilityRepository, BookingRepository, TableRepository, VenueRepository
from ..models import DiningTable, TableSection
from .availability import rebuild_cached_days

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = frozenset({"label", "capacity", "section", "is_active", "is_reservable", "notes"})


async def list_tables(table_repo: TableRepository) -> list[DiningTable]:
    return await table_repo.list_all()


async def get_table(table_repo: TableRepository, *, table_id: int) -> DiningTable:
    table = await table_repo.get(table_id)
    if table is None:
        raise NotFoundError("Table not found")
    return table


async def create_table(
    venue_repo: VenueRepository,
    table_repo: TableRepository,
    booking_repo: BookingRepository,
    availability_repo: AvailabilityRepository,
    *,
    today: date,
    label: str,
    capacity: int,
    section: TableSection = TableSection.INDOOR,
    is_active: bool = True,
    is_reservable: bool = True,
    notes: Optional[str] = None,
) -> DiningTable:
    if capacity < 1:
        raise ValueError("capacity must be >= 1")
    if not label.strip():
        raise ValueError("label must not be empty")
    table = await table_repo.create(
        label=label.strip(),
        capacity=capacity,
        section=section,
        is_active=is_active,
        is_reservable=is_reservable,
        notes=notes,
    )
    if table.is_active:
        await rebuild_cached_days(venue_repo, table_repo, booking_repo, availability_repo, today=today)
    return table


async def update_table(
    venue_repo: VenueRepository,
    table_repo: TableRepository,
    booking_repo: BookingRepository,
    availability_repo: AvailabilityRepository,
    *,
    table_id: int,
    changes: dict[str, Any],
    today: date,
) -> tuple[DiningTable, list[date]]:
    """
    Apply ``changes`` to a table. Switching ``is_active`` rebuilds every cached
    day from ``today`` on, and on deactivation every upcoming day the table is
    booked on; the rebuilt days are returned.
    """
    unknown = set(changes) - EDITABLE_FIELDS
    if unknown:
        raise ValueError(f"cannot update fields: {', '.join(sorted(unknown))}")
    if "capacity" in changes and changes["capacity"] < 1:
        raise ValueError("capacity must be >= 1")

    table = await get_table(table_repo, table_id=table_id)
    was_active = table.is_active
    for name, value in changes.items():
        setattr(table, name, value)
    table = await table_repo.save(table)

    rebuilt: list[date] = []
    if was_active != table.is_active:
        booked = [] if table.is_active else await booking_repo.future_days_for_table(table.id, today)
        rebuilt = await rebuild_cached_days(
            venue_repo, table_repo, booking_repo, availability_repo, today=today, also=booked
        )
        logger.info(
            "table %s %s; rebuilt %d day(s)",
            table.id,
            "activated" if table.is_active else "deactivated",
            len(rebuilt),
        )
    return table, rebuilt


async def delete_table(table_repo: TableRepository, *, table_id: int) -> None:
    table = await get_table(table_repo, table_id=table_id)
    if await table_repo.is_referenced(table.id):
        raise TableInUseError(
            "Cannot delete table with associated bookings. Deactivate the table instead."
        )
    await table_repo.delete(table)
