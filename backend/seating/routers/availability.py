import logging
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Path, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import get_settings
from ..deps import Principal, get_optional_principal, get_session, require_staff
from ..domain.errors import UNAVAILABLE_ERRORS, DomainError
from ..infrastructure.repositories import (
    SqlAlchemyAvailabilityRepository,
    SqlAlchemyBookingRepository,
    SqlAlchemyTableRepository,
    SqlAlchemyVenueRepository,
)
from ..schemas import AvailabilityCheck, AvailabilityResult, TableAvailabilityRead, TableSummary
from ..usecases import availability as availability_usecase
from ..utils.time import venue_now
from .errors import http_error, storage_unavailable

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/availability", tags=["availability"])


@router.post("/check", response_model=AvailabilityResult)
async def check_availability(
    payload: AvailabilityCheck,
    session: AsyncSession = Depends(get_session),
    principal: Optional[Principal] = Depends(get_optional_principal),
) -> AvailabilityResult:
    venue_repo = SqlAlchemyVenueRepository(session)
    table_repo = SqlAlchemyTableRepository(session)
    booking_repo = SqlAlchemyBookingRepository(session)
    try:
        decision = await availability_usecase.check_availability(
            venue_repo,
            table_repo,
            booking_repo,
            day=payload.date,
            at=payload.time,
            party_size=payload.party_size,
            duration_minutes=payload.duration_minutes,
            is_staff=principal is not None and principal.is_staff,
            now=venue_now(),
            max_tables=get_settings().max_tables_per_booking,
        )
    except UNAVAILABLE_ERRORS as exc:
        return AvailabilityResult(available=False, reason=exc.reason)
    except DomainError as exc:
        raise http_error(exc)
    except SQLAlchemyError as exc:
        logger.exception("availability check failed")
        raise storage_unavailable() from exc

    return AvailabilityResult(
        available=True,
        tables=[TableSummary(id=t.id, label=t.label, capacity=t.capacity, section=t.section) for t in decision.tables],
    )


@router.get("/{day}", response_model=List[TableAvailabilityRead])
async def get_day_availability(
    day: date = Path(...),
    session: AsyncSession = Depends(get_session),
) -> list[TableAvailabilityRead]:
    venue_repo = SqlAlchemyVenueRepository(session)
    table_repo = SqlAlchemyTableRepository(session)
    booking_repo = SqlAlchemyBookingRepository(session)
    availability_repo = SqlAlchemyAvailabilityRepository(session)
    try:
        async with session.begin():
            rows = await availability_usecase.get_table_availability(
                venue_repo, table_repo, booking_repo, availability_repo, day=day
            )
    except DomainError as exc:
        raise http_error(exc)
    except SQLAlchemyError as exc:
        logger.exception("availability read failed for %s", day)
        raise storage_unavailable() from exc
    return [TableAvailabilityRead.from_db(table=table, snapshot=snapshot) for table, snapshot in rows]


@router.post("/{day}/rebuild", status_code=status.HTTP_200_OK)
async def rebuild_day(
    day: date = Path(...),
    session: AsyncSession = Depends(get_session),
    _: Principal = Depends(require_staff),
) -> dict[str, object]:
    venue_repo = SqlAlchemyVenueRepository(session)
    table_repo = SqlAlchemyTableRepository(session)
    booking_repo = SqlAlchemyBookingRepository(session)
    availability_repo = SqlAlchemyAvailabilityRepository(session)
    try:
        async with session.begin():
            snapshots = await availability_usecase.rebuild_availability(
                venue_repo, table_repo, booking_repo, availability_repo, day=day
            )
    except DomainError as exc:
        raise http_error(exc)
    except SQLAlchemyError as exc:
        logger.exception("availability rebuild failed for %s", day)
        raise storage_unavailable("rebuild failed") from exc
    return {"date": day.isoformat(), "tables": len(snapshots)}
