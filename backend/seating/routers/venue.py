from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..deps import Principal, get_session, require_staff
from ..domain.errors import DomainError
from ..infrastructure.repositories import (
    SqlAlchemyAvailabilityRepository,
    SqlAlchemyBookingRepository,
    SqlAlchemyTableRepository,
    SqlAlchemyVenueRepository,
)
from ..schemas import (
    BookingRulesUpdate,
    ClosedDateCreate,
    OpeningHoursEntry,
    SpecialEventCreate,
    VenueCreate,
    VenueRead,
    VenueUpdate,
)
from ..usecases import availability as availability_usecase
from ..usecases import venue as venue_usecase
from ..utils.audit_log import emit_audit_log
from ..utils.time import venue_now
from .errors import http_error

router = APIRouter(prefix="/venue", tags=["venue"])


def _hours(entries: List[OpeningHoursEntry]) -> list[venue_usecase.WeeklyHours]:
    return [
        venue_usecase.WeeklyHours(
            weekday=e.weekday, opens_at=e.opens_at, closes_at=e.closes_at, is_closed=e.is_closed
        )
        for e in entries
    ]


def _audit(**fields: object) -> None:
    try:
        emit_audit_log(**fields)  # type: ignore[arg-type]
    except RuntimeError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="audit log failed") from exc


def _repos(
    session: AsyncSession,
) -> tuple[
    SqlAlchemyVenueRepository,
    SqlAlchemyTableRepository,
    SqlAlchemyBookingRepository,
    SqlAlchemyAvailabilityRepository,
]:
    return (
        SqlAlchemyVenueRepository(session),
        SqlAlchemyTableRepository(session),
        SqlAlchemyBookingRepository(session),
        SqlAlchemyAvailabilityRepository(session),
    )


@router.get("", response_model=VenueRead)
async def get_venue(session: AsyncSession = Depends(get_session)) -> VenueRead:
    try:
        venue = await availability_usecase.load_venue(SqlAlchemyVenueRepository(session))
    except DomainError as exc:
        raise http_error(exc)
    return VenueRead.from_db(venue=venue)


@router.post("", response_model=VenueRead, status_code=status.HTTP_201_CREATED)
async def create_venue(
    payload: VenueCreate,
    session: AsyncSession = Depends(get_session),
    _: Principal = Depends(require_staff),
) -> VenueRead:
    venue_repo = SqlAlchemyVenueRepository(session)
    async with session.begin():
        try:
            venue = await venue_usecase.create_venue(
                venue_repo,
                name=payload.name,
                max_capacity=payload.max_capacity,
                rules=payload.booking_rules.model_dump(),
                hours=_hours(payload.opening_hours),
            )
        except DomainError as exc:
            raise http_error(exc)
        except ValueError as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    return VenueRead.from_db(venue=venue)


@router.patch("", response_model=VenueRead)
async def update_venue(
    payload: VenueUpdate,
    session: AsyncSession = Depends(get_session),
    _: Principal = Depends(require_staff),
) -> VenueRead:
    repos = _repos(session)
    async with session.begin():
        try:
            venue = await venue_usecase.update_venue(
                *repos, today=venue_now().date(), name=payload.name, max_capacity=payload.max_capacity
            )
        except DomainError as exc:
            raise http_error(exc)
        except ValueError as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    return VenueRead.from_db(venue=venue)


@router.put("/booking-rules", response_model=VenueRead)
async def update_booking_rules(
    payload: BookingRulesUpdate,
    session: AsyncSession = Depends(get_session),
    _: Principal = Depends(require_staff),
) -> VenueRead:
    repos = _repos(session)
    async with session.begin():
        try:
            venue = await venue_usecase.update_venue(
                *repos, today=venue_now().date(), rules=payload.model_dump(exclude_none=True)
            )
        except DomainError as exc:
            raise http_error(exc)
        except ValueError as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    return VenueRead.from_db(venue=venue)


@router.put("/opening-hours", response_model=VenueRead)
async def update_opening_hours(
    payload: List[OpeningHoursEntry],
    session: AsyncSession = Depends(get_session),
    _: Principal = Depends(require_staff),
) -> VenueRead:
    repos = _repos(session)
    async with session.begin():
        try:
            venue = await venue_usecase.set_opening_hours(*repos, hours=_hours(payload), today=venue_now().date())
        except DomainError as exc:
            raise http_error(exc)
        except ValueError as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    return VenueRead.from_db(venue=venue)


@router.post("/closed-dates", response_model=VenueRead, status_code=status.HTTP_201_CREATED)
async def add_closed_date(
    payload: ClosedDateCreate,
    session: AsyncSession = Depends(get_session),
    principal: Principal = Depends(require_staff),
) -> VenueRead:
    async with session.begin():
        try:
            venue = await venue_usecase.add_closed_date(
                *_repos(session),
                day=payload.date,
                reason=payload.reason,
            )
        except DomainError as exc:
            raise http_error(exc)

    _audit(
        action="venue.closed_date_added",
        initiator="staff",
        user_id=principal.user_id,
        day=payload.date,
        message=payload.reason,
    )
    return VenueRead.from_db(venue=venue)


@router.post("/special-events", response_model=VenueRead, status_code=status.HTTP_201_CREATED)
async def add_special_event(
    payload: SpecialEventCreate,
    session: AsyncSession = Depends(get_session),
    principal: Principal = Depends(require_staff),
) -> VenueRead:
    async with session.begin():
        try:
            venue = await venue_usecase.add_special_event(
                *_repos(session),
                name=payload.name,
                day=payload.date,
                opens_at=payload.opens_at,
                closes_at=payload.closes_at,
                custom_capacity=payload.custom_capacity,
                notes=payload.notes,
            )
        except DomainError as exc:
            raise http_error(exc)
        except ValueError as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))

    _audit(
        action="venue.special_event_added",
        initiator="staff",
        user_id=principal.user_id,
        day=payload.date,
        message=payload.name,
    )
    return VenueRead.from_db(venue=venue)
