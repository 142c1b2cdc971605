import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Path, Query, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import get_settings
from ..deps import Principal, get_current_principal, get_optional_principal, get_session
from ..domain.errors import DomainError
from ..infrastructure.repositories import (
    SqlAlchemyAvailabilityRepository,
    SqlAlchemyBookingRepository,
    SqlAlchemyTableRepository,
    SqlAlchemyVenueRepository,
)
from ..models import Booking, BookingStatus
from ..schemas import BookingCreate, BookingPage, BookingRead, BookingReschedule, BookingStatusUpdate, BookingUpdate
from ..usecases import bookings as booking_usecase
from ..utils.audit_log import emit_audit_log
from ..utils.time import venue_now
from .errors import http_error, parse_version

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/bookings", tags=["bookings"])


def _extract_version(if_match: Optional[str], payload: Optional[object]) -> int:
    """If-Match wins over the body; one of them is required."""
    if if_match:
        return parse_version(if_match)
    body_version = getattr(payload, "version", None) if payload is not None else None
    if body_version is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="version is required (If-Match or body)")
    if body_version < 1:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="version must be >= 1")
    return int(body_version)


def _audit(**fields: object) -> None:
    try:
        emit_audit_log(**fields)  # type: ignore[arg-type]
    except RuntimeError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="audit log failed") from exc


def _owner_filter(principal: Principal) -> Optional[int]:
    return None if principal.is_staff else principal.user_id


@router.post("", response_model=BookingRead, status_code=status.HTTP_201_CREATED)
async def create_booking(
    payload: BookingCreate,
    session: AsyncSession = Depends(get_session),
    principal: Optional[Principal] = Depends(get_optional_principal),
) -> BookingRead:
    settings = get_settings()
    venue_repo = SqlAlchemyVenueRepository(session)
    table_repo = SqlAlchemyTableRepository(session)
    booking_repo = SqlAlchemyBookingRepository(session)
    availability_repo = SqlAlchemyAvailabilityRepository(session)
    is_staff = principal is not None and principal.is_staff
    customer = booking_usecase.Customer(
        name=payload.customer_name,
        email=payload.customer_email,
        phone=payload.customer_phone,
        user_id=principal.user_id if principal is not None and not is_staff else None,
    )

    async def attempt() -> Booking:
        async with session.begin():
            return await booking_usecase.assign_and_book(
                venue_repo,
                table_repo,
                booking_repo,
                availability_repo,
                day=payload.date,
                at=payload.time,
                party_size=payload.party_size,
                duration_minutes=payload.duration_minutes,
                customer=customer,
                is_staff=is_staff,
                now=venue_now(),
                requested_table_ids=payload.table_ids,
                special_requests=payload.special_requests,
                created_by=principal.user_id if principal is not None else None,
                max_tables=settings.max_tables_per_booking,
            )

    try:
        booking = await booking_usecase.with_conflict_retry(attempt, retries=settings.conflict_retries)
    except DomainError as exc:
        raise http_error(exc)
    except SQLAlchemyError as exc:
        logger.exception("booking could not be stored")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="booking could not be stored") from exc

    _audit(
        action="booking.created",
        initiator="staff" if is_staff else "customer",
        booking_id=booking.id,
        table_ids=booking.table_ids,
        user_id=principal.user_id if principal is not None else None,
        party_size=booking.party_size,
        day=booking.date,
        status_to=booking.status,
        version=booking.version,
    )
    return BookingRead.from_db(booking=booking)


@router.get("", response_model=BookingPage)
async def list_bookings(
    day: Optional[date] = Query(default=None, alias="date"),
    status_filter: Optional[BookingStatus] = Query(default=None, alias="status"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    session: AsyncSession = Depends(get_session),
    principal: Principal = Depends(get_current_principal),
) -> BookingPage:
    booking_repo = SqlAlchemyBookingRepository(session)
    rows, total = await booking_usecase.list_bookings(
        booking_repo,
        day=day,
        status=status_filter,
        owner_id=_owner_filter(principal),
        page=page,
        limit=limit,
    )
    return BookingPage(items=[BookingRead.from_db(booking=b) for b in rows], total=total, page=page, limit=limit)


@router.get("/{booking_id}", response_model=BookingRead)
async def get_booking(
    booking_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
    principal: Principal = Depends(get_current_principal),
) -> BookingRead:
    booking_repo = SqlAlchemyBookingRepository(session)
    try:
        booking = await booking_usecase.get_booking(
            booking_repo, booking_id=booking_id, owner_id=_owner_filter(principal)
        )
    except DomainError as exc:
        raise http_error(exc)
    return BookingRead.from_db(booking=booking)


@router.patch("/{booking_id}/status", response_model=BookingRead)
async def update_booking_status(
    payload: BookingStatusUpdate,
    booking_id: int = Path(..., ge=1),
    if_match: Optional[str] = Header(default=None, alias="If-Match"),
    session: AsyncSession = Depends(get_session),
    principal: Principal = Depends(get_current_principal),
) -> BookingRead:
    if not principal.is_staff and payload.status != BookingStatus.CANCELLED:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="customers may only cancel")
    version = parse_version(if_match) if if_match else payload.version

    venue_repo = SqlAlchemyVenueRepository(session)
    table_repo = SqlAlchemyTableRepository(session)
    booking_repo = SqlAlchemyBookingRepository(session)
    availability_repo = SqlAlchemyAvailabilityRepository(session)
    async with session.begin():
        try:
            booking, previous = await booking_usecase.change_status(
                venue_repo,
                table_repo,
                booking_repo,
                availability_repo,
                booking_id=booking_id,
                new_status=payload.status,
                version=version,
                owner_id=_owner_filter(principal),
            )
        except DomainError as exc:
            raise http_error(exc)

    if previous != booking.status:
        _audit(
            action="booking.status_changed",
            initiator="staff" if principal.is_staff else "customer",
            booking_id=booking.id,
            table_ids=booking.table_ids,
            user_id=principal.user_id,
            day=booking.date,
            status_from=previous,
            status_to=booking.status,
            version=booking.version,
        )
    return BookingRead.from_db(booking=booking)


@router.post("/{booking_id}/reschedule", response_model=BookingRead)
async def reschedule_booking(
    payload: BookingReschedule,
    booking_id: int = Path(..., ge=1),
    if_match: Optional[str] = Header(default=None, alias="If-Match"),
    session: AsyncSession = Depends(get_session),
    principal: Principal = Depends(get_current_principal),
) -> BookingRead:
    version = _extract_version(if_match, payload)
    venue_repo = SqlAlchemyVenueRepository(session)
    table_repo = SqlAlchemyTableRepository(session)
    booking_repo = SqlAlchemyBookingRepository(session)
    availability_repo = SqlAlchemyAvailabilityRepository(session)
    async with session.begin():
        try:
            booking, previous_day = await booking_usecase.reschedule_booking(
                venue_repo,
                table_repo,
                booking_repo,
                availability_repo,
                booking_id=booking_id,
                version=version,
                is_staff=principal.is_staff,
                now=venue_now(),
                owner_id=_owner_filter(principal),
                day=payload.date,
                at=payload.time,
                duration_minutes=payload.duration_minutes,
                party_size=payload.party_size,
                max_tables=get_settings().max_tables_per_booking,
            )
        except DomainError as exc:
            raise http_error(exc)

    _audit(
        action="booking.rescheduled",
        initiator="staff" if principal.is_staff else "customer",
        booking_id=booking.id,
        table_ids=booking.table_ids,
        user_id=principal.user_id,
        party_size=booking.party_size,
        day=booking.date,
        version=booking.version,
        extra={"date_from": previous_day.isoformat()},
    )
    return BookingRead.from_db(booking=booking)


@router.patch("/{booking_id}", response_model=BookingRead)
async def update_booking(
    payload: BookingUpdate,
    booking_id: int = Path(..., ge=1),
    if_match: Optional[str] = Header(default=None, alias="If-Match"),
    session: AsyncSession = Depends(get_session),
    principal: Principal = Depends(get_current_principal),
) -> BookingRead:
    sent = payload.model_dump(exclude_unset=True, exclude={"version", "table_ids"})
    if not principal.is_staff and ("notes" in sent or payload.table_ids is not None):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="only staff may set notes or tables")
    version = _extract_version(if_match, payload)

    settings = get_settings()
    venue_repo = SqlAlchemyVenueRepository(session)
    table_repo = SqlAlchemyTableRepository(session)
    booking_repo = SqlAlchemyBookingRepository(session)
    availability_repo = SqlAlchemyAvailabilityRepository(session)

    async def attempt() -> Booking:
        async with session.begin():
            return await booking_usecase.update_booking_details(
                venue_repo,
                table_repo,
                booking_repo,
                availability_repo,
                booking_id=booking_id,
                version=version,
                changes=sent,
                now=venue_now(),
                table_ids=payload.table_ids,
                owner_id=_owner_filter(principal),
                max_tables=settings.max_tables_per_booking,
            )

    try:
        booking = await booking_usecase.with_conflict_retry(attempt, retries=settings.conflict_retries)
    except DomainError as exc:
        raise http_error(exc)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))

    _audit(
        action="booking.updated",
        initiator="staff" if principal.is_staff else "customer",
        booking_id=booking.id,
        table_ids=booking.table_ids,
        user_id=principal.user_id,
        day=booking.date,
        version=booking.version,
        extra={"fields": sorted(sent) + (["table_ids"] if payload.table_ids is not None else [])},
    )
    return BookingRead.from_db(booking=booking)
