from typing import List

from fastapi import APIRouter, Depends, HTTPException, Path, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..deps import Principal, get_session, require_staff
from ..domain.errors import DomainError
from ..infrastructure.repositories import (
    SqlAlchemyAvailabilityRepository,
    SqlAlchemyBookingRepository,
    SqlAlchemyTableRepository,
    SqlAlchemyVenueRepository,
)
from ..schemas import TableCreate, TableRead, TableUpdate
from ..usecases import tables as table_usecase
from ..utils.audit_log import emit_audit_log
from ..utils.time import venue_now
from .errors import http_error

router = APIRouter(prefix="/tables", tags=["tables"])


@router.get("", response_model=List[TableRead])
async def list_tables(session: AsyncSession = Depends(get_session)) -> list[TableRead]:
    rows = await table_usecase.list_tables(SqlAlchemyTableRepository(session))
    return [TableRead.from_db(table=t) for t in rows]


@router.get("/{table_id}", response_model=TableRead)
async def get_table(
    table_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
) -> TableRead:
    try:
        table = await table_usecase.get_table(SqlAlchemyTableRepository(session), table_id=table_id)
    except DomainError as exc:
        raise http_error(exc)
    return TableRead.from_db(table=table)


@router.post("", response_model=TableRead, status_code=status.HTTP_201_CREATED)
async def create_table(
    payload: TableCreate,
    session: AsyncSession = Depends(get_session),
    _: Principal = Depends(require_staff),
) -> TableRead:
    venue_repo = SqlAlchemyVenueRepository(session)
    table_repo = SqlAlchemyTableRepository(session)
    booking_repo = SqlAlchemyBookingRepository(session)
    availability_repo = SqlAlchemyAvailabilityRepository(session)
    async with session.begin():
        try:
            table = await table_usecase.create_table(
                venue_repo,
                table_repo,
                booking_repo,
                availability_repo,
                today=venue_now().date(),
                **payload.model_dump(),
            )
        except DomainError as exc:
            raise http_error(exc)
        except ValueError as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    return TableRead.from_db(table=table)


@router.patch("/{table_id}", response_model=TableRead)
async def update_table(
    payload: TableUpdate,
    table_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
    principal: Principal = Depends(require_staff),
) -> TableRead:
    venue_repo = SqlAlchemyVenueRepository(session)
    table_repo = SqlAlchemyTableRepository(session)
    booking_repo = SqlAlchemyBookingRepository(session)
    availability_repo = SqlAlchemyAvailabilityRepository(session)
    changes = payload.model_dump(exclude_unset=True)
    async with session.begin():
        try:
            table, rebuilt = await table_usecase.update_table(
                venue_repo,
                table_repo,
                booking_repo,
                availability_repo,
                table_id=table_id,
                changes=changes,
                today=venue_now().date(),
            )
        except DomainError as exc:
            raise http_error(exc)
        except ValueError as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))

    if changes.get("is_active") is False:
        try:
            emit_audit_log(
                action="table.deactivated",
                initiator="staff",
                table_ids=[table.id],
                user_id=principal.user_id,
                extra={"rebuilt_dates": [d.isoformat() for d in rebuilt]},
            )
        except RuntimeError as exc:
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="audit log failed") from exc
    return TableRead.from_db(table=table)


@router.delete("/{table_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_table(
    table_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
    _: Principal = Depends(require_staff),
) -> Response:
    table_repo = SqlAlchemyTableRepository(session)
    async with session.begin():
        try:
            await table_usecase.delete_table(table_repo, table_id=table_id)
        except DomainError as exc:
            raise http_error(exc)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
