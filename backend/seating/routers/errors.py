from fastapi import HTTPException, status

from ..domain.errors import (
    AlreadyExistsError,
    BookingRuleViolationError,
    CapacityExceededError,
    DomainError,
    InvalidStatusTransitionError,
    NoTablesAvailableError,
    NotFoundError,
    PartySizeRejectedError,
    TableConflictError,
    TableInUseError,
    VenueClosedError,
    VersionConflictError,
)

_STATUS_BY_ERROR: tuple[tuple[type[DomainError], int], ...] = (
    (VenueClosedError, status.HTTP_400_BAD_REQUEST),
    (PartySizeRejectedError, status.HTTP_400_BAD_REQUEST),
    (BookingRuleViolationError, status.HTTP_400_BAD_REQUEST),
    (NoTablesAvailableError, status.HTTP_409_CONFLICT),
    (CapacityExceededError, status.HTTP_409_CONFLICT),
    (TableConflictError, status.HTTP_409_CONFLICT),
    (InvalidStatusTransitionError, status.HTTP_409_CONFLICT),
    (VersionConflictError, status.HTTP_409_CONFLICT),
    (TableInUseError, status.HTTP_409_CONFLICT),
    (AlreadyExistsError, status.HTTP_409_CONFLICT),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
)


def http_error(exc: DomainError) -> HTTPException:
    for error_type, code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return HTTPException(status_code=code, detail=exc.reason)
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.reason)


def storage_unavailable(detail: str = "availability could not be determined") -> HTTPException:
    return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=detail)


def parse_version(raw: str) -> int:
    """Accept ``"3"``, ``W/"3"`` or ``3``; anything else (or < 1) is a 400."""
    token = raw.strip()
    if token.startswith("W/"):
        token = token[2:]
    token = token.strip('"')
    try:
        value = int(token)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="invalid If-Match header") from exc
    if value < 1:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="version must be >= 1")
    return value
