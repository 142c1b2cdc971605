import pytest

from seating.domain.errors import (
    AlreadyExistsError,
    BookingRuleViolationError,
    CapacityExceededError,
    CommitConflictError,
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
from seating.routers.errors import http_error, parse_version


@pytest.mark.parametrize(
    ("error_type", "status_code"),
    [
        (VenueClosedError, 400),
        (PartySizeRejectedError, 400),
        (BookingRuleViolationError, 400),
        (NoTablesAvailableError, 409),
        (CapacityExceededError, 409),
        (TableConflictError, 409),
        (CommitConflictError, 409),
        (InvalidStatusTransitionError, 409),
        (VersionConflictError, 409),
        (TableInUseError, 409),
        (AlreadyExistsError, 409),
        (NotFoundError, 404),
        (DomainError, 400),
    ],
)
def test_domain_errors_map_to_status(error_type: type[DomainError], status_code: int) -> None:
    exc = http_error(error_type("because"))
    assert exc.status_code == status_code
    assert exc.detail == "because"


@pytest.mark.parametrize(("raw", "expected"), [("3", 3), ('"3"', 3), ('W/"12"', 12), (' "4" ', 4)])
def test_parse_version_accepts_etag_forms(raw: str, expected: int) -> None:
    assert parse_version(raw) == expected
