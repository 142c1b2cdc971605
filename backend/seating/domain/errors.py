class DomainError(Exception):
    """Expected, recoverable condition surfaced to the caller with a reason."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class VenueClosedError(DomainError):
    pass


class NoTablesAvailableError(DomainError):
    pass


class PartySizeRejectedError(DomainError):
    pass


class BookingRuleViolationError(DomainError):
    """Advance-booking window or duration outside the venue rules."""


class CapacityExceededError(DomainError):
    pass


class TableConflictError(DomainError):
    pass


class CommitConflictError(TableConflictError):
    """The chosen tables were taken between planning and the locked re-check."""


class InvalidStatusTransitionError(DomainError):
    pass


class VersionConflictError(DomainError):
    pass


class TableInUseError(DomainError):
    pass


class NotFoundError(DomainError):
    pass


class AlreadyExistsError(DomainError):
    pass


# Conditions that mean "the request cannot be seated", as opposed to a broken request.
UNAVAILABLE_ERRORS: tuple[type[DomainError], ...] = (
    VenueClosedError,
    NoTablesAvailableError,
    PartySizeRejectedError,
    BookingRuleViolationError,
    CapacityExceededError,
    TableConflictError,
)
