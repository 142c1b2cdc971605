from ..models import BookingStatus
from .errors import InvalidStatusTransitionError

ALLOWED_TRANSITIONS: dict[BookingStatus, frozenset[BookingStatus]] = {
    BookingStatus.PENDING: frozenset(
        {BookingStatus.CONFIRMED, BookingStatus.CANCELLED, BookingStatus.NO_SHOW}
    ),
    BookingStatus.CONFIRMED: frozenset(
        {BookingStatus.SEATED, BookingStatus.CANCELLED, BookingStatus.NO_SHOW}
    ),
    BookingStatus.SEATED: frozenset({BookingStatus.COMPLETED}),
    BookingStatus.COMPLETED: frozenset(),
    BookingStatus.CANCELLED: frozenset(),
    BookingStatus.NO_SHOW: frozenset(),
}

TERMINAL_STATUSES = frozenset(s for s, targets in ALLOWED_TRANSITIONS.items() if not targets)

# Entering these frees the tables, so the day's cache must be rebuilt.
RELEASING_STATUSES = frozenset({BookingStatus.CANCELLED, BookingStatus.NO_SHOW})


def validate_transition(current: BookingStatus, new: BookingStatus) -> bool:
    """
    Return True when the status actually changes, False for a same-status no-op.
    Raises InvalidStatusTransitionError for anything the lifecycle forbids.
    """
    if current == new:
        return False
    if new not in ALLOWED_TRANSITIONS[current]:
        raise InvalidStatusTransitionError(f"cannot change booking status from {current} to {new}")
    return True


def releases_tables(new: BookingStatus) -> bool:
    return new in RELEASING_STATUSES


def is_editable(status: BookingStatus) -> bool:
    return status in (BookingStatus.PENDING, BookingStatus.CONFIRMED)
