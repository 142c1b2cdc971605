def max_allowed(venue_max_capacity: int, threshold_percent: int) -> int:
    return (venue_max_capacity * threshold_percent) // 100


def capacity_allows(
    current_overlap: int,
    party_size: int,
    *,
    venue_max_capacity: int,
    threshold_percent: int,
    is_staff: bool = False,
) -> bool:
    """
    Staff bookings skip the aggregate cap; table overlap is checked elsewhere.

    Writers re-check this after taking their table locks, but nothing locks the
    venue as a whole: two writers on disjoint tables can still both pass.
    """
    if is_staff:
        return True
    return current_overlap + party_size <= max_allowed(venue_max_capacity, threshold_percent)
