from __future__ import annotations

from dataclasses import dataclass
from itertools import combinations
from typing import Sequence

# Tables merged for one party are capped; k > 3 uses the same minimal-waste search.
MAX_COMBINATION_SIZE = 3


@dataclass(frozen=True)
class TableOption:
    id: int
    label: str
    capacity: int
    section: str


def choose_tables(
    candidates: Sequence[TableOption],
    party_size: int,
    *,
    max_tables: int = MAX_COMBINATION_SIZE,
) -> list[TableOption]:
    """
    Pick the tables to seat ``party_size``. Returns an empty list when nothing fits.

    Order of preference: exact single table, smallest sufficient single table,
    then the pair (then triple, ...) with the smallest combined capacity. Ties
    go to the first combination in capacity-then-id order.
    """
    if party_size < 1:
        raise ValueError("party_size must be positive")

    ordered = sorted(candidates, key=lambda t: (t.capacity, t.id))

    for table in ordered:
        if table.capacity == party_size:
            return [table]

    for table in ordered:
        if table.capacity >= party_size:
            return [table]

    for size in range(2, max_tables + 1):
        best: tuple[TableOption, ...] | None = None
        best_capacity = 0
        for combo in combinations(ordered, size):
            capacity = sum(t.capacity for t in combo)
            if capacity >= party_size and (best is None or capacity < best_capacity):
                best, best_capacity = combo, capacity
        if best is not None:
            return list(best)

    return []
