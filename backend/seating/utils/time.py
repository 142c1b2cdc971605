from datetime import datetime
from functools import lru_cache
from zoneinfo import ZoneInfo

from ..config import get_settings


@lru_cache
def venue_zone(name: str | None = None) -> ZoneInfo:
    return ZoneInfo(name or get_settings().venue_timezone)


def venue_naive_to_aware(dt: datetime) -> datetime:
    return dt.replace(tzinfo=venue_zone())


def venue_now() -> datetime:
    """Current venue-local wall clock, naive."""
    return datetime.now(venue_zone()).replace(tzinfo=None)
