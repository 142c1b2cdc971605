"""Opening-hours resolution for a single venue-local day.

Precedence is fixed: a closed-date entry beats a special event, which beats
the weekly schedule. All datetimes are naive venue-local wall clock.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Mapping, Optional, Sequence


@dataclass(frozen=True)
class DayHours:
    opens_at: time
    closes_at: time
    is_closed: bool = False


@dataclass(frozen=True)
class ClosedDay:
    day: date
    reason: Optional[str] = None


@dataclass(frozen=True)
class EventOverride:
    name: str
    day: date
    opens_at: Optional[time] = None
    closes_at: Optional[time] = None
    custom_capacity: Optional[int] = None


@dataclass(frozen=True)
class CalendarRules:
    # keyed by date.weekday(): 0 = Monday
    weekly: Mapping[int, DayHours] = field(default_factory=dict)
    closed_days: Sequence[ClosedDay] = ()
    events: Sequence[EventOverride] = ()

    def closed_day(self, day: date) -> Optional[ClosedDay]:
        return next((c for c in self.closed_days if c.day == day), None)

    def event_on(self, day: date) -> Optional[EventOverride]:
        return next((e for e in self.events if e.day == day), None)


@dataclass(frozen=True)
class OperatingWindow:
    opens_at: datetime
    closes_at: datetime
    hours: DayHours

    def label(self) -> str:
        return f"{self.hours.opens_at:%H:%M} - {self.hours.closes_at:%H:%M}"


@dataclass(frozen=True)
class OpenStatus:
    is_open: bool
    reason: Optional[str] = None
    window: Optional[OperatingWindow] = None


def day_bounds(day: date) -> tuple[datetime, datetime]:
    start = datetime.combine(day, time.min)
    return start, start + timedelta(days=1)


def hours_for(rules: CalendarRules, day: date) -> tuple[Optional[DayHours], Optional[str]]:
    """Return the hours that apply on ``day``, or ``(None, reason)`` when closed."""
    closed = rules.closed_day(day)
    if closed is not None:
        suffix = f": {closed.reason}" if closed.reason else ""
        return None, f"Venue is closed on this date{suffix}"

    event = rules.event_on(day)
    if event is not None and event.opens_at is not None and event.closes_at is not None:
        return DayHours(opens_at=event.opens_at, closes_at=event.closes_at), None

    hours = rules.weekly.get(day.weekday())
    if hours is None or hours.is_closed:
        return None, f"Venue is closed on {day:%A}s"
    return hours, None


def operating_window(rules: CalendarRules, day: date) -> tuple[Optional[OperatingWindow], Optional[str]]:
    hours, reason = hours_for(rules, day)
    if hours is None:
        return None, reason
    opens_at = datetime.combine(day, hours.opens_at)
    closes_at = datetime.combine(day, hours.closes_at)
    # Closing earlier than opening means the venue runs past midnight.
    if hours.closes_at < hours.opens_at:
        closes_at += timedelta(days=1)
    return OperatingWindow(opens_at=opens_at, closes_at=closes_at, hours=hours), None


def is_open_during(rules: CalendarRules, day: date, start: datetime, end: datetime) -> OpenStatus:
    window, reason = operating_window(rules, day)
    if window is None:
        return OpenStatus(is_open=False, reason=reason)
    if start < window.opens_at or end > window.closes_at:
        return OpenStatus(
            is_open=False,
            reason=f"Booking is outside opening hours ({window.label()})",
            window=window,
        )
    return OpenStatus(is_open=True, window=window)


def effective_capacity(rules: CalendarRules, day: date, venue_max_capacity: int) -> int:
    event = rules.event_on(day)
    if event is not None and event.custom_capacity is not None:
        return event.custom_capacity
    return venue_max_capacity
