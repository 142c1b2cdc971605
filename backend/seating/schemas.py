import datetime as dt
from datetime import date, datetime, time
from typing import Any, List, Optional

from pydantic import BaseModel, Field, field_serializer

from .domain.availability import BlockReason
from .models import (
    AvailabilitySnapshot,
    Booking,
    BookingSource,
    BookingStatus,
    DiningTable,
    TableSection,
    VenueSettings,
)
from .utils.time import venue_naive_to_aware

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class TableSummary(BaseModel):
    id: int
    label: str
    capacity: int
    section: str


class AvailabilityCheck(BaseModel):
    date: date
    time: time
    party_size: int = Field(ge=1)
    duration_minutes: Optional[int] = Field(default=None, ge=15)


class AvailabilityResult(BaseModel):
    available: bool
    reason: Optional[str] = None
    tables: List[TableSummary] = Field(default_factory=list)


class SlotRead(BaseModel):
    start: datetime
    end: datetime

    @field_serializer("start", "end")
    def _ser_datetime(self, dt: datetime) -> str:
        return venue_naive_to_aware(dt).isoformat()


class BlockedRead(SlotRead):
    reason: BlockReason
    booking_id: Optional[int] = None


class TableAvailabilityRead(BaseModel):
    table_id: int
    label: str
    capacity: int
    section: TableSection
    free: List[SlotRead]
    blocked: List[BlockedRead]

    @classmethod
    def from_db(cls, *, table: DiningTable, snapshot: AvailabilitySnapshot) -> "TableAvailabilityRead":
        return cls(
            table_id=table.id,
            label=table.label,
            capacity=table.capacity,
            section=table.section,
            free=[SlotRead(**_parse_range(s)) for s in snapshot.free_slots],
            blocked=[BlockedRead(**_parse_range(b)) for b in snapshot.blocked_slots],
        )


def _parse_range(raw: dict[str, Any]) -> dict[str, Any]:
    return {
        **raw,
        "start": datetime.fromisoformat(raw["start"]),
        "end": datetime.fromisoformat(raw["end"]),
    }


class BookingCreate(BaseModel):
    customer_name: str = Field(min_length=1, max_length=255)
    customer_email: str = Field(pattern=EMAIL_PATTERN, max_length=255)
    customer_phone: str = Field(min_length=1, max_length=50)
    party_size: int = Field(ge=1)
    date: date
    time: time
    duration_minutes: Optional[int] = Field(default=None, ge=15)
    table_ids: List[int] = Field(default_factory=list)
    special_requests: Optional[str] = None


class BookingStatusUpdate(BaseModel):
    status: BookingStatus
    version: Optional[int] = Field(default=None, ge=1)


class BookingReschedule(BaseModel):
    date: Optional[dt.date] = None
    time: Optional[dt.time] = None
    duration_minutes: Optional[int] = Field(default=None, ge=15)
    party_size: Optional[int] = Field(default=None, ge=1)
    version: Optional[int] = Field(default=None, ge=1)


class BookingUpdate(BaseModel):
    """Contact details and notes; staff may also move the booking to other tables."""

    customer_name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    customer_email: Optional[str] = Field(default=None, pattern=EMAIL_PATTERN, max_length=255)
    customer_phone: Optional[str] = Field(default=None, min_length=1, max_length=50)
    special_requests: Optional[str] = None
    notes: Optional[str] = None
    table_ids: Optional[List[int]] = Field(default=None, min_length=1)
    version: Optional[int] = Field(default=None, ge=1)


class BookingRead(BaseModel):
    booking_id: int
    customer_name: str
    customer_email: str
    customer_phone: str
    user_id: Optional[int]
    party_size: int
    date: date
    starts_at: datetime
    ends_at: datetime
    duration_minutes: int
    table_ids: List[int]
    status: BookingStatus
    source: BookingSource
    special_requests: Optional[str] = None
    notes: Optional[str] = None
    version: int

    @field_serializer("starts_at", "ends_at")
    def _ser_datetime(self, dt: datetime) -> str:
        return venue_naive_to_aware(dt).isoformat()

    @classmethod
    def from_db(cls, *, booking: Booking) -> "BookingRead":
        return cls(
            booking_id=booking.id,
            customer_name=booking.customer_name,
            customer_email=booking.customer_email,
            customer_phone=booking.customer_phone,
            user_id=booking.user_id,
            party_size=booking.party_size,
            date=booking.date,
            starts_at=booking.starts_at,
            ends_at=booking.ends_at,
            duration_minutes=booking.duration_minutes,
            table_ids=sorted(booking.table_ids),
            status=booking.status,
            source=booking.source,
            special_requests=booking.special_requests,
            notes=booking.notes,
            version=booking.version,
        )


class BookingPage(BaseModel):
    items: List[BookingRead]
    total: int
    page: int
    limit: int


class TableCreate(BaseModel):
    label: str = Field(min_length=1, max_length=50)
    capacity: int = Field(ge=1)
    section: TableSection = TableSection.INDOOR
    is_active: bool = True
    is_reservable: bool = True
    notes: Optional[str] = None


class TableUpdate(BaseModel):
    label: Optional[str] = Field(default=None, min_length=1, max_length=50)
    capacity: Optional[int] = Field(default=None, ge=1)
    section: Optional[TableSection] = None
    is_active: Optional[bool] = None
    is_reservable: Optional[bool] = None
    notes: Optional[str] = None


class TableRead(BaseModel):
    table_id: int
    label: str
    capacity: int
    section: TableSection
    is_active: bool
    is_reservable: bool
    notes: Optional[str] = None

    @classmethod
    def from_db(cls, *, table: DiningTable) -> "TableRead":
        return cls(
            table_id=table.id,
            label=table.label,
            capacity=table.capacity,
            section=table.section,
            is_active=table.is_active,
            is_reservable=table.is_reservable,
            notes=table.notes,
        )


class OpeningHoursEntry(BaseModel):
    weekday: int = Field(ge=0, le=6, description="0 = Monday")
    opens_at: time
    closes_at: time
    is_closed: bool = False


class BookingRules(BaseModel):
    slot_minutes: int = Field(default=15, ge=15, le=240)
    min_advance_minutes: int = Field(default=60, ge=0)
    max_advance_days: int = Field(default=30, ge=1)
    default_duration_minutes: int = Field(default=120, ge=15)
    max_duration_minutes: int = Field(default=120, ge=30)
    buffer_minutes: int = Field(default=15, ge=0)
    max_online_party_size: int = Field(default=10, ge=1)
    capacity_threshold_percent: int = Field(default=90, ge=1, le=100)
    party_size_min: int = Field(default=1, ge=1)
    party_size_max: int = Field(default=10, ge=1)


class BookingRulesUpdate(BaseModel):
    slot_minutes: Optional[int] = Field(default=None, ge=15, le=240)
    min_advance_minutes: Optional[int] = Field(default=None, ge=0)
    max_advance_days: Optional[int] = Field(default=None, ge=1)
    default_duration_minutes: Optional[int] = Field(default=None, ge=15)
    max_duration_minutes: Optional[int] = Field(default=None, ge=30)
    buffer_minutes: Optional[int] = Field(default=None, ge=0)
    max_online_party_size: Optional[int] = Field(default=None, ge=1)
    capacity_threshold_percent: Optional[int] = Field(default=None, ge=1, le=100)
    party_size_min: Optional[int] = Field(default=None, ge=1)
    party_size_max: Optional[int] = Field(default=None, ge=1)


class VenueCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    max_capacity: int = Field(ge=1)
    booking_rules: BookingRules = Field(default_factory=BookingRules)
    opening_hours: List[OpeningHoursEntry] = Field(default_factory=list)


class VenueUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    max_capacity: Optional[int] = Field(default=None, ge=1)


class ClosedDateCreate(BaseModel):
    date: date
    reason: Optional[str] = Field(default=None, max_length=255)


class ClosedDateRead(ClosedDateCreate):
    pass


class SpecialEventCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    date: date
    opens_at: Optional[time] = None
    closes_at: Optional[time] = None
    custom_capacity: Optional[int] = Field(default=None, ge=1)
    notes: Optional[str] = None


class SpecialEventRead(SpecialEventCreate):
    pass


class VenueRead(BaseModel):
    venue_id: int
    name: str
    max_capacity: int
    booking_rules: BookingRules
    opening_hours: List[OpeningHoursEntry]
    closed_dates: List[ClosedDateRead]
    special_events: List[SpecialEventRead]

    @classmethod
    def from_db(cls, *, venue: VenueSettings) -> "VenueRead":
        return cls(
            venue_id=venue.id,
            name=venue.name,
            max_capacity=venue.max_capacity,
            booking_rules=BookingRules(
                **{name: getattr(venue, name) for name in BookingRules.model_fields}
            ),
            opening_hours=[
                OpeningHoursEntry(
                    weekday=h.weekday, opens_at=h.opens_at, closes_at=h.closes_at, is_closed=h.is_closed
                )
                for h in venue.opening_hours
            ],
            closed_dates=[ClosedDateRead(date=c.date, reason=c.reason) for c in venue.closed_dates],
            special_events=[
                SpecialEventRead(
                    name=e.name,
                    date=e.date,
                    opens_at=e.opens_at,
                    closes_at=e.closes_at,
                    custom_capacity=e.custom_capacity,
                    notes=e.notes,
                )
                for e in venue.special_events
            ],
        )
