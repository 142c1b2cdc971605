from __future__ import annotations

import datetime as dt
from datetime import datetime, time
from enum import StrEnum
from typing import Any, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    Date,
    Enum,
    ForeignKey,
    Index,
    Table as SaTable,
    Text,
    Time,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.sql.sqltypes import BigInteger, DateTime, Integer, String


class Base(DeclarativeBase):
    pass


def _str_enum(enum_cls: type[StrEnum]) -> Enum:
    return Enum(
        enum_cls,
        values_callable=lambda cls: [e.value for e in cls],
        native_enum=False,
    )


class UserRole(StrEnum):
    ADMIN = "admin"
    MANAGER = "manager"
    STAFF = "staff"
    CUSTOMER = "customer"


STAFF_ROLES = frozenset({UserRole.ADMIN, UserRole.MANAGER, UserRole.STAFF})


class TableSection(StrEnum):
    INDOOR = "indoor"
    OUTDOOR = "outdoor"
    BAR = "bar"
    PRIVATE = "private"
    WINDOW = "window"
    OTHER = "other"


class BookingStatus(StrEnum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    SEATED = "seated"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no-show"


class BookingSource(StrEnum):
    ONLINE = "online"
    PHONE = "phone"
    WALK_IN = "walk-in"
    MANUAL = "manual"
    THIRD_PARTY = "third-party"


class User(Base):
    __tablename__ = "users"
    __table_args__ = (UniqueConstraint("email", name="uq_users_email"),)

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[UserRole] = mapped_column(_str_enum(UserRole), nullable=False, default=UserRole.CUSTOMER)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)


class VenueSettings(Base):
    """Single-row aggregate holding the calendar and the booking rules."""

    __tablename__ = "venue_settings"
    __table_args__ = (
        CheckConstraint("max_capacity >= 1", name="chk_venue_capacity"),
        CheckConstraint("slot_minutes BETWEEN 15 AND 240", name="chk_venue_slot"),
        CheckConstraint(
            "capacity_threshold_percent BETWEEN 1 AND 100", name="chk_venue_threshold"
        ),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    max_capacity: Mapped[int] = mapped_column(Integer, nullable=False)
    slot_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=15)
    min_advance_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=60)
    max_advance_days: Mapped[int] = mapped_column(Integer, nullable=False, default=30)
    default_duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=120)
    max_duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=120)
    buffer_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=15)
    max_online_party_size: Mapped[int] = mapped_column(Integer, nullable=False, default=10)
    capacity_threshold_percent: Mapped[int] = mapped_column(Integer, nullable=False, default=90)
    party_size_min: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    party_size_max: Mapped[int] = mapped_column(Integer, nullable=False, default=10)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)

    opening_hours: Mapped[list["OpeningHours"]] = relationship(
        back_populates="venue", cascade="all, delete-orphan", order_by="OpeningHours.weekday"
    )
    closed_dates: Mapped[list["ClosedDate"]] = relationship(
        back_populates="venue", cascade="all, delete-orphan", order_by="ClosedDate.date"
    )
    special_events: Mapped[list["SpecialEvent"]] = relationship(
        back_populates="venue", cascade="all, delete-orphan", order_by="SpecialEvent.date"
    )


class OpeningHours(Base):
    __tablename__ = "opening_hours"
    __table_args__ = (
        CheckConstraint("weekday BETWEEN 0 AND 6", name="chk_hours_weekday"),
        UniqueConstraint("venue_id", "weekday", name="uq_hours_weekday"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    venue_id: Mapped[int] = mapped_column(ForeignKey("venue_settings.id"), nullable=False)
    # 0 = Monday, as in date.weekday()
    weekday: Mapped[int] = mapped_column(Integer, nullable=False)
    opens_at: Mapped[time] = mapped_column(Time, nullable=False)
    closes_at: Mapped[time] = mapped_column(Time, nullable=False)
    is_closed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    venue: Mapped["VenueSettings"] = relationship(back_populates="opening_hours")


class ClosedDate(Base):
    __tablename__ = "closed_dates"
    __table_args__ = (UniqueConstraint("venue_id", "date", name="uq_closed_date"),)

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    venue_id: Mapped[int] = mapped_column(ForeignKey("venue_settings.id"), nullable=False)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    venue: Mapped["VenueSettings"] = relationship(back_populates="closed_dates")


class SpecialEvent(Base):
    __tablename__ = "special_events"
    __table_args__ = (Index("idx_events_date", "date"),)

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    venue_id: Mapped[int] = mapped_column(ForeignKey("venue_settings.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    opens_at: Mapped[Optional[time]] = mapped_column(Time, nullable=True)
    closes_at: Mapped[Optional[time]] = mapped_column(Time, nullable=True)
    custom_capacity: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    venue: Mapped["VenueSettings"] = relationship(back_populates="special_events")


booking_tables = SaTable(
    "booking_tables",
    Base.metadata,
    Column("booking_id", ForeignKey("bookings.id"), primary_key=True),
    Column("table_id", ForeignKey("dining_tables.id"), primary_key=True),
    Index("idx_booking_tables_table", "table_id"),
)


class DiningTable(Base):
    __tablename__ = "dining_tables"
    __table_args__ = (
        CheckConstraint("capacity >= 1", name="chk_tables_capacity"),
        UniqueConstraint("label", name="uq_tables_label"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    label: Mapped[str] = mapped_column(String(50), nullable=False)
    capacity: Mapped[int] = mapped_column(Integer, nullable=False)
    section: Mapped[TableSection] = mapped_column(
        _str_enum(TableSection), nullable=False, default=TableSection.INDOOR
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_reservable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)


class Booking(Base):
    __tablename__ = "bookings"
    __table_args__ = (
        CheckConstraint("party_size >= 1", name="chk_bookings_party_size"),
        CheckConstraint("duration_minutes >= 15", name="chk_bookings_duration"),
        CheckConstraint("starts_at < ends_at", name="chk_bookings_time"),
        Index("idx_bookings_date_status", "date", "status"),
        Index("idx_bookings_user", "user_id"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    customer_name: Mapped[str] = mapped_column(String(255), nullable=False)
    customer_email: Mapped[str] = mapped_column(String(255), nullable=False)
    customer_phone: Mapped[str] = mapped_column(String(50), nullable=False)
    user_id: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    party_size: Mapped[int] = mapped_column(Integer, nullable=False)
    # Venue-local wall clock; date is the local day of starts_at.
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    starts_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    ends_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[BookingStatus] = mapped_column(
        _str_enum(BookingStatus), nullable=False, default=BookingStatus.PENDING
    )
    source: Mapped[BookingSource] = mapped_column(
        _str_enum(BookingSource), nullable=False, default=BookingSource.ONLINE
    )
    special_requests: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_by: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)

    tables: Mapped[list["DiningTable"]] = relationship(secondary=booking_tables, lazy="selectin")

    @property
    def table_ids(self) -> list[int]:
        return [table.id for table in self.tables]


class AvailabilitySnapshot(Base):
    __tablename__ = "availability_snapshots"
    __table_args__ = (UniqueConstraint("date", "table_id", name="uq_snapshot_date_table"),)

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    table_id: Mapped[int] = mapped_column(ForeignKey("dining_tables.id"), nullable=False)
    free_slots: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False)
    blocked_slots: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False)
