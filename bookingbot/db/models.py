from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, BigInteger, Boolean, DateTime, Index, Integer, String, Text, func, text
from sqlalchemy.orm import Mapped, mapped_column

from bookingbot.db.base import Base

# Partial-index predicate shared by PostgreSQL and SQLite
ACTIVE_REQUEST_PREDICATE = text("status NOT IN ('rejected', 'completed', 'no_show')")


class Slot(Base):
    __tablename__ = "slots"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    label: Mapped[str] = mapped_column(String(100))
    start: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)
    end: Mapped[datetime] = mapped_column(DateTime(timezone=True))


class BookingRequest(Base):
    __tablename__ = "requests"
    __table_args__ = (
        # At most one non-terminal request per (subject, slot)
        Index(
            "uq_requests_active_subject_slot",
            "subject_id",
            "slot_id",
            unique=True,
            postgresql_where=ACTIVE_REQUEST_PREDICATE,
            sqlite_where=ACTIVE_REQUEST_PREDICATE,
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)

    # Subject identity
    subject_id: Mapped[int] = mapped_column(BigInteger, index=True)
    subject_handle: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    subject_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Bound slot (no FK: the slot row is deleted once claimed)
    slot_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)
    slot_label: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    slot_start: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    slot_end: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    procedure_key: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    procedure_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    status: Mapped[str] = mapped_column(String(32), index=True)

    # Snapshot of the slot row this request consumed (restored on reject / move)
    original_slot_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    original_slot_label: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    original_slot_start: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    original_slot_end: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Move candidate (only while move_pending)
    move_slot_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    move_slot_label: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    move_slot_start: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    move_slot_end: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    prev_status: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)

    # Reminder flags
    reminder_evening_sent: Mapped[bool] = mapped_column(Boolean, default=False)
    reminder_final_sent: Mapped[bool] = mapped_column(Boolean, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class HistoryEntry(Base):
    """Append-only outcome record (completed / no-show)."""
    __tablename__ = "history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    subject_id: Mapped[int] = mapped_column(BigInteger, index=True)
    request_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    date_label: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    procedure_label: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    outcome_label: Mapped[str] = mapped_column(String(32))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class Procedure(Base):
    __tablename__ = "procedures"

    key: Mapped[str] = mapped_column(String(100), primary_key=True)
    name: Mapped[str] = mapped_column(String(255))


class BlacklistEntry(Base):
    __tablename__ = "blacklist"

    username: Mapped[str] = mapped_column(String(64), primary_key=True)  # lowercase, no leading @


class SchedulePattern(Base):
    __tablename__ = "schedule_patterns"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str] = mapped_column(String(255))
    intervals: Mapped[str] = mapped_column(Text)  # "10:00-11:00, 11:30-12:30"
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class SystemEvent(Base):
    """Operational event log (tick failures, conflicts, skipped restores)."""
    __tablename__ = "system_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), index=True)
    level: Mapped[str] = mapped_column(String(10), index=True)
    event_type: Mapped[str] = mapped_column(String(100), index=True)
    request_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)
    payload: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
