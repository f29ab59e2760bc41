"""
System event logging service.

Provides structured logging of key system events and failures to the database.
All SystemEvent creation should go through log_event (or info/warn/error) to ensure
consistent payload shape.
"""

import logging
from datetime import UTC, datetime, timedelta

from sqlalchemy import delete, desc, select
from sqlalchemy.orm import Session

from bookingbot.db.models import SystemEvent

logger = logging.getLogger(__name__)

# Default retention: delete events older than this many days
DEFAULT_RETENTION_DAYS = 90


def log_event(
    db: Session,
    level: str,
    event_type: str,
    request_id: str | None = None,
    payload: dict | None = None,
    exc: BaseException | None = None,
) -> SystemEvent | None:
    """
    Log a system event to the database (own commit).

    Args:
        db: Database session (must not hold uncommitted work the caller wants to keep separate)
        level: Event level (INFO, WARN, ERROR)
        event_type: Type of event (e.g., "promotion.failure", "reminder.send_failure")
        request_id: Optional booking request ID associated with the event
        payload: Optional additional event data (dict). Will be normalized/copied.
        exc: Optional exception; if provided, error type and message are added to payload.

    Returns:
        Created SystemEvent object, or None if the event could not be stored
    """
    normalized: dict = dict(payload) if payload else {}
    if exc is not None:
        normalized["error"] = {
            "type": type(exc).__name__,
            "message": str(exc)[:500],  # Truncate to avoid huge payloads
        }

    event = SystemEvent(
        level=level.upper(),
        event_type=event_type,
        request_id=request_id,
        payload=normalized if normalized else None,
        created_at=datetime.now(UTC),
    )
    try:
        db.add(event)
        db.commit()
        db.refresh(event)
    except Exception as e:
        # The event log must never turn a handled failure into an unhandled one
        db.rollback()
        logger.error(f"Failed to store system event {event_type}: {e}")
        return None
    return event


def info(
    db: Session,
    event_type: str,
    request_id: str | None = None,
    payload: dict | None = None,
    exc: BaseException | None = None,
) -> SystemEvent | None:
    """Log an INFO-level system event."""
    return log_event(db, "INFO", event_type, request_id=request_id, payload=payload, exc=exc)


def error(
    db: Session,
    event_type: str,
    request_id: str | None = None,
    payload: dict | None = None,
    exc: BaseException | None = None,
) -> SystemEvent | None:
    """Log an ERROR-level system event."""
    return log_event(db, "ERROR", event_type, request_id=request_id, payload=payload, exc=exc)


def list_events(
    db: Session,
    limit: int = 100,
    request_id: str | None = None,
    level: str | None = None,
) -> list[SystemEvent]:
    """Newest first; limit is clamped to 0..1000."""
    stmt = select(SystemEvent).order_by(desc(SystemEvent.created_at))
    if request_id is not None:
        stmt = stmt.where(SystemEvent.request_id == request_id)
    if level is not None:
        stmt = stmt.where(SystemEvent.level == level.upper())
    return list(db.execute(stmt.limit(max(0, min(limit, 1000)))).scalars().all())


def cleanup_old_events(
    db: Session,
    *,
    retention_days: int = DEFAULT_RETENTION_DAYS,
    cutoff: datetime | None = None,
) -> int:
    """
    Delete SystemEvents older than retention_days (or before cutoff if provided).

    Returns:
        Number of rows deleted
    """
    if cutoff is None:
        cutoff = datetime.now(UTC) - timedelta(days=retention_days)
    if cutoff.tzinfo is None:
        cutoff = cutoff.replace(tzinfo=UTC)
    stmt = delete(SystemEvent).where(SystemEvent.created_at < cutoff.astimezone(UTC))
    result = db.execute(stmt)
    db.commit()
    deleted = result.rowcount
    logger.info(f"SystemEvent retention: deleted {deleted} events older than {cutoff.isoformat()}")
    return deleted
