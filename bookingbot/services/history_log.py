"""Append-only history of completed / no-show outcomes."""

from sqlalchemy import select
from sqlalchemy.orm import Session

from bookingbot.db.models import HistoryEntry
from bookingbot.utils.datetime_utils import utc_now


def append_entry(
    db: Session,
    subject_id: int,
    date_label: str | None,
    procedure_label: str | None,
    outcome_label: str,
    request_id: str | None = None,
) -> HistoryEntry:
    """Add an entry inside the caller's transaction."""
    entry = HistoryEntry(
        subject_id=subject_id,
        request_id=request_id,
        date_label=date_label,
        procedure_label=procedure_label,
        outcome_label=outcome_label,
        created_at=utc_now(),
    )
    db.add(entry)
    db.flush()
    return entry


def list_for_subject(db: Session, subject_id: int) -> list[HistoryEntry]:
    """Newest first."""
    stmt = (
        select(HistoryEntry)
        .where(HistoryEntry.subject_id == subject_id)
        .order_by(HistoryEntry.id.desc())
    )
    return list(db.execute(stmt).scalars().all())
