"""
Slot pool - the set of open, pairwise non-overlapping time slots.

Claims delete slot rows; rejections and declined moves put them back with the same id
(insert-if-absent), so every write here is safe to repeat.
"""

import logging
import re
import uuid
from datetime import datetime

import pytz
from sqlalchemy import delete, exists, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from bookingbot.core.config import settings
from bookingbot.db.helpers import dialect_name, lock_slot_pool, transaction
from bookingbot.db.models import Slot
from bookingbot.services.errors import NotFoundError, ValidationError
from bookingbot.utils.datetime_utils import dt_replace_utc, to_utc, utc_now

logger = logging.getLogger(__name__)

# "25.12.2026 10:00-11:30"
SLOT_INPUT_RE = re.compile(
    r"^(\d{1,2})\.(\d{1,2})\.(\d{4})\s+(\d{1,2}):(\d{2})-(\d{1,2}):(\d{2})$"
)


def get_timezone() -> pytz.BaseTzInfo:
    return pytz.timezone(settings.timezone)


def format_slot_label(start: datetime, end: datetime, tz: pytz.BaseTzInfo | None = None) -> str:
    """Render an interval as "DD.MM.YYYY HH:MM-HH:MM" in local time."""
    tz = tz or get_timezone()
    local_start = to_utc(start).astimezone(tz)
    local_end = to_utc(end).astimezone(tz)
    return f"{local_start:%d.%m.%Y %H:%M}-{local_end:%H:%M}"


def parse_slot_interval(
    text: str, tz: pytz.BaseTzInfo | None = None
) -> tuple[datetime, datetime] | None:
    """
    Parse staff input "DD.MM.YYYY HH:MM-HH:MM" as local time.

    Returns:
        (start, end) as aware UTC datetimes, or None if the text is malformed,
        names an impossible date/time, or end is not after start.
    """
    m = SLOT_INPUT_RE.match(text.strip())
    if not m:
        return None
    day, month, year, sh, sm, eh, em = (int(g) for g in m.groups())
    tz = tz or get_timezone()
    try:
        start = tz.localize(datetime(year, month, day, sh, sm))
        end = tz.localize(datetime(year, month, day, eh, em))
    except ValueError:
        return None
    if end <= start:
        return None
    return to_utc(start), to_utc(end)


def slot_start(slot: Slot) -> datetime:
    return dt_replace_utc(slot.start)


def slot_end(slot: Slot) -> datetime:
    return dt_replace_utc(slot.end)


def list_slots(db: Session) -> list[Slot]:
    """All live slots ordered by start (ascending)."""
    return list(db.execute(select(Slot).order_by(Slot.start, Slot.id)).scalars().all())


def earliest_slot(db: Session) -> Slot | None:
    return db.execute(select(Slot).order_by(Slot.start, Slot.id).limit(1)).scalar_one_or_none()


def find_slot(db: Session, slot_id: str, for_update: bool = False) -> Slot | None:
    stmt = select(Slot).where(Slot.id == slot_id)
    if for_update:
        stmt = stmt.with_for_update()
    return db.execute(stmt).scalar_one_or_none()


def get_slot(db: Session, slot_id: str) -> Slot:
    slot = find_slot(db, slot_id)
    if slot is None:
        raise NotFoundError(f"Slot {slot_id} not found")
    return slot


def find_overlapping_slot(
    db: Session, start: datetime, end: datetime, exclude_id: str | None = None
) -> Slot | None:
    """First live slot whose interval intersects [start, end)."""
    stmt = select(Slot).where(Slot.start < to_utc(end), Slot.end > to_utc(start))
    if exclude_id is not None:
        stmt = stmt.where(Slot.id != exclude_id)
    return db.execute(stmt.order_by(Slot.start).limit(1)).scalar_one_or_none()


def has_open_slot_before(db: Session, instant: datetime) -> bool:
    """True if any live slot starts strictly before instant, started or not."""
    return bool(db.execute(select(exists().where(Slot.start < to_utc(instant)))).scalar())


def _validate_interval(start: datetime, end: datetime, now: datetime) -> tuple[datetime, datetime]:
    try:
        start = to_utc(start)
        end = to_utc(end)
    except ValueError as e:
        raise ValidationError("Slot start and end must be timezone-aware") from e
    if end <= start:
        raise ValidationError("Slot end must be after its start")
    if start <= now:
        raise ValidationError("Slot cannot start in the past")
    return start, end


def add_slot(
    db: Session,
    label: str | None,
    start: datetime,
    end: datetime,
    now: datetime | None = None,
    slot_id: str | None = None,
) -> Slot:
    """
    Validate and insert a slot inside the caller's transaction (no commit).

    Takes the pool lock first so the overlap check and the insert are atomic with
    respect to other creators.

    Raises:
        ValidationError: bad interval, start not in the future, or overlap
    """
    now = to_utc(now) if now else utc_now()
    start, end = _validate_interval(start, end, now)

    lock_slot_pool(db)
    conflict = find_overlapping_slot(db, start, end)
    if conflict is not None:
        raise ValidationError(f"Slot overlaps existing slot {conflict.label}")

    slot = Slot(
        id=slot_id or str(uuid.uuid4()),
        label=label or format_slot_label(start, end),
        start=start,
        end=end,
    )
    db.add(slot)
    db.flush()
    return slot


def create_slot(
    db: Session,
    label: str | None,
    start: datetime,
    end: datetime,
    now: datetime | None = None,
) -> Slot:
    """Create a slot in its own transaction. See add_slot for the rules."""
    with transaction(db):
        slot = add_slot(db, label, start, end, now=now)
    db.refresh(slot)
    logger.info(f"Slot {slot.id} created: {slot.label}")
    return slot


def delete_slot_row(db: Session, slot_id: str | None) -> bool:
    """Delete inside the caller's transaction. Absent id is a no-op; returns whether a row went."""
    if not slot_id:
        return False
    result = db.execute(delete(Slot).where(Slot.id == slot_id))
    return bool(result.rowcount)


def delete_slot(db: Session, slot_id: str) -> bool:
    """Remove a slot from the pool. Deleting an already-absent slot is not an error."""
    with transaction(db):
        deleted = delete_slot_row(db, slot_id)
    if deleted:
        logger.info(f"Slot {slot_id} deleted")
    else:
        logger.debug(f"Slot {slot_id} already absent on delete")
    return deleted


def restore_slot(
    db: Session,
    slot_id: str | None,
    label: str | None,
    start: datetime | None,
    end: datetime | None,
    now: datetime | None = None,
) -> bool:
    """
    Put a previously claimed slot back into the pool under its original id (no commit).

    Insert-if-absent: repeating the call never creates a second row or raises.
    Nothing is inserted when the snapshot is incomplete, the slot has already started,
    or its interval now collides with another live slot.

    Returns:
        True if a row was inserted
    """
    if not slot_id or start is None or end is None:
        return False
    start = to_utc(dt_replace_utc(start))
    end = to_utc(dt_replace_utc(end))
    now = to_utc(now) if now else utc_now()

    if start <= now:
        logger.info(f"Slot {slot_id} not restored: it already started at {start.isoformat()}")
        return False

    lock_slot_pool(db)
    conflict = find_overlapping_slot(db, start, end, exclude_id=slot_id)
    if conflict is not None:
        logger.warning(
            f"Slot {slot_id} not restored: interval now overlaps slot {conflict.id} ({conflict.label})"
        )
        return False

    values = {"id": slot_id, "label": label or format_slot_label(start, end), "start": start, "end": end}
    dialect = dialect_name(db)
    if dialect in {"sqlite", "postgresql"}:
        insert_factory = sqlite_insert if dialect == "sqlite" else pg_insert
        stmt = insert_factory(Slot).values(**values).on_conflict_do_nothing(index_elements=["id"])
        inserted = db.execute(stmt).rowcount == 1
    else:
        inserted = False
        if db.get(Slot, slot_id) is None:
            db.add(Slot(**values))
            db.flush()
            inserted = True

    if inserted:
        logger.info(f"Slot {slot_id} restored to pool ({values['label']})")
    return inserted
