"""
Reference data the booking core consults: procedure catalog, username blacklist,
and schedule patterns used to bulk-generate slots for a date.
"""

import logging
import re
import uuid
from datetime import date, datetime

from sqlalchemy import delete, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from bookingbot.db.helpers import dialect_name, transaction
from bookingbot.db.models import BlacklistEntry, Procedure, SchedulePattern
from bookingbot.services import slot_store
from bookingbot.services.errors import NotFoundError, ValidationError
from bookingbot.services.text_normalization import (
    make_storage_key,
    normalize_text,
    normalize_username,
)

logger = logging.getLogger(__name__)

PATTERN_INTERVAL_RE = re.compile(r"^(\d{1,2}):(\d{2})-(\d{1,2}):(\d{2})$")


# ---- Procedures ----


def list_procedures(db: Session) -> list[Procedure]:
    return list(db.execute(select(Procedure).order_by(Procedure.name)).scalars().all())


def procedure_by_key(db: Session, key: str) -> Procedure | None:
    return db.get(Procedure, key)


def add_procedure(db: Session, name: str) -> Procedure:
    """
    Add a procedure, deriving its key from the display name.

    Raises:
        ValidationError: If the name is empty
    """
    name = normalize_text(name)
    if not name:
        raise ValidationError("Procedure name is required")
    with transaction(db):
        existing = set(db.execute(select(Procedure.key)).scalars().all())
        procedure = Procedure(key=make_storage_key(name, existing), name=name)
        db.add(procedure)
    logger.info(f"Procedure added: {procedure.name} (key={procedure.key})")
    return procedure


def delete_procedure(db: Session, key: str) -> bool:
    with transaction(db):
        result = db.execute(delete(Procedure).where(Procedure.key == key))
    return bool(result.rowcount)


# ---- Blacklist ----


def is_blacklisted(db: Session, username: str | None) -> bool:
    """Subjects without a username can never be blacklisted."""
    uname = normalize_username(username)
    if not uname:
        return False
    return db.get(BlacklistEntry, uname) is not None


def add_to_blacklist(db: Session, username: str) -> str:
    uname = normalize_username(username)
    if not uname:
        raise ValidationError("Username is required")
    with transaction(db):
        dialect = dialect_name(db)
        if dialect in {"sqlite", "postgresql"}:
            insert_factory = sqlite_insert if dialect == "sqlite" else pg_insert
            db.execute(insert_factory(BlacklistEntry).values(username=uname).on_conflict_do_nothing())
        elif db.get(BlacklistEntry, uname) is None:
            db.add(BlacklistEntry(username=uname))
    logger.info(f"User @{uname} added to blacklist")
    return uname


def remove_from_blacklist(db: Session, username: str) -> bool:
    uname = normalize_username(username)
    with transaction(db):
        result = db.execute(delete(BlacklistEntry).where(BlacklistEntry.username == uname))
    return bool(result.rowcount)


def list_blacklist(db: Session) -> list[str]:
    return list(db.execute(select(BlacklistEntry.username).order_by(BlacklistEntry.username)).scalars().all())


# ---- Schedule patterns ----


def parse_pattern_intervals(intervals: str) -> list[tuple[tuple[int, int], tuple[int, int]]]:
    """
    Parse "10:00-11:00, 11:30-12:30" into ((10, 0), (11, 0)), ((11, 30), (12, 30)).

    Malformed entries and entries with end <= start are skipped.
    """
    result = []
    for raw in intervals.split(","):
        m = PATTERN_INTERVAL_RE.match(raw.strip())
        if not m:
            continue
        sh, sm, eh, em = (int(g) for g in m.groups())
        if not (0 <= sh <= 23 and 0 <= eh <= 23 and 0 <= sm <= 59 and 0 <= em <= 59):
            continue
        if (eh, em) <= (sh, sm):
            continue
        result.append(((sh, sm), (eh, em)))
    return result


def add_pattern(db: Session, name: str, intervals: str) -> SchedulePattern:
    name = normalize_text(name)
    if not name:
        raise ValidationError("Pattern name is required")
    if not parse_pattern_intervals(intervals):
        raise ValidationError("Pattern needs at least one interval like 10:00-11:00")
    with transaction(db):
        pattern = SchedulePattern(id=str(uuid.uuid4()), name=name, intervals=normalize_text(intervals))
        db.add(pattern)
    return pattern


def list_patterns(db: Session) -> list[SchedulePattern]:
    return list(db.execute(select(SchedulePattern).order_by(SchedulePattern.name)).scalars().all())


def get_pattern(db: Session, pattern_id: str) -> SchedulePattern:
    pattern = db.get(SchedulePattern, pattern_id)
    if pattern is None:
        raise NotFoundError(f"Pattern {pattern_id} not found")
    return pattern


def delete_pattern(db: Session, pattern_id: str) -> bool:
    with transaction(db):
        result = db.execute(delete(SchedulePattern).where(SchedulePattern.id == pattern_id))
    return bool(result.rowcount)


def apply_pattern_to_date(
    db: Session, pattern_id: str, day: date, now: datetime | None = None
) -> dict:
    """
    Create one slot per pattern interval on day (local time).

    Intervals that overlap an existing slot or already started are skipped; each slot
    goes through the same validation as a manual create.

    Returns:
        dict with created / skipped counts
    """
    pattern = get_pattern(db, pattern_id)
    tz = slot_store.get_timezone()
    results = {"created": 0, "skipped": 0}

    for (sh, sm), (eh, em) in parse_pattern_intervals(pattern.intervals):
        start = tz.localize(datetime(day.year, day.month, day.day, sh, sm))
        end = tz.localize(datetime(day.year, day.month, day.day, eh, em))
        try:
            slot_store.create_slot(db, None, start, end, now=now)
            results["created"] += 1
        except ValidationError as e:
            logger.info(f"Pattern {pattern.name}: skipped {sh:02d}:{sm:02d}-{eh:02d}:{em:02d} ({e})")
            results["skipped"] += 1

    logger.info(
        f"Pattern {pattern.name} applied to {day.isoformat()}: "
        f"{results['created']} created, {results['skipped']} skipped"
    )
    return results
