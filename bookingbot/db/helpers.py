"""Database session helpers."""

from contextlib import contextmanager
from collections.abc import Iterator

from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from bookingbot.services.errors import TransientError


def dialect_name(db: Session) -> str:
    """Name of the dialect the session is bound to ("postgresql", "sqlite", ...)."""
    bind = db.get_bind()
    return bind.dialect.name if bind is not None else ""


def lock_slot_pool(db: Session) -> None:
    """
    Serialise writers of the slot pool for the rest of the transaction.

    PostgreSQL: SHARE ROW EXCLUSIVE conflicts with itself, so two overlap-check-then-insert
    sequences cannot interleave, while plain readers are not blocked.
    SQLite: the driver only opens a transaction at the first write, so a plain read
    would see the pool before a concurrent creator commits. BEGIN IMMEDIATE takes the
    database write lock up front; other creators wait on it (busy timeout) and then
    read the committed pool. A transaction the driver already opened holds that lock.
    """
    dialect = dialect_name(db)
    if dialect == "postgresql":
        db.execute(text("LOCK TABLE slots IN SHARE ROW EXCLUSIVE MODE"))
    elif dialect == "sqlite":
        raw = db.connection().connection.driver_connection
        if not raw.in_transaction:
            raw.execute("BEGIN IMMEDIATE")


@contextmanager
def transaction(db: Session) -> Iterator[Session]:
    """
    Run a block as one all-or-nothing unit: commit on success, roll back on any error.

    OperationalError (connection dropped, lock timeout, serialization failure) is
    surfaced as TransientError so callers can tell "try again later" from a rule violation.
    """
    try:
        yield db
        db.commit()
    except OperationalError as e:
        db.rollback()
        raise TransientError(f"Store temporarily unavailable: {e.orig if e.orig else e}") from e
    except Exception:
        db.rollback()
        raise
