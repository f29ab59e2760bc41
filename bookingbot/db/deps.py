from collections.abc import Iterator

from sqlalchemy.orm import Session

from bookingbot.db import session as db_session


def get_db() -> Iterator[Session]:
    """FastAPI dependency yielding a session that is always closed."""
    db = db_session.SessionLocal()
    try:
        yield db
    finally:
        db.close()
