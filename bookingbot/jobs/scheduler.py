"""
Polling loop shared by the promotion and reminder schedulers.

Each tick opens its own session, runs one pass, and closes it. A failing tick is
logged and the loop sleeps until the next one; it never stops the process.
"""

import logging
import threading
from collections.abc import Callable

from sqlalchemy.orm import Session

from bookingbot.core.config import settings
from bookingbot.db import session as db_session

logger = logging.getLogger(__name__)

TickFn = Callable[[Session], dict]


def run_once(tick: TickFn, name: str) -> dict | None:
    db = db_session.SessionLocal()
    try:
        return tick(db)
    except Exception as e:
        logger.error(f"{name} tick failed ({type(e).__name__}: {e})", exc_info=True)
        return None
    finally:
        db.close()


def run_forever(
    tick: TickFn,
    name: str,
    interval_seconds: int | None = None,
    stop_event: threading.Event | None = None,
) -> None:
    """Run tick every interval_seconds until stop_event is set (forever if None)."""
    interval = interval_seconds or settings.scheduler_tick_seconds
    stop_event = stop_event or threading.Event()
    logger.info(f"{name} scheduler started. Interval={interval}s")
    while not stop_event.is_set():
        run_once(tick, name)
        stop_event.wait(interval)
    logger.info(f"{name} scheduler stopped")


class SchedulerThread(threading.Thread):
    """Daemon thread running one scheduler loop inside the API process."""

    def __init__(self, tick: TickFn, name: str, interval_seconds: int | None = None):
        super().__init__(name=f"{name}-scheduler", daemon=True)
        self.tick = tick
        self.scheduler_name = name
        self.interval_seconds = interval_seconds
        self.stop_event = threading.Event()

    def run(self) -> None:
        run_forever(self.tick, self.scheduler_name, self.interval_seconds, self.stop_event)

    def stop(self, timeout: float | None = 5.0) -> None:
        self.stop_event.set()
        self.join(timeout=timeout)
