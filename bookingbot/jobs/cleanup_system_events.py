"""
Scheduled job for SystemEvent retention cleanup (tick failures, reminder sends, skipped restores).

Deletes events older than retention_days (default 90).
Run via: python -m bookingbot.jobs.cleanup_system_events [--retention-days 90]
"""

import logging
import sys

from bookingbot.db import session as db_session
from bookingbot.services.system_event_service import DEFAULT_RETENTION_DAYS, cleanup_old_events

logger = logging.getLogger(__name__)


def main() -> None:
    """CLI entrypoint for SystemEvent retention cleanup."""
    import argparse

    parser = argparse.ArgumentParser(description="Clean up old SystemEvents (retention)")
    parser.add_argument(
        "--retention-days",
        type=int,
        default=DEFAULT_RETENTION_DAYS,
        help="Delete events older than this many days (default: 90)",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable verbose logging")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    db = db_session.SessionLocal()
    try:
        deleted = cleanup_old_events(db, retention_days=args.retention_days)
        logger.info(f"Retention cleanup completed: deleted {deleted} events")
    except Exception as e:
        logger.error(f"Retention cleanup failed: {e}", exc_info=True)
        sys.exit(1)
    finally:
        db.close()


if __name__ == "__main__":
    main()
