"""
Reminder scheduler job.

Sends the evening-before and final reminders for approved requests.
Run via: python -m bookingbot.jobs.send_reminders [--once] [--interval 60]
"""

import logging
import sys

from bookingbot.jobs.scheduler import run_forever, run_once
from bookingbot.services.reminders import run_reminder_tick

logger = logging.getLogger(__name__)


def main() -> None:
    """CLI entrypoint for the reminder scheduler."""
    import argparse

    parser = argparse.ArgumentParser(description="Send booking reminders")
    parser.add_argument("--once", action="store_true", help="Run a single tick and exit")
    parser.add_argument("--interval", type=int, default=None, help="Seconds between ticks")
    parser.add_argument("--verbose", action="store_true", help="Enable verbose logging")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    if args.once:
        summary = run_once(run_reminder_tick, "reminders")
        if summary is None:
            sys.exit(1)
        logger.info(f"Reminder tick completed: {summary}")
        return

    run_forever(run_reminder_tick, "reminders", interval_seconds=args.interval)


if __name__ == "__main__":
    main()
