"""
Promotion scheduler job.

Promotes conditional / reserved_later requests to pending when their slot's time and
the state of earlier slots allow it.
Run via: python -m bookingbot.jobs.run_promotions [--once] [--interval 60]
"""

import logging
import sys

from bookingbot.jobs.scheduler import run_forever, run_once
from bookingbot.services.promotion_scheduler import run_promotion_tick

logger = logging.getLogger(__name__)


def main() -> None:
    """CLI entrypoint for the promotion scheduler."""
    import argparse

    parser = argparse.ArgumentParser(description="Promote deferred booking requests")
    parser.add_argument("--once", action="store_true", help="Run a single tick and exit")
    parser.add_argument(
        "--interval",
        type=int,
        default=None,
        help="Seconds between ticks (default: SCHEDULER_TICK_SECONDS)",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable verbose logging")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    if args.once:
        summary = run_once(run_promotion_tick, "promotion")
        if summary is None:
            sys.exit(1)
        logger.info(f"Promotion tick completed: {summary}")
        return

    run_forever(run_promotion_tick, "promotion", interval_seconds=args.interval)


if __name__ == "__main__":
    main()
