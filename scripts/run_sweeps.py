"""
Run the scheduled sweeps once from the command line (or a cron job).

    python scripts/run_sweeps.py            # expire holds and sync calendars
    python scripts/run_sweeps.py holds      # expire holds only
    python scripts/run_sweeps.py calendars  # sync calendars only
"""

import sys

import structlog

from booking_engine.db.engine import engine
from booking_engine.logging_config import setup_logging
from booking_engine.services.calendar_sync import sync_all_calendars
from booking_engine.services.ledger import expire_stale_holds
from booking_engine.services.notifications import Notifier

setup_logging()
logger = structlog.get_logger(__name__)

SWEEPS = ("holds", "calendars")


def main(argv: list[str]) -> int:
    selected = argv or list(SWEEPS)
    unknown = [name for name in selected if name not in SWEEPS]
    if unknown:
        logger.error("unknown_sweep", names=unknown, choices=list(SWEEPS))
        return 2

    try:
        if "holds" in selected:
            expired = expire_stale_holds(engine, Notifier())
            logger.info("sweep_completed", sweep="holds", expired=expired)
        if "calendars" in selected:
            results = sync_all_calendars(engine)
            failed = [result.calendar_id for result in results if not result.success]
            logger.info("sweep_completed", sweep="calendars", total=len(results), failed=failed)
    except Exception:
        logger.exception("sweep_failed", sweeps=selected)
        raise
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
