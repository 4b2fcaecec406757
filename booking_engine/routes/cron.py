"""
Scheduler-triggered sweeps.

Both routes require ``Authorization: Bearer <CRON_SECRET>`` and are safe to call
repeatedly.
"""

from typing import Any

import structlog
from fastapi import APIRouter, Depends
from sqlalchemy.engine import Engine

from booking_engine.dependencies import get_db_engine, get_notifier, require_cron_secret
from booking_engine.services.calendar_sync import sync_all_calendars
from booking_engine.services.ledger import expire_stale_holds
from booking_engine.services.notifications import Notifier

logger = structlog.get_logger(__name__)
router = APIRouter(dependencies=[Depends(require_cron_secret)])


@router.post("/expire-holds")
def expire_holds(
    engine: Engine = Depends(get_db_engine),
    notifier: Notifier = Depends(get_notifier),
) -> dict[str, int]:
    """Cancel unpaid holds past the hold timeout."""
    expired = expire_stale_holds(engine, notifier)
    return {"expired": expired}


@router.post("/sync-calendars")
def sync_calendars(engine: Engine = Depends(get_db_engine)) -> dict[str, Any]:
    """Re-import every active external calendar."""
    results = sync_all_calendars(engine)
    return {
        "synced": sum(1 for result in results if result.success),
        "failed": sum(1 for result in results if not result.success and not result.skipped),
        "results": [result.as_dict() for result in results],
    }
