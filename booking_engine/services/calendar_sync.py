"""External calendar orchestrator: source management and iCal import."""

import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Callable, Optional

import structlog
from sqlalchemy.engine import Engine

from booking_engine.config import CALENDAR_SYNC_WORKERS
from booking_engine.db.readers.calendars import get_calendar, list_calendars
from booking_engine.db.writers.blocks import replace_calendar_blocks
from booking_engine.db.writers.calendars import (
    delete_calendar,
    insert_calendar,
    record_sync_result,
    update_calendar,
)
from booking_engine.errors import BookingError, NotFoundError
from booking_engine.metrics import calendar_events_imported, calendar_syncs
from booking_engine.models.calendars import CalendarPlatform, SyncStatus
from booking_engine.network.client import fetch_ical, validate_feed_url
from booking_engine.normalizers.ical import normalize_calendar
from booking_engine.utils.dates import utc_now

logger = structlog.get_logger(__name__)

Fetcher = Callable[[str], str]

# One lock per source: a source is never synced twice at the same time
_source_locks: dict[int, threading.Lock] = {}
_source_locks_guard = threading.Lock()


@dataclass
class SyncResult:
    calendar_id: int
    name: Optional[str] = None
    success: bool = False
    events: int = 0
    error: Optional[str] = None
    skipped: bool = False

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


def _lock_for(calendar_id: int) -> threading.Lock:
    with _source_locks_guard:
        return _source_locks.setdefault(calendar_id, threading.Lock())


def create_calendar_source(
    engine: Engine,
    name: str,
    platform: CalendarPlatform,
    ical_url: str,
    is_active: bool = True,
) -> dict[str, Any]:
    """
    Register an external iCal feed. Only https:// URLs are accepted.

    Returns:
        dict[str, Any]: The stored calendar row.
    """
    ical_url = validate_feed_url(ical_url)
    with engine.begin() as conn:
        calendar_id = insert_calendar(conn, name, platform, ical_url, is_active)
        calendar = get_calendar(conn, calendar_id)

    logger.info("calendar_source_created", calendar_id=calendar_id, platform=platform.value)
    assert calendar is not None
    return calendar


def update_calendar_source(
    engine: Engine,
    calendar_id: int,
    name: Optional[str] = None,
    ical_url: Optional[str] = None,
    is_active: Optional[bool] = None,
) -> dict[str, Any]:
    values: dict[str, Any] = {}
    if name is not None:
        values["name"] = name
    if ical_url is not None:
        values["ical_url"] = validate_feed_url(ical_url)
    if is_active is not None:
        values["is_active"] = is_active

    with engine.begin() as conn:
        if get_calendar(conn, calendar_id) is None:
            raise NotFoundError(f"Calendar {calendar_id} not found")
        update_calendar(conn, calendar_id, values)
        calendar = get_calendar(conn, calendar_id)

    logger.info("calendar_source_updated", calendar_id=calendar_id, fields=sorted(values))
    assert calendar is not None
    return calendar


def delete_calendar_source(engine: Engine, calendar_id: int) -> None:
    """Delete a source together with every block it imported."""
    with engine.begin() as conn:
        if not delete_calendar(conn, calendar_id):
            raise NotFoundError(f"Calendar {calendar_id} not found")
    logger.info("calendar_source_deleted", calendar_id=calendar_id)


def list_calendar_sources(engine: Engine) -> list[dict[str, Any]]:
    with engine.connect() as conn:
        return list_calendars(conn)


def sync_calendar(
    engine: Engine,
    calendar_id: int,
    fetch: Fetcher = fetch_ical,
    now: Optional[datetime] = None,
) -> SyncResult:
    """
    Re-import one external calendar.

    The source's previous blocks are deleted and the freshly parsed set inserted in
    a single transaction. A fetch failure leaves the previous blocks in place and
    records the error on the source. Blocks of other sources are never touched.

    Args:
        engine (Engine): SQLAlchemy engine.
        calendar_id (int): Source to sync.
        fetch (Fetcher): Callable returning the feed text for a URL.
        now (Optional[datetime]): Timestamp recorded as last_sync_at.

    Returns:
        SyncResult: Outcome; skipped=True if the source was already syncing.

    Raises:
        NotFoundError: Unknown calendar.
    """
    lock = _lock_for(calendar_id)
    if not lock.acquire(blocking=False):
        logger.info("calendar_sync_skipped", calendar_id=calendar_id, reason="in_progress")
        return SyncResult(
            calendar_id=calendar_id, skipped=True, error="Sync already in progress"
        )

    try:
        with engine.connect() as conn:
            calendar = get_calendar(conn, calendar_id)
        if calendar is None:
            raise NotFoundError(f"Calendar {calendar_id} not found")

        platform = calendar["platform"].value
        synced_at = now or utc_now()
        logger.info("calendar_sync_started", calendar_id=calendar_id, platform=platform)

        try:
            body = fetch(calendar["ical_url"])
            blocks = normalize_calendar(body, calendar["name"])
            with engine.begin() as conn:
                imported = replace_calendar_blocks(conn, calendar_id, blocks)
                record_sync_result(conn, calendar_id, SyncStatus.SUCCESS, synced_at)
        except BookingError as e:
            with engine.begin() as conn:
                record_sync_result(conn, calendar_id, SyncStatus.FAILED, synced_at, e.message)
            calendar_syncs.labels(platform=platform, status="failed").inc()
            logger.warning("calendar_sync_failed", calendar_id=calendar_id, error=e.message)
            return SyncResult(
                calendar_id=calendar_id, name=calendar["name"], success=False, error=e.message
            )

        calendar_syncs.labels(platform=platform, status="success").inc()
        calendar_events_imported.labels(platform=platform).inc(imported)
        logger.info("calendar_sync_completed", calendar_id=calendar_id, events=imported)
        return SyncResult(
            calendar_id=calendar_id, name=calendar["name"], success=True, events=imported
        )
    finally:
        lock.release()


def sync_all_calendars(
    engine: Engine,
    fetch: Fetcher = fetch_ical,
    max_workers: int = CALENDAR_SYNC_WORKERS,
) -> list[SyncResult]:
    """
    Sync every active calendar, different sources in parallel.

    One source failing never stops the others.

    Returns:
        list[SyncResult]: One result per active source, in listing order.
    """
    with engine.connect() as conn:
        calendars = list_calendars(conn, active_only=True)

    logger.info("sync_all_calendars_started", count=len(calendars))
    if not calendars:
        return []

    def _run(calendar: dict[str, Any]) -> SyncResult:
        try:
            return sync_calendar(engine, calendar["id"], fetch=fetch)
        except Exception as e:
            logger.exception("calendar_sync_crashed", calendar_id=calendar["id"], error=str(e))
            return SyncResult(
                calendar_id=calendar["id"], name=calendar["name"], success=False, error=str(e)
            )

    with ThreadPoolExecutor(max_workers=max(1, max_workers)) as pool:
        results = list(pool.map(_run, calendars))

    logger.info(
        "sync_all_calendars_completed",
        total=len(results),
        succeeded=sum(1 for result in results if result.success),
    )
    return results
