"""
Normalize external iCal (RFC 5545) documents into blocked-interval rows.

Only the pieces a booking calendar needs are parsed: VEVENT components with their
UID, SUMMARY, STATUS, DTSTART and DTEND. Both date-only (VALUE=DATE) and
date-time encodings are accepted; date-times are converted to a UTC calendar day.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import structlog

logger = structlog.get_logger(__name__)

MAX_LINE_OCTETS = 75


@dataclass(frozen=True)
class ICalEvent:
    """A parsed VEVENT. ``end`` is exclusive, as DTEND is in iCal."""

    uid: Optional[str]
    summary: Optional[str]
    start: date
    end: date


def unfold_lines(text: str) -> list[str]:
    """
    Undo RFC 5545 line folding.

    A line starting with a space or tab continues the previous line; the single
    leading whitespace character is dropped.
    """
    lines: list[str] = []
    for raw in text.replace("\r\n", "\n").replace("\r", "\n").split("\n"):
        if raw[:1] in (" ", "\t") and lines:
            lines[-1] += raw[1:]
        elif raw:
            lines.append(raw)
    return lines


def split_property(line: str) -> tuple[str, dict[str, str], str]:
    """
    Split a content line into (NAME, {PARAM: value}, value).

    Colons inside double-quoted parameter values do not end the property name.

    Example:
        >>> split_property('DTSTART;TZID="America/New_York":20250310T150000')
        ('DTSTART', {'TZID': 'America/New_York'}, '20250310T150000')
    """
    in_quotes = False
    split_at = -1
    for index, char in enumerate(line):
        if char == '"':
            in_quotes = not in_quotes
        elif char == ":" and not in_quotes:
            split_at = index
            break
    if split_at < 0:
        return line.upper(), {}, ""

    head, value = line[:split_at], line[split_at + 1 :]
    name, *raw_params = head.split(";")
    params: dict[str, str] = {}
    for raw_param in raw_params:
        key, _, param_value = raw_param.partition("=")
        params[key.strip().upper()] = param_value.strip().strip('"')
    return name.strip().upper(), params, value


def unescape_text(value: str) -> str:
    """Decode iCal TEXT escapes for newline, comma, semicolon and backslash."""
    out: list[str] = []
    chars = iter(value)
    for char in chars:
        if char != "\\":
            out.append(char)
            continue
        escaped = next(chars, "")
        out.append("\n" if escaped in ("n", "N") else escaped)
    return "".join(out)


def escape_text(value: str) -> str:
    """Encode a string as iCal TEXT: backslash, semicolon, comma and newlines."""
    return (
        value.replace("\\", "\\\\")
        .replace(";", "\\;")
        .replace(",", "\\,")
        .replace("\r\n", "\\n")
        .replace("\n", "\\n")
        .replace("\r", "\\n")
    )


def fold_line(line: str, limit: int = MAX_LINE_OCTETS) -> str:
    """
    Fold a content line so no physical line exceeds ``limit`` UTF-8 octets.

    Continuation lines start with a single space, which counts toward the limit.
    Multi-byte characters are never split.
    """
    pieces: list[str] = []
    current = ""
    size = 0
    for char in line:
        width = len(char.encode("utf-8"))
        if size + width > limit:
            pieces.append(current)
            current, size = " ", 1
        current += char
        size += width
    pieces.append(current)
    return "\r\n".join(pieces)


def parse_ical_date(value: str, params: Optional[dict[str, str]] = None) -> date:
    """
    Convert a DTSTART/DTEND value to a calendar day.

    Args:
        value (str): 20250310, 20250310T150000Z, or 20250310T150000 with a TZID param.
        params (Optional[dict[str, str]]): Property parameters (VALUE, TZID).

    Returns:
        date: The day itself for date-only values, else the UTC day of the instant.
        Floating times and unknown TZIDs are read as UTC.

    Raises:
        ValueError: If the value is not a recognised iCal date or date-time.
    """
    params = params or {}
    value = value.strip()

    if params.get("VALUE") == "DATE" or (len(value) == 8 and value.isdigit()):
        return datetime.strptime(value[:8], "%Y%m%d").date()

    is_utc = value.endswith("Z")
    parsed = datetime.strptime(value.rstrip("Z")[:15], "%Y%m%dT%H%M%S")
    if is_utc:
        return parsed.replace(tzinfo=timezone.utc).date()

    tzid = params.get("TZID")
    if tzid:
        try:
            local = parsed.replace(tzinfo=ZoneInfo(tzid))
            return local.astimezone(timezone.utc).date()
        except (ZoneInfoNotFoundError, ValueError):
            logger.debug("ical_unknown_tzid", tzid=tzid)
    return parsed.date()


def parse_events(text: str) -> list[ICalEvent]:
    """
    Extract VEVENTs from an iCal document.

    Events without a usable DTSTART are skipped, as are STATUS:CANCELLED events.
    A missing DTEND means a single day. A DTEND on or before DTSTART (seen for
    same-day date-time events) is widened to one day.

    Args:
        text (str): Raw calendar text.

    Returns:
        list[ICalEvent]: Events in document order.
    """
    events: list[ICalEvent] = []
    current: Optional[dict[str, Any]] = None

    for line in unfold_lines(text):
        name, params, value = split_property(line)

        if name == "BEGIN" and value.strip().upper() == "VEVENT":
            current = {}
            continue
        if current is None:
            continue
        if name == "END" and value.strip().upper() == "VEVENT":
            event = _finish_event(current)
            if event is not None:
                events.append(event)
            current = None
            continue

        if name in ("DTSTART", "DTEND"):
            try:
                current[name] = parse_ical_date(value, params)
            except ValueError:
                logger.warning("ical_bad_date", property=name, value=value)
        elif name in ("UID", "SUMMARY", "STATUS"):
            current[name] = unescape_text(value).strip()

    return events


def _finish_event(props: dict[str, Any]) -> Optional[ICalEvent]:
    start = props.get("DTSTART")
    if start is None:
        return None
    if str(props.get("STATUS", "")).upper() == "CANCELLED":
        return None

    end = props.get("DTEND") or start + timedelta(days=1)
    if end <= start:
        end = start + timedelta(days=1)

    return ICalEvent(
        uid=props.get("UID") or None,
        summary=props.get("SUMMARY") or None,
        start=start,
        end=end,
    )


def event_to_block(event: ICalEvent, calendar_name: str) -> dict[str, Any]:
    """
    Shape an event as a manual_blocks row owned by an external calendar.

    DTEND is exclusive, so the inclusive block ends the day before it.
    """
    return {
        "start_date": event.start,
        "end_date": event.end - timedelta(days=1),
        "reason": f"{calendar_name}: {event.summary or 'Blocked'}",
        "external_event_id": event.uid,
    }


def normalize_calendar(text: str, calendar_name: str) -> list[dict[str, Any]]:
    """Parse a document and return block rows ready for insertion."""
    return [event_to_block(event, calendar_name) for event in parse_events(text)]
