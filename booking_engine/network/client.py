"""
Client module for fetching external iCal feeds with HTTPS enforcement,
size and time bounds, and bounded retries for transient failures.
"""

import time
from typing import Optional
from urllib.parse import urlparse

import requests
import structlog

from booking_engine.config import ICAL_FETCH_TIMEOUT_SECONDS, ICAL_MAX_BYTES
from booking_engine.errors import BadRequestError, UpstreamError
from booking_engine.metrics import ical_fetch_latency

logger = structlog.get_logger(__name__)

MAX_RETRIES = 2
RETRY_DELAY = 1.0
CHUNK_SIZE = 64 * 1024
HEADERS = {
    "Accept": "text/calendar, text/plain;q=0.9",
    "User-Agent": "booking-engine-calendar-sync/1.0",
}


def should_retry(res: Optional[requests.Response], err: Optional[Exception]) -> bool:
    """
    Determine whether the request should be retried based on response or error.

    Args:
        res (Optional[requests.Response]): Response object if available.
        err (Optional[Exception]): Exception raised by the request, if any.

    Returns:
        bool: True if the request should be retried, False otherwise.
    """
    if res is not None and res.status_code == 429:
        return True
    if isinstance(err, (requests.Timeout, requests.ConnectionError)):
        return True
    if res is not None and 500 <= res.status_code < 600:
        return True
    return False


def validate_feed_url(url: str) -> str:
    """
    Accept only absolute https:// URLs.

    Plain http and other schemes (file:, ftp:) could be used to reach internal
    resources from the server.

    Raises:
        BadRequestError: If the URL is not https or has no host.
    """
    parsed = urlparse(url.strip())
    if parsed.scheme.lower() != "https" or not parsed.netloc:
        raise BadRequestError("Calendar URL must be an absolute https:// URL")
    return url.strip()


def _read_bounded(res: requests.Response, max_bytes: int) -> bytes:
    declared = res.headers.get("Content-Length")
    if declared and declared.isdigit() and int(declared) > max_bytes:
        raise UpstreamError(f"Calendar feed too large ({declared} bytes, limit {max_bytes})")

    body = bytearray()
    for chunk in res.iter_content(chunk_size=CHUNK_SIZE):
        body.extend(chunk)
        if len(body) > max_bytes:
            raise UpstreamError(f"Calendar feed exceeds {max_bytes} bytes")
    return bytes(body)


def fetch_ical(
    url: str,
    timeout: float = ICAL_FETCH_TIMEOUT_SECONDS,
    max_bytes: int = ICAL_MAX_BYTES,
) -> str:
    """
    Download an iCal document.

    Args:
        url (str): https:// feed URL.
        timeout (float): Per-attempt connect/read timeout in seconds.
        max_bytes (int): Largest accepted body.

    Returns:
        str: The decoded calendar text.

    Raises:
        BadRequestError: If the URL is not https.
        UpstreamError: If the feed cannot be fetched, is too large, or keeps failing
            after MAX_RETRIES retries.
    """
    url = validate_feed_url(url)
    retries = 0

    while True:
        res: Optional[requests.Response] = None
        try:
            logger.debug("ical_fetch_attempt", host=urlparse(url).netloc, attempt=retries + 1)

            with ical_fetch_latency.time():
                res = requests.get(url, headers=HEADERS, timeout=timeout, stream=True)
                try:
                    res.raise_for_status()
                    body = _read_bounded(res, max_bytes)
                finally:
                    res.close()

            return body.decode(res.encoding or "utf-8", errors="replace")

        except requests.RequestException as err:
            logger.warning(
                "ical_fetch_failed",
                host=urlparse(url).netloc,
                status_code=getattr(res, "status_code", None),
                error=str(err),
            )
            retries += 1
            if retries > MAX_RETRIES or not should_retry(res, err):
                raise UpstreamError(f"Failed to fetch calendar feed: {err}") from err
            time.sleep(RETRY_DELAY * retries)
