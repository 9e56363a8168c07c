"""Timezone helpers and the overridable clock for visitbot."""

from __future__ import annotations

import datetime
import logging
import os
import zoneinfo
from functools import lru_cache

logger = logging.getLogger(__name__)

# Default wall-clock zone for visit anchors
DEFAULT_VISIT_TIMEZONE = "Asia/Jakarta"

TEST_TIME_ENV = "VISITBOT_TEST_TIME"


def now_utc() -> datetime.datetime:
    """Return current UTC time with tzinfo.

    Can be overridden for testing via the VISITBOT_TEST_TIME environment variable.
    Format: ISO 8601 datetime string (e.g., "2025-01-31T08:20:00+07:00").
    Naive values are taken as UTC.
    """
    test_time = os.environ.get(TEST_TIME_ENV)
    if test_time:
        try:
            from dateutil import parser as date_parser

            dt = date_parser.isoparse(test_time)
            if dt.tzinfo is not None:
                return dt.astimezone(datetime.UTC)
            return dt.replace(tzinfo=datetime.UTC)
        except (ValueError, OverflowError) as e:
            logger.warning("Failed to parse %s=%r: %s", TEST_TIME_ENV, test_time, e)

    return datetime.datetime.now(datetime.UTC)


@lru_cache(maxsize=20)
def resolve_timezone(tz_str: str | None, fallback: str = DEFAULT_VISIT_TIMEZONE) -> datetime.tzinfo:
    """Parse an IANA timezone name, falling back to ``fallback`` (then UTC).

    Examples:
        >>> resolve_timezone("Asia/Jakarta")
        >>> resolve_timezone(None)  # fallback zone
        >>> resolve_timezone("Invalid/Zone")  # fallback zone with warning
    """
    for name in (tz_str, fallback):
        if not name:
            continue
        try:
            return zoneinfo.ZoneInfo(name)
        except (zoneinfo.ZoneInfoNotFoundError, ValueError):
            logger.warning("Invalid timezone %r", name)
    return datetime.UTC


def serialize_iso(dt: datetime.datetime | None) -> str | None:
    """Serialize to a UTC ISO-8601 string with a ``Z`` suffix, whole seconds."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=datetime.UTC)
    dt = dt.astimezone(datetime.UTC).replace(microsecond=0)
    return dt.isoformat().replace("+00:00", "Z")
