"""Calendar feed builder: scheduled visits -> one iCalendar document."""

from __future__ import annotations

import datetime
import logging
from collections.abc import Iterable
from typing import Any, Optional

from icalendar import Calendar, Event

from visitbot.domain.models import Occurrence, VisitRecord
from visitbot.domain.occurrence import visit_occurrences

logger = logging.getLogger(__name__)

DEFAULT_MONTHS_AHEAD = 6
MAX_MONTHS_AHEAD = 36
VISIT_DURATION_MINUTES = 60

PRODID = "-//visitbot//visit-schedule//EN"
CALENDAR_NAME = "Doctor Visits"
EVENT_CATEGORY = "Doctor Visit"
UID_DOMAIN = "visitbot"


def clamp_months_ahead(value: Any, default: int = DEFAULT_MONTHS_AHEAD) -> int:
    """Coerce a requested horizon to an int in [0, MAX_MONTHS_AHEAD].

    Missing or non-numeric input yields ``default``; out-of-range input is clamped.
    """
    if value is None or value == "" or isinstance(value, bool):
        return default
    try:
        months = int(float(value))
    except (TypeError, ValueError, OverflowError):
        return default
    return max(0, min(MAX_MONTHS_AHEAD, months))


def _event_uid(visit_id: str, index: int, total: int) -> str:
    if total > 1:
        return f"{visit_id}-{index}@{UID_DOMAIN}"
    return f"{visit_id}@{UID_DOMAIN}"


def _build_event(
    visit: VisitRecord,
    occurrence: Occurrence,
    total: int,
    dtstamp: datetime.datetime,
    duration: datetime.timedelta,
) -> Event:
    fields = visit.display_fields()
    start = occurrence.instant.astimezone(datetime.UTC)

    event = Event()
    event.add("uid", _event_uid(visit.id, occurrence.sequence_index, total))
    event.add("dtstamp", dtstamp)
    event.add("dtstart", start)
    event.add("dtend", start + duration)
    event.add("summary", f"Doctor visit: {fields['doctor_name']}")
    event.add("location", fields["hospital"])
    event.add(
        "description",
        "\n".join(
            [
                f"Doctor: {fields['doctor_name']}",
                f"Hospital: {fields['hospital']}",
                f"Nurse: {fields['nurse']}",
                "",
                f"Note: {fields['note']}",
            ]
        ),
    )
    event.add("status", "CONFIRMED")
    event.add("categories", [EVENT_CATEGORY])
    return event


def build_calendar(
    visits: Iterable[VisitRecord],
    months_ahead: int,
    now: datetime.datetime,
    tz: Optional[datetime.tzinfo] = None,
    duration_minutes: int = VISIT_DURATION_MINUTES,
) -> Calendar:
    """Build the feed as an ``icalendar.Calendar``.

    Only scheduled visits with a valid anchor contribute events. Visits keep
    the order they arrive in; a visit's occurrences stay chronological.
    """
    months = clamp_months_ahead(months_ahead)
    dtstamp = now.astimezone(datetime.UTC).replace(microsecond=0)
    duration = datetime.timedelta(minutes=duration_minutes)

    cal = Calendar()
    cal.add("prodid", PRODID)
    cal.add("version", "2.0")
    cal.add("calscale", "GREGORIAN")
    cal.add("x-wr-calname", CALENDAR_NAME)
    cal.add("x-wr-timezone", "UTC")

    event_count = 0
    for visit in visits:
        if not visit.is_scheduled:
            continue
        if visit.base_time is None:
            logger.debug("Skipping visit %s in feed: no valid base_time", visit.id)
            continue

        occurrences = visit_occurrences(visit, months, tz)
        for occurrence in occurrences:
            cal.add_component(_build_event(visit, occurrence, len(occurrences), dtstamp, duration))
            event_count += 1

    logger.debug("Built calendar feed with %d events (months_ahead=%d)", event_count, months)
    return cal


def build_calendar_feed(
    visits: Iterable[VisitRecord],
    months_ahead: int,
    now: datetime.datetime,
    tz: Optional[datetime.tzinfo] = None,
    duration_minutes: int = VISIT_DURATION_MINUTES,
) -> bytes:
    """Serialize scheduled visits and their repeats into an iCalendar document."""
    return build_calendar(visits, months_ahead, now, tz, duration_minutes).to_ical()
