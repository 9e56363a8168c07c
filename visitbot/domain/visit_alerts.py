"""Upcoming-visit alerts for the next few days."""

from __future__ import annotations

import datetime
import logging
from collections.abc import Iterable

from visitbot.core.timezone_utils import serialize_iso
from visitbot.domain.models import VisitAlert, VisitRecord
from visitbot.domain.occurrence import next_occurrence

logger = logging.getLogger(__name__)


def visit_alerts_for_next_days(
    visits: Iterable[VisitRecord],
    days_ahead: int,
    now: datetime.datetime,
    tz: datetime.tzinfo,
) -> list[VisitAlert]:
    """Alerts for occurrences whose local date is 0..days_ahead days from today.

    Day offsets are local calendar-day differences in ``tz``, so an occurrence
    at 00:30 tomorrow is offset 1 even when it is less than a day away.
    """
    today = now.astimezone(tz).date()
    alerts: list[VisitAlert] = []

    for visit in visits:
        if not visit.is_scheduled:
            continue
        occurrence = next_occurrence(visit, now, tz)
        if occurrence is None:
            continue

        day_offset = (occurrence.astimezone(tz).date() - today).days
        if day_offset < 0 or day_offset > days_ahead:
            continue

        fields = visit.display_fields()
        alerts.append(
            VisitAlert(
                id=f"{visit.id}:{serialize_iso(occurrence)}",
                source_visit_id=visit.id,
                doctor_name=fields["doctor_name"],
                hospital=fields["hospital"],
                nurse=visit.nurse or None,
                occurrence_instant=occurrence,
                day_offset=day_offset,
            )
        )

    alerts.sort(key=lambda a: a.occurrence_instant)
    return alerts
