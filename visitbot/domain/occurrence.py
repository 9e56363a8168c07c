"""Occurrence calculator for recurring visits.

Pure functions mapping a visit anchor and its recurrence rule to concrete
occurrence instants. Monthly occurrences keep the anchor's day-of-month, hour
and minute in the visit timezone, zero the seconds, and clamp the day down to
the last day of shorter months (31 Jan -> 28/29 Feb -> 31 Mar) using
``dateutil.relativedelta``. Every occurrence is computed from the anchor, never
from a previous (possibly clamped) occurrence, so clamping does not drift.
"""

from __future__ import annotations

import datetime
from typing import Optional

from dateutil.relativedelta import relativedelta

from visitbot.domain.models import Occurrence, Recurrence, VisitRecord


def localize(dt: datetime.datetime, tz: Optional[datetime.tzinfo]) -> datetime.datetime:
    """Express ``dt`` in ``tz``; naive values are wall-clock time in ``tz`` (UTC if None)."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=tz or datetime.UTC)
    if tz is None:
        return dt
    return dt.astimezone(tz)


def _shift_months(anchor: datetime.datetime, offset: int) -> datetime.datetime:
    return anchor + relativedelta(months=offset, second=0, microsecond=0)


def _month_index(dt: datetime.datetime) -> int:
    return dt.year * 12 + (dt.month - 1)


def monthly_occurrence_in(
    base: datetime.datetime,
    year: int,
    month: int,
    tz: Optional[datetime.tzinfo] = None,
) -> datetime.datetime:
    """Return the monthly occurrence of ``base`` that falls in ``year``/``month``.

    Examples:
        >>> base = datetime.datetime(2025, 1, 31, 9, 0, tzinfo=datetime.UTC)
        >>> monthly_occurrence_in(base, 2025, 2)
        datetime.datetime(2025, 2, 28, 9, 0, tzinfo=datetime.timezone.utc)
    """
    anchor = localize(base, tz)
    return anchor + relativedelta(year=year, month=month, second=0, microsecond=0)


def occurrence_at_or_after(
    base: datetime.datetime,
    recurrence: Recurrence,
    reference: datetime.datetime,
    tz: Optional[datetime.tzinfo] = None,
) -> datetime.datetime:
    """Return the occurrence relevant at ``reference``.

    ONCE returns the anchor itself even when it lies before ``reference``;
    callers decide whether a past visit is still relevant. MONTHLY returns the
    smallest occurrence >= ``reference``: the candidate in ``reference``'s
    month, or the next month's when that candidate has already passed. A
    monthly series starts at its anchor, so no occurrence precedes the
    anchor's month.
    """
    anchor = localize(base, tz)
    if recurrence == Recurrence.ONCE:
        return anchor
    if recurrence == Recurrence.MONTHLY:
        ref_local = localize(reference, tz)
        offset = max(0, _month_index(ref_local) - _month_index(anchor))
        candidate = _shift_months(anchor, offset)
        if candidate < ref_local:
            candidate = _shift_months(anchor, offset + 1)
        return candidate
    raise ValueError(f"Unsupported recurrence: {recurrence!r}")


def occurrence_sequence(
    base: datetime.datetime,
    recurrence: Recurrence,
    from_month_offset: int,
    to_month_offset: int,
    tz: Optional[datetime.tzinfo] = None,
) -> list[datetime.datetime]:
    """Materialize occurrences for an inclusive range of month offsets.

    Offset 0 is the anchor's own month. ONCE always yields ``[base]``.
    """
    anchor = localize(base, tz)
    if recurrence == Recurrence.ONCE:
        return [anchor]
    if recurrence == Recurrence.MONTHLY:
        return [
            _shift_months(anchor, offset)
            for offset in range(from_month_offset, to_month_offset + 1)
        ]
    raise ValueError(f"Unsupported recurrence: {recurrence!r}")


def visit_occurrences(
    visit: VisitRecord,
    months_ahead: int,
    tz: Optional[datetime.tzinfo] = None,
) -> list[Occurrence]:
    """Occurrences of ``visit`` for month offsets 0..months_ahead (empty without an anchor)."""
    if visit.base_time is None:
        return []
    instants = occurrence_sequence(visit.base_time, visit.recurrence, 0, months_ahead, tz)
    return [
        Occurrence(visit_id=visit.id, instant=instant, sequence_index=index)
        for index, instant in enumerate(instants)
    ]


def next_occurrence(
    visit: VisitRecord,
    now: datetime.datetime,
    tz: Optional[datetime.tzinfo] = None,
) -> Optional[datetime.datetime]:
    """Occurrence of ``visit`` relevant at ``now``, or None without an anchor."""
    if visit.base_time is None:
        return None
    return occurrence_at_or_after(visit.base_time, visit.recurrence, now, tz)
