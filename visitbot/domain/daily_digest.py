"""Day-ahead digest of scheduled visits.

Sends the visits falling on one local calendar date (tomorrow by default),
either as one summary message (split into batches) or one message per
visit. Each visit carries a ``daily_reminder_sent_for_date`` marker so a
date is digested once per visit however often the trigger fires.
"""

from __future__ import annotations

import asyncio
import datetime
import logging
from dataclasses import dataclass
from typing import Any, Optional

from visitbot.core.exceptions import VisitStoreError
from visitbot.core.telegram_sender import NotificationSender, SendResult
from visitbot.core.timezone_utils import resolve_timezone, serialize_iso
from visitbot.domain.models import DailyDigestResult, Recurrence, VisitRecord
from visitbot.domain.occurrence import localize, monthly_occurrence_in
from visitbot.domain.visit_store import VisitStore

logger = logging.getLogger(__name__)

MODE_SUMMARY = "summary"
MODE_PER_SCHEDULE = "per_schedule"
SUMMARY_BATCH_SIZE = 25
PREVIEW_LIMIT = 20
MAX_DAYS_AHEAD = 30


@dataclass
class _Match:
    visit: VisitRecord
    occurrence: datetime.datetime


def clamp_days_ahead(value: Any, default: int = 1, maximum: int = MAX_DAYS_AHEAD) -> int:
    """Coerce a requested day count to an int in [0, maximum]."""
    if value is None or value == "" or isinstance(value, bool):
        return default
    try:
        days = int(float(value))
    except (TypeError, ValueError, OverflowError):
        return default
    return max(0, min(maximum, days))


def normalize_mode(value: Any) -> str:
    if isinstance(value, str) and value.replace("-", "_").lower() in ("per_schedule", "perschedule"):
        return MODE_PER_SCHEDULE
    return MODE_SUMMARY


def occurrence_on_date(
    visit: VisitRecord, target: datetime.date, tz: datetime.tzinfo
) -> Optional[datetime.datetime]:
    """The visit's occurrence on local date ``target``, if it has one."""
    if visit.base_time is None:
        return None
    anchor = localize(visit.base_time, tz)
    if visit.recurrence == Recurrence.MONTHLY:
        if (target.year, target.month) < (anchor.year, anchor.month):
            return None
        occurrence = monthly_occurrence_in(anchor, target.year, target.month, tz)
    else:
        occurrence = anchor
    if occurrence.astimezone(tz).date() != target:
        return None
    return occurrence


class DailyDigestDispatcher:
    """Send the day-ahead visit digest."""

    def __init__(
        self,
        store: VisitStore,
        sender: NotificationSender,
        default_timezone: str,
        sending_enabled: bool = True,
        send_timeout_seconds: float = 10.0,
    ) -> None:
        self._store = store
        self._sender = sender
        self._default_timezone = default_timezone
        self._sending_enabled = sending_enabled
        self._send_timeout = send_timeout_seconds

    async def run(
        self,
        now: datetime.datetime,
        days_ahead: Any = None,
        timezone: Optional[str] = None,
        target_date: Optional[str] = None,
        mode: Any = None,
        dry_run: bool = False,
    ) -> DailyDigestResult:
        """Run one digest pass.

        Raises:
            ValueError: if ``target_date`` is not a YYYY-MM-DD date
            VisitStoreError: when the scheduled visits cannot be listed
        """
        tz_name = timezone or self._default_timezone
        tz = resolve_timezone(tz_name, self._default_timezone)
        tz_name = str(tz)

        if target_date:
            if not isinstance(target_date, str):
                raise ValueError(f"target_date must be a YYYY-MM-DD string, got {target_date!r}")
            target = datetime.date.fromisoformat(target_date)
        else:
            days = clamp_days_ahead(days_ahead)
            target = (now + datetime.timedelta(days=days)).astimezone(tz).date()

        result = DailyDigestResult(
            target_date=target.isoformat(), timezone=tz_name, mode=normalize_mode(mode)
        )

        visits = self._store.list_scheduled()
        matches: list[_Match] = []
        for visit in visits:
            occurrence = occurrence_on_date(visit, target, tz)
            if occurrence is None:
                continue
            if visit.daily_reminder_sent_for_date == result.target_date:
                continue
            matches.append(_Match(visit=visit, occurrence=occurrence))

        matches.sort(key=lambda m: m.occurrence)
        result.matched = len(matches)
        result.skipped = len(visits) - len(matches)

        if not self._sending_enabled:
            result.note = "daily digest sending is disabled"
            return result

        if dry_run:
            result.preview = [
                {
                    "id": m.visit.id,
                    "doctor_name": m.visit.display_fields()["doctor_name"],
                    "hospital": m.visit.display_fields()["hospital"],
                    "nurse": m.visit.display_fields()["nurse"],
                    "occurrence": serialize_iso(m.occurrence),
                }
                for m in matches[:PREVIEW_LIMIT]
            ]
            return result

        if not matches:
            return result

        if result.mode == MODE_PER_SCHEDULE:
            await self._send_per_schedule(matches, result, tz, now)
        else:
            await self._send_summary(matches, result, tz, now)

        logger.info(
            "Daily digest for %s (%s): matched=%d sent=%d mode=%s",
            result.target_date,
            tz_name,
            result.matched,
            result.sent,
            result.mode,
        )
        return result

    async def _send_per_schedule(
        self,
        matches: list[_Match],
        result: DailyDigestResult,
        tz: datetime.tzinfo,
        now: datetime.datetime,
    ) -> None:
        for match in matches:
            fields = match.visit.display_fields()
            text = "\n".join(
                [
                    "📅 Doctor visit schedule",
                    f"Date: {result.target_date}",
                    "",
                    f"Doctor: {fields['doctor_name']}",
                    f"Hospital: {fields['hospital']}",
                    f"Nurse: {fields['nurse']}",
                    f"Time: {match.occurrence.astimezone(tz):%H:%M}",
                    f"Note: {fields['note']}",
                ]
            )
            send_result = await self._send(text)
            if not send_result.ok:
                logger.error(
                    "Daily digest send failed for visit %s on %s: %s",
                    match.visit.id,
                    result.target_date,
                    send_result.error,
                )
                continue
            result.sent += 1
            self._mark(match.visit.id, result.target_date, now)

    async def _send_summary(
        self,
        matches: list[_Match],
        result: DailyDigestResult,
        tz: datetime.tzinfo,
        now: datetime.datetime,
    ) -> None:
        lines = []
        for index, match in enumerate(matches, start=1):
            fields = match.visit.display_fields()
            lines.append(
                f"{index}. {match.occurrence.astimezone(tz):%H:%M} • {fields['doctor_name']}"
                f" • {fields['hospital']} • {fields['nurse']}"
            )

        batches = [lines[i : i + SUMMARY_BATCH_SIZE] for i in range(0, len(lines), SUMMARY_BATCH_SIZE)]
        all_sent = True
        for batch in batches:
            text = "\n".join(
                [
                    "📅 Doctor visit schedule",
                    f"Date: {result.target_date} ({result.timezone})",
                    f"Total: {len(matches)}",
                    "",
                    *batch,
                ]
            )
            send_result = await self._send(text)
            if not send_result.ok:
                logger.error(
                    "Daily digest summary batch failed for %s: %s",
                    result.target_date,
                    send_result.error,
                )
                all_sent = False
                continue
            result.sent += 1

        # A partially delivered summary is resent in full on the next run
        if all_sent:
            for match in matches:
                self._mark(match.visit.id, result.target_date, now)

    def _mark(self, visit_id: str, target_date: str, now: datetime.datetime) -> None:
        try:
            self._store.set_daily_marker(visit_id, target_date, now)
        except VisitStoreError:
            logger.exception("Failed to record daily digest marker for visit %s", visit_id)

    async def _send(self, text: str) -> SendResult:
        try:
            return await asyncio.wait_for(self._sender.send(text), timeout=self._send_timeout)
        except asyncio.TimeoutError:
            return SendResult(ok=False, error="timeout")
        except Exception as exc:
            logger.warning("Daily digest sender raised: %s", exc)
            return SendResult(ok=False, error=str(exc))
