"""Reminder dispatcher: at most one notification per visit occurrence.

Each run looks for the next occurrence of every scheduled visit, and sends a
reminder when it falls inside the lookahead window and the visit's durable
``last_notified_occurrence`` marker does not already name that instant. The
marker is written with compare-and-set after a successful send, so repeated
or overlapping runs cannot count (or re-mark) the same occurrence twice.
"""

from __future__ import annotations

import asyncio
import datetime
import logging
from typing import Any, Optional

from visitbot.core.exceptions import VisitStoreError
from visitbot.core.telegram_sender import NotificationSender, SendResult
from visitbot.core.timezone_utils import serialize_iso
from visitbot.domain.models import DispatchResult, VisitRecord
from visitbot.domain.occurrence import next_occurrence
from visitbot.domain.visit_store import VisitStore

logger = logging.getLogger(__name__)

DEFAULT_MINUTES_AHEAD = 60
MIN_MINUTES_AHEAD = 1
MAX_MINUTES_AHEAD = 24 * 60
DEFAULT_SEND_TIMEOUT_SECONDS = 10.0


def clamp_minutes_ahead(value: Any, default: int = DEFAULT_MINUTES_AHEAD) -> int:
    """Coerce a requested lookahead window to minutes in [1, 1440]."""
    if value is None or value == "" or isinstance(value, bool):
        return default
    try:
        minutes = int(float(value))
    except (TypeError, ValueError, OverflowError):
        return default
    return max(MIN_MINUTES_AHEAD, min(MAX_MINUTES_AHEAD, minutes))


def _truncate_to_second(dt: datetime.datetime) -> datetime.datetime:
    return dt.replace(microsecond=0)


def format_reminder_message(visit: VisitRecord, occurrence: datetime.datetime) -> str:
    fields = visit.display_fields()
    return "\n".join(
        [
            "⏰ Doctor visit reminder",
            "",
            f"Doctor: {fields['doctor_name']}",
            f"Hospital: {fields['hospital']}",
            f"Nurse: {fields['nurse']}",
            f"Time: {serialize_iso(occurrence)}",
            f"Note: {fields['note']}",
        ]
    )


class ReminderDispatcher:
    """Send due reminders for scheduled visits.

    Args:
        store: Visit store providing scheduled visits and marker writes
        sender: Notification sender
        tz: Visit timezone used for wall-clock recurrence fields
        sending_enabled: Gate; when False nothing is sent or marked
        send_timeout_seconds: Upper bound for a single send
    """

    def __init__(
        self,
        store: VisitStore,
        sender: NotificationSender,
        tz: Optional[datetime.tzinfo] = None,
        sending_enabled: bool = True,
        send_timeout_seconds: float = DEFAULT_SEND_TIMEOUT_SECONDS,
    ) -> None:
        self._store = store
        self._sender = sender
        self._tz = tz
        self._sending_enabled = sending_enabled
        self._send_timeout = send_timeout_seconds

    async def run(self, now: datetime.datetime, minutes_ahead: Any = None) -> DispatchResult:
        """Run one dispatch pass.

        Raises:
            VisitStoreError: when the scheduled visits cannot be listed at all
        """
        window = clamp_minutes_ahead(minutes_ahead)
        until = now + datetime.timedelta(minutes=window)
        result = DispatchResult(minutes_ahead=window)

        visits = self._store.list_scheduled()

        for visit in visits:
            result.checked += 1
            if await self._process_visit(visit, now, until):
                result.sent += 1

        logger.info(
            "Reminder dispatch finished: checked=%d sent=%d window=%dmin",
            result.checked,
            result.sent,
            window,
        )
        return result

    async def _process_visit(
        self, visit: VisitRecord, now: datetime.datetime, until: datetime.datetime
    ) -> bool:
        """Handle one visit; True when a reminder was sent and marked."""
        occurrence = next_occurrence(visit, now, self._tz)
        if occurrence is None:
            logger.info("Skipping visit %s: no valid base_time", visit.id)
            return False

        occurrence = _truncate_to_second(occurrence)
        occurrence_iso = serialize_iso(occurrence)

        if occurrence < _truncate_to_second(now) or occurrence > until:
            return False

        marker = visit.last_notified_occurrence
        if marker is not None:
            if marker.tzinfo is None:
                marker = marker.replace(tzinfo=datetime.UTC)
            if _truncate_to_second(marker) == occurrence:
                logger.debug("Visit %s already reminded for %s", visit.id, occurrence_iso)
                return False

        if not self._sending_enabled:
            logger.debug(
                "Reminder for visit %s at %s is due but sending is disabled",
                visit.id,
                occurrence_iso,
            )
            return False

        send_result = await self._send(format_reminder_message(visit, occurrence), visit.id, occurrence_iso)
        if not send_result.ok:
            logger.error(
                "Reminder send failed for visit %s at %s: %s",
                visit.id,
                occurrence_iso,
                send_result.error,
            )
            return False

        try:
            marked = self._store.compare_and_set_marker(
                visit.id,
                expected=visit.last_notified_occurrence,
                new=occurrence,
                notified_at=now,
            )
        except VisitStoreError:
            logger.exception(
                "Reminder sent but marker write failed for visit %s at %s",
                visit.id,
                occurrence_iso,
            )
            return False

        if not marked:
            logger.warning(
                "Visit %s at %s was marked by a concurrent dispatch; not counting",
                visit.id,
                occurrence_iso,
            )
            return False

        logger.info("Reminder sent for visit %s at %s", visit.id, occurrence_iso)
        return True

    async def _send(self, text: str, visit_id: str, occurrence_iso: Optional[str]) -> SendResult:
        try:
            return await asyncio.wait_for(self._sender.send(text), timeout=self._send_timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "Reminder send timed out after %.1fs for visit %s at %s",
                self._send_timeout,
                visit_id,
                occurrence_iso,
            )
            return SendResult(ok=False, error="timeout")
        except Exception as exc:
            logger.warning("Reminder sender raised for visit %s: %s", visit_id, exc)
            return SendResult(ok=False, error=str(exc))
