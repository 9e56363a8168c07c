"""Visit scheduling domain: occurrences, feed, reminders."""

from .feed_builder import build_calendar_feed, clamp_months_ahead
from .models import Occurrence, Recurrence, VisitAlert, VisitRecord, VisitStatus
from .occurrence import occurrence_at_or_after, occurrence_sequence
from .reminder_dispatcher import ReminderDispatcher, clamp_minutes_ahead
from .visit_store import JsonVisitStore

__all__ = [
    "JsonVisitStore",
    "Occurrence",
    "Recurrence",
    "ReminderDispatcher",
    "VisitAlert",
    "VisitRecord",
    "VisitStatus",
    "build_calendar_feed",
    "clamp_minutes_ahead",
    "clamp_months_ahead",
    "occurrence_at_or_after",
    "occurrence_sequence",
]
