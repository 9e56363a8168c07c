"""Data models for visit scheduling."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from dateutil import parser as date_parser
from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

from visitbot.core.timezone_utils import serialize_iso

logger = logging.getLogger(__name__)


class Recurrence(str, Enum):
    """How often a visit repeats."""

    ONCE = "once"
    MONTHLY = "monthly"


class VisitStatus(str, Enum):
    """Lifecycle status of a visit; only SCHEDULED visits produce occurrences."""

    SCHEDULED = "scheduled"
    DONE = "done"
    CANCELLED = "cancelled"
    UNKNOWN = "unknown"


# Indonesian labels used by the data-entry forms
_STATUS_ALIASES: dict[str, VisitStatus] = {
    "terjadwal": VisitStatus.SCHEDULED,
    "selesai": VisitStatus.DONE,
    "batal": VisitStatus.CANCELLED,
    "dibatalkan": VisitStatus.CANCELLED,
    "canceled": VisitStatus.CANCELLED,
}


def parse_instant(value: Any) -> Optional[datetime]:
    """Coerce a stored instant (datetime or ISO-8601 string) to a datetime.

    Returns None for empty or unparsable input; the caller decides whether that
    is a data defect worth logging.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            return date_parser.isoparse(value.strip())
        except (ValueError, OverflowError):
            return None
    return None


class VisitRecord(BaseModel):
    """A stored doctor visit, the unit of scheduling."""

    model_config = ConfigDict(use_enum_values=False, extra="ignore")

    id: str = Field(..., description="Store-assigned identifier")
    doctor_name: str = ""
    hospital: str = ""
    nurse: Optional[str] = None
    note: str = ""
    base_time: Optional[datetime] = Field(
        default=None, description="Recurrence anchor; None when the stored value is unparsable"
    )
    status: VisitStatus = VisitStatus.SCHEDULED
    recurrence: Recurrence = Recurrence.ONCE

    # Written only by the reminder dispatchers
    last_notified_occurrence: Optional[datetime] = None
    last_notified_at: Optional[datetime] = None
    daily_reminder_sent_for_date: Optional[str] = None
    daily_reminder_sent_at: Optional[datetime] = None

    created_at: Optional[datetime] = None

    @field_validator("base_time", mode="before")
    @classmethod
    def _parse_base_time(cls, value: Any) -> Optional[datetime]:
        parsed = parse_instant(value)
        if parsed is None and value not in (None, ""):
            logger.warning("Unparsable visit base_time %r; visit will be skipped", value)
        return parsed

    @field_validator(
        "last_notified_occurrence", "last_notified_at", "daily_reminder_sent_at", "created_at",
        mode="before",
    )
    @classmethod
    def _parse_optional_instant(cls, value: Any) -> Optional[datetime]:
        return parse_instant(value)

    @field_validator("status", mode="before")
    @classmethod
    def _normalize_status(cls, value: Any) -> VisitStatus:
        if isinstance(value, VisitStatus):
            return value
        if value is None or value == "":
            return VisitStatus.SCHEDULED
        text = str(value).strip().lower()
        if text in _STATUS_ALIASES:
            return _STATUS_ALIASES[text]
        try:
            return VisitStatus(text)
        except ValueError:
            return VisitStatus.UNKNOWN

    @field_validator("recurrence", mode="before")
    @classmethod
    def _normalize_recurrence(cls, value: Any) -> Recurrence:
        if isinstance(value, Recurrence):
            return value
        if value is None or value == "":
            return Recurrence.ONCE
        return Recurrence(str(value).strip().lower())

    @property
    def is_scheduled(self) -> bool:
        return self.status == VisitStatus.SCHEDULED

    def display_fields(self) -> dict[str, str]:
        """Display strings with ``-`` standing in for missing values."""
        return {
            "doctor_name": self.doctor_name or "-",
            "hospital": self.hospital or "-",
            "nurse": self.nurse or "-",
            "note": self.note or "-",
        }


@dataclass(frozen=True)
class Occurrence:
    """One concrete instant of a visit; derived, never stored."""

    visit_id: str
    instant: datetime
    sequence_index: int


class VisitAlert(BaseModel):
    """An upcoming occurrence within a caller-chosen number of days."""

    id: str
    source_visit_id: str
    doctor_name: str
    hospital: str
    nurse: Optional[str] = None
    occurrence_instant: datetime
    day_offset: int = Field(..., description="0 = today, 1 = tomorrow, ...")

    @field_serializer("occurrence_instant")
    def _serialize_instant(self, value: datetime) -> Optional[str]:
        return serialize_iso(value)


@dataclass
class DispatchResult:
    """Aggregate outcome of one reminder dispatcher run."""

    minutes_ahead: int
    checked: int = 0
    sent: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": True,
            "minutes_ahead": self.minutes_ahead,
            "checked": self.checked,
            "sent": self.sent,
        }


@dataclass
class DailyDigestResult:
    """Aggregate outcome of one day-ahead digest run."""

    target_date: str
    timezone: str
    mode: str
    matched: int = 0
    sent: int = 0
    skipped: int = 0
    note: Optional[str] = None
    preview: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "ok": True,
            "sent": self.sent,
            "matched": self.matched,
            "skipped": self.skipped,
            "target_date": self.target_date,
            "timezone": self.timezone,
            "mode": self.mode,
        }
        if self.note:
            data["note"] = self.note
        if self.preview:
            data["preview"] = self.preview
        return data
