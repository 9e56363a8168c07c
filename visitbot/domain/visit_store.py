"""JSON-backed visit store with atomic writes and compare-and-set markers."""

from __future__ import annotations

import contextlib
import datetime
import json
import logging
import os
import tempfile
import threading
import uuid
from pathlib import Path
from typing import Any, Optional, Protocol

from pydantic import ValidationError

from visitbot.core.exceptions import VisitNotFoundError, VisitStoreError
from visitbot.core.timezone_utils import now_utc, resolve_timezone, serialize_iso
from visitbot.domain.models import VisitRecord, parse_instant

logger = logging.getLogger(__name__)

# Fields owned by the reminder dispatchers; the edit path may not write them
MARKER_FIELDS = frozenset(
    {
        "last_notified_occurrence",
        "last_notified_at",
        "daily_reminder_sent_for_date",
        "daily_reminder_sent_at",
    }
)
_IMMUTABLE_FIELDS = frozenset({"id", "created_at"})


class VisitStore(Protocol):
    """Operations the dispatchers and feed builder need from storage."""

    def list_scheduled(self) -> list[VisitRecord]: ...

    def get(self, visit_id: str) -> VisitRecord: ...

    def compare_and_set_marker(
        self,
        visit_id: str,
        expected: Optional[datetime.datetime],
        new: datetime.datetime,
        notified_at: datetime.datetime,
    ) -> bool: ...

    def set_daily_marker(
        self, visit_id: str, target_date: str, sent_at: datetime.datetime
    ) -> None: ...


def _sort_key(visit: VisitRecord, tz: datetime.tzinfo) -> tuple[int, float]:
    if visit.base_time is None:
        return (1, 0.0)
    base = visit.base_time
    if base.tzinfo is None:
        # Naive anchors are wall-clock times in the visit timezone
        base = base.replace(tzinfo=tz)
    return (0, base.timestamp())


def _marker_iso(value: Any) -> Optional[str]:
    """Normalize a stored or in-memory marker to whole-second UTC ISO."""
    if isinstance(value, str):
        value = parse_instant(value)
    if not isinstance(value, datetime.datetime):
        return None
    return serialize_iso(value)


def _serialize_value(value: Any) -> Any:
    if isinstance(value, datetime.datetime):
        if value.tzinfo is None:
            # Naive anchors are wall-clock times in the visit timezone; keep them naive
            return value.replace(microsecond=0).isoformat()
        return serialize_iso(value)
    if hasattr(value, "value"):
        return value.value
    return value


class JsonVisitStore:
    """Persistent visit store kept in a single JSON file.

    The on-disk format is a JSON object mapping visit id -> document. Every
    mutation re-reads the file under a lock before writing, and writes go to a
    temporary file that is ``os.replace``-d into place.
    """

    def __init__(
        self,
        path: str | Path,
        reset_marker_on_reschedule: bool = False,
        tz: Optional[datetime.tzinfo] = None,
    ) -> None:
        self._path = Path(path)
        self._tz = tz or resolve_timezone(None)
        self._reset_marker_on_reschedule = reset_marker_on_reschedule
        self._lock = threading.Lock()

        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
        except OSError:
            logger.debug("Could not ensure directory for visit store: %s", self._path.parent)

    @property
    def path(self) -> Path:
        return self._path

    def _read_documents(self) -> dict[str, dict[str, Any]]:
        """Load all documents; called with the lock held."""
        if not self._path.exists():
            return {}
        try:
            with self._path.open("r", encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, json.JSONDecodeError) as exc:
            raise VisitStoreError(f"Failed to read visit store {self._path}: {exc}") from exc
        if not isinstance(data, dict):
            raise VisitStoreError("visit store JSON root must be an object")
        return {str(k): v for k, v in data.items() if isinstance(v, dict)}

    def _persist(self, documents: dict[str, dict[str, Any]]) -> None:
        """Write documents atomically; called with the lock held."""
        tmp_path: Optional[Path] = None
        try:
            with tempfile.NamedTemporaryFile(
                "w", dir=self._path.parent, delete=False, encoding="utf-8", suffix=".tmp"
            ) as tf:
                tmp_path = Path(tf.name)
                json.dump(documents, tf, ensure_ascii=False, indent=2)
                tf.flush()
                os.fsync(tf.fileno())
            tmp_path.replace(self._path)
        except OSError as exc:
            if tmp_path is not None:
                with contextlib.suppress(OSError):
                    tmp_path.unlink()
            raise VisitStoreError(f"Failed to persist visit store {self._path}: {exc}") from exc

    @staticmethod
    def _to_record(visit_id: str, document: dict[str, Any]) -> Optional[VisitRecord]:
        try:
            return VisitRecord.model_validate({**document, "id": visit_id})
        except ValidationError as exc:
            logger.warning("Skipping malformed visit %s: %s", visit_id, exc.errors()[:1])
            return None

    def list_all(self) -> list[VisitRecord]:
        """All well-formed visits ordered by base time (unparsable anchors last)."""
        with self._lock:
            documents = self._read_documents()
        records = [self._to_record(k, v) for k, v in documents.items()]
        return sorted((r for r in records if r is not None), key=lambda r: _sort_key(r, self._tz))

    def list_scheduled(self) -> list[VisitRecord]:
        """Visits with status scheduled, ordered by base time ascending."""
        return [visit for visit in self.list_all() if visit.is_scheduled]

    def get(self, visit_id: str) -> VisitRecord:
        with self._lock:
            documents = self._read_documents()
        document = documents.get(visit_id)
        if document is None:
            raise VisitNotFoundError(visit_id)
        record = self._to_record(visit_id, document)
        if record is None:
            raise VisitStoreError(f"visit {visit_id} is malformed")
        return record

    def create(self, data: dict[str, Any]) -> VisitRecord:
        """Validate and store a new visit; the store assigns the id."""
        visit_id = uuid.uuid4().hex
        payload = {k: v for k, v in data.items() if k not in MARKER_FIELDS | _IMMUTABLE_FIELDS}
        record = VisitRecord.model_validate({**payload, "id": visit_id, "created_at": now_utc()})

        document = {
            k: _serialize_value(v)
            for k, v in record.model_dump(exclude={"id"}).items()
            if v is not None
        }
        with self._lock:
            documents = self._read_documents()
            documents[visit_id] = document
            self._persist(documents)

        logger.info("Created visit %s", visit_id)
        return record

    def update(self, visit_id: str, changes: dict[str, Any]) -> VisitRecord:
        """Apply an edit to a visit.

        Marker fields cannot be edited. When ``reset_marker_on_reschedule`` is
        enabled, an edit that moves ``base_time`` clears
        ``last_notified_occurrence`` so the new schedule can be reminded.
        """
        forbidden = set(changes) & (MARKER_FIELDS | _IMMUTABLE_FIELDS)
        if forbidden:
            raise ValueError(f"fields cannot be edited: {', '.join(sorted(forbidden))}")

        with self._lock:
            documents = self._read_documents()
            if visit_id not in documents:
                raise VisitNotFoundError(visit_id)
            document = dict(documents[visit_id])
            previous_base = parse_instant(document.get("base_time"))

            candidate = {**document, **changes, "id": visit_id}
            record = VisitRecord.model_validate(candidate)

            for key, value in changes.items():
                document[key] = _serialize_value(getattr(record, key, value))

            rescheduled = "base_time" in changes and record.base_time != previous_base
            if rescheduled and self._reset_marker_on_reschedule:
                document.pop("last_notified_occurrence", None)
                document.pop("last_notified_at", None)
                logger.info("Visit %s rescheduled; cleared reminder marker", visit_id)

            documents[visit_id] = document
            self._persist(documents)

        result = self._to_record(visit_id, document)
        if result is None:
            raise VisitStoreError(f"visit {visit_id} is malformed after update")
        return result

    def delete(self, visit_id: str) -> None:
        with self._lock:
            documents = self._read_documents()
            if documents.pop(visit_id, None) is None:
                raise VisitNotFoundError(visit_id)
            self._persist(documents)
        logger.info("Deleted visit %s", visit_id)

    def compare_and_set_marker(
        self,
        visit_id: str,
        expected: Optional[datetime.datetime],
        new: datetime.datetime,
        notified_at: datetime.datetime,
    ) -> bool:
        """Set ``last_notified_occurrence`` only if it still equals ``expected``.

        Comparison is at whole-second granularity. Returns False without
        writing when another dispatcher changed the marker since it was read.
        """
        with self._lock:
            documents = self._read_documents()
            document = documents.get(visit_id)
            if document is None:
                raise VisitNotFoundError(visit_id)

            current = _marker_iso(document.get("last_notified_occurrence"))
            if current != _marker_iso(expected):
                logger.warning(
                    "Marker for visit %s changed concurrently (expected %s, found %s)",
                    visit_id,
                    _marker_iso(expected),
                    current,
                )
                return False

            document["last_notified_occurrence"] = serialize_iso(new)
            document["last_notified_at"] = serialize_iso(notified_at)
            self._persist(documents)
            return True

    def set_daily_marker(self, visit_id: str, target_date: str, sent_at: datetime.datetime) -> None:
        """Record that the day-ahead digest covered ``visit_id`` for ``target_date``."""
        with self._lock:
            documents = self._read_documents()
            document = documents.get(visit_id)
            if document is None:
                raise VisitNotFoundError(visit_id)
            document["daily_reminder_sent_for_date"] = target_date
            document["daily_reminder_sent_at"] = serialize_iso(sent_at)
            self._persist(documents)
