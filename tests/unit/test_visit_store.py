"""Tests for the JSON visit store."""

import json
from datetime import UTC, datetime
from pathlib import Path
from zoneinfo import ZoneInfo

import pytest

from visitbot.core.exceptions import VisitNotFoundError, VisitStoreError
from visitbot.domain.models import Recurrence, VisitStatus
from visitbot.domain.visit_store import JsonVisitStore

pytestmark = pytest.mark.unit

OCCURRENCE = datetime(2025, 1, 20, 2, 0, tzinfo=UTC)
NOTIFIED_AT = datetime(2025, 1, 20, 1, 30, 12, 500000, tzinfo=UTC)


def _create(store: JsonVisitStore, **overrides) -> str:
    data = {
        "doctor_name": "Dr. Sari",
        "hospital": "RS Medika",
        "base_time": "2025-01-20T09:00:00",
        "recurrence": "monthly",
        **overrides,
    }
    return store.create(data).id


class TestCrud:
    def test_create_when_valid_then_persisted_and_readable(self, store: JsonVisitStore, store_path: Path) -> None:
        visit_id = _create(store)

        on_disk = json.loads(store_path.read_text(encoding="utf-8"))
        assert on_disk[visit_id]["recurrence"] == "monthly"
        assert on_disk[visit_id]["status"] == "scheduled"
        visit = store.get(visit_id)
        assert visit.recurrence == Recurrence.MONTHLY
        assert visit.created_at is not None

    def test_create_when_marker_fields_supplied_then_ignored(self, store: JsonVisitStore) -> None:
        visit_id = _create(store, last_notified_occurrence="2025-01-20T02:00:00Z")

        assert store.get(visit_id).last_notified_occurrence is None

    def test_create_when_naive_base_time_then_stays_wall_clock(self, store: JsonVisitStore, store_path: Path) -> None:
        visit_id = _create(store)

        on_disk = json.loads(store_path.read_text(encoding="utf-8"))
        assert on_disk[visit_id]["base_time"] == "2025-01-20T09:00:00"

    def test_get_when_missing_then_raises_not_found(self, store: JsonVisitStore) -> None:
        with pytest.raises(VisitNotFoundError):
            store.get("nope")

    def test_list_scheduled_when_mixed_status_then_only_scheduled_sorted_by_base_time(
        self, store: JsonVisitStore
    ) -> None:
        late = _create(store, base_time="2025-03-01T09:00:00")
        early = _create(store, base_time="2025-02-01T09:00:00")
        _create(store, status="cancelled")
        broken = _create(store, base_time="not a date")

        ids = [v.id for v in store.list_scheduled()]

        assert ids == [early, late, broken]

    def test_list_all_when_naive_and_aware_anchors_mixed_then_naive_read_in_visit_timezone(
        self, store_path: Path
    ) -> None:
        store = JsonVisitStore(store_path, tz=ZoneInfo("Asia/Jakarta"))
        aware = _create(store, base_time="2025-02-01T05:00:00Z")
        naive = _create(store, base_time="2025-02-01T09:00:00")

        assert [v.id for v in store.list_all()] == [naive, aware]

    def test_list_all_when_document_malformed_then_skipped(self, store_path: Path, store: JsonVisitStore) -> None:
        store_path.write_text(
            json.dumps(
                {
                    "good": {"base_time": "2025-01-20T09:00:00Z"},
                    "bad": {"base_time": "2025-01-20T09:00:00Z", "recurrence": "weekly"},
                }
            ),
            encoding="utf-8",
        )

        assert [v.id for v in store.list_all()] == ["good"]

    def test_list_all_when_file_corrupt_then_raises_store_error(self, store_path: Path, store: JsonVisitStore) -> None:
        store_path.write_text("{not json", encoding="utf-8")

        with pytest.raises(VisitStoreError):
            store.list_scheduled()

    def test_list_all_when_file_missing_then_empty(self, store: JsonVisitStore) -> None:
        assert store.list_all() == []

    def test_update_when_status_alias_then_normalized(self, store: JsonVisitStore) -> None:
        visit_id = _create(store)

        updated = store.update(visit_id, {"status": "Selesai"})

        assert updated.status == VisitStatus.DONE
        assert store.list_scheduled() == []

    def test_update_when_marker_field_then_rejected(self, store: JsonVisitStore) -> None:
        visit_id = _create(store)

        with pytest.raises(ValueError):
            store.update(visit_id, {"last_notified_occurrence": "2025-01-20T02:00:00Z"})

    def test_delete_when_present_then_removed(self, store: JsonVisitStore) -> None:
        visit_id = _create(store)

        store.delete(visit_id)

        with pytest.raises(VisitNotFoundError):
            store.get(visit_id)

    def test_persist_when_written_then_no_temporary_files_left(self, store: JsonVisitStore, tmp_path: Path) -> None:
        _create(store)
        _create(store)

        assert [p.name for p in tmp_path.iterdir()] == ["visits.json"]


class TestMarkers:
    def test_compare_and_set_marker_when_expected_matches_then_writes(self, store: JsonVisitStore) -> None:
        visit_id = _create(store)

        assert store.compare_and_set_marker(visit_id, None, OCCURRENCE, NOTIFIED_AT) is True

        visit = store.get(visit_id)
        assert visit.last_notified_occurrence == OCCURRENCE
        assert visit.last_notified_at == NOTIFIED_AT.replace(microsecond=0)

    def test_compare_and_set_marker_when_expected_stale_then_refuses(self, store: JsonVisitStore) -> None:
        visit_id = _create(store)
        store.compare_and_set_marker(visit_id, None, OCCURRENCE, NOTIFIED_AT)

        assert store.compare_and_set_marker(visit_id, None, OCCURRENCE, NOTIFIED_AT) is False

    def test_compare_and_set_marker_when_expected_differs_only_in_microseconds_then_matches(
        self, store: JsonVisitStore
    ) -> None:
        visit_id = _create(store)
        store.compare_and_set_marker(visit_id, None, OCCURRENCE, NOTIFIED_AT)

        later = OCCURRENCE.replace(month=2)
        assert store.compare_and_set_marker(
            visit_id, OCCURRENCE.replace(microsecond=999), later, NOTIFIED_AT
        ) is True

    def test_update_when_base_time_changes_and_reset_disabled_then_marker_kept(self, store: JsonVisitStore) -> None:
        visit_id = _create(store)
        store.compare_and_set_marker(visit_id, None, OCCURRENCE, NOTIFIED_AT)

        store.update(visit_id, {"base_time": "2025-01-21T09:00:00"})

        assert store.get(visit_id).last_notified_occurrence == OCCURRENCE

    def test_update_when_base_time_changes_and_reset_enabled_then_marker_cleared(self, store_path: Path) -> None:
        store = JsonVisitStore(store_path, reset_marker_on_reschedule=True)
        visit_id = _create(store)
        store.compare_and_set_marker(visit_id, None, OCCURRENCE, NOTIFIED_AT)

        store.update(visit_id, {"base_time": "2025-01-21T09:00:00"})

        visit = store.get(visit_id)
        assert visit.last_notified_occurrence is None
        assert visit.last_notified_at is None

    def test_update_when_other_field_changes_and_reset_enabled_then_marker_kept(self, store_path: Path) -> None:
        store = JsonVisitStore(store_path, reset_marker_on_reschedule=True)
        visit_id = _create(store)
        store.compare_and_set_marker(visit_id, None, OCCURRENCE, NOTIFIED_AT)

        store.update(visit_id, {"note": "bring card"})

        assert store.get(visit_id).last_notified_occurrence == OCCURRENCE

    def test_set_daily_marker_when_called_then_date_recorded(self, store: JsonVisitStore) -> None:
        visit_id = _create(store)

        store.set_daily_marker(visit_id, "2025-01-21", NOTIFIED_AT)

        assert store.get(visit_id).daily_reminder_sent_for_date == "2025-01-21"

    def test_set_daily_marker_when_missing_visit_then_raises(self, store: JsonVisitStore) -> None:
        with pytest.raises(VisitNotFoundError):
            store.set_daily_marker("nope", "2025-01-21", NOTIFIED_AT)
