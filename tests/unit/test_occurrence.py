"""Tests for the monthly occurrence calculator."""

from datetime import UTC, datetime, timedelta
from zoneinfo import ZoneInfo

import pytest

from visitbot.domain.models import Recurrence, VisitRecord
from visitbot.domain.occurrence import (
    monthly_occurrence_in,
    next_occurrence,
    occurrence_at_or_after,
    occurrence_sequence,
    visit_occurrences,
)

pytestmark = pytest.mark.unit

JAKARTA = ZoneInfo("Asia/Jakarta")


class TestMonthlyClamping:
    @pytest.mark.parametrize(
        ("anchor_day", "year", "month", "expected_day"),
        [
            (31, 2025, 2, 28),
            (31, 2024, 2, 29),
            (31, 2025, 4, 30),
            (30, 2025, 2, 28),
            (29, 2025, 2, 28),
            (29, 2024, 2, 29),
            (30, 2025, 3, 30),
            (31, 2025, 3, 31),
        ],
    )
    def test_monthly_occurrence_in_when_anchor_day_exceeds_month_then_clamps_to_last_day(
        self, anchor_day: int, year: int, month: int, expected_day: int
    ) -> None:
        base = datetime(2025, 1, anchor_day, 9, 0, tzinfo=UTC)

        result = monthly_occurrence_in(base, year, month)

        assert (result.year, result.month, result.day) == (year, month, expected_day)
        assert (result.hour, result.minute, result.second) == (9, 0, 0)

    def test_occurrence_sequence_when_clamped_month_then_next_month_restores_anchor_day(self) -> None:
        base = datetime(2025, 1, 31, 9, 0, tzinfo=UTC)

        days = [o.day for o in occurrence_sequence(base, Recurrence.MONTHLY, 0, 3)]

        assert days == [31, 28, 31, 30]

    def test_occurrence_sequence_when_anchor_has_seconds_then_seconds_are_zeroed(self) -> None:
        base = datetime(2025, 1, 10, 9, 30, 45, 123000, tzinfo=UTC)

        occurrences = occurrence_sequence(base, Recurrence.MONTHLY, 0, 2)

        assert all(o.second == 0 and o.microsecond == 0 for o in occurrences)
        assert [o.minute for o in occurrences] == [30, 30, 30]


class TestOccurrenceAtOrAfter:
    def test_occurrence_at_or_after_when_once_then_returns_anchor_even_if_past(self) -> None:
        base = datetime(2024, 6, 1, 9, 0, tzinfo=UTC)
        reference = datetime(2025, 1, 1, tzinfo=UTC)

        assert occurrence_at_or_after(base, Recurrence.ONCE, reference) == base

    def test_occurrence_at_or_after_when_candidate_in_reference_month_is_later_then_returns_it(self) -> None:
        base = datetime(2024, 11, 20, 9, 0, tzinfo=UTC)
        reference = datetime(2025, 1, 15, 8, 0, tzinfo=UTC)

        assert occurrence_at_or_after(base, Recurrence.MONTHLY, reference) == datetime(
            2025, 1, 20, 9, 0, tzinfo=UTC
        )

    def test_occurrence_at_or_after_when_candidate_already_passed_then_returns_next_month(self) -> None:
        base = datetime(2024, 11, 10, 9, 0, tzinfo=UTC)
        reference = datetime(2025, 1, 15, 8, 0, tzinfo=UTC)

        assert occurrence_at_or_after(base, Recurrence.MONTHLY, reference) == datetime(
            2025, 2, 10, 9, 0, tzinfo=UTC
        )

    def test_occurrence_at_or_after_when_reference_equals_occurrence_then_returns_reference(self) -> None:
        base = datetime(2024, 11, 15, 8, 0, tzinfo=UTC)
        reference = datetime(2025, 1, 15, 8, 0, tzinfo=UTC)

        assert occurrence_at_or_after(base, Recurrence.MONTHLY, reference) == reference

    def test_occurrence_at_or_after_when_reference_before_anchor_then_returns_anchor(self) -> None:
        base = datetime(2025, 3, 31, 9, 0, tzinfo=UTC)
        reference = datetime(2025, 1, 1, tzinfo=UTC)

        assert occurrence_at_or_after(base, Recurrence.MONTHLY, reference) == base

    def test_occurrence_at_or_after_when_anchor_has_seconds_then_zeroed_candidate_still_not_before_reference(
        self,
    ) -> None:
        base = datetime(2024, 12, 15, 8, 0, 30, tzinfo=UTC)
        reference = datetime(2025, 1, 15, 8, 0, 10, tzinfo=UTC)

        result = occurrence_at_or_after(base, Recurrence.MONTHLY, reference)

        assert result == datetime(2025, 2, 15, 8, 0, tzinfo=UTC)

    @pytest.mark.parametrize("anchor_day", [1, 15, 28, 29, 30, 31])
    @pytest.mark.parametrize("hours_after_anchor", [0, 1, 24 * 17, 24 * 45, 24 * 400])
    def test_occurrence_at_or_after_when_any_reference_then_result_is_minimal_candidate_at_or_after(
        self, anchor_day: int, hours_after_anchor: int
    ) -> None:
        base = datetime(2025, 1, anchor_day, 9, 0, tzinfo=UTC)
        reference = base + timedelta(hours=hours_after_anchor, minutes=7)

        result = occurrence_at_or_after(base, Recurrence.MONTHLY, reference)

        candidates = [c for c in occurrence_sequence(base, Recurrence.MONTHLY, 0, 24) if c >= reference]
        assert result >= reference
        assert result == min(candidates)

    def test_occurrence_at_or_after_when_naive_anchor_then_read_in_visit_timezone(self) -> None:
        base = datetime(2025, 1, 20, 9, 0)
        reference = datetime(2025, 1, 15, 0, 0, tzinfo=UTC)

        result = occurrence_at_or_after(base, Recurrence.MONTHLY, reference, JAKARTA)

        assert result.tzinfo is not None
        assert result.astimezone(UTC) == datetime(2025, 1, 20, 2, 0, tzinfo=UTC)

    def test_occurrence_at_or_after_when_unknown_recurrence_then_raises(self) -> None:
        base = datetime(2025, 1, 20, 9, 0, tzinfo=UTC)

        with pytest.raises(ValueError):
            occurrence_at_or_after(base, "weekly", base)  # type: ignore[arg-type]


class TestVisitOccurrences:
    def test_visit_occurrences_when_monthly_day_31_horizon_3_then_four_occurrences(self) -> None:
        visit = VisitRecord(
            id="v1", base_time="2025-01-31T09:00:00+00:00", recurrence="monthly"
        )

        occurrences = visit_occurrences(visit, 3)

        assert [o.sequence_index for o in occurrences] == [0, 1, 2, 3]
        assert [(o.instant.month, o.instant.day) for o in occurrences] == [
            (1, 31),
            (2, 28),
            (3, 31),
            (4, 30),
        ]

    def test_visit_occurrences_when_once_then_single_occurrence(self) -> None:
        visit = VisitRecord(id="v1", base_time="2025-01-31T09:00:00+00:00")

        assert len(visit_occurrences(visit, 12)) == 1

    def test_visit_occurrences_when_base_time_unparsable_then_empty(self) -> None:
        visit = VisitRecord(id="v1", base_time="not a date", recurrence="monthly")

        assert visit.base_time is None
        assert visit_occurrences(visit, 3) == []
        assert next_occurrence(visit, datetime(2025, 1, 1, tzinfo=UTC)) is None
