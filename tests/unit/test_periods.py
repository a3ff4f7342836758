"""Unit tests for the Period Calculator (pure, no store)."""

from datetime import UTC, datetime, timedelta

import pytest

from src.bp_distribution.domain.periods import (
    due_period_indices,
    elapsed_periods,
    is_duration_reached,
    next_period_instant,
    period_instant,
    scheduled_end,
)

START = datetime(2026, 3, 1, 9, 0, tzinfo=UTC)
HOUR = timedelta(hours=1)
DAY = timedelta(days=1)


class TestElapsedPeriods:
    def test_exact_period_edge_counts(self) -> None:
        assert elapsed_periods(START, HOUR, START + HOUR) == 1

    def test_one_second_before_edge_counts_nothing(self) -> None:
        assert elapsed_periods(START, HOUR, START + timedelta(minutes=59, seconds=59)) == 0

    def test_floor_division(self) -> None:
        assert elapsed_periods(START, DAY, START + timedelta(days=2, hours=23)) == 2

    def test_start_in_future_is_zero_not_negative(self) -> None:
        assert elapsed_periods(START, HOUR, START - timedelta(hours=5)) == 0

    def test_naive_datetimes_treated_as_utc(self) -> None:
        naive_start = datetime(2026, 3, 1, 9, 0)
        assert elapsed_periods(naive_start, HOUR, START + 3 * HOUR) == 3

    def test_non_positive_period_rejected(self) -> None:
        with pytest.raises(ValueError):
            elapsed_periods(START, timedelta(0), START)


class TestDuePeriodIndices:
    def test_hourly_edge_exactly_one_hour(self) -> None:
        assert due_period_indices(START, HOUR, 10, START + HOUR) == [1]

    def test_hourly_edge_just_before(self) -> None:
        assert due_period_indices(START, HOUR, 10, START + HOUR - timedelta(seconds=1)) == []

    def test_at_start_nothing_due(self) -> None:
        assert due_period_indices(START, DAY, 5, START) == []

    def test_ordered_and_one_based(self) -> None:
        assert due_period_indices(START, DAY, 5, START + 3 * DAY) == [1, 2, 3]

    def test_capped_at_duration_far_in_future(self) -> None:
        assert due_period_indices(START, DAY, 5, START + 400 * DAY) == [1, 2, 3, 4, 5]

    def test_clock_skew_returns_empty(self) -> None:
        assert due_period_indices(START, DAY, 5, START - DAY) == []

    def test_zero_duration_has_nothing_due(self) -> None:
        assert due_period_indices(START, DAY, 0, START + 3 * DAY) == []

    def test_negative_duration_rejected(self) -> None:
        with pytest.raises(ValueError):
            due_period_indices(START, DAY, -1, START)


class TestInstants:
    def test_period_instant(self) -> None:
        assert period_instant(START, HOUR, 4) == START + 4 * HOUR

    def test_period_index_zero_rejected(self) -> None:
        with pytest.raises(ValueError):
            period_instant(START, HOUR, 0)

    def test_scheduled_end(self) -> None:
        assert scheduled_end(START, DAY, 3) == START + 3 * DAY

    def test_next_period_instant_mid_period(self) -> None:
        now = START + timedelta(hours=2, minutes=30)
        assert next_period_instant(START, HOUR, 10, now) == START + 3 * HOUR

    def test_next_period_instant_none_after_last(self) -> None:
        assert next_period_instant(START, HOUR, 10, START + 10 * HOUR) is None


class TestDurationReached:
    def test_not_reached_before_last_period(self) -> None:
        assert not is_duration_reached(START, DAY, 3, START + 3 * DAY - timedelta(seconds=1))

    def test_reached_exactly_at_last_period(self) -> None:
        assert is_duration_reached(START, DAY, 3, START + 3 * DAY)
