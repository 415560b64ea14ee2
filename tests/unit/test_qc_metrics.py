"""Tests for the core QC calculations."""

import math
from datetime import datetime, timedelta, timezone

from models.metrics_models import MaintenanceStatus, TrendDirection
from services.qc_metrics import (
    age_in_years,
    classify_maintenance,
    is_within_range,
    mean,
    pass_rate_trend,
    percentage,
    rate,
    round_half_up,
)


def test_within_range_bounds_are_inclusive():
    """Values on either bound are acceptable."""
    assert is_within_range(95, 95, 105)
    assert is_within_range(105, 95, 105)
    assert is_within_range(98, 95, 105)
    assert not is_within_range(94.99, 95, 105)
    assert not is_within_range(105.01, 95, 105)


def test_within_range_missing_or_nan_is_out_of_range():
    """A missing or NaN measurement is never acceptable."""
    assert not is_within_range(None, 95, 105)
    assert not is_within_range(math.nan, 95, 105)
    assert not is_within_range(100, None, 105)


def test_within_range_inverted_bounds_reject_everything():
    """An inverted range is accepted as data but nothing falls inside it."""
    assert not is_within_range(100, 105, 95)


def test_round_half_up():
    """Halves round towards positive infinity."""
    assert round_half_up(12.5) == 13
    assert round_half_up(66.666) == 67
    assert round_half_up(0.4) == 0
    # Built-in round() would give 12 here
    assert round(12.5) == 12


def test_percentage_and_rate():
    """Whole-number percentages with a zero guard."""
    assert percentage(3, 4) == 75
    assert percentage(2, 3) == 67
    assert percentage(1, 8) == 13
    assert percentage(0, 0) == 0
    assert rate([], lambda x: True) == 0
    assert rate([1, 2, 3, 4, 5, 6], lambda x: x <= 4) == 67


def test_mean_of_empty_is_zero():
    """Averages over nothing are 0 rather than an error."""
    assert mean([]) == 0
    assert mean(v for v in [85, 92, 78]) == 85
    assert mean([1, 2]) == 2


def test_age_in_years_uses_fixed_year_length():
    """Ages are whole years of 365.25 days."""
    now = datetime(2024, 1, 16, tzinfo=timezone.utc)
    assert age_in_years(datetime(2022, 3, 15, tzinfo=timezone.utc), now) == 1
    assert age_in_years(datetime(2021, 8, 20, tzinfo=timezone.utc), now) == 2
    assert age_in_years(datetime(2023, 6, 1, tzinfo=timezone.utc), now) == 0
    # Exactly 365 days is still short of a 365.25-day year
    assert age_in_years(now - timedelta(days=365), now) == 0
    assert age_in_years(now - timedelta(days=366), now) == 1


def test_pass_rate_trend_up_with_empty_previous_week(make_qc_test, now):
    """An empty previous window reads as 0 and is marked insufficient."""
    tests = [
        make_qc_test(status="passed", performed_date="2024-01-15"),
        make_qc_test(status="passed", performed_date="2024-01-14"),
        make_qc_test(status="failed", performed_date="2024-01-13"),
    ]

    trend = pass_rate_trend(tests, now)

    assert trend.recent_pass_rate == 67
    assert trend.previous_pass_rate == 0
    assert trend.direction == TrendDirection.UP
    assert trend.recent_count == 3
    assert trend.previous_count == 0
    assert trend.insufficient_data


def test_pass_rate_trend_all_recent_passed(make_qc_test, now):
    tests = [
        make_qc_test(status="passed", performed_date="2024-01-15"),
        make_qc_test(status="passed", performed_date="2024-01-10"),
    ]

    trend = pass_rate_trend(tests, now)

    assert (trend.recent_pass_rate, trend.previous_pass_rate) == (100, 0)
    assert trend.direction == TrendDirection.UP


def test_pass_rate_trend_down(make_qc_test, now):
    """A week worse than the one before trends down."""
    tests = [
        make_qc_test(status="failed", performed_date="2024-01-15"),
        make_qc_test(status="passed", performed_date="2024-01-14"),
        make_qc_test(status="passed", performed_date="2024-01-05"),
        make_qc_test(status="passed", performed_date="2024-01-04"),
    ]

    trend = pass_rate_trend(tests, now)

    assert trend.recent_pass_rate == 50
    assert trend.previous_pass_rate == 100
    assert trend.direction == TrendDirection.DOWN
    assert not trend.insufficient_data


def test_pass_rate_trend_window_edges(make_qc_test, now):
    """Windows are half-open: the start is included, now is not."""
    tests = [
        make_qc_test(status="passed", performed_date="2024-01-09"),
        make_qc_test(status="failed", performed_date="2024-01-02"),
        make_qc_test(status="passed", performed_date="2024-01-16"),
        make_qc_test(status="passed", performed_date=None, actual_value=None),
    ]

    trend = pass_rate_trend(tests, now)

    assert trend.recent_count == 1
    assert trend.previous_count == 1
    assert trend.recent_pass_rate == 100
    assert trend.previous_pass_rate == 0
    assert trend.direction == TrendDirection.UP


def test_pass_rate_trend_stable_when_nothing_performed(now):
    """No tests at all gives a stable 0 vs 0."""
    trend = pass_rate_trend([], now)
    assert trend.direction == TrendDirection.STABLE
    assert trend.insufficient_data


def test_classify_maintenance(now):
    """Overdue, due soon, scheduled and unknown."""
    assert classify_maintenance(now - timedelta(days=1), now) == MaintenanceStatus.OVERDUE
    assert classify_maintenance(now + timedelta(days=3), now) == MaintenanceStatus.DUE_SOON
    assert classify_maintenance(now + timedelta(days=30), now) == MaintenanceStatus.SCHEDULED
    assert classify_maintenance(None, now) == MaintenanceStatus.UNKNOWN


def test_classify_maintenance_boundaries(now):
    """Due exactly now is not overdue; partial days do not count."""
    assert classify_maintenance(now, now) == MaintenanceStatus.DUE_SOON
    assert classify_maintenance(now + timedelta(days=7, hours=20), now) == MaintenanceStatus.DUE_SOON
    assert classify_maintenance(now + timedelta(days=8), now) == MaintenanceStatus.SCHEDULED
    assert classify_maintenance(now + timedelta(days=10), now, due_soon_days=14) == (
        MaintenanceStatus.DUE_SOON
    )
