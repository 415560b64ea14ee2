"""
Core QC calculations.

Pure functions over records that are already in memory: range checks,
zero-guarded rates and means, equipment age, the week-over-week pass-rate
trend and maintenance-due classification. None of them perform I/O and
none raise for empty input; ratios over nothing are 0.
"""

import math
from collections.abc import Callable, Iterable, Sequence
from datetime import datetime, timedelta
from typing import TypeVar

from models.lab_models import QCStatus, QCTest
from models.metrics_models import MaintenanceStatus, PassRateTrend, TrendDirection

T = TypeVar("T")

DAYS_PER_YEAR = 365.25
DEFAULT_TREND_WINDOW_DAYS = 7
DEFAULT_DUE_SOON_DAYS = 7


def round_half_up(value: float) -> int:
    """Round .5 upwards (12.5 -> 13), unlike the built-in round()."""
    return math.floor(value + 0.5)


def is_within_range(
    actual: float | None,
    minimum: float | None,
    maximum: float | None,
) -> bool:
    """
    Check whether a measured value lies inside its acceptable range.

    Both bounds are inclusive. Missing or NaN values are never in range.
    """
    if actual is None or minimum is None or maximum is None:
        return False
    # NaN compares false against everything
    return minimum <= actual <= maximum


def percentage(matching: int, total: int) -> int:
    """Whole-number percentage of matching over total; 0 when total is 0."""
    if total == 0:
        return 0
    return round_half_up(matching / total * 100)


def count_matching(records: Iterable[T], predicate: Callable[[T], bool]) -> int:
    return sum(1 for record in records if predicate(record))


def rate(records: Sequence[T], predicate: Callable[[T], bool]) -> int:
    """Percentage of records satisfying predicate; 0 for an empty collection."""
    return percentage(count_matching(records, predicate), len(records))


def mean(values: Iterable[float]) -> int:
    """Rounded arithmetic mean; 0 for an empty collection."""
    values = list(values)
    if not values:
        return 0
    return round_half_up(sum(values) / len(values))


def age_in_years(purchased: datetime, now: datetime) -> int:
    """
    Whole years between purchased and now.

    Uses a fixed 365.25-day year rather than calendar arithmetic, so a
    purchase exactly one calendar year ago can still report 0.
    """
    elapsed = now - purchased
    return math.floor(elapsed / timedelta(days=DAYS_PER_YEAR))


def is_passed(test: QCTest) -> bool:
    return test.status == QCStatus.PASSED


def in_window(moment: datetime | None, start: datetime, end: datetime) -> bool:
    """Half-open interval membership: start <= moment < end."""
    return moment is not None and start <= moment < end


def trend_direction(recent: int, previous: int) -> TrendDirection:
    if recent > previous:
        return TrendDirection.UP
    if recent < previous:
        return TrendDirection.DOWN
    return TrendDirection.STABLE


def pass_rate_trend(
    tests: Sequence[QCTest],
    now: datetime,
    window_days: int = DEFAULT_TREND_WINDOW_DAYS,
) -> PassRateTrend:
    """
    Compare the pass rate of the last window with the window before it.

    Args:
        tests: QC tests to partition by performed_date.
        now: Reference time; the recent window ends here (exclusive).
        window_days: Length of each window.

    Returns:
        The two rates, the direction and the window sizes. An empty window
        has a rate of 0, so an empty previous window reads as "up" whenever
        anything recent passed; insufficient_data marks that case.
    """
    window = timedelta(days=window_days)
    recent_start = now - window
    previous_start = now - 2 * window

    recent = [t for t in tests if in_window(t.performed_date, recent_start, now)]
    previous = [t for t in tests if in_window(t.performed_date, previous_start, recent_start)]

    recent_rate = rate(recent, is_passed)
    previous_rate = rate(previous, is_passed)

    return PassRateTrend(
        recent_pass_rate=recent_rate,
        previous_pass_rate=previous_rate,
        direction=trend_direction(recent_rate, previous_rate),
        recent_count=len(recent),
        previous_count=len(previous),
        insufficient_data=not recent or not previous,
    )


def classify_maintenance(
    next_maintenance: datetime | None,
    now: datetime,
    due_soon_days: int = DEFAULT_DUE_SOON_DAYS,
) -> MaintenanceStatus:
    """
    Classify equipment maintenance as overdue, due_soon, scheduled or unknown.

    The day difference counts whole days only, so something due in 7 days
    and 20 hours is still due soon.
    """
    if next_maintenance is None:
        return MaintenanceStatus.UNKNOWN
    if now > next_maintenance:
        return MaintenanceStatus.OVERDUE
    if (next_maintenance - now).days <= due_soon_days:
        return MaintenanceStatus.DUE_SOON
    return MaintenanceStatus.SCHEDULED
