"""
Lab order analytics.

Slices lab orders by a date range and category and derives the numbers
behind the lab analytics dashboard: completion metrics, test type
breakdown, daily trends and priority distribution. The export payload is
the same data bundled with a generation timestamp.
"""

from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Any

from config.logging_config import get_logger
from models.lab_models import (
    LabOrder,
    LabOrderPriority,
    LabOrderStatus,
    to_utc_datetime,
)
from models.metrics_models import (
    DailyTrend,
    LabAnalyticsReport,
    LabOrderMetrics,
    NamedCount,
    WorkflowStage,
)
from services.errors import InvalidDateRangeError
from services.qc_metrics import count_matching, mean, rate

logger = get_logger(__name__)

ALL = "all"
CUSTOM_RANGE = "custom"


@dataclass(frozen=True)
class DateRangeOption:
    """A selectable analytics range."""
    label: str
    days: int | None


DATE_RANGES: dict[str, DateRangeOption] = {
    "7d": DateRangeOption(label="Last 7 Days", days=7),
    "30d": DateRangeOption(label="Last 30 Days", days=30),
    "90d": DateRangeOption(label="Last 90 Days", days=90),
    "1y": DateRangeOption(label="Last Year", days=365),
    CUSTOM_RANGE: DateRangeOption(label="Custom Range", days=None),
}


@dataclass(frozen=True)
class DateWindow:
    """Resolved analytics window."""
    key: str
    start: datetime
    end: datetime

    @property
    def label(self) -> str:
        return DATE_RANGES[self.key].label


def _as_range_bound(value: date | datetime | str | None) -> datetime | None:
    if isinstance(value, date) and not isinstance(value, datetime):
        value = datetime.combine(value, time.min)
    try:
        return to_utc_datetime(value)
    except ValueError as e:
        raise InvalidDateRangeError(f"Invalid date: {value!r}") from e


def resolve_date_range(
    range_key: str,
    now: datetime,
    start: date | datetime | str | None = None,
    end: date | datetime | str | None = None,
) -> DateWindow:
    """
    Turn a range key into concrete start/end timestamps.

    Args:
        range_key: One of 7d, 30d, 90d, 1y or custom.
        now: End of the relative ranges.
        start: Start date, required for custom.
        end: End date, required for custom.

    Raises:
        InvalidDateRangeError: Unknown key, missing custom bounds, or a
            start after the end.
    """
    option = DATE_RANGES.get(range_key)
    if option is None:
        raise InvalidDateRangeError(
            f"Unknown date range '{range_key}'",
            details={"allowed": list(DATE_RANGES)},
        )

    if option.days is not None:
        return DateWindow(key=range_key, start=now - timedelta(days=option.days), end=now)

    start_at = _as_range_bound(start)
    end_at = _as_range_bound(end)
    if start_at is None or end_at is None:
        raise InvalidDateRangeError("Custom range requires both start and end")
    if start_at > end_at:
        raise InvalidDateRangeError(
            "Custom range start is after its end",
            details={"start": start_at.isoformat(), "end": end_at.isoformat()},
        )
    return DateWindow(key=range_key, start=start_at, end=end_at)


def order_test_type(order: LabOrder) -> str:
    """First word of the test name, or Other."""
    return order.test_name.split(" ")[0] or "Other"


def turnaround_hours(order: LabOrder) -> float | None:
    """Hours from order to completion, or None if not measurable."""
    if order.status != LabOrderStatus.COMPLETED or order.completed_date is None:
        return None
    elapsed = order.completed_date - order.date_ordered
    if elapsed < timedelta(0):
        return None
    return elapsed / timedelta(hours=1)


class LabAnalyticsService:
    """Stateless lab order analytics."""

    def filter_orders(
        self,
        orders: Sequence[LabOrder],
        window: DateWindow,
        category: str | None = None,
    ) -> list[LabOrder]:
        """Orders placed strictly inside the window, optionally by category."""
        return [
            order for order in orders
            if window.start < order.date_ordered < window.end
            and (category in (None, ALL) or order.category == category)
        ]

    def search_orders(
        self,
        orders: Sequence[LabOrder],
        patient_id: str | None = None,
        doctor_id: str | None = None,
        status: str | None = None,
    ) -> list[LabOrder]:
        """Exact-match lookup by patient, ordering clinician and workflow stage."""
        return [
            order for order in orders
            if (patient_id is None or order.patient_id == patient_id)
            and (doctor_id is None or order.doctor_id == doctor_id)
            and (status in (None, ALL) or order.status.value == status)
        ]

    def get_metrics(self, orders: Sequence[LabOrder]) -> LabOrderMetrics:
        """Completion and urgency numbers for already-filtered orders."""
        turnarounds = [h for h in (turnaround_hours(o) for o in orders) if h is not None]
        return LabOrderMetrics(
            total_orders=len(orders),
            completed_orders=count_matching(orders, lambda o: o.status == LabOrderStatus.COMPLETED),
            pending_orders=count_matching(orders, lambda o: o.status == LabOrderStatus.PENDING),
            urgent_orders=count_matching(orders, lambda o: o.priority == LabOrderPriority.URGENT),
            stat_orders=count_matching(orders, lambda o: o.priority == LabOrderPriority.STAT),
            completion_rate=rate(orders, lambda o: o.status == LabOrderStatus.COMPLETED),
            avg_turnaround_hours=mean(turnarounds),
        )

    def test_type_breakdown(self, orders: Sequence[LabOrder]) -> list[NamedCount]:
        counts = Counter(order_test_type(order) for order in orders)
        return [NamedCount(name=name, value=value) for name, value in counts.items()]

    def daily_trends(self, orders: Sequence[LabOrder], window: DateWindow) -> list[DailyTrend]:
        """
        One bucket per calendar day from the window start to its end.

        Days are UTC calendar days and both end days are included.
        """
        by_day: dict[date, list[LabOrder]] = {}
        for order in orders:
            by_day.setdefault(order.date_ordered.date(), []).append(order)

        trends = []
        current = window.start
        while current <= window.end:
            day = current.date()
            on_day = by_day.get(day, [])
            trends.append(
                DailyTrend(
                    date=day.isoformat(),
                    label=day.strftime("%b %d"),
                    orders=len(on_day),
                    completed=count_matching(on_day, lambda o: o.status == LabOrderStatus.COMPLETED),
                    pending=count_matching(on_day, lambda o: o.status == LabOrderStatus.PENDING),
                )
            )
            current += timedelta(days=1)
        return trends

    def priority_distribution(self, orders: Sequence[LabOrder]) -> list[NamedCount]:
        """Routine, urgent and stat counts; orders without a priority count as routine."""
        distribution = {priority: 0 for priority in LabOrderPriority}
        for order in orders:
            distribution[order.priority or LabOrderPriority.ROUTINE] += 1
        return [
            NamedCount(name=priority.value.capitalize(), value=value)
            for priority, value in distribution.items()
        ]

    def build_report(
        self,
        orders: Sequence[LabOrder],
        now: datetime,
        range_key: str = "30d",
        start: date | datetime | str | None = None,
        end: date | datetime | str | None = None,
        category: str | None = None,
    ) -> LabAnalyticsReport:
        """
        Build the full analytics payload for a range and category.

        Raises:
            InvalidDateRangeError: If the range cannot be resolved.
        """
        window = resolve_date_range(range_key, now, start, end)
        selected = self.filter_orders(orders, window, category)

        logger.info(
            "Building lab analytics report",
            date_range=window.key,
            category=category or ALL,
            orders_in_range=len(selected),
            orders_total=len(orders),
        )

        return LabAnalyticsReport(
            date_range=window.label,
            start=window.start,
            end=window.end,
            category=None if category in (None, ALL) else category,
            metrics=self.get_metrics(selected),
            test_type_breakdown=self.test_type_breakdown(selected),
            daily_trends=self.daily_trends(selected, window),
            priority_distribution=self.priority_distribution(selected),
            generated_at=now,
        )

    @staticmethod
    def workflow_stages() -> list[WorkflowStage]:
        """Display labels for every lab order workflow stage."""
        return [WorkflowStage(status=status, label=status.label) for status in LabOrderStatus]

    @staticmethod
    def export_filename(now: datetime) -> str:
        return f"lab-analytics-{now.strftime('%Y-%m-%d')}.json"

    def export_report(self, report: LabAnalyticsReport) -> dict[str, Any]:
        """JSON-ready export payload."""
        return report.model_dump(mode="json")


# Singleton instance
_lab_analytics_service: LabAnalyticsService | None = None


def get_lab_analytics_service() -> LabAnalyticsService:
    """Get or create the lab analytics service singleton."""
    global _lab_analytics_service
    if _lab_analytics_service is None:
        _lab_analytics_service = LabAnalyticsService()
    return _lab_analytics_service
