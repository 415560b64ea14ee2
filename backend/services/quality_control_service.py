"""
Quality control and compliance analytics.

Derives the QC dashboard numbers (pass rate, week-over-week trend, type
distribution, alerts) and compliance numbers from records already loaded
from the data client.
"""

from collections.abc import Sequence
from datetime import datetime

from config.config import get_settings
from config.logging_config import get_logger
from models.lab_models import (
    ComplianceRecord,
    ComplianceStatus,
    QCStatus,
    QCTest,
    QCType,
)
from models.metrics_models import (
    ComplianceMetrics,
    QCAlerts,
    QCMetrics,
    QCTypeShare,
    RangeCheck,
)
from services.qc_metrics import (
    DEFAULT_TREND_WINDOW_DAYS,
    count_matching,
    is_within_range,
    pass_rate_trend,
    percentage,
    rate,
)

logger = get_logger(__name__)

ALL = "all"


def _matches(value: str | None, expected: str | None) -> bool:
    return expected is None or expected == ALL or value == expected


class QualityControlService:
    """
    Stateless QC analytics.

    Every method takes the records to summarise; nothing is cached between
    calls.
    """

    def __init__(self, trend_window_days: int = DEFAULT_TREND_WINDOW_DAYS):
        self.trend_window_days = trend_window_days

    def get_qc_metrics(self, tests: Sequence[QCTest], now: datetime) -> QCMetrics:
        """Counts per status, overall pass rate and the pass-rate trend."""

        def with_status(status: QCStatus):
            return count_matching(tests, lambda t: t.status == status)

        trend = pass_rate_trend(tests, now, self.trend_window_days)
        metrics = QCMetrics(
            total_tests=len(tests),
            passed_tests=with_status(QCStatus.PASSED),
            failed_tests=with_status(QCStatus.FAILED),
            pending_tests=with_status(QCStatus.PENDING),
            in_progress_tests=with_status(QCStatus.IN_PROGRESS),
            pass_rate=rate(tests, lambda t: t.status == QCStatus.PASSED),
            trend=trend,
        )

        if trend.insufficient_data:
            logger.debug(
                "Pass-rate trend computed over an empty window",
                recent_count=trend.recent_count,
                previous_count=trend.previous_count,
                direction=trend.direction.value,
            )
        logger.debug("QC metrics computed", total=metrics.total_tests, pass_rate=metrics.pass_rate)
        return metrics

    def get_compliance_metrics(self, records: Sequence[ComplianceRecord]) -> ComplianceMetrics:
        """Counts per compliance status and the compliance rate."""

        def with_status(status: ComplianceStatus):
            return count_matching(records, lambda r: r.status == status)

        compliant = with_status(ComplianceStatus.COMPLIANT)
        return ComplianceMetrics(
            total_areas=len(records),
            compliant_areas=compliant,
            non_compliant_areas=with_status(ComplianceStatus.NON_COMPLIANT),
            warning_areas=with_status(ComplianceStatus.WARNING),
            compliance_rate=percentage(compliant, len(records)),
        )

    def filter_qc_tests(
        self,
        tests: Sequence[QCTest],
        type: str | None = None,
        status: str | None = None,
        search: str | None = None,
    ) -> list[QCTest]:
        """
        Filter tests by type, status and a name substring.

        Args:
            tests: Tests to filter.
            type: QC type value, or "all"/None for any.
            status: QC status value, or "all"/None for any.
            search: Case-insensitive substring of test_name.
        """
        needle = search.strip().lower() if search else ""
        return [
            test for test in tests
            if _matches(test.type.value, type)
            and _matches(test.status.value, status)
            and needle in test.test_name.lower()
        ]

    def type_distribution(self, tests: Sequence[QCTest]) -> list[QCTypeShare]:
        """Share of tests per QC type. Every type is listed, even at zero."""
        shares = []
        for qc_type in QCType:
            count = count_matching(tests, lambda t: t.type == qc_type)
            shares.append(
                QCTypeShare(type=qc_type, count=count, percentage=percentage(count, len(tests)))
            )
        return shares

    def range_checks(self, tests: Sequence[QCTest]) -> list[RangeCheck]:
        """
        Check every test's measured value against its acceptable range.

        The operator-entered status is reported alongside. A passed test out
        of range, or a failed test within range, is flagged as disagreeing;
        the status itself is left untouched.
        """
        checks = []
        for test in tests:
            within = is_within_range(
                test.actual_value, test.acceptable_range_min, test.acceptable_range_max
            )
            disagrees = (
                (test.status == QCStatus.PASSED and not within)
                or (test.status == QCStatus.FAILED and within)
            )
            checks.append(
                RangeCheck(
                    test_id=test.id,
                    test_name=test.test_name,
                    status=test.status,
                    within_range=within,
                    status_disagrees=disagrees,
                )
            )

        flagged = [c.test_id for c in checks if c.status_disagrees]
        if flagged:
            logger.warning("QC status disagrees with measured range", test_ids=flagged)
        return checks

    def get_alerts(
        self,
        tests: Sequence[QCTest],
        records: Sequence[ComplianceRecord],
    ) -> QCAlerts:
        """Failed and pending tests plus non-compliant and warning areas."""
        return QCAlerts(
            failed_tests=[t for t in tests if t.status == QCStatus.FAILED],
            non_compliant_areas=[r for r in records if r.status == ComplianceStatus.NON_COMPLIANT],
            warning_areas=[r for r in records if r.status == ComplianceStatus.WARNING],
            pending_tests=[t for t in tests if t.status == QCStatus.PENDING],
        )


def get_quality_control_service() -> QualityControlService:
    """Get a QC service configured from settings."""
    settings = get_settings()
    return QualityControlService(trend_window_days=settings.trend_window_days)
