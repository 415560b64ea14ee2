"""
View models returned by the analytics services.

Every summary is immutable and recomputed from the source records on each
request. Nothing here is persisted.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from models.lab_models import (
    ComplianceRecord,
    Equipment,
    LabOrderStatus,
    QCStatus,
    QCTest,
    QCType,
)


class ViewModel(BaseModel):
    """Frozen base for computed summaries."""
    model_config = ConfigDict(frozen=True)


class TrendDirection(str, Enum):
    """Week-over-week movement of the QC pass rate."""
    UP = "up"
    DOWN = "down"
    STABLE = "stable"


class MaintenanceStatus(str, Enum):
    """Derived maintenance classification for a piece of equipment."""
    OVERDUE = "overdue"
    DUE_SOON = "due_soon"
    SCHEDULED = "scheduled"
    UNKNOWN = "unknown"


# ============================================================================
# Quality control
# ============================================================================

class PassRateTrend(ViewModel):
    """
    Pass rate of the most recent window compared with the one before it.

    Attributes:
        recent_pass_rate: Pass rate over [now - window, now).
        previous_pass_rate: Pass rate over [now - 2*window, now - window).
        direction: up, down or stable.
        recent_count: Tests performed in the recent window.
        previous_count: Tests performed in the previous window.
        insufficient_data: True when either window is empty, in which case
            its rate is a synthetic 0 and the direction may be misleading.
    """
    recent_pass_rate: int = Field(..., ge=0, le=100)
    previous_pass_rate: int = Field(..., ge=0, le=100)
    direction: TrendDirection
    recent_count: int = Field(..., ge=0)
    previous_count: int = Field(..., ge=0)
    insufficient_data: bool


class QCMetrics(ViewModel):
    """Headline QC numbers."""
    total_tests: int
    passed_tests: int
    failed_tests: int
    pending_tests: int
    in_progress_tests: int
    pass_rate: int = Field(..., ge=0, le=100)
    trend: PassRateTrend


class ComplianceMetrics(ViewModel):
    """Headline compliance numbers."""
    total_areas: int
    compliant_areas: int
    non_compliant_areas: int
    warning_areas: int
    compliance_rate: int = Field(..., ge=0, le=100)


class QCTypeShare(ViewModel):
    """Share of all QC tests belonging to one type."""
    type: QCType
    count: int
    percentage: int = Field(..., ge=0, le=100)


class RangeCheck(ViewModel):
    """
    Numeric range check of one QC test next to its entered status.

    status_disagrees is set when a passed test is out of range or a failed
    test is within range. It is reported for review, never corrected.
    """
    test_id: str
    test_name: str
    status: QCStatus
    within_range: bool
    status_disagrees: bool


class QCAlerts(ViewModel):
    """Items that need attention on the QC dashboard."""
    failed_tests: list[QCTest] = Field(default_factory=list)
    non_compliant_areas: list[ComplianceRecord] = Field(default_factory=list)
    warning_areas: list[ComplianceRecord] = Field(default_factory=list)
    pending_tests: list[QCTest] = Field(default_factory=list)


# ============================================================================
# Equipment
# ============================================================================

class EquipmentMetrics(ViewModel):
    """Headline equipment numbers."""
    total_equipment: int
    operational_equipment: int
    maintenance_due: int
    under_maintenance: int
    out_of_order: int
    calibration_due: int
    total_maintenance_cost: float
    pending_maintenance_cost: float
    avg_utilization: int
    avg_age: int
    operational_rate: int = Field(..., ge=0, le=100)


class EquipmentMaintenanceStatus(ViewModel):
    """One piece of equipment with its derived maintenance classification."""
    equipment: Equipment
    maintenance_status: MaintenanceStatus
    days_until_due: int | None = None


# ============================================================================
# Lab order analytics
# ============================================================================

class LabOrderMetrics(ViewModel):
    """Headline lab order numbers for a date range."""
    total_orders: int
    completed_orders: int
    pending_orders: int
    urgent_orders: int
    stat_orders: int
    completion_rate: int = Field(..., ge=0, le=100)
    avg_turnaround_hours: int


class NamedCount(ViewModel):
    """A label with a count, used for breakdown charts."""
    name: str
    value: int


class DailyTrend(ViewModel):
    """Orders placed on one calendar day."""
    date: str
    label: str
    orders: int
    completed: int
    pending: int


class WorkflowStage(ViewModel):
    """Display label for a lab order workflow stage."""
    status: LabOrderStatus
    label: str


class LabAnalyticsReport(ViewModel):
    """Complete lab order analytics payload, as exported by the dashboard."""
    date_range: str
    start: datetime
    end: datetime
    category: str | None = None
    metrics: LabOrderMetrics
    test_type_breakdown: list[NamedCount]
    daily_trends: list[DailyTrend]
    priority_distribution: list[NamedCount]
    generated_at: datetime
