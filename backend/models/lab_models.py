"""
Pydantic models for laboratory records.

These are the flat records the analytics operate on: QC tests, compliance
entries, equipment, maintenance records and lab orders. Dates arrive as
ISO-8601 strings (date-only or full timestamps) and are normalised to
timezone-aware UTC datetimes; empty strings are treated as missing.
"""

import math
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


def to_utc_datetime(value: Any) -> datetime | None:
    """
    Coerce an ISO-8601 value into an aware UTC datetime.

    Date-only values become midnight UTC and naive timestamps are assumed
    to be UTC. None and empty strings yield None.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        parsed = datetime.fromisoformat(value.strip())
    else:
        raise ValueError(f"Unsupported date value: {value!r}")

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


# ============================================================================
# Enumerations
# ============================================================================

class QCStatus(str, Enum):
    """Operator-entered outcome of a QC test."""
    PASSED = "passed"
    FAILED = "failed"
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    CANCELLED = "cancelled"


class QCType(str, Enum):
    """Kinds of quality-control activity."""
    INTERNAL = "internal"
    EXTERNAL = "external"
    PROFICIENCY = "proficiency"
    CALIBRATION = "calibration"
    MAINTENANCE = "maintenance"


class ComplianceStatus(str, Enum):
    """Compliance state of an audited area."""
    COMPLIANT = "compliant"
    NON_COMPLIANT = "non_compliant"
    WARNING = "warning"
    PENDING_REVIEW = "pending_review"


class EquipmentType(str, Enum):
    """Equipment categories."""
    ANALYZER = "analyzer"
    MICROSCOPE = "microscope"
    CENTRIFUGE = "centrifuge"
    INCUBATOR = "incubator"
    REFRIGERATOR = "refrigerator"
    AUTOCLAVE = "autoclave"
    OTHER = "other"


class EquipmentStatus(str, Enum):
    """Operational state of a piece of equipment."""
    OPERATIONAL = "operational"
    MAINTENANCE = "maintenance"
    OUT_OF_ORDER = "out_of_order"
    CALIBRATION = "calibration"
    RETIRED = "retired"


class MaintenanceType(str, Enum):
    """Kinds of maintenance work."""
    PREVENTIVE = "preventive"
    CORRECTIVE = "corrective"
    CALIBRATION = "calibration"
    INSPECTION = "inspection"


class MaintenanceRecordStatus(str, Enum):
    """State of a maintenance work item."""
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class LabOrderStatus(str, Enum):
    """
    Workflow stage of a lab order.

    Stages are labels set by whoever updates the order; no transition
    rules are enforced between them.
    """
    PENDING = "pending"
    PROCESSING = "processing"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def label(self) -> str:
        return LAB_ORDER_STAGE_LABELS[self]


LAB_ORDER_STAGE_LABELS: dict[LabOrderStatus, str] = {
    LabOrderStatus.PENDING: "Ordered",
    LabOrderStatus.PROCESSING: "Sample Processing",
    LabOrderStatus.IN_PROGRESS: "In Progress",
    LabOrderStatus.COMPLETED: "Completed",
    LabOrderStatus.CANCELLED: "Cancelled",
}


class LabOrderPriority(str, Enum):
    """Urgency of a lab order, independent of its workflow stage."""
    ROUTINE = "routine"
    URGENT = "urgent"
    STAT = "stat"


# ============================================================================
# Records
# ============================================================================

class LabRecord(BaseModel):
    """Base for every stored record: string id plus audit timestamps."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str = Field(..., min_length=1, description="Record identifier")
    created_at: datetime | None = Field(default=None, description="Creation timestamp")
    updated_at: datetime | None = Field(default=None, description="Last update timestamp")

    @field_validator("created_at", "updated_at", mode="before")
    @classmethod
    def parse_audit_timestamps(cls, v: Any) -> datetime | None:
        return to_utc_datetime(v)


class QCTestInput(BaseModel):
    """
    Fields an operator supplies for a QC test.

    Attributes:
        test_name: Name of the control being run.
        type: Kind of QC activity.
        target_value: Expected control value.
        acceptable_range_min: Lower acceptable bound (inclusive).
        acceptable_range_max: Upper acceptable bound (inclusive).
        actual_value: Measured value, missing until the test is performed.
        status: Operator-entered outcome. Never recomputed from the range.
        performed_date: When the test was performed.
    """

    model_config = ConfigDict(extra="ignore")

    test_name: str = Field(..., min_length=1, description="QC test name")
    type: QCType = Field(..., description="QC type")
    description: str = Field(default="", description="Test description")
    target_value: float | None = Field(default=None, description="Target value")
    acceptable_range_min: float | None = Field(default=None, description="Minimum acceptable value")
    acceptable_range_max: float | None = Field(default=None, description="Maximum acceptable value")
    actual_value: float | None = Field(default=None, description="Measured value")
    status: QCStatus = Field(default=QCStatus.PENDING, description="Operator-entered status")
    performed_by: str = Field(default="", description="Who performed the test")
    performed_date: datetime | None = Field(default=None, description="When the test was performed")
    notes: str | None = Field(default=None, description="Free-text notes")
    corrective_action: str | None = Field(default=None, description="Corrective action taken")

    @field_validator(
        "target_value", "acceptable_range_min", "acceptable_range_max", "actual_value",
        mode="before",
    )
    @classmethod
    def blank_numbers_are_missing(cls, v: Any) -> Any:
        return _blank_to_none(v)

    @field_validator("performed_date", mode="before")
    @classmethod
    def parse_performed_date(cls, v: Any) -> datetime | None:
        return to_utc_datetime(v)


class QCTest(LabRecord, QCTestInput):
    """A stored QC test."""


class ComplianceRecord(LabRecord):
    """Compliance status of one audited area."""
    area: str = Field(..., description="Audited area")
    requirement: str = Field(default="", description="Requirement being checked")
    status: ComplianceStatus = Field(..., description="Compliance status")
    last_review: datetime | None = Field(default=None, description="Last review date")
    next_review: datetime | None = Field(default=None, description="Next review date")
    responsible_person: str = Field(default="", description="Owner of the area")
    notes: str | None = Field(default=None, description="Free-text notes")

    @field_validator("last_review", "next_review", mode="before")
    @classmethod
    def parse_review_dates(cls, v: Any) -> datetime | None:
        return to_utc_datetime(v)


class EquipmentInput(BaseModel):
    """
    Fields supplied when registering or editing equipment.

    Whether maintenance is overdue is derived from next_maintenance at
    query time and never stored.
    """

    model_config = ConfigDict(extra="ignore")

    name: str = Field(..., min_length=1, description="Equipment name")
    type: EquipmentType = Field(default=EquipmentType.OTHER, description="Equipment type")
    model: str = Field(default="", description="Model")
    serial_number: str = Field(default="", description="Serial number")
    manufacturer: str = Field(default="", description="Manufacturer")
    purchase_date: datetime | None = Field(default=None, description="Purchase date")
    warranty_expiry: datetime | None = Field(default=None, description="Warranty expiry")
    location: str = Field(default="", description="Location")
    status: EquipmentStatus = Field(default=EquipmentStatus.OPERATIONAL, description="Status")
    description: str = Field(default="", description="Description")
    notes: str | None = Field(default=None, description="Free-text notes")
    last_maintenance: datetime | None = Field(default=None, description="Last maintenance date")
    next_maintenance: datetime | None = Field(default=None, description="Next maintenance date")
    utilization_rate: float = Field(default=0, ge=0, le=100, description="Utilization percentage")

    @field_validator(
        "purchase_date", "warranty_expiry", "last_maintenance", "next_maintenance",
        mode="before",
    )
    @classmethod
    def parse_dates(cls, v: Any) -> datetime | None:
        return to_utc_datetime(v)


class Equipment(LabRecord, EquipmentInput):
    """A piece of laboratory equipment."""


class MaintenanceRecordInput(BaseModel):
    """Fields supplied when scheduling or closing out maintenance."""

    model_config = ConfigDict(extra="ignore")

    equipment_id: str = Field(..., min_length=1, description="Equipment the work applies to")
    type: MaintenanceType = Field(..., description="Maintenance type")
    description: str = Field(default="", description="Description")
    scheduled_date: datetime | None = Field(default=None, description="Scheduled date")
    completed_date: datetime | None = Field(default=None, description="Completion date")
    technician: str = Field(default="", description="Assigned technician")
    cost: float = Field(default=0, ge=0, description="Cost of the work")
    notes: str | None = Field(default=None, description="Free-text notes")
    status: MaintenanceRecordStatus = Field(
        default=MaintenanceRecordStatus.SCHEDULED, description="Status"
    )

    @field_validator("scheduled_date", "completed_date", mode="before")
    @classmethod
    def parse_dates(cls, v: Any) -> datetime | None:
        return to_utc_datetime(v)

    @field_validator("cost")
    @classmethod
    def validate_cost(cls, v: float) -> float:
        """Reject NaN/inf costs, which would poison the cost totals."""
        if not math.isfinite(v):
            raise ValueError("Maintenance cost must be a finite number")
        return v


class MaintenanceRecord(LabRecord, MaintenanceRecordInput):
    """A scheduled or completed maintenance job for one piece of equipment."""


class LabOrderInput(BaseModel):
    """
    Fields supplied when placing or updating a lab order.

    Status (workflow stage) and priority (urgency) are independent axes.
    """

    model_config = ConfigDict(extra="ignore")

    patient_id: str = Field(..., min_length=1, description="Patient identifier")
    doctor_id: str | None = Field(default=None, description="Ordering clinician")
    category: str | None = Field(
        default=None,
        validation_alias=AliasChoices("category", "test_type"),
        description="Test category",
    )
    test_name: str = Field(default="", description="Test name")
    status: LabOrderStatus = Field(default=LabOrderStatus.PENDING, description="Workflow stage")
    priority: LabOrderPriority | None = Field(default=None, description="Urgency")
    date_ordered: datetime = Field(
        ...,
        validation_alias=AliasChoices("date_ordered", "ordered_date"),
        description="When the order was placed",
    )
    completed_date: datetime | None = Field(default=None, description="When results were completed")
    results: str | None = Field(default=None, description="Result summary")
    notes: str | None = Field(default=None, description="Free-text notes")

    @field_validator("date_ordered", "completed_date", mode="before")
    @classmethod
    def parse_dates(cls, v: Any) -> datetime | None:
        return to_utc_datetime(v)

    @field_validator("priority", mode="before")
    @classmethod
    def blank_priority_is_missing(cls, v: Any) -> Any:
        return _blank_to_none(v)


class LabOrder(LabRecord, LabOrderInput):
    """A stored lab order."""
