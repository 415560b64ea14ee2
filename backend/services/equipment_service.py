"""
Equipment and maintenance analytics.
"""

from collections.abc import Sequence
from datetime import datetime

from config.config import get_settings
from config.logging_config import get_logger
from models.lab_models import (
    Equipment,
    EquipmentStatus,
    MaintenanceRecord,
    MaintenanceRecordStatus,
)
from models.metrics_models import (
    EquipmentMaintenanceStatus,
    EquipmentMetrics,
    MaintenanceStatus,
)
from services.qc_metrics import (
    DEFAULT_DUE_SOON_DAYS,
    age_in_years,
    classify_maintenance,
    count_matching,
    mean,
    rate,
)

logger = get_logger(__name__)

ALL = "all"

PENDING_MAINTENANCE = (MaintenanceRecordStatus.SCHEDULED, MaintenanceRecordStatus.IN_PROGRESS)


class EquipmentService:
    """Stateless equipment analytics."""

    def __init__(self, due_soon_days: int = DEFAULT_DUE_SOON_DAYS):
        self.due_soon_days = due_soon_days

    def maintenance_status(self, item: Equipment, now: datetime) -> MaintenanceStatus:
        return classify_maintenance(item.next_maintenance, now, self.due_soon_days)

    def get_equipment_metrics(
        self,
        equipment: Sequence[Equipment],
        maintenance: Sequence[MaintenanceRecord],
        now: datetime,
    ) -> EquipmentMetrics:
        """
        Headline equipment numbers.

        Args:
            equipment: All equipment records.
            maintenance: All maintenance records, for the cost totals.
            now: Reference time for overdue checks and ages.

        Returns:
            EquipmentMetrics. Equipment without a purchase date is left out
            of the average age rather than counted as age 0.
        """

        def with_status(status: EquipmentStatus):
            return count_matching(equipment, lambda e: e.status == status)

        overdue = count_matching(
            equipment,
            lambda e: self.maintenance_status(e, now) == MaintenanceStatus.OVERDUE,
        )
        completed_cost = sum(
            m.cost for m in maintenance if m.status == MaintenanceRecordStatus.COMPLETED
        )
        pending_cost = sum(m.cost for m in maintenance if m.status in PENDING_MAINTENANCE)
        ages = [
            age_in_years(e.purchase_date, now) for e in equipment if e.purchase_date is not None
        ]

        metrics = EquipmentMetrics(
            total_equipment=len(equipment),
            operational_equipment=with_status(EquipmentStatus.OPERATIONAL),
            maintenance_due=overdue,
            under_maintenance=with_status(EquipmentStatus.MAINTENANCE),
            out_of_order=with_status(EquipmentStatus.OUT_OF_ORDER),
            calibration_due=with_status(EquipmentStatus.CALIBRATION),
            total_maintenance_cost=completed_cost,
            pending_maintenance_cost=pending_cost,
            avg_utilization=mean(e.utilization_rate for e in equipment),
            avg_age=mean(ages),
            operational_rate=rate(equipment, lambda e: e.status == EquipmentStatus.OPERATIONAL),
        )

        if overdue:
            logger.info("Equipment with overdue maintenance", count=overdue)
        return metrics

    def filter_equipment(
        self,
        equipment: Sequence[Equipment],
        type: str | None = None,
        status: str | None = None,
        search: str | None = None,
    ) -> list[Equipment]:
        """Filter by type, status and a case-insensitive name substring."""
        needle = search.strip().lower() if search else ""
        return [
            item for item in equipment
            if (type in (None, ALL) or item.type.value == type)
            and (status in (None, ALL) or item.status.value == status)
            and needle in item.name.lower()
        ]

    def maintenance_overview(
        self,
        equipment: Sequence[Equipment],
        now: datetime,
    ) -> list[EquipmentMaintenanceStatus]:
        """Each piece of equipment with its maintenance classification."""
        overview = []
        for item in equipment:
            days = None
            if item.next_maintenance is not None:
                days = (item.next_maintenance - now).days
            overview.append(
                EquipmentMaintenanceStatus(
                    equipment=item,
                    maintenance_status=self.maintenance_status(item, now),
                    days_until_due=days,
                )
            )
        return overview


def get_equipment_service() -> EquipmentService:
    """Get an equipment service configured from settings."""
    settings = get_settings()
    return EquipmentService(due_soon_days=settings.due_soon_days)
