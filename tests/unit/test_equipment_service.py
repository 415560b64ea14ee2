"""Tests for equipment analytics."""

from datetime import timedelta

from database.database import DataClient
from models.lab_models import MaintenanceRecord
from models.metrics_models import MaintenanceStatus
from services.equipment_service import EquipmentService


def test_equipment_metrics_from_seed(seed_data, now):
    """Headline numbers over the shipped records."""
    client = DataClient(seed_data)

    metrics = EquipmentService().get_equipment_metrics(
        client.equipment.list(), client.maintenance_records.list(), now
    )

    assert metrics.total_equipment == 6
    assert metrics.operational_equipment == 3
    assert metrics.under_maintenance == 1
    assert metrics.out_of_order == 1
    assert metrics.calibration_due == 1
    assert metrics.maintenance_due == 0
    assert metrics.operational_rate == 50
    assert metrics.avg_utilization == 73
    assert metrics.avg_age == 1
    assert metrics.total_maintenance_cost == 800
    assert metrics.pending_maintenance_cost == 1950


def test_operational_rate_rounds_half_up(make_equipment, now):
    """Four of six operational is 67%."""
    equipment = [make_equipment(status="operational") for _ in range(4)]
    equipment += [make_equipment(status="maintenance"), make_equipment(status="retired")]

    metrics = EquipmentService().get_equipment_metrics(equipment, [], now)

    assert metrics.operational_rate == 67


def test_equipment_metrics_empty(now):
    """No equipment means zero averages and rates."""
    metrics = EquipmentService().get_equipment_metrics([], [], now)
    assert metrics.total_equipment == 0
    assert metrics.operational_rate == 0
    assert metrics.avg_utilization == 0
    assert metrics.avg_age == 0


def test_avg_age_skips_missing_purchase_date(make_equipment, now):
    """Equipment without a purchase date does not drag the average down."""
    equipment = [
        make_equipment(purchase_date="2021-08-20"),
        make_equipment(purchase_date=""),
    ]
    metrics = EquipmentService().get_equipment_metrics(equipment, [], now)
    assert metrics.avg_age == 2


def test_overdue_counts_towards_maintenance_due(make_equipment, now):
    """Only equipment past its next maintenance is counted as due."""
    equipment = [
        make_equipment(next_maintenance=(now - timedelta(days=1)).isoformat()),
        make_equipment(next_maintenance=(now + timedelta(days=3)).isoformat()),
        make_equipment(next_maintenance=None),
    ]
    metrics = EquipmentService().get_equipment_metrics(equipment, [], now)
    assert metrics.maintenance_due == 1


def test_cancelled_maintenance_costs_nothing(now):
    """Cancelled work is in neither cost total."""
    records = [
        MaintenanceRecord(id="1", equipment_id="1", type="preventive", cost=100, status="cancelled"),
        MaintenanceRecord(id="2", equipment_id="1", type="preventive", cost=40, status="completed"),
    ]
    metrics = EquipmentService().get_equipment_metrics([], records, now)
    assert metrics.total_maintenance_cost == 40
    assert metrics.pending_maintenance_cost == 0


def test_maintenance_overview(make_equipment, now):
    """Each item is classified with its whole days until due."""
    equipment = [
        make_equipment(next_maintenance=(now - timedelta(days=1)).isoformat()),
        make_equipment(next_maintenance=(now + timedelta(days=3)).isoformat()),
        make_equipment(next_maintenance=(now + timedelta(days=30)).isoformat()),
        make_equipment(next_maintenance=""),
    ]

    overview = EquipmentService().maintenance_overview(equipment, now)

    assert [o.maintenance_status for o in overview] == [
        MaintenanceStatus.OVERDUE,
        MaintenanceStatus.DUE_SOON,
        MaintenanceStatus.SCHEDULED,
        MaintenanceStatus.UNKNOWN,
    ]
    assert [o.days_until_due for o in overview] == [-1, 3, 30, None]


def test_due_soon_threshold_is_configurable(make_equipment, now):
    item = make_equipment(next_maintenance=(now + timedelta(days=10)).isoformat())
    assert EquipmentService(due_soon_days=14).maintenance_status(item, now) == (
        MaintenanceStatus.DUE_SOON
    )
    assert EquipmentService().maintenance_status(item, now) == MaintenanceStatus.SCHEDULED


def test_filter_equipment(seed_data):
    """Filter by type, status and name."""
    service = EquipmentService()
    equipment = DataClient(seed_data).equipment.list()

    assert [e.id for e in service.filter_equipment(equipment, type="analyzer")] == ["1", "4"]
    assert [e.id for e in service.filter_equipment(equipment, type="centrifuge", status="out_of_order")] == ["6"]
    assert [e.id for e in service.filter_equipment(equipment, search="centrifuge")] == ["3", "6"]
    assert len(service.filter_equipment(equipment, type="all", status="all")) == 6
