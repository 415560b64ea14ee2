"""Test configuration and shared fixtures."""

import json
from datetime import datetime, timezone

import pytest

from config.config import DEFAULT_SEED_PATH
from models.lab_models import Equipment, LabOrder, QCTest

# Day after the last seeded QC test
NOW = datetime(2024, 1, 16, tzinfo=timezone.utc)


@pytest.fixture
def now():
    """Pinned reference time."""
    return NOW


@pytest.fixture
def seed_data():
    """Raw seed fixture shipped with the data client."""
    with open(DEFAULT_SEED_PATH, "r", encoding="utf-8") as f:
        return json.load(f)


@pytest.fixture
def make_qc_test():
    """Factory for QC tests with sensible defaults."""
    counter = {"n": 0}

    def _make(**overrides):
        counter["n"] += 1
        data = {
            "id": str(counter["n"]),
            "test_name": "Glucose Control",
            "type": "internal",
            "target_value": 100,
            "acceptable_range_min": 95,
            "acceptable_range_max": 105,
            "actual_value": 98,
            "status": "passed",
            "performed_date": "2024-01-15",
        }
        data.update(overrides)
        return QCTest.model_validate(data)

    return _make


@pytest.fixture
def make_equipment():
    """Factory for equipment with sensible defaults."""
    counter = {"n": 0}

    def _make(**overrides):
        counter["n"] += 1
        data = {
            "id": str(counter["n"]),
            "name": "Hematology Analyzer",
            "type": "analyzer",
            "status": "operational",
            "purchase_date": "2022-03-15",
            "next_maintenance": "2024-04-10",
            "utilization_rate": 80,
        }
        data.update(overrides)
        return Equipment.model_validate(data)

    return _make


@pytest.fixture
def make_lab_order():
    """Factory for lab orders with sensible defaults."""
    counter = {"n": 0}

    def _make(**overrides):
        counter["n"] += 1
        data = {
            "id": str(counter["n"]),
            "patient_id": "P1",
            "test_type": "blood",
            "test_name": "Complete Blood Count",
            "status": "pending",
            "priority": "routine",
            "ordered_date": "2024-01-14T10:00:00Z",
        }
        data.update(overrides)
        return LabOrder.model_validate(data)

    return _make
