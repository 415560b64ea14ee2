"""
In-memory data client for laboratory records.

Stands in for the external REST data service: each entity lives in its own
collection, seeded from a JSON fixture, with list/get/create/update/delete.
Every write is validated through the record models and logged.
"""

import json
import threading
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ValidationError

from config.config import get_settings
from config.logging_config import get_logger
from models.lab_models import (
    ComplianceRecord,
    Equipment,
    LabOrder,
    LabRecord,
    MaintenanceRecord,
    QCTest,
)
from services.errors import DataSourceError, RecordNotFoundError

logger = get_logger(__name__)

RecordT = TypeVar("RecordT", bound=LabRecord)


class EntityCollection(Generic[RecordT]):
    """
    A named collection of records of one type.

    Records are kept in insertion order. Reads return copies so callers
    cannot mutate stored state.
    """

    def __init__(self, name: str, model: type[RecordT], records: list[dict[str, Any]] | None = None):
        self.name = name
        self.model = model
        self._records: list[RecordT] = [model.model_validate(r) for r in records or []]
        self._lock = threading.Lock()
        self._last_id = 0

    def __len__(self) -> int:
        return len(self._records)

    def _next_id(self) -> str:
        # Millisecond ids like the dashboard's client, kept unique within a burst
        candidate = int(time.time() * 1000)
        self._last_id = max(candidate, self._last_id + 1)
        return str(self._last_id)

    def _index_of(self, record_id: str) -> int | None:
        for index, record in enumerate(self._records):
            if record.id == record_id:
                return index
        return None

    def list(self) -> list[RecordT]:
        """Return every record."""
        return [record.model_copy(deep=True) for record in self._records]

    def get(self, record_id: str) -> RecordT | None:
        """Return one record, or None if the id is unknown."""
        index = self._index_of(record_id)
        if index is None:
            return None
        return self._records[index].model_copy(deep=True)

    def require(self, record_id: str) -> RecordT:
        """
        Return one record.

        Raises:
            RecordNotFoundError: If the id is unknown.
        """
        record = self.get(record_id)
        if record is None:
            raise RecordNotFoundError(self.name, record_id)
        return record

    def create(self, data: dict[str, Any] | BaseModel) -> RecordT:
        """
        Add a record with a fresh id and creation timestamp.

        Raises:
            ValidationError: If the data does not form a valid record.
        """
        if isinstance(data, BaseModel):
            data = data.model_dump()
        with self._lock:
            record = self.model.model_validate(
                {**data, "id": self._next_id(), "created_at": datetime.now(timezone.utc)}
            )
            self._records.append(record)
        logger.info("Record created", collection=self.name, id=record.id)
        return record.model_copy(deep=True)

    def update(self, record_id: str, data: dict[str, Any] | BaseModel) -> RecordT | None:
        """
        Merge fields into an existing record and stamp updated_at.

        The id and created_at of the stored record are preserved.

        Returns:
            The updated record, or None if the id is unknown.
        """
        if isinstance(data, BaseModel):
            data = data.model_dump(exclude_unset=True)
        with self._lock:
            index = self._index_of(record_id)
            if index is None:
                logger.warning("Update of unknown record", collection=self.name, id=record_id)
                return None
            current = self._records[index]
            merged = {
                **current.model_dump(),
                **data,
                "id": current.id,
                "created_at": current.created_at,
                "updated_at": datetime.now(timezone.utc),
            }
            record = self.model.model_validate(merged)
            self._records[index] = record
        logger.info("Record updated", collection=self.name, id=record_id)
        return record.model_copy(deep=True)

    def delete(self, record_id: str) -> bool:
        """Remove a record. Returns False if the id is unknown."""
        with self._lock:
            index = self._index_of(record_id)
            if index is None:
                return False
            del self._records[index]
        logger.info("Record deleted", collection=self.name, id=record_id)
        return True


class DataClient:
    """All laboratory collections behind one object."""

    def __init__(self, seed: dict[str, list[dict[str, Any]]] | None = None):
        seed = seed or {}
        self.qc_tests = EntityCollection("QCTest", QCTest, seed.get("qc_tests"))
        self.compliance_records = EntityCollection(
            "ComplianceRecord", ComplianceRecord, seed.get("compliance_records")
        )
        self.equipment = EntityCollection("Equipment", Equipment, seed.get("equipment"))
        self.maintenance_records = EntityCollection(
            "MaintenanceRecord", MaintenanceRecord, seed.get("maintenance_records")
        )
        self.lab_orders = EntityCollection("LabOrder", LabOrder, seed.get("lab_orders"))

    def collection_sizes(self) -> dict[str, int]:
        return {
            "qc_tests": len(self.qc_tests),
            "compliance_records": len(self.compliance_records),
            "equipment": len(self.equipment),
            "maintenance_records": len(self.maintenance_records),
            "lab_orders": len(self.lab_orders),
        }

    @classmethod
    def from_file(cls, path: Path) -> "DataClient":
        """
        Build a client seeded from a JSON fixture.

        Raises:
            DataSourceError: If the file is missing, not JSON, or holds
                invalid records.
        """
        try:
            with open(path, "r", encoding="utf-8") as f:
                seed = json.load(f)
            client = cls(seed)
        except (OSError, json.JSONDecodeError, ValidationError) as e:
            logger.error("Failed to load seed data", path=str(path), error=str(e))
            raise DataSourceError(
                "Seed data could not be loaded",
                details={"path": str(path)},
            ) from e

        logger.info("Data client seeded", path=path.name, **client.collection_sizes())
        return client


# Singleton client instance
_client: DataClient | None = None


def get_data_client() -> DataClient:
    """
    Get or create the data client singleton.

    Returns:
        DataClient seeded from the configured fixture.
    """
    global _client
    if _client is None:
        settings = get_settings()
        _client = DataClient.from_file(settings.seed_data_path)
    return _client


def reset_data_client(client: DataClient | None = None) -> None:
    """Replace (or drop) the singleton, e.g. between tests."""
    global _client
    _client = client
