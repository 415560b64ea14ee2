"""
Lab Quality API - Laboratory Quality Dashboard Backend

Serves the numbers behind the laboratory quality dashboard, computed from
records held by the in-memory data client.

This API provides:
- QC test records, pass rate and week-over-week trend
- QC range checks flagged against operator-entered status
- Compliance metrics
- Equipment metrics and maintenance-due classification
- Equipment and maintenance record upkeep
- Lab order lookup, entry and analytics by date range and category
"""

import time
from contextlib import asynccontextmanager
from datetime import date, datetime, timezone
from uuid import uuid4

from fastapi import Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.exceptions import HTTPException

from config.config import Settings, get_settings
from config.logging_config import configure_logging, get_logger, log_request_context
from database.database import DataClient, get_data_client
from models.lab_models import (
    ComplianceRecord,
    Equipment,
    EquipmentInput,
    LabOrder,
    LabOrderInput,
    MaintenanceRecord,
    MaintenanceRecordInput,
    QCTest,
    QCTestInput,
)
from models.metrics_models import (
    ComplianceMetrics,
    EquipmentMaintenanceStatus,
    EquipmentMetrics,
    LabAnalyticsReport,
    QCAlerts,
    QCMetrics,
    QCTypeShare,
    RangeCheck,
    WorkflowStage,
)
from models.models import (
    ErrorResponse,
    HealthResponse,
    HealthStatus,
    RangeCheckRequest,
    RangeCheckResponse,
)
from services.equipment_service import EquipmentService, get_equipment_service
from services.errors import DataSourceError, LabQualityError, RecordNotFoundError
from services.lab_analytics_service import LabAnalyticsService, get_lab_analytics_service
from services.qc_metrics import is_within_range
from services.quality_control_service import (
    QualityControlService,
    get_quality_control_service,
)

# Configure logging before anything else
configure_logging()
logger = get_logger(__name__)


def get_clock() -> datetime:
    """Current time in UTC. Overridden in tests to pin "now"."""
    return datetime.now(timezone.utc)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Handles startup and shutdown events with proper logging.
    """
    settings = get_settings()

    # Startup
    logger.info(
        "Application starting",
        app_name=settings.app_name,
        version=settings.app_version,
        environment=settings.environment,
        config=settings.get_safe_config_dict(),
    )
    try:
        get_data_client()
    except DataSourceError as e:
        # Keep serving; data routes answer 503 until the source is fixed
        logger.error("Data source unavailable at startup", error=e.message)

    yield

    # Shutdown
    logger.info("Application shutting down")


def _error_response(
    request: Request,
    status_code: int,
    error: str,
    message: str,
    details: dict | list | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        headers=headers,
        content=ErrorResponse(
            error=error,
            message=message,
            details=details,
            request_id=getattr(request.state, "request_id", None),
        ).model_dump(mode="json"),
    )


def create_app(settings: Settings | None = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        settings: Optional settings override for testing.

    Returns:
        Configured FastAPI application.
    """
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.app_name,
        description=__doc__,
        version=settings.app_version,
        lifespan=lifespan,
        docs_url="/docs" if settings.docs_enabled else None,
        redoc_url="/redoc" if settings.docs_enabled else None,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Request logging middleware
    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log all requests with timing and context."""
        request_id = str(uuid4())
        request.state.request_id = request_id
        start_time = time.perf_counter()

        # Bind request context for all logs in this request
        log_request_context(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )

        response = await call_next(request)

        processing_time = int((time.perf_counter() - start_time) * 1000)
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Processing-Time-Ms"] = str(processing_time)

        logger.info(
            "Request completed",
            status_code=response.status_code,
            processing_time_ms=processing_time,
        )

        return response

    # Exception handlers
    @app.exception_handler(LabQualityError)
    async def lab_quality_exception_handler(request: Request, exc: LabQualityError):
        """Map domain errors to their status codes."""
        logger.warning("Request failed", error=exc.error_code, message=exc.message)
        return _error_response(request, exc.status_code, exc.error_code, exc.message, exc.details)

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        """Wrap routing and HTTP errors (unknown path, wrong method) in ErrorResponse."""
        return _error_response(
            request, exc.status_code, f"HTTP_{exc.status_code}", str(exc.detail),
            headers=exc.headers,
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        """Report invalid request bodies and parameters."""
        return _error_response(
            request, 422, "VALIDATION_ERROR", "Request validation failed",
            details=jsonable_errors(exc.errors()),
        )

    @app.exception_handler(ValidationError)
    async def record_validation_handler(request: Request, exc: ValidationError):
        """Report records that became invalid after a merge."""
        return _error_response(
            request, 422, "VALIDATION_ERROR", "Record validation failed",
            details=jsonable_errors(exc.errors()),
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Handle unexpected exceptions."""
        logger.exception("Unhandled exception", error=str(exc))
        return _error_response(request, 500, "INTERNAL_ERROR", "An unexpected error occurred")

    # Register routes
    register_routes(app)

    return app


def jsonable_errors(errors: list[dict]) -> list[dict]:
    """Keep only the JSON-safe parts of pydantic error entries."""
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", ""), "type": err.get("type", "")}
        for err in errors
    ]


def register_routes(app: FastAPI) -> None:
    """Register all API routes."""

    @app.get("/", tags=["Root"])
    async def root():
        """Root endpoint with API information."""
        settings = get_settings()
        return {
            "name": settings.app_name,
            "version": settings.app_version,
            "status": "operational",
            "docs": "/docs" if settings.docs_enabled else "disabled",
        }

    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health_check(settings: Settings = Depends(get_settings)) -> HealthResponse:
        """
        Health check endpoint for monitoring.

        Returns system health status and component checks.
        """
        record_counts: dict[str, int] = {}
        try:
            record_counts = get_data_client().collection_sizes()
            data_source_ok = True
        except DataSourceError:
            data_source_ok = False

        checks = {
            "api": True,
            "data_source": data_source_ok,
        }

        # Determine overall status
        if all(checks.values()):
            status = HealthStatus.HEALTHY
        elif checks["api"]:
            status = HealthStatus.DEGRADED
        else:
            status = HealthStatus.UNHEALTHY

        return HealthResponse(
            status=status,
            version=settings.app_version,
            environment=settings.environment,
            checks=checks,
            record_counts=record_counts,
        )

    # ------------------------------------------------------------------
    # Quality control
    # ------------------------------------------------------------------

    @app.get("/api/v1/qc/tests", response_model=list[QCTest], tags=["Quality Control"])
    async def list_qc_tests(
        qc_type: str | None = Query(default=None, alias="type"),
        status: str | None = Query(default=None),
        search: str | None = Query(default=None),
        client: DataClient = Depends(get_data_client),
        service: QualityControlService = Depends(get_quality_control_service),
    ) -> list[QCTest]:
        """
        List QC tests.

        Args:
            type: QC type, or "all".
            status: QC status, or "all".
            search: Case-insensitive test name substring.
        """
        return service.filter_qc_tests(client.qc_tests.list(), qc_type, status, search)

    @app.get("/api/v1/qc/tests/{test_id}", response_model=QCTest, tags=["Quality Control"])
    async def get_qc_test(test_id: str, client: DataClient = Depends(get_data_client)) -> QCTest:
        """Get one QC test."""
        return client.qc_tests.require(test_id)

    @app.post("/api/v1/qc/tests", response_model=QCTest, status_code=201, tags=["Quality Control"])
    async def create_qc_test(
        payload: QCTestInput,
        client: DataClient = Depends(get_data_client),
    ) -> QCTest:
        """Record a new QC test. The status is stored as entered."""
        return client.qc_tests.create(payload)

    @app.put("/api/v1/qc/tests/{test_id}", response_model=QCTest, tags=["Quality Control"])
    async def update_qc_test(
        test_id: str,
        payload: QCTestInput,
        client: DataClient = Depends(get_data_client),
    ) -> QCTest:
        """Update a QC test."""
        updated = client.qc_tests.update(test_id, payload)
        if updated is None:
            raise RecordNotFoundError(client.qc_tests.name, test_id)
        return updated

    @app.delete("/api/v1/qc/tests/{test_id}", status_code=204, tags=["Quality Control"])
    async def delete_qc_test(test_id: str, client: DataClient = Depends(get_data_client)) -> None:
        """Delete a QC test."""
        if not client.qc_tests.delete(test_id):
            raise RecordNotFoundError(client.qc_tests.name, test_id)

    @app.get("/api/v1/qc/metrics", response_model=QCMetrics, tags=["Quality Control"])
    async def qc_metrics(
        now: datetime = Depends(get_clock),
        client: DataClient = Depends(get_data_client),
        service: QualityControlService = Depends(get_quality_control_service),
    ) -> QCMetrics:
        """
        Headline QC numbers with the week-over-week pass-rate trend.

        When either trend window is empty its rate is 0 and
        trend.insufficient_data is set.
        """
        return service.get_qc_metrics(client.qc_tests.list(), now)

    @app.get(
        "/api/v1/qc/type-distribution",
        response_model=list[QCTypeShare],
        tags=["Quality Control"],
    )
    async def qc_type_distribution(
        client: DataClient = Depends(get_data_client),
        service: QualityControlService = Depends(get_quality_control_service),
    ) -> list[QCTypeShare]:
        """Share of QC tests per type."""
        return service.type_distribution(client.qc_tests.list())

    @app.get("/api/v1/qc/range-checks", response_model=list[RangeCheck], tags=["Quality Control"])
    async def qc_range_checks(
        client: DataClient = Depends(get_data_client),
        service: QualityControlService = Depends(get_quality_control_service),
    ) -> list[RangeCheck]:
        """Range check of every QC test, flagging disagreement with its status."""
        return service.range_checks(client.qc_tests.list())

    @app.post("/api/v1/qc/range-check", response_model=RangeCheckResponse, tags=["Quality Control"])
    async def qc_range_check(payload: RangeCheckRequest) -> RangeCheckResponse:
        """Check one measured value against an inclusive range."""
        return RangeCheckResponse(
            actual=payload.actual,
            minimum=payload.minimum,
            maximum=payload.maximum,
            within_range=is_within_range(payload.actual, payload.minimum, payload.maximum),
        )

    @app.get("/api/v1/qc/alerts", response_model=QCAlerts, tags=["Quality Control"])
    async def qc_alerts(
        client: DataClient = Depends(get_data_client),
        service: QualityControlService = Depends(get_quality_control_service),
    ) -> QCAlerts:
        """Failed and pending tests plus non-compliant and warning areas."""
        return service.get_alerts(client.qc_tests.list(), client.compliance_records.list())

    # ------------------------------------------------------------------
    # Compliance
    # ------------------------------------------------------------------

    @app.get(
        "/api/v1/compliance/records",
        response_model=list[ComplianceRecord],
        tags=["Compliance"],
    )
    async def list_compliance_records(
        client: DataClient = Depends(get_data_client),
    ) -> list[ComplianceRecord]:
        """List compliance records."""
        return client.compliance_records.list()

    @app.get("/api/v1/compliance/metrics", response_model=ComplianceMetrics, tags=["Compliance"])
    async def compliance_metrics(
        client: DataClient = Depends(get_data_client),
        service: QualityControlService = Depends(get_quality_control_service),
    ) -> ComplianceMetrics:
        """Headline compliance numbers."""
        return service.get_compliance_metrics(client.compliance_records.list())

    # ------------------------------------------------------------------
    # Equipment
    # ------------------------------------------------------------------

    @app.get("/api/v1/equipment", response_model=list[Equipment], tags=["Equipment"])
    async def list_equipment(
        equipment_type: str | None = Query(default=None, alias="type"),
        status: str | None = Query(default=None),
        search: str | None = Query(default=None),
        client: DataClient = Depends(get_data_client),
        service: EquipmentService = Depends(get_equipment_service),
    ) -> list[Equipment]:
        """List equipment, filtered by type, status and name."""
        return service.filter_equipment(client.equipment.list(), equipment_type, status, search)

    @app.get("/api/v1/equipment/metrics", response_model=EquipmentMetrics, tags=["Equipment"])
    async def equipment_metrics(
        now: datetime = Depends(get_clock),
        client: DataClient = Depends(get_data_client),
        service: EquipmentService = Depends(get_equipment_service),
    ) -> EquipmentMetrics:
        """Headline equipment numbers and maintenance costs."""
        return service.get_equipment_metrics(
            client.equipment.list(), client.maintenance_records.list(), now
        )

    @app.get(
        "/api/v1/equipment/maintenance-status",
        response_model=list[EquipmentMaintenanceStatus],
        tags=["Equipment"],
    )
    async def equipment_maintenance_status(
        now: datetime = Depends(get_clock),
        client: DataClient = Depends(get_data_client),
        service: EquipmentService = Depends(get_equipment_service),
    ) -> list[EquipmentMaintenanceStatus]:
        """Every piece of equipment with overdue / due_soon / scheduled / unknown."""
        return service.maintenance_overview(client.equipment.list(), now)

    @app.get(
        "/api/v1/equipment/maintenance-records",
        response_model=list[MaintenanceRecord],
        tags=["Equipment"],
    )
    async def list_maintenance_records(
        equipment_id: str | None = Query(default=None),
        client: DataClient = Depends(get_data_client),
    ) -> list[MaintenanceRecord]:
        """List maintenance records, optionally for one piece of equipment."""
        records = client.maintenance_records.list()
        if equipment_id is not None:
            records = [r for r in records if r.equipment_id == equipment_id]
        return records

    @app.post(
        "/api/v1/equipment/maintenance-records",
        response_model=MaintenanceRecord,
        status_code=201,
        tags=["Equipment"],
    )
    async def create_maintenance_record(
        payload: MaintenanceRecordInput,
        client: DataClient = Depends(get_data_client),
    ) -> MaintenanceRecord:
        """Schedule maintenance for an existing piece of equipment."""
        client.equipment.require(payload.equipment_id)
        return client.maintenance_records.create(payload)

    @app.put(
        "/api/v1/equipment/maintenance-records/{record_id}",
        response_model=MaintenanceRecord,
        tags=["Equipment"],
    )
    async def update_maintenance_record(
        record_id: str,
        payload: MaintenanceRecordInput,
        client: DataClient = Depends(get_data_client),
    ) -> MaintenanceRecord:
        """Update a maintenance record, e.g. to mark it completed with its cost."""
        client.equipment.require(payload.equipment_id)
        updated = client.maintenance_records.update(record_id, payload)
        if updated is None:
            raise RecordNotFoundError(client.maintenance_records.name, record_id)
        return updated

    @app.post("/api/v1/equipment", response_model=Equipment, status_code=201, tags=["Equipment"])
    async def create_equipment(
        payload: EquipmentInput,
        client: DataClient = Depends(get_data_client),
    ) -> Equipment:
        """Register a piece of equipment."""
        return client.equipment.create(payload)

    @app.get("/api/v1/equipment/{equipment_id}", response_model=Equipment, tags=["Equipment"])
    async def get_equipment(
        equipment_id: str,
        client: DataClient = Depends(get_data_client),
    ) -> Equipment:
        """Get one piece of equipment."""
        return client.equipment.require(equipment_id)

    @app.put("/api/v1/equipment/{equipment_id}", response_model=Equipment, tags=["Equipment"])
    async def update_equipment(
        equipment_id: str,
        payload: EquipmentInput,
        client: DataClient = Depends(get_data_client),
    ) -> Equipment:
        """Update a piece of equipment."""
        updated = client.equipment.update(equipment_id, payload)
        if updated is None:
            raise RecordNotFoundError(client.equipment.name, equipment_id)
        return updated

    # ------------------------------------------------------------------
    # Lab orders
    # ------------------------------------------------------------------

    @app.get("/api/v1/lab-orders", response_model=list[LabOrder], tags=["Lab Orders"])
    async def list_lab_orders(
        patient_id: str | None = Query(default=None),
        doctor_id: str | None = Query(default=None),
        status: str | None = Query(default=None),
        client: DataClient = Depends(get_data_client),
        service: LabAnalyticsService = Depends(get_lab_analytics_service),
    ) -> list[LabOrder]:
        """
        List lab orders.

        Args:
            patient_id: Only orders for this patient.
            doctor_id: Only orders from this clinician.
            status: Workflow stage, or "all".
        """
        return service.search_orders(client.lab_orders.list(), patient_id, doctor_id, status)

    @app.post("/api/v1/lab-orders", response_model=LabOrder, status_code=201, tags=["Lab Orders"])
    async def create_lab_order(
        payload: LabOrderInput,
        client: DataClient = Depends(get_data_client),
    ) -> LabOrder:
        """Place a lab order."""
        return client.lab_orders.create(payload)

    @app.get(
        "/api/v1/lab-orders/workflow-stages",
        response_model=list[WorkflowStage],
        tags=["Lab Orders"],
    )
    async def lab_order_workflow_stages() -> list[WorkflowStage]:
        """Display labels of lab order workflow stages."""
        return LabAnalyticsService.workflow_stages()

    @app.get(
        "/api/v1/lab-orders/analytics",
        response_model=LabAnalyticsReport,
        tags=["Lab Orders"],
    )
    async def lab_order_analytics(
        range_key: str | None = Query(default=None, alias="range"),
        start: date | None = Query(default=None),
        end: date | None = Query(default=None),
        category: str | None = Query(default=None),
        now: datetime = Depends(get_clock),
        settings: Settings = Depends(get_settings),
        client: DataClient = Depends(get_data_client),
        service: LabAnalyticsService = Depends(get_lab_analytics_service),
    ) -> LabAnalyticsReport:
        """
        Lab order analytics for a date range.

        Args:
            range: 7d, 30d, 90d, 1y or custom.
            start: Start date for a custom range.
            end: End date for a custom range.
            category: Order category, or "all".
        """
        return service.build_report(
            client.lab_orders.list(),
            now,
            range_key or settings.default_analytics_range,
            start,
            end,
            category,
        )

    @app.get("/api/v1/lab-orders/analytics/export", tags=["Lab Orders"])
    async def export_lab_order_analytics(
        range_key: str | None = Query(default=None, alias="range"),
        start: date | None = Query(default=None),
        end: date | None = Query(default=None),
        category: str | None = Query(default=None),
        now: datetime = Depends(get_clock),
        settings: Settings = Depends(get_settings),
        client: DataClient = Depends(get_data_client),
        service: LabAnalyticsService = Depends(get_lab_analytics_service),
    ) -> JSONResponse:
        """Lab order analytics as a downloadable JSON file."""
        report = service.build_report(
            client.lab_orders.list(),
            now,
            range_key or settings.default_analytics_range,
            start,
            end,
            category,
        )
        filename = service.export_filename(now)
        return JSONResponse(
            content=service.export_report(report),
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )

    @app.get("/api/v1/lab-orders/{order_id}", response_model=LabOrder, tags=["Lab Orders"])
    async def get_lab_order(order_id: str, client: DataClient = Depends(get_data_client)) -> LabOrder:
        """Get one lab order."""
        return client.lab_orders.require(order_id)

    @app.put("/api/v1/lab-orders/{order_id}", response_model=LabOrder, tags=["Lab Orders"])
    async def update_lab_order(
        order_id: str,
        payload: LabOrderInput,
        client: DataClient = Depends(get_data_client),
    ) -> LabOrder:
        """Update a lab order, e.g. to move it to the next workflow stage."""
        updated = client.lab_orders.update(order_id, payload)
        if updated is None:
            raise RecordNotFoundError(client.lab_orders.name, order_id)
        return updated


# Create the application instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
