import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config.settings import Settings, StoreBackend, get_settings, validate_startup
from errors.handlers import register_exception_handlers
from gps_endpoints import router as gps_router
from health.service import HealthCheckService
from history.service import HistoryQueryService
from ingestion.service import TelemetryIngestionService
from middleware.rate_limiter import setup_rate_limiting
from middleware.request_id import RequestIDMiddleware
from observability.service import ObservabilityService, initialize_observability
from retention.scheduler import RetentionScheduler
from retention.sweeper import RetentionSweeper
from storage.base import TelemetryStore, VehicleDirectory
from storage.elasticsearch import (
    ElasticsearchTelemetryStore,
    ElasticsearchVehicleDirectory,
    create_elasticsearch_client,
    setup_indices,
)
from storage.memory import InMemoryTelemetryStore, InMemoryVehicleDirectory, load_vehicles_file
from vehicles.service import VehicleService

logger = logging.getLogger(__name__)

SERVICE_NAME = "Fleet GPS Telemetry API"
SERVICE_VERSION = "1.0.0"


def _build_stores(
    settings: Settings,
    observability: Optional[ObservabilityService] = None
) -> tuple[VehicleDirectory, TelemetryStore, Optional[object]]:
    """Create the vehicle directory and telemetry store for the configured backend."""
    if settings.store_backend == StoreBackend.ELASTICSEARCH:
        client = create_elasticsearch_client(settings)
        return (
            ElasticsearchVehicleDirectory(client, settings.vehicles_index, observability),
            ElasticsearchTelemetryStore(
                client, settings.gps_logs_index, settings.sequence_index, observability
            ),
            client,
        )

    vehicles = load_vehicles_file(settings.vehicles_seed_file) if settings.vehicles_seed_file else ()
    return InMemoryVehicleDirectory(vehicles), InMemoryTelemetryStore(), None


def create_app(
    settings: Optional[Settings] = None,
    vehicle_directory: Optional[VehicleDirectory] = None,
    telemetry_store: Optional[TelemetryStore] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Application settings (default: get_settings())
        vehicle_directory: Use this directory instead of the configured backend
        telemetry_store: Use this store instead of the configured backend

    Raises:
        ConfigurationError: If the settings are unusable in this environment
    """
    settings = settings or get_settings()
    validate_startup(settings)

    observability = initialize_observability(settings)

    es_client = None
    if vehicle_directory is None or telemetry_store is None:
        default_directory, default_store, es_client = _build_stores(settings, observability)
        if vehicle_directory is None:
            vehicle_directory = default_directory
        if telemetry_store is None:
            telemetry_store = default_store

    vehicle_service = VehicleService(vehicle_directory)
    ingestion_service = TelemetryIngestionService(vehicle_service, telemetry_store, observability)
    history_service = HistoryQueryService(
        vehicle_service,
        telemetry_store,
        max_page_size=settings.history_max_page_size,
        max_result_window=settings.history_max_result_window
    )
    sweeper = RetentionSweeper(
        telemetry_store,
        retention_days=settings.retention_days,
        observability=observability
    )
    scheduler = RetentionScheduler(sweeper, settings.retention_cron)
    health_check_service = HealthCheckService(telemetry_store, check_timeout=5.0)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            f"Starting {SERVICE_NAME}",
            extra={"extra_data": {
                "environment": settings.environment.value,
                "store_backend": settings.store_backend.value,
            }}
        )
        if es_client is not None:
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, setup_indices, es_client, settings)
        if settings.retention_enabled:
            scheduler.start()

        yield

        await scheduler.stop()
        if es_client is not None:
            es_client.close()
        logger.info(f"Shutting down {SERVICE_NAME}")

    app = FastAPI(title=SERVICE_NAME, version=SERVICE_VERSION, lifespan=lifespan)

    app.state.settings = settings
    app.state.vehicle_service = vehicle_service
    app.state.ingestion_service = ingestion_service
    app.state.history_service = history_service
    app.state.retention_sweeper = sweeper
    app.state.retention_scheduler = scheduler
    app.state.health_check_service = health_check_service

    register_exception_handlers(app)

    # Only configured origins, no wildcards
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=[
            "Accept",
            "Accept-Language",
            "Content-Language",
            "Content-Type",
            "X-Request-ID",
            "X-Requested-With",
        ],
        expose_headers=["X-Request-ID", "Retry-After"],
        max_age=600,
    )

    setup_rate_limiting(
        app,
        requests_per_minute=settings.rate_limit_requests_per_minute,
        enabled=settings.rate_limit_enabled
    )

    # Outermost, so rate-limited responses carry the request ID too
    app.add_middleware(RequestIDMiddleware)

    app.include_router(gps_router)

    @app.get("/health")
    async def health_basic():
        """Basic health check: the service is accepting requests."""
        result = await health_check_service.check_health()
        return {
            "status": result["status"],
            "service": SERVICE_NAME,
            "version": SERVICE_VERSION,
            "timestamp": result["timestamp"]
        }

    @app.get("/health/ready")
    async def health_ready():
        """
        Readiness check against the telemetry store.

        Returns 503 with the failure reason when the store does not answer.
        """
        health_status = await health_check_service.check_readiness()
        response_data = {
            "service": SERVICE_NAME,
            "version": SERVICE_VERSION,
            **health_status.to_dict(),
        }

        if not health_status.is_healthy:
            response_data["failure_reasons"] = [
                {"dependency": dep.name, "error": dep.error}
                for dep in health_status.dependencies
                if not dep.healthy
            ]
            return JSONResponse(status_code=503, content=response_data)

        return response_data

    @app.get("/health/live")
    async def health_live():
        result = await health_check_service.check_liveness()
        return {
            "status": result["status"],
            "service": SERVICE_NAME,
            "version": SERVICE_VERSION,
            "timestamp": result["timestamp"]
        }

    return app


if __name__ == "__main__":
    import uvicorn
    port = get_settings().port
    uvicorn.run("main:create_app", factory=True, host="0.0.0.0", port=port, log_level="info")
