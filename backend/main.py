"""
Main FastAPI application entry point
"""
import asyncio
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from datapoint_collector.api.routes import datapoints, health, metrics
from datapoint_collector.api.routes.health import VERSION
from datapoint_collector.core.config import Settings, get_settings
from datapoint_collector.core.database import (create_tables, dispose_engine,
                                               get_engine)
from datapoint_collector.core.errors import (CollectorError,
                                             RangeValidationError,
                                             StorageError)
from datapoint_collector.core.logging_config import LoggingConfig
from datapoint_collector.core.metrics import set_app_info
from datapoint_collector.core.middleware import LoggingContextMiddleware
from datapoint_collector.core.middleware_metrics import MetricsMiddleware
from datapoint_collector.core.producer_client import ProducerClient
from datapoint_collector.services.admission import AdmissionPolicy
from datapoint_collector.services.datapoint_service import (DataPointService,
                                                            build_collector)
from datapoint_collector.services.datapoint_store import SQLDataPointStorage

# Configure logging first
LoggingConfig.configure()

logger = LoggingConfig.get_logger(__name__)


def build_service(settings: Settings) -> DataPointService:
    """Wire storage, producer client and admission policy from settings"""
    engine = get_engine()
    if settings.database_auto_create:
        create_tables(engine)

    storage = SQLDataPointStorage(engine, batch_size=settings.query_stream_batch_size)
    producer = ProducerClient(settings.producer_url, timeout=settings.producer_timeout_seconds)
    policy = AdmissionPolicy.from_settings(
        settings.admission_max_age_seconds,
        settings.blocked_tags_list,
    )
    return DataPointService(storage, producer, policy)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan events for FastAPI app"""
    settings = get_settings()
    logger.info(f"Starting {settings.app_name} in {settings.app_env} mode...")

    owns_service = getattr(app.state, "datapoint_service", None) is None
    if owns_service:
        service = build_service(settings)
        app.state.datapoint_service = service
        app.state.storage = service.storage
    service = app.state.datapoint_service

    collector = None
    start_task = None
    if app.state.collector_enabled:
        collector = build_collector(service, settings.poll_interval_seconds)
        app.state.collector = collector
        # the first collection runs in the background so startup never waits on the producer
        start_task = asyncio.create_task(collector.start())

    yield

    logger.info(f"Shutting down {settings.app_name}...")

    if collector is not None:
        logger.info("Stopping data collector")
        await collector.stop()
        if not start_task.done():
            start_task.cancel()
        await asyncio.wait([start_task])

    if owns_service:
        await service.producer.aclose()
        logger.info("Closing database engine")
        dispose_engine()

    logger.info("Application shutdown complete")


def create_app(
    service: Optional[DataPointService] = None,
    collector_enabled: Optional[bool] = None,
) -> FastAPI:
    """
    Build the FastAPI application

    Args:
        service: pre-built service (tests); built from settings on startup otherwise
        collector_enabled: overrides the collector_enabled setting
    """
    settings = get_settings()
    application = FastAPI(
        title=settings.app_name,
        description="Collects datapoints from a producer and serves time-range queries",
        version=VERSION,
        lifespan=lifespan,
    )
    set_app_info(settings.app_name, settings.app_env, VERSION)

    application.state.datapoint_service = service
    application.state.storage = service.storage if service is not None else None
    application.state.collector = None
    application.state.collector_enabled = (
        settings.collector_enabled if collector_enabled is None else collector_enabled
    )

    application.add_middleware(LoggingContextMiddleware)
    application.add_middleware(MetricsMiddleware)

    @application.exception_handler(RangeValidationError)
    async def range_validation_handler(request: Request, exc: RangeValidationError):
        return JSONResponse(status_code=400, content={"message": str(exc)})

    @application.exception_handler(StorageError)
    async def storage_error_handler(request: Request, exc: StorageError):
        logger.error(
            "Storage error",
            extra={"error": str(exc), "path": request.url.path}
        )
        return JSONResponse(
            status_code=500,
            content={"message": f"failed to query datapoints: {exc}"}
        )

    @application.exception_handler(CollectorError)
    async def collector_error_handler(request: Request, exc: CollectorError):
        logger.error(
            "Unhandled collector error",
            exc_info=exc,
            extra={"error": str(exc), "error_type": type(exc).__name__}
        )
        return JSONResponse(status_code=500, content={"message": str(exc)})

    @application.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Global exception handler to log all unhandled errors"""
        logger.error(
            "Unhandled exception",
            exc_info=exc,
            extra={
                "error": str(exc),
                "error_type": type(exc).__name__,
            }
        )
        return JSONResponse(status_code=500, content={"message": "internal server error"})

    application.include_router(datapoints.router)
    application.include_router(health.router)
    application.include_router(metrics.router)

    return application


app = create_app()


if __name__ == "__main__":
    import uvicorn
    settings = get_settings()
    uvicorn.run(
        "main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.app_env == "development",
    )
