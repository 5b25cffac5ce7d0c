"""
Health check endpoints
"""
from fastapi import APIRouter, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from datapoint_collector.core.config import get_settings
from datapoint_collector.core.errors import StorageError
from datapoint_collector.core.logging_config import LoggingConfig
from datapoint_collector.utils.datetime_utils import utc_now

logger = LoggingConfig.get_logger(__name__)
router = APIRouter(tags=["health"])

VERSION = "0.1.0"


@router.get("/health")
async def health_check():
    """
    Basic health check endpoint

    Returns:
        dict: Health status
    """
    return {
        "status": "healthy",
        "timestamp": utc_now().isoformat(),
        "service": get_settings().app_name,
    }


@router.get("/health/detailed")
async def detailed_health_check(request: Request):
    """
    Detailed health check with component status

    Returns:
        dict: Health status of storage and collector; 503 if storage is down
    """
    settings = get_settings()
    health_status = {
        "status": "healthy",
        "timestamp": utc_now().isoformat(),
        "service": settings.app_name,
        "version": VERSION,
        "environment": settings.app_env,
        "components": {}
    }

    overall_healthy = True

    storage = getattr(request.app.state, "storage", None)
    if storage is None:
        overall_healthy = False
        health_status["components"]["database"] = {
            "status": "unhealthy",
            "message": "Storage not initialized",
        }
    else:
        try:
            await run_in_threadpool(storage.ping)
            health_status["components"]["database"] = {
                "status": "healthy",
                "message": "Database connection successful"
            }
        except StorageError as e:
            overall_healthy = False
            logger.warning("Health check: database unreachable", extra={"error": str(e)})
            health_status["components"]["database"] = {
                "status": "unhealthy",
                "message": str(e),
                "error": type(e).__name__
            }

    collector = getattr(request.app.state, "collector", None)
    if collector is None:
        health_status["components"]["collector"] = {
            "status": "disabled",
            "message": "Periodic collection is not enabled",
        }
    else:
        health_status["components"]["collector"] = {
            "status": "healthy" if collector.is_running else "stopped",
            "state": collector.state.value,
            "generation": collector.generation,
            "interval_seconds": collector.interval,
        }

    health_status["log_counts"] = LoggingConfig.get_metrics()

    if not overall_healthy:
        health_status["status"] = "unhealthy"
        return JSONResponse(status_code=503, content=health_status)
    return health_status
