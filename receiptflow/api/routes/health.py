"""Health check routes."""

from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter

from receiptflow import __version__
from receiptflow.api.deps import RuntimeDep

router = APIRouter()


def _utcnow() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


@router.get("/health")
async def health_check() -> dict[str, Any]:
    """Basic health check endpoint."""
    return {
        "status": "healthy",
        "timestamp": _utcnow().isoformat(),
        "service": "receiptflow",
        "version": __version__,
    }


@router.get("/health/detailed")
async def detailed_health_check(runtime: RuntimeDep) -> dict[str, Any]:
    """Detailed health check with component status."""
    status = {
        "status": "healthy",
        "timestamp": _utcnow().isoformat(),
        "services": {},
    }

    # Check database
    try:
        await runtime.db.fetch_one("SELECT 1")
        status["services"]["database"] = {"status": "healthy"}
    except Exception as e:
        status["services"]["database"] = {"status": "unhealthy", "error": str(e)}
        status["status"] = "degraded"

    # Check inbox
    watcher = runtime.watcher
    if watcher.is_inbox_accessible():
        status["services"]["inbox"] = {"status": "healthy", "path": str(watcher.inbox_path)}
    else:
        status["services"]["inbox"] = {
            "status": "unhealthy",
            "path": str(watcher.inbox_path),
            "error": "Inbox missing or not readable",
        }
        status["status"] = "degraded"

    # Check OCR engines
    engines = runtime.orchestrator.available_engine_names()
    if engines:
        status["services"]["ocr"] = {"status": "healthy", "engines": engines}
    else:
        status["services"]["ocr"] = {"status": "unhealthy", "error": "No OCR engine configured"}
        status["status"] = "degraded"

    return status
