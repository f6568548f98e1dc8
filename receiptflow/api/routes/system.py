"""Watcher and OCR engine routes."""

from typing import Any

from fastapi import APIRouter

from receiptflow.api.deps import RuntimeDep
from receiptflow.ocr.registry import first_available

router = APIRouter()


@router.post("/watcher/scan")
async def trigger_scan(runtime: RuntimeDep) -> dict[str, Any]:
    """Scan the inbox now. Returns a skipped report if a scan is running."""
    report = await runtime.watcher.trigger_scan()
    return report.to_dict()


@router.get("/watcher/status")
async def watcher_status(runtime: RuntimeDep) -> dict[str, Any]:
    watcher = runtime.watcher
    return {
        "enabled": runtime.settings.watcher.enabled,
        "running": watcher.is_running,
        "scanning": watcher.is_scanning,
        "inbox_path": str(watcher.inbox_path),
        "inbox_accessible": watcher.is_inbox_accessible(),
        "interval_seconds": watcher.interval_seconds,
        "max_workers": watcher.max_workers,
        "last_scan": watcher.last_report.to_dict() if watcher.last_report else None,
    }


@router.get("/ocr/engines")
async def ocr_engines(runtime: RuntimeDep) -> dict[str, Any]:
    """Configured OCR engines in priority order."""
    active = first_available(runtime.engines)
    return {
        "fallback_enabled": runtime.orchestrator.fallback_enabled,
        "active": active.name if active else None,
        "engines": [
            {
                "name": engine.name,
                "display_name": engine.display_name,
                "available": engine.is_available(),
            }
            for engine in runtime.engines
        ],
    }
