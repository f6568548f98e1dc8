"""
receiptflow - FastAPI Application.

Main entry point for the inbox/OCR API consumed by the UI.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from receiptflow import __version__
from receiptflow.api.schemas import error_payload
from receiptflow.core.config import configure_logging, get_settings
from receiptflow.core.exceptions import (
    DocumentNotFoundError,
    DuplicateDocumentError,
    ReceiptflowError,
    RecordNotFoundError,
    RevertBlockedError,
    StateConflictError,
    UploadRejectedError,
)
from receiptflow.db import close_database, init_database
from receiptflow.services.runtime import build_runtime

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    settings = get_settings()
    configure_logging(settings)
    logger.info("Starting receiptflow...")
    logger.info(f"Server: {settings.server.host}:{settings.server.port}")

    db = await init_database()
    logger.info("Database initialized")

    runtime = build_runtime(db, settings)
    app.state.runtime = runtime

    pending_task = None
    if settings.watcher.process_pending_on_start:
        pending_task = asyncio.create_task(runtime.orchestrator.process_pending())

    if settings.watcher.enabled:
        runtime.watcher.start()
    else:
        logger.info("Inbox watcher disabled; use POST /api/watcher/scan to scan manually")

    yield

    logger.info("Shutting down receiptflow...")
    await runtime.watcher.stop()
    if pending_task is not None and not pending_task.done():
        pending_task.cancel()
        try:
            await pending_task
        except asyncio.CancelledError:
            pass
    await close_database()


def register_exception_handlers(app: FastAPI) -> None:
    """Map domain errors onto HTTP status codes."""

    @app.exception_handler(ReceiptflowError)
    async def receiptflow_error_handler(request: Request, exc: ReceiptflowError):
        logger.error(f"Unhandled {exc.__class__.__name__} on {request.url.path}: {exc}")
        return JSONResponse(status_code=500, content=error_payload(exc))

    @app.exception_handler(DocumentNotFoundError)
    @app.exception_handler(RecordNotFoundError)
    async def not_found_handler(request: Request, exc: ReceiptflowError):
        return JSONResponse(status_code=404, content=error_payload(exc))

    @app.exception_handler(StateConflictError)
    @app.exception_handler(RevertBlockedError)
    @app.exception_handler(DuplicateDocumentError)
    async def conflict_handler(request: Request, exc: ReceiptflowError):
        return JSONResponse(status_code=409, content=error_payload(exc))

    @app.exception_handler(UploadRejectedError)
    async def upload_rejected_handler(request: Request, exc: UploadRejectedError):
        return JSONResponse(status_code=400, content=error_payload(exc))


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="receiptflow",
        description="Inbox watcher with vision-model OCR for bills and receipts",
        version=__version__,
        docs_url="/docs" if settings.server.debug else None,
        redoc_url="/redoc" if settings.server.debug else None,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.server.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    from receiptflow.api.routes import (
        attempts_router,
        bills_router,
        documents_router,
        health_router,
        receipts_router,
        system_router,
    )

    app.include_router(health_router, tags=["Health"])
    app.include_router(documents_router, prefix="/api/documents", tags=["Documents"])
    app.include_router(bills_router, prefix="/api/bills", tags=["Bills"])
    app.include_router(receipts_router, prefix="/api/receipts", tags=["Receipts"])
    app.include_router(attempts_router, prefix="/api/attempts", tags=["OCR Attempts"])
    app.include_router(system_router, prefix="/api", tags=["System"])

    return app


# Create the application instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "receiptflow.api.app:app",
        host=settings.server.host,
        port=settings.server.port,
        reload=settings.server.debug,
    )
