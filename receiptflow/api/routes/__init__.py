"""API routes module."""

from receiptflow.api.routes.health import router as health_router
from receiptflow.api.routes.documents import router as documents_router
from receiptflow.api.routes.bills import router as bills_router
from receiptflow.api.routes.receipts import router as receipts_router
from receiptflow.api.routes.attempts import router as attempts_router
from receiptflow.api.routes.system import router as system_router

__all__ = [
    "health_router",
    "documents_router",
    "bills_router",
    "receipts_router",
    "attempts_router",
    "system_router",
]
