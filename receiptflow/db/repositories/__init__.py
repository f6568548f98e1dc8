"""Repository modules for database operations."""

from receiptflow.db.repositories.document_repository import DocumentRepository
from receiptflow.db.repositories.ledger_repository import BillRepository, ReceiptRepository
from receiptflow.db.repositories.ocr_attempt_repository import OcrAttemptRepository

__all__ = [
    "DocumentRepository",
    "BillRepository",
    "ReceiptRepository",
    "OcrAttemptRepository",
]
