"""Models module for receiptflow."""

from receiptflow.models.document import ACTIVE_STATUSES, Document, DocumentStatus
from receiptflow.models.extracted import ExtractedData
from receiptflow.models.ledger import Bill, BillCreate, LedgerRecord, Receipt, ReceiptCreate
from receiptflow.models.ocr_attempt import EntityRef, EntityType, OcrAttempt, OcrAttemptStatus

__all__ = [
    "ACTIVE_STATUSES",
    "Document",
    "DocumentStatus",
    "ExtractedData",
    "Bill",
    "BillCreate",
    "LedgerRecord",
    "Receipt",
    "ReceiptCreate",
    "EntityRef",
    "EntityType",
    "OcrAttempt",
    "OcrAttemptStatus",
]
