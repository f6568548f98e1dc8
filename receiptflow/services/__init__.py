"""Services module for receiptflow."""

from receiptflow.services.conversion_service import ConversionService
from receiptflow.services.document_service import DocumentDetail, DocumentService
from receiptflow.services.record_service import RecordService
from receiptflow.services.runtime import Runtime, build_runtime

__all__ = [
    "ConversionService",
    "DocumentDetail",
    "DocumentService",
    "RecordService",
    "Runtime",
    "build_runtime",
]
