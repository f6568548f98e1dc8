"""
Custom exceptions for receiptflow.
"""

from typing import Any


class ReceiptflowError(Exception):
    """Base exception for all receiptflow errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigurationError(ReceiptflowError):
    """Configuration-related errors."""
    pass


class ProcessingError(ReceiptflowError):
    """Document processing errors."""
    pass


class OCRError(ProcessingError):
    """OCR extraction errors (unusable provider response)."""
    pass


class StorageError(ReceiptflowError):
    """File storage errors."""
    pass


class DuplicateDocumentError(ReceiptflowError):
    """A document with the same content hash already exists."""

    def __init__(self, content_hash: str):
        super().__init__(
            f"Document with content hash {content_hash} already exists",
            {"content_hash": content_hash},
        )
        self.content_hash = content_hash


class StateConflictError(ReceiptflowError):
    """An operation is not allowed in the entity's current state."""

    def __init__(self, current: str, attempted: str, entity_id: str | None = None):
        message = f"Cannot {attempted} from state {current}"
        if entity_id:
            message = f"{message} (document {entity_id})"
        super().__init__(
            message,
            {"current_state": current, "attempted": attempted, "entity_id": entity_id},
        )
        self.current = current
        self.attempted = attempted
        self.entity_id = entity_id


class RevertBlockedError(ReceiptflowError):
    """A bill or receipt cannot be reverted or deleted."""

    def __init__(self, message: str, entity_id: str):
        super().__init__(message, {"entity_id": entity_id})
        self.entity_id = entity_id


class DocumentNotFoundError(ReceiptflowError):
    """Document not found error."""

    def __init__(self, document_id: str):
        super().__init__(f"Document not found: {document_id}", {"document_id": document_id})
        self.document_id = document_id


class RecordNotFoundError(ReceiptflowError):
    """Bill or receipt not found error."""

    def __init__(self, kind: str, record_id: str):
        super().__init__(f"{kind.title()} not found: {record_id}", {"kind": kind, "record_id": record_id})
        self.kind = kind
        self.record_id = record_id


class UploadRejectedError(ReceiptflowError):
    """An uploaded file failed validation."""

    def __init__(self, message: str, code: str, details: dict[str, Any] | None = None):
        super().__init__(message, {"code": code, **(details or {})})
        self.code = code
