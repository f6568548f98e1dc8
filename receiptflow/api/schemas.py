"""Response and request schemas shared by the API routes."""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, Field

from receiptflow.models.document import Document
from receiptflow.models.extracted import ExtractedData
from receiptflow.models.ledger import LedgerRecord, Receipt
from receiptflow.models.ocr_attempt import OcrAttempt


class ExtractedResponse(BaseModel):
    """Extracted fields."""
    provider: str | None = None
    amount: Decimal | None = None
    document_date: date | None = Field(default=None, serialization_alias="date")
    currency: str | None = None

    @classmethod
    def from_extracted(cls, extracted: ExtractedData) -> "ExtractedResponse":
        return cls(
            provider=extracted.provider,
            amount=extracted.amount,
            document_date=extracted.document_date,
            currency=extracted.currency,
        )


class AttemptResponse(BaseModel):
    """OCR attempt response."""
    id: UUID
    entity_type: str
    entity_id: UUID
    timestamp: datetime
    engine_used: str
    status: str
    extracted: ExtractedResponse | None = None
    error_message: str | None = None
    raw_response: str | None = None
    processing_duration_ms: int

    @classmethod
    def from_attempt(cls, attempt: OcrAttempt, include_raw: bool = True) -> "AttemptResponse":
        extracted = attempt.extracted
        return cls(
            id=attempt.id,
            entity_type=attempt.entity_type.value,
            entity_id=attempt.entity_id,
            timestamp=attempt.timestamp,
            engine_used=attempt.engine_used,
            status=attempt.status.value,
            extracted=ExtractedResponse.from_extracted(extracted) if extracted else None,
            error_message=attempt.error_message,
            raw_response=attempt.raw_response if include_raw else None,
            processing_duration_ms=attempt.processing_duration_ms,
        )


class DocumentResponse(BaseModel):
    """Document response."""
    id: UUID
    filename: str
    content_type: str
    file_size: int
    content_hash: str
    upload_timestamp: datetime
    status: str
    extracted: ExtractedResponse
    failure_reason: str | None = None
    linked_entity_id: UUID | None = None
    linked_entity_type: str | None = None
    ocr_processed_at: datetime | None = None
    updated_at: datetime

    @classmethod
    def from_document(cls, doc: Document) -> "DocumentResponse":
        return cls(
            id=doc.id,
            filename=doc.filename,
            content_type=doc.content_type,
            file_size=doc.file_size,
            content_hash=doc.content_hash,
            upload_timestamp=doc.upload_timestamp,
            status=doc.status.value,
            extracted=ExtractedResponse.from_extracted(doc.extracted),
            failure_reason=doc.failure_reason,
            linked_entity_id=doc.linked_entity_id,
            linked_entity_type=doc.linked_entity_type.value if doc.linked_entity_type else None,
            ocr_processed_at=doc.ocr_processed_at,
            updated_at=doc.updated_at,
        )


class DocumentDetailResponse(DocumentResponse):
    """Document with its latest OCR attempt."""
    latest_attempt: AttemptResponse | None = None
    attempt_count: int = 0
    allowed_actions: list[str] = []


class DocumentListResponse(BaseModel):
    """Document list response."""
    documents: list[DocumentResponse]
    total: int


class RecordResponse(BaseModel):
    """Bill or receipt response."""
    id: UUID
    kind: str
    filename: str | None = None
    content_hash: str | None = None
    upload_timestamp: datetime | None = None
    extracted: ExtractedResponse
    description: str | None = None
    original_document_id: UUID | None = None
    bill_id: UUID | None = None
    can_revert: bool = False
    created_at: datetime

    @classmethod
    def from_record(cls, record: LedgerRecord, kind: str, can_revert: bool = False) -> "RecordResponse":
        return cls(
            id=record.id,
            kind=kind,
            filename=record.filename,
            content_hash=record.content_hash,
            upload_timestamp=record.upload_timestamp,
            extracted=ExtractedResponse.from_extracted(record.extracted),
            description=record.description,
            original_document_id=record.original_document_id,
            bill_id=record.bill_id if isinstance(record, Receipt) else None,
            can_revert=can_revert,
            created_at=record.created_at,
        )


class ApproveRequest(BaseModel):
    """Approve a processed document as a bill or receipt."""
    target: Literal["bill", "receipt"]
    bill_id: UUID | None = None


class ConvertReceiptRequest(BaseModel):
    """Optional bill to attach a converted receipt to."""
    bill_id: UUID | None = None


def error_payload(exc: Any) -> dict[str, Any]:
    return {"error": exc.__class__.__name__, "message": str(exc), "details": getattr(exc, "details", {})}
