"""Bill and receipt records produced by conversion or manual entry."""

from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field

from receiptflow.models.extracted import ExtractedData


def _utcnow() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


class LedgerRecord(BaseModel):
    """Fields shared by bills and receipts.

    File metadata is copied from the source document on conversion and is
    absent for manually entered records.
    """

    model_config = ConfigDict(frozen=True)

    id: UUID = Field(default_factory=uuid4)
    filename: str | None = None
    stored_path: str | None = None
    content_type: str | None = None
    file_size: int | None = None
    content_hash: str | None = None
    upload_timestamp: datetime | None = None
    extracted: ExtractedData = Field(default_factory=ExtractedData)
    description: str | None = None
    ocr_processed_at: datetime | None = None
    original_document_id: UUID | None = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @property
    def is_converted(self) -> bool:
        """True when the record came from a document and can be reverted."""
        return self.original_document_id is not None


class Bill(LedgerRecord):
    """A bill to be paid."""
    pass


class Receipt(LedgerRecord):
    """A proof of payment, optionally attached to a bill."""
    bill_id: UUID | None = None


class BillCreate(BaseModel):
    """Schema for entering a bill manually."""
    provider: str | None = None
    amount: Decimal | None = None
    document_date: date | None = None
    currency: str | None = None
    description: str | None = None

    def to_extracted(self) -> ExtractedData:
        return ExtractedData(
            provider=self.provider,
            amount=self.amount,
            document_date=self.document_date,
            currency=self.currency,
        )


class ReceiptCreate(BillCreate):
    """Schema for entering a receipt manually."""
    bill_id: UUID | None = None
