"""
Document model definitions.

A document is a file picked up from the inbox. It moves through
CREATED -> PROCESSED | FAILED -> APPROVED; see
``receiptflow.pipeline.state_machine`` for the transition functions.
"""

from datetime import datetime, timezone
from enum import Enum
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field

from receiptflow.models.extracted import ExtractedData
from receiptflow.models.ocr_attempt import EntityType


def _utcnow() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


class DocumentStatus(str, Enum):
    """Document lifecycle status."""
    CREATED = "created"
    PROCESSED = "processed"
    FAILED = "failed"
    APPROVED = "approved"


# Statuses shown in the inbox; approved documents live on as bills/receipts
ACTIVE_STATUSES = (DocumentStatus.CREATED, DocumentStatus.PROCESSED, DocumentStatus.FAILED)


class Document(BaseModel):
    """Immutable document value; transitions return a new instance."""

    model_config = ConfigDict(frozen=True)

    id: UUID = Field(default_factory=uuid4)
    filename: str
    stored_path: str
    content_type: str = "application/octet-stream"
    file_size: int = 0
    content_hash: str
    upload_timestamp: datetime = Field(default_factory=_utcnow)

    status: DocumentStatus = DocumentStatus.CREATED
    extracted: ExtractedData = Field(default_factory=ExtractedData)
    failure_reason: str | None = None

    # Set on approval, cleared again by revert
    linked_entity_id: UUID | None = None
    linked_entity_type: EntityType | None = None

    ocr_processed_at: datetime | None = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES
