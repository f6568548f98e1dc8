"""OCR attempt audit records and the polymorphic entity reference they point at."""

import json
from datetime import datetime, timezone
from enum import Enum
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field

from receiptflow.models.extracted import ExtractedData


def _utcnow() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


class EntityType(str, Enum):
    """Kinds of entity an OCR attempt can belong to."""
    DOCUMENT = "document"
    BILL = "bill"
    RECEIPT = "receipt"


class OcrAttemptStatus(str, Enum):
    """Outcome of a single OCR provider call."""
    SUCCESS = "success"
    FAILED = "failed"
    # Reserved; attempts are written once, after the call has returned
    IN_PROGRESS = "in_progress"


class EntityRef(BaseModel):
    """Discriminated reference to a document, bill or receipt."""

    model_config = ConfigDict(frozen=True)

    kind: EntityType
    id: UUID

    @classmethod
    def document(cls, entity_id: UUID) -> "EntityRef":
        return cls(kind=EntityType.DOCUMENT, id=entity_id)

    @classmethod
    def bill(cls, entity_id: UUID) -> "EntityRef":
        return cls(kind=EntityType.BILL, id=entity_id)

    @classmethod
    def receipt(cls, entity_id: UUID) -> "EntityRef":
        return cls(kind=EntityType.RECEIPT, id=entity_id)

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.id}"


class OcrAttempt(BaseModel):
    """One OCR provider invocation, kept for audit."""

    model_config = ConfigDict(frozen=True)

    id: UUID = Field(default_factory=uuid4)
    entity_type: EntityType
    entity_id: UUID
    timestamp: datetime = Field(default_factory=_utcnow)
    engine_used: str
    status: OcrAttemptStatus
    extracted_data_json: str | None = None
    error_message: str | None = None
    raw_response: str | None = None
    processing_duration_ms: int = 0

    @property
    def entity_ref(self) -> EntityRef:
        return EntityRef(kind=self.entity_type, id=self.entity_id)

    @property
    def extracted(self) -> ExtractedData | None:
        """Extracted fields recorded with a successful attempt."""
        if not self.extracted_data_json:
            return None
        return ExtractedData.model_validate(json.loads(self.extracted_data_json))
