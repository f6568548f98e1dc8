"""
Document lifecycle transitions.

    CREATED --complete_ocr--> PROCESSED --approve--> APPROVED
       |  ^                       ^                     |
 fail_ocr |retry_ocr              +-------reopen--------+
       v  |
      FAILED

Every function is pure: it validates the current status and returns a new
Document. An illegal transition raises StateConflictError and leaves the
input untouched. ``reopen`` exists only for reverting a bill/receipt.
"""

from datetime import datetime, timezone
from uuid import UUID

from receiptflow.core.exceptions import StateConflictError
from receiptflow.models.document import Document, DocumentStatus
from receiptflow.models.extracted import ExtractedData
from receiptflow.models.ocr_attempt import EntityType


def _utcnow() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


ALLOWED_TRANSITIONS: dict[str, tuple[DocumentStatus, DocumentStatus]] = {
    "complete_ocr": (DocumentStatus.CREATED, DocumentStatus.PROCESSED),
    "fail_ocr": (DocumentStatus.CREATED, DocumentStatus.FAILED),
    "retry_ocr": (DocumentStatus.FAILED, DocumentStatus.CREATED),
    "approve": (DocumentStatus.PROCESSED, DocumentStatus.APPROVED),
    "reopen": (DocumentStatus.APPROVED, DocumentStatus.PROCESSED),
}

# Actions a user may trigger, keyed by the status that enables them
_USER_ACTIONS: dict[DocumentStatus, list[str]] = {
    DocumentStatus.CREATED: ["reject"],
    DocumentStatus.PROCESSED: ["convert_to_bill", "convert_to_receipt", "reject"],
    DocumentStatus.FAILED: ["retry", "reject"],
    DocumentStatus.APPROVED: [],
}


def _require(doc: Document, action: str) -> DocumentStatus:
    source, target = ALLOWED_TRANSITIONS[action]
    if doc.status != source:
        raise StateConflictError(doc.status.name, action, str(doc.id))
    return target


def complete_ocr(doc: Document, extracted: ExtractedData) -> Document:
    """CREATED -> PROCESSED with the extracted fields."""
    target = _require(doc, "complete_ocr")
    now = _utcnow()
    return doc.model_copy(update={
        "status": target,
        "extracted": extracted,
        "failure_reason": None,
        "ocr_processed_at": now,
        "updated_at": now,
    })


def fail_ocr(doc: Document, reason: str) -> Document:
    """CREATED -> FAILED, keeping the reason for the user."""
    target = _require(doc, "fail_ocr")
    now = _utcnow()
    return doc.model_copy(update={
        "status": target,
        "extracted": ExtractedData(),
        "failure_reason": reason,
        "ocr_processed_at": now,
        "updated_at": now,
    })


def retry_ocr(doc: Document) -> Document:
    """FAILED -> CREATED, clearing the failure reason and partial data."""
    target = _require(doc, "retry_ocr")
    return doc.model_copy(update={
        "status": target,
        "extracted": ExtractedData(),
        "failure_reason": None,
        "ocr_processed_at": None,
        "updated_at": _utcnow(),
    })


def approve(doc: Document, entity_id: UUID, entity_type: EntityType) -> Document:
    """PROCESSED -> APPROVED, linking the bill or receipt it became."""
    if entity_type not in (EntityType.BILL, EntityType.RECEIPT):
        raise ValueError(f"Documents can only be approved into a bill or receipt, not {entity_type.value}")
    target = _require(doc, "approve")
    return doc.model_copy(update={
        "status": target,
        "linked_entity_id": entity_id,
        "linked_entity_type": entity_type,
        "updated_at": _utcnow(),
    })


def reopen(doc: Document) -> Document:
    """APPROVED -> PROCESSED after its bill/receipt was reverted."""
    target = _require(doc, "reopen")
    return doc.model_copy(update={
        "status": target,
        "linked_entity_id": None,
        "linked_entity_type": None,
        "updated_at": _utcnow(),
    })


def can_approve(doc: Document) -> bool:
    return doc.status == DocumentStatus.PROCESSED


def can_retry(doc: Document) -> bool:
    return doc.status == DocumentStatus.FAILED


def allowed_actions(doc: Document) -> list[str]:
    """User-facing actions available for a document in its current status."""
    return list(_USER_ACTIONS[doc.status])
