"""
Repository for Document operations.
"""

from datetime import datetime, timezone
from typing import Any
from uuid import UUID

import aiosqlite

from receiptflow.core.exceptions import (
    DocumentNotFoundError,
    DuplicateDocumentError,
    StateConflictError,
)
from receiptflow.db.database import Database
from receiptflow.db.repositories.columns import (
    extracted_from_row,
    extracted_to_columns,
    iso,
    parse_datetime,
    parse_uuid,
)
from receiptflow.models.document import ACTIVE_STATUSES, Document, DocumentStatus
from receiptflow.models.ocr_attempt import EntityType


def _utcnow() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


class DocumentRepository:
    """Repository for Document CRUD operations."""

    def __init__(self, db: Database):
        self.db = db

    async def create(self, doc: Document) -> Document:
        """Insert a new document.

        Raises:
            DuplicateDocumentError: If a document with the same content hash exists
        """
        data = {
            "id": str(doc.id),
            "filename": doc.filename,
            "stored_path": doc.stored_path,
            "content_type": doc.content_type,
            "file_size": doc.file_size,
            "content_hash": doc.content_hash,
            "upload_timestamp": doc.upload_timestamp.isoformat(),
            "created_at": doc.created_at.isoformat(),
            **self._mutable_columns(doc),
        }

        try:
            await self.db.insert("documents", data)
        except aiosqlite.IntegrityError as e:
            if "content_hash" in str(e):
                raise DuplicateDocumentError(doc.content_hash) from e
            raise
        return doc

    async def get_by_id(self, doc_id: UUID) -> Document | None:
        """Get a document by ID."""
        row = await self.db.fetch_one(
            "SELECT * FROM documents WHERE id = ?",
            (str(doc_id),)
        )

        if not row:
            return None

        return self._row_to_document(row)

    async def require(self, doc_id: UUID) -> Document:
        """Get a document by ID or raise DocumentNotFoundError."""
        doc = await self.get_by_id(doc_id)
        if doc is None:
            raise DocumentNotFoundError(str(doc_id))
        return doc

    async def get_by_hash(self, content_hash: str) -> Document | None:
        """Get a document by content hash (for duplicate detection)."""
        row = await self.db.fetch_one(
            "SELECT * FROM documents WHERE content_hash = ?",
            (content_hash,)
        )

        if not row:
            return None

        return self._row_to_document(row)

    async def get_documents(
        self,
        status: DocumentStatus | None = None,
        limit: int = 100,
        offset: int = 0
    ) -> list[Document]:
        """List documents, newest first.

        Without a status filter only active (not yet approved) documents are
        returned.
        """
        if status:
            statuses = (status,)
        else:
            statuses = ACTIVE_STATUSES

        placeholders = ", ".join("?" for _ in statuses)
        rows = await self.db.fetch_all(
            f"""
            SELECT * FROM documents
            WHERE status IN ({placeholders})
            ORDER BY upload_timestamp DESC
            LIMIT ? OFFSET ?
            """,
            tuple(s.value for s in statuses) + (limit, offset)
        )

        return [self._row_to_document(row) for row in rows]

    async def save_transition(self, doc: Document, expected: DocumentStatus, action: str) -> Document:
        """Persist a transitioned document if the stored status is still ``expected``.

        This is a compare-and-swap on the status column: of two concurrent
        writers starting from the same status only one succeeds.

        Raises:
            DocumentNotFoundError: If the document no longer exists
            StateConflictError: If the stored status changed underneath us
        """
        doc = doc.model_copy(update={"updated_at": _utcnow()})
        count = await self.db.update(
            "documents",
            self._mutable_columns(doc),
            "id = ? AND status = ?",
            (str(doc.id), expected.value),
        )
        if count == 0:
            current = await self.get_by_id(doc.id)
            if current is None:
                raise DocumentNotFoundError(str(doc.id))
            raise StateConflictError(current.status.name, action, str(doc.id))
        return doc

    async def delete(self, doc_id: UUID) -> bool:
        """Delete a document."""
        count = await self.db.delete("documents", "id = ?", (str(doc_id),))
        return count > 0

    async def count_by_status(self) -> dict[str, int]:
        """Count documents by status."""
        rows = await self.db.fetch_all(
            "SELECT status, COUNT(*) as count FROM documents GROUP BY status"
        )
        counts = {status.value: 0 for status in DocumentStatus}
        counts.update({row["status"]: row["count"] for row in rows})
        return counts

    def _mutable_columns(self, doc: Document) -> dict[str, Any]:
        return {
            "status": doc.status.value,
            **extracted_to_columns(doc.extracted),
            "failure_reason": doc.failure_reason,
            "linked_entity_id": str(doc.linked_entity_id) if doc.linked_entity_id else None,
            "linked_entity_type": doc.linked_entity_type.value if doc.linked_entity_type else None,
            "ocr_processed_at": iso(doc.ocr_processed_at),
            "updated_at": doc.updated_at.isoformat(),
        }

    def _row_to_document(self, row: dict[str, Any]) -> Document:
        """Convert a database row to a Document model."""
        return Document(
            id=UUID(row["id"]),
            filename=row["filename"],
            stored_path=row["stored_path"],
            content_type=row["content_type"],
            file_size=row["file_size"],
            content_hash=row["content_hash"],
            upload_timestamp=datetime.fromisoformat(row["upload_timestamp"]),
            status=DocumentStatus(row["status"]),
            extracted=extracted_from_row(row),
            failure_reason=row.get("failure_reason"),
            linked_entity_id=parse_uuid(row.get("linked_entity_id")),
            linked_entity_type=EntityType(row["linked_entity_type"]) if row.get("linked_entity_type") else None,
            ocr_processed_at=parse_datetime(row.get("ocr_processed_at")),
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )
