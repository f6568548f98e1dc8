"""Document service - read models and user actions on inbox documents."""

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from uuid import UUID

from receiptflow.core.exceptions import StateConflictError
from receiptflow.db.database import Database
from receiptflow.db.repositories.document_repository import DocumentRepository
from receiptflow.db.repositories.ocr_attempt_repository import OcrAttemptRepository
from receiptflow.models.document import Document, DocumentStatus
from receiptflow.models.ocr_attempt import EntityRef, OcrAttempt
from receiptflow.pipeline import state_machine
from receiptflow.pipeline.orchestrator import OcrOrchestrator

logger = logging.getLogger(__name__)


@dataclass
class DocumentDetail:
    """A document together with its latest OCR attempt."""
    document: Document
    latest_attempt: OcrAttempt | None
    attempt_count: int
    allowed_actions: list[str]


class DocumentService:
    """Service for document management operations."""

    def __init__(self, db: Database, orchestrator: OcrOrchestrator):
        self.db = db
        self.orchestrator = orchestrator
        self.documents = DocumentRepository(db)
        self.attempts = OcrAttemptRepository(db)

    async def list_documents(
        self,
        status: DocumentStatus | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Document]:
        """Active documents, or all documents in ``status`` when given."""
        return await self.documents.get_documents(status=status, limit=limit, offset=offset)

    async def count_by_status(self) -> dict[str, int]:
        return await self.documents.count_by_status()

    async def get_document(self, document_id: UUID) -> Document:
        return await self.documents.require(document_id)

    async def get_detail(self, document_id: UUID) -> DocumentDetail:
        doc = await self.documents.require(document_id)
        ref = self._history_ref(doc)
        return DocumentDetail(
            document=doc,
            latest_attempt=await self.attempts.latest_for_entity(ref),
            attempt_count=await self.attempts.count_for_entity(ref),
            allowed_actions=state_machine.allowed_actions(doc),
        )

    async def get_attempts(self, document_id: UUID) -> list[OcrAttempt]:
        """OCR history for a document, newest first.

        An approved document's history lives on its bill/receipt.
        """
        doc = await self.documents.require(document_id)
        return await self.attempts.find_by_entity(self._history_ref(doc))

    async def retry(self, document_id: UUID) -> Document:
        """Reset a FAILED document to CREATED and run OCR again.

        Raises:
            StateConflictError: If the document is not FAILED
        """
        doc = await self.documents.require(document_id)
        reset = state_machine.retry_ocr(doc)
        reset = await self.documents.save_transition(reset, DocumentStatus.FAILED, "retry_ocr")
        logger.info(f"Retrying OCR for document {document_id}")
        return await self.orchestrator.process(reset)

    async def reject(self, document_id: UUID, remove_file: bool = True) -> Document:
        """Permanently delete a document that has not been approved.

        Its OCR history is purged and the stored file removed.

        Raises:
            StateConflictError: If the document is APPROVED
        """
        async with self.orchestrator.locks.hold(document_id):
            async with self.db.transaction():
                doc = await self.documents.require(document_id)
                if doc.status == DocumentStatus.APPROVED:
                    raise StateConflictError(doc.status.name, "reject", str(doc.id))

                count = await self.db.delete(
                    "documents",
                    "id = ? AND status = ?",
                    (str(doc.id), doc.status.value),
                )
                if count == 0:
                    raise StateConflictError(doc.status.name, "reject", str(doc.id))
                await self.attempts.purge_for_entity(EntityRef.document(doc.id))

        if remove_file:
            await asyncio.to_thread(self._remove_file, doc.stored_path)
        logger.info(f"Rejected document {doc.id} ({doc.filename})")
        return doc

    def _history_ref(self, doc: Document) -> EntityRef:
        if doc.status == DocumentStatus.APPROVED and doc.linked_entity_id and doc.linked_entity_type:
            return EntityRef(kind=doc.linked_entity_type, id=doc.linked_entity_id)
        return EntityRef.document(doc.id)

    def _remove_file(self, stored_path: str) -> None:
        try:
            Path(stored_path).unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Could not remove stored file {stored_path}: {e}")
