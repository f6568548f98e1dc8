"""
Conversion between documents and bills/receipts.

Conversion approves the source document, creates the bill or receipt and
moves the OCR history onto it inside one database transaction. Revert is
the inverse: the document comes back as PROCESSED under its original id,
the history moves back and the bill/receipt is deleted. Either every step
of a conversion or revert happens, or none does.
"""

import logging
from uuid import UUID, uuid4

from receiptflow.core.exceptions import RecordNotFoundError, RevertBlockedError
from receiptflow.db.database import Database
from receiptflow.db.repositories.document_repository import DocumentRepository
from receiptflow.db.repositories.ledger_repository import BillRepository, ReceiptRepository
from receiptflow.db.repositories.ocr_attempt_repository import OcrAttemptRepository
from receiptflow.models.document import Document, DocumentStatus
from receiptflow.models.ledger import Bill, LedgerRecord, Receipt
from receiptflow.models.ocr_attempt import EntityRef, EntityType
from receiptflow.pipeline import state_machine

logger = logging.getLogger(__name__)


class ConversionService:
    """Turns processed documents into bills/receipts and back."""

    def __init__(self, db: Database):
        self.db = db
        self.documents = DocumentRepository(db)
        self.bills = BillRepository(db)
        self.receipts = ReceiptRepository(db)
        self.attempts = OcrAttemptRepository(db)

    async def to_bill(self, document_id: UUID) -> Bill:
        """Approve a PROCESSED document as a bill.

        Raises:
            DocumentNotFoundError: If the document does not exist
            StateConflictError: If the document is not PROCESSED (including
                when a concurrent conversion won)
        """
        async with self.db.transaction():
            doc = await self._approve(document_id, EntityType.BILL)
            bill = Bill(**self._copy_fields(doc))
            await self.bills.create(bill)
            await self.attempts.repoint(EntityRef.document(doc.id), EntityRef.bill(bill.id))

        logger.info(f"Converted document {document_id} to bill {bill.id}")
        return bill

    async def to_receipt(self, document_id: UUID, bill_id: UUID | None = None) -> Receipt:
        """Approve a PROCESSED document as a receipt, optionally attached to a bill."""
        async with self.db.transaction():
            if bill_id is not None:
                await self.bills.require(bill_id)
            doc = await self._approve(document_id, EntityType.RECEIPT)
            receipt = Receipt(**self._copy_fields(doc), bill_id=bill_id)
            await self.receipts.create(receipt)
            await self.attempts.repoint(EntityRef.document(doc.id), EntityRef.receipt(receipt.id))

        logger.info(f"Converted document {document_id} to receipt {receipt.id}")
        return receipt

    async def revert_bill(self, bill_id: UUID) -> Document:
        """Turn a converted bill back into a PROCESSED document.

        Raises:
            RecordNotFoundError: If the bill does not exist
            RevertBlockedError: If the bill was entered manually or has
                receipts attached
        """
        async with self.db.transaction():
            bill = await self.bills.require(bill_id)
            self._ensure_converted(bill, "bill")
            attached = await self.bills.count_receipts(bill.id)
            if attached:
                raise RevertBlockedError(
                    f"Bill {bill.id} has {attached} attached receipt(s); detach or delete them first",
                    str(bill.id),
                )

            doc = await self._restore_document(bill)
            await self.attempts.repoint(EntityRef.bill(bill.id), EntityRef.document(doc.id))
            await self.bills.delete(bill.id)

        logger.info(f"Reverted bill {bill_id} to document {doc.id}")
        return doc

    async def revert_receipt(self, receipt_id: UUID) -> Document:
        """Turn a converted receipt back into a PROCESSED document."""
        async with self.db.transaction():
            receipt = await self.receipts.require(receipt_id)
            self._ensure_converted(receipt, "receipt")

            doc = await self._restore_document(receipt)
            await self.attempts.repoint(EntityRef.receipt(receipt.id), EntityRef.document(doc.id))
            await self.receipts.delete(receipt.id)

        logger.info(f"Reverted receipt {receipt_id} to document {doc.id}")
        return doc

    async def can_revert(self, ref: EntityRef) -> bool:
        """Whether ``revert_bill``/``revert_receipt`` would be accepted."""
        if ref.kind == EntityType.BILL:
            bill = await self.bills.get_by_id(ref.id)
            if bill is None or not bill.is_converted:
                return False
            return await self.bills.count_receipts(bill.id) == 0
        if ref.kind == EntityType.RECEIPT:
            receipt = await self.receipts.get_by_id(ref.id)
            return receipt is not None and receipt.is_converted
        return False

    async def _approve(self, document_id: UUID, kind: EntityType) -> Document:
        doc = await self.documents.require(document_id)
        approved = state_machine.approve(doc, uuid4(), kind)
        return await self.documents.save_transition(approved, DocumentStatus.PROCESSED, "approve")

    def _copy_fields(self, doc: Document) -> dict:
        return {
            "id": doc.linked_entity_id,
            "filename": doc.filename,
            "stored_path": doc.stored_path,
            "content_type": doc.content_type,
            "file_size": doc.file_size,
            "content_hash": doc.content_hash,
            "upload_timestamp": doc.upload_timestamp,
            "extracted": doc.extracted,
            "ocr_processed_at": doc.ocr_processed_at,
            "original_document_id": doc.id,
        }

    def _ensure_converted(self, record: LedgerRecord, kind: str) -> None:
        if not record.is_converted:
            raise RevertBlockedError(
                f"{kind.title()} {record.id} was entered manually and has no document to revert to",
                str(record.id),
            )

    async def _restore_document(self, record: LedgerRecord) -> Document:
        """Reopen the source document, or rebuild it if it has gone missing."""
        doc = await self.documents.get_by_id(record.original_document_id)
        if doc is not None:
            reopened = state_machine.reopen(doc)
            return await self.documents.save_transition(reopened, DocumentStatus.APPROVED, "reopen")

        if not record.content_hash or not record.stored_path or not record.filename:
            raise RecordNotFoundError("document", str(record.original_document_id))

        logger.warning(
            f"Source document {record.original_document_id} missing, recreating it from {record.id}"
        )
        doc = Document(
            id=record.original_document_id,
            filename=record.filename,
            stored_path=record.stored_path,
            content_type=record.content_type or "application/octet-stream",
            file_size=record.file_size or 0,
            content_hash=record.content_hash,
            upload_timestamp=record.upload_timestamp or record.created_at,
            status=DocumentStatus.PROCESSED,
            extracted=record.extracted,
            ocr_processed_at=record.ocr_processed_at,
        )
        return await self.documents.create(doc)
