"""Record service - manual bills/receipts and permanent deletion."""

import asyncio
import logging
from pathlib import Path
from uuid import UUID

from receiptflow.core.exceptions import RevertBlockedError
from receiptflow.db.database import Database
from receiptflow.db.repositories.document_repository import DocumentRepository
from receiptflow.db.repositories.ledger_repository import BillRepository, ReceiptRepository
from receiptflow.db.repositories.ocr_attempt_repository import OcrAttemptRepository
from receiptflow.models.ledger import Bill, BillCreate, LedgerRecord, Receipt, ReceiptCreate
from receiptflow.models.ocr_attempt import EntityRef, OcrAttempt

logger = logging.getLogger(__name__)


class RecordService:
    """Bills and receipts outside the conversion flow."""

    def __init__(self, db: Database):
        self.db = db
        self.documents = DocumentRepository(db)
        self.bills = BillRepository(db)
        self.receipts = ReceiptRepository(db)
        self.attempts = OcrAttemptRepository(db)

    async def create_bill(self, data: BillCreate) -> Bill:
        """Enter a bill by hand; it has no source document."""
        bill = Bill(extracted=data.to_extracted(), description=data.description)
        await self.bills.create(bill)
        logger.info(f"Created manual bill {bill.id}")
        return bill

    async def create_receipt(self, data: ReceiptCreate) -> Receipt:
        """Enter a receipt by hand, optionally attached to an existing bill."""
        async with self.db.transaction():
            if data.bill_id is not None:
                await self.bills.require(data.bill_id)
            receipt = Receipt(
                extracted=data.to_extracted(),
                description=data.description,
                bill_id=data.bill_id,
            )
            await self.receipts.create(receipt)
        logger.info(f"Created manual receipt {receipt.id}")
        return receipt

    async def get_bill(self, bill_id: UUID) -> Bill:
        return await self.bills.require(bill_id)

    async def get_receipt(self, receipt_id: UUID) -> Receipt:
        return await self.receipts.require(receipt_id)

    async def list_bills(self, limit: int = 100, offset: int = 0) -> list[Bill]:
        return await self.bills.list_records(limit=limit, offset=offset)

    async def list_receipts(self, limit: int = 100, offset: int = 0) -> list[Receipt]:
        return await self.receipts.list_records(limit=limit, offset=offset)

    async def receipts_for_bill(self, bill_id: UUID) -> list[Receipt]:
        await self.bills.require(bill_id)
        return await self.receipts.get_by_bill(bill_id)

    async def get_attempts(self, ref: EntityRef) -> list[OcrAttempt]:
        return await self.attempts.find_by_entity(ref)

    async def delete_bill(self, bill_id: UUID) -> Bill:
        """Permanently delete a bill, its history and its file.

        Raises:
            RevertBlockedError: If receipts are attached to the bill
        """
        async with self.db.transaction():
            bill = await self.bills.require(bill_id)
            attached = await self.bills.count_receipts(bill.id)
            if attached:
                raise RevertBlockedError(
                    f"Bill {bill.id} has {attached} attached receipt(s); delete them first",
                    str(bill.id),
                )
            await self._delete_source_document(bill)
            await self.attempts.purge_for_entity(EntityRef.bill(bill.id))
            await self.bills.delete(bill.id)

        await self._remove_file(bill)
        logger.info(f"Deleted bill {bill.id}")
        return bill

    async def delete_receipt(self, receipt_id: UUID) -> Receipt:
        """Permanently delete a receipt, its history and its file."""
        async with self.db.transaction():
            receipt = await self.receipts.require(receipt_id)
            await self._delete_source_document(receipt)
            await self.attempts.purge_for_entity(EntityRef.receipt(receipt.id))
            await self.receipts.delete(receipt.id)

        await self._remove_file(receipt)
        logger.info(f"Deleted receipt {receipt.id}")
        return receipt

    async def _delete_source_document(self, record: LedgerRecord) -> None:
        # The approved source row holds the content hash; dropping it lets
        # the same file be ingested again later.
        if record.original_document_id is not None:
            await self.documents.delete(record.original_document_id)

    async def _remove_file(self, record: LedgerRecord) -> None:
        if not record.stored_path:
            return
        try:
            await asyncio.to_thread(Path(record.stored_path).unlink, missing_ok=True)
        except OSError as e:
            logger.warning(f"Could not remove stored file {record.stored_path}: {e}")
