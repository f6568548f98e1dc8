"""Tests for converting documents into bills/receipts and reverting them."""

import asyncio
from unittest.mock import AsyncMock, patch
from uuid import uuid4

import pytest
import pytest_asyncio

from receiptflow.core.exceptions import (
    DocumentNotFoundError,
    RecordNotFoundError,
    RevertBlockedError,
    StateConflictError,
)
from receiptflow.db.repositories.document_repository import DocumentRepository
from receiptflow.db.repositories.ledger_repository import BillRepository, ReceiptRepository
from receiptflow.db.repositories.ocr_attempt_repository import OcrAttemptRepository
from receiptflow.models.document import DocumentStatus
from receiptflow.models.ledger import Bill, Receipt
from receiptflow.models.ocr_attempt import EntityRef, EntityType
from receiptflow.pipeline.orchestrator import OcrOrchestrator
from receiptflow.services.conversion_service import ConversionService

from conftest import ACME


@pytest_asyncio.fixture
async def processed_document(test_db, make_document, fake_engine):
    """A document that went through OCR and has one attempt on record."""
    doc = await make_document(filename="acme-march.png")
    return await OcrOrchestrator(test_db, [fake_engine]).process(doc)


class TestConvert:
    """Tests for ConversionService.to_bill / to_receipt."""

    @pytest.mark.asyncio
    async def test_to_bill(self, test_db, processed_document):
        service = ConversionService(test_db)

        bill = await service.to_bill(processed_document.id)

        assert bill.extracted == ACME
        assert bill.filename == "acme-march.png"
        assert bill.content_hash == processed_document.content_hash
        assert bill.stored_path == processed_document.stored_path
        assert bill.original_document_id == processed_document.id
        assert bill.is_converted

        doc = await DocumentRepository(test_db).require(processed_document.id)
        assert doc.status == DocumentStatus.APPROVED
        assert doc.linked_entity_id == bill.id
        assert doc.linked_entity_type == EntityType.BILL

    @pytest.mark.asyncio
    async def test_history_moves_with_conversion(self, test_db, processed_document):
        """OCR history follows the document onto the bill; nothing is copied or lost."""
        attempts = OcrAttemptRepository(test_db)
        before = await attempts.find_by_entity(EntityRef.document(processed_document.id))

        bill = await ConversionService(test_db).to_bill(processed_document.id)

        after = await attempts.find_by_entity(EntityRef.bill(bill.id))
        assert [a.id for a in after] == [a.id for a in before]
        assert await attempts.find_by_entity(EntityRef.document(processed_document.id)) == []

    @pytest.mark.asyncio
    async def test_to_receipt_attached_to_bill(self, test_db, processed_document):
        bill = await BillRepository(test_db).create(Bill(extracted=ACME))

        receipt = await ConversionService(test_db).to_receipt(processed_document.id, bill_id=bill.id)

        assert receipt.bill_id == bill.id
        assert (await ReceiptRepository(test_db).require(receipt.id)).bill_id == bill.id

    @pytest.mark.asyncio
    async def test_to_receipt_unknown_bill(self, test_db, processed_document):
        with pytest.raises(RecordNotFoundError):
            await ConversionService(test_db).to_receipt(processed_document.id, bill_id=uuid4())

        doc = await DocumentRepository(test_db).require(processed_document.id)
        assert doc.status == DocumentStatus.PROCESSED

    @pytest.mark.asyncio
    async def test_failed_document_cannot_be_converted(self, test_db, make_document):
        doc = await make_document(status=DocumentStatus.FAILED, failure_reason="blurry")

        with pytest.raises(StateConflictError) as exc_info:
            await ConversionService(test_db).to_bill(doc.id)

        assert exc_info.value.current == "FAILED"
        assert await BillRepository(test_db).list_records() == []

    @pytest.mark.asyncio
    async def test_unknown_document(self, test_db):
        with pytest.raises(DocumentNotFoundError):
            await ConversionService(test_db).to_bill(uuid4())

    @pytest.mark.asyncio
    async def test_concurrent_conversions_exactly_one_wins(self, test_db, processed_document):
        """Two users converting the same document: one record, one conflict."""
        service = ConversionService(test_db)

        results = await asyncio.gather(
            service.to_bill(processed_document.id),
            service.to_receipt(processed_document.id),
            return_exceptions=True,
        )

        records = [r for r in results if isinstance(r, (Bill, Receipt))]
        conflicts = [r for r in results if isinstance(r, StateConflictError)]
        assert len(records) == 1
        assert len(conflicts) == 1

        bills = await BillRepository(test_db).list_records()
        receipts = await ReceiptRepository(test_db).list_records()
        assert len(bills) + len(receipts) == 1

    @pytest.mark.asyncio
    async def test_failure_rolls_back_everything(self, test_db, processed_document):
        """A failing step leaves the document, records and history untouched."""
        service = ConversionService(test_db)

        with patch.object(service.attempts, "repoint", AsyncMock(side_effect=RuntimeError("disk full"))):
            with pytest.raises(RuntimeError):
                await service.to_bill(processed_document.id)

        doc = await DocumentRepository(test_db).require(processed_document.id)
        assert doc.status == DocumentStatus.PROCESSED
        assert doc.linked_entity_id is None
        assert await BillRepository(test_db).list_records() == []
        attempts = await OcrAttemptRepository(test_db).find_by_entity(EntityRef.document(doc.id))
        assert len(attempts) == 1


class TestRevert:
    """Tests for ConversionService.revert_bill / revert_receipt."""

    @pytest.mark.asyncio
    async def test_revert_bill_round_trip(self, test_db, processed_document):
        """Convert then revert restores the document under its original id."""
        service = ConversionService(test_db)
        bill = await service.to_bill(processed_document.id)

        doc = await service.revert_bill(bill.id)

        assert doc.id == processed_document.id
        assert doc.status == DocumentStatus.PROCESSED
        assert doc.extracted == ACME
        assert doc.linked_entity_id is None
        assert await BillRepository(test_db).get_by_id(bill.id) is None

        attempts = OcrAttemptRepository(test_db)
        assert len(await attempts.find_by_entity(EntityRef.document(doc.id))) == 1
        assert await attempts.find_by_entity(EntityRef.bill(bill.id)) == []

    @pytest.mark.asyncio
    async def test_revert_receipt(self, test_db, processed_document):
        service = ConversionService(test_db)
        receipt = await service.to_receipt(processed_document.id)

        doc = await service.revert_receipt(receipt.id)

        assert doc.status == DocumentStatus.PROCESSED
        assert await ReceiptRepository(test_db).get_by_id(receipt.id) is None

    @pytest.mark.asyncio
    async def test_reverted_document_can_be_converted_again(self, test_db, processed_document):
        service = ConversionService(test_db)
        bill = await service.to_bill(processed_document.id)
        await service.revert_bill(bill.id)

        receipt = await service.to_receipt(processed_document.id)

        assert receipt.original_document_id == processed_document.id

    @pytest.mark.asyncio
    async def test_manual_bill_cannot_be_reverted(self, test_db):
        bill = await BillRepository(test_db).create(Bill(extracted=ACME))
        service = ConversionService(test_db)

        with pytest.raises(RevertBlockedError):
            await service.revert_bill(bill.id)

        assert not await service.can_revert(EntityRef.bill(bill.id))
        assert await BillRepository(test_db).get_by_id(bill.id) is not None

    @pytest.mark.asyncio
    async def test_bill_with_receipts_cannot_be_reverted(self, test_db, processed_document):
        service = ConversionService(test_db)
        bill = await service.to_bill(processed_document.id)
        await ReceiptRepository(test_db).create(Receipt(extracted=ACME, bill_id=bill.id))

        with pytest.raises(RevertBlockedError):
            await service.revert_bill(bill.id)

        assert not await service.can_revert(EntityRef.bill(bill.id))
        doc = await DocumentRepository(test_db).require(processed_document.id)
        assert doc.status == DocumentStatus.APPROVED

    @pytest.mark.asyncio
    async def test_revert_recreates_missing_document(self, test_db, processed_document):
        service = ConversionService(test_db)
        bill = await service.to_bill(processed_document.id)
        await DocumentRepository(test_db).delete(processed_document.id)

        doc = await service.revert_bill(bill.id)

        assert doc.id == processed_document.id
        assert doc.status == DocumentStatus.PROCESSED
        assert doc.content_hash == processed_document.content_hash
        assert doc.extracted == ACME

    @pytest.mark.asyncio
    async def test_can_revert_converted_record(self, test_db, processed_document):
        service = ConversionService(test_db)
        receipt = await service.to_receipt(processed_document.id)

        assert await service.can_revert(EntityRef.receipt(receipt.id))
        assert not await service.can_revert(EntityRef.receipt(uuid4()))
        assert not await service.can_revert(EntityRef.document(processed_document.id))
