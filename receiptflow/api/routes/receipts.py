"""Receipt routes."""

from uuid import UUID

from fastapi import APIRouter, Query, status
from fastapi.responses import FileResponse

from receiptflow.api.deps import RuntimeDep
from receiptflow.api.files import stored_file_response
from receiptflow.api.schemas import AttemptResponse, DocumentResponse, RecordResponse
from receiptflow.models.ledger import ReceiptCreate
from receiptflow.models.ocr_attempt import EntityRef

router = APIRouter()


@router.get("", response_model=list[RecordResponse])
async def list_receipts(
    runtime: RuntimeDep,
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=500),
):
    """List receipts, newest first."""
    receipts = await runtime.records.list_receipts(limit=page_size, offset=(page - 1) * page_size)
    return [RecordResponse.from_record(receipt, "receipt", receipt.is_converted) for receipt in receipts]


@router.post("", response_model=RecordResponse, status_code=status.HTTP_201_CREATED)
async def create_receipt(request: ReceiptCreate, runtime: RuntimeDep):
    """Enter a receipt manually, optionally attached to a bill."""
    receipt = await runtime.records.create_receipt(request)
    return RecordResponse.from_record(receipt, "receipt")


@router.get("/{receipt_id}", response_model=RecordResponse)
async def get_receipt(receipt_id: UUID, runtime: RuntimeDep):
    receipt = await runtime.records.get_receipt(receipt_id)
    return RecordResponse.from_record(receipt, "receipt", receipt.is_converted)


@router.delete("/{receipt_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_receipt(receipt_id: UUID, runtime: RuntimeDep):
    """Permanently delete a receipt, its OCR history and its file."""
    await runtime.records.delete_receipt(receipt_id)


@router.post("/{receipt_id}/revert", response_model=DocumentResponse)
async def revert_receipt(receipt_id: UUID, runtime: RuntimeDep):
    """Turn a converted receipt back into a PROCESSED document."""
    doc = await runtime.conversion.revert_receipt(receipt_id)
    return DocumentResponse.from_document(doc)


@router.get("/{receipt_id}/file", response_class=FileResponse)
async def get_receipt_file(receipt_id: UUID, runtime: RuntimeDep):
    """Download the scan a converted receipt came from."""
    receipt = await runtime.records.get_receipt(receipt_id)
    return stored_file_response(receipt.stored_path, receipt.filename, receipt.content_type)


@router.get("/{receipt_id}/attempts", response_model=list[AttemptResponse])
async def get_receipt_attempts(receipt_id: UUID, runtime: RuntimeDep):
    await runtime.records.get_receipt(receipt_id)
    attempts = await runtime.records.get_attempts(EntityRef.receipt(receipt_id))
    return [AttemptResponse.from_attempt(attempt) for attempt in attempts]
