"""Bill routes."""

from uuid import UUID

from fastapi import APIRouter, Query, status
from fastapi.responses import FileResponse

from receiptflow.api.deps import RuntimeDep
from receiptflow.api.files import stored_file_response
from receiptflow.api.schemas import AttemptResponse, DocumentResponse, RecordResponse
from receiptflow.models.ledger import BillCreate
from receiptflow.models.ocr_attempt import EntityRef

router = APIRouter()


@router.get("", response_model=list[RecordResponse])
async def list_bills(
    runtime: RuntimeDep,
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=500),
):
    """List bills, newest first."""
    bills = await runtime.records.list_bills(limit=page_size, offset=(page - 1) * page_size)
    return [
        RecordResponse.from_record(bill, "bill", await runtime.conversion.can_revert(EntityRef.bill(bill.id)))
        for bill in bills
    ]


@router.post("", response_model=RecordResponse, status_code=status.HTTP_201_CREATED)
async def create_bill(request: BillCreate, runtime: RuntimeDep):
    """Enter a bill manually."""
    bill = await runtime.records.create_bill(request)
    return RecordResponse.from_record(bill, "bill")


@router.get("/{bill_id}", response_model=RecordResponse)
async def get_bill(bill_id: UUID, runtime: RuntimeDep):
    bill = await runtime.records.get_bill(bill_id)
    can_revert = await runtime.conversion.can_revert(EntityRef.bill(bill.id))
    return RecordResponse.from_record(bill, "bill", can_revert)


@router.get("/{bill_id}/receipts", response_model=list[RecordResponse])
async def get_bill_receipts(bill_id: UUID, runtime: RuntimeDep):
    """Receipts attached to a bill."""
    receipts = await runtime.records.receipts_for_bill(bill_id)
    return [RecordResponse.from_record(receipt, "receipt", receipt.is_converted) for receipt in receipts]


@router.delete("/{bill_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_bill(bill_id: UUID, runtime: RuntimeDep):
    """Permanently delete a bill, its OCR history and its file."""
    await runtime.records.delete_bill(bill_id)


@router.post("/{bill_id}/revert", response_model=DocumentResponse)
async def revert_bill(bill_id: UUID, runtime: RuntimeDep):
    """Turn a converted bill back into a PROCESSED document."""
    doc = await runtime.conversion.revert_bill(bill_id)
    return DocumentResponse.from_document(doc)


@router.get("/{bill_id}/file", response_class=FileResponse)
async def get_bill_file(bill_id: UUID, runtime: RuntimeDep):
    """Download the scan a converted bill came from."""
    bill = await runtime.records.get_bill(bill_id)
    return stored_file_response(bill.stored_path, bill.filename, bill.content_type)


@router.get("/{bill_id}/attempts", response_model=list[AttemptResponse])
async def get_bill_attempts(bill_id: UUID, runtime: RuntimeDep):
    await runtime.records.get_bill(bill_id)
    attempts = await runtime.records.get_attempts(EntityRef.bill(bill_id))
    return [AttemptResponse.from_attempt(attempt) for attempt in attempts]
