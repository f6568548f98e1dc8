"""Document routes."""

import logging
from uuid import UUID

from fastapi import APIRouter, File, HTTPException, Query, UploadFile, status
from fastapi.responses import FileResponse

from receiptflow.api.deps import RuntimeDep
from receiptflow.api.files import stored_file_response
from receiptflow.api.schemas import (
    ApproveRequest,
    AttemptResponse,
    ConvertReceiptRequest,
    DocumentDetailResponse,
    DocumentListResponse,
    DocumentResponse,
    RecordResponse,
)
from receiptflow.models.document import DocumentStatus

logger = logging.getLogger(__name__)

router = APIRouter()


def _parse_status(value: str | None) -> DocumentStatus | None:
    if not value:
        return None
    try:
        return DocumentStatus(value.lower())
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid status: {value}",
        )


@router.get("", response_model=DocumentListResponse)
async def list_documents(
    runtime: RuntimeDep,
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=500),
    status_filter: str | None = Query(None, alias="status"),
):
    """List active documents, or every document in the given status."""
    documents = await runtime.documents.list_documents(
        status=_parse_status(status_filter),
        limit=page_size,
        offset=(page - 1) * page_size,
    )
    return DocumentListResponse(
        documents=[DocumentResponse.from_document(doc) for doc in documents],
        total=len(documents),
    )


@router.get("/counts")
async def document_counts(runtime: RuntimeDep) -> dict[str, int]:
    """Number of documents per status."""
    return await runtime.documents.count_by_status()


@router.post("/upload", response_model=DocumentResponse, status_code=status.HTTP_201_CREATED)
async def upload_document(runtime: RuntimeDep, file: UploadFile = File(...)):
    """Upload a scan; it is ingested and OCR'd like an inbox file."""
    content = await file.read()
    doc = await runtime.uploads.upload(file.filename, content)
    return DocumentResponse.from_document(doc)


@router.get("/{document_id}", response_model=DocumentDetailResponse)
async def get_document(document_id: UUID, runtime: RuntimeDep):
    """Get a document with its latest OCR attempt."""
    detail = await runtime.documents.get_detail(document_id)
    base = DocumentResponse.from_document(detail.document)
    return DocumentDetailResponse(
        **base.model_dump(),
        latest_attempt=(
            AttemptResponse.from_attempt(detail.latest_attempt, include_raw=False)
            if detail.latest_attempt
            else None
        ),
        attempt_count=detail.attempt_count,
        allowed_actions=detail.allowed_actions,
    )


@router.get("/{document_id}/file", response_class=FileResponse)
async def get_document_file(document_id: UUID, runtime: RuntimeDep):
    """Download the stored scan."""
    doc = await runtime.documents.get_document(document_id)
    return stored_file_response(doc.stored_path, doc.filename, doc.content_type)


@router.get("/{document_id}/attempts", response_model=list[AttemptResponse])
async def get_document_attempts(document_id: UUID, runtime: RuntimeDep):
    """Full OCR history of a document, newest first."""
    attempts = await runtime.documents.get_attempts(document_id)
    return [AttemptResponse.from_attempt(attempt) for attempt in attempts]


@router.post("/{document_id}/retry", response_model=DocumentResponse)
async def retry_document(document_id: UUID, runtime: RuntimeDep):
    """Run OCR again for a FAILED document."""
    doc = await runtime.documents.retry(document_id)
    return DocumentResponse.from_document(doc)


@router.post("/{document_id}/approve", response_model=RecordResponse)
async def approve_document(document_id: UUID, request: ApproveRequest, runtime: RuntimeDep):
    """Approve a PROCESSED document as a bill or a receipt."""
    if request.target == "bill":
        if request.bill_id is not None:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="bill_id only applies to receipts",
            )
        record = await runtime.conversion.to_bill(document_id)
    else:
        record = await runtime.conversion.to_receipt(document_id, bill_id=request.bill_id)
    return RecordResponse.from_record(record, request.target, can_revert=True)


@router.post("/{document_id}/convert/bill", response_model=RecordResponse)
async def convert_to_bill(document_id: UUID, runtime: RuntimeDep):
    """Convert a PROCESSED document into a bill."""
    bill = await runtime.conversion.to_bill(document_id)
    return RecordResponse.from_record(bill, "bill", can_revert=True)


@router.post("/{document_id}/convert/receipt", response_model=RecordResponse)
async def convert_to_receipt(
    document_id: UUID,
    runtime: RuntimeDep,
    request: ConvertReceiptRequest | None = None,
):
    """Convert a PROCESSED document into a receipt."""
    bill_id = request.bill_id if request else None
    receipt = await runtime.conversion.to_receipt(document_id, bill_id=bill_id)
    return RecordResponse.from_record(receipt, "receipt", can_revert=True)


@router.post("/{document_id}/reject", status_code=status.HTTP_204_NO_CONTENT)
async def reject_document(document_id: UUID, runtime: RuntimeDep):
    """Permanently remove a document that has not been approved."""
    await runtime.documents.reject(document_id)
