"""
Repositories for bills and receipts.

Both tables share the same layout; receipts add an optional ``bill_id``.
"""

from datetime import datetime
from typing import Any, Generic, TypeVar
from uuid import UUID

from receiptflow.core.exceptions import RecordNotFoundError
from receiptflow.db.database import Database
from receiptflow.db.repositories.columns import (
    extracted_from_row,
    extracted_to_columns,
    iso,
    parse_datetime,
    parse_uuid,
)
from receiptflow.models.ledger import Bill, LedgerRecord, Receipt

RecordT = TypeVar("RecordT", bound=LedgerRecord)


class LedgerRepository(Generic[RecordT]):
    """CRUD operations shared by bills and receipts."""

    table: str = ""
    kind: str = ""
    model: type[RecordT]

    def __init__(self, db: Database):
        self.db = db

    async def create(self, record: RecordT) -> RecordT:
        """Insert a record."""
        await self.db.insert(self.table, self._to_columns(record))
        return record

    async def get_by_id(self, record_id: UUID) -> RecordT | None:
        row = await self.db.fetch_one(
            f"SELECT * FROM {self.table} WHERE id = ?",
            (str(record_id),)
        )
        return self._row_to_record(row) if row else None

    async def require(self, record_id: UUID) -> RecordT:
        """Get a record by ID or raise RecordNotFoundError."""
        record = await self.get_by_id(record_id)
        if record is None:
            raise RecordNotFoundError(self.kind, str(record_id))
        return record

    async def get_by_hash(self, content_hash: str) -> RecordT | None:
        row = await self.db.fetch_one(
            f"SELECT * FROM {self.table} WHERE content_hash = ?",
            (content_hash,)
        )
        return self._row_to_record(row) if row else None

    async def list_records(self, limit: int = 100, offset: int = 0) -> list[RecordT]:
        rows = await self.db.fetch_all(
            f"SELECT * FROM {self.table} ORDER BY created_at DESC LIMIT ? OFFSET ?",
            (limit, offset)
        )
        return [self._row_to_record(row) for row in rows]

    async def delete(self, record_id: UUID) -> bool:
        count = await self.db.delete(self.table, "id = ?", (str(record_id),))
        return count > 0

    def _to_columns(self, record: RecordT) -> dict[str, Any]:
        return {
            "id": str(record.id),
            "filename": record.filename,
            "stored_path": record.stored_path,
            "content_type": record.content_type,
            "file_size": record.file_size,
            "content_hash": record.content_hash,
            "upload_timestamp": iso(record.upload_timestamp),
            **extracted_to_columns(record.extracted),
            "description": record.description,
            "ocr_processed_at": iso(record.ocr_processed_at),
            "original_document_id": str(record.original_document_id) if record.original_document_id else None,
            "created_at": record.created_at.isoformat(),
            "updated_at": record.updated_at.isoformat(),
        }

    def _record_fields(self, row: dict[str, Any]) -> dict[str, Any]:
        return {
            "id": UUID(row["id"]),
            "filename": row.get("filename"),
            "stored_path": row.get("stored_path"),
            "content_type": row.get("content_type"),
            "file_size": row.get("file_size"),
            "content_hash": row.get("content_hash"),
            "upload_timestamp": parse_datetime(row.get("upload_timestamp")),
            "extracted": extracted_from_row(row),
            "description": row.get("description"),
            "ocr_processed_at": parse_datetime(row.get("ocr_processed_at")),
            "original_document_id": parse_uuid(row.get("original_document_id")),
            "created_at": datetime.fromisoformat(row["created_at"]),
            "updated_at": datetime.fromisoformat(row["updated_at"]),
        }

    def _row_to_record(self, row: dict[str, Any]) -> RecordT:
        return self.model(**self._record_fields(row))


class BillRepository(LedgerRepository[Bill]):
    """Repository for Bill operations."""

    table = "bills"
    kind = "bill"
    model = Bill

    async def count_receipts(self, bill_id: UUID) -> int:
        """Number of receipts attached to a bill."""
        row = await self.db.fetch_one(
            "SELECT COUNT(*) as count FROM receipts WHERE bill_id = ?",
            (str(bill_id),)
        )
        return row["count"] if row else 0


class ReceiptRepository(LedgerRepository[Receipt]):
    """Repository for Receipt operations."""

    table = "receipts"
    kind = "receipt"
    model = Receipt

    async def get_by_bill(self, bill_id: UUID) -> list[Receipt]:
        rows = await self.db.fetch_all(
            "SELECT * FROM receipts WHERE bill_id = ? ORDER BY created_at DESC",
            (str(bill_id),)
        )
        return [self._row_to_record(row) for row in rows]

    def _to_columns(self, record: Receipt) -> dict[str, Any]:
        columns = super()._to_columns(record)
        columns["bill_id"] = str(record.bill_id) if record.bill_id else None
        return columns

    def _row_to_record(self, row: dict[str, Any]) -> Receipt:
        return Receipt(**self._record_fields(row), bill_id=parse_uuid(row.get("bill_id")))
