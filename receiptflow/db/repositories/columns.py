"""Column conversions shared by the repositories."""

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from receiptflow.models.extracted import ExtractedData


def iso(value: datetime | date | None) -> str | None:
    return value.isoformat() if value else None


def parse_datetime(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def parse_uuid(value: str | None) -> UUID | None:
    return UUID(value) if value else None


def extracted_to_columns(extracted: ExtractedData) -> dict[str, Any]:
    """Flatten extracted fields; amounts are stored as text to keep precision."""
    return {
        "provider": extracted.provider,
        "amount": str(extracted.amount) if extracted.amount is not None else None,
        "document_date": iso(extracted.document_date),
        "currency": extracted.currency,
    }


def extracted_from_row(row: dict[str, Any]) -> ExtractedData:
    return ExtractedData(
        provider=row.get("provider"),
        amount=Decimal(row["amount"]) if row.get("amount") is not None else None,
        document_date=date.fromisoformat(row["document_date"]) if row.get("document_date") else None,
        currency=row.get("currency"),
    )
