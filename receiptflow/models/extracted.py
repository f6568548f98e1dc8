"""Fields pulled out of a scanned bill or receipt."""

from datetime import date
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field


class ExtractedData(BaseModel):
    """OCR-extracted fields; any of them may be missing.

    Serialised with ``by_alias=True`` this is the provider answer shape:
    ``{"provider", "amount", "date", "currency"}``.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    provider: str | None = None
    amount: Decimal | None = None
    document_date: date | None = Field(default=None, alias="date")
    currency: str | None = None

    @property
    def is_empty(self) -> bool:
        return all(
            value is None
            for value in (self.provider, self.amount, self.document_date, self.currency)
        )

    def to_json_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)
