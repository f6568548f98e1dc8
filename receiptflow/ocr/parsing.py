"""
Parsing of provider answers into ExtractedData.

Providers are asked for a bare JSON object but often wrap it in prose or
code fences, so the outermost ``{...}`` span is located first.
"""

import json
import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from receiptflow.core.exceptions import OCRError
from receiptflow.models.extracted import ExtractedData

EXTRACTION_PROMPT = """You are reading a scanned bill or receipt.
Extract the following fields and answer with a single JSON object and nothing else:

{"provider": string or null, "amount": number or null, "date": "YYYY-MM-DD" or null, "currency": string or null}

- provider: the company, shop or service provider that issued the document
- amount: the total amount due or paid, as a plain number without currency symbols
- date: the issue or payment date, formatted YYYY-MM-DD
- currency: the ISO 4217 currency code (e.g. EUR, USD)

Use null for any field you cannot read with confidence. Do not guess."""


class DateParser:
    """Parses date values returned by providers.

    Formats are tried in order and the first successful parse wins, so an
    ambiguous ``03/04/2024`` is read as March 4th.

    Example:
        >>> parser = DateParser()
        >>> parser.parse("2024-03-01")
        datetime.date(2024, 3, 1)
        >>> parser.parse("25/12/2024")
        datetime.date(2024, 12, 25)
    """

    DATE_FORMATS = ["%Y-%m-%d", "%m/%d/%Y", "%d/%m/%Y", "%Y/%m/%d"]

    def parse(self, value: Any) -> date | None:
        """Parse a date value, returning None when no format matches."""
        if value is None:
            return None

        if isinstance(value, datetime):
            return value.date()

        if isinstance(value, date):
            return value

        text = str(value).strip()
        for fmt in self.DATE_FORMATS:
            try:
                return datetime.strptime(text, fmt).date()
            except ValueError:
                continue

        return None


def extract_json_object(text: str) -> str | None:
    """Return the span from the first ``{`` to the last ``}``, if any."""
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        return None
    return text[start:end + 1]


def parse_amount(value: Any) -> Decimal | None:
    """Normalise a monetary amount to Decimal."""
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, Decimal):
        return value

    if isinstance(value, int):
        return Decimal(value)

    if isinstance(value, float):
        return Decimal(str(value))

    text = str(value).strip()
    # Drop currency symbols and codes
    text = re.sub(r"[^\d,.\-]", "", text)
    if "," in text and "." in text:
        # The rightmost separator is the decimal mark, the other groups thousands
        if text.rfind(",") > text.rfind("."):
            text = text.replace(".", "").replace(",", ".")
        else:
            text = text.replace(",", "")
    elif "," in text:
        text = text.replace(",", ".")

    if not text:
        return None

    try:
        amount = Decimal(text)
    except InvalidOperation:
        return None
    return amount if amount.is_finite() else None


def _clean_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    if not text or text.lower() in ("null", "none", "n/a", "unknown"):
        return None
    return text


def _clean_currency(value: Any) -> str | None:
    text = _clean_text(value)
    return text.upper() if text else None


def parse_extraction(text: str) -> ExtractedData:
    """Parse a provider's textual answer.

    Raises:
        OCRError: If the answer holds no JSON object or it is malformed
    """
    snippet = extract_json_object(text)
    if snippet is None:
        raise OCRError(f"No JSON object in OCR response: {text[:200]}")

    try:
        data = json.loads(snippet, parse_float=Decimal)
    except json.JSONDecodeError as e:
        raise OCRError(f"Malformed JSON in OCR response: {e}") from e

    if not isinstance(data, dict):
        raise OCRError("OCR response JSON is not an object")

    return ExtractedData(
        provider=_clean_text(data.get("provider")),
        amount=parse_amount(data.get("amount")),
        document_date=DateParser().parse(data.get("date")),
        currency=_clean_currency(data.get("currency")),
    )
