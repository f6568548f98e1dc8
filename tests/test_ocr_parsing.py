"""Tests for provider answer parsing and image encoding."""

import base64
import io
from datetime import date
from decimal import Decimal

import pytest
from PIL import Image

from receiptflow.core.exceptions import OCRError
from receiptflow.core.image_utils import encode_image_for_vl, sniff_media_type
from receiptflow.ocr.parsing import DateParser, extract_json_object, parse_amount, parse_extraction


class TestParseExtraction:
    """Tests for parse_extraction."""

    def test_bare_json(self):
        data = parse_extraction(
            '{"provider": "Acme", "amount": 42.50, "date": "2024-03-01", "currency": "USD"}'
        )

        assert data.provider == "Acme"
        assert data.amount == Decimal("42.50")
        assert data.document_date == date(2024, 3, 1)
        assert data.currency == "USD"

    def test_json_wrapped_in_prose_and_fences(self):
        text = (
            "Here is the data you asked for:\n"
            "```json\n"
            '{"provider": "Stadtwerke", "amount": "118,20", "date": "2024-02-15", "currency": "eur"}\n'
            "```\n"
            "Let me know if you need anything else."
        )

        data = parse_extraction(text)

        assert data.provider == "Stadtwerke"
        assert data.amount == Decimal("118.20")
        assert data.currency == "EUR"

    def test_amount_keeps_decimal_precision(self):
        """Amounts are parsed as Decimal, not float."""
        data = parse_extraction('{"amount": 0.1}')

        assert data.amount == Decimal("0.1")

    def test_null_fields(self):
        data = parse_extraction(
            '{"provider": null, "amount": null, "date": null, "currency": "null"}'
        )

        assert data.is_empty

    def test_unreadable_date_is_dropped(self):
        data = parse_extraction('{"provider": "Acme", "date": "sometime in March"}')

        assert data.provider == "Acme"
        assert data.document_date is None

    def test_no_json(self):
        with pytest.raises(OCRError, match="No JSON object"):
            parse_extraction("I cannot read this document.")

    def test_malformed_json(self):
        with pytest.raises(OCRError, match="Malformed JSON"):
            parse_extraction('{"provider": "Acme", "amount": }')

    def test_extract_json_object_span(self):
        assert extract_json_object('x {"a": {"b": 1}} y') == '{"a": {"b": 1}}'
        assert extract_json_object("} {") is None


class TestFieldParsers:
    """Tests for amount and date normalisation."""

    @pytest.mark.parametrize("value,expected", [
        (42, Decimal("42")),
        (42.5, Decimal("42.5")),
        ("$1,234.56", Decimal("1234.56")),
        ("42,50", Decimal("42.50")),
        ("1.234,56", Decimal("1234.56")),
        ("€1.234.567,89", Decimal("1234567.89")),
        ("1,234,567.89", Decimal("1234567.89")),
        ("USD 19.99", Decimal("19.99")),
    ])
    def test_parse_amount(self, value, expected):
        assert parse_amount(value) == expected

    @pytest.mark.parametrize("value", [None, True, "", "n/a", "1.2.3"])
    def test_parse_amount_unusable(self, value):
        assert parse_amount(value) is None

    def test_date_formats_in_order(self):
        """An ambiguous date is read month-first."""
        parser = DateParser()

        assert parser.parse("2024-03-01") == date(2024, 3, 1)
        assert parser.parse("03/04/2024") == date(2024, 3, 4)
        assert parser.parse("25/12/2024") == date(2024, 12, 25)
        assert parser.parse("2024/07/09") == date(2024, 7, 9)
        assert parser.parse("March 1st") is None


class TestImageEncoding:
    """Tests for encode_image_for_vl."""

    def test_png_is_converted_to_jpeg(self, sample_image):
        encoded = encode_image_for_vl(sample_image, "receipt.png")

        assert encoded.media_type == "image/jpeg"
        assert encoded.data_url.startswith("data:image/jpeg;base64,")
        with Image.open(io.BytesIO(base64.b64decode(encoded.data))) as img:
            assert img.format == "JPEG"

    def test_large_image_is_downscaled(self):
        img = Image.new("RGBA", (4000, 2000), color=(255, 255, 255, 255))
        buffer = io.BytesIO()
        img.save(buffer, format="PNG")

        encoded = encode_image_for_vl(buffer.getvalue(), "big.png", max_size=1000)

        with Image.open(io.BytesIO(base64.b64decode(encoded.data))) as result:
            assert max(result.size) == 1000
            assert result.mode == "RGB"

    def test_pdf_passes_through(self, sample_pdf):
        encoded = encode_image_for_vl(sample_pdf, "bill.pdf")

        assert encoded.media_type == "application/pdf"
        assert base64.b64decode(encoded.data) == sample_pdf

    def test_undecodable_bytes_pass_through(self):
        encoded = encode_image_for_vl(b"not really an image", "scan.tiff")

        assert encoded.media_type == "image/tiff"
        assert base64.b64decode(encoded.data) == b"not really an image"

    def test_sniff_media_type(self, sample_image, sample_pdf):
        assert sniff_media_type(sample_image) == "image/png"
        assert sniff_media_type(sample_pdf, "renamed.jpg") == "application/pdf"
        assert sniff_media_type(b"\x00\x01", "unknown") == "application/octet-stream"
