"""receiptflow - inbox-driven OCR ingestion for bills and receipts."""

__version__ = "1.0.0"
