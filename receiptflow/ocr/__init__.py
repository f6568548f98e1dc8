"""Vision OCR engines."""

from receiptflow.ocr.base import OcrEngine, OcrFailure, OcrResult, OcrSuccess
from receiptflow.ocr.providers import ClaudeOcrEngine, GoogleAiOcrEngine, OpenAiOcrEngine
from receiptflow.ocr.registry import build_engines, first_available

__all__ = [
    "OcrEngine",
    "OcrFailure",
    "OcrResult",
    "OcrSuccess",
    "ClaudeOcrEngine",
    "GoogleAiOcrEngine",
    "OpenAiOcrEngine",
    "build_engines",
    "first_available",
]
