"""
Static registry of OCR engines.

Engines are instantiated once at startup in the configured provider order;
no dynamic plugin loading is involved.
"""

import logging

from receiptflow.core.config import OCRSettings
from receiptflow.ocr.base import OcrEngine
from receiptflow.ocr.providers import ClaudeOcrEngine, GoogleAiOcrEngine, OpenAiOcrEngine
from receiptflow.ocr.vision import VisionOcrEngine

logger = logging.getLogger(__name__)

ENGINE_CLASSES: dict[str, type[VisionOcrEngine]] = {
    OpenAiOcrEngine.provider_key: OpenAiOcrEngine,
    ClaudeOcrEngine.provider_key: ClaudeOcrEngine,
    GoogleAiOcrEngine.provider_key: GoogleAiOcrEngine,
}


def build_engines(ocr_settings: OCRSettings) -> list[OcrEngine]:
    """Instantiate the configured engines in priority order."""
    engines: list[OcrEngine] = []
    for name in ocr_settings.providers:
        engine = ENGINE_CLASSES[name](ocr_settings)
        engines.append(engine)

    available = [engine.name for engine in engines if engine.is_available()]
    if available:
        logger.info(f"OCR engines available (in order): {', '.join(available)}")
    else:
        logger.warning("No OCR engine has credentials configured; documents will fail OCR")

    return engines


def first_available(engines: list[OcrEngine]) -> OcrEngine | None:
    """First-match selection over an ordered engine list."""
    for engine in engines:
        if engine.is_available():
            return engine
    return None
