"""
Shared request/response flow for HTTP vision-model OCR providers.

Subclasses only describe their request shape and where the answer text
lives in the response envelope.
"""

import asyncio
import json
import logging
import time
from abc import abstractmethod
from typing import Any

import httpx

from receiptflow.core.config import OCRSettings, ProviderSettings
from receiptflow.core.exceptions import OCRError
from receiptflow.core.image_utils import EncodedImage, encode_image_for_vl
from receiptflow.ocr.base import OcrEngine, OcrFailure, OcrResult, OcrSuccess
from receiptflow.ocr.parsing import parse_extraction

logger = logging.getLogger(__name__)


class VisionOcrEngine(OcrEngine):
    """Template for providers reached through a JSON-over-HTTP API."""

    # Key of the provider block under ``ocr`` in settings.yaml
    provider_key: str = ""

    def __init__(self, ocr_settings: OCRSettings):
        self.ocr_settings = ocr_settings
        self.provider_settings: ProviderSettings = ocr_settings.provider(self.provider_key)

    @property
    def name(self) -> str:
        return self.provider_key

    def is_available(self) -> bool:
        return self.provider_settings.has_credentials

    @abstractmethod
    def build_request(self, image: EncodedImage) -> tuple[str, dict[str, str], dict[str, Any]]:
        """Return (url, headers, json body) for one extraction request."""
        pass

    @abstractmethod
    def extract_text(self, envelope: dict[str, Any]) -> str | None:
        """Pull the model's answer text out of the response envelope."""
        pass

    async def extract(self, file_bytes: bytes, filename: str | None = None) -> OcrResult:
        started = time.monotonic()

        def elapsed_ms() -> int:
            return int((time.monotonic() - started) * 1000)

        if not self.is_available():
            return OcrFailure(f"{self.display_name} API key not configured", None, elapsed_ms())

        if not file_bytes:
            return OcrFailure("Empty file", None, elapsed_ms())

        image = await asyncio.to_thread(
            encode_image_for_vl,
            file_bytes,
            filename,
            self.ocr_settings.max_image_size,
            self.ocr_settings.jpeg_quality,
        )

        try:
            response = await self._post(image)
        except httpx.TimeoutException:
            logger.warning(f"{self.display_name} OCR request timed out")
            return OcrFailure(
                f"{self.display_name} request timed out after {self.ocr_settings.timeout_seconds}s",
                None,
                elapsed_ms(),
            )
        except httpx.HTTPError as e:
            logger.warning(f"{self.display_name} OCR request failed: {e}")
            return OcrFailure(f"{self.display_name} request failed: {e}", None, elapsed_ms())

        body = response.text
        raw = self._bounded(body)

        if response.status_code != 200:
            logger.warning(f"{self.display_name} API error: HTTP {response.status_code}")
            return OcrFailure(
                f"{self.display_name} API error: HTTP {response.status_code}",
                raw,
                elapsed_ms(),
            )

        try:
            envelope = json.loads(body)
            text = self.extract_text(envelope)
        except json.JSONDecodeError:
            return OcrFailure(f"{self.display_name} returned a non-JSON body", raw, elapsed_ms())
        except (KeyError, IndexError, TypeError, AttributeError):
            return OcrFailure(f"Unexpected {self.display_name} response structure", raw, elapsed_ms())

        if text is not None and not isinstance(text, str):
            return OcrFailure(f"Unexpected {self.display_name} response structure", raw, elapsed_ms())

        if not text or not text.strip():
            return OcrFailure(f"Empty response from {self.display_name}", raw, elapsed_ms())

        try:
            extracted = parse_extraction(text)
        except OCRError as e:
            return OcrFailure(e.message, raw, elapsed_ms())

        duration = elapsed_ms()
        logger.info(
            f"{self.display_name} extracted provider={extracted.provider!r}, "
            f"amount={extracted.amount}, date={extracted.document_date}, "
            f"currency={extracted.currency} in {duration}ms"
        )
        return OcrSuccess(extracted, raw, duration)

    async def _post(self, image: EncodedImage) -> httpx.Response:
        """POST the request, retrying on timeouts only."""
        url, headers, payload = self.build_request(image)
        max_retries = self.ocr_settings.max_retries

        async with httpx.AsyncClient(
            timeout=self.ocr_settings.timeout_seconds
        ) as client:
            for attempt in range(max_retries):
                try:
                    logger.info(
                        f"Sending {self.display_name} OCR request "
                        f"(attempt {attempt + 1}/{max_retries}, {image.media_type})"
                    )
                    return await client.post(url, headers=headers, json=payload)
                except httpx.TimeoutException:
                    if attempt < max_retries - 1:
                        logger.warning(f"{self.display_name} timeout, retrying ({attempt + 1})")
                        continue
                    raise

        raise httpx.TimeoutException("Max retries exceeded")

    def _bounded(self, body: str | None) -> str | None:
        if body is None:
            return None
        limit = self.ocr_settings.raw_response_limit
        if len(body) <= limit:
            return body
        return body[:limit] + f"... [truncated {len(body) - limit} chars]"
