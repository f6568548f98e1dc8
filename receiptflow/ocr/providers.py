"""Concrete vision OCR providers."""

from typing import Any

from receiptflow.core.image_utils import EncodedImage
from receiptflow.ocr.parsing import EXTRACTION_PROMPT
from receiptflow.ocr.vision import VisionOcrEngine


class OpenAiOcrEngine(VisionOcrEngine):
    """OpenAI chat completions with an image (or PDF file) part."""

    provider_key = "openai"

    @property
    def display_name(self) -> str:
        return "OpenAI"

    def build_request(self, image: EncodedImage) -> tuple[str, dict[str, str], dict[str, Any]]:
        if image.media_type == "application/pdf":
            attachment = {
                "type": "file",
                "file": {"filename": "document.pdf", "file_data": image.data_url},
            }
        else:
            attachment = {"type": "image_url", "image_url": {"url": image.data_url}}

        payload = {
            "model": self.provider_settings.model,
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": EXTRACTION_PROMPT},
                        attachment,
                    ],
                }
            ],
            "max_tokens": self.ocr_settings.max_tokens,
            "temperature": self.ocr_settings.temperature,
        }
        headers = {
            "Authorization": f"Bearer {self.provider_settings.api_key}",
            "Content-Type": "application/json",
        }
        return f"{self.provider_settings.base_url.rstrip('/')}/chat/completions", headers, payload

    def extract_text(self, envelope: dict[str, Any]) -> str | None:
        return envelope["choices"][0]["message"]["content"]


class ClaudeOcrEngine(VisionOcrEngine):
    """Anthropic messages API with a base64 image or document block."""

    provider_key = "claude"
    API_VERSION = "2023-06-01"

    @property
    def display_name(self) -> str:
        return "Claude"

    def build_request(self, image: EncodedImage) -> tuple[str, dict[str, str], dict[str, Any]]:
        block_type = "document" if image.media_type == "application/pdf" else "image"
        payload = {
            "model": self.provider_settings.model,
            "max_tokens": self.ocr_settings.max_tokens,
            "temperature": self.ocr_settings.temperature,
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {
                            "type": block_type,
                            "source": {
                                "type": "base64",
                                "media_type": image.media_type,
                                "data": image.data,
                            },
                        },
                        {"type": "text", "text": EXTRACTION_PROMPT},
                    ],
                }
            ],
        }
        headers = {
            "x-api-key": self.provider_settings.api_key,
            "anthropic-version": self.API_VERSION,
            "Content-Type": "application/json",
        }
        return f"{self.provider_settings.base_url.rstrip('/')}/messages", headers, payload

    def extract_text(self, envelope: dict[str, Any]) -> str | None:
        for block in envelope["content"]:
            if block.get("type") == "text":
                return block.get("text")
        return None


class GoogleAiOcrEngine(VisionOcrEngine):
    """Google Gemini generateContent with inline data."""

    provider_key = "google"

    @property
    def display_name(self) -> str:
        return "Google AI"

    def build_request(self, image: EncodedImage) -> tuple[str, dict[str, str], dict[str, Any]]:
        payload = {
            "contents": [
                {
                    "parts": [
                        {"text": EXTRACTION_PROMPT},
                        {"inline_data": {"mime_type": image.media_type, "data": image.data}},
                    ]
                }
            ],
            "generationConfig": {
                "maxOutputTokens": self.ocr_settings.max_tokens,
                "temperature": self.ocr_settings.temperature,
            },
        }
        headers = {
            "x-goog-api-key": self.provider_settings.api_key,
            "Content-Type": "application/json",
        }
        url = (
            f"{self.provider_settings.base_url.rstrip('/')}"
            f"/models/{self.provider_settings.model}:generateContent"
        )
        return url, headers, payload

    def extract_text(self, envelope: dict[str, Any]) -> str | None:
        return envelope["candidates"][0]["content"]["parts"][0]["text"]
