"""Tests for the vision OCR provider engines."""

import json
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from receiptflow.core.config import OCRSettings, ProviderSettings
from receiptflow.ocr.base import OcrFailure, OcrSuccess
from receiptflow.ocr.providers import ClaudeOcrEngine, GoogleAiOcrEngine, OpenAiOcrEngine
from receiptflow.ocr.registry import build_engines, first_available

ANSWER = '{"provider": "Acme", "amount": 42.50, "date": "2024-03-01", "currency": "USD"}'


def _settings(**overrides) -> OCRSettings:
    values = {
        "timeout_seconds": 5,
        "max_retries": 2,
        "raw_response_limit": 256,
        "openai": ProviderSettings(api_key="sk-test", model="gpt-4o", base_url="https://api.openai.com/v1"),
        "claude": ProviderSettings(
            api_key="sk-ant-test", model="claude-3-haiku-20240307", base_url="https://api.anthropic.com/v1"
        ),
        "google": ProviderSettings(
            api_key="g-test",
            model="gemini-1.5-flash",
            base_url="https://generativelanguage.googleapis.com/v1beta",
        ),
    }
    values.update(overrides)
    return OCRSettings(**values)


def _response(status_code: int = 200, body: str = "") -> MagicMock:
    response = MagicMock()
    response.status_code = status_code
    response.text = body
    return response


def _mock_http(mock_client_class, response=None, side_effect=None) -> AsyncMock:
    mock_client = AsyncMock()
    mock_client.post = AsyncMock(return_value=response, side_effect=side_effect)
    mock_client_class.return_value.__aenter__.return_value = mock_client
    return mock_client


class TestOpenAiOcrEngine:
    """Tests for OpenAiOcrEngine."""

    @pytest.mark.asyncio
    async def test_extract_success(self, sample_image):
        engine = OpenAiOcrEngine(_settings())
        envelope = {"choices": [{"message": {"content": ANSWER}}]}

        with patch("httpx.AsyncClient") as mock_client_class:
            mock_client = _mock_http(mock_client_class, _response(200, json.dumps(envelope)))

            result = await engine.extract(sample_image, "receipt.png")

        assert isinstance(result, OcrSuccess)
        assert result.success
        assert result.extracted.provider == "Acme"
        assert result.extracted.amount == Decimal("42.50")
        assert result.raw_response == json.dumps(envelope)

        url = mock_client.post.call_args.args[0]
        kwargs = mock_client.post.call_args.kwargs
        assert url == "https://api.openai.com/v1/chat/completions"
        assert kwargs["headers"]["Authorization"] == "Bearer sk-test"
        content = kwargs["json"]["messages"][0]["content"]
        assert content[1]["image_url"]["url"].startswith("data:image/jpeg;base64,")

    @pytest.mark.asyncio
    async def test_pdf_sent_as_file_part(self, sample_pdf):
        engine = OpenAiOcrEngine(_settings())
        envelope = {"choices": [{"message": {"content": ANSWER}}]}

        with patch("httpx.AsyncClient") as mock_client_class:
            mock_client = _mock_http(mock_client_class, _response(200, json.dumps(envelope)))
            await engine.extract(sample_pdf, "bill.pdf")

        part = mock_client.post.call_args.kwargs["json"]["messages"][0]["content"][1]
        assert part["type"] == "file"
        assert part["file"]["file_data"].startswith("data:application/pdf;base64,")

    @pytest.mark.asyncio
    async def test_http_error_status(self, sample_image):
        engine = OpenAiOcrEngine(_settings())

        with patch("httpx.AsyncClient") as mock_client_class:
            _mock_http(mock_client_class, _response(401, '{"error": "invalid api key"}'))

            result = await engine.extract(sample_image, "receipt.png")

        assert isinstance(result, OcrFailure)
        assert "HTTP 401" in result.message
        assert result.raw_response == '{"error": "invalid api key"}'

    @pytest.mark.asyncio
    async def test_timeout_is_retried_then_fails(self, sample_image):
        """Timeouts are retried up to max_retries and then reported, not raised."""
        engine = OpenAiOcrEngine(_settings(max_retries=3))

        with patch("httpx.AsyncClient") as mock_client_class:
            mock_client = _mock_http(
                mock_client_class, side_effect=httpx.TimeoutException("read timeout")
            )

            result = await engine.extract(sample_image, "receipt.png")

        assert isinstance(result, OcrFailure)
        assert "timed out" in result.message
        assert mock_client.post.call_count == 3

    @pytest.mark.asyncio
    async def test_connection_error(self, sample_image):
        engine = OpenAiOcrEngine(_settings())

        with patch("httpx.AsyncClient") as mock_client_class:
            _mock_http(mock_client_class, side_effect=httpx.ConnectError("connection refused"))

            result = await engine.extract(sample_image, "receipt.png")

        assert isinstance(result, OcrFailure)
        assert "request failed" in result.message

    @pytest.mark.asyncio
    async def test_non_json_body(self, sample_image):
        engine = OpenAiOcrEngine(_settings())

        with patch("httpx.AsyncClient") as mock_client_class:
            _mock_http(mock_client_class, _response(200, "<html>Bad gateway</html>"))

            result = await engine.extract(sample_image, "receipt.png")

        assert isinstance(result, OcrFailure)
        assert "non-JSON" in result.message
        assert result.raw_response == "<html>Bad gateway</html>"

    @pytest.mark.asyncio
    async def test_answer_without_json(self, sample_image):
        engine = OpenAiOcrEngine(_settings())
        envelope = {"choices": [{"message": {"content": "Sorry, the image is too blurry."}}]}

        with patch("httpx.AsyncClient") as mock_client_class:
            _mock_http(mock_client_class, _response(200, json.dumps(envelope)))

            result = await engine.extract(sample_image, "receipt.png")

        assert isinstance(result, OcrFailure)
        assert "No JSON object" in result.message

    @pytest.mark.asyncio
    async def test_unexpected_envelope(self, sample_image):
        engine = OpenAiOcrEngine(_settings())

        with patch("httpx.AsyncClient") as mock_client_class:
            _mock_http(mock_client_class, _response(200, '{"choices": []}'))

            result = await engine.extract(sample_image, "receipt.png")

        assert isinstance(result, OcrFailure)
        assert "response structure" in result.message

    @pytest.mark.asyncio
    async def test_content_parts_list_is_a_failure(self, sample_image):
        engine = OpenAiOcrEngine(_settings())
        envelope = {"choices": [{"message": {"content": [{"type": "text", "text": ANSWER}]}}]}

        with patch("httpx.AsyncClient") as mock_client_class:
            _mock_http(mock_client_class, _response(200, json.dumps(envelope)))

            result = await engine.extract(sample_image, "receipt.png")

        assert isinstance(result, OcrFailure)
        assert "response structure" in result.message
        assert result.raw_response == json.dumps(envelope)

    @pytest.mark.asyncio
    async def test_raw_response_is_bounded(self, sample_image):
        engine = OpenAiOcrEngine(_settings(raw_response_limit=256))
        body = "x" * 1000

        with patch("httpx.AsyncClient") as mock_client_class:
            _mock_http(mock_client_class, _response(500, body))

            result = await engine.extract(sample_image, "receipt.png")

        assert result.raw_response.startswith("x" * 256)
        assert "truncated 744 chars" in result.raw_response

    @pytest.mark.asyncio
    async def test_unavailable_engine_makes_no_call(self, sample_image):
        engine = OpenAiOcrEngine(_settings(
            openai=ProviderSettings(
                api_key="openaiApiKey",
                model="gpt-4o",
                base_url="https://api.openai.com/v1",
            )
        ))

        with patch("httpx.AsyncClient") as mock_client_class:
            result = await engine.extract(sample_image, "receipt.png")

        assert not engine.is_available()
        assert isinstance(result, OcrFailure)
        assert "not configured" in result.message
        mock_client_class.assert_not_called()

    @pytest.mark.asyncio
    async def test_empty_file(self):
        result = await OpenAiOcrEngine(_settings()).extract(b"", "empty.png")

        assert isinstance(result, OcrFailure)
        assert result.message == "Empty file"


class TestClaudeOcrEngine:
    """Tests for ClaudeOcrEngine."""

    @pytest.mark.asyncio
    async def test_extract_success(self, sample_image):
        engine = ClaudeOcrEngine(_settings())
        envelope = {"content": [{"type": "text", "text": ANSWER}]}

        with patch("httpx.AsyncClient") as mock_client_class:
            mock_client = _mock_http(mock_client_class, _response(200, json.dumps(envelope)))

            result = await engine.extract(sample_image, "receipt.png")

        assert isinstance(result, OcrSuccess)
        assert result.extracted.currency == "USD"

        url = mock_client.post.call_args.args[0]
        kwargs = mock_client.post.call_args.kwargs
        assert url == "https://api.anthropic.com/v1/messages"
        assert kwargs["headers"]["x-api-key"] == "sk-ant-test"
        assert kwargs["headers"]["anthropic-version"] == "2023-06-01"
        block = kwargs["json"]["messages"][0]["content"][0]
        assert block["type"] == "image"
        assert block["source"]["media_type"] == "image/jpeg"

    @pytest.mark.asyncio
    async def test_pdf_sent_as_document_block(self, sample_pdf):
        engine = ClaudeOcrEngine(_settings())
        envelope = {"content": [{"type": "text", "text": ANSWER}]}

        with patch("httpx.AsyncClient") as mock_client_class:
            mock_client = _mock_http(mock_client_class, _response(200, json.dumps(envelope)))
            await engine.extract(sample_pdf, "bill.pdf")

        block = mock_client.post.call_args.kwargs["json"]["messages"][0]["content"][0]
        assert block["type"] == "document"
        assert block["source"]["media_type"] == "application/pdf"

    @pytest.mark.asyncio
    async def test_no_text_block(self, sample_image):
        engine = ClaudeOcrEngine(_settings())
        envelope = {"content": [{"type": "tool_use", "id": "x"}]}

        with patch("httpx.AsyncClient") as mock_client_class:
            _mock_http(mock_client_class, _response(200, json.dumps(envelope)))

            result = await engine.extract(sample_image, "receipt.png")

        assert isinstance(result, OcrFailure)
        assert result.message == "Empty response from Claude"


class TestGoogleAiOcrEngine:
    """Tests for GoogleAiOcrEngine."""

    @pytest.mark.asyncio
    async def test_extract_success(self, sample_image):
        engine = GoogleAiOcrEngine(_settings())
        envelope = {"candidates": [{"content": {"parts": [{"text": ANSWER}]}}]}

        with patch("httpx.AsyncClient") as mock_client_class:
            mock_client = _mock_http(mock_client_class, _response(200, json.dumps(envelope)))

            result = await engine.extract(sample_image, "receipt.png")

        assert isinstance(result, OcrSuccess)
        assert result.extracted.provider == "Acme"

        url = mock_client.post.call_args.args[0]
        kwargs = mock_client.post.call_args.kwargs
        assert url.endswith("/models/gemini-1.5-flash:generateContent")
        assert kwargs["headers"]["x-goog-api-key"] == "g-test"
        assert kwargs["json"]["contents"][0]["parts"][1]["inline_data"]["mime_type"] == "image/jpeg"

    @pytest.mark.asyncio
    async def test_non_string_text_is_a_failure(self, sample_image):
        engine = GoogleAiOcrEngine(_settings())
        envelope = {"candidates": [{"content": {"parts": [{"text": 42}]}}]}

        with patch("httpx.AsyncClient") as mock_client_class:
            _mock_http(mock_client_class, _response(200, json.dumps(envelope)))

            result = await engine.extract(sample_image, "receipt.png")

        assert isinstance(result, OcrFailure)
        assert "response structure" in result.message


class TestRegistry:
    """Tests for the static engine registry."""

    def test_build_engines_in_configured_order(self):
        engines = build_engines(_settings(providers=["google", "openai"]))

        assert [engine.name for engine in engines] == ["google", "openai"]

    def test_first_available_skips_placeholders(self):
        settings = _settings(
            providers=["openai", "claude"],
            openai=ProviderSettings(api_key="", model="gpt-4o", base_url="https://api.openai.com/v1"),
        )

        engines = build_engines(settings)

        assert first_available(engines).name == "claude"

    def test_no_available_engine(self):
        settings = _settings(
            providers=["openai"],
            openai=ProviderSettings(api_key="changeme", model="gpt-4o", base_url="https://api.openai.com/v1"),
        )

        assert first_available(build_engines(settings)) is None
