"""
Tests for the LLM insight providers. All model calls are mocked.
"""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import ollama
import pytest

from docvault.classification.insights import (
    GeminiInsightProvider,
    OllamaInsightProvider,
    create_insight_provider,
    parse_insight_response,
)
from docvault.utils.errors import CatalogUnavailableError, ConfigurationError

VALID_KEY = "AIzaSyD-test-key-0123456789"

INVOICE_REPLY = json.dumps(
    {
        "document_type": "Invoice",
        "confidence": 0.92,
        "extracted_fields": {"invoice_number": "INV-42", "amount": "1200"},
        "summary": "Invoice for consulting services",
        "key_entities": ["Acme Corp", 2024],
        "suggested_tags": ["finance", "q1"],
    }
)


class TestParseInsightResponse:
    def test_plain_json(self):
        insight = parse_insight_response(INVOICE_REPLY)

        assert insight.document_type == "Invoice"
        assert insight.confidence == pytest.approx(0.92)
        assert insight.extracted_fields["invoice_number"] == "INV-42"
        assert insight.key_entities == ["Acme Corp", "2024"]
        assert insight.error is None

    def test_json_inside_markdown_fence(self):
        reply = f"Here is the analysis:\n```json\n{INVOICE_REPLY}\n```"
        assert parse_insight_response(reply).document_type == "Invoice"

    def test_percentage_confidence(self):
        insight = parse_insight_response('{"document_type": "Report", "confidence": 85}')
        assert insight.confidence == pytest.approx(0.85)

    def test_missing_fields_get_defaults(self):
        insight = parse_insight_response('{"summary": null}')

        assert insight.document_type == "unknown"
        assert insight.summary == ""
        assert insight.suggested_tags == []

    def test_model_cannot_set_error(self):
        insight = parse_insight_response('{"document_type": "CV", "error": "injected"}')
        assert insight.error is None

    @pytest.mark.parametrize("reply", ["", "   ", "no json here", "{broken json", "[1, 2, 3]"])
    def test_unusable_replies(self, reply):
        with pytest.raises(ValueError):
            parse_insight_response(reply)


class TestGeminiInsightProvider:
    def test_disabled_without_valid_key(self):
        assert not GeminiInsightProvider(api_key="short").is_enabled()
        assert not GeminiInsightProvider().is_enabled()
        assert GeminiInsightProvider(api_key=VALID_KEY).is_enabled()

    @pytest.mark.asyncio
    async def test_disabled_provider_reports_error(self):
        insight = await GeminiInsightProvider().analyze("Invoice text", "inv.pdf")

        assert insight.error == "gemini provider not enabled"
        assert insight.document_type == "unknown"

    @pytest.mark.asyncio
    async def test_empty_content(self):
        insight = await GeminiInsightProvider(api_key=VALID_KEY).analyze("  ", "inv.pdf")
        assert insight.error == "No content to analyze"

    @pytest.mark.asyncio
    async def test_analyze(self):
        with patch("docvault.classification.insights.genai") as genai:
            model = genai.GenerativeModel.return_value
            model.generate_content.return_value = MagicMock(text=INVOICE_REPLY)
            provider = GeminiInsightProvider(api_key=VALID_KEY, model_name="gemini-test")

            insight = await provider.analyze("Invoice INV-42 for Acme Corp", "inv.pdf")

        genai.configure.assert_called_once_with(api_key=VALID_KEY)
        genai.GenerativeModel.assert_called_once_with("gemini-test")
        prompt = model.generate_content.call_args.args[0]
        assert "Document file: inv.pdf" in prompt
        assert "Invoice INV-42 for Acme Corp" in prompt
        assert insight.document_type == "Invoice"

    @pytest.mark.asyncio
    async def test_retries_then_succeeds(self):
        with patch("docvault.classification.insights.genai") as genai:
            model = genai.GenerativeModel.return_value
            model.generate_content.side_effect = [RuntimeError("quota exceeded"), MagicMock(text=INVOICE_REPLY)]
            provider = GeminiInsightProvider(api_key=VALID_KEY, max_retries=3, retry_delay=0)

            insight = await provider.analyze("Invoice", "inv.pdf")

        assert model.generate_content.call_count == 2
        assert insight.error is None

    @pytest.mark.asyncio
    async def test_all_attempts_fail(self):
        with patch("docvault.classification.insights.genai") as genai:
            model = genai.GenerativeModel.return_value
            model.generate_content.side_effect = RuntimeError("service unavailable")
            provider = GeminiInsightProvider(api_key=VALID_KEY, max_retries=2, retry_delay=0)

            insight = await provider.analyze("Invoice", "inv.pdf")

        assert model.generate_content.call_count == 2
        assert "service unavailable" in insight.error
        assert insight.confidence == 0.0

    @pytest.mark.asyncio
    async def test_content_truncated(self):
        with patch("docvault.classification.insights.genai") as genai:
            model = genai.GenerativeModel.return_value
            model.generate_content.return_value = MagicMock(text=INVOICE_REPLY)
            provider = GeminiInsightProvider(api_key=VALID_KEY)

            await provider.analyze("x" * 6000 + "TAIL", "long.pdf")

        prompt = model.generate_content.call_args.args[0]
        assert "x" * 5000 in prompt
        assert "TAIL" not in prompt


class TestOllamaInsightProvider:
    @pytest.mark.asyncio
    async def test_analyze(self):
        with patch("docvault.classification.insights.ollama.AsyncClient") as client_cls:
            client = client_cls.return_value
            client.chat = AsyncMock(return_value={"message": {"content": INVOICE_REPLY}})
            provider = OllamaInsightProvider(base_url="http://gpu-box:11434", model_name="qwen2.5")

            insight = await provider.analyze("Invoice INV-42", "inv.pdf")

        client_cls.assert_called_once_with(host="http://gpu-box:11434")
        kwargs = client.chat.await_args.kwargs
        assert kwargs["model"] == "qwen2.5"
        assert kwargs["format"] == "json"
        assert kwargs["messages"][0]["role"] == "system"
        assert insight.document_type == "Invoice"

    @pytest.mark.asyncio
    async def test_content_truncated_to_4000(self):
        with patch("docvault.classification.insights.ollama.AsyncClient") as client_cls:
            client = client_cls.return_value
            client.chat = AsyncMock(return_value={"message": {"content": INVOICE_REPLY}})

            await OllamaInsightProvider().analyze("y" * 4500, "big.pdf")

        user_message = client.chat.await_args.kwargs["messages"][1]["content"]
        assert user_message.endswith("Content: " + "y" * 4000)

    @pytest.mark.asyncio
    async def test_server_error_reported(self):
        with patch("docvault.classification.insights.ollama.AsyncClient") as client_cls:
            client_cls.return_value.chat = AsyncMock(side_effect=ollama.ResponseError("model not found"))

            insight = await OllamaInsightProvider().analyze("Invoice", "inv.pdf")

        assert "model not found" in insight.error

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [
            httpx.ReadTimeout("read timed out"),
            httpx.RemoteProtocolError("server disconnected"),
            httpx.ReadError("connection reset"),
        ],
    )
    async def test_transport_errors_reported(self, error):
        with patch("docvault.classification.insights.ollama.AsyncClient") as client_cls:
            client_cls.return_value.chat = AsyncMock(side_effect=error)

            insight = await OllamaInsightProvider().analyze("Invoice", "inv.pdf")

        assert type(error).__name__ in insight.error
        assert insight.document_type == "unknown"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("reply", [{"done": True}, {"message": None}, None])
    async def test_malformed_chat_response(self, reply):
        with patch("docvault.classification.insights.ollama.AsyncClient") as client_cls:
            client_cls.return_value.chat = AsyncMock(return_value=reply)

            insight = await OllamaInsightProvider().analyze("Invoice", "inv.pdf")

        assert "Malformed chat response" in insight.error

    @pytest.mark.asyncio
    async def test_url_resolution_order(self):
        settings_repository = MagicMock()
        settings_repository.get = AsyncMock(return_value="http://stored:11434")

        assert await OllamaInsightProvider(base_url="http://explicit:1").resolve_url() == "http://explicit:1"
        stored = OllamaInsightProvider(settings_repository=settings_repository)
        assert await stored.resolve_url() == "http://stored:11434"
        settings_repository.get.assert_awaited_with("ollama_url")
        assert await OllamaInsightProvider().resolve_url() == "http://localhost:11434"

    @pytest.mark.asyncio
    async def test_settings_store_failure_falls_back(self):
        settings_repository = MagicMock()
        settings_repository.get = AsyncMock(side_effect=CatalogUnavailableError("down"))

        provider = OllamaInsightProvider(settings_repository=settings_repository)

        assert await provider.resolve_url() == "http://localhost:11434"


class TestCreateInsightProvider:
    def test_default_is_gemini(self):
        assert isinstance(create_insight_provider(), GeminiInsightProvider)

    def test_from_environment(self, monkeypatch):
        from docvault.config import reset_settings

        monkeypatch.setenv("AI_PROVIDER", "Ollama")
        reset_settings()

        assert isinstance(create_insight_provider(), OllamaInsightProvider)

    def test_unknown_provider(self):
        with pytest.raises(ConfigurationError, match="Unknown AI provider"):
            create_insight_provider("watson")
