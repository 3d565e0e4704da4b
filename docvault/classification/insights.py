"""
Optional LLM-assisted document insights.

Providers ask a model to name the document type and pull out a summary,
key entities and suggested tags. They are advisory only: any provider
failure comes back as a DocumentInsight carrying an error, never as an
exception, so ingestion does not depend on an external model being up.
"""

import asyncio
import json
import re
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import google.generativeai as genai
import httpx
import ollama
from pydantic import ValidationError

from docvault.config import get_settings
from docvault.models import DocumentInsight
from docvault.utils.errors import ConfigurationError, InsightProviderError, PersistenceError
from docvault.utils.logging import get_logger, log_performance

logger = get_logger(__name__)

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")

SYSTEM_PROMPT = """You are a document analyzer. Analyze documents and extract metadata.
Return ONLY valid JSON with this structure:
{
  "document_type": "CV|Resume|Invoice|Contract|Report|Proposal|Manual|Other",
  "confidence": 0.0-1.0,
  "extracted_fields": {"field": "value"},
  "summary": "brief summary",
  "key_entities": ["entity1"],
  "suggested_tags": ["tag1"]
}"""


def build_prompt(content: str, file_name: str) -> str:
    return f"""Analyze this document and extract structured metadata as JSON.

Document file: {file_name}
Content: {content}

Detect the document type and extract the fields relevant to it:
- CV/Resume: name, years_experience, skills, education, position, contact
- Invoice: invoice_number, amount, client, due_date, status, items
- Contract: parties, start_date, end_date, value, terms
- Report: period, type, key_metrics, summary
- Proposal: title, client, value, deadline, scope
- Other: title, date, keywords, category, summary

Return JSON only, no markdown, no explanation."""


def parse_insight_response(text: str) -> DocumentInsight:
    """
    Turn a model reply into a DocumentInsight.

    Accepts a bare JSON object or one embedded in surrounding prose or a
    markdown fence.

    Raises:
        ValueError: If no usable JSON object is present
    """
    if not text or not text.strip():
        raise ValueError("Empty response")

    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        match = _JSON_OBJECT.search(text)
        if not match:
            raise ValueError("No valid JSON in response")
        try:
            data = json.loads(match.group(0))
        except json.JSONDecodeError as e:
            raise ValueError(f"Malformed JSON in response: {e}")

    if not isinstance(data, dict):
        raise ValueError("Response JSON is not an object")

    data.pop("error", None)
    for list_field in ("key_entities", "suggested_tags"):
        if isinstance(data.get(list_field), list):
            data[list_field] = [str(item) for item in data[list_field]]

    try:
        return DocumentInsight(**data)
    except ValidationError as e:
        raise ValueError(f"Unexpected response shape: {e.error_count()} invalid fields")


class InsightProvider(ABC):
    """Base class for LLM insight providers."""

    name = "base"

    @abstractmethod
    def is_enabled(self) -> bool:
        ...

    @abstractmethod
    async def _generate(self, content: str, file_name: str) -> str:
        """Return the raw model reply for already-truncated content."""

    @property
    def max_content_length(self) -> int:
        return get_settings().llm_max_content_length

    @log_performance
    async def analyze(self, content: str, file_name: str = "") -> DocumentInsight:
        """
        Infer document metadata from its text.

        Args:
            content: Extracted document text
            file_name: Original file name, passed to the model as context

        Returns:
            The insight; on any failure an insight with ``error`` set
        """
        if not self.is_enabled():
            return DocumentInsight.failed(f"{self.name} provider not enabled")

        if not content or not content.strip():
            return DocumentInsight.failed("No content to analyze")

        truncated = content[: self.max_content_length]
        try:
            reply = await self._generate(truncated, file_name)
            return parse_insight_response(reply)
        except (InsightProviderError, ValueError) as e:
            logger.error(f"Insight extraction failed for {file_name or 'document'}: {e}")
            return DocumentInsight.failed(str(e))


class GeminiInsightProvider(InsightProvider):
    """Insights from Google Gemini."""

    name = "gemini"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model_name: Optional[str] = None,
        temperature: float = 0.2,
        max_retries: Optional[int] = None,
        retry_delay: Optional[float] = None,
    ) -> None:
        settings = get_settings()
        self.api_key = api_key or settings.gemini_api_key
        self.model_name = model_name or settings.gemini_model
        self.temperature = temperature
        self.max_retries = max_retries or settings.llm_max_retries
        self.retry_delay = settings.llm_retry_delay if retry_delay is None else retry_delay
        self._model = None

        if not self.is_enabled():
            logger.warning("GEMINI_API_KEY not found or invalid, Gemini insights disabled")

    def is_enabled(self) -> bool:
        return bool(self.api_key) and len(self.api_key) >= 20

    def _get_model(self):
        if self._model is None:
            genai.configure(api_key=self.api_key)
            self._model = genai.GenerativeModel(self.model_name)
        return self._model

    async def _generate(self, content: str, file_name: str) -> str:
        model = self._get_model()
        prompt = build_prompt(content, file_name)
        last_error: Optional[Exception] = None

        for attempt in range(1, self.max_retries + 1):
            try:
                response = await asyncio.to_thread(
                    model.generate_content,
                    prompt,
                    generation_config={"temperature": self.temperature},
                )
                return response.text
            except Exception as e:
                last_error = e
                logger.warning(f"Gemini API attempt {attempt}/{self.max_retries} failed: {e}")
                if attempt < self.max_retries:
                    await asyncio.sleep(self.retry_delay * 2 ** (attempt - 1))

        raise InsightProviderError(self.name, str(last_error))


class OllamaInsightProvider(InsightProvider):
    """Insights from a local Ollama server."""

    name = "ollama"

    def __init__(
        self,
        base_url: Optional[str] = None,
        model_name: Optional[str] = None,
        settings_repository=None,
    ) -> None:
        """
        Args:
            base_url: Server URL; overrides the stored setting when given
            model_name: Ollama model tag
            settings_repository: SettingsRepository used to look up ``ollama_url``
        """
        settings = get_settings()
        self.base_url = base_url
        self.default_url = settings.ollama_url
        self.model_name = model_name or settings.ollama_model
        self.settings_repository = settings_repository

    def is_enabled(self) -> bool:
        return bool(self.model_name)

    @property
    def max_content_length(self) -> int:
        return min(4000, super().max_content_length)

    async def resolve_url(self) -> str:
        """Explicit URL, then the stored ``ollama_url`` setting, then the environment."""
        if self.base_url:
            return self.base_url
        if self.settings_repository is not None:
            try:
                stored = await self.settings_repository.get("ollama_url")
            except PersistenceError as e:
                logger.warning(f"Could not read ollama_url setting: {e}")
                stored = None
            if stored:
                return stored
        return self.default_url

    async def _generate(self, content: str, file_name: str) -> str:
        client = ollama.AsyncClient(host=await self.resolve_url())
        messages: list[Dict[str, Any]] = [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": f"Analyze this document and extract metadata.\nFile: {file_name}\nContent: {content}"},
        ]
        try:
            response = await client.chat(model=self.model_name, messages=messages, format="json")
        except (ollama.ResponseError, httpx.HTTPError, ConnectionError, OSError) as e:
            raise InsightProviderError(self.name, f"{type(e).__name__}: {e}")

        try:
            return response["message"]["content"]
        except (KeyError, TypeError) as e:
            raise InsightProviderError(self.name, f"Malformed chat response: {e!r}")


_PROVIDERS = {
    GeminiInsightProvider.name: GeminiInsightProvider,
    OllamaInsightProvider.name: OllamaInsightProvider,
}


def create_insight_provider(name: Optional[str] = None, **kwargs: Any) -> InsightProvider:
    """
    Create the configured insight provider.

    Args:
        name: 'gemini' or 'ollama' (defaults to AI_PROVIDER)

    Raises:
        ConfigurationError: If the provider name is unknown
    """
    name = (name or get_settings().ai_provider).lower()
    provider_cls = _PROVIDERS.get(name)
    if provider_cls is None:
        raise ConfigurationError(
            f"Unknown AI provider '{name}'",
            {"supported": sorted(_PROVIDERS)},
        )
    return provider_cls(**kwargs)
