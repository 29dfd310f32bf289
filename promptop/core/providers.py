"""
LLM Provider Clients

One adapter per vendor. Every adapter shares the process-wide
`httpx.AsyncClient` and turns (model, prompt) into the vendor's request shape,
then extracts the completion text from the vendor's response shape.

    OpenAI-compatible  /v1/chat/completions   OpenAI, DeepSeek, Mistral, Meta
    Anthropic          /v1/messages
    Google Gemini      /v1beta/models/{model}:generateContent
    Cohere             /v2/chat

Clients are built once at startup by `build_provider_clients`. A vendor with
no credential gets no client, which makes every model routed to it
non-invokable.
"""

from __future__ import annotations
import re
import logging
from dataclasses import dataclass
from typing import Optional, Dict, Any, Tuple, Type

import httpx

from promptop.core.config import Config
from promptop.core.models import (
    ModelDescriptor,
    ModelProvider,
    ProviderError,
)

logger = logging.getLogger("promptop.providers")


# =============================================================================
# PROVIDER CONFIGURATION
# =============================================================================

PROVIDER_ENDPOINTS: Dict[ModelProvider, str] = {
    ModelProvider.OPENAI: "https://api.openai.com/v1",
    ModelProvider.DEEPSEEK: "https://api.deepseek.com/v1",
    ModelProvider.MISTRAL: "https://api.mistral.ai/v1",
    ModelProvider.META: "https://api.llama.com/compat/v1",
    ModelProvider.ANTHROPIC: "https://api.anthropic.com",
    ModelProvider.GOOGLE: "https://generativelanguage.googleapis.com",
    ModelProvider.COHERE: "https://api.cohere.com",
}

PROVIDER_CREDENTIALS: Dict[ModelProvider, str] = {
    ModelProvider.OPENAI: "OPENAI_API_KEY",
    ModelProvider.DEEPSEEK: "DEEPSEEK_API_KEY",
    ModelProvider.MISTRAL: "MISTRAL_API_KEY",
    ModelProvider.META: "META_API_KEY",
    ModelProvider.ANTHROPIC: "ANTHROPIC_API_KEY",
    ModelProvider.GOOGLE: "GEMINI_API_KEY",
    ModelProvider.COHERE: "COHERE_API_KEY",
}

ANTHROPIC_VERSION = "2023-06-01"

DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_TOKENS = 2000

# Reasoning models think before answering and need room to do so
REASONING_TEMPERATURE = 1.0
REASONING_MAX_TOKENS = 8000

THINK_BLOCK_PATTERN = re.compile(r"<think>.*?</think>", re.DOTALL)


@dataclass(frozen=True)
class GenerationSettings:
    """Sampling parameters sent with a request."""
    temperature: float
    max_tokens: int

    @classmethod
    def for_model(cls, model: ModelDescriptor) -> "GenerationSettings":
        if model.reasoning:
            return cls(temperature=REASONING_TEMPERATURE, max_tokens=REASONING_MAX_TOKENS)
        return cls(temperature=DEFAULT_TEMPERATURE, max_tokens=DEFAULT_MAX_TOKENS)


@dataclass
class ProviderReply:
    """Completion returned by a vendor."""
    text: str
    prompt_tokens: int = 0
    completion_tokens: int = 0
    finish_reason: Optional[str] = None


def create_http_client() -> httpx.AsyncClient:
    """Shared HTTP client for every vendor."""
    return httpx.AsyncClient(
        timeout=httpx.Timeout(300.0, connect=10.0),
        limits=httpx.Limits(max_connections=100, max_keepalive_connections=20),
    )


# =============================================================================
# BASE CLIENT
# =============================================================================

class ProviderClient:
    """
    Base vendor adapter.

    Subclasses implement `build_request` and `parse_response`. Instances are
    stateless apart from their credential and are safe to share between
    concurrent requests.
    """

    provider: ModelProvider

    def __init__(
        self,
        http: httpx.AsyncClient,
        api_key: str,
        base_url: Optional[str] = None,
    ):
        self.http = http
        self.api_key = api_key
        self.base_url = (base_url or PROVIDER_ENDPOINTS[self.provider]).rstrip("/")

    def build_request(
        self,
        model: ModelDescriptor,
        prompt: str,
        settings: GenerationSettings,
    ) -> Tuple[str, Dict[str, str], Dict[str, Any]]:
        """Return (url, headers, json body)."""
        raise NotImplementedError

    def parse_response(self, data: Dict[str, Any]) -> ProviderReply:
        raise NotImplementedError

    def clean_text(self, text: str) -> str:
        return text.strip()

    async def complete(self, model: ModelDescriptor, prompt: str) -> ProviderReply:
        """
        Send a single-turn prompt to the vendor.

        Raises ProviderError with the raw vendor error text; callers must
        sanitize it before showing it to anyone.
        """
        settings = GenerationSettings.for_model(model)
        url, headers, body = self.build_request(model, prompt, settings)

        try:
            response = await self.http.post(url, headers=headers, json=body)
        except httpx.TimeoutException as e:
            raise ProviderError(f"Request to {self.provider.value} timed out: {e}") from e
        except httpx.HTTPError as e:
            raise ProviderError(f"Provider error: {type(e).__name__}: {e}") from e

        if response.status_code != 200:
            raise ProviderError(f"{response.status_code} {response.text[:500]}")

        try:
            reply = self.parse_response(response.json())
        except (ValueError, KeyError, IndexError, TypeError, AttributeError) as e:
            raise ProviderError(f"Malformed response from {self.provider.value}: {e}") from e

        reply.text = self.clean_text(reply.text or "")
        return reply


# =============================================================================
# ADAPTERS
# =============================================================================

class OpenAICompatibleClient(ProviderClient):
    """Chat Completions API and the vendors that mirror it."""

    provider = ModelProvider.OPENAI

    def build_request(self, model, prompt, settings):
        return (
            f"{self.base_url}/chat/completions",
            {"Authorization": f"Bearer {self.api_key}"},
            {
                "model": model.vendor_model,
                "messages": [{"role": "user", "content": prompt}],
                "max_tokens": settings.max_tokens,
                "temperature": settings.temperature,
            },
        )

    def parse_response(self, data):
        choice = data["choices"][0]
        usage = data.get("usage") or {}
        return ProviderReply(
            text=(choice.get("message") or {}).get("content") or "",
            prompt_tokens=usage.get("prompt_tokens", 0),
            completion_tokens=usage.get("completion_tokens", 0),
            finish_reason=choice.get("finish_reason"),
        )


class DeepSeekClient(OpenAICompatibleClient):
    """DeepSeek. Reasoning output embeds a <think> block that is dropped."""

    provider = ModelProvider.DEEPSEEK

    def clean_text(self, text: str) -> str:
        return THINK_BLOCK_PATTERN.sub("", text).strip()


class MistralClient(OpenAICompatibleClient):
    provider = ModelProvider.MISTRAL


class MetaLlamaClient(OpenAICompatibleClient):
    """Llama API through its OpenAI compatibility endpoint."""
    provider = ModelProvider.META


class AnthropicClient(ProviderClient):
    """Anthropic Messages API."""

    provider = ModelProvider.ANTHROPIC

    def build_request(self, model, prompt, settings):
        return (
            f"{self.base_url}/v1/messages",
            {
                "x-api-key": self.api_key,
                "anthropic-version": ANTHROPIC_VERSION,
            },
            {
                "model": model.vendor_model,
                "max_tokens": settings.max_tokens,
                "messages": [{"role": "user", "content": prompt}],
                "temperature": settings.temperature,
            },
        )

    def parse_response(self, data):
        text_parts = [
            block.get("text", "")
            for block in data.get("content", [])
            if block.get("type") == "text"
        ]
        usage = data.get("usage") or {}
        return ProviderReply(
            text="\n".join(text_parts),
            prompt_tokens=usage.get("input_tokens", 0),
            completion_tokens=usage.get("output_tokens", 0),
            finish_reason=data.get("stop_reason"),
        )


class GeminiClient(ProviderClient):
    """Google Gemini generateContent REST API."""

    provider = ModelProvider.GOOGLE

    def build_request(self, model, prompt, settings):
        return (
            f"{self.base_url}/v1beta/models/{model.vendor_model}:generateContent",
            {"x-goog-api-key": self.api_key},
            {
                "contents": [{"role": "user", "parts": [{"text": prompt}]}],
                "generationConfig": {
                    "temperature": settings.temperature,
                    "maxOutputTokens": settings.max_tokens,
                },
            },
        )

    def parse_response(self, data):
        candidates = data.get("candidates", [])
        text = ""
        finish_reason = None
        if candidates:
            parts = candidates[0].get("content", {}).get("parts", [])
            text = "".join(p.get("text", "") for p in parts)
            finish_reason = candidates[0].get("finishReason")

        usage = data.get("usageMetadata") or {}
        return ProviderReply(
            text=text,
            prompt_tokens=usage.get("promptTokenCount", 0),
            completion_tokens=usage.get("candidatesTokenCount", 0),
            finish_reason=finish_reason,
        )


class CohereClient(ProviderClient):
    """Cohere v2 Chat API."""

    provider = ModelProvider.COHERE

    def build_request(self, model, prompt, settings):
        return (
            f"{self.base_url}/v2/chat",
            {"Authorization": f"Bearer {self.api_key}"},
            {
                "model": model.vendor_model,
                "messages": [{"role": "user", "content": prompt}],
                "max_tokens": settings.max_tokens,
                "temperature": settings.temperature,
            },
        )

    def parse_response(self, data):
        content = (data.get("message") or {}).get("content") or []
        text = "".join(block.get("text", "") for block in content if block.get("type") == "text")
        tokens = (data.get("usage") or {}).get("tokens") or {}
        return ProviderReply(
            text=text,
            prompt_tokens=int(tokens.get("input_tokens", 0)),
            completion_tokens=int(tokens.get("output_tokens", 0)),
            finish_reason=data.get("finish_reason"),
        )


# Exhaustive provider -> adapter table
PROVIDER_CLIENTS: Dict[ModelProvider, Type[ProviderClient]] = {
    ModelProvider.OPENAI: OpenAICompatibleClient,
    ModelProvider.DEEPSEEK: DeepSeekClient,
    ModelProvider.MISTRAL: MistralClient,
    ModelProvider.META: MetaLlamaClient,
    ModelProvider.ANTHROPIC: AnthropicClient,
    ModelProvider.GOOGLE: GeminiClient,
    ModelProvider.COHERE: CohereClient,
}

_missing = set(ModelProvider) - set(PROVIDER_CLIENTS)
if _missing:
    raise RuntimeError(f"No client registered for providers: {sorted(p.value for p in _missing)}")


def build_provider_clients(
    config: Config,
    http: httpx.AsyncClient,
    base_urls: Optional[Dict[ModelProvider, str]] = None,
) -> Dict[ModelProvider, Optional[ProviderClient]]:
    """
    Construct one client per configured vendor.

    Vendors without a credential map to None.
    """
    base_urls = base_urls or {}
    clients: Dict[ModelProvider, Optional[ProviderClient]] = {}

    for provider, client_cls in PROVIDER_CLIENTS.items():
        api_key = config.credential(PROVIDER_CREDENTIALS[provider])
        if not api_key:
            logger.warning(f"✗ {provider.value}: no credential configured, models disabled")
            clients[provider] = None
            continue

        clients[provider] = client_cls(http, api_key, base_urls.get(provider))
        logger.info(f"✓ {provider.value} client ready")

    return clients
