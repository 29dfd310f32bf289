"""
PromptOp Gateway - Pytest Configuration
=======================================

Shared fixtures. Vendor HTTP is served by httpx.MockTransport; nothing
leaves the process.
"""

import json
from typing import Callable, Dict, List, Optional

import httpx
import pytest

from promptop.core.aliases import AliasResolver
from promptop.core.config import Config
from promptop.core.dispatcher import RequestDispatcher
from promptop.core.enhancer import PromptEnhancer
from promptop.core.gateway import PromptGateway
from promptop.core.models import Account
from promptop.core.providers import build_provider_clients
from promptop.core.quota import QuotaAccessor
from promptop.core.registry import ModelRegistry
from promptop.core.storage import InMemoryAccountStore, InMemoryCatalogStore


ALL_KEYS = dict(
    openai_api_key="sk-test-openai",
    anthropic_api_key="sk-ant-test",
    gemini_api_key="AIzaTestKeyForGemini",
    deepseek_api_key="sk-test-deepseek",
    mistral_api_key="test-mistral",
    meta_api_key="test-meta",
    cohere_api_key="test-cohere",
)


# =============================================================================
# Vendor response bodies
# =============================================================================

def chat_completion(text: str) -> dict:
    """OpenAI-compatible chat completion body."""
    return {
        "choices": [{"message": {"role": "assistant", "content": text}, "finish_reason": "stop"}],
        "usage": {"prompt_tokens": 12, "completion_tokens": 34},
    }


def anthropic_message(text: str) -> dict:
    return {
        "content": [{"type": "text", "text": text}],
        "stop_reason": "end_turn",
        "usage": {"input_tokens": 10, "output_tokens": 20},
    }


def gemini_content(text: str) -> dict:
    return {
        "candidates": [{"content": {"parts": [{"text": text}]}, "finishReason": "STOP"}],
        "usageMetadata": {"promptTokenCount": 5, "candidatesTokenCount": 7},
    }


def cohere_chat(text: str) -> dict:
    return {
        "message": {"role": "assistant", "content": [{"type": "text", "text": text}]},
        "finish_reason": "COMPLETE",
        "usage": {"tokens": {"input_tokens": 3, "output_tokens": 4}},
    }


class RecordingTransport:
    """MockTransport handler that records requests and replies per host."""

    def __init__(self, replies: Optional[Dict[str, Callable[[httpx.Request], httpx.Response]]] = None):
        self.replies = replies or {}
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        for host, reply in self.replies.items():
            if host in request.url.host:
                return reply(request)
        return httpx.Response(200, json=chat_completion("default reply"))

    def hosts(self) -> List[str]:
        return [r.url.host for r in self.requests]

    def body(self, index: int = -1) -> dict:
        return json.loads(self.requests[index].content)


def make_http(transport: RecordingTransport) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(transport))


def make_gateway(
    accounts: InMemoryAccountStore,
    transport: Optional[RecordingTransport] = None,
    keys: Optional[dict] = None,
    catalog: Optional[InMemoryCatalogStore] = None,
) -> PromptGateway:
    """Fully wired gateway over in-memory stores and a mock transport."""
    transport = transport or RecordingTransport()
    config = Config(**(ALL_KEYS if keys is None else keys))
    registry = ModelRegistry()
    dispatcher = RequestDispatcher(registry, build_provider_clients(config, make_http(transport)))
    return PromptGateway(
        registry=registry,
        resolver=AliasResolver(catalog),
        quota=QuotaAccessor(accounts),
        dispatcher=dispatcher,
        enhancer=PromptEnhancer(dispatcher),
        run_store=accounts,
    )


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def registry() -> ModelRegistry:
    return ModelRegistry()


@pytest.fixture
def accounts() -> InMemoryAccountStore:
    return InMemoryAccountStore(accounts=[
        Account(id="acct-free", plan="free"),
        Account(id="acct-pro", plan="pro"),
        Account(id="acct-team", plan="team"),
        Account(id="acct-enterprise", plan="enterprise"),
    ])


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()
