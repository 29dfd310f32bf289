"""
Provider Client Tests
=====================

Request shapes and response parsing for every vendor adapter, over
httpx.MockTransport.
"""

import httpx
import pytest

from conftest import (
    RecordingTransport,
    anthropic_message,
    chat_completion,
    cohere_chat,
    gemini_content,
    make_http,
)
from promptop.core.config import Config
from promptop.core.models import ModelProvider, ProviderError
from promptop.core.providers import (
    ANTHROPIC_VERSION,
    AnthropicClient,
    CohereClient,
    DeepSeekClient,
    GeminiClient,
    GenerationSettings,
    MetaLlamaClient,
    OpenAICompatibleClient,
    build_provider_clients,
)


def reply_with(body: dict, status: int = 200):
    return lambda request: httpx.Response(status, json=body)


class TestGenerationSettings:

    def test_default_settings(self, registry):
        settings = GenerationSettings.for_model(registry.describe("gpt-4o-mini"))
        assert settings.temperature == 0.7
        assert settings.max_tokens == 2000

    def test_reasoning_settings(self, registry):
        settings = GenerationSettings.for_model(registry.describe("deepseek-r1"))
        assert settings.temperature == 1.0
        assert settings.max_tokens == 8000


class TestOpenAICompatible:

    @pytest.mark.asyncio
    async def test_request_shape(self, registry):
        transport = RecordingTransport({"openai": reply_with(chat_completion("Hi there"))})
        client = OpenAICompatibleClient(make_http(transport), "sk-test-openai")

        reply = await client.complete(registry.describe("gpt-4o-mini"), "hello")

        request = transport.requests[0]
        assert str(request.url) == "https://api.openai.com/v1/chat/completions"
        assert request.headers["authorization"] == "Bearer sk-test-openai"
        body = transport.body()
        assert body["model"] == "gpt-4o-mini"
        assert body["messages"] == [{"role": "user", "content": "hello"}]
        assert body["temperature"] == 0.7
        assert body["max_tokens"] == 2000

        assert reply.text == "Hi there"
        assert reply.prompt_tokens == 12
        assert reply.completion_tokens == 34
        assert reply.finish_reason == "stop"

    @pytest.mark.asyncio
    async def test_meta_compat_endpoint(self, registry):
        transport = RecordingTransport({"llama": reply_with(chat_completion("ok"))})
        client = MetaLlamaClient(make_http(transport), "test-meta")

        await client.complete(registry.describe("llama-3-8b"), "hello")

        assert str(transport.requests[0].url) == "https://api.llama.com/compat/v1/chat/completions"
        assert transport.body()["model"] == "Llama-3.3-8B-Instruct"

    @pytest.mark.asyncio
    async def test_base_url_override(self, registry):
        transport = RecordingTransport()
        client = OpenAICompatibleClient(make_http(transport), "k", base_url="http://localhost:9000/v1/")

        await client.complete(registry.describe("gpt-4o"), "hello")

        assert str(transport.requests[0].url) == "http://localhost:9000/v1/chat/completions"


class TestDeepSeek:

    @pytest.mark.asyncio
    async def test_reasoning_model_strips_think_block(self, registry):
        text = "<think>\nThe user wants a greeting.\n</think>\n\nHello!"
        transport = RecordingTransport({"deepseek": reply_with(chat_completion(text))})
        client = DeepSeekClient(make_http(transport), "sk-test-deepseek")

        reply = await client.complete(registry.describe("deepseek-r1"), "greet me")

        assert reply.text == "Hello!"
        body = transport.body()
        assert body["model"] == "deepseek-reasoner"
        assert body["temperature"] == 1.0
        assert body["max_tokens"] == 8000
        assert str(transport.requests[0].url) == "https://api.deepseek.com/v1/chat/completions"


class TestAnthropic:

    @pytest.mark.asyncio
    async def test_request_shape(self, registry):
        transport = RecordingTransport({"anthropic": reply_with(anthropic_message("Bonjour"))})
        client = AnthropicClient(make_http(transport), "sk-ant-test")

        reply = await client.complete(registry.describe("claude-3.5-sonnet"), "hello")

        request = transport.requests[0]
        assert str(request.url) == "https://api.anthropic.com/v1/messages"
        assert request.headers["x-api-key"] == "sk-ant-test"
        assert request.headers["anthropic-version"] == ANTHROPIC_VERSION
        assert transport.body()["model"] == "claude-3-5-sonnet-latest"
        assert reply.text == "Bonjour"
        assert reply.completion_tokens == 20


class TestGemini:

    @pytest.mark.asyncio
    async def test_request_shape(self, registry):
        transport = RecordingTransport({"googleapis": reply_with(gemini_content("Hola"))})
        client = GeminiClient(make_http(transport), "AIzaTestKeyForGemini")

        reply = await client.complete(registry.describe("gemini-1.5-flash"), "hello")

        request = transport.requests[0]
        assert request.url.path == "/v1beta/models/gemini-1.5-flash:generateContent"
        assert request.headers["x-goog-api-key"] == "AIzaTestKeyForGemini"
        body = transport.body()
        assert body["contents"][0]["parts"][0]["text"] == "hello"
        assert body["generationConfig"] == {"temperature": 0.7, "maxOutputTokens": 2000}
        assert reply.text == "Hola"
        assert reply.finish_reason == "STOP"

    @pytest.mark.asyncio
    async def test_no_candidates_is_empty_text(self, registry):
        transport = RecordingTransport({"googleapis": reply_with({"candidates": []})})
        client = GeminiClient(make_http(transport), "AIzaTestKeyForGemini")

        reply = await client.complete(registry.describe("gemini-1.5-flash"), "hello")
        assert reply.text == ""


class TestCohere:

    @pytest.mark.asyncio
    async def test_request_shape(self, registry):
        transport = RecordingTransport({"cohere": reply_with(cohere_chat("Ciao"))})
        client = CohereClient(make_http(transport), "test-cohere")

        reply = await client.complete(registry.describe("command-r-plus"), "hello")

        assert str(transport.requests[0].url) == "https://api.cohere.com/v2/chat"
        assert transport.body()["model"] == "command-r-plus"
        assert reply.text == "Ciao"
        assert reply.prompt_tokens == 3


class TestFailures:

    @pytest.mark.asyncio
    async def test_non_200_raises_with_status(self, registry):
        transport = RecordingTransport({"openai": reply_with({"error": {"message": "nope"}}, status=401)})
        client = OpenAICompatibleClient(make_http(transport), "sk-test-openai")

        with pytest.raises(ProviderError) as exc:
            await client.complete(registry.describe("gpt-4o-mini"), "hello")
        assert str(exc.value).startswith("401")

    @pytest.mark.asyncio
    async def test_malformed_body(self, registry):
        transport = RecordingTransport({"openai": reply_with({"unexpected": True})})
        client = OpenAICompatibleClient(make_http(transport), "sk-test-openai")

        with pytest.raises(ProviderError):
            await client.complete(registry.describe("gpt-4o-mini"), "hello")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("client_cls, host, model_id, body", [
        (OpenAICompatibleClient, "openai", "gpt-4o-mini", {"choices": ["x"]}),
        (AnthropicClient, "anthropic", "claude-3-opus", {"content": ["oops"]}),
        (GeminiClient, "googleapis", "gemini-1.5-pro", {"candidates": ["x"]}),
        (CohereClient, "cohere", "command-r-plus", {"message": {"content": ["x"]}}),
    ])
    async def test_wrong_shape_body(self, registry, client_cls, host, model_id, body):
        client = client_cls(make_http(RecordingTransport({host: reply_with(body)})), "test-key")

        with pytest.raises(ProviderError) as exc:
            await client.complete(registry.describe(model_id), "hello")
        assert "Malformed response" in str(exc.value)

    @pytest.mark.asyncio
    async def test_transport_error(self, registry):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = AnthropicClient(make_http(RecordingTransport({"anthropic": refuse})), "sk-ant-test")

        with pytest.raises(ProviderError):
            await client.complete(registry.describe("claude-3-opus"), "hello")

    @pytest.mark.asyncio
    async def test_timeout(self, registry):
        def slow(request):
            raise httpx.ReadTimeout("timed out", request=request)

        client = GeminiClient(make_http(RecordingTransport({"googleapis": slow})), "AIzaTestKeyForGemini")

        with pytest.raises(ProviderError) as exc:
            await client.complete(registry.describe("gemini-1.5-pro"), "hello")
        assert "timed out" in str(exc.value)


class TestBuildProviderClients:

    def test_missing_credentials_map_to_none(self):
        clients = build_provider_clients(
            Config(openai_api_key="sk-test-openai"),
            make_http(RecordingTransport()),
        )

        assert set(clients) == set(ModelProvider)
        assert isinstance(clients[ModelProvider.OPENAI], OpenAICompatibleClient)
        assert clients[ModelProvider.ANTHROPIC] is None
        assert clients[ModelProvider.GOOGLE] is None

    def test_one_client_type_per_provider(self):
        config = Config(
            openai_api_key="a", anthropic_api_key="b", gemini_api_key="c",
            deepseek_api_key="d", mistral_api_key="e", meta_api_key="f", cohere_api_key="g",
        )
        clients = build_provider_clients(config, make_http(RecordingTransport()))

        for provider, client in clients.items():
            assert client.provider == provider
