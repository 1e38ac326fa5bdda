# tests/test_providers.py
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from app.services.providers import (
    AnthropicProvider,
    GeminiProvider,
    OpenAIProvider,
    ProviderError,
    TokenUsage,
)

TURNS = [
    {"role": "user", "content": "Hi"},
    {"role": "assistant", "content": "Hello!"},
    {"role": "user", "content": "Menu?"},
]


# ---------- OpenAI ----------

def _openai_completion(text, usage=True):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=text))],
        usage=SimpleNamespace(prompt_tokens=12, completion_tokens=8, total_tokens=20) if usage else None,
    )


def test_openai_request_puts_system_first():
    provider = OpenAIProvider(api_key="sk-test", model="gpt-4o-mini", client=MagicMock())
    request = provider.build_request("Be nice", TURNS)

    assert request["model"] == "gpt-4o-mini"
    assert request["messages"][0] == {"role": "system", "content": "Be nice"}
    assert request["messages"][1:] == TURNS
    assert request["max_tokens"] == 500


@pytest.mark.anyio
async def test_openai_complete_returns_text_and_usage():
    client = MagicMock()
    client.chat.completions.create = AsyncMock(return_value=_openai_completion("  Our menu...  "))
    provider = OpenAIProvider(api_key="sk-test", model="gpt-4o-mini", client=client)

    text, usage = await provider.complete("Be nice", TURNS)

    assert text == "Our menu..."
    assert usage == TokenUsage(input=12, output=8, total=20)
    client.chat.completions.create.assert_awaited_once()


@pytest.mark.anyio
async def test_openai_empty_content_is_an_error():
    client = MagicMock()
    client.chat.completions.create = AsyncMock(return_value=_openai_completion(None, usage=False))
    provider = OpenAIProvider(api_key="sk-test", model="gpt-4o-mini", client=client)

    with pytest.raises(ProviderError):
        await provider.complete("Be nice", TURNS)


@pytest.mark.anyio
async def test_unconfigured_provider_fails_without_network(monkeypatch):
    from config.settings import settings
    monkeypatch.setattr(settings, "OPENAI_API_KEY", None)
    client = MagicMock()
    client.chat.completions.create = AsyncMock()
    provider = OpenAIProvider(client=client)

    assert provider.is_configured() is False
    with pytest.raises(ProviderError):
        await provider.complete("Be nice", TURNS)
    client.chat.completions.create.assert_not_called()


# ---------- Anthropic ----------

def test_anthropic_request_uses_system_field():
    provider = AnthropicProvider(api_key="sk-ant", model="claude-3-5-sonnet", client=MagicMock())
    request = provider.build_request("Be nice", TURNS)

    assert request["system"] == "Be nice"
    assert request["messages"] == TURNS
    assert all(m["role"] != "system" for m in request["messages"])


@pytest.mark.anyio
async def test_anthropic_complete_joins_text_blocks():
    raw = SimpleNamespace(
        content=[
            SimpleNamespace(type="text", text="Our menu "),
            SimpleNamespace(type="text", text="has coffee."),
        ],
        usage=SimpleNamespace(input_tokens=30, output_tokens=10),
    )
    client = MagicMock()
    client.messages.create = AsyncMock(return_value=raw)
    provider = AnthropicProvider(api_key="sk-ant", model="claude-3-5-sonnet", client=client)

    text, usage = await provider.complete("Be nice", TURNS)

    assert text == "Our menu has coffee."
    assert usage == TokenUsage(input=30, output=10, total=40)


# ---------- Gemini ----------

def _gemini(handler):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return GeminiProvider(api_key="g-key", model="gemini-1.5-flash",
                          base_url="https://gemini.test/v1beta", client=client)


def test_gemini_request_maps_roles():
    provider = GeminiProvider(api_key="g-key", model="gemini-1.5-flash")
    request = provider.build_request("Be nice", TURNS)

    assert [c["role"] for c in request["contents"]] == ["user", "model", "user"]
    assert request["systemInstruction"] == {"parts": [{"text": "Be nice"}]}


@pytest.mark.anyio
async def test_gemini_complete_success():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        return httpx.Response(200, json={
            "candidates": [{"content": {"parts": [{"text": "Coffee is 3$"}]}}],
            "usageMetadata": {"promptTokenCount": 5, "candidatesTokenCount": 4, "totalTokenCount": 9},
        })

    text, usage = await _gemini(handler).complete("Be nice", TURNS)

    assert text == "Coffee is 3$"
    assert usage == TokenUsage(input=5, output=4, total=9)
    assert seen["url"].startswith("https://gemini.test/v1beta/models/gemini-1.5-flash:generateContent")
    assert "key=g-key" in seen["url"]


@pytest.mark.anyio
async def test_gemini_without_usage_metadata():
    def handler(request):
        return httpx.Response(200, json={"candidates": [{"content": {"parts": [{"text": "Hi"}]}}]})

    text, usage = await _gemini(handler).complete("Be nice", TURNS)
    assert text == "Hi"
    assert usage is None


@pytest.mark.anyio
async def test_gemini_http_error_raises_provider_error():
    def handler(request):
        return httpx.Response(429, json={"error": {"message": "Resource exhausted"}})

    with pytest.raises(ProviderError) as exc:
        await _gemini(handler).complete("Be nice", TURNS)
    assert "429" in str(exc.value)
    assert "Resource exhausted" in str(exc.value)


@pytest.mark.anyio
async def test_gemini_no_candidates_is_empty_reply():
    def handler(request):
        return httpx.Response(200, json={"candidates": []})

    with pytest.raises(ProviderError):
        await _gemini(handler).complete("Be nice", TURNS)
