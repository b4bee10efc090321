"""Tests for the OpenAI provider adapter."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from mcpchain.ai_providers.base import ProviderError, ProviderMessage, StopReason
from mcpchain.ai_providers.openai import OpenAIProvider


def completion(content, finish_reason="stop"):
    return SimpleNamespace(
        model="gpt-4o-mini",
        choices=[
            SimpleNamespace(message=SimpleNamespace(content=content), finish_reason=finish_reason)
        ],
        usage=SimpleNamespace(prompt_tokens=10, completion_tokens=5, total_tokens=15),
    )


def stream_chunk(content):
    return SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=content))])


class FakeStream:
    def __init__(self, chunks):
        self._chunks = list(chunks)

    def __aiter__(self):
        return self

    async def __anext__(self):
        if not self._chunks:
            raise StopAsyncIteration
        return self._chunks.pop(0)


@pytest.fixture
def provider():
    return OpenAIProvider({"model_id": "gpt-4o-mini", "api_key": "sk-test", "temperature": 0.2})


class TestOpenAIProvider:
    """Test cases for OpenAI chat completions."""

    @pytest.mark.asyncio
    async def test_initialize_requires_key(self, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        with pytest.raises(ValueError, match="API key"):
            await OpenAIProvider({"model_id": "m"}).initialize()

    @pytest.mark.asyncio
    async def test_not_initialized(self, provider):
        with pytest.raises(ProviderError):
            await provider.chat_completion([ProviderMessage("hi")])

    @pytest.mark.asyncio
    async def test_chat_completion(self, provider):
        with patch("mcpchain.ai_providers.openai.AsyncOpenAI") as client_cls:
            client = MagicMock()
            client.chat.completions.create = AsyncMock(return_value=completion("  Hello  "))
            client_cls.return_value = client
            await provider.initialize()

            response = await provider.chat_completion([ProviderMessage("hi", role="system")])

        assert response.content == "Hello"
        assert response.stop_reason is StopReason.end_of_turn
        assert response.usage["total_tokens"] == 15
        params = client.chat.completions.create.await_args.kwargs
        assert params["messages"] == [{"role": "system", "content": "hi"}]
        assert params["temperature"] == 0.2
        assert params["model"] == "gpt-4o-mini"

    @pytest.mark.asyncio
    async def test_length_finish_reason(self, provider):
        with patch("mcpchain.ai_providers.openai.AsyncOpenAI") as client_cls:
            client = MagicMock()
            client.chat.completions.create = AsyncMock(
                return_value=completion("cut", finish_reason="length")
            )
            client_cls.return_value = client
            await provider.initialize()

            response = await provider.chat_completion([ProviderMessage("hi")])

        assert response.stop_reason is StopReason.out_of_tokens

    @pytest.mark.asyncio
    async def test_stream_completion(self, provider):
        with patch("mcpchain.ai_providers.openai.AsyncOpenAI") as client_cls:
            client = MagicMock()
            client.chat.completions.create = AsyncMock(
                return_value=FakeStream([stream_chunk("Hel"), stream_chunk(None), stream_chunk("lo")])
            )
            client_cls.return_value = client
            await provider.initialize()

            chunks = [c async for c in provider.stream_completion([ProviderMessage("hi")])]

        assert chunks == ["Hel", "lo"]
        assert client.chat.completions.create.await_args.kwargs["stream"] is True

    @pytest.mark.asyncio
    async def test_shutdown(self, provider):
        with patch("mcpchain.ai_providers.openai.AsyncOpenAI") as client_cls:
            client = MagicMock()
            client.close = AsyncMock()
            client_cls.return_value = client
            await provider.initialize()

            await provider.shutdown()

        client.close.assert_awaited_once()
        assert provider.client is None
