"""Tests for step result formatters."""

import json
from unittest.mock import AsyncMock, Mock

import pytest

from mcpchain.ai_providers.base import ProviderResponse
from mcpchain.execution.result_formatter import (
    FINAL_FORMAT_SUFFIX,
    LLMResultFormatter,
    PlainResultFormatter,
    render_plain,
)
from mcpchain.execution.steps import WorkflowStep

STEP = WorkflowStep(step_number=1, mcp_name="crypto-prices", action="get_price")


def streaming_provider(*chunks, error=None):
    """Provider double whose stream yields the given chunks, then optionally fails."""

    async def stream(messages):
        for chunk in chunks:
            yield chunk
        if error is not None:
            raise error

    provider = Mock()
    provider.stream_completion = Mock(side_effect=stream)
    provider.chat_completion = AsyncMock()
    return provider


class TestRenderPlain:
    """Test cases for deterministic rendering."""

    def test_string_unchanged(self):
        assert render_plain("BTC is up") == "BTC is up"

    def test_list_of_strings_numbered(self):
        assert render_plain(["first", "second"]) == "1. first\n2. second"

    def test_object_as_sorted_json(self):
        text = render_plain({"b": 1, "a": [1, 2]})

        assert json.loads(text) == {"a": [1, 2], "b": 1}
        assert text.index('"a"') < text.index('"b"')

    def test_truncation_marker(self):
        text = render_plain("x" * 100, max_result_size=10)

        assert text.startswith("x" * 10)
        assert text.endswith("[TRUNCATED: 90 bytes over limit]")

    def test_within_limit_not_truncated(self):
        assert render_plain("short", max_result_size=10) == "short"


class TestPlainResultFormatter:
    """Test cases for the plain formatter."""

    @pytest.mark.asyncio
    async def test_format(self):
        formatter = PlainResultFormatter()

        assert formatter.streaming is False
        assert await formatter.format(STEP, {"price": 1}) == render_plain({"price": 1})

    @pytest.mark.asyncio
    async def test_chunked_stream(self):
        formatter = PlainResultFormatter(chunk_size=4)

        chunks = [c async for c in formatter.format_stream(STEP, "abcdefghij")]

        assert formatter.streaming is True
        assert chunks == ["abcd", "efgh", "ij"]

    @pytest.mark.asyncio
    async def test_unchunked_stream_yields_once(self):
        chunks = [c async for c in PlainResultFormatter().format_stream(STEP, "abc")]
        assert chunks == ["abc"]


class TestLLMResultFormatter:
    """Test cases for the LLM formatter and its fallbacks."""

    @pytest.mark.asyncio
    async def test_format_uses_provider(self):
        provider = Mock()
        provider.chat_completion = AsyncMock(
            return_value=ProviderResponse(content="**BTC** trades at 50,000", model="m")
        )

        text = await LLMResultFormatter(provider).format(STEP, {"price": 50000})

        assert text == "**BTC** trades at 50,000"
        prompt = provider.chat_completion.await_args.args[0][0].content
        assert "crypto-prices" in prompt
        assert "50000" in prompt
        assert FINAL_FORMAT_SUFFIX.strip() not in prompt

    @pytest.mark.asyncio
    async def test_final_step_prompt(self):
        provider = Mock()
        provider.chat_completion = AsyncMock(return_value=ProviderResponse(content="ok", model="m"))

        await LLMResultFormatter(provider).format(STEP, "raw", is_final=True)

        prompt = provider.chat_completion.await_args.args[0][0].content
        assert FINAL_FORMAT_SUFFIX.strip() in prompt

    @pytest.mark.asyncio
    async def test_format_falls_back_on_failure(self):
        provider = Mock()
        provider.chat_completion = AsyncMock(side_effect=RuntimeError("rate limited"))

        text = await LLMResultFormatter(provider).format(STEP, {"price": 1})

        assert text == render_plain({"price": 1})

    @pytest.mark.asyncio
    async def test_format_falls_back_on_empty_response(self):
        provider = Mock()
        provider.chat_completion = AsyncMock(return_value=ProviderResponse(content="", model="m"))

        assert await LLMResultFormatter(provider).format(STEP, "raw") == "raw"

    @pytest.mark.asyncio
    async def test_stream(self):
        formatter = LLMResultFormatter(streaming_provider("BTC ", "is ", "up"))

        chunks = [c async for c in formatter.format_stream(STEP, {"price": 1}, is_final=True)]

        assert formatter.streaming is True
        assert chunks == ["BTC ", "is ", "up"]

    @pytest.mark.asyncio
    async def test_stream_failure_before_output_falls_back(self):
        formatter = LLMResultFormatter(streaming_provider(error=RuntimeError("down")))

        chunks = [c async for c in formatter.format_stream(STEP, "raw")]

        assert chunks == ["raw"]

    @pytest.mark.asyncio
    async def test_stream_failure_after_output_keeps_partial(self):
        formatter = LLMResultFormatter(streaming_provider("partial", error=RuntimeError("down")))

        chunks = [c async for c in formatter.format_stream(STEP, "raw")]

        assert chunks == ["partial"]
