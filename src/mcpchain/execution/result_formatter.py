"""Formatting of raw tool output into presentable text.

Formatters are injected into the chain runner. ``format`` returns the whole
text at once; ``format_stream`` yields it in chunks. The runner only relies on
this interface, never on a particular text-generation backend.
"""

import json
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, List, Optional

from mcpchain.ai_providers.base import BaseProvider, ProviderMessage
from mcpchain.execution.steps import WorkflowStep
from mcpchain.utils.logger import get_logger

logger = get_logger(__name__)


class ResultFormatter(ABC):
    """Turns a step's raw result into text."""

    streaming: bool = False

    @abstractmethod
    async def format(self, step: WorkflowStep, raw_result: Any, is_final: bool = False) -> str:
        """Return the formatted text for a step result."""
        pass

    async def format_stream(
        self, step: WorkflowStep, raw_result: Any, is_final: bool = False
    ) -> AsyncIterator[str]:
        """Yield formatted text in chunks. Defaults to a single chunk."""
        yield await self.format(step, raw_result, is_final)


def render_plain(result: Any, max_result_size: Optional[int] = None) -> str:
    """Render a raw result as text: strings as-is, everything else as JSON."""
    if isinstance(result, str):
        text = result
    elif isinstance(result, list) and result and all(isinstance(i, str) for i in result):
        text = "\n".join(f"{n + 1}. {item}" for n, item in enumerate(result))
    else:
        try:
            text = json.dumps(result, sort_keys=True, indent=2, ensure_ascii=False, default=str)
        except (TypeError, ValueError):
            text = str(result)

    if max_result_size is not None:
        size = len(text.encode("utf-8"))
        if size > max_result_size:
            overflow = size - max_result_size
            clipped = text.encode("utf-8")[:max_result_size].decode("utf-8", errors="ignore")
            text = f"{clipped}\n[TRUNCATED: {overflow} bytes over limit]"
    return text


class PlainResultFormatter(ResultFormatter):
    """Deterministic formatter that needs no external service."""

    def __init__(self, max_result_size: Optional[int] = None, chunk_size: Optional[int] = None):
        self.max_result_size = max_result_size
        self.chunk_size = chunk_size
        self.streaming = chunk_size is not None

    async def format(self, step: WorkflowStep, raw_result: Any, is_final: bool = False) -> str:
        return render_plain(raw_result, self.max_result_size)

    async def format_stream(
        self, step: WorkflowStep, raw_result: Any, is_final: bool = False
    ) -> AsyncIterator[str]:
        text = await self.format(step, raw_result, is_final)
        if not self.chunk_size:
            yield text
            return
        for start in range(0, len(text), self.chunk_size):
            yield text[start : start + self.chunk_size]


STEP_FORMAT_PROMPT = """You are formatting the result of a tool call for an end user.

Tool service: {service}
Action: {action}

Raw result (JSON):
{raw}

Rewrite the result as clear, concise Markdown. Keep every number, name and
identifier exactly as given. Do not invent data that is not in the result."""

FINAL_FORMAT_SUFFIX = """

This is the final step of the task: present it as the answer to the user."""


class LLMResultFormatter(ResultFormatter):
    """
    Formatter that asks an LLM to rewrite results as prose.

    Provider failures fall back to plain rendering so a step never fails
    because of formatting.
    """

    streaming = True

    def __init__(self, provider: BaseProvider, max_input_size: int = 12000):
        self.provider = provider
        self.max_input_size = max_input_size
        self._fallback = PlainResultFormatter()

    def _messages(self, step: WorkflowStep, raw_result: Any, is_final: bool) -> List[ProviderMessage]:
        prompt = STEP_FORMAT_PROMPT.format(
            service=step.mcp_name,
            action=step.action,
            raw=render_plain(raw_result, self.max_input_size),
        )
        if is_final:
            prompt += FINAL_FORMAT_SUFFIX
        return [ProviderMessage(content=prompt, role="user")]

    async def format(self, step: WorkflowStep, raw_result: Any, is_final: bool = False) -> str:
        try:
            response = await self.provider.chat_completion(
                self._messages(step, raw_result, is_final)
            )
            if response.content:
                return response.content
            logger.warning(f"Empty formatting response for step {step.step_number}")
        except Exception as e:
            logger.warning(f"LLM formatting failed for step {step.step_number}: {e}")
        return await self._fallback.format(step, raw_result, is_final)

    async def format_stream(
        self, step: WorkflowStep, raw_result: Any, is_final: bool = False
    ) -> AsyncIterator[str]:
        emitted = False
        try:
            async for chunk in self.provider.stream_completion(
                self._messages(step, raw_result, is_final)
            ):
                emitted = True
                yield chunk
        except Exception as e:
            logger.warning(f"LLM streaming failed for step {step.step_number}: {e}")
            if emitted:
                return
        if not emitted:
            yield await self._fallback.format(step, raw_result, is_final)
