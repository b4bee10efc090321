"""OpenAI provider adapter."""

import os
from typing import Any, AsyncIterator, Dict, List, Optional

from openai import AsyncOpenAI

from mcpchain.utils.logger import get_logger

from .base import BaseProvider, ProviderError, ProviderMessage, ProviderResponse

logger = get_logger(__name__)


class OpenAIProvider(BaseProvider):
    """OpenAI chat completions, with optional streaming."""

    def __init__(self, config: Dict[str, Any]):
        super().__init__(config)
        self.client: Optional[AsyncOpenAI] = None

    async def initialize(self) -> None:
        """Initialize OpenAI connection."""
        api_key = self.config.get("api_key") or os.getenv("OPENAI_API_KEY")
        if not api_key:
            raise ValueError("OpenAI API key not provided")

        self.client = AsyncOpenAI(api_key=api_key, base_url=self.config.get("base_url"))
        logger.info(f"Initialized OpenAI provider with model: {self.model_id}")

    def _request_params(self, messages: List[ProviderMessage]) -> Dict[str, Any]:
        if not self.client:
            raise ProviderError("Provider not initialized")
        return {
            "model": self.model_id,
            "messages": [{"role": m.role, "content": m.content} for m in messages],
            "temperature": float(self.config.get("temperature", 0.0)),
            "max_tokens": int(self.config.get("max_tokens", 1024)),
        }

    async def chat_completion(self, messages: List[ProviderMessage]) -> ProviderResponse:
        """Generate chat completion using OpenAI."""
        params = self._request_params(messages)
        try:
            response = await self.client.chat.completions.create(**params)
        except Exception as e:
            logger.error(f"OpenAI API call failed: {e}")
            raise

        choice = response.choices[0]
        return ProviderResponse(
            content=(choice.message.content or "").strip(),
            model=response.model,
            stop_reason=self._convert_finish_reason_to_stop_reason(
                getattr(choice, "finish_reason", None)
            ),
            usage=self._extract_usage(response),
        )

    async def stream_completion(self, messages: List[ProviderMessage]) -> AsyncIterator[str]:
        """Yield content deltas from a streamed chat completion."""
        params = self._request_params(messages)
        try:
            stream = await self.client.chat.completions.create(stream=True, **params)
            async for chunk in stream:
                if not chunk.choices:
                    continue
                delta = chunk.choices[0].delta.content
                if delta:
                    yield delta
        except Exception as e:
            logger.error(f"OpenAI streaming call failed: {e}")
            raise

    def _extract_usage(self, response) -> Dict[str, Any]:
        """Extract usage statistics from OpenAI response."""
        if hasattr(response, "usage") and response.usage:
            return {
                "prompt_tokens": response.usage.prompt_tokens,
                "completion_tokens": response.usage.completion_tokens,
                "total_tokens": response.usage.total_tokens,
            }
        return {}

    async def shutdown(self) -> None:
        """Cleanup OpenAI resources."""
        if self.client is not None:
            await self.client.close()
        self.client = None
        logger.info("OpenAI provider shutdown completed")
