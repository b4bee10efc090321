"""Base provider interface for LLM-backed formatting and error analysis."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, AsyncIterator, Dict, List, Optional

from mcpchain.utils.logger import get_logger

logger = get_logger(__name__)


class StopReason(Enum):
    end_of_turn = "end_of_turn"
    out_of_tokens = "out_of_tokens"


@dataclass
class ProviderMessage:
    """Message format for provider interactions."""

    content: str
    role: str = "user"


@dataclass
class ProviderResponse:
    """Response format from providers."""

    content: str
    model: str
    stop_reason: Optional[StopReason] = None
    usage: Optional[Dict[str, Any]] = None


class ProviderError(Exception):
    """Base exception for provider errors."""

    pass


class BaseProvider(ABC):
    """Abstract base class for AI providers."""

    def __init__(self, config: Dict[str, Any]):
        self.config = config
        self.model_id = config.get("model_id", "default")

    @abstractmethod
    async def initialize(self) -> None:
        """Initialize the provider connection."""
        pass

    @abstractmethod
    async def chat_completion(self, messages: List[ProviderMessage]) -> ProviderResponse:
        """Generate a complete chat response."""
        pass

    @abstractmethod
    def stream_completion(self, messages: List[ProviderMessage]) -> AsyncIterator[str]:
        """Yield response text incrementally."""
        pass

    @abstractmethod
    async def shutdown(self) -> None:
        """Cleanup provider resources."""
        pass

    def _convert_finish_reason_to_stop_reason(self, finish_reason: Any) -> StopReason:
        if finish_reason is None:
            return StopReason.end_of_turn

        reason_str = str(finish_reason).lower()
        if reason_str in ["length", "max_tokens", "token_limit", "out_of_tokens"]:
            return StopReason.out_of_tokens
        if reason_str not in ["stop", "eos", "end", "end_turn"]:
            logger.debug(f"Unknown finish_reason: {finish_reason}, defaulting to end_of_turn")
        return StopReason.end_of_turn
