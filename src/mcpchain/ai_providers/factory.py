"""Provider factory."""

from typing import Any, Dict

from mcpchain.config.settings import EngineSettings
from mcpchain.utils.logger import get_logger

from .base import BaseProvider
from .openai import OpenAIProvider

logger = get_logger(__name__)

DEFAULT_AI_PROVIDER = "openai"
DEFAULT_MODEL = "gpt-4o-mini"


def create_provider(provider_name: str, config: Dict[str, Any]) -> BaseProvider:
    """Create provider instance based on provider name and config."""
    provider_name = (provider_name or DEFAULT_AI_PROVIDER).lower()
    if provider_name != DEFAULT_AI_PROVIDER:
        logger.warning(
            f"Unknown provider '{provider_name}', falling back to {DEFAULT_AI_PROVIDER}"
        )
    return OpenAIProvider(config)


def get_provider_config(settings: EngineSettings) -> Dict[str, Any]:
    """Build provider config from settings."""
    return {
        "ai_provider": DEFAULT_AI_PROVIDER,
        "model_id": settings.ai_model or DEFAULT_MODEL,
        "temperature": settings.ai_temperature,
        "api_key": settings.openai_api_key,
        "base_url": settings.openai_base_url,
    }
