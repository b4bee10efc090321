"""AI provider adapters used for result formatting and error analysis."""

from .base import BaseProvider, ProviderError, ProviderMessage, ProviderResponse
from .factory import create_provider, get_provider_config

__all__ = [
    "BaseProvider",
    "ProviderError",
    "ProviderMessage",
    "ProviderResponse",
    "create_provider",
    "get_provider_config",
]
