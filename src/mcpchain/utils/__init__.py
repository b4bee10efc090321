"""Utility modules for mcpchain."""

from mcpchain.utils.retry import (
    RetryConfig,
    RetryExhaustedError,
    calculate_delay,
    is_transport_error,
    retry_async,
)

__all__ = [
    "RetryConfig",
    "RetryExhaustedError",
    "retry_async",
    "calculate_delay",
    "is_transport_error",
]
