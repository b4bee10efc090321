"""Exponential retry utilities for transport-level failures.

Only transport failures (timeouts, refused connections, DNS errors) are
retried here. HTTP error responses and business errors are surfaced to the
caller unchanged so that retry policy for them stays with the caller.
"""

import asyncio
import random
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Tuple, Type

import httpx

from mcpchain.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class RetryConfig:
    """Configuration for retry behavior with exponential backoff.

    Attributes:
        max_attempts: Total number of attempts including the first (default: 3)
        backoff_base: Delay after failed attempt n is backoff_base ** n seconds (default: 2.0)
        max_delay: Maximum delay between individual attempts in seconds (default: 60.0)
        jitter: Add random jitter to retry delays (default: False)
        retryable_exceptions: Tuple of exception types treated as transport failures
    """

    max_attempts: int = 3
    backoff_base: float = 2.0
    max_delay: float = 60.0
    jitter: bool = False
    retryable_exceptions: Tuple[Type[BaseException], ...] = field(
        default_factory=lambda: (
            httpx.TimeoutException,
            httpx.TransportError,
            ConnectionError,
            TimeoutError,
            asyncio.TimeoutError,
        )
    )


class RetryExhaustedError(Exception):
    """Raised when all attempts failed without a captured exception."""

    def __init__(
        self, message: str, attempts: int, last_exception: Optional[Exception] = None
    ):
        super().__init__(message)
        self.attempts = attempts
        self.last_exception = last_exception


def calculate_delay(attempt: int, config: RetryConfig) -> float:
    """
    Calculate the delay after a failed attempt.

    Args:
        attempt: The 1-based number of the attempt that just failed
        config: Retry configuration

    Returns:
        Delay in seconds
    """
    if attempt <= 0:
        return 0

    delay = min(config.backoff_base**attempt, config.max_delay)

    if config.jitter:
        # Up to 25% extra
        delay += delay * 0.25 * random.random()  # nosec B311 - jitter, not crypto

    return delay


def is_transport_error(exception: BaseException, config: Optional[RetryConfig] = None) -> bool:
    """Check whether an exception is a retryable transport failure."""
    if config is None:
        config = RetryConfig()

    # Status errors carry a response, so the transport worked
    if isinstance(exception, httpx.HTTPStatusError):
        return False

    return isinstance(exception, config.retryable_exceptions)


async def retry_async(
    func: Callable[..., Any],
    config: Optional[RetryConfig] = None,
    context_name: str = "operation",
    *args,
    **kwargs,
) -> Any:
    """
    Retry an async function on transport failures with exponential backoff.

    Args:
        func: The async function to retry
        config: Retry configuration (uses defaults if not provided)
        context_name: Name of the operation for logging
        *args: Arguments to pass to the function
        **kwargs: Keyword arguments to pass to the function

    Returns:
        The result of the successful function call

    Raises:
        Exception: The last exception once attempts are exhausted, or the
            first non-transport exception immediately
    """
    if config is None:
        config = RetryConfig()

    last_exception: Optional[Exception] = None
    retry_start_time = time.time()

    for attempt in range(1, config.max_attempts + 1):
        attempt_start_time = time.time()
        try:
            result = await func(*args, **kwargs)

            if attempt > 1:
                total_elapsed = time.time() - retry_start_time
                logger.info(
                    f"Succeeded {context_name} on attempt {attempt}/{config.max_attempts} "
                    f"(total {total_elapsed:.2f}s)"
                )
            return result

        except Exception as e:
            last_exception = e
            duration = time.time() - attempt_start_time

            if not is_transport_error(e, config):
                logger.debug(f"Non-retryable error in {context_name}: {e}")
                raise

            if attempt == config.max_attempts:
                total_elapsed = time.time() - retry_start_time
                logger.error(
                    f"Final attempt for {context_name} failed after {config.max_attempts} attempts "
                    f"(attempt took {duration:.2f}s, total {total_elapsed:.2f}s): {e}"
                )
                break

            delay = calculate_delay(attempt, config)
            logger.warning(
                f"Attempt {attempt}/{config.max_attempts} for {context_name} failed "
                f"(took {duration:.2f}s), retrying after {delay:.2f}s: {e}"
            )
            await asyncio.sleep(delay)

    if last_exception:
        raise last_exception
    raise RetryExhaustedError(
        f"All {config.max_attempts} attempts failed for {context_name}",
        attempts=config.max_attempts,
    )
