"""
TicketLink - Retry Utilities
============================

Retry with exponential backoff for collaborator calls.

The correlation core never retries: a failed call aborts the cycle. Retrying
is the job of the outbound adapters, mainly to ride out the ticket store's
rate limiting.

Usage:
    from shared.utils.retry import with_retry, RetryConfig

    @with_retry(RetryConfig(max_attempts=5, retryable_exceptions=(RateLimitedError,)))
    async def search(query):
        ...
"""

import asyncio
from dataclasses import dataclass, field
from functools import wraps
from typing import Callable, Type, TypeVar, Any, Optional
from collections.abc import Awaitable

from shared.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass
class RetryConfig:
    """
    Configuration for retry behavior.

    Attributes:
        max_attempts: Maximum number of attempts (including first try)
        base_delay: Initial delay between retries in seconds
        max_delay: Maximum delay cap in seconds
        backoff_multiplier: Multiplier for exponential backoff
        retryable_exceptions: Exception types that trigger a retry
        delay_hint: Optional callable returning a server-provided delay for an
            exception (e.g. a Retry-After header); None falls back to backoff
    """
    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 60.0
    backoff_multiplier: float = 2.0
    retryable_exceptions: tuple[Type[Exception], ...] = field(
        default_factory=lambda: (Exception,)
    )
    delay_hint: Optional[Callable[[Exception], Optional[float]]] = None


def calculate_delay(
    attempt: int,
    base_delay: float,
    max_delay: float,
    backoff_multiplier: float
) -> float:
    """
    Delay before retry number `attempt` (0-indexed), capped at `max_delay`.
    """
    delay = base_delay * (backoff_multiplier ** attempt)
    return min(delay, max_delay)


def with_retry(config: Optional[RetryConfig] = None):
    """
    Decorator that retries an async function on the configured exceptions.

    A server-provided delay (see `RetryConfig.delay_hint`) wins over the
    computed backoff. The last exception is re-raised once attempts run out.
    """
    if config is None:
        config = RetryConfig()

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            for attempt in range(config.max_attempts):
                try:
                    return await func(*args, **kwargs)

                except config.retryable_exceptions as e:
                    if attempt + 1 >= config.max_attempts:
                        logger.error(
                            f"All {config.max_attempts} retry attempts exhausted for {func.__name__}",
                            extra={
                                "function": func.__name__,
                                "error": str(e),
                                "attempts": config.max_attempts
                            }
                        )
                        raise

                    delay = None
                    if config.delay_hint is not None:
                        delay = config.delay_hint(e)
                    if delay is None:
                        delay = calculate_delay(
                            attempt,
                            config.base_delay,
                            config.max_delay,
                            config.backoff_multiplier
                        )

                    logger.warning(
                        f"Retry {attempt + 1}/{config.max_attempts} for {func.__name__} after {delay:.2f}s",
                        extra={
                            "function": func.__name__,
                            "attempt": attempt + 1,
                            "delay": delay,
                            "error": str(e)
                        }
                    )
                    await asyncio.sleep(delay)

            raise RuntimeError("Retry loop exited unexpectedly")

        return wrapper
    return decorator
