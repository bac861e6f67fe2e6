"""
Retry policy with exponential backoff and jitter.

Only errors whose ``is_retryable`` flag is set are retried: rate limits (429),
server errors (5xx) and transport failures. Any other client error propagates
on the first attempt.
"""

from __future__ import annotations

import asyncio
import functools
import inspect
import logging
import random
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

from .errors import APIError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryConfig:
    """Tunables for ``RetryHandler``."""

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 60.0
    jitter_factor: float = 0.1
    use_exponential_backoff: bool = True
    delay_calculator: Optional[Callable[[APIError, int], Optional[float]]] = None

    def __post_init__(self):
        self.max_attempts = max(1, int(self.max_attempts))
        self.base_delay = max(0.1, float(self.base_delay))
        self.max_delay = max(self.base_delay, float(self.max_delay))
        self.jitter_factor = min(max(0.0, float(self.jitter_factor)), 1.0)

    @classmethod
    def default(cls) -> "RetryConfig":
        return cls()

    @classmethod
    def rate_limit_optimized(cls) -> "RetryConfig":
        """Longer, patient schedule for bulk jobs that hit rate limits."""
        return cls(
            max_attempts=5,
            base_delay=2.0,
            max_delay=120.0,
            jitter_factor=0.2,
            delay_calculator=lambda error, attempt: error.retry_after,
        )

    @classmethod
    def from_max_retries(cls, max_retries: int) -> "RetryConfig":
        return cls(max_attempts=max(0, max_retries) + 1)


class RetryHandler:
    """Runs an operation, retrying retryable ``APIError``s with backoff."""

    def __init__(
        self,
        config: RetryConfig = None,
        sleep: Callable[[float], None] = None,
        async_sleep: Callable[[float], Awaitable[None]] = None,
    ):
        self.config = config or RetryConfig.default()
        self._sleep = sleep or time.sleep
        self._async_sleep = async_sleep or asyncio.sleep

    def compute_delay(self, error: APIError, attempt: int) -> float:
        config = self.config
        if config.delay_calculator is not None:
            custom = config.delay_calculator(error, attempt)
            if custom is not None:
                return max(0.0, min(custom, config.max_delay))

        if error.retry_after is not None:
            return max(0.0, min(error.retry_after, config.max_delay))

        delay = config.base_delay
        if config.use_exponential_backoff:
            delay = config.base_delay * (2 ** attempt)
        delay += delay * config.jitter_factor * random.uniform(-1.0, 1.0)
        return min(max(0.1, delay), config.max_delay)

    def _should_retry(self, error: APIError, attempt: int) -> bool:
        return error.is_retryable and attempt < self.config.max_attempts - 1

    def perform(self, operation: Callable[[], T], on_retry: Callable[[int, float], None] = None) -> T:
        for attempt in range(self.config.max_attempts):
            try:
                return operation()
            except APIError as e:
                if not self._should_retry(e, attempt):
                    raise
                delay = self.compute_delay(e, attempt)
                logger.warning("Retrying after %s (attempt %d/%d, sleeping %.2fs)",
                               e, attempt + 1, self.config.max_attempts, delay)
                if on_retry is not None:
                    on_retry(attempt + 1, delay)
                self._sleep(delay)
        raise AssertionError("unreachable")

    async def perform_async(
        self,
        operation: Callable[[], Awaitable[T]],
        on_retry: Callable[[int, float], None] = None,
    ) -> T:
        for attempt in range(self.config.max_attempts):
            try:
                return await operation()
            except APIError as e:
                if not self._should_retry(e, attempt):
                    raise
                delay = self.compute_delay(e, attempt)
                logger.warning("Retrying after %s (attempt %d/%d, sleeping %.2fs)",
                               e, attempt + 1, self.config.max_attempts, delay)
                if on_retry is not None:
                    result = on_retry(attempt + 1, delay)
                    if inspect.isawaitable(result):
                        await result
                await self._async_sleep(delay)
        raise AssertionError("unreachable")


# =============================================================================
# Retry Decorator
# =============================================================================

def with_retry(max_retries: int = 3, backoff_factor: float = 1.0, max_delay: float = 60.0):
    """Decorator to add retry logic to any function or coroutine function."""
    config = RetryConfig(max_attempts=max_retries + 1, base_delay=backoff_factor, max_delay=max_delay)

    def decorator(func):
        if inspect.iscoroutinefunction(func):
            @functools.wraps(func)
            async def async_wrapper(*args, **kwargs):
                handler = RetryHandler(config)
                return await handler.perform_async(lambda: func(*args, **kwargs))
            return async_wrapper

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            handler = RetryHandler(config)
            return handler.perform(lambda: func(*args, **kwargs))
        return wrapper
    return decorator


__all__ = ["RetryConfig", "RetryHandler", "with_retry"]
