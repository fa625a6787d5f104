"""
Retry utilities for Wildberries API calls.

Two delay schedules are provided: exponential (rate limits) with a hard
ceiling, and linear (transient network/server failures). ``retry_with_backoff``
wraps sync or async callables; the SKU resolver drives the schedules
directly because it must skip a batch instead of raising.
"""

import asyncio
import inspect
import random
import time
from dataclasses import dataclass
from functools import wraps
from typing import Callable, Optional, Tuple, Type

from wb_finance_report.utils.logger import get_logger
from wb_finance_report.utils.exceptions import APIError, RateLimitError


logger = get_logger(__name__)


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""

    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 60.0
    exponential_base: float = 2.0
    jitter: bool = False

    retry_on_status_codes: Tuple[int, ...] = (429, 500, 502, 503, 504)
    retry_on_exceptions: Tuple[Type[Exception], ...] = (
        RateLimitError,
        ConnectionError,
        TimeoutError
    )

    respect_retry_after: bool = True
    max_retry_after: float = 300.0


class ExponentialBackoff:
    """
    Exponential backoff: ``base_delay * exponential_base ** attempt``.

    The delay is capped at ``max_delay``. A Retry-After value from a 429
    response wins when it is within ``max_retry_after``.
    """

    def __init__(self, config: RetryConfig):
        self.config = config
        self.attempt = 0

    def reset(self) -> None:
        """Reset attempt counter."""
        self.attempt = 0

    @property
    def exhausted(self) -> bool:
        return self.attempt >= self.config.max_retries

    def calculate_delay(self, retry_after: Optional[float] = None) -> float:
        """
        Calculate delay for the current attempt and advance the counter.

        Args:
            retry_after: Retry-After seconds reported by the API

        Returns:
            Delay in seconds
        """
        if retry_after is not None and self.config.respect_retry_after:
            if 0 <= retry_after <= self.config.max_retry_after:
                self.attempt += 1
                logger.debug(f"Using Retry-After header: {retry_after}s")
                return float(retry_after)
            logger.warning(f"Retry-After too large ({retry_after}s), using exponential backoff")

        delay = self.config.base_delay * (self.config.exponential_base ** self.attempt)

        if self.config.jitter:
            jitter_range = delay * 0.25
            delay += random.uniform(-jitter_range, jitter_range)

        delay = max(0.0, min(delay, self.config.max_delay))
        self.attempt += 1

        logger.debug(f"Calculated retry delay: {delay:.2f}s (attempt {self.attempt})")
        return delay

    def should_retry(self, exception: Exception) -> bool:
        """
        Decide whether ``exception`` is retryable and attempts remain.

        Args:
            exception: Exception that occurred

        Returns:
            True if should retry, False otherwise
        """
        if self.exhausted:
            logger.debug(f"Max retries ({self.config.max_retries}) exceeded")
            return False

        if isinstance(exception, self.config.retry_on_exceptions):
            return True

        status_code = getattr(exception, "status_code", None)
        if isinstance(exception, APIError) and status_code in self.config.retry_on_status_codes:
            return True

        logger.debug(f"Not retrying exception: {type(exception).__name__}")
        return False


class LinearBackoff(ExponentialBackoff):
    """Linear backoff: ``base_delay * attempt_number``, capped at ``max_delay``."""

    def calculate_delay(self, retry_after: Optional[float] = None) -> float:
        self.attempt += 1
        delay = min(self.config.base_delay * self.attempt, self.config.max_delay)
        logger.debug(f"Calculated linear retry delay: {delay:.2f}s (attempt {self.attempt})")
        return delay


def retry_with_backoff(config: Optional[RetryConfig] = None):
    """
    Decorator for retrying functions with exponential backoff.

    Args:
        config: Retry configuration (uses default if None)

    Returns:
        Decorated function with retry logic
    """
    if config is None:
        config = RetryConfig()

    def decorator(func: Callable) -> Callable:

        @wraps(func)
        def sync_wrapper(*args, **kwargs):
            backoff = ExponentialBackoff(config)

            while True:
                try:
                    return func(*args, **kwargs)
                except Exception as e:
                    if not backoff.should_retry(e):
                        raise

                    delay = backoff.calculate_delay(getattr(e, "retry_after", None))
                    logger.info(f"Retrying {func.__name__} in {delay:.2f}s (attempt {backoff.attempt}): {e}")
                    time.sleep(delay)

        @wraps(func)
        async def async_wrapper(*args, **kwargs):
            backoff = ExponentialBackoff(config)

            while True:
                try:
                    return await func(*args, **kwargs)
                except Exception as e:
                    if not backoff.should_retry(e):
                        raise

                    delay = backoff.calculate_delay(getattr(e, "retry_after", None))
                    logger.info(f"Retrying {func.__name__} in {delay:.2f}s (attempt {backoff.attempt}): {e}")
                    await asyncio.sleep(delay)

        if inspect.iscoroutinefunction(func):
            return async_wrapper
        return sync_wrapper

    return decorator
