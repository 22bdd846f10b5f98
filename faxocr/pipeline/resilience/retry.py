"""Retry logic with exponential backoff and jitter for async calls.

Example:
    >>> config = RetryConfig(max_attempts=3, initial_delay_seconds=1.0)
    >>> result = await retry_async(
    ...     transport.generate,
    ...     config,
    ...     is_transient,
    ...     image=data,
    ... )
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from faxocr.pipeline.core.config import (
    BACKOFF_MULTIPLIER,
    GEMINI_MAX_ATTEMPTS,
    INITIAL_BACKOFF,
    MAX_BACKOFF,
)

logger = logging.getLogger(__name__)


@dataclass
class RetryConfig:
    """Configuration for retry logic.

    Attributes:
        max_attempts: Maximum number of attempts (including initial)
        initial_delay_seconds: Initial delay before first retry
        max_delay_seconds: Maximum delay between retries
        exponential_base: Base for exponential backoff (delay *= base ** attempt)
        jitter: Whether to add random jitter to delays
    """

    max_attempts: int = GEMINI_MAX_ATTEMPTS
    initial_delay_seconds: float = INITIAL_BACKOFF
    max_delay_seconds: float = MAX_BACKOFF
    exponential_base: float = BACKOFF_MULTIPLIER
    jitter: bool = True

    def delay_for(self, attempt: int) -> float:
        delay = min(
            self.initial_delay_seconds * (self.exponential_base**attempt),
            self.max_delay_seconds,
        )
        if self.jitter:
            delay = delay * (0.5 + random.random())
        return delay


async def retry_async(
    func: Callable[..., Awaitable[Any]],
    config: RetryConfig,
    should_retry: Callable[[BaseException], bool],
    *args,
    **kwargs,
) -> Any:
    """Await ``func`` until it succeeds, retrying transient failures.

    Raises:
        The last exception once attempts are exhausted, or immediately when
        ``should_retry`` rejects it.
    """
    for attempt in range(config.max_attempts):
        try:
            return await func(*args, **kwargs)
        except Exception as e:
            if not should_retry(e) or attempt == config.max_attempts - 1:
                raise

            delay = config.delay_for(attempt)
            logger.warning(
                f"Attempt {attempt + 1}/{config.max_attempts} failed: "
                f"{type(e).__name__}: {e}. Retrying in {delay:.2f}s...",
                extra={"retry_attempt": attempt + 1},
            )
            await asyncio.sleep(delay)

    raise RuntimeError("retry_async called with max_attempts < 1")
