"""
Retry utilities with exponential backoff.

Provides a named retry policy decorator and error classification for
transient vs permanent failures of outbound HTTP calls (ViaCEP).
"""

import asyncio
import functools
import random
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional, Tuple, Type
from dataclasses import dataclass

import aiohttp
import structlog


logger = structlog.get_logger(__name__)


class ErrorCategory(Enum):
    """Error category classification"""
    RETRYABLE = "retryable"
    NON_RETRYABLE = "non_retryable"


@dataclass
class RetryConfig:
    """Configuration for retry behavior"""
    max_attempts: int = 3
    initial_delay: float = 0.5  # seconds
    max_delay: float = 5.0  # seconds
    exponential_base: float = 2.0
    jitter: bool = True
    jitter_range: float = 0.2  # +/- 20%


@dataclass
class RetryMetrics:
    """Counters for one retry policy"""
    total_attempts: int = 0
    successful_attempts: int = 0
    failed_attempts: int = 0
    retry_count: int = 0
    total_retry_delay_ms: float = 0.0
    last_error: Optional[str] = None
    last_error_timestamp: Optional[datetime] = None


# Retryable exception types
RETRYABLE_EXCEPTIONS: Tuple[Type[BaseException], ...] = (
    ConnectionError,
    TimeoutError,
    asyncio.TimeoutError,
    aiohttp.ClientConnectionError,
    aiohttp.ServerTimeoutError,
)

RETRYABLE_STATUS_CODES = {408, 429, 500, 502, 503, 504}


def classify_error(exception: BaseException) -> ErrorCategory:
    """
    Classify an exception as retryable or non-retryable.

    Exceptions exposing an HTTP ``status`` attribute are classified by
    status code; everything else by type.

    Args:
        exception: The exception to classify

    Returns:
        ErrorCategory indicating retry behavior
    """
    status_code = getattr(exception, "status", None)
    if isinstance(status_code, int):
        if status_code in RETRYABLE_STATUS_CODES:
            return ErrorCategory.RETRYABLE
        return ErrorCategory.NON_RETRYABLE

    if isinstance(exception, RETRYABLE_EXCEPTIONS):
        return ErrorCategory.RETRYABLE

    return ErrorCategory.NON_RETRYABLE


def calculate_delay(attempt: int, config: RetryConfig) -> float:
    """
    Calculate delay for retry attempt with exponential backoff and jitter.

    Args:
        attempt: Current attempt number (0-indexed)
        config: Retry configuration

    Returns:
        Delay in seconds
    """
    delay = config.initial_delay * (config.exponential_base ** attempt)
    delay = min(delay, config.max_delay)

    if config.jitter:
        jitter = random.uniform(-config.jitter_range, config.jitter_range)
        delay = delay * (1 + jitter)

    return max(0, delay)


def retry_with_backoff(
    name: str,
    config: Optional[RetryConfig] = None,
    classifier: Callable[[BaseException], ErrorCategory] = classify_error,
    metrics: Optional[RetryMetrics] = None,
    sleep: Callable = asyncio.sleep,
):
    """
    Decorator retrying a coroutine function with exponential backoff.

    The whole call is retried; the last exception is re-raised unchanged
    once attempts are exhausted or a non-retryable error occurs.

    Args:
        name: Policy name used in logs
        config: Retry configuration (uses defaults if None)
        classifier: Maps an exception to its ErrorCategory
        metrics: Optional metrics object to track retry stats
        sleep: Awaitable used to wait between attempts

    Example:
        @retry_with_backoff("viacep", RetryConfig(max_attempts=5))
        async def fetch(cep):
            ...
    """
    if config is None:
        config = RetryConfig()

    if metrics is None:
        metrics = RetryMetrics()

    def decorator(func):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            for attempt in range(config.max_attempts):
                try:
                    metrics.total_attempts += 1
                    result = await func(*args, **kwargs)
                    metrics.successful_attempts += 1
                    return result

                except Exception as e:
                    error_category = classifier(e)
                    metrics.last_error = str(e) or type(e).__name__
                    metrics.last_error_timestamp = datetime.now(timezone.utc)

                    if error_category == ErrorCategory.NON_RETRYABLE:
                        logger.warning(
                            "retry_non_retryable_error",
                            policy=name,
                            attempt=attempt + 1,
                            error_type=type(e).__name__,
                            error=str(e)
                        )
                        metrics.failed_attempts += 1
                        raise

                    if attempt == config.max_attempts - 1:
                        logger.error(
                            "retry_attempts_exhausted",
                            policy=name,
                            max_attempts=config.max_attempts,
                            error_type=type(e).__name__,
                            error=str(e)
                        )
                        metrics.failed_attempts += 1
                        raise

                    delay = calculate_delay(attempt, config)
                    metrics.retry_count += 1
                    metrics.total_retry_delay_ms += delay * 1000

                    logger.warning(
                        "retry_scheduled",
                        policy=name,
                        attempt=attempt + 1,
                        max_attempts=config.max_attempts,
                        delay_seconds=round(delay, 3),
                        error_type=type(e).__name__,
                        error_category=error_category.value
                    )

                    await sleep(delay)

        wrapper.retry_metrics = metrics
        return wrapper

    return decorator
