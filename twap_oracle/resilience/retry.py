"""Retry with exponential backoff."""

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar
import structlog

from ..observability.metrics import get_metrics

logger = structlog.get_logger()

T = TypeVar("T")


@dataclass
class RetryConfig:
    max_retries: int = 3
    initial_delay: float = 0.1
    max_delay: float = 10.0
    multiplier: float = 2.0
    retry_on: Tuple[Type[BaseException], ...] = (Exception,)


async def with_retry(
    operation: str,
    func: Callable[..., Awaitable[T]],
    *args,
    config: Optional[RetryConfig] = None,
    **kwargs,
) -> T:
    """Await `func` up to `config.max_retries` times, backing off between attempts."""
    config = config or RetryConfig()
    metrics = get_metrics()
    delay = config.initial_delay

    for attempt in range(1, config.max_retries + 1):
        try:
            result = await func(*args, **kwargs)
        except config.retry_on as e:
            metrics.retry_attempts.labels(operation=operation, outcome="failure").inc()
            if attempt >= config.max_retries:
                logger.error("retry_exhausted", operation=operation, attempt=attempt, error=str(e))
                raise
            logger.warning(
                "retry_attempt",
                operation=operation,
                attempt=attempt,
                delay_seconds=delay,
                error=str(e),
            )
            await asyncio.sleep(delay)
            delay = min(delay * config.multiplier, config.max_delay)
            continue

        if attempt > 1:
            metrics.retry_attempts.labels(operation=operation, outcome="success").inc()
            logger.info("retry_succeeded", operation=operation, attempt=attempt)
        return result

    raise ValueError(f"max_retries must be positive: {config.max_retries}")
