"""Circuit breaker for async calls to external stores."""

import asyncio
import time
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional, TypeVar
import structlog

from ..observability.metrics import get_metrics

logger = structlog.get_logger()

T = TypeVar("T")


class CircuitBreakerState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreakerConfig:
    failure_threshold: int = 5
    success_threshold: int = 2
    timeout_seconds: float = 30.0
    half_open_max_calls: int = 1


class CircuitBreakerOpenError(Exception):
    """Raised when a call is refused because the breaker is open."""

    def __init__(self, name: str, reason: str = "open"):
        self.name = name
        super().__init__(f"Circuit breaker {name} is {reason}")


class CircuitBreaker:
    """Stops calling a failing dependency until a cool-down has passed."""

    def __init__(self, name: str, config: Optional[CircuitBreakerConfig] = None,
                 clock: Callable[[], float] = time.monotonic):
        self.name = name
        self.config = config or CircuitBreakerConfig()
        self._clock = clock
        self._state = CircuitBreakerState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._half_open_calls = 0
        self._opened_at: Optional[float] = None
        self._lock = asyncio.Lock()

    @property
    def state(self) -> CircuitBreakerState:
        return self._state

    async def _admit(self) -> None:
        async with self._lock:
            if self._state == CircuitBreakerState.OPEN:
                if self._clock() - self._opened_at < self.config.timeout_seconds:
                    logger.warning("circuit_breaker_rejected", name=self.name)
                    raise CircuitBreakerOpenError(self.name)
                self._transition(CircuitBreakerState.HALF_OPEN)
                logger.info("circuit_breaker_half_open", name=self.name)

            if self._state == CircuitBreakerState.HALF_OPEN:
                if self._half_open_calls >= self.config.half_open_max_calls:
                    raise CircuitBreakerOpenError(self.name, "half-open at its call limit")
                self._half_open_calls += 1

    async def call(self, func: Callable[..., Awaitable[T]], *args, **kwargs) -> T:
        """Execute `func` under breaker protection."""
        await self._admit()
        try:
            result = await func(*args, **kwargs)
        except Exception:
            await self._on_failure()
            raise
        await self._on_success()
        return result

    async def _on_success(self) -> None:
        async with self._lock:
            if self._state == CircuitBreakerState.HALF_OPEN:
                self._half_open_calls -= 1
                self._success_count += 1
                if self._success_count >= self.config.success_threshold:
                    self._transition(CircuitBreakerState.CLOSED)
                    logger.info("circuit_breaker_closed", name=self.name)
            else:
                self._failure_count = 0

    async def _on_failure(self) -> None:
        async with self._lock:
            self._failure_count += 1
            if self._state == CircuitBreakerState.HALF_OPEN:
                self._transition(CircuitBreakerState.OPEN)
                logger.warning("circuit_breaker_reopened", name=self.name)
            elif self._failure_count >= self.config.failure_threshold:
                self._transition(CircuitBreakerState.OPEN)
                logger.warning("circuit_breaker_opened", name=self.name, failures=self._failure_count)

    def _transition(self, state: CircuitBreakerState) -> None:
        self._state = state
        self._failure_count = 0
        self._success_count = 0
        self._half_open_calls = 0
        if state == CircuitBreakerState.OPEN:
            self._opened_at = self._clock()
        value = {
            CircuitBreakerState.CLOSED: 0,
            CircuitBreakerState.HALF_OPEN: 0.5,
            CircuitBreakerState.OPEN: 1,
        }[state]
        get_metrics().circuit_breaker_state.labels(name=self.name).set(value)
