"""
Circuit Breaker pattern for the pipeline's external HTTP sources.

Price sources, the YouTube Data API and the RapidAPI endpoints are each
wrapped in a named breaker so that a source that keeps failing is skipped
for a while instead of slowing down every sweep.

States:
- CLOSED: Normal operation, requests pass through
- OPEN: Failing source, requests blocked
- HALF_OPEN: Probing whether the source recovered

Usage:
    breaker = get_circuit_breaker("binance", failure_threshold=5, recovery_timeout=60)

    if breaker.can_execute():
        try:
            ticker = await fetch_ticker("BTCUSDT")
        except httpx.RequestError:
            await breaker.record_failure()
            raise
        await breaker.record_success()
"""

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

import structlog

from src.monitoring.metrics import (
    record_circuit_breaker_failure,
    update_circuit_breaker_state,
)

logger = structlog.get_logger(__name__)


class CircuitState(Enum):
    """Circuit breaker states."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreaker:
    """
    Circuit breaker for one external source.

    Args:
        name: Identifier for this circuit (e.g., "yahoo_finance")
        failure_threshold: Consecutive failures before opening the circuit
        recovery_timeout: Seconds to wait before probing recovery
        success_threshold: Successes needed in half-open to close the circuit
    """

    name: str
    failure_threshold: int = 5
    recovery_timeout: float = 60.0
    success_threshold: int = 2

    _state: CircuitState = field(default=CircuitState.CLOSED, init=False)
    _failure_count: int = field(default=0, init=False)
    _success_count: int = field(default=0, init=False)
    _last_failure_time: Optional[float] = field(default=None, init=False)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, init=False)

    def _transition(self, new_state: CircuitState, event: str, **context: Any) -> None:
        self._state = new_state
        update_circuit_breaker_state(self.name, new_state.value)
        logger.info(event, name=self.name, state=new_state.value, **context)

    @property
    def state(self) -> CircuitState:
        """Current state; an expired OPEN circuit becomes HALF_OPEN on read."""
        if self._state == CircuitState.OPEN and self._last_failure_time:
            if time.time() - self._last_failure_time >= self.recovery_timeout:
                self._success_count = 0
                self._transition(CircuitState.HALF_OPEN, "circuit_breaker_half_open")
        return self._state

    @property
    def is_open(self) -> bool:
        return self.state == CircuitState.OPEN

    def can_execute(self) -> bool:
        """Check if a request may be sent to the source."""
        return self.state in (CircuitState.CLOSED, CircuitState.HALF_OPEN)

    def time_until_recovery(self) -> float:
        """Seconds until an open circuit may be tried again."""
        if self._state != CircuitState.OPEN or not self._last_failure_time:
            return 0.0
        elapsed = time.time() - self._last_failure_time
        return max(0.0, self.recovery_timeout - elapsed)

    async def record_success(self) -> None:
        """Record a successful call."""
        async with self._lock:
            if self._state == CircuitState.HALF_OPEN:
                self._success_count += 1
                if self._success_count >= self.success_threshold:
                    self._failure_count = 0
                    self._success_count = 0
                    self._transition(CircuitState.CLOSED, "circuit_breaker_closed")
            elif self._state == CircuitState.CLOSED:
                self._failure_count = 0

    async def record_failure(self) -> None:
        """Record a failed call."""
        async with self._lock:
            self._failure_count += 1
            self._last_failure_time = time.time()
            record_circuit_breaker_failure(self.name)

            if self._state == CircuitState.HALF_OPEN:
                self._transition(CircuitState.OPEN, "circuit_breaker_reopened")
            elif (
                self._state == CircuitState.CLOSED
                and self._failure_count >= self.failure_threshold
            ):
                self._transition(
                    CircuitState.OPEN,
                    "circuit_breaker_opened",
                    failure_count=self._failure_count,
                    recovery_timeout=self.recovery_timeout,
                )

    def reset(self) -> None:
        """Reset circuit breaker to closed state."""
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._last_failure_time = None
        logger.info("circuit_breaker_reset", name=self.name)


# =============================================================================
# Circuit Breaker Registry
# =============================================================================


_circuit_breakers: dict[str, CircuitBreaker] = {}


def get_circuit_breaker(
    name: str,
    failure_threshold: int = 5,
    recovery_timeout: float = 60.0,
) -> CircuitBreaker:
    """
    Get or create a circuit breaker by name.

    Args:
        name: Unique identifier for the circuit
        failure_threshold: Failures before opening
        recovery_timeout: Seconds before recovery test

    Returns:
        Circuit breaker instance (reused if already exists)
    """
    if name not in _circuit_breakers:
        _circuit_breakers[name] = CircuitBreaker(
            name=name,
            failure_threshold=failure_threshold,
            recovery_timeout=recovery_timeout,
        )
    return _circuit_breakers[name]


def get_all_circuit_breakers() -> dict[str, CircuitBreaker]:
    """Get all registered circuit breakers."""
    return _circuit_breakers.copy()


def reset_all_circuit_breakers() -> None:
    """Reset all circuit breakers to closed state."""
    for breaker in _circuit_breakers.values():
        breaker.reset()
