"""
Circuit breaker for the powerful backend.

States:
- CLOSED: Normal operation, calls pass through
- OPEN: Backend is failing, calls rejected immediately so the fallback chain
  moves on without waiting for another timeout
- HALF_OPEN: Testing if the backend has recovered

Usage:
    breaker = CircuitBreaker("powerful")

    if await breaker.can_execute():
        try:
            result = await backend.complete(prompt)
            await breaker.record_success()
        except BackendError:
            await breaker.record_failure()
            raise
"""
import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict

import structlog

logger = structlog.get_logger("brain.circuit_breaker")


class CircuitState(Enum):
    """Circuit breaker states."""
    CLOSED = "closed"       # Normal operation - requests pass through
    OPEN = "open"           # Backend failing - requests rejected
    HALF_OPEN = "half_open" # Testing if backend recovered


@dataclass
class CircuitBreaker:
    """
    Circuit breaker for a single backend.

    Tracks consecutive failures and opens after `failure_threshold`. After
    `recovery_timeout` seconds one recovery call is let through.
    """
    name: str
    failure_threshold: int = 5
    recovery_timeout: float = 30.0
    half_open_max_calls: int = 1
    clock: Callable[[], float] = time.monotonic

    state: CircuitState = field(default=CircuitState.CLOSED)
    failure_count: int = field(default=0)
    last_failure_time: float = field(default=0.0)
    half_open_calls: int = field(default=0)

    _lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    async def can_execute(self) -> bool:
        """True if a call should be attempted, False if the circuit is open."""
        async with self._lock:
            if self.state == CircuitState.CLOSED:
                return True

            if self.state == CircuitState.OPEN:
                if self.clock() - self.last_failure_time >= self.recovery_timeout:
                    self._half_open()
                else:
                    return False

            # HALF_OPEN: allow limited recovery calls
            if self.half_open_calls < self.half_open_max_calls:
                self.half_open_calls += 1
                return True
            return False

    async def record_success(self) -> None:
        async with self._lock:
            if self.state != CircuitState.CLOSED:
                self._close()
            self.failure_count = 0

    async def record_failure(self) -> None:
        async with self._lock:
            self.failure_count += 1
            self.last_failure_time = self.clock()

            if self.state == CircuitState.HALF_OPEN:
                # Failed during recovery call - reopen circuit
                self._open()
            elif self.state == CircuitState.CLOSED and self.failure_count >= self.failure_threshold:
                self._open()

    def release(self) -> None:
        """
        Return a call slot that ended without an outcome (cancelled, or not a
        backend failure). Synchronous so it can run while a task is being
        cancelled.
        """
        if self.state == CircuitState.HALF_OPEN and self.half_open_calls > 0:
            self.half_open_calls -= 1
            logger.info("circuit_breaker_slot_released", backend=self.name)

    def _open(self) -> None:
        logger.warning("circuit_breaker_opened", backend=self.name, failures=self.failure_count)
        self.state = CircuitState.OPEN
        self.half_open_calls = 0

    def _close(self) -> None:
        logger.info("circuit_breaker_closed", backend=self.name)
        self.state = CircuitState.CLOSED
        self.half_open_calls = 0

    def _half_open(self) -> None:
        logger.info("circuit_breaker_half_open", backend=self.name)
        self.state = CircuitState.HALF_OPEN
        self.half_open_calls = 0

    def get_status(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "state": self.state.value,
            "failure_count": self.failure_count,
            "failure_threshold": self.failure_threshold,
            "recovery_timeout": self.recovery_timeout,
        }

    def reset(self) -> None:
        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.last_failure_time = 0.0
        self.half_open_calls = 0
