"""
CircuitBreaker - Stops calling an upstream endpoint after repeated failures.

States:
- CLOSED: Normal operation, requests pass through
- OPEN: Endpoint is failing, requests are rejected immediately
- HALF_OPEN: One trial request is allowed to test recovery

Transitions:
- CLOSED → OPEN: When failure_threshold consecutive failures are recorded
- OPEN → HALF_OPEN: On the first request after reset_timeout has elapsed
- HALF_OPEN → CLOSED: When the trial request succeeds
- HALF_OPEN → OPEN: When the trial request fails

One breaker guards one endpoint class and is shared by every caller of it,
so every transition happens under the breaker's lock.
"""

import asyncio
import time
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from typing import Any, Callable

from loguru import logger

from userfeed.services.errors import CircuitOpenError


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "CLOSED"  # Normal operation
    OPEN = "OPEN"  # Rejecting requests
    HALF_OPEN = "HALF_OPEN"  # Testing recovery


@dataclass
class CircuitBreakerConfig:
    """Configuration for circuit breaker."""

    failure_threshold: int = 2  # Consecutive failures before opening
    reset_timeout: timedelta = timedelta(seconds=30)  # Time before half-open


@dataclass(frozen=True)
class CircuitPermit:
    """
    Admission ticket handed out by CircuitBreaker.acquire().

    Carries the breaker generation the call was admitted in. An outcome is
    only applied while the breaker is still in that generation, so a call
    admitted before a transition can't decide the state after it.
    """

    generation: int
    trial: bool = False


class CircuitBreaker:
    """
    Circuit breaker implementation for a single endpoint.

    Usage:
        cb = CircuitBreaker("users.get")

        permit = await cb.acquire()  # raises CircuitOpenError when open
        try:
            response = await send()
        except TransientTransportError:
            await cb.record_failure(permit)
            raise
        except BaseException:
            await cb.release(permit)
            raise
        await cb.record_success(permit)
    """

    def __init__(
        self,
        service_id: str,
        config: CircuitBreakerConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.service_id = service_id
        self.config = config or CircuitBreakerConfig()
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._opened_at: float | None = None
        self._trial_in_flight = False
        self._generation = 0
        self._lock = asyncio.Lock()

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    async def acquire(self) -> CircuitPermit:
        """
        Ask permission to send one request.

        Returns:
            The permit to report the request's outcome with

        Raises:
            CircuitOpenError: If the circuit is open, or a half-open trial
                request is already in flight
        """
        async with self._lock:
            if self._state == CircuitState.OPEN:
                if self._remaining_open_seconds() > 0:
                    raise CircuitOpenError(
                        self.service_id, self._remaining_open_seconds()
                    )
                self._half_open()

            if self._state == CircuitState.HALF_OPEN:
                if self._trial_in_flight:
                    raise CircuitOpenError(self.service_id, 0)
                self._trial_in_flight = True
                return CircuitPermit(self._generation, trial=True)

            return CircuitPermit(self._generation)

    async def record_success(self, permit: CircuitPermit) -> None:
        """Record a successful request."""
        async with self._lock:
            if not self._is_current(permit):
                return
            if self._state == CircuitState.HALF_OPEN:
                self._close()
            else:
                # Reset failure count on success
                self._failure_count = 0

    async def record_failure(self, permit: CircuitPermit) -> None:
        """Record a failed request."""
        async with self._lock:
            if not self._is_current(permit):
                return
            self._failure_count += 1
            # Any failure in half-open reopens the circuit
            if (
                self._state == CircuitState.HALF_OPEN
                or self._failure_count >= self.config.failure_threshold
            ):
                self._open()

    async def release(self, permit: CircuitPermit) -> None:
        """Give back a half-open trial slot without recording an outcome."""
        async with self._lock:
            if permit.trial and self._is_current(permit):
                self._trial_in_flight = False

    def _is_current(self, permit: CircuitPermit) -> bool:
        """Outcomes count only for calls admitted since the last transition."""
        if permit.generation != self._generation:
            return False
        if self._state == CircuitState.HALF_OPEN:
            return permit.trial
        return self._state == CircuitState.CLOSED

    def _transition(self, state: CircuitState) -> None:
        self._state = state
        self._generation += 1
        self._trial_in_flight = False

    def _open(self) -> None:
        """Transition to OPEN state."""
        self._transition(CircuitState.OPEN)
        self._opened_at = self._clock()
        logger.warning(
            f"Circuit breaker '{self.service_id}' OPENED after "
            f"{self._failure_count} failures, retry after "
            f"{self.config.reset_timeout.total_seconds()}s"
        )

    def _half_open(self) -> None:
        """Transition to HALF_OPEN state."""
        self._transition(CircuitState.HALF_OPEN)
        self._failure_count = 0
        logger.info(
            f"Circuit breaker '{self.service_id}' HALF_OPEN, testing connection"
        )

    def _close(self) -> None:
        """Transition to CLOSED state."""
        self._transition(CircuitState.CLOSED)
        self._failure_count = 0
        self._opened_at = None
        logger.info(f"Circuit breaker '{self.service_id}' CLOSED (recovered)")

    def reset(self) -> None:
        """Manually reset the circuit breaker."""
        self._transition(CircuitState.CLOSED)
        self._failure_count = 0
        self._opened_at = None
        logger.info(f"Circuit breaker '{self.service_id}' manually reset")

    def _remaining_open_seconds(self) -> float:
        if self._opened_at is None:
            return 0.0
        reset_at = self._opened_at + self.config.reset_timeout.total_seconds()
        return max(0.0, reset_at - self._clock())

    def get_time_until_reset(self) -> float | None:
        """Get seconds until circuit transitions to half-open."""
        if self._state != CircuitState.OPEN:
            return None
        return self._remaining_open_seconds()

    def get_status(self) -> dict[str, Any]:
        """Get current status as dictionary."""
        return {
            "service_id": self.service_id,
            "state": self._state.value,
            "failure_count": self._failure_count,
            "time_until_reset": self.get_time_until_reset(),
        }


class CircuitBreakerRegistry:
    """
    Registry holding one shared circuit breaker per endpoint class.

    Usage:
        registry = CircuitBreakerRegistry()
        cb = registry.get("users.list")
    """

    def __init__(
        self,
        default_config: CircuitBreakerConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._breakers: dict[str, CircuitBreaker] = {}
        self._default_config = default_config or CircuitBreakerConfig()
        self._clock = clock

    def get(
        self,
        service_id: str,
        config: CircuitBreakerConfig | None = None,
    ) -> CircuitBreaker:
        """Get or create a circuit breaker for an endpoint."""
        if service_id not in self._breakers:
            self._breakers[service_id] = CircuitBreaker(
                service_id,
                config or self._default_config,
                clock=self._clock,
            )
        return self._breakers[service_id]

    def get_all_status(self) -> dict[str, dict[str, Any]]:
        """Get status of all circuit breakers."""
        return {
            service_id: cb.get_status() for service_id, cb in self._breakers.items()
        }

    def reset_all(self) -> None:
        """Reset all circuit breakers."""
        for cb in self._breakers.values():
            cb.reset()
        logger.info(f"Reset {len(self._breakers)} circuit breakers")

    def get_open_circuits(self) -> list[str]:
        """Get list of endpoints with open circuits."""
        return [
            service_id
            for service_id, cb in self._breakers.items()
            if cb.state == CircuitState.OPEN
        ]
