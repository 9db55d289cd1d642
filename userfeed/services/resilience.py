"""
ResiliencePipeline - Retry, circuit breaker and timeout around one upstream call.

Stages are plain call wrappers composed outer to inner:

    retry(circuit_breaker(timeout(operation)))

Each stage takes a zero-argument coroutine function returning an
``httpx.Response`` and returns another one. Transient outcomes (transport
failures, timeouts, HTTP 408 and 5xx) are retried with pure exponential
backoff and counted as circuit breaker failures. Everything else passes
through after the first attempt.
"""

import asyncio
from dataclasses import dataclass
from datetime import timedelta
from typing import Awaitable, Callable

import httpx
from loguru import logger

from userfeed.services.circuit_breaker import CircuitBreaker
from userfeed.services.errors import (
    CircuitOpenError,
    RequestTimeoutError,
    TransientTransportError,
)

Call = Callable[[], Awaitable[httpx.Response]]
Stage = Callable[[Call], Call]
Sleep = Callable[[float], Awaitable[None]]


@dataclass
class ResilienceConfig:
    """Configuration for retry, timeout and backoff."""

    retry_attempt_count: int = 3  # Retries after the first attempt
    exponential_base: float = 2.0  # Delay before retry k is base ** k seconds
    response_timeout: timedelta = timedelta(minutes=10)


def is_transient_status(status_code: int) -> bool:
    """Check if an HTTP status is worth retrying."""
    return status_code == 408 or status_code >= 500


def backoff_delay(attempt: int, base: float) -> float:
    """Seconds to wait before retry number ``attempt`` (1-indexed)."""
    return base**attempt


def timeout_stage(service_id: str, timeout: float) -> Stage:
    """Bound a single attempt to ``timeout`` seconds."""

    def wrap(call: Call) -> Call:
        async def attempt() -> httpx.Response:
            try:
                return await asyncio.wait_for(call(), timeout)
            except asyncio.TimeoutError as e:
                raise RequestTimeoutError(service_id, timeout) from e

        return attempt

    return wrap


def circuit_breaker_stage(breaker: CircuitBreaker) -> Stage:
    """Guard each attempt with a shared circuit breaker."""

    def wrap(call: Call) -> Call:
        async def attempt() -> httpx.Response:
            permit = await breaker.acquire()
            try:
                response = await call()
            except TransientTransportError:
                await breaker.record_failure(permit)
                raise
            except BaseException:
                await breaker.release(permit)
                raise

            if is_transient_status(response.status_code):
                await breaker.record_failure(permit)
            else:
                await breaker.record_success(permit)
            return response

        return attempt

    return wrap


def retry_stage(
    service_id: str,
    retry_attempt_count: int,
    exponential_base: float,
    sleep: Sleep = asyncio.sleep,
) -> Stage:
    """Re-invoke transient failures with exponential backoff."""

    def wrap(call: Call) -> Call:
        async def attempt() -> httpx.Response:
            retry = 0
            while True:
                try:
                    response = await call()
                except CircuitOpenError:
                    raise
                except TransientTransportError as e:
                    if retry >= retry_attempt_count:
                        raise
                    reason = str(e)
                else:
                    if (
                        not is_transient_status(response.status_code)
                        or retry >= retry_attempt_count
                    ):
                        return response
                    reason = f"HTTP {response.status_code}"

                retry += 1
                delay = backoff_delay(retry, exponential_base)
                logger.warning(
                    f"Retry {retry}/{retry_attempt_count} for '{service_id}' "
                    f"after {delay}s due to: {reason}"
                )
                await sleep(delay)

        return attempt

    return wrap


class ResiliencePipeline:
    """
    Composes retry, circuit breaker and timeout around upstream calls.

    Usage:
        pipeline = ResiliencePipeline("users.get", registry.get("users.get"))
        response = await pipeline.execute(lambda: http.get("users/2"))
    """

    def __init__(
        self,
        service_id: str,
        breaker: CircuitBreaker,
        config: ResilienceConfig | None = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.service_id = service_id
        self.breaker = breaker
        self.config = config or ResilienceConfig()

        # Outer to inner
        self._stages: list[Stage] = [
            retry_stage(
                service_id,
                self.config.retry_attempt_count,
                self.config.exponential_base,
                sleep=sleep,
            ),
            circuit_breaker_stage(breaker),
            timeout_stage(service_id, self.config.response_timeout.total_seconds()),
        ]

    async def execute(self, operation: Call) -> httpx.Response:
        """
        Run ``operation`` through every stage.

        Returns:
            The final response, which may still carry a transient status
            when retries were exhausted

        Raises:
            CircuitOpenError: If the breaker rejected an attempt
            TransientTransportError: If the last attempt failed in transport
        """
        call = operation
        for stage in reversed(self._stages):
            call = stage(call)
        return await call()
