"""
Pytest configuration and shared fixtures for userfeed tests.

Time is simulated: the circuit breaker and cache read a FakeClock, and the
retry stage sleeps through a FakeSleep that advances it.
"""

from datetime import timedelta
from typing import Callable

import httpx
import pytest

from tests._support.upstream import (
    API_KEY_HEADER,
    API_KEY_VALUE,
    BASE_URL,
    FakeClock,
    FakeSleep,
    UpstreamStub,
)
from userfeed.services.circuit_breaker import (
    CircuitBreakerConfig,
    CircuitBreakerRegistry,
)
from userfeed.services.client import ServiceClient
from userfeed.services.resilience import ResilienceConfig


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_sleep(clock: FakeClock) -> FakeSleep:
    return FakeSleep(clock)


@pytest.fixture
def make_client(
    clock: FakeClock, fake_sleep: FakeSleep
) -> Callable[..., ServiceClient]:
    """Build a ServiceClient talking to an UpstreamStub."""

    def factory(
        stub: UpstreamStub,
        retry_attempt_count: int = 3,
        failure_threshold: int = 2,
        reset_seconds: float = 30,
        timeout_seconds: float = 600,
    ) -> ServiceClient:
        registry = CircuitBreakerRegistry(
            CircuitBreakerConfig(
                failure_threshold=failure_threshold,
                reset_timeout=timedelta(seconds=reset_seconds),
            ),
            clock=clock,
        )
        return ServiceClient(
            base_url=BASE_URL,
            headers={API_KEY_HEADER: API_KEY_VALUE},
            resilience_config=ResilienceConfig(
                retry_attempt_count=retry_attempt_count,
                exponential_base=2.0,
                response_timeout=timedelta(seconds=timeout_seconds),
            ),
            transport=httpx.MockTransport(stub),
            sleep=fake_sleep,
            registry=registry,
        )

    return factory
