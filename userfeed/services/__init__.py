"""
Service layer infrastructure - resilience patterns for upstream API calls.

Provides:
- CacheManager: Cache-aside store with TTL and single-flight misses
- CircuitBreaker: Stops calling a failing endpoint for a cooldown period
- ResiliencePipeline: Retry → circuit breaker → timeout around one call
- RequestDeduplicator: Shares one in-flight request between concurrent callers
- ServiceClient: HTTP client sending every call through a pipeline
"""

from userfeed.services.errors import (
    ServiceError,
    CacheError,
    TransientTransportError,
    RequestTimeoutError,
    CircuitOpenError,
    UpstreamUnavailableError,
    UserNotFoundError,
)
from userfeed.services.cache import CacheManager, CacheEntry
from userfeed.services.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitBreakerRegistry,
    CircuitPermit,
    CircuitState,
)
from userfeed.services.deduplicator import RequestDeduplicator
from userfeed.services.resilience import ResilienceConfig, ResiliencePipeline
from userfeed.services.client import ServiceClient

__all__ = [
    # Errors
    "ServiceError",
    "CacheError",
    "TransientTransportError",
    "RequestTimeoutError",
    "CircuitOpenError",
    "UpstreamUnavailableError",
    "UserNotFoundError",
    # Cache
    "CacheManager",
    "CacheEntry",
    # Circuit Breaker
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerRegistry",
    "CircuitPermit",
    "CircuitState",
    # Deduplicator
    "RequestDeduplicator",
    # Resilience
    "ResilienceConfig",
    "ResiliencePipeline",
    # Client
    "ServiceClient",
]
