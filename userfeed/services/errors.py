"""
Service layer exceptions.

Transient failures (TransientTransportError and RequestTimeoutError) are
retried by the resilience pipeline and counted by the circuit breaker.
Everything else is terminal for the request that raised it.
"""


class ServiceError(Exception):
    """Base exception for service layer errors."""

    def __init__(self, message: str, service_id: str | None = None):
        self.service_id = service_id
        super().__init__(message)


class CacheError(ServiceError):
    """Cache operation failed."""

    pass


class TransientTransportError(ServiceError):
    """Network-level failure talking to an upstream service."""

    pass


class RequestTimeoutError(TransientTransportError):
    """Request timed out."""

    def __init__(self, service_id: str, timeout: float):
        self.timeout = timeout
        super().__init__(
            f"Request to service '{service_id}' timed out after {timeout}s",
            service_id=service_id,
        )


class CircuitOpenError(ServiceError):
    """Circuit breaker is open, request blocked."""

    def __init__(self, service_id: str, reset_after_seconds: float):
        self.reset_after_seconds = reset_after_seconds
        super().__init__(
            f"Circuit breaker open for service '{service_id}', "
            f"retry after {reset_after_seconds:.1f}s",
            service_id=service_id,
        )


class UpstreamUnavailableError(ServiceError):
    """Upstream returned an unusable response after all retries."""

    pass


class UserNotFoundError(ServiceError):
    """Upstream reported that the user does not exist."""

    def __init__(self, user_id: int, service_id: str | None = None):
        self.user_id = user_id
        super().__init__(f"User with ID {user_id} not found.", service_id=service_id)
