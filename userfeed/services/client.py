"""
ServiceClient - Async HTTP client for one upstream API with resilience patterns.

Combines:
- A shared httpx.AsyncClient bound to the upstream base URL and API key header
- CircuitBreakerRegistry with one breaker per endpoint class
- ResiliencePipeline (retry → circuit breaker → timeout) around every GET
"""

import asyncio
from datetime import timedelta
from typing import Any

import httpx
from loguru import logger

from userfeed.services.circuit_breaker import (
    CircuitBreakerConfig,
    CircuitBreakerRegistry,
)
from userfeed.services.errors import (
    RequestTimeoutError,
    TransientTransportError,
    UpstreamUnavailableError,
)
from userfeed.services.resilience import ResilienceConfig, ResiliencePipeline, Sleep
from userfeed.settings import Settings, global_settings


class ServiceClient:
    """
    HTTP client that sends every GET through a resilience pipeline.

    The client does not interpret status codes beyond what the pipeline
    needs for retry and breaker decisions; callers decide what a status
    means for them.

    Usage:
        async with ServiceClient.from_settings(global_settings) as client:
            response = await client.get("users.get", "users/2")
    """

    def __init__(
        self,
        base_url: str,
        headers: dict[str, str] | None = None,
        resilience_config: ResilienceConfig | None = None,
        circuit_breaker_config: CircuitBreakerConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Sleep = asyncio.sleep,
        registry: CircuitBreakerRegistry | None = None,
    ):
        self._base_url = base_url
        self._headers = headers or {}
        self._resilience_config = resilience_config or ResilienceConfig()
        self._transport = transport
        self._sleep = sleep

        self._circuit_breakers = registry or CircuitBreakerRegistry(
            circuit_breaker_config
        )
        self._pipelines: dict[str, ResiliencePipeline] = {}

        # HTTP client (lazy initialization)
        self._http_client: httpx.AsyncClient | None = None

    @classmethod
    def from_settings(
        cls, settings: Settings | None = None, **kwargs: Any
    ) -> "ServiceClient":
        """Build a client from application settings."""
        settings = settings or global_settings
        return cls(
            base_url=settings.external_api_base_url,
            headers=settings.api_headers,
            resilience_config=ResilienceConfig(
                retry_attempt_count=settings.retry_attempt_count,
                exponential_base=settings.retry_exponential_base,
                response_timeout=timedelta(minutes=settings.response_timeout_minutes),
            ),
            circuit_breaker_config=CircuitBreakerConfig(
                failure_threshold=settings.circuit_breaker_failure_threshold,
                reset_timeout=timedelta(seconds=settings.circuit_breaker_open_seconds),
            ),
            **kwargs,
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def circuit_breakers(self) -> CircuitBreakerRegistry:
        return self._circuit_breakers

    def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            # Per-attempt time budget is enforced by the pipeline
            self._http_client = httpx.AsyncClient(
                base_url=self._base_url,
                headers=self._headers,
                timeout=httpx.Timeout(None),
                follow_redirects=True,
                transport=self._transport,
            )
        return self._http_client

    def _get_pipeline(self, service_id: str) -> ResiliencePipeline:
        if service_id not in self._pipelines:
            self._pipelines[service_id] = ResiliencePipeline(
                service_id,
                self._circuit_breakers.get(service_id),
                self._resilience_config,
                sleep=self._sleep,
            )
            logger.debug(f"Created resilience pipeline for '{service_id}'")
        return self._pipelines[service_id]

    async def get(
        self,
        service_id: str,
        path: str,
        params: dict[str, Any] | None = None,
    ) -> httpx.Response:
        """
        Make a GET request with resilience patterns.

        Args:
            service_id: Endpoint class (selects the shared circuit breaker)
            path: Path relative to the base URL
            params: Query parameters

        Returns:
            The final httpx.Response, whatever its status

        Raises:
            CircuitOpenError: If the endpoint's circuit breaker is open
            TransientTransportError: If the last attempt failed in transport
            UpstreamUnavailableError: On a non-transient request failure
                (redirect loop, undecodable body)
        """
        pipeline = self._get_pipeline(service_id)
        return await pipeline.execute(
            lambda: self._execute_request(service_id, path, params)
        )

    async def _execute_request(
        self,
        service_id: str,
        path: str,
        params: dict[str, Any] | None,
    ) -> httpx.Response:
        """Execute the actual HTTP request."""
        client = self._get_http_client()

        try:
            return await client.get(path, params=params)

        except httpx.TimeoutException as e:
            raise RequestTimeoutError(
                service_id, self._resilience_config.response_timeout.total_seconds()
            ) from e

        except httpx.TransportError as e:
            raise TransientTransportError(
                f"Transport error calling '{service_id}': {e!r}",
                service_id=service_id,
            ) from e

        except httpx.RequestError as e:
            # Non-transient: redirect loops, undecodable bodies
            raise UpstreamUnavailableError(
                f"Request to '{service_id}' failed: {e!r}",
                service_id=service_id,
            ) from e

    async def close(self) -> None:
        """Close the HTTP client and cleanup resources."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None
        logger.debug("ServiceClient closed")

    async def __aenter__(self) -> "ServiceClient":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()

    def get_health_status(self) -> dict[str, Any]:
        """Get health status of all endpoints."""
        return {
            "circuit_breakers": self._circuit_breakers.get_all_status(),
            "open_circuits": self._circuit_breakers.get_open_circuits(),
        }
