"""
Base data source interface.
"""

from abc import ABC, abstractmethod
from typing import TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from userfeed.services.client import ServiceClient
from userfeed.services.errors import UpstreamUnavailableError

T = TypeVar("T", bound=BaseModel)


class BaseDataSource(ABC):
    """
    Abstract base class for upstream data sources.

    All data sources should:
    - Use ServiceClient for HTTP requests (retry, circuit breaker, timeout)
    - Return Pydantic models
    - Translate HTTP outcomes into service errors
    """

    def __init__(self, client: ServiceClient | None = None):
        self.client = client or ServiceClient.from_settings()

    @abstractmethod
    def is_configured(self) -> bool:
        """Check if the data source is properly configured."""
        ...

    def _parse(self, response: httpx.Response, model: type[T], service_id: str) -> T:
        """
        Deserialize a response body into ``model``.

        Raises:
            UpstreamUnavailableError: If the body is empty, not JSON, or has
                the wrong shape
        """
        if not response.content:
            raise UpstreamUnavailableError(
                "Failed to deserialize the response from the external API: empty body",
                service_id=service_id,
            )
        try:
            return model.model_validate_json(response.content)
        except ValidationError as e:
            raise UpstreamUnavailableError(
                "Failed to deserialize the response from the external API: "
                f"{e.error_count()} validation errors",
                service_id=service_id,
            ) from e
