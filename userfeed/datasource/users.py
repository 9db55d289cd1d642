"""
Users API data source (reqres-style paginated ``/users`` endpoint).

Endpoints:
- GET /users?page={n}  -> {"page", "per_page", "total", "total_pages", "data": [...]}
- GET /users/{id}      -> {"data": {...}} or 404
"""

from loguru import logger
from pydantic import BaseModel, Field

from userfeed.datasource.base import BaseDataSource
from userfeed.models import Page, User
from userfeed.services.client import ServiceClient
from userfeed.services.errors import (
    TransientTransportError,
    UpstreamUnavailableError,
    UserNotFoundError,
)


class UserDto(BaseModel):
    """User as it appears on the wire."""

    id: int
    email: str
    first_name: str
    last_name: str
    avatar: str


class UsersPageDto(BaseModel):
    """One page of ``GET /users``."""

    page: int
    per_page: int = 0
    total: int = 0
    total_pages: int
    data: list[UserDto] = Field(default_factory=list)


class UserEnvelopeDto(BaseModel):
    """Body of ``GET /users/{id}``."""

    data: UserDto


def to_user(dto: UserDto) -> User:
    """Map a wire user onto the domain record."""
    return User(
        id=dto.id,
        email=dto.email,
        first_name=dto.first_name,
        last_name=dto.last_name,
        avatar_url=dto.avatar,
    )


class UsersSource(BaseDataSource):
    """
    Users API data source.

    Every call goes through the ServiceClient's resilience pipeline. This
    class only decides what the final response means: a page, a user,
    UserNotFoundError for 404 on the by-id endpoint, or
    UpstreamUnavailableError for anything unusable.
    """

    LIST_SERVICE_ID = "users.list"
    GET_SERVICE_ID = "users.get"

    def __init__(self, client: ServiceClient | None = None):
        super().__init__(client)

    def is_configured(self) -> bool:
        """Users API only needs a base URL; the key header is sent verbatim."""
        return bool(self.client.base_url)

    def _not_configured(self, service_id: str) -> UpstreamUnavailableError:
        return UpstreamUnavailableError(
            "Users API base URL is not configured", service_id=service_id
        )

    async def list_users(self, page_number: int) -> Page:
        """
        Fetch one page of users.

        Args:
            page_number: 1-based page number

        Returns:
            Page with mapped users

        Raises:
            UpstreamUnavailableError: On non-2xx, transport failure or bad body
            CircuitOpenError: If the users.list circuit is open
        """
        if page_number < 1:
            raise ValueError(f"page_number must be >= 1, got {page_number}")
        if not self.is_configured():
            raise self._not_configured(self.LIST_SERVICE_ID)

        try:
            response = await self.client.get(
                self.LIST_SERVICE_ID, "users", params={"page": page_number}
            )
        except TransientTransportError as e:
            raise UpstreamUnavailableError(
                "An error occurred while communicating with the external API, "
                f"possibly due to network issues or the service being unavailable: {e}",
                service_id=self.LIST_SERVICE_ID,
            ) from e

        if not response.is_success:
            raise UpstreamUnavailableError(
                "Failed to retrieve users from the external API. "
                f"Status code: {response.status_code}",
                service_id=self.LIST_SERVICE_ID,
            )

        dto = self._parse(response, UsersPageDto, self.LIST_SERVICE_ID)
        logger.debug(
            f"Fetched users page {dto.page}/{dto.total_pages} ({len(dto.data)} items)"
        )
        return Page(
            items=[to_user(item) for item in dto.data],
            page_number=dto.page if dto.page >= 1 else page_number,
            total_pages=max(dto.total_pages, 0),
            per_page=dto.per_page,
            total=dto.total,
        )

    async def get_user(self, user_id: int) -> User:
        """
        Fetch a single user by ID.

        Raises:
            UserNotFoundError: If the upstream answers 404
            UpstreamUnavailableError: On other non-2xx, transport failure or bad body
            CircuitOpenError: If the users.get circuit is open
        """
        if not self.is_configured():
            raise self._not_configured(self.GET_SERVICE_ID)

        try:
            response = await self.client.get(self.GET_SERVICE_ID, f"users/{user_id}")
        except TransientTransportError as e:
            raise UpstreamUnavailableError(
                "An error occurred while communicating with the external API, "
                f"possibly due to network issues or the service being unavailable: {e}",
                service_id=self.GET_SERVICE_ID,
            ) from e

        if response.status_code == 404:
            raise UserNotFoundError(user_id, service_id=self.GET_SERVICE_ID)

        if not response.is_success:
            raise UpstreamUnavailableError(
                "Failed to retrieve user details from the external API. "
                f"Status code: {response.status_code}",
                service_id=self.GET_SERVICE_ID,
            )

        envelope = self._parse(response, UserEnvelopeDto, self.GET_SERVICE_ID)
        return to_user(envelope.data)
