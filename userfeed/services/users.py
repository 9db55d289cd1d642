"""
UserService - Cached access to upstream users.

Aggregates the paginated user listing into one list and looks up single
users, both cache-aside with a TTL. Errors from the upstream abort the
operation and propagate unchanged; nothing partial is ever cached.
"""

from datetime import timedelta

from loguru import logger

from userfeed.datasource.users import UsersSource
from userfeed.models import User
from userfeed.services.cache import CacheManager
from userfeed.settings import global_settings

USERS_CACHE_KEY = "users"
USER_CACHE_KEY = "user_{user_id}"


class UserService:
    """
    Domain-facing access to users.

    Usage:
        service = UserService(UsersSource(client), CacheManager())
        users = await service.get_all_users()
        user = await service.get_user_by_id(2)
    """

    def __init__(
        self,
        source: UsersSource | None = None,
        cache: CacheManager | None = None,
        cache_ttl: timedelta | None = None,
    ):
        self.source = source or UsersSource()
        self.cache = cache or CacheManager(max_size=global_settings.cache_max_size)
        self.cache_ttl = cache_ttl or global_settings.user_cache_ttl

    async def get_all_users(self) -> list[User]:
        """
        Get every user, in upstream page order.

        Raises:
            UpstreamUnavailableError: If any page could not be fetched
            CircuitOpenError: If the listing endpoint's circuit is open
        """
        return await self.cache.get_or_compute(
            USERS_CACHE_KEY,
            self.cache_ttl,
            self._fetch_all_users,
            on_hit=lambda users: logger.info(
                f"Total users retrieved from cache: {len(users)}"
            ),
        )

    async def get_user_by_id(self, user_id: int) -> User:
        """
        Get a single user.

        Raises:
            UserNotFoundError: If the upstream does not know the user
            UpstreamUnavailableError: If the upstream could not be reached
            CircuitOpenError: If the lookup endpoint's circuit is open
        """

        async def fetch_user() -> User:
            logger.info(f"Retrieving user with ID {user_id} from external API...")
            try:
                user = await self.source.get_user(user_id)
            except Exception as e:
                logger.error(
                    f"Failed to retrieve user with ID {user_id} from external API: {e}"
                )
                raise
            logger.info(f"Retrieved and cached user with ID {user_id}")
            return user

        return await self.cache.get_or_compute(
            USER_CACHE_KEY.format(user_id=user_id),
            self.cache_ttl,
            fetch_user,
            on_hit=lambda _: logger.info(
                f"User with ID {user_id} retrieved from cache"
            ),
        )

    async def _fetch_all_users(self) -> list[User]:
        """Walk the pages in order until an empty page or the last page."""
        logger.info("Retrieving users from external API...")
        users: list[User] = []
        page_number = 1

        try:
            while True:
                page = await self.source.list_users(page_number)

                if not page.items:
                    logger.warning(
                        f"No users found in the API response for page {page_number}"
                    )
                    break

                logger.info(
                    f"Users retrieved: {len(page.items)}, current page: "
                    f"{page.page_number}, total pages: {page.total_pages}"
                )
                users.extend(page.items)

                page_number += 1
                # Only the latest page's total_pages counts
                if page_number > page.total_pages:
                    break
        except Exception as e:
            logger.error(f"Failed to retrieve users from external API: {e}")
            raise

        logger.info(f"Total users retrieved and cached: {len(users)}")
        return users
