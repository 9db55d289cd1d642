"""
userfeed entry point.

    python main.py 0        # fetch every user
    python main.py 2        # fetch user 2
    python main.py 2 --status
"""

import argparse
import asyncio
import json
import sys

from loguru import logger

from userfeed.datasource.users import UsersSource
from userfeed.services.cache import CacheManager
from userfeed.services.client import ServiceClient
from userfeed.services.errors import ServiceError
from userfeed.services.users import UserService
from userfeed.settings import Settings, global_settings


def setup_logging(level: str) -> None:
    """Send logs to stderr at the configured level."""
    logger.remove()
    logger.add(sys.stderr, level=level.upper())


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="userfeed",
        description="Fetch users from the upstream users API.",
    )
    parser.add_argument(
        "user_id",
        type=int,
        help="0 to fetch every user, a positive ID to fetch one user",
    )
    parser.add_argument(
        "--status",
        action="store_true",
        help="log circuit breaker and cache status afterwards",
    )
    return parser


async def run(user_id: int, show_status: bool, settings: Settings) -> int:
    """Fetch and log the requested users. Returns the process exit code."""
    if user_id < 0:
        logger.error(
            f"User Id must be non-negative integer. User Id received: '{user_id}'"
        )
        return 2

    cache = CacheManager(max_size=settings.cache_max_size)
    async with ServiceClient.from_settings(settings) as client:
        service = UserService(UsersSource(client), cache, settings.user_cache_ttl)
        try:
            if user_id == 0:
                users = await service.get_all_users()
                payload = json.dumps([u.model_dump() for u in users], indent=2)
                logger.info(f"Users: {payload}")
            else:
                user = await service.get_user_by_id(user_id)
                logger.info(
                    f"User with ID {user_id}: {user.model_dump_json(indent=2)}"
                )
        except ServiceError as e:
            logger.error(f"An error occurred while retrieving data from the API: {e}")
            return 1
        finally:
            if show_status:
                logger.info(f"Client status: {client.get_health_status()}")
                logger.info(f"Cache status: {cache.get_stats().to_dict()}")
            await cache.close()

    return 0


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(global_settings.log_level)
    return asyncio.run(run(args.user_id, args.status, global_settings))


if __name__ == "__main__":
    sys.exit(main())
