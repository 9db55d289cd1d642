"""UserService tests: pagination aggregation and cache-aside lookups."""

from datetime import timedelta
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from tests._support.upstream import UpstreamStub, page_response, user_response
from userfeed.datasource.users import UsersSource
from userfeed.models import Page, User
from userfeed.services.cache import CacheManager
from userfeed.services.errors import UpstreamUnavailableError, UserNotFoundError
from userfeed.services.users import UserService

TTL = timedelta(minutes=10)


def make_user(user_id: int) -> User:
    return User(
        id=user_id,
        email=f"user{user_id}@reqres.in",
        first_name=f"First{user_id}",
        last_name=f"Last{user_id}",
        avatar_url=f"https://reqres.in/img/faces/{user_id}-image.jpg",
    )


def make_page(page_number: int, user_ids: list[int], total_pages: int) -> Page:
    return Page(
        items=[make_user(i) for i in user_ids],
        page_number=page_number,
        total_pages=total_pages,
        per_page=len(user_ids),
        total=len(user_ids) * total_pages,
    )


@pytest.fixture
def source() -> AsyncMock:
    return AsyncMock(spec=UsersSource)


@pytest.fixture
def service(source, clock) -> UserService:
    return UserService(source, CacheManager(clock=clock), TTL)


class TestGetAllUsers:
    @pytest.mark.asyncio
    async def test_aggregates_pages_in_order(self, service, source):
        source.list_users.side_effect = [
            make_page(1, [1], total_pages=2),
            make_page(2, [2], total_pages=2),
        ]

        users = await service.get_all_users()

        assert [u.id for u in users] == [1, 2]
        assert [c.args[0] for c in source.list_users.await_args_list] == [1, 2]

    @pytest.mark.asyncio
    async def test_empty_first_page_stops_immediately(self, service, source):
        source.list_users.side_effect = [make_page(1, [], total_pages=5)]

        assert await service.get_all_users() == []
        assert source.list_users.await_count == 1

    @pytest.mark.asyncio
    async def test_empty_middle_page_stops_aggregation(self, service, source):
        source.list_users.side_effect = [
            make_page(1, [1, 2], total_pages=4),
            make_page(2, [], total_pages=4),
        ]

        users = await service.get_all_users()

        assert [u.id for u in users] == [1, 2]
        assert source.list_users.await_count == 2

    @pytest.mark.asyncio
    async def test_latest_total_pages_governs(self, service, source):
        source.list_users.side_effect = [
            make_page(1, [1], total_pages=3),
            make_page(2, [2], total_pages=2),
            make_page(3, [3], total_pages=3),
        ]

        users = await service.get_all_users()

        assert [u.id for u in users] == [1, 2]
        assert source.list_users.await_count == 2

    @pytest.mark.asyncio
    async def test_growing_total_pages_is_followed(self, service, source):
        source.list_users.side_effect = [
            make_page(1, [1], total_pages=2),
            make_page(2, [2], total_pages=3),
            make_page(3, [3], total_pages=3),
        ]

        users = await service.get_all_users()

        assert [u.id for u in users] == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_error_aborts_and_caches_nothing(self, service, source):
        source.list_users.side_effect = [
            make_page(1, [1], total_pages=2),
            UpstreamUnavailableError("Status code: 500", service_id="users.list"),
        ]

        with pytest.raises(UpstreamUnavailableError):
            await service.get_all_users()

        source.list_users.side_effect = [
            make_page(1, [1], total_pages=2),
            make_page(2, [2], total_pages=2),
        ]
        assert [u.id for u in await service.get_all_users()] == [1, 2]
        assert source.list_users.await_count == 4

    @pytest.mark.asyncio
    async def test_repeated_calls_are_identical_and_cached(self, service, source):
        source.list_users.side_effect = [
            make_page(1, [1, 2], total_pages=2),
            make_page(2, [3], total_pages=2),
        ]

        first = await service.get_all_users()
        second = await service.get_all_users()

        assert first == second
        assert source.list_users.await_count == 2

    @pytest.mark.asyncio
    async def test_refetches_after_ttl(self, service, source, clock):
        source.list_users.side_effect = [
            make_page(1, [1], total_pages=1),
            make_page(1, [1, 2], total_pages=1),
        ]

        assert len(await service.get_all_users()) == 1
        clock.advance(TTL.total_seconds() + 1)
        assert len(await service.get_all_users()) == 2


class TestGetUserById:
    @pytest.mark.asyncio
    async def test_cached_within_ttl(self, service, source, clock):
        source.get_user.return_value = make_user(2)

        first = await service.get_user_by_id(2)
        clock.advance(60)
        second = await service.get_user_by_id(2)

        assert first == second == make_user(2)
        source.get_user.assert_awaited_once_with(2)

    @pytest.mark.asyncio
    async def test_refetched_after_ttl(self, service, source, clock):
        source.get_user.return_value = make_user(2)

        await service.get_user_by_id(2)
        clock.advance(TTL.total_seconds() + 1)
        await service.get_user_by_id(2)

        assert source.get_user.await_count == 2

    @pytest.mark.asyncio
    async def test_not_found_propagates_and_is_not_cached(self, service, source):
        source.get_user.side_effect = UserNotFoundError(99)

        for _ in range(2):
            with pytest.raises(UserNotFoundError):
                await service.get_user_by_id(99)

        assert source.get_user.await_count == 2

    @pytest.mark.asyncio
    async def test_ids_are_cached_separately(self, service, source):
        source.get_user.side_effect = lambda user_id: make_user(user_id)

        assert (await service.get_user_by_id(1)).id == 1
        assert (await service.get_user_by_id(2)).id == 2
        assert await service.cache.get("user_1") == make_user(1)


class TestCacheHitLogging:
    @pytest.mark.asyncio
    async def test_all_users_hit_is_logged(self, service, source):
        source.list_users.side_effect = [make_page(1, [1, 2], total_pages=1)]
        await service.get_all_users()

        with patch("userfeed.services.users.logger") as mock_logger:
            await service.get_all_users()

        mock_logger.info.assert_called_once_with(
            "Total users retrieved from cache: 2"
        )

    @pytest.mark.asyncio
    async def test_user_hit_is_logged(self, service, source):
        source.get_user.return_value = make_user(2)
        await service.get_user_by_id(2)

        with patch("userfeed.services.users.logger") as mock_logger:
            await service.get_user_by_id(2)

        mock_logger.info.assert_called_once_with(
            "User with ID 2 retrieved from cache"
        )

    @pytest.mark.asyncio
    async def test_miss_does_not_log_a_hit(self, service, source):
        source.get_user.return_value = make_user(2)

        with patch("userfeed.services.users.logger") as mock_logger:
            await service.get_user_by_id(2)

        logged = [c.args[0] for c in mock_logger.info.call_args_list]
        assert "User with ID 2 retrieved from cache" not in logged
        assert "Retrieved and cached user with ID 2" in logged


class TestAgainstStubbedUpstream:
    @pytest.mark.asyncio
    async def test_second_lookup_makes_no_upstream_call(self, make_client, clock):
        stub = UpstreamStub(user_response(2))
        service = UserService(
            UsersSource(make_client(stub)), CacheManager(clock=clock), TTL
        )

        await service.get_user_by_id(2)
        await service.get_user_by_id(2)
        assert stub.call_count == 1

        clock.advance(TTL.total_seconds() + 1)
        await service.get_user_by_id(2)
        assert stub.call_count == 2

    @pytest.mark.asyncio
    async def test_all_users_walks_every_page(self, make_client, clock):
        stub = UpstreamStub(
            page_response(1, [1, 2], total_pages=2),
            page_response(2, [3, 4], total_pages=2),
        )
        service = UserService(
            UsersSource(make_client(stub)), CacheManager(clock=clock), TTL
        )

        users = await service.get_all_users()

        assert [u.id for u in users] == [1, 2, 3, 4]
        assert [r.url.params["page"] for r in stub.requests] == ["1", "2"]

    @pytest.mark.asyncio
    async def test_not_found_over_http(self, make_client, clock):
        stub = UpstreamStub(httpx.Response(404, json={}))
        service = UserService(
            UsersSource(make_client(stub)), CacheManager(clock=clock), TTL
        )

        with pytest.raises(UserNotFoundError):
            await service.get_user_by_id(23)
