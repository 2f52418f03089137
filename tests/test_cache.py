"""
Cache tests — fresh / stale / expired behaviour of the query cache, tag
invalidation, the page cache, and how service writes keep cached reads
consistent.

Redis is replaced with the in-process FakeRedis from conftest and time is
driven by a manual Clock.
"""
import pytest

from blogdata.cache import CacheManager, CacheStrategy
from blogdata.client import DataClient
from blogdata.exceptions import UserNotFoundError
from blogdata.schemas import CommentCreate, PostCreate, UserCreate
from blogdata.services import comment_service, post_service, user_service

from tests.conftest import Clock, FakeRedis


def _cache(clock: Clock) -> CacheManager:
    cache = CacheManager(clock=clock)
    cache._redis = FakeRedis()
    return cache


class _Loader:
    def __init__(self, *values):
        self.values = list(values)
        self.calls = 0

    async def __call__(self):
        value = self.values[min(self.calls, len(self.values) - 1)]
        self.calls += 1
        return value


# ---------------------------------------------------------------------------
# CacheManager.fetch
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_fresh_entry_served_from_cache():
    clock = Clock()
    cache = _cache(clock)
    loader = _Loader(["a"], ["b"])
    strategy = CacheStrategy(ttl=60)

    assert await cache.fetch("k", strategy, loader) == ["a"]
    clock.advance(59)
    assert await cache.fetch("k", strategy, loader) == ["a"]
    assert loader.calls == 1
    assert cache.stats["hits"] == 1
    assert cache.stats["misses"] == 1


@pytest.mark.asyncio
async def test_stale_entry_served_while_revalidating():
    clock = Clock()
    cache = _cache(clock)
    loader = _Loader("old", "new")
    strategy = CacheStrategy(ttl=30, swr=60)

    await cache.fetch("k", strategy, loader)
    clock.advance(45)

    assert await cache.fetch("k", strategy, loader) == "old"
    await cache.wait_for_refreshes()
    assert loader.calls == 2
    assert await cache.fetch("k", strategy, loader) == "new"
    assert cache.stats["stale_hits"] == 1


@pytest.mark.asyncio
async def test_swr_only_strategy_is_always_stale():
    clock = Clock()
    cache = _cache(clock)
    loader = _Loader(1, 2)
    strategy = CacheStrategy(swr=120)

    await cache.fetch("k", strategy, loader)
    assert await cache.fetch("k", strategy, loader) == 1
    await cache.wait_for_refreshes()
    assert await cache.fetch("k", strategy, loader) == 2
    await cache.wait_for_refreshes()


@pytest.mark.asyncio
async def test_expired_entry_reloads_inline():
    clock = Clock()
    cache = _cache(clock)
    loader = _Loader("old", "new")
    strategy = CacheStrategy(ttl=30, swr=60)

    await cache.fetch("k", strategy, loader)
    clock.advance(91)

    assert await cache.fetch("k", strategy, loader) == "new"
    assert loader.calls == 2


@pytest.mark.asyncio
async def test_loader_error_propagates_and_is_not_cached():
    cache = _cache(Clock())
    strategy = CacheStrategy(ttl=60)

    async def failing():
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        await cache.fetch("k", strategy, failing)
    assert await cache.get("k") is None


@pytest.mark.asyncio
async def test_fetch_without_redis_always_loads():
    cache = CacheManager()
    loader = _Loader("x")
    strategy = CacheStrategy(ttl=60)

    await cache.fetch("k", strategy, loader)
    await cache.fetch("k", strategy, loader)
    assert loader.calls == 2
    assert cache.stats["enabled"] is False


# ---------------------------------------------------------------------------
# Tags and pages
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_invalidate_tags_purges_tagged_keys_only():
    cache = _cache(Clock())
    await cache.fetch("users", CacheStrategy(ttl=60, tags=("users_list",)), _Loader(1))
    await cache.fetch("posts", CacheStrategy(ttl=60, tags=("posts_list",)), _Loader(2))

    await cache.invalidate_tags("users_list")

    assert await cache.get("users") is None
    assert await cache.get("posts") is not None


@pytest.mark.asyncio
async def test_revalidate_path_drops_page():
    cache = _cache(Clock())
    generation = await cache.page_generation("/")
    await cache.set_page("/", {"users": []}, generation)
    assert await cache.get_page("/") == {"users": []}

    await cache.revalidate_path("/")
    assert await cache.get_page("/") is None


@pytest.mark.asyncio
async def test_page_not_stored_when_revalidated_during_render():
    cache = _cache(Clock())
    generation = await cache.page_generation("/")

    await cache.revalidate_path("/")
    await cache.set_page("/", {"users": []}, generation, ttl=60)

    assert await cache.get_page("/") is None


# ---------------------------------------------------------------------------
# Service integration
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_create_user_invalidates_cached_user_list(cached_client: DataClient):
    await user_service.create_user(cached_client, UserCreate(email="first@example.com"))
    assert len(await user_service.get_users(cached_client)) == 1
    assert cached_client.cache.stats["misses"] == 1

    await user_service.create_user(cached_client, UserCreate(email="second@example.com"))
    users = await user_service.get_users(cached_client)

    assert [u["email"] for u in users] == ["second@example.com", "first@example.com"]
    assert cached_client.cache.revalidated == ["/", "/"]


@pytest.mark.asyncio
async def test_create_post_invalidates_author_detail(cached_client: DataClient):
    author = await user_service.create_user(cached_client, UserCreate(email="a@example.com"))
    detail = await user_service.get_user_by_id(cached_client, author["id"])
    assert detail["counts"]["posts"] == 0

    await post_service.create_post(cached_client, PostCreate(title="T", author_id=author["id"]))
    detail = await user_service.get_user_by_id(cached_client, author["id"])

    assert detail["counts"]["posts"] == 1


@pytest.mark.asyncio
async def test_not_found_is_not_cached(cached_client: DataClient):
    with pytest.raises(UserNotFoundError):
        await user_service.get_user_by_id(cached_client, "later")
    assert await cached_client.cache.get("users:detail:later") is None


@pytest.mark.asyncio
async def test_unreadable_entry_is_a_miss(cached_client: DataClient):
    await user_service.create_user(cached_client, UserCreate(email="ok@example.com"))
    cached_client.cache._redis.data["users:list"] = "{not json"

    users = await user_service.get_users(cached_client)

    assert [u["email"] for u in users] == ["ok@example.com"]
    assert (await cached_client.cache.get("users:list"))["value"] == users


@pytest.mark.asyncio
async def test_load_overlapping_invalidation_is_not_stored():
    cache = _cache(Clock())
    strategy = CacheStrategy(ttl=60, tags=("users_list",))

    async def load_during_write():
        await cache.invalidate_tags("users_list")
        return ["before write"]

    assert await cache.fetch("k", strategy, load_during_write) == ["before write"]
    assert await cache.get("k") is None


@pytest.mark.asyncio
async def test_refresh_overlapping_invalidation_is_not_stored():
    clock = Clock()
    cache = _cache(clock)
    strategy = CacheStrategy(ttl=30, swr=60, tags=("posts_list",))
    await cache.fetch("k", strategy, _Loader("old"))
    clock.advance(45)

    async def refresh_during_write():
        await cache.invalidate_tags("posts_list")
        return "read before write"

    assert await cache.fetch("k", strategy, refresh_during_write) == "old"
    await cache.wait_for_refreshes()
    assert await cache.get("k") is None


@pytest.mark.asyncio
async def test_tag_sets_expire_with_their_entries():
    cache = _cache(Clock())
    await cache.fetch("detail", CacheStrategy(ttl=30, swr=60, tags=("user_1",)), _Loader(1))

    assert cache._redis.ttls["tag:user_1"] == 90
    assert cache._redis.ttls["detail"] == 90


@pytest.mark.asyncio
async def test_create_comment_invalidates_feed_and_author_detail(cached_client: DataClient):
    writer = await user_service.create_user(cached_client, UserCreate(email="w@example.com"))
    reader = await user_service.create_user(cached_client, UserCreate(email="r@example.com"))
    post = await post_service.create_post(cached_client, PostCreate(title="T", author_id=writer["id"]))

    feed = await post_service.get_posts(cached_client)
    detail = await user_service.get_user_by_id(cached_client, reader["id"])
    assert feed[0]["counts"] == {"comments": 0}
    assert detail["counts"]["comments"] == 0
    cached_client.cache.revalidated.clear()

    await comment_service.create_comment(
        cached_client, CommentCreate(content="Nice", post_id=post["id"], author_id=reader["id"])
    )

    assert await cached_client.cache.get("posts:list:5") is None
    assert await cached_client.cache.get(f"users:detail:{reader['id']}") is None
    assert cached_client.cache.revalidated == ["/"]
    feed = await post_service.get_posts(cached_client)
    detail = await user_service.get_user_by_id(cached_client, reader["id"])
    assert feed[0]["counts"] == {"comments": 1}
    assert detail["comments"][0]["content"] == "Nice"
