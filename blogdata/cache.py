import asyncio
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable

import redis.asyncio as redis

from blogdata.middleware import record_cache_outcome

logger = logging.getLogger(__name__)

Loader = Callable[[], Awaitable[Any]]

# Generation counters outlive any entry they guard; an expired counter reads
# as 0, which can only make a pending store skip, never succeed wrongly.
GENERATION_TTL = 24 * 60 * 60


@dataclass(frozen=True)
class CacheStrategy:
    """
    Per-query cache policy.

    An entry is *fresh* for ``ttl`` seconds, then *stale but servable* for
    a further ``swr`` seconds while a background refresh runs.  ``tags``
    name the groups the entry is purged with.
    """

    ttl: int = 0
    swr: int = 0
    tags: tuple[str, ...] = ()

    @property
    def lifetime(self) -> int:
        return self.ttl + self.swr


class CacheManager:
    """
    Redis-backed query cache and page cache.

    All public methods are safe to call even when Redis is unavailable:
    ``fetch`` falls through to the loader, reads return None and writes
    are skipped.  Errors raised by a loader are never caught here.

    Every tag and every page path has a generation counter that is bumped
    on invalidation.  A value computed while its generation moved is
    dropped instead of stored, so a slow load can never resurrect data
    that a concurrent write has already invalidated.
    """

    def __init__(self, url: str | None = None, clock: Callable[[], float] = time.time) -> None:
        self._url = url
        self._clock = clock
        self._redis: redis.Redis | None = None
        self._hits: int = 0
        self._stale_hits: int = 0
        self._misses: int = 0
        self._refreshing: set[str] = set()
        self._tasks: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """Open the connection pool.  Non-fatal when Redis is unreachable."""
        if not self._url:
            logger.info("No REDIS_URL configured — cache disabled")
            return
        self._redis = redis.from_url(
            self._url,
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2,
        )
        try:
            await self._redis.ping()
            logger.info("Redis connected: %s", self._url)
        except Exception as exc:  # pragma: no cover
            logger.warning("Redis ping failed — cache disabled: %s", exc)
            await self._redis.aclose()
            self._redis = None

    async def disconnect(self) -> None:
        """Cancel pending refreshes and close the connection pool."""
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    @property
    def enabled(self) -> bool:
        return self._redis is not None

    # ------------------------------------------------------------------
    # Raw JSON get / set
    # ------------------------------------------------------------------

    async def get(self, key: str) -> Any | None:
        """Return the decoded value for *key*, or None on a miss / error."""
        if not self._redis:
            return None
        try:
            data = await self._redis.get(key)
            return json.loads(data) if data is not None else None
        except Exception as exc:
            logger.warning("Cache GET error for key=%r, treating as miss: %s", key, exc)
            return None

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        """Persist *value* under *key*.  Failures are logged, never raised."""
        if not self._redis:
            return
        try:
            await self._redis.set(key, json.dumps(value, default=str), ex=ttl)
        except Exception as exc:
            logger.debug("Cache SET error for key=%r: %s", key, exc)

    # ------------------------------------------------------------------
    # Generations
    # ------------------------------------------------------------------

    async def _generations(self, names: Iterable[str]) -> tuple[int, ...] | None:
        """Snapshot the counters for *names*; None when it cannot be read."""
        if not self._redis:
            return None
        try:
            values = [await self._redis.get(f"gen:{name}") for name in names]
            return tuple(int(v or 0) for v in values)
        except Exception as exc:
            logger.debug("Cache GENERATION error for %r: %s", names, exc)
            return None

    async def _unchanged(self, names: Iterable[str], snapshot: tuple[int, ...] | None) -> bool:
        names = list(names)
        if snapshot is None:
            return False
        current = await self._generations(names)
        if current != snapshot:
            logger.debug("Cache store skipped, invalidated during load: %r", names)
            return False
        return True

    async def _bump(self, name: str) -> None:
        gen_key = f"gen:{name}"
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.incr(gen_key)
            pipe.expire(gen_key, GENERATION_TTL)
            await pipe.execute()

    # ------------------------------------------------------------------
    # Query cache
    # ------------------------------------------------------------------

    @staticmethod
    def _tag_names(strategy: CacheStrategy) -> list[str]:
        return [f"tag:{tag}" for tag in strategy.tags]

    async def fetch(self, key: str, strategy: CacheStrategy, loader: Loader) -> Any:
        """
        Return the value for *key* under *strategy*, calling *loader* on a
        miss.

        A stale entry is returned as-is and one background refresh is
        scheduled for it; concurrent stale reads of the same key do not
        schedule a second refresh.  Unreadable entries count as misses.
        """
        if not self._redis or strategy.lifetime <= 0:
            self._misses += 1
            record_cache_outcome("miss")
            return await loader()

        entry = await self.get(key)
        if isinstance(entry, dict) and "stored_at" in entry and "value" in entry:
            age = self._clock() - entry["stored_at"]
            if age < strategy.ttl:
                self._hits += 1
                record_cache_outcome("fresh")
                return entry["value"]
            if age < strategy.lifetime:
                self._stale_hits += 1
                record_cache_outcome("stale")
                self._schedule_refresh(key, strategy, loader)
                return entry["value"]

        self._misses += 1
        record_cache_outcome("miss")
        snapshot = await self._generations(self._tag_names(strategy))
        value = await loader()
        await self._store(key, value, strategy, snapshot)
        return value

    async def _store(
        self,
        key: str,
        value: Any,
        strategy: CacheStrategy,
        snapshot: tuple[int, ...] | None,
    ) -> None:
        if not await self._unchanged(self._tag_names(strategy), snapshot):
            return
        await self.set(
            key,
            {"value": value, "stored_at": self._clock()},
            ttl=strategy.lifetime,
        )
        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                for tag_key in self._tag_names(strategy):
                    pipe.sadd(tag_key, key)
                    pipe.expire(tag_key, strategy.lifetime)
                await pipe.execute()
        except Exception as exc:
            logger.debug("Cache TAG error for key=%r: %s", key, exc)

    def _schedule_refresh(self, key: str, strategy: CacheStrategy, loader: Loader) -> None:
        if key in self._refreshing:
            return
        self._refreshing.add(key)
        task = asyncio.create_task(self._refresh(key, strategy, loader))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _refresh(self, key: str, strategy: CacheStrategy, loader: Loader) -> None:
        try:
            snapshot = await self._generations(self._tag_names(strategy))
            value = await loader()
            await self._store(key, value, strategy, snapshot)
            logger.debug("Cache revalidated key=%r", key)
        except Exception as exc:
            logger.warning("Background revalidation failed for key=%r: %s", key, exc)
        finally:
            self._refreshing.discard(key)

    async def wait_for_refreshes(self) -> None:
        """Block until every in-flight background refresh has finished."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def invalidate_tags(self, *tags: str) -> None:
        """Purge every query-cache entry stored under any of *tags*."""
        if not self._redis:
            return
        try:
            for tag in tags:
                tag_key = f"tag:{tag}"
                await self._bump(tag_key)
                keys = await self._redis.smembers(tag_key)
                await self._redis.delete(tag_key, *keys)
                if keys:
                    logger.debug("Cache invalidated %d key(s) tagged %r", len(keys), tag)
        except Exception as exc:
            logger.debug("Cache INVALIDATE error for tags=%r: %s", tags, exc)

    # ------------------------------------------------------------------
    # Page cache
    # ------------------------------------------------------------------

    @staticmethod
    def page_key(path: str) -> str:
        return f"page:{path}"

    async def get_page(self, path: str) -> Any | None:
        return await self.get(self.page_key(path))

    async def page_generation(self, path: str) -> tuple[int, ...] | None:
        """Snapshot to pass back to ``set_page`` once the page is rendered."""
        return await self._generations([self.page_key(path)])

    async def set_page(
        self,
        path: str,
        value: Any,
        generation: tuple[int, ...] | None,
        ttl: int | None = None,
    ) -> None:
        """
        Store a rendered page unless *path* was revalidated after
        *generation* was taken.
        """
        if not await self._unchanged([self.page_key(path)], generation):
            return
        await self.set(self.page_key(path), value, ttl=ttl)

    async def revalidate_path(self, path: str) -> None:
        """Drop the rendered page for *path* so the next request rebuilds it."""
        logger.info("Revalidating page %r", path)
        if not self._redis:
            return
        try:
            await self._bump(self.page_key(path))
            await self._redis.delete(self.page_key(path))
        except Exception as exc:
            logger.debug("Cache REVALIDATE error for path=%r: %s", path, exc)

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    @property
    def stats(self) -> dict:
        """Return a snapshot of hit/miss counters for the metrics endpoint."""
        total = self._hits + self._stale_hits + self._misses
        served = self._hits + self._stale_hits
        return {
            "enabled": self.enabled,
            "hits": self._hits,
            "stale_hits": self._stale_hits,
            "misses": self._misses,
            "hit_rate": round(served / total * 100, 1) if total > 0 else 0.0,
        }
