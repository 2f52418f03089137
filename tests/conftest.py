"""
Test infrastructure for the blog data layer.

Strategy
--------
- SQLite in-memory via aiosqlite keeps the suite free of a Postgres
  dependency.  StaticPool makes every session share the one connection
  that owns the in-memory database.
- Each test gets a fresh ``DataClient`` built around its own engine, so
  schema and data never leak between tests.
- The cache is a ``RecordingCache``: a real CacheManager that also records
  every ``revalidate_path`` call.  With no Redis attached it falls through
  to the database on every read, which is what most tests want; tests that
  exercise caching attach ``FakeRedis`` instead.
- The FastAPI app is pointed at the test client through ``app.state`` and
  driven with httpx over ASGITransport (lifespan is not run).
"""
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

import blogdata.models  # noqa: F401  (registers tables on Base.metadata)
from blogdata.cache import CacheManager
from blogdata.client import DataClient
from blogdata.database import Base
from blogdata.main import app

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


# ---------------------------------------------------------------------------
# Test doubles
# ---------------------------------------------------------------------------

class _FakePipeline:
    """Queues commands and runs them in order on ``execute``."""

    def __init__(self, redis: "FakeRedis") -> None:
        self._redis = redis
        self._calls = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        self._calls.clear()

    def __getattr__(self, name):
        method = getattr(self._redis, name)

        def queue(*args, **kwargs):
            self._calls.append((method, args, kwargs))
            return self

        return queue

    async def execute(self):
        results = [await method(*args, **kwargs) for method, args, kwargs in self._calls]
        self._calls.clear()
        return results


class FakeRedis:
    """In-process stand-in for the few redis commands CacheManager issues."""

    def __init__(self) -> None:
        self.data: dict[str, str] = {}
        self.sets: dict[str, set[str]] = {}
        self.ttls: dict[str, int] = {}

    async def ping(self) -> bool:
        return True

    async def get(self, key):
        return self.data.get(key)

    async def set(self, key, value, ex=None):
        self.data[key] = value
        if ex:
            self.ttls[key] = ex
        else:
            self.ttls.pop(key, None)
        return True

    async def incr(self, key):
        value = int(self.data.get(key, 0)) + 1
        self.data[key] = str(value)
        return value

    async def expire(self, key, seconds):
        if key in self.data or key in self.sets:
            self.ttls[key] = seconds
            return True
        return False

    async def sadd(self, key, *members):
        self.sets.setdefault(key, set()).update(members)
        return len(members)

    async def smembers(self, key):
        return set(self.sets.get(key, set()))

    async def delete(self, *keys):
        removed = 0
        for key in keys:
            if self.data.pop(key, None) is not None:
                removed += 1
            if self.sets.pop(key, None) is not None:
                removed += 1
            self.ttls.pop(key, None)
        return removed

    def pipeline(self, transaction: bool = True) -> _FakePipeline:
        return _FakePipeline(self)

    async def aclose(self) -> None:
        pass



class RecordingCache(CacheManager):
    """CacheManager that remembers which page paths were revalidated."""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.revalidated: list[str] = []

    async def revalidate_path(self, path: str) -> None:
        self.revalidated.append(path)
        await super().revalidate_path(path)


class Clock:
    def __init__(self, now: float = 1_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def data_client() -> DataClient:
    """A DataClient over a fresh in-memory database with caching disabled."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    client = DataClient(engine, RecordingCache())
    yield client
    await client.dispose()


@pytest_asyncio.fixture
async def cached_client(data_client: DataClient) -> DataClient:
    """``data_client`` with an in-process Redis attached to its cache."""
    data_client.cache._redis = FakeRedis()
    return data_client


@pytest_asyncio.fixture
async def async_client(data_client: DataClient) -> AsyncClient:
    """httpx.AsyncClient wired to the FastAPI app using ``data_client``."""
    app.state.client = data_client
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.state.client = None
