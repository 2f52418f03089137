"""
Data client — the one long-lived handle services talk to the database through.

A ``DataClient`` bundles the pooled async engine, its session factory and
the cache manager.  It is constructed explicitly by the host process (the
FastAPI lifespan, a script, or a test fixture) and passed to every service
function; nothing in the package keeps a module-level client.
"""
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from blogdata.cache import CacheManager
from blogdata.config import Settings
from blogdata.database import session_scope
from blogdata.middleware import install_query_counter

logger = logging.getLogger(__name__)


class DataClient:
    def __init__(self, engine: AsyncEngine, cache: CacheManager | None = None) -> None:
        self.engine = engine
        self.cache = cache if cache is not None else CacheManager()
        self._sessions = async_sessionmaker(
            engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )
        install_query_counter(engine)

    @classmethod
    def from_settings(cls, settings: Settings) -> "DataClient":
        """
        Build a client from *settings*.

        Outside production the engine echoes SQL when ``DEBUG`` is set.
        """
        engine = create_async_engine(
            settings.DATABASE_URL,
            echo=settings.DEBUG and settings.is_development,
            pool_pre_ping=True,
        )
        logger.info("Data client created for %s environment", settings.APP_ENV)
        return cls(engine, CacheManager(settings.REDIS_URL))

    async def connect(self) -> None:
        await self.cache.connect()

    async def dispose(self) -> None:
        """Release the cache connection and every pooled DB connection."""
        await self.cache.disconnect()
        await self.engine.dispose()
        logger.info("Data client disposed")

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """Unit of work: commit on success, roll back on any exception."""
        async with session_scope(self._sessions) as session:
            yield session
