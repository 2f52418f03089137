"""
Per-request diagnostics.

A ``RequestStats`` record is bound to a ContextVar for the lifetime of each
HTTP request.  The SQLAlchemy engine hook counts statements into it and
``CacheManager`` records whether each cached query was served fresh,
served stale or loaded from the database.  ``DiagnosticsMiddleware``
reports the totals as response headers::

    X-Response-Time-Ms: 12.4
    X-Query-Count: 3
    X-Cache: fresh=1; stale=0; miss=1

Outside a request (scripts, tests calling services directly) no record is
bound and every ``record_*`` call is a no-op.
"""
import logging
import time
from contextvars import ContextVar
from dataclasses import dataclass

from sqlalchemy import event
from starlette.types import ASGIApp, Receive, Scope, Send

logger = logging.getLogger(__name__)

CACHE_OUTCOMES = ("fresh", "stale", "miss")


@dataclass
class RequestStats:
    queries: int = 0
    fresh: int = 0
    stale: int = 0
    miss: int = 0

    def cache_header(self) -> str:
        return "; ".join(f"{name}={getattr(self, name)}" for name in CACHE_OUTCOMES)


request_stats_var: ContextVar[RequestStats | None] = ContextVar("request_stats", default=None)


def record_cache_outcome(outcome: str) -> None:
    """Count one query-cache lookup (``fresh``, ``stale`` or ``miss``)."""
    stats = request_stats_var.get()
    if stats is not None:
        setattr(stats, outcome, getattr(stats, outcome) + 1)


def install_query_counter(engine) -> None:
    """
    Count every SQL statement run on *engine*, including the extra SELECTs
    issued by ``selectinload``, into the current request's stats.

    The async engine runs statements in a greenlet that shares the calling
    task's context, so the ContextVar resolves to the request's record.
    """

    @event.listens_for(engine.sync_engine, "before_cursor_execute")
    def _count_query(conn, cursor, statement, parameters, context, executemany):
        stats = request_stats_var.get()
        if stats is not None:
            stats.queries += 1


class DiagnosticsMiddleware:
    """Pure ASGI middleware; stats set here stay visible to the wrapped app."""

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        stats = RequestStats()
        token = request_stats_var.set(stats)
        start = time.perf_counter()

        async def send_wrapper(message):
            if message["type"] == "http.response.start":
                duration_ms = round((time.perf_counter() - start) * 1000, 2)
                headers = list(message.get("headers", []))
                headers.append((b"x-response-time-ms", str(duration_ms).encode()))
                headers.append((b"x-query-count", str(stats.queries).encode()))
                headers.append((b"x-cache", stats.cache_header().encode()))
                message["headers"] = headers
                logger.debug(
                    "%s %s -> %s in %sms, %d queries, cache %s",
                    scope["method"],
                    scope["path"],
                    message["status"],
                    duration_ms,
                    stats.queries,
                    stats.cache_header(),
                )
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        finally:
            request_stats_var.reset(token)
