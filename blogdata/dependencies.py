from fastapi import Query, Request

from blogdata.client import DataClient
from blogdata.config import settings


def get_client(request: Request) -> DataClient:
    """Return the DataClient the lifespan attached to ``app.state``."""
    return request.app.state.client


def posts_limit(
    limit: int = Query(
        settings.DEFAULT_POSTS_LIMIT,
        ge=0,
        le=settings.MAX_POSTS_LIMIT,
        description="Maximum number of posts to return.",
    ),
) -> int:
    return limit
