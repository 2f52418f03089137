"""
Site-wide totals for the metrics endpoint.

All counts come from one SELECT of scalar subqueries.  The result is cached
under both list tags, so any user, post or comment write purges it.
"""
import logging

from sqlalchemy import func, select

from blogdata.cache import CacheStrategy
from blogdata.client import DataClient
from blogdata.config import settings
from blogdata.exceptions import BlogError, FetchFailedError
from blogdata.models import Comment, Post, User
from blogdata.services.post_service import POSTS_LIST_TAG
from blogdata.services.user_service import USERS_LIST_TAG

logger = logging.getLogger(__name__)


def _count(model, *criteria):
    q = select(func.count()).select_from(model)
    if criteria:
        q = q.where(*criteria)
    return q.scalar_subquery()


async def get_site_stats(client: DataClient) -> dict:
    strategy = CacheStrategy(ttl=settings.METRICS_TTL, tags=(USERS_LIST_TAG, POSTS_LIST_TAG))

    async def load() -> dict:
        q = select(
            _count(User).label("users"),
            _count(Post).label("posts"),
            _count(Post, Post.published.is_(True)).label("published_posts"),
            _count(Comment).label("comments"),
        )
        async with client.session() as db:
            row = (await db.execute(q)).one()

        return {
            "total_users": row.users,
            "total_posts": row.posts,
            "total_published_posts": row.published_posts,
            "total_comments": row.comments,
            "avg_posts_per_user": round(row.posts / row.users, 2) if row.users else 0.0,
            "avg_comments_per_post": round(row.comments / row.posts, 2) if row.posts else 0.0,
        }

    try:
        return await client.cache.fetch("metrics:site", strategy, load)
    except BlogError:
        raise
    except Exception as exc:
        logger.exception("Error fetching site metrics")
        raise FetchFailedError("metrics") from exc
