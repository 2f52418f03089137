"""
Post service — the newest-first feed and post creation.

The feed embeds each post's author and its comments (each with their own
author) using ``joinedload`` for the many-to-one hops and ``selectinload``
for the comment collection, so a feed of any size costs three queries.
"""
import logging

from sqlalchemy import func, select
from sqlalchemy.orm import joinedload, selectinload

from blogdata.cache import CacheStrategy
from blogdata.client import DataClient
from blogdata.config import settings
from blogdata.exceptions import (
    AuthorNotFoundError,
    BlogError,
    CreateFailedError,
    FetchFailedError,
    ValidationError,
)
from blogdata.models import Comment, Post, User
from blogdata.schemas import PostCreate
from blogdata.services.revalidation import revalidate_home
from blogdata.services.serializers import comment_to_dict, post_to_dict, user_to_dict
from blogdata.services.user_service import USERS_LIST_TAG, user_tag

logger = logging.getLogger(__name__)

POSTS_LIST_TAG = "posts_list"


def _post_to_feed_item(post: Post, comment_count: int) -> dict:
    data = post_to_dict(post)
    data["author"] = user_to_dict(post.author)
    data["comments"] = []
    for comment in post.comments:
        item = comment_to_dict(comment)
        item["author"] = user_to_dict(comment.author)
        data["comments"].append(item)
    data["counts"] = {"comments": comment_count}
    return data


async def get_posts(client: DataClient, limit: int | None = None) -> list[dict]:
    """
    Return up to *limit* posts, newest first.

    *limit* defaults to ``settings.DEFAULT_POSTS_LIMIT``; a negative limit
    or one above ``settings.MAX_POSTS_LIMIT`` is a ValidationError.  A limit
    of zero returns an empty list without querying.
    """
    if limit is None:
        limit = settings.DEFAULT_POSTS_LIMIT
    if limit < 0:
        raise ValidationError("Limit must not be negative", field="limit")
    if limit > settings.MAX_POSTS_LIMIT:
        raise ValidationError(
            f"Limit must not exceed {settings.MAX_POSTS_LIMIT}", field="limit"
        )
    if limit == 0:
        return []

    strategy = CacheStrategy(swr=settings.POSTS_LIST_SWR, tags=(POSTS_LIST_TAG,))

    async def load() -> list[dict]:
        comment_count = (
            select(func.count(Comment.id))
            .where(Comment.post_id == Post.id)
            .correlate(Post)
            .scalar_subquery()
            .label("comment_count")
        )
        q = (
            select(Post, comment_count)
            .options(
                joinedload(Post.author),
                selectinload(Post.comments).joinedload(Comment.author),
            )
            .order_by(Post.created_at.desc())
            .limit(limit)
        )
        async with client.session() as db:
            result = await db.execute(q)
            return [_post_to_feed_item(p, cc) for p, cc in result.all()]

    try:
        return await client.cache.fetch(f"posts:list:{limit}", strategy, load)
    except BlogError:
        raise
    except Exception as exc:
        logger.exception("Error fetching posts")
        raise FetchFailedError("posts") from exc


async def create_post(client: DataClient, data: PostCreate) -> dict:
    """
    Create a post for an existing author and return it with the author
    embedded.

    The author lookup and the insert share one session but are not
    locked; a concurrent author delete surfaces as CreateFailedError from
    the foreign-key check.
    """
    if not data.title.strip():
        raise ValidationError("Title and author are required", field="title")
    if not data.author_id.strip():
        raise ValidationError("Title and author are required", field="author_id")

    try:
        async with client.session() as db:
            author = await db.get(User, data.author_id)
            if author is None:
                raise AuthorNotFoundError(data.author_id)

            post = Post(
                title=data.title,
                content=data.content,
                published=data.published,
                author_id=author.id,
            )
            db.add(post)
            await db.flush()

            created = post_to_dict(post)
            created["author"] = user_to_dict(author)
    except BlogError:
        raise
    except Exception as exc:
        logger.exception("Error creating post")
        raise CreateFailedError("post") from exc

    await revalidate_home(client, POSTS_LIST_TAG, USERS_LIST_TAG, user_tag(data.author_id))
    return created
