"""
User service — list, detail and create for the User aggregate.

Both reads go through the client's query cache.  The list is tagged
``users_list`` and each detail entry ``user_<id>``, so writes that touch a
user's posts or comments can purge exactly what they made stale.
"""
import logging

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload

from blogdata.cache import CacheStrategy
from blogdata.client import DataClient
from blogdata.config import settings
from blogdata.exceptions import (
    BlogError,
    CreateFailedError,
    DuplicateEmailError,
    FetchFailedError,
    UserNotFoundError,
    ValidationError,
)
from blogdata.models import Comment, Post, User
from blogdata.schemas import UserCreate
from blogdata.services.revalidation import revalidate_home
from blogdata.services.serializers import comment_to_dict, post_to_dict, user_to_dict

logger = logging.getLogger(__name__)

USERS_LIST_TAG = "users_list"


def user_tag(user_id: str) -> str:
    return f"user_{user_id}"


# ---------------------------------------------------------------------------
# Query helpers
# ---------------------------------------------------------------------------

def _post_count():
    return (
        select(func.count(Post.id))
        .where(Post.author_id == User.id)
        .correlate(User)
        .scalar_subquery()
        .label("post_count")
    )


def _comment_count():
    return (
        select(func.count(Comment.id))
        .where(Comment.author_id == User.id)
        .correlate(User)
        .scalar_subquery()
        .label("comment_count")
    )


def _user_with_posts(user: User, post_count: int, comment_count: int) -> dict:
    data = user_to_dict(user)
    data["posts"] = [post_to_dict(p) for p in user.posts]
    data["counts"] = {"posts": post_count, "comments": comment_count}
    return data


# ---------------------------------------------------------------------------
# Public service functions
# ---------------------------------------------------------------------------

async def get_users(client: DataClient) -> list[dict]:
    """
    Return every user, newest first, each with their posts and post /
    comment counts.

    Counts come from correlated subqueries in the same SELECT; posts are
    fetched with one extra ``selectinload`` query.
    """
    strategy = CacheStrategy(ttl=settings.USERS_LIST_TTL, tags=(USERS_LIST_TAG,))

    async def load() -> list[dict]:
        q = (
            select(User, _post_count(), _comment_count())
            .options(selectinload(User.posts))
            .order_by(User.created_at.desc())
        )
        async with client.session() as db:
            result = await db.execute(q)
            return [_user_with_posts(u, pc, cc) for u, pc, cc in result.all()]

    try:
        return await client.cache.fetch("users:list", strategy, load)
    except BlogError:
        raise
    except Exception as exc:
        logger.exception("Error fetching users")
        raise FetchFailedError("users") from exc


async def get_user_by_id(client: DataClient, user_id: str) -> dict:
    """
    Return one user with all of their posts, their most recent comments and
    post / comment counts.

    Raises UserNotFoundError when *user_id* does not exist (the empty
    string included); misses are not cached.
    """
    strategy = CacheStrategy(
        ttl=settings.USER_DETAIL_TTL,
        swr=settings.USER_DETAIL_SWR,
        tags=(user_tag(user_id),),
    )

    async def load() -> dict:
        user_q = (
            select(User, _post_count(), _comment_count())
            .where(User.id == user_id)
            .options(selectinload(User.posts))
        )
        comments_q = (
            select(Comment)
            .where(Comment.author_id == user_id)
            .order_by(Comment.created_at.desc())
            .limit(settings.RECENT_COMMENTS_LIMIT)
        )
        async with client.session() as db:
            row = (await db.execute(user_q)).one_or_none()
            if row is None:
                raise UserNotFoundError(user_id)
            user, post_count, comment_count = row
            comments = (await db.execute(comments_q)).scalars().all()

        data = _user_with_posts(user, post_count, comment_count)
        data["comments"] = [comment_to_dict(c) for c in comments]
        return data

    try:
        return await client.cache.fetch(f"users:detail:{user_id}", strategy, load)
    except BlogError:
        raise
    except Exception as exc:
        logger.exception("Error fetching user with ID %s", user_id)
        raise FetchFailedError("user") from exc


async def create_user(client: DataClient, data: UserCreate) -> dict:
    """
    Create a new user and return its serialised dict.

    Email uniqueness is enforced by the database; the resulting
    IntegrityError is reported as DuplicateEmailError.
    """
    if not data.email.strip():
        raise ValidationError("Email is required", field="email")

    try:
        async with client.session() as db:
            user = User(email=data.email, name=data.name)
            db.add(user)
            await db.flush()
            created = user_to_dict(user)
    except IntegrityError as exc:
        logger.warning("Rejected duplicate email on user create")
        raise DuplicateEmailError(context={"email": data.email}) from exc
    except BlogError:
        raise
    except Exception as exc:
        logger.exception("Error creating user")
        raise CreateFailedError("user") from exc

    await revalidate_home(client, USERS_LIST_TAG)
    return created
