"""
Plain-dict serialisers shared by the service modules.

Dicts rather than ORM objects cross the service boundary so results can be
stored in the JSON query cache unchanged.
"""
from datetime import datetime, timezone

from blogdata.models import Comment, Post, User


def _iso(value: datetime | None) -> str | None:
    """UTC ISO-8601; naive values (SQLite reads) are taken to be UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def user_to_dict(user: User) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "created_at": _iso(user.created_at),
    }


def post_to_dict(post: Post) -> dict:
    return {
        "id": post.id,
        "title": post.title,
        "content": post.content,
        "published": post.published,
        "created_at": _iso(post.created_at),
        "author_id": post.author_id,
    }


def comment_to_dict(comment: Comment) -> dict:
    return {
        "id": comment.id,
        "content": comment.content,
        "created_at": _iso(comment.created_at),
        "post_id": comment.post_id,
        "author_id": comment.author_id,
    }
