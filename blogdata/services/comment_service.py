"""
Comment service — append-only comment creation.

Comments cannot be edited or deleted through this layer.  A new comment
changes the feed, the user list counts and the author's detail view, so
all three cache tags are purged along with the home page.
"""
import logging

from blogdata.client import DataClient
from blogdata.exceptions import (
    AuthorNotFoundError,
    BlogError,
    CreateFailedError,
    PostNotFoundError,
    ValidationError,
)
from blogdata.models import Comment, Post, User
from blogdata.schemas import CommentCreate
from blogdata.services.post_service import POSTS_LIST_TAG
from blogdata.services.revalidation import revalidate_home
from blogdata.services.serializers import comment_to_dict, post_to_dict, user_to_dict
from blogdata.services.user_service import USERS_LIST_TAG, user_tag

logger = logging.getLogger(__name__)


async def create_comment(client: DataClient, data: CommentCreate) -> dict:
    """
    Add a comment to an existing post on behalf of an existing user.

    Both references are looked up before the insert.  When both are
    missing the post is reported first.
    """
    for field in ("content", "post_id", "author_id"):
        if not getattr(data, field).strip():
            raise ValidationError("Content, post, and author are required", field=field)

    try:
        async with client.session() as db:
            post = await db.get(Post, data.post_id)
            author = await db.get(User, data.author_id)
            if post is None:
                raise PostNotFoundError(data.post_id)
            if author is None:
                raise AuthorNotFoundError(data.author_id)

            comment = Comment(content=data.content, post_id=post.id, author_id=author.id)
            db.add(comment)
            await db.flush()

            created = comment_to_dict(comment)
            created["author"] = user_to_dict(author)
            created["post"] = post_to_dict(post)
    except BlogError:
        raise
    except Exception as exc:
        logger.exception("Error creating comment")
        raise CreateFailedError("comment") from exc

    await revalidate_home(client, POSTS_LIST_TAG, USERS_LIST_TAG, user_tag(data.author_id))
    return created
