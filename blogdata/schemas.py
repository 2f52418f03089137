from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


# Required inputs accept the empty string; the service layer rejects blank
# values with a ValidationError before touching the database.


# --- User ---

class UserCreate(BaseModel):
    email: str = Field("", max_length=255)
    name: str | None = Field(None, max_length=150)


class UserResponse(BaseModel):
    id: str
    email: str
    name: str | None
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class UserCounts(BaseModel):
    posts: int
    comments: int


# --- Post ---

class PostCreate(BaseModel):
    title: str = Field("", max_length=300)
    content: str | None = None
    author_id: str = ""
    published: bool = False


class PostResponse(BaseModel):
    id: str
    title: str
    content: str | None
    published: bool
    created_at: datetime
    author_id: str
    model_config = ConfigDict(from_attributes=True)


class PostWithAuthor(PostResponse):
    author: UserResponse


# --- Comment ---

class CommentCreate(BaseModel):
    content: str = ""
    post_id: str = ""
    author_id: str = ""


class CommentResponse(BaseModel):
    id: str
    content: str
    created_at: datetime
    post_id: str
    author_id: str
    model_config = ConfigDict(from_attributes=True)


class CommentWithAuthor(CommentResponse):
    author: UserResponse


class CommentDetail(CommentWithAuthor):
    post: PostResponse


# --- Enriched reads ---

class PostCounts(BaseModel):
    comments: int


class PostListItem(PostWithAuthor):
    comments: list[CommentWithAuthor] = []
    counts: PostCounts


class UserListItem(UserResponse):
    posts: list[PostResponse] = []
    counts: UserCounts


class UserDetail(UserListItem):
    comments: list[CommentResponse] = []


class HomePage(BaseModel):
    users: list[UserListItem]
    posts: list[PostListItem]


# --- Metrics ---

class MetricsResponse(BaseModel):
    total_users: int
    total_posts: int
    total_published_posts: int
    total_comments: int
    avg_posts_per_user: float
    avg_comments_per_post: float
    cache_info: dict = {}
