from fastapi import APIRouter, Depends

from blogdata.client import DataClient
from blogdata.dependencies import get_client, posts_limit
from blogdata.schemas import CommentCreate, CommentDetail, PostCreate, PostListItem, PostWithAuthor
from blogdata.services import comment_service, post_service

router = APIRouter(prefix="/api/v1", tags=["posts"])

@router.get("/posts", response_model=list[PostListItem])
async def list_posts(
    limit: int = Depends(posts_limit),
    client: DataClient = Depends(get_client),
):
    return await post_service.get_posts(client, limit)

@router.post("/posts", status_code=201, response_model=PostWithAuthor)
async def create_post(data: PostCreate, client: DataClient = Depends(get_client)):
    return await post_service.create_post(client, data)

@router.post("/comments", status_code=201, response_model=CommentDetail)
async def create_comment(data: CommentCreate, client: DataClient = Depends(get_client)):
    return await comment_service.create_comment(client, data)
