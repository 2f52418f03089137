import logging

from fastapi import APIRouter, Depends

from blogdata.client import DataClient
from blogdata.config import settings
from blogdata.dependencies import get_client
from blogdata.schemas import HomePage
from blogdata.services import post_service, user_service
from blogdata.services.revalidation import HOME_PATH

logger = logging.getLogger(__name__)

router = APIRouter(tags=["pages"])

@router.get(HOME_PATH, response_model=HomePage)
async def home(client: DataClient = Depends(get_client)):
    """
    Home page snapshot: every user plus the latest posts.

    The rendered page lives in the page cache until a write revalidates it
    or ``HOME_PAGE_TTL`` runs out.  A render that overlaps a revalidation
    is served but not stored.
    """
    cached = await client.cache.get_page(HOME_PATH)
    if cached is not None:
        return cached

    generation = await client.cache.page_generation(HOME_PATH)
    page = {
        "users": await user_service.get_users(client),
        "posts": await post_service.get_posts(client),
    }
    await client.cache.set_page(HOME_PATH, page, generation, ttl=settings.HOME_PAGE_TTL)
    logger.debug("Rendered home page: %d users, %d posts", len(page["users"]), len(page["posts"]))
    return page
