from blogdata.client import DataClient

HOME_PATH = "/"


async def revalidate_home(client: DataClient, *tags: str) -> None:
    """
    Purge query-cache entries under *tags*, then drop the home page so it
    is rebuilt with the new row on the next request.
    """
    if tags:
        await client.cache.invalidate_tags(*tags)
    await client.cache.revalidate_path(HOME_PATH)
