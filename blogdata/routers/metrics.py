from fastapi import APIRouter, Depends

from blogdata.client import DataClient
from blogdata.dependencies import get_client
from blogdata.schemas import MetricsResponse
from blogdata.services import metrics_service

router = APIRouter(prefix="/api/v1/metrics", tags=["metrics"])

@router.get("", response_model=MetricsResponse)
async def get_metrics(client: DataClient = Depends(get_client)):
    stats = await metrics_service.get_site_stats(client)
    return MetricsResponse(**stats, cache_info=client.cache.stats)
