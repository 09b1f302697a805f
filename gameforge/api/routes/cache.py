import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query

from gameforge.api.deps import get_services
from gameforge.api.models import CacheClearResponse, CacheStatsResponse, CacheStatsView
from gameforge.core.security import verify_cron_secret
from gameforge.services.container import Services

router = APIRouter()
logger = logging.getLogger("gameforge.api.routes.cache")


@router.get("", response_model=CacheStatsResponse)
async def cache_stats(services: Annotated[Services, Depends(get_services)]) -> CacheStatsResponse:
  stats = await services.cache.stats()
  return CacheStatsResponse(stats=CacheStatsView(total_keys=stats.total_keys, memory_usage=stats.memory_usage, hit_rate=stats.hit_rate))


@router.delete("", response_model=CacheClearResponse, dependencies=[Depends(verify_cron_secret)])
async def clear_cache(services: Annotated[Services, Depends(get_services)], pattern: Annotated[str | None, Query(max_length=200)] = None) -> CacheClearResponse:
  """Delete keys matching ``pattern``; without one only generation namespaces are cleared."""
  deleted = await services.cache.clear(pattern)
  logger.info("Cache cleared (pattern=%s, deleted=%s)", pattern or "<generation namespaces>", deleted)
  return CacheClearResponse(deleted=deleted)
