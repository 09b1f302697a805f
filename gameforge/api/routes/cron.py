"""Privileged triggers for scheduled worker ticks and the stale-job sweep."""

import logging
from datetime import UTC, datetime
from typing import Annotated

from fastapi import APIRouter, Depends

from gameforge.api.deps import get_services
from gameforge.api.models import CleanupResponse, CronResponse, WorkerTickResponse
from gameforge.core.security import verify_cron_secret
from gameforge.services.container import Services

router = APIRouter(dependencies=[Depends(verify_cron_secret)])
logger = logging.getLogger("gameforge.api.routes.cron")


async def _sweep(services: Services) -> int:
  return await services.queue.sweep_stale(services.settings.stale_job_timeout_seconds)


@router.get("", response_model=CronResponse)
async def run_cron(services: Annotated[Services, Depends(get_services)]) -> CronResponse:
  """Sweep stale jobs, then process at most one queued job."""
  cleared = await _sweep(services)
  processed = await services.worker.tick()
  logger.info("Cron run complete (processed=%s, cleared=%s)", processed, cleared)
  return CronResponse(processed=processed, cleared_jobs=cleared, timestamp=datetime.now(UTC))


@router.get("/worker", response_model=WorkerTickResponse)
async def run_worker_tick(services: Annotated[Services, Depends(get_services)]) -> WorkerTickResponse:
  processed = await services.worker.tick()
  return WorkerTickResponse(processed=processed, timestamp=datetime.now(UTC))


@router.get("/cleanup", response_model=CleanupResponse)
async def run_cleanup(services: Annotated[Services, Depends(get_services)]) -> CleanupResponse:
  cleared = await _sweep(services)
  return CleanupResponse(cleared_jobs=cleared, timestamp=datetime.now(UTC))
