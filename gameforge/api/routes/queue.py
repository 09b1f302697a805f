import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status

from gameforge.api.deps import get_services
from gameforge.api.models import JobStatusResponse, JobView, QueueStatsResponse, QueueStatsView, QueueSubmitRequest, QueueSubmitResponse
from gameforge.jobs.queue import parse_submission
from gameforge.services.container import Services

router = APIRouter()
logger = logging.getLogger("gameforge.api.routes.queue")


@router.post("", response_model=QueueSubmitResponse)
async def submit_job(request: QueueSubmitRequest, services: Annotated[Services, Depends(get_services)]) -> QueueSubmitResponse:
  """Enqueue a generation job; the caller polls its status."""
  payload = parse_submission(request.prompt, request.template, user_id=request.user_id, config=request.config)
  job_id = await services.queue.enqueue(payload, request.priority)
  return QueueSubmitResponse(job_id=job_id)


@router.get("", response_model=QueueStatsResponse)
async def queue_stats(services: Annotated[Services, Depends(get_services)]) -> QueueStatsResponse:
  stats = await services.queue.stats()
  return QueueStatsResponse(stats=QueueStatsView.from_stats(stats))


@router.get("/{job_id}", response_model=JobStatusResponse, response_model_exclude_none=True)
async def job_status(job_id: str, services: Annotated[Services, Depends(get_services)]) -> JobStatusResponse:
  record = await services.queue.get_status(job_id)
  if record is None:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found.")
  return JobStatusResponse(job=JobView.from_record(record))
