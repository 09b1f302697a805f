import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Request, Response

from gameforge.ai.models import GenerationRequest, estimate_generation_time
from gameforge.api.deps import enforce_rate_limit, get_services
from gameforge.api.models import GenerateRequest, GenerateResponse, RateLimitView
from gameforge.jobs.queue import parse_submission
from gameforge.services.container import Services
from gameforge.utils.best_effort import best_effort

router = APIRouter()
logger = logging.getLogger("gameforge.api.routes.generate")


@router.post("", response_model=GenerateResponse, response_model_exclude_none=True)
async def generate_game(body: GenerateRequest, request: Request, response: Response, services: Annotated[Services, Depends(get_services)]) -> GenerateResponse:
  """Rate-limit, serve from cache when possible, otherwise enqueue a job."""
  payload = parse_submission(body.prompt, body.template, user_id=body.user_id, config=body.config)

  identity, decision = await enforce_rate_limit(request, response, services, payload.user_id)
  rate_limit = RateLimitView(remaining=decision.remaining, reset=decision.reset_at)

  cached = await services.cache.get_result(payload.template, payload.prompt)
  if cached.hit:
    return GenerateResponse(status="cached", job_id=cached.value.get("jobId"), cache_hit=True, result=cached.value, rate_limit=rate_limit)

  dedup_user = payload.user_id or identity
  in_flight = await services.cache.find_in_flight(dedup_user, payload.template, payload.prompt)
  if in_flight.hit:
    logger.info("Returning in-flight job %s for %s", in_flight.value, identity)
    return GenerateResponse(status="in_flight", job_id=str(in_flight.value), rate_limit=rate_limit)

  job_id = await services.queue.enqueue(payload, body.priority)
  await best_effort("in-flight marker", services.cache.mark_in_flight(dedup_user, payload.template, payload.prompt, job_id))
  estimate = estimate_generation_time(GenerationRequest.from_payload(payload, fallback_user_id=identity))
  return GenerateResponse(status="queued", job_id=job_id, estimated_time_seconds=estimate, rate_limit=rate_limit)
