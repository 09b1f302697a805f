"""Background processor for queued game generation jobs."""

from __future__ import annotations

import asyncio
import logging
from typing import Protocol

from gameforge.ai.models import GenerationRequest, GenerationResult
from gameforge.cache.generation_cache import GenerationCache
from gameforge.config import Settings
from gameforge.core.errors import GameForgeError
from gameforge.jobs.models import JobRecord
from gameforge.jobs.queue import JobQueue
from gameforge.utils.best_effort import best_effort

logger = logging.getLogger(__name__)

_GENERIC_FAILURE = "Game generation failed due to an internal error."


class Orchestrator(Protocol):
  async def generate(self, request: GenerationRequest, *, job_id: str | None = None) -> GenerationResult:
    """Run one generation end to end."""


def _failure_message(exc: Exception) -> str:
  """Human-readable summary stored on a FAILED job; never a traceback."""
  if isinstance(exc, GameForgeError):
    message = str(exc).strip()
    return message or exc.__class__.__name__
  return _GENERIC_FAILURE


class JobWorker:
  """Single consumer: dequeue one job per tick and drive it to a terminal state.

  Several workers may share a queue; the queue's atomic dequeue keeps them apart.
  """

  def __init__(self, *, queue: JobQueue, orchestrator: Orchestrator, settings: Settings, cache: GenerationCache | None = None) -> None:
    self._queue = queue
    self._orchestrator = orchestrator
    self._settings = settings
    self._cache = cache

  async def tick(self) -> bool:
    """Process at most one job; return True when a job was dequeued."""
    job = await self._queue.dequeue()
    if job is None:
      return False
    await self._process(job)
    return True

  async def _process(self, job: JobRecord) -> None:
    try:
      result = await self._orchestrator.generate(GenerationRequest.from_job(job), job_id=job.id)
    except Exception as exc:  # noqa: BLE001
      logger.error("Job %s failed: %s", job.id, exc, exc_info=not isinstance(exc, GameForgeError))
      await self._record_outcome(job.id, error_message=_failure_message(exc))
      return

    descriptor = result.to_dict()
    if not await self._record_outcome(job.id, result.artifact_locator, result_json=descriptor):
      return
    if self._cache is not None:
      await best_effort("generation cache population", self._cache.put_result(job.template, job.prompt, {**descriptor, "jobId": job.id}))

  async def _record_outcome(self, job_id: str, result_ref: str | None = None, *, error_message: str | None = None, result_json: dict | None = None) -> bool:
    try:
      await self._queue.complete(job_id, result_ref, error_message, result_json=result_json)
    except Exception as exc:  # noqa: BLE001
      # The job stays PROCESSING until the stale sweep fails it.
      logger.error("Could not record outcome for job %s: %s", job_id, exc)
      return False
    return True

  async def run(self, stop_event: asyncio.Event) -> None:
    """Loop ticks until ``stop_event`` is set, sleeping between them."""
    logger.info("Worker loop started")
    while not stop_event.is_set():
      try:
        processed = await self.tick()
        delay = self._settings.worker_busy_interval_seconds if processed else self._settings.worker_idle_interval_seconds
      except Exception as exc:  # noqa: BLE001
        # No job was claimed, so there is nothing to mark FAILED.
        logger.error("Worker tick failed: %s", exc, exc_info=True)
        delay = self._settings.worker_error_interval_seconds
      try:
        await asyncio.wait_for(stop_event.wait(), timeout=delay)
      except TimeoutError:
        pass
    logger.info("Worker loop stopped")
