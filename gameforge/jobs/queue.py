"""Priority job queue: a persistent ledger plus an ordered pointer structure in the shared store."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from datetime import UTC, datetime, timedelta
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from gameforge.cache.store import KeyValueStore
from gameforge.core.errors import StaleJobTimeout, StoreUnavailableError, ValidationError
from gameforge.jobs.models import DEFAULT_PRIORITY, MAX_PRIORITY, MIN_PRIORITY, JobConfig, JobPayload, JobRecord, JobStatus, QueueStats, TemplateKind
from gameforge.storage.jobs_repo import JobsRepository
from gameforge.utils.best_effort import best_effort
from gameforge.utils.ids import generate_job_id

logger = logging.getLogger(__name__)

QUEUE_KEY = "queue:generation"
PROCESSING_KEY = "queue:processing"
RECENT_WINDOW = timedelta(hours=1)


def _utc_now() -> datetime:
  return datetime.now(UTC)


def parse_submission(prompt: Any, template: Any, *, user_id: str | None = None, config: Mapping[str, Any] | None = None) -> JobPayload:
  """Validate raw submission fields into a JobPayload."""
  if not isinstance(prompt, str) or not prompt.strip():
    raise ValidationError("Prompt is required.")
  if template is None or (isinstance(template, str) and not template.strip()):
    raise ValidationError("Template is required.")
  try:
    kind = TemplateKind.parse(template)
  except ValueError as exc:
    allowed = ", ".join(item.value for item in TemplateKind)
    raise ValidationError(f"Unknown template '{template}'. Expected one of: {allowed}.") from exc
  try:
    job_config = JobConfig.model_validate(dict(config or {}))
  except PydanticValidationError as exc:
    messages = [f"config.{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in exc.errors()]
    raise ValidationError("Invalid job configuration.", errors=messages) from exc
  return JobPayload(prompt=prompt.strip(), template=kind, user_id=user_id or None, config=job_config)


def _validate_priority(priority: int | None) -> int:
  if priority is None:
    return DEFAULT_PRIORITY
  if isinstance(priority, bool) or not isinstance(priority, int):
    raise ValidationError("Priority must be an integer.")
  if priority < MIN_PRIORITY or priority > MAX_PRIORITY:
    raise ValidationError(f"Priority must be between {MIN_PRIORITY} and {MAX_PRIORITY}.")
  return priority


class JobQueue:
  """Coordinate the job ledger and the ordered pointer structure.

  Lower priority values are served first. Dequeue relies on the store's atomic
  pop-minimum plus a conditional PENDING to PROCESSING claim in the ledger, so
  any number of workers can share one queue.
  """

  def __init__(self, repo: JobsRepository, store: KeyValueStore, *, clock: Callable[[], datetime] = _utc_now, id_factory: Callable[[], str] = generate_job_id) -> None:
    self._repo = repo
    self._store = store
    self._clock = clock
    self._id_factory = id_factory

  async def enqueue(self, payload: JobPayload, priority: int | None = None) -> str:
    resolved_priority = _validate_priority(priority)
    job_id = self._id_factory()
    record = JobRecord(
      id=job_id,
      prompt=payload.prompt,
      template=payload.template,
      priority=resolved_priority,
      status=JobStatus.PENDING,
      created_at=self._clock(),
      user_id=payload.user_id,
      config=payload.config,
    )
    await self._repo.create_job(record)
    try:
      await self._store.zadd(QUEUE_KEY, job_id, resolved_priority)
    except StoreUnavailableError:
      logger.error("Queue insert failed for job %s; marking it failed.", job_id)
      # If this also fails the record stays PENDING and reconcile_orphans picks it up.
      await best_effort(
        "orphan job failure",
        self._repo.finish_job(job_id, completed_at=self._clock(), error_message="Queue unavailable at submission; please resubmit."),
      )
      raise
    logger.info("Enqueued job %s (template=%s, priority=%s)", job_id, payload.template.value, resolved_priority)
    return job_id

  async def dequeue(self) -> JobRecord | None:
    """Claim the lowest-priority pending job, or return None when the queue is empty."""
    while True:
      popped = await self._store.zpopmin(QUEUE_KEY)
      if popped is None:
        return None
      job_id, score = popped
      try:
        record = await self._repo.claim_job(job_id, started_at=self._clock())
      except StoreUnavailableError:
        # Put the pointer back so the job is not stranded; the ledger was not changed.
        await best_effort("pointer restore", self._store.zadd(QUEUE_KEY, job_id, score, only_if_absent=True))
        raise
      if record is None:
        logger.warning("Discarding queue pointer %s: job missing or no longer pending.", job_id)
        continue
      await best_effort("processing marker", self._store.sadd(PROCESSING_KEY, job_id))
      logger.info("Dequeued job %s (priority=%s)", job_id, record.priority)
      return record

  async def complete(self, job_id: str, result_ref: str | None = None, error_message: str | None = None, *, result_json: dict[str, Any] | None = None) -> JobRecord | None:
    """Mark a job COMPLETED, or FAILED when ``error_message`` is given."""
    record = await self._repo.finish_job(job_id, completed_at=self._clock(), result_ref=result_ref, result_json=result_json, error_message=error_message)
    await best_effort("processing marker removal", self._store.srem(PROCESSING_KEY, job_id))
    if record is None:
      logger.warning("Cannot complete unknown job %s", job_id)
      return None
    if error_message is not None:
      logger.info("Job %s failed: %s", job_id, error_message)
    else:
      logger.info("Job %s completed (result=%s)", job_id, result_ref)
    return record

  async def get_status(self, job_id: str) -> JobRecord | None:
    return await self._repo.get_job(job_id)

  async def stats(self) -> QueueStats:
    pending = await self._store.zcard(QUEUE_KEY)
    processing = await self._store.scard(PROCESSING_KEY)
    recent = await self._repo.count_created_since(self._clock() - RECENT_WINDOW)
    return QueueStats(pending=pending, processing=processing, recent_jobs=recent)

  async def sweep_stale(self, timeout_seconds: float) -> int:
    """Fail PROCESSING jobs older than the timeout; they are never requeued here."""
    now = self._clock()
    job_ids = await self._repo.fail_stale_jobs(
      started_before=now - timedelta(seconds=timeout_seconds),
      error_message=str(StaleJobTimeout(timeout_seconds)),
      completed_at=now,
    )
    for job_id in job_ids:
      await best_effort("processing marker removal", self._store.srem(PROCESSING_KEY, job_id))
    if job_ids:
      logger.warning("Swept %s stale jobs: %s", len(job_ids), ", ".join(job_ids))
    return len(job_ids)

  async def reconcile_orphans(self, min_age_seconds: float = 300, *, limit: int = 100) -> int:
    """Re-insert pointers for PENDING jobs whose ordered-structure entry went missing."""
    records = await self._repo.list_pending(created_before=self._clock() - timedelta(seconds=min_age_seconds), limit=limit)
    restored = 0
    for record in records:
      restored += await self._store.zadd(QUEUE_KEY, record.id, record.priority, only_if_absent=True)
    if restored:
      logger.warning("Restored %s orphaned job pointers", restored)
    return restored
