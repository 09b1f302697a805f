"""Postgres-backed job ledger using SQLAlchemy."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from gameforge.core.database import get_session_factory
from gameforge.core.errors import StoreUnavailableError
from gameforge.jobs.models import JobConfig, JobRecord, JobStatus, TemplateKind
from gameforge.schema.sql import GenerationJob
from gameforge.storage.jobs_repo import JobsRepository

logger = logging.getLogger(__name__)


class PostgresJobsRepository(JobsRepository):
  """Persist generation jobs to Postgres."""

  def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None) -> None:
    self._session_factory = session_factory or get_session_factory()
    if self._session_factory is None:
      raise RuntimeError("Database not initialized")

  async def create_job(self, record: JobRecord) -> None:
    try:
      async with self._session_factory() as session:
        session.add(
          GenerationJob(
            id=record.id,
            prompt=record.prompt,
            template=record.template.value,
            user_id=record.user_id,
            priority=record.priority,
            config_json=record.config.model_dump(mode="json"),
            status=record.status.value,
            created_at=record.created_at,
            started_at=record.started_at,
            completed_at=record.completed_at,
            result_ref=record.result_ref,
            result_json=record.result_json,
            error_message=record.error_message,
          )
        )
        await session.commit()
    except SQLAlchemyError as exc:
      raise StoreUnavailableError(f"Failed to persist job {record.id}.") from exc

  async def get_job(self, job_id: str) -> JobRecord | None:
    try:
      async with self._session_factory() as session:
        row = await session.get(GenerationJob, job_id)
        return self._model_to_record(row) if row is not None else None
    except SQLAlchemyError as exc:
      raise StoreUnavailableError(f"Failed to load job {job_id}.") from exc

  async def claim_job(self, job_id: str, *, started_at: datetime) -> JobRecord | None:
    # Conditional update: only one caller can observe the PENDING row.
    stmt = (
      update(GenerationJob)
      .where(GenerationJob.id == job_id, GenerationJob.status == JobStatus.PENDING.value)
      .values(status=JobStatus.PROCESSING.value, started_at=started_at)
      .returning(GenerationJob)
    )
    try:
      async with self._session_factory() as session:
        row = (await session.execute(stmt)).scalar_one_or_none()
        await session.commit()
        return self._model_to_record(row) if row is not None else None
    except SQLAlchemyError as exc:
      raise StoreUnavailableError(f"Failed to claim job {job_id}.") from exc

  async def finish_job(
    self,
    job_id: str,
    *,
    completed_at: datetime,
    result_ref: str | None = None,
    result_json: dict[str, Any] | None = None,
    error_message: str | None = None,
  ) -> JobRecord | None:
    status = JobStatus.FAILED if error_message is not None else JobStatus.COMPLETED
    try:
      async with self._session_factory() as session:
        row = await session.get(GenerationJob, job_id, with_for_update=True)
        if row is None:
          return None
        if JobStatus(row.status).is_terminal:
          logger.warning("Job %s is already %s; ignoring %s transition.", job_id, row.status, status.value)
          return self._model_to_record(row)
        row.status = status.value
        row.completed_at = completed_at
        row.result_ref = result_ref if status == JobStatus.COMPLETED else None
        row.result_json = result_json if status == JobStatus.COMPLETED else None
        row.error_message = error_message
        await session.commit()
        await session.refresh(row)
        return self._model_to_record(row)
    except SQLAlchemyError as exc:
      raise StoreUnavailableError(f"Failed to finish job {job_id}.") from exc

  async def fail_stale_jobs(self, *, started_before: datetime, error_message: str, completed_at: datetime) -> list[str]:
    stmt = (
      update(GenerationJob)
      .where(GenerationJob.status == JobStatus.PROCESSING.value, GenerationJob.started_at < started_before)
      .values(status=JobStatus.FAILED.value, error_message=error_message, completed_at=completed_at)
      .returning(GenerationJob.id)
    )
    try:
      async with self._session_factory() as session:
        job_ids = list((await session.execute(stmt)).scalars().all())
        await session.commit()
        return job_ids
    except SQLAlchemyError as exc:
      raise StoreUnavailableError("Failed to sweep stale jobs.") from exc

  async def list_pending(self, *, created_before: datetime, limit: int = 100) -> list[JobRecord]:
    stmt = (
      select(GenerationJob)
      .where(GenerationJob.status == JobStatus.PENDING.value, GenerationJob.created_at < created_before)
      .order_by(GenerationJob.created_at.asc())
      .limit(limit)
    )
    try:
      async with self._session_factory() as session:
        rows = (await session.execute(stmt)).scalars().all()
        return [self._model_to_record(row) for row in rows]
    except SQLAlchemyError as exc:
      raise StoreUnavailableError("Failed to list pending jobs.") from exc

  async def count_created_since(self, since: datetime) -> int:
    stmt = select(func.count()).select_from(GenerationJob).where(GenerationJob.created_at >= since)
    try:
      async with self._session_factory() as session:
        return int((await session.execute(stmt)).scalar_one())
    except SQLAlchemyError as exc:
      raise StoreUnavailableError("Failed to count recent jobs.") from exc

  def _model_to_record(self, row: GenerationJob) -> JobRecord:
    return JobRecord(
      id=row.id,
      prompt=row.prompt,
      template=TemplateKind(row.template),
      priority=row.priority,
      status=JobStatus(row.status),
      created_at=row.created_at,
      user_id=row.user_id,
      config=JobConfig.model_validate(row.config_json or {}),
      started_at=row.started_at,
      completed_at=row.completed_at,
      result_ref=row.result_ref,
      result_json=row.result_json,
      error_message=row.error_message,
    )
