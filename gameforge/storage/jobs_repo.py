"""Storage interfaces for the job ledger."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Protocol

from gameforge.jobs.models import JobRecord


class JobsRepository(Protocol):
  """Repository contract for job persistence."""

  async def create_job(self, record: JobRecord) -> None:
    """Persist an initial job record."""

  async def get_job(self, job_id: str) -> JobRecord | None:
    """Fetch a job by identifier."""

  async def claim_job(self, job_id: str, *, started_at: datetime) -> JobRecord | None:
    """Atomically move a PENDING job to PROCESSING; None when it is missing or not PENDING."""

  async def finish_job(self, job_id: str, *, completed_at: datetime, result_ref: str | None = None, result_json: dict[str, Any] | None = None, error_message: str | None = None) -> JobRecord | None:
    """Mark a job COMPLETED, or FAILED when an error message is given."""

  async def fail_stale_jobs(self, *, started_before: datetime, error_message: str, completed_at: datetime) -> list[str]:
    """Fail every PROCESSING job started before the cutoff and return their ids."""

  async def list_pending(self, *, created_before: datetime, limit: int = 100) -> list[JobRecord]:
    """Return PENDING jobs created before the cutoff, oldest first."""

  async def count_created_since(self, since: datetime) -> int:
    """Count jobs created at or after a timestamp."""
