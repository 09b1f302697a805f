"""Shared fixtures: in-memory store and ledger doubles plus an ASGI client."""

from __future__ import annotations

import fnmatch
import os
from dataclasses import replace
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest
from httpx import ASGITransport, AsyncClient

# Ensure required settings are available before importing the app.
os.environ.setdefault("GAMEFORGE_ALLOWED_ORIGINS", "http://localhost")
os.environ.pop("GAMEFORGE_WORKER_EMBEDDED", None)

from gameforge.cache.generation_cache import GenerationCache  # noqa: E402
from gameforge.cache.rate_limit import FixedWindowRateLimiter  # noqa: E402
from gameforge.cache.store import StoreStats, WindowConsumption  # noqa: E402
from gameforge.config import get_settings  # noqa: E402
from gameforge.core.errors import StoreUnavailableError  # noqa: E402
from gameforge.jobs.models import JobRecord, JobStatus  # noqa: E402
from gameforge.jobs.queue import JobQueue  # noqa: E402

CRON_SECRET = "test-cron-secret"


class FakeClock:
  """Manually advanced UTC clock."""

  def __init__(self, start: datetime | None = None) -> None:
    self.now = start or datetime(2024, 1, 1, 12, 0, tzinfo=UTC)

  def __call__(self) -> datetime:
    return self.now

  def advance(self, seconds: float) -> None:
    self.now += timedelta(seconds=seconds)


class InMemoryStore:
  """KeyValueStore double with clock-driven expiry.

  Set ``available = False`` to make every call raise StoreUnavailableError, or
  add method names to ``failing`` to break individual operations.
  """

  def __init__(self, clock: FakeClock) -> None:
    self._clock = clock
    self._values: dict[str, tuple[Any, datetime | None]] = {}
    self._zsets: dict[str, dict[str, float]] = {}
    self._sets: dict[str, set[str]] = {}
    self.available = True
    self.failing: set[str] = set()
    self.ttl_readable = True

  def _check(self, operation: str) -> None:
    if not self.available or operation in self.failing:
      raise StoreUnavailableError(f"Redis {operation} failed: connection refused")

  async def ping(self) -> bool:
    self._check("ping")
    return True

  def _live(self, key: str) -> Any | None:
    entry = self._values.get(key)
    if entry is None:
      return None
    value, expires_at = entry
    if expires_at is not None and self._clock() >= expires_at:
      del self._values[key]
      return None
    return value

  def _ttl(self, key: str) -> int | None:
    entry = self._values.get(key)
    if entry is None or entry[1] is None:
      return None
    return max(0, int((entry[1] - self._clock()).total_seconds()))

  async def get(self, key: str) -> Any | None:
    self._check("get")
    return self._live(key)

  async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
    self._check("set")
    self._values[key] = (value, self._clock() + timedelta(seconds=ttl_seconds))

  async def set_if_absent(self, key: str, value: Any, ttl_seconds: int) -> bool:
    self._check("set_if_absent")
    if self._live(key) is not None:
      return False
    self._values[key] = (value, self._clock() + timedelta(seconds=ttl_seconds))
    return True

  async def delete_matching(self, pattern: str) -> int:
    self._check("delete_matching")
    matched = [key for key in list(self._values) if fnmatch.fnmatchcase(key, pattern) and self._live(key) is not None]
    for key in matched:
      del self._values[key]
    return len(matched)

  async def consume_fixed_window(self, key: str, *, limit: int, window_seconds: int) -> WindowConsumption:
    self._check("consume_fixed_window")
    count = self._live(key) or 0
    if count >= limit:
      return WindowConsumption(allowed=False, count=count, ttl_seconds=self._ttl(key) if self.ttl_readable else None)
    if count == 0:
      self._values[key] = (1, self._clock() + timedelta(seconds=window_seconds))
    else:
      self._values[key] = (count + 1, self._values[key][1])
    return WindowConsumption(allowed=True, count=count + 1, ttl_seconds=self._ttl(key) if self.ttl_readable else None)

  async def zadd(self, key: str, member: str, score: float, *, only_if_absent: bool = False) -> int:
    self._check("zadd")
    zset = self._zsets.setdefault(key, {})
    if member in zset:
      if not only_if_absent:
        zset[member] = score
      return 0
    zset[member] = score
    return 1

  async def zpopmin(self, key: str) -> tuple[str, float] | None:
    self._check("zpopmin")
    zset = self._zsets.get(key)
    if not zset:
      return None
    # Redis orders equal scores lexicographically by member.
    member = min(zset, key=lambda item: (zset[item], item))
    return member, zset.pop(member)

  async def zcard(self, key: str) -> int:
    self._check("zcard")
    return len(self._zsets.get(key, {}))

  async def sadd(self, key: str, member: str) -> int:
    self._check("sadd")
    members = self._sets.setdefault(key, set())
    added = member not in members
    members.add(member)
    return int(added)

  async def srem(self, key: str, member: str) -> int:
    self._check("srem")
    members = self._sets.get(key, set())
    removed = member in members
    members.discard(member)
    return int(removed)

  async def scard(self, key: str) -> int:
    self._check("scard")
    return len(self._sets.get(key, set()))

  async def stats(self) -> StoreStats:
    self._check("stats")
    return StoreStats(total_keys=len(self._values) + len(self._zsets) + len(self._sets), memory_usage=1024, hit_rate=0.5)

  def members(self, key: str) -> dict[str, float]:
    return dict(self._zsets.get(key, {}))

  def set_members(self, key: str) -> set[str]:
    return set(self._sets.get(key, set()))


class InMemoryJobsRepo:
  """In-memory job ledger mirroring the Postgres repository's transitions."""

  def __init__(self) -> None:
    self.jobs: dict[str, JobRecord] = {}
    self.available = True

  def _check(self) -> None:
    if not self.available:
      raise StoreUnavailableError("Job ledger unavailable.")

  async def create_job(self, record: JobRecord) -> None:
    self._check()
    self.jobs[record.id] = record

  async def get_job(self, job_id: str) -> JobRecord | None:
    self._check()
    return self.jobs.get(job_id)

  async def claim_job(self, job_id: str, *, started_at: datetime) -> JobRecord | None:
    self._check()
    record = self.jobs.get(job_id)
    if record is None or record.status != JobStatus.PENDING:
      return None
    updated = replace(record, status=JobStatus.PROCESSING, started_at=started_at)
    self.jobs[job_id] = updated
    return updated

  async def finish_job(self, job_id: str, *, completed_at: datetime, result_ref: str | None = None, result_json: dict[str, Any] | None = None, error_message: str | None = None) -> JobRecord | None:
    self._check()
    record = self.jobs.get(job_id)
    if record is None:
      return None
    if record.status.is_terminal:
      return record
    if error_message is not None:
      updated = replace(record, status=JobStatus.FAILED, completed_at=completed_at, error_message=error_message, result_ref=None, result_json=None)
    else:
      updated = replace(record, status=JobStatus.COMPLETED, completed_at=completed_at, result_ref=result_ref, result_json=result_json, error_message=None)
    self.jobs[job_id] = updated
    return updated

  async def fail_stale_jobs(self, *, started_before: datetime, error_message: str, completed_at: datetime) -> list[str]:
    self._check()
    stale = [job.id for job in self.jobs.values() if job.status == JobStatus.PROCESSING and job.started_at is not None and job.started_at < started_before]
    for job_id in stale:
      self.jobs[job_id] = replace(self.jobs[job_id], status=JobStatus.FAILED, error_message=error_message, completed_at=completed_at)
    return stale

  async def list_pending(self, *, created_before: datetime, limit: int = 100) -> list[JobRecord]:
    self._check()
    pending = sorted((job for job in self.jobs.values() if job.status == JobStatus.PENDING and job.created_at < created_before), key=lambda job: job.created_at)
    return pending[:limit]

  async def count_created_since(self, since: datetime) -> int:
    self._check()
    return sum(1 for job in self.jobs.values() if job.created_at >= since)


class SequentialIds:
  def __init__(self, prefix: str = "job") -> None:
    self._prefix = prefix
    self._count = 0

  def __call__(self) -> str:
    self._count += 1
    return f"{self._prefix}-{self._count:03d}"


@pytest.fixture
def anyio_backend() -> str:
  return "asyncio"


@pytest.fixture
def clock() -> FakeClock:
  return FakeClock()


@pytest.fixture
def store(clock: FakeClock) -> InMemoryStore:
  return InMemoryStore(clock)


@pytest.fixture
def repo() -> InMemoryJobsRepo:
  return InMemoryJobsRepo()


@pytest.fixture
def queue(repo: InMemoryJobsRepo, store: InMemoryStore, clock: FakeClock) -> JobQueue:
  return JobQueue(repo, store, clock=clock, id_factory=SequentialIds())


@pytest.fixture
def cache(store: InMemoryStore) -> GenerationCache:
  return GenerationCache(store)


@pytest.fixture
def rate_limiter(store: InMemoryStore, clock: FakeClock) -> FixedWindowRateLimiter:
  return FixedWindowRateLimiter(store, window_seconds=3600, clock=clock)


@pytest.fixture
def settings():
  return replace(get_settings(), cron_secret=CRON_SECRET, rate_limit_per_window=3)
