"""Dependency health checks for the database, Redis and the model provider."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Literal

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from gameforge.cache.store import KeyValueStore

logger = logging.getLogger(__name__)

HealthStatus = Literal["healthy", "degraded", "unhealthy"]


@dataclass(frozen=True)
class ServiceCheck:
  service: str
  status: HealthStatus
  message: str | None = None
  latency_ms: float | None = None


@dataclass(frozen=True)
class HealthReport:
  status: HealthStatus
  timestamp: datetime
  checks: list[ServiceCheck]


def overall_status(checks: list[ServiceCheck]) -> HealthStatus:
  if any(check.status == "unhealthy" for check in checks):
    return "unhealthy"
  if any(check.status == "degraded" for check in checks):
    return "degraded"
  return "healthy"


class HealthChecker:
  """Check every dependency concurrently.

  Store and database failures make the service unhealthy. A missing or failing
  model provider only degrades it, since queued work can still be accepted.
  """

  def __init__(
    self,
    *,
    store: KeyValueStore,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    openai_client: Any | None = None,
    timeout_seconds: float = 5.0,
  ) -> None:
    self._store = store
    self._session_factory = session_factory
    self._openai_client = openai_client
    self._timeout_seconds = timeout_seconds

  async def _timed(self, service: str, call: Callable[[], Awaitable[Any]], *, failure_status: HealthStatus) -> ServiceCheck:
    started = time.perf_counter()
    try:
      await asyncio.wait_for(call(), timeout=self._timeout_seconds)
    except Exception as exc:  # noqa: BLE001
      latency = round((time.perf_counter() - started) * 1000, 2)
      message = str(exc) or type(exc).__name__
      logger.warning("Health check for %s failed: %s", service, message)
      return ServiceCheck(service=service, status=failure_status, message=message, latency_ms=latency)
    return ServiceCheck(service=service, status="healthy", latency_ms=round((time.perf_counter() - started) * 1000, 2))

  async def _ping_database(self) -> None:
    async with self._session_factory() as session:
      await session.execute(text("SELECT 1"))

  async def _check_database(self) -> ServiceCheck:
    if self._session_factory is None:
      return ServiceCheck(service="database", status="degraded", message="Database connection is not configured.")
    return await self._timed("database", self._ping_database, failure_status="unhealthy")

  async def _check_redis(self) -> ServiceCheck:
    return await self._timed("redis", self._store.ping, failure_status="unhealthy")

  async def _check_openai(self) -> ServiceCheck:
    if self._openai_client is None:
      return ServiceCheck(service="openai", status="degraded", message="OpenAI client is not configured.")
    return await self._timed("openai", self._openai_client.models.list, failure_status="degraded")

  async def check(self) -> HealthReport:
    checks = list(await asyncio.gather(self._check_database(), self._check_redis(), self._check_openai()))
    return HealthReport(status=overall_status(checks), timestamp=datetime.now(UTC), checks=checks)
