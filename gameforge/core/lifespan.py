import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager, suppress

from fastapi import FastAPI

from gameforge.config import get_settings
from gameforge.core.logging import initialize_logging
from gameforge.core.migrations import upgrade_database
from gameforge.services.container import build_services


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
  """Initialize logging, build the service graph, and optionally run an embedded worker."""
  settings = get_settings()
  logger = logging.getLogger("gameforge.core.lifespan")
  initialize_logging(settings)

  if settings.migrate_on_startup:
    await upgrade_database()
  services = build_services(settings)
  app.state.services = services

  try:
    await services.package_storage.ensure_bucket()
  except Exception as exc:  # noqa: BLE001
    logger.warning("Failed to ensure artifact bucket at startup: %s", exc)

  stop_event = asyncio.Event()
  worker_task: asyncio.Task[None] | None = None
  if settings.worker_embedded:
    worker_task = asyncio.create_task(services.worker.run(stop_event), name="gameforge-worker")
    logger.info("Embedded worker started")

  logger.info("Startup complete (environment=%s)", settings.environment)
  try:
    yield
  finally:
    stop_event.set()
    if worker_task is not None:
      try:
        await asyncio.wait_for(worker_task, timeout=settings.worker_error_interval_seconds)
      except TimeoutError:
        # A job is mid-flight; the stale sweep will fail it.
        worker_task.cancel()
        with suppress(asyncio.CancelledError):
          await worker_task
    await services.aclose()
    logger.info("Shutdown complete")
