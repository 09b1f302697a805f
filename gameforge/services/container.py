"""Process-wide service graph, built once at startup and passed explicitly to consumers."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx

from gameforge.ai.client import GenerationClient
from gameforge.ai.code_generation import CodeGenerator
from gameforge.ai.orchestrator import GameOrchestrator
from gameforge.ai.providers.openai_provider import OpenAIImageGenerator, OpenAITextGenerator, build_openai_client
from gameforge.ai.visuals import VisualGenerator
from gameforge.assembly.assembler import GameAssembler
from gameforge.assembly.templates import TemplateProvider
from gameforge.cache.generation_cache import GenerationCache
from gameforge.cache.rate_limit import FixedWindowRateLimiter
from gameforge.cache.store import KeyValueStore, RedisStore
from gameforge.config import Settings
from gameforge.core.database import dispose_engine, get_session_factory
from gameforge.jobs.queue import JobQueue
from gameforge.jobs.worker import JobWorker
from gameforge.services.health import HealthChecker
from gameforge.storage.artifacts import GcsPackageStorage, PackageStorage
from gameforge.storage.postgres_jobs_repo import PostgresJobsRepository

logger = logging.getLogger(__name__)

_DOWNLOAD_TIMEOUT = httpx.Timeout(30.0, connect=10.0)


@dataclass
class Services:
  settings: Settings
  store: KeyValueStore
  cache: GenerationCache
  rate_limiter: FixedWindowRateLimiter
  queue: JobQueue
  worker: JobWorker
  package_storage: PackageStorage
  assets: VisualGenerator
  health: HealthChecker
  http_client: httpx.AsyncClient | None = None

  async def aclose(self) -> None:
    if self.http_client is not None:
      await self.http_client.aclose()
    close = getattr(self.store, "close", None)
    if close is not None:
      await close()
    await dispose_engine()


def build_services(settings: Settings) -> Services:
  """Wire production collaborators: Redis, Postgres, OpenAI, GCS."""
  store = RedisStore.from_url(settings.redis_url, max_connections=settings.redis_max_connections)
  cache = GenerationCache(store)
  queue = JobQueue(PostgresJobsRepository(), store)

  openai_client = build_openai_client(settings.openai_api_key)
  client = GenerationClient(
    OpenAITextGenerator(openai_client, settings.openai_text_model),
    max_attempts=settings.generation_max_retries,
    backoff_base_seconds=settings.generation_backoff_base_seconds,
  )
  http_client = httpx.AsyncClient(timeout=_DOWNLOAD_TIMEOUT, follow_redirects=True)
  package_storage = GcsPackageStorage(settings)
  visuals = VisualGenerator(
    OpenAIImageGenerator(openai_client, settings.openai_image_model),
    cache=cache,
    max_attempts=settings.generation_max_retries,
    backoff_base_seconds=settings.generation_backoff_base_seconds,
  )
  orchestrator = GameOrchestrator(
    code_generator=CodeGenerator(client, model=settings.openai_text_model, min_code_length=settings.min_code_length, engine_marker=settings.engine_marker),
    visual_generator=visuals,
    templates=TemplateProvider(settings.template_dir),
    assembler=GameAssembler(http_client),
    storage=package_storage,
    default_template=settings.default_template,
  )
  worker = JobWorker(queue=queue, orchestrator=orchestrator, settings=settings, cache=cache)
  logger.info("Services built (text model=%s, image model=%s)", settings.openai_text_model, settings.openai_image_model)
  return Services(
    settings=settings,
    store=store,
    cache=cache,
    rate_limiter=FixedWindowRateLimiter(store, window_seconds=settings.rate_limit_window_seconds),
    queue=queue,
    worker=worker,
    package_storage=package_storage,
    assets=visuals,
    health=HealthChecker(store=store, session_factory=get_session_factory(), openai_client=openai_client),
    http_client=http_client,
  )
