"""End-to-end route tests against in-memory store, ledger, and orchestrator doubles."""

from __future__ import annotations

import pytest
from httpx import ASGITransport, AsyncClient

from gameforge.ai.models import GameControls, GameMetadata, GeneratedSprite, GenerationRequest, GenerationResult, SpriteSet, UsageReport
from gameforge.ai.providers.base import GeneratedImage, TokenUsage
from gameforge.ai.visuals import VisualGenerator
from gameforge.api.deps import get_services
from gameforge.config import get_settings
from gameforge.jobs.models import JobStatus
from gameforge.jobs.worker import JobWorker
from gameforge.main import app
from gameforge.services.container import Services
from gameforge.services.health import HealthChecker
from gameforge.storage.artifacts import StoredPackage


CRON_SECRET = "test-cron-secret"
AUTH = {"Authorization": f"Bearer {CRON_SECRET}"}


class StubOrchestrator:
  async def generate(self, request: GenerationRequest, *, job_id: str | None = None) -> GenerationResult:
    return GenerationResult(
      artifact_locator=f"gs://packages/{job_id}.zip",
      download_url=f"http://test/api/download/{job_id}",
      package_size=4,
      assets=SpriteSet(player=GeneratedSprite(url="https://images.test/p.png"), background=GeneratedSprite(url="https://images.test/b.png")),
      metadata=GameMetadata(title="Lava Knight", description="Climb.", difficulty="medium", estimated_play_time="5 minutes", controls=GameControls(movement="Arrows")),
      usage=UsageReport(usage=TokenUsage(1, 1), estimated_cost=0.0),
      template=str(request.template.value),
      theme=request.theme,
      generated_at="2024-01-01T12:00:00+00:00",
      duration_ms=10,
    )


class RecordingImages:
  def __init__(self) -> None:
    self.prompts: list[str] = []

  async def generate_image(self, prompt: str, *, size: str = "1024x1024", quality: str = "standard") -> GeneratedImage:
    self.prompts.append(prompt)
    return GeneratedImage(url=f"https://images.test/{len(self.prompts)}.png", revised_prompt=prompt.upper())


async def _no_sleep(_: float) -> None:
  return None


class MemoryPackageStorage:
  def __init__(self) -> None:
    self.objects: dict[str, bytes] = {}

  async def ensure_bucket(self) -> None:
    return None

  async def store_package(self, data: bytes, job_id: str, user_id: str) -> StoredPackage:
    locator = f"gs://packages/{job_id}.zip"
    self.objects[locator] = data
    return StoredPackage(locator=locator, download_url=f"http://test/api/download/{job_id}", size=len(data))

  async def load_package(self, locator: str) -> bytes | None:
    return self.objects.get(locator)


@pytest.fixture
def services(settings, store, cache, rate_limiter, queue) -> Services:
  return Services(
    settings=settings,
    store=store,
    cache=cache,
    rate_limiter=rate_limiter,
    queue=queue,
    worker=JobWorker(queue=queue, orchestrator=StubOrchestrator(), settings=settings, cache=cache),
    package_storage=MemoryPackageStorage(),
    assets=VisualGenerator(RecordingImages(), max_attempts=1, sleep=_no_sleep),
    health=HealthChecker(store=store),
  )


@pytest.fixture
async def client(services, settings):
  app.dependency_overrides[get_services] = lambda: services
  app.dependency_overrides[get_settings] = lambda: settings
  async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as async_client:
    yield async_client
  app.dependency_overrides.clear()


@pytest.mark.anyio
async def test_health_reports_each_dependency(client) -> None:
  response = await client.get("/health")

  assert response.status_code == 200
  body = response.json()
  assert body["status"] == "degraded"
  checks = {check["service"]: check for check in body["checks"]}
  assert checks["redis"]["status"] == "healthy"
  assert checks["redis"]["latencyMs"] >= 0
  assert checks["database"]["status"] == "degraded"
  assert checks["openai"]["status"] == "degraded"
  assert response.headers["cache-control"] == "no-store"
  assert response.headers["x-request-id"]


@pytest.mark.anyio
async def test_health_is_503_when_the_store_is_down(client, store) -> None:
  store.available = False

  response = await client.get("/health")

  assert response.status_code == 503
  body = response.json()
  assert body["status"] == "unhealthy"
  redis = next(check for check in body["checks"] if check["service"] == "redis")
  assert redis["status"] == "unhealthy"
  assert "connection refused" in redis["message"]


@pytest.mark.anyio
async def test_submit_and_poll_job(client) -> None:
  response = await client.post("/api/queue", json={"prompt": "A knight on a volcano", "template": "Platformer", "userId": "u1", "priority": 2})

  assert response.status_code == 200
  body = response.json()
  assert body["success"] is True
  job_id = body["jobId"]

  status = await client.get(f"/api/queue/{job_id}")
  assert status.status_code == 200
  job = status.json()["job"]
  assert job["id"] == job_id
  assert job["status"] == "PENDING"
  assert job["template"] == "platformer"
  assert job["priority"] == 2
  assert "completedAt" not in job


@pytest.mark.anyio
@pytest.mark.parametrize(
  "body",
  [
    {"template": "platformer"},
    {"prompt": "A knight"},
    {"prompt": "A knight", "template": "strategy"},
    {"prompt": "A knight", "template": "platformer", "priority": 42},
    {"prompt": "A knight", "template": "platformer", "priority": "high"},
    {"prompt": "A knight", "template": "platformer", "config": {"difficulty": "brutal"}},
  ],
)
async def test_submit_rejects_invalid_bodies(client, repo, body) -> None:
  response = await client.post("/api/queue", json=body)

  assert response.status_code == 400
  payload = response.json()
  assert payload["success"] is False
  assert payload["error"]["message"]
  assert repo.jobs == {}


@pytest.mark.anyio
async def test_unknown_job_is_404(client) -> None:
  response = await client.get("/api/queue/does-not-exist")

  assert response.status_code == 404
  assert response.json()["error"]["message"] == "Job not found."


@pytest.mark.anyio
async def test_queue_stats(client) -> None:
  await client.post("/api/queue", json={"prompt": "first game", "template": "puzzle"})
  await client.post("/api/queue", json={"prompt": "second game", "template": "puzzle"})

  response = await client.get("/api/queue")

  assert response.json()["stats"] == {"pending": 2, "processing": 0, "recentJobs": 2}


@pytest.mark.anyio
async def test_store_outage_on_submit_returns_503(client, store) -> None:
  store.available = False

  response = await client.post("/api/queue", json={"prompt": "A knight", "template": "platformer"})

  assert response.status_code == 503
  assert response.json()["error"]["code"] == "STORE_UNAVAILABLE"


@pytest.mark.anyio
@pytest.mark.parametrize("headers", [{}, {"Authorization": "Bearer wrong"}, {"Authorization": CRON_SECRET}])
async def test_cron_routes_require_secret(client, headers) -> None:
  for path in ("/api/cron", "/api/cron/worker", "/api/cron/cleanup"):
    response = await client.get(path, headers=headers)
    assert response.status_code == 401
    assert response.json()["error"]["message"] == "Unauthorized"


@pytest.mark.anyio
async def test_cron_worker_processes_one_job(client, repo) -> None:
  first = (await client.post("/api/queue", json={"prompt": "first game", "template": "shooter", "priority": 1})).json()["jobId"]
  second = (await client.post("/api/queue", json={"prompt": "second game", "template": "shooter", "priority": 9})).json()["jobId"]

  response = await client.get("/api/cron/worker", headers=AUTH)

  assert response.status_code == 200
  assert response.json()["processed"] is True
  assert repo.jobs[first].status == JobStatus.COMPLETED
  assert repo.jobs[second].status == JobStatus.PENDING

  job = (await client.get(f"/api/queue/{first}")).json()["job"]
  assert job["resultRef"] == f"gs://packages/{first}.zip"
  assert job["result"]["metadata"]["title"] == "Lava Knight"


@pytest.mark.anyio
async def test_cron_worker_on_empty_queue(client) -> None:
  response = await client.get("/api/cron/worker", headers=AUTH)

  assert response.json()["processed"] is False
  assert response.json()["timestamp"]


@pytest.mark.anyio
async def test_cleanup_fails_stale_jobs(client, queue, repo, clock) -> None:
  job_id = (await client.post("/api/queue", json={"prompt": "stuck game", "template": "racing"})).json()["jobId"]
  await queue.dequeue()
  clock.advance(301)

  response = await client.get("/api/cron/cleanup", headers=AUTH)

  assert response.json()["clearedJobs"] == 1
  assert repo.jobs[job_id].status == JobStatus.FAILED
  assert repo.jobs[job_id].error_message.startswith("Job timeout")


@pytest.mark.anyio
async def test_combined_cron_sweeps_then_processes(client) -> None:
  await client.post("/api/queue", json={"prompt": "queued game", "template": "racing"})

  response = await client.get("/api/cron", headers=AUTH)

  assert response.status_code == 200
  assert response.json()["processed"] is True
  assert response.json()["clearedJobs"] == 0


@pytest.mark.anyio
async def test_generate_queues_then_dedups_then_serves_cache(client) -> None:
  body = {"prompt": "A knight climbing a volcano", "template": "platformer", "userId": "player-1"}

  queued = (await client.post("/api/generate", json=body)).json()
  assert queued["status"] == "queued"
  assert queued["estimatedTimeSeconds"] > 0
  assert queued["rateLimit"]["remaining"] == 2

  repeat = (await client.post("/api/generate", json=body)).json()
  assert repeat["status"] == "in_flight"
  assert repeat["jobId"] == queued["jobId"]

  await client.get("/api/cron/worker", headers=AUTH)

  cached = (await client.post("/api/generate", json={**body, "userId": "player-2", "prompt": "a knight  climbing a VOLCANO"})).json()
  assert cached["status"] == "cached"
  assert cached["cacheHit"] is True
  assert cached["jobId"] == queued["jobId"]
  assert cached["result"]["downloadUrl"].endswith(queued["jobId"])


@pytest.mark.anyio
async def test_generate_enforces_rate_limit(client) -> None:
  for index in range(3):
    response = await client.post("/api/generate", json={"prompt": f"Distinct game idea {index}", "template": "puzzle", "userId": "busy"})
    assert response.status_code == 200

  blocked = await client.post("/api/generate", json={"prompt": "One game too many", "template": "puzzle", "userId": "busy"})

  assert blocked.status_code == 429
  error = blocked.json()["error"]
  assert error["code"] == "RATE_LIMIT_EXCEEDED"
  assert error["details"]["remaining"] == 0
  assert blocked.headers["x-ratelimit-remaining"] == "0"


@pytest.mark.anyio
async def test_generate_rate_limits_anonymous_callers_by_address(client) -> None:
  headers = {"x-forwarded-for": "203.0.113.7, 10.0.0.1"}
  for index in range(3):
    await client.post("/api/generate", json={"prompt": f"Anonymous game idea {index}", "template": "puzzle"}, headers=headers)

  blocked = await client.post("/api/generate", json={"prompt": "Anonymous game idea 9", "template": "puzzle"}, headers=headers)
  other = await client.post("/api/generate", json={"prompt": "Anonymous game idea 9", "template": "puzzle"}, headers={"x-forwarded-for": "198.51.100.2"})

  assert blocked.status_code == 429
  assert other.status_code == 200


@pytest.mark.anyio
async def test_generate_rejects_short_prompt(client) -> None:
  response = await client.post("/api/generate", json={"prompt": "tiny", "template": "platformer"})

  assert response.status_code == 400
  assert response.json()["error"]["code"] == "VALIDATION_ERROR"


@pytest.mark.anyio
async def test_generate_survives_cache_outage(client, store) -> None:
  store.failing.update({"get", "consume_fixed_window", "set_if_absent"})

  response = await client.post("/api/generate", json={"prompt": "A knight climbing a volcano", "template": "platformer", "userId": "u"})

  assert response.status_code == 200
  assert response.json()["status"] == "queued"


@pytest.mark.anyio
async def test_cache_stats_and_privileged_clear(client, cache) -> None:
  await client.post("/api/generate", json={"prompt": "A knight climbing a volcano", "template": "platformer", "userId": "u"})

  stats = await client.get("/api/cache")
  assert stats.status_code == 200
  assert set(stats.json()["stats"]) == {"totalKeys", "memoryUsage", "hitRate"}

  assert (await client.delete("/api/cache")).status_code == 401

  cleared = await client.delete("/api/cache", params={"pattern": "user:gen:*"}, headers=AUTH)
  assert cleared.status_code == 200
  assert cleared.json()["deleted"] == 1


@pytest.mark.anyio
async def test_download_completed_package(client, services) -> None:
  job_id = (await client.post("/api/queue", json={"prompt": "downloadable game", "template": "platformer"})).json()["jobId"]

  assert (await client.get(f"/api/download/{job_id}")).status_code == 404

  job = await services.queue.dequeue()
  locator = f"gs://packages/{job.id}.zip"
  services.package_storage.objects[locator] = b"PK\x03\x04"
  await services.queue.complete(job.id, locator)

  response = await client.get(f"/api/download/{job_id}")
  assert response.status_code == 200
  assert response.headers["content-type"] == "application/zip"
  assert response.content == b"PK\x03\x04"


@pytest.mark.anyio
async def test_incoming_request_id_is_echoed(client) -> None:
  response = await client.get("/api/queue", headers={"x-request-id": "abc-123"})

  assert response.headers["x-request-id"] == "abc-123"


@pytest.mark.anyio
async def test_generate_single_sprite(client, services) -> None:
  response = await client.post("/api/assets", json={"subject": "a lava golem", "style": "pixel-art", "background": "transparent", "userId": "artist"})

  assert response.status_code == 200
  assert response.headers["x-ratelimit-remaining"] == "2"
  sprite = response.json()["sprite"]
  assert sprite["url"] == "https://images.test/1.png"
  assert "8-bit pixel art" in sprite["prompt"]
  assert "Subject: a lava golem. transparent background." in sprite["prompt"]
  assert sprite["size"] == "1024x1024"
  assert sprite["timestamp"]


@pytest.mark.anyio
async def test_generate_template_asset_set(client) -> None:
  response = await client.post("/api/assets", json={"template": "Platformer", "style": "cartoon"})

  assert response.status_code == 200
  body = response.json()
  assert body["template"] == "platformer"
  assert body["count"] == 4
  assert set(body["assets"]) == {"player", "enemy", "platform", "collectible"}


@pytest.mark.anyio
@pytest.mark.parametrize(
  ("body", "message"),
  [
    ({"template": "custom"}, "Template 'custom' has no predefined asset set."),
    ({"template": "strategy"}, "Template must be one of: platformer, puzzle, shooter, racing, custom"),
    ({"subject": "ox"}, "Subject must be at least 3 characters"),
    ({}, "Subject must be at least 3 characters"),
  ],
)
async def test_asset_requests_are_validated(client, body, message) -> None:
  response = await client.post("/api/assets", json=body)

  assert response.status_code == 400
  assert response.json()["error"]["message"] == message


@pytest.mark.anyio
async def test_asset_presets_and_template_requirements(client) -> None:
  presets = (await client.get("/api/assets")).json()
  assert presets["styles"] == ["pixel-art", "cartoon", "2d-vector", "hand-drawn"]
  assert "human" in presets["presets"]["player"]

  required = (await client.get("/api/assets", params={"template": "shooter"})).json()
  assert required["template"] == "shooter"
  assert required["requiredAssets"] == ["player", "enemy", "bullet"]


@pytest.mark.anyio
async def test_rejected_asset_requests_do_not_spend_the_window(client) -> None:
  for _ in range(4):
    assert (await client.post("/api/assets", json={"template": "custom", "userId": "artist"})).status_code == 400

  response = await client.post("/api/assets", json={"subject": "a lava golem", "userId": "artist"})
  assert response.status_code == 200
  assert response.headers["x-ratelimit-remaining"] == "2"


@pytest.mark.anyio
async def test_asset_requests_are_rate_limited(client) -> None:
  for _ in range(3):
    assert (await client.post("/api/assets", json={"subject": "a lava golem", "userId": "artist"})).status_code == 200

  blocked = await client.post("/api/assets", json={"subject": "a lava golem", "userId": "artist"})
  assert blocked.status_code == 429
  assert blocked.json()["error"]["code"] == "RATE_LIMIT_EXCEEDED"
