from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr
from pydantic.alias_generators import to_camel

from gameforge.jobs.models import JobRecord, JobStatus, QueueStats


class ApiModel(BaseModel):
  """Base for API bodies: snake_case in Python, camelCase on the wire."""

  model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class QueueSubmitRequest(ApiModel):
  """Payload for submitting a generation job to the queue."""

  prompt: StrictStr = Field(min_length=1, max_length=2000, description="Natural-language game description.")
  template: StrictStr = Field(min_length=1, description="platformer, puzzle, shooter, racing, or custom (case-insensitive).")
  user_id: StrictStr | None = Field(default=None, min_length=1)
  priority: StrictInt | None = Field(default=None, description="Lower values are served first (0-10, default 5).")
  config: dict[str, Any] | None = Field(default=None, description="Optional generation options (schema version 1).")
  model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")


class GenerateRequest(QueueSubmitRequest):
  prompt: StrictStr = Field(min_length=10, max_length=500, description="Natural-language game description.")


class QueueSubmitResponse(ApiModel):
  success: bool = True
  job_id: str


class JobView(ApiModel):
  id: str
  status: JobStatus
  template: str
  priority: int
  created_at: datetime
  started_at: datetime | None = None
  completed_at: datetime | None = None
  result_ref: str | None = None
  result: dict[str, Any] | None = None
  error: str | None = None

  @classmethod
  def from_record(cls, record: JobRecord) -> JobView:
    return cls(
      id=record.id,
      status=record.status,
      template=record.template.value,
      priority=record.priority,
      created_at=record.created_at,
      started_at=record.started_at,
      completed_at=record.completed_at,
      result_ref=record.result_ref,
      result=record.result_json,
      error=record.error_message,
    )


class JobStatusResponse(ApiModel):
  success: bool = True
  job: JobView


class QueueStatsView(ApiModel):
  pending: int
  processing: int
  recent_jobs: int

  @classmethod
  def from_stats(cls, stats: QueueStats) -> QueueStatsView:
    return cls(pending=stats.pending, processing=stats.processing, recent_jobs=stats.recent_jobs)


class QueueStatsResponse(ApiModel):
  success: bool = True
  stats: QueueStatsView


class WorkerTickResponse(ApiModel):
  success: bool = True
  processed: bool
  timestamp: datetime


class CleanupResponse(ApiModel):
  success: bool = True
  cleared_jobs: int
  timestamp: datetime


class CronResponse(ApiModel):
  success: bool = True
  processed: bool
  cleared_jobs: int
  timestamp: datetime


class RateLimitView(ApiModel):
  remaining: int
  reset: datetime


class GenerateResponse(ApiModel):
  success: bool = True
  status: Literal["queued", "in_flight", "cached"]
  job_id: str | None = None
  cache_hit: bool = False
  result: dict[str, Any] | None = None
  estimated_time_seconds: int | None = None
  rate_limit: RateLimitView


class CacheStatsView(ApiModel):
  total_keys: int
  memory_usage: int
  hit_rate: float


class CacheStatsResponse(ApiModel):
  success: bool = True
  stats: CacheStatsView


class CacheClearResponse(ApiModel):
  success: bool = True
  deleted: int


AssetStyle = Literal["pixel-art", "cartoon", "2d-vector", "hand-drawn"]


class AssetRequest(ApiModel):
  """Either ``template`` for a template's asset set, or ``subject`` for a single sprite."""

  template: StrictStr | None = Field(default=None, min_length=1)
  subject: StrictStr | None = Field(default=None, max_length=300)
  style: AssetStyle = "cartoon"
  size: Literal["1024x1024", "1024x1792", "1792x1024"] = "1024x1024"
  quality: Literal["standard", "hd"] = "standard"
  background: Literal["transparent", "white", "black"] = "white"
  user_id: StrictStr | None = Field(default=None, min_length=1)
  model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")


class SpriteView(ApiModel):
  url: str
  prompt: str | None = None
  revised_prompt: str | None = None
  size: str
  timestamp: datetime


class SpriteResponse(ApiModel):
  success: bool = True
  sprite: SpriteView


class AssetSetResponse(ApiModel):
  success: bool = True
  template: str
  assets: dict[str, SpriteView]
  count: int


class AssetPresetsResponse(ApiModel):
  success: bool = True
  presets: dict[str, dict[str, str]]
  styles: list[str]


class TemplateAssetsResponse(ApiModel):
  success: bool = True
  template: str
  required_assets: list[str]


class ServiceCheckView(ApiModel):
  service: str
  status: Literal["healthy", "degraded", "unhealthy"]
  message: str | None = None
  latency_ms: float | None = None


class HealthResponse(ApiModel):
  status: Literal["healthy", "degraded", "unhealthy"]
  version: str
  timestamp: datetime
  checks: list[ServiceCheckView]
