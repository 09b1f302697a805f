"""Domain models for queued game generation jobs."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

DEFAULT_PRIORITY = 5
MIN_PRIORITY = 0
MAX_PRIORITY = 10
JOB_CONFIG_SCHEMA_VERSION = 1

Difficulty = Literal["easy", "medium", "hard"]
ArtStyle = Literal["pixel-art", "hand-drawn", "realistic", "cartoon"]


class JobStatus(str, Enum):
  """Lifecycle states; COMPLETED and FAILED are terminal."""

  PENDING = "PENDING"
  PROCESSING = "PROCESSING"
  COMPLETED = "COMPLETED"
  FAILED = "FAILED"

  @property
  def is_terminal(self) -> bool:
    return self in (JobStatus.COMPLETED, JobStatus.FAILED)


class TemplateKind(str, Enum):
  """Closed set of game templates a job can target."""

  PLATFORMER = "platformer"
  PUZZLE = "puzzle"
  SHOOTER = "shooter"
  RACING = "racing"
  CUSTOM = "custom"

  @classmethod
  def parse(cls, raw: str | TemplateKind) -> TemplateKind:
    """Resolve a case-insensitive template name, raising ValueError when unknown."""
    if isinstance(raw, cls):
      return raw
    return cls(str(raw).strip().lower())


class JobConfig(BaseModel):
  """Versioned per-job generation options carried in the job's config column."""

  schema_version: Literal[1] = JOB_CONFIG_SCHEMA_VERSION
  theme: str | None = Field(default=None, max_length=200)
  player_description: str | None = Field(default=None, max_length=500)
  difficulty: Difficulty | None = None
  mechanics: list[str] = Field(default_factory=list)
  enemies: list[str] = Field(default_factory=list)
  style: ArtStyle | None = None
  model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")


@dataclass(frozen=True)
class JobPayload:
  """What a producer submits to the queue."""

  prompt: str
  template: TemplateKind
  user_id: str | None = None
  config: JobConfig = field(default_factory=JobConfig)


@dataclass
class JobRecord:
  """Persisted job ledger row."""

  id: str
  prompt: str
  template: TemplateKind
  priority: int
  status: JobStatus
  created_at: datetime
  user_id: str | None = None
  config: JobConfig = field(default_factory=JobConfig)
  started_at: datetime | None = None
  completed_at: datetime | None = None
  result_ref: str | None = None
  result_json: dict[str, Any] | None = None
  error_message: str | None = None

  def to_payload(self) -> JobPayload:
    return JobPayload(prompt=self.prompt, template=self.template, user_id=self.user_id, config=self.config)


@dataclass(frozen=True)
class QueueStats:
  pending: int
  processing: int
  recent_jobs: int
