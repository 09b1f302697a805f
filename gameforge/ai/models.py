"""Request and result types for one game generation run."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Annotated, Any, Literal

import msgspec

from gameforge.ai.providers.base import TokenUsage
from gameforge.jobs.models import ArtStyle, Difficulty, JobPayload, JobRecord, TemplateKind

DEFAULT_DIFFICULTY: Difficulty = "medium"
DEFAULT_STYLE: ArtStyle = "cartoon"

_DIFFICULTY_MULTIPLIER: dict[str, float] = {"easy": 0.8, "medium": 1.0, "hard": 1.2}


@dataclass(frozen=True)
class GenerationRequest:
  """Everything the orchestrator needs to build one game."""

  template: TemplateKind | str
  theme: str
  player_description: str
  difficulty: str
  user_id: str
  mechanics: list[str] = field(default_factory=list)
  enemies: list[str] = field(default_factory=list)
  style: str = DEFAULT_STYLE
  prompt: str | None = None

  @classmethod
  def from_payload(cls, payload: JobPayload, *, fallback_user_id: str) -> GenerationRequest:
    """Derive a request from a submission, filling gaps in its config from the prompt."""
    config = payload.config
    return cls(
      template=payload.template,
      theme=config.theme or payload.prompt,
      player_description=config.player_description or payload.prompt,
      difficulty=config.difficulty or DEFAULT_DIFFICULTY,
      user_id=payload.user_id or fallback_user_id,
      mechanics=list(config.mechanics),
      enemies=list(config.enemies),
      style=config.style or DEFAULT_STYLE,
      prompt=payload.prompt,
    )

  @classmethod
  def from_job(cls, record: JobRecord) -> GenerationRequest:
    return cls.from_payload(record.to_payload(), fallback_user_id=f"job:{record.id}")


def estimate_generation_time(request: GenerationRequest) -> int:
  """Rough wall-clock estimate in seconds, used for client progress hints."""
  seconds = 30.0
  seconds += max(1, len(request.enemies)) * 10
  seconds += len(request.mechanics) * 5
  seconds *= _DIFFICULTY_MULTIPLIER.get(request.difficulty, 1.0)
  return math.ceil(seconds)


class GameControls(msgspec.Struct):
  movement: Annotated[str, msgspec.Meta(min_length=1)]
  jump: str | None = None
  action: str | None = None


class GameMetadata(msgspec.Struct, rename="camel"):
  """Structured summary the model returns for a generated game."""

  title: Annotated[str, msgspec.Meta(min_length=1, description="Descriptive game title")]
  description: Annotated[str, msgspec.Meta(min_length=1, description="One or two sentence summary")]
  difficulty: Literal["easy", "medium", "hard"]
  estimated_play_time: Annotated[str, msgspec.Meta(min_length=1, description="For example '5-10 minutes'")]
  controls: GameControls


@dataclass(frozen=True)
class UsageReport:
  usage: TokenUsage
  estimated_cost: float

  def to_dict(self) -> dict[str, Any]:
    return {
      "inputTokens": self.usage.input_tokens,
      "outputTokens": self.usage.output_tokens,
      "totalTokens": self.usage.total_tokens,
      "estimatedCost": self.estimated_cost,
    }


@dataclass(frozen=True)
class GeneratedCode:
  code: str
  metadata: GameMetadata
  usage: UsageReport


@dataclass(frozen=True)
class GeneratedSprite:
  url: str
  revised_prompt: str | None = None
  size: str = "1024x1024"
  prompt: str | None = None


@dataclass(frozen=True)
class SpriteSet:
  player: GeneratedSprite
  background: GeneratedSprite
  enemies: list[GeneratedSprite] = field(default_factory=list)

  def to_dict(self) -> dict[str, Any]:
    return {"playerSprite": self.player.url, "background": self.background.url, "enemySprites": [enemy.url for enemy in self.enemies]}

  @classmethod
  def from_dict(cls, data: dict[str, Any]) -> SpriteSet:
    return cls(
      player=GeneratedSprite(url=data["playerSprite"]),
      background=GeneratedSprite(url=data["background"]),
      enemies=[GeneratedSprite(url=url) for url in data.get("enemySprites", [])],
    )


@dataclass(frozen=True)
class GenerationResult:
  """Descriptor of a finished generation; immutable once written to the job."""

  artifact_locator: str
  download_url: str
  package_size: int
  assets: SpriteSet
  metadata: GameMetadata
  usage: UsageReport
  template: str
  theme: str
  generated_at: str
  duration_ms: int

  def to_dict(self) -> dict[str, Any]:
    return {
      "artifactLocator": self.artifact_locator,
      "downloadUrl": self.download_url,
      "packageSize": self.package_size,
      "assets": self.assets.to_dict(),
      "metadata": {**msgspec.to_builtins(self.metadata), "template": self.template, "theme": self.theme, "generatedAt": self.generated_at},
      "usage": self.usage.to_dict(),
      "timing": {"durationMs": self.duration_ms},
    }
