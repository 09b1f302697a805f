"""Coordinate one game generation end to end."""

from __future__ import annotations

import logging
import time
from datetime import UTC, datetime

from gameforge.ai.code_generation import CodeGenerator
from gameforge.ai.models import GenerationRequest, GenerationResult
from gameforge.ai.visuals import VisualGenerator
from gameforge.assembly.assembler import AssemblyInput, GameAssembler
from gameforge.assembly.templates import TemplateFiles, TemplateProvider
from gameforge.core.errors import GenerationFailure, TemplateNotFoundError, ValidationError
from gameforge.jobs.models import TemplateKind
from gameforge.storage.artifacts import PackageStorage
from gameforge.utils.concurrency import gather_or_cancel
from gameforge.utils.ids import generate_job_id

logger = logging.getLogger(__name__)

_DIFFICULTIES = ("easy", "medium", "hard")


def validate_request(request: GenerationRequest) -> TemplateKind:
  """Check every rule and raise one ValidationError listing all failures."""
  errors: list[str] = []
  kind: TemplateKind | None = None
  try:
    kind = TemplateKind.parse(request.template)
  except ValueError:
    errors.append(f"Unknown template '{request.template}'")
  if len((request.theme or "").strip()) < 3:
    errors.append("Theme must be at least 3 characters")
  if len((request.player_description or "").strip()) < 10:
    errors.append("Player description must be at least 10 characters")
  if request.difficulty not in _DIFFICULTIES:
    errors.append("Difficulty must be easy, medium, or hard")
  if not (request.user_id or "").strip():
    errors.append("User ID is required")
  if errors or kind is None:
    raise ValidationError(f"Invalid generation request: {'; '.join(errors)}", errors=errors)
  return kind


class GameOrchestrator:
  """Validate, generate code and visuals concurrently, assemble, and store a game package.

  Any step failing aborts the run with a GenerationFailure; partial games are never returned.
  """

  def __init__(
    self,
    *,
    code_generator: CodeGenerator,
    visual_generator: VisualGenerator,
    templates: TemplateProvider,
    assembler: GameAssembler,
    storage: PackageStorage,
    default_template: TemplateKind = TemplateKind.PLATFORMER,
  ) -> None:
    self._code = code_generator
    self._visuals = visual_generator
    self._templates = templates
    self._assembler = assembler
    self._storage = storage
    self._default_template = default_template

  async def _load_template(self, kind: TemplateKind) -> TemplateFiles:
    try:
      return await self._templates.load_template(kind)
    except TemplateNotFoundError as exc:
      if kind == self._default_template:
        raise
      logger.warning("Template %s unavailable, falling back to %s: %s", kind.value, self._default_template.value, exc)
      return await self._templates.load_template(self._default_template)

  async def generate(self, request: GenerationRequest, *, job_id: str | None = None) -> GenerationResult:
    kind = validate_request(request)
    job_id = job_id or generate_job_id()
    started = time.monotonic()
    logger.info("Starting generation for job %s (template=%s, theme=%s)", job_id, kind.value, request.theme)

    try:
      sprites, code, files = await gather_or_cancel(
        self._visuals.generate(request),
        self._code.generate(request),
        self._load_template(kind),
      )
      assembled = await self._assembler.assemble(
        AssemblyInput(
          template=kind,
          files=files,
          code=code.code,
          sprites=sprites,
          metadata=code.metadata,
          theme=request.theme,
          difficulty=request.difficulty,
          author=request.user_id,
          mechanics=list(request.mechanics),
          enemies=list(request.enemies),
        )
      )
      archive = self._assembler.create_zip(assembled)
      stored = await self._storage.store_package(archive, job_id, request.user_id)
    except GenerationFailure:
      logger.error("Generation failed for job %s", job_id)
      raise
    except Exception as exc:  # noqa: BLE001
      logger.error("Generation failed for job %s: %s", job_id, exc, exc_info=True)
      raise GenerationFailure(f"Game generation failed: {exc}") from exc

    duration_ms = int((time.monotonic() - started) * 1000)
    logger.info("Generation complete for job %s (%s bytes, %sms)", job_id, stored.size, duration_ms)
    return GenerationResult(
      artifact_locator=stored.locator,
      download_url=stored.download_url,
      package_size=stored.size,
      assets=sprites,
      metadata=code.metadata,
      usage=code.usage,
      template=kind.value,
      theme=request.theme,
      generated_at=datetime.now(UTC).isoformat(),
      duration_ms=duration_ms,
    )
