"""Sprite and background generation."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from gameforge.ai.backoff import RetryError, retry_with_backoff
from gameforge.ai.models import GeneratedSprite, GenerationRequest, SpriteSet
from gameforge.ai.prompts import asset_prompt, background_prompt, sprite_prompt, template_asset_subjects
from gameforge.ai.providers.base import ImageGenerator
from gameforge.cache.generation_cache import GenerationCache
from gameforge.core.errors import GenerationFailure, is_retryable
from gameforge.jobs.models import TemplateKind
from gameforge.utils.best_effort import best_effort
from gameforge.utils.concurrency import gather_or_cancel

logger = logging.getLogger(__name__)

SPRITE_SIZE = "1024x1024"
ASSET_BATCH_SIZE = 3
ASSET_BATCH_PAUSE_SECONDS = 1.0


class VisualGenerator:
  """Generate game art: per-request sprite sets, standalone sprites, and template asset sets."""

  def __init__(
    self,
    images: ImageGenerator,
    *,
    cache: GenerationCache | None = None,
    max_attempts: int = 3,
    backoff_base_seconds: float = 1.0,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
  ) -> None:
    self._images = images
    self._cache = cache
    self._max_attempts = max_attempts
    self._backoff_base_seconds = backoff_base_seconds
    self._sleep = sleep

  async def _generate(self, label: str, prompt: str, *, size: str = SPRITE_SIZE, quality: str = "standard") -> GeneratedSprite:
    try:
      image = await retry_with_backoff(
        lambda: self._images.generate_image(prompt, size=size, quality=quality),
        max_attempts=self._max_attempts,
        base_delay=self._backoff_base_seconds,
        should_retry=is_retryable,
        sleep=self._sleep,
        label=label,
      )
    except RetryError as exc:
      raise GenerationFailure(f"Failed to generate {label} after {exc.attempts}/{self._max_attempts} attempts. Reason: {exc.last_error}", attempts=exc.attempts) from exc.last_error
    logger.info("Generated %s", label)
    return GeneratedSprite(url=image.url, revised_prompt=image.revised_prompt, size=size, prompt=prompt)

  def _asset_key(self, request: GenerationRequest) -> tuple[str, ...]:
    return (request.theme.strip().lower(), request.style, request.player_description.strip().lower(), *sorted(enemy.strip().lower() for enemy in request.enemies))

  async def generate(self, request: GenerationRequest) -> SpriteSet:
    if self._cache is not None:
      cached = await self._cache.get_assets(*self._asset_key(request))
      if cached.hit:
        return SpriteSet.from_dict(cached.value)

    logger.info("Generating sprite set (%s enemies, style=%s)", len(request.enemies), request.style)
    player, background, *enemies = await gather_or_cancel(
      self._generate("player sprite", sprite_prompt("player character", request.theme, request.player_description, request.style)),
      self._generate("background", background_prompt(request.theme, request.style)),
      *(self._generate(f"enemy sprite {index}", sprite_prompt("enemy character", request.theme, enemy, request.style)) for index, enemy in enumerate(request.enemies)),
    )
    sprites = SpriteSet(player=player, background=background, enemies=list(enemies))

    if self._cache is not None:
      await best_effort("asset cache population", self._cache.put_assets(sprites.to_dict(), *self._asset_key(request)))
    return sprites

  async def generate_sprite(self, subject: str, *, style: str = "cartoon", size: str = SPRITE_SIZE, quality: str = "standard", background: str = "white") -> GeneratedSprite:
    """Generate one standalone game asset."""
    return await self._generate(f"sprite '{subject[:40]}'", asset_prompt(subject, style, background), size=size, quality=quality)

  async def generate_asset_set(self, template: TemplateKind, *, style: str = "cartoon") -> dict[str, GeneratedSprite]:
    """Generate a template's standard assets in small batches.

    Individual failures are logged and left out of the result; a GenerationFailure
    is raised only when nothing could be generated.
    """
    subjects = template_asset_subjects(template)
    if not subjects:
      raise ValueError(f"Template '{template.value}' has no predefined asset set.")

    assets: dict[str, GeneratedSprite] = {}
    for start in range(0, len(subjects), ASSET_BATCH_SIZE):
      batch = subjects[start : start + ASSET_BATCH_SIZE]
      outcomes = await asyncio.gather(*(self.generate_sprite(subject, style=style) for _, subject in batch), return_exceptions=True)
      for (key, _), outcome in zip(batch, outcomes, strict=True):
        if isinstance(outcome, Exception):
          logger.error("Asset %s for %s failed: %s", key, template.value, outcome)
          continue
        if isinstance(outcome, BaseException):
          raise outcome
        assets[key] = outcome
      if start + ASSET_BATCH_SIZE < len(subjects):
        await self._sleep(ASSET_BATCH_PAUSE_SECONDS)

    if not assets:
      raise GenerationFailure(f"Failed to generate any {template.value} assets.")
    logger.info("Generated %s/%s %s assets", len(assets), len(subjects), template.value)
    return assets
