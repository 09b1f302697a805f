import logging
from datetime import UTC, datetime
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response

from gameforge.ai.models import GeneratedSprite
from gameforge.ai.prompts import ASSET_STYLE_DESCRIPTIONS, SPRITE_PRESETS, template_asset_subjects
from gameforge.api.deps import enforce_rate_limit, get_services
from gameforge.api.models import AssetPresetsResponse, AssetRequest, AssetSetResponse, SpriteResponse, SpriteView, TemplateAssetsResponse
from gameforge.core.errors import GenerationFailure, ValidationError
from gameforge.jobs.models import TemplateKind
from gameforge.services.container import Services

router = APIRouter()
logger = logging.getLogger("gameforge.api.routes.assets")

MIN_SUBJECT_LENGTH = 3


def _template_or_400(raw: str) -> TemplateKind:
  try:
    return TemplateKind.parse(raw)
  except ValueError as exc:
    allowed = ", ".join(kind.value for kind in TemplateKind)
    raise ValidationError(f"Template must be one of: {allowed}") from exc


def _view(sprite: GeneratedSprite, timestamp: datetime) -> SpriteView:
  return SpriteView(url=sprite.url, prompt=sprite.prompt, revised_prompt=sprite.revised_prompt, size=sprite.size, timestamp=timestamp)


@router.post("", response_model=AssetSetResponse | SpriteResponse, response_model_exclude_none=True)
async def generate_assets(
  body: AssetRequest, request: Request, response: Response, services: Annotated[Services, Depends(get_services)]
) -> AssetSetResponse | SpriteResponse:
  """Generate a template's asset set, or a single sprite for a free-form subject."""
  template = _template_or_400(body.template) if body.template is not None else None
  subject = (body.subject or "").strip()
  if template is None and len(subject) < MIN_SUBJECT_LENGTH:
    raise ValidationError(f"Subject must be at least {MIN_SUBJECT_LENGTH} characters")
  if template is not None and not template_asset_subjects(template):
    raise ValidationError(f"Template '{template.value}' has no predefined asset set.")

  await enforce_rate_limit(request, response, services, body.user_id)

  try:
    if template is not None:
      assets = await services.assets.generate_asset_set(template, style=body.style)
      now = datetime.now(UTC)
      return AssetSetResponse(template=template.value, assets={key: _view(sprite, now) for key, sprite in assets.items()}, count=len(assets))

    sprite = await services.assets.generate_sprite(subject, style=body.style, size=body.size, quality=body.quality, background=body.background)
    return SpriteResponse(sprite=_view(sprite, datetime.now(UTC)))
  except GenerationFailure as exc:
    logger.error("Asset generation failed: %s", exc)
    raise HTTPException(status_code=502, detail="Failed to generate assets.") from exc


@router.get("", response_model=AssetPresetsResponse | TemplateAssetsResponse)
async def list_asset_presets(template: Annotated[str | None, Query()] = None) -> AssetPresetsResponse | TemplateAssetsResponse:
  """List sprite presets and styles, or the assets a given template needs."""
  if template is None:
    return AssetPresetsResponse(presets=SPRITE_PRESETS, styles=list(ASSET_STYLE_DESCRIPTIONS))
  kind = _template_or_400(template)
  return TemplateAssetsResponse(template=kind.value, required_assets=[key for key, _ in template_asset_subjects(kind)])
