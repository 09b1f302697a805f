"""Game code and metadata generation through the retrying generation client."""

from __future__ import annotations

import logging
import re

import msgspec

from gameforge.ai.client import GenerationClient
from gameforge.ai.cost import estimate_cost
from gameforge.ai.models import GameMetadata, GeneratedCode, GenerationRequest, UsageReport
from gameforge.ai.prompts import METADATA_SYSTEM_PROMPT, code_prompt, metadata_prompt, system_prompt_for
from gameforge.core.errors import ContentError
from gameforge.jobs.models import TemplateKind

logger = logging.getLogger(__name__)

_CODE_BLOCK = re.compile(r"```(?:javascript|js|typescript|ts)?\s*([\s\S]*?)```", re.IGNORECASE)


def extract_code_block(content: str) -> str:
  """Return the first fenced code block, or the whole response when there is none."""
  match = _CODE_BLOCK.search(content)
  if match and match.group(1).strip():
    return match.group(1).strip()
  return content.strip()


class CodeGenerator:
  """Produce validated game source plus structured metadata for a request."""

  def __init__(self, client: GenerationClient, *, model: str, min_code_length: int = 100, engine_marker: str = "Phaser") -> None:
    self._client = client
    self._model = model
    self._min_code_length = min_code_length
    self._engine_marker = engine_marker

  def _validate_code(self, content: str) -> None:
    code = extract_code_block(content)
    if self._engine_marker not in code:
      raise ContentError(f"Generated code does not reference {self._engine_marker}.")
    if len(code) < self._min_code_length:
      raise ContentError(f"Generated code is unexpectedly short ({len(code)} < {self._min_code_length} characters).")

  @staticmethod
  def _validate_metadata(content: str) -> None:
    try:
      msgspec.json.decode(content.encode("utf-8"), type=GameMetadata)
    except msgspec.ValidationError as exc:
      raise ContentError(f"Metadata does not match the expected shape: {exc}") from exc
    except msgspec.DecodeError as exc:
      raise ContentError(f"Failed to parse metadata JSON: {exc}") from exc

  async def generate(self, request: GenerationRequest) -> GeneratedCode:
    template = TemplateKind.parse(request.template)
    logger.info("Generating %s game code (theme=%s)", template.value, request.theme)
    code_completion = await self._client.request_completion(code_prompt(request), system_prompt_for(template), validate=self._validate_code, label="game code")
    code = extract_code_block(code_completion.content)

    metadata_completion = await self._client.request_completion(
      metadata_prompt(request, code),
      METADATA_SYSTEM_PROMPT,
      validate=self._validate_metadata,
      json_mode=True,
      label="game metadata",
    )
    metadata = msgspec.json.decode(metadata_completion.content.encode("utf-8"), type=GameMetadata)

    usage = code_completion.usage + metadata_completion.usage
    report = UsageReport(usage=usage, estimated_cost=estimate_cost(usage, self._model))
    logger.info("Generated game code '%s' (%s tokens, $%.6f)", metadata.title, usage.total_tokens, report.estimated_cost)
    return GeneratedCode(code=code, metadata=metadata, usage=report)
