"""Generation client: a text collaborator wrapped with retry, backoff, and response validation."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from gameforge.ai.backoff import RetryError, retry_with_backoff
from gameforge.ai.providers.base import TextCompletion, TextGenerator
from gameforge.core.errors import ContentError, GenerationFailure, is_retryable

logger = logging.getLogger(__name__)

# Raises ContentError when a completion is unusable.
ResponseValidator = Callable[[str], None]


class GenerationClient:
  """Request completions with a fixed attempt budget.

  Transient provider errors and content validation failures consume an attempt
  and are retried; anything else fails on the first attempt. Either way the
  caller receives a GenerationFailure that records how many attempts ran.
  """

  def __init__(
    self,
    generator: TextGenerator,
    *,
    max_attempts: int = 3,
    backoff_base_seconds: float = 1.0,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
  ) -> None:
    self._generator = generator
    self.max_attempts = max_attempts
    self._backoff_base_seconds = backoff_base_seconds
    self._sleep = sleep

  async def request_completion(
    self,
    prompt: str,
    system_instructions: str,
    *,
    validate: ResponseValidator | None = None,
    json_mode: bool = False,
    label: str = "completion",
  ) -> TextCompletion:
    async def _attempt() -> TextCompletion:
      completion = await self._generator.generate_text(system_instructions, prompt, json_mode=json_mode)
      if not completion.content.strip():
        raise ContentError(f"Provider returned an empty response while generating {label}.")
      if validate is not None:
        validate(completion.content)
      return completion

    try:
      return await retry_with_backoff(
        _attempt,
        max_attempts=self.max_attempts,
        base_delay=self._backoff_base_seconds,
        should_retry=is_retryable,
        sleep=self._sleep,
        label=label,
      )
    except RetryError as exc:
      message = f"Failed to generate {label} after {exc.attempts}/{self.max_attempts} attempts. Reason: {exc.last_error}"
      raise GenerationFailure(message, attempts=exc.attempts) from exc.last_error
