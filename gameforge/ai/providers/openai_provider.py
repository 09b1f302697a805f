"""OpenAI SDK adapters for text and image generation."""

from __future__ import annotations

import logging
from typing import Final

from openai import APIConnectionError, APIStatusError, AsyncOpenAI, OpenAIError

from gameforge.ai.providers.base import GeneratedImage, ImageGenerator, TextCompletion, TextGenerator, TokenUsage
from gameforge.core.errors import ProviderError, TransientProviderError

logger = logging.getLogger(__name__)

_TRANSIENT_HINTS: Final[tuple[str, ...]] = ("rate limit", "timeout", "timed out", "overloaded")


def classify_provider_error(exc: Exception) -> ProviderError:
  """Map an SDK exception onto the retryable/non-retryable provider taxonomy."""
  message = str(exc) or exc.__class__.__name__
  # APITimeoutError subclasses APIConnectionError.
  if isinstance(exc, APIConnectionError):
    return TransientProviderError(message)

  status_code = exc.status_code if isinstance(exc, APIStatusError) else None
  if status_code is not None and (status_code == 429 or status_code >= 500):
    return TransientProviderError(message, status_code=status_code)

  lowered = message.lower()
  if any(hint in lowered for hint in _TRANSIENT_HINTS):
    return TransientProviderError(message, status_code=status_code)
  return ProviderError(message, status_code=status_code)


def build_openai_client(api_key: str | None) -> AsyncOpenAI:
  if not api_key:
    raise ValueError("OPENAI_API_KEY environment variable is required")
  # Retries are owned by GenerationClient.
  return AsyncOpenAI(api_key=api_key, max_retries=0)


class OpenAITextGenerator(TextGenerator):
  def __init__(self, client: AsyncOpenAI, model: str, *, temperature: float = 0.7, max_tokens: int = 2500) -> None:
    self._client = client
    self.model = model
    self._temperature = temperature
    self._max_tokens = max_tokens

  async def generate_text(self, system_prompt: str, user_prompt: str, *, json_mode: bool = False) -> TextCompletion:
    kwargs = {}
    if json_mode:
      kwargs["response_format"] = {"type": "json_object"}
    try:
      response = await self._client.chat.completions.create(
        model=self.model,
        temperature=0.2 if json_mode else self._temperature,
        max_tokens=600 if json_mode else self._max_tokens,
        messages=[{"role": "system", "content": system_prompt}, {"role": "user", "content": user_prompt}],
        **kwargs,
      )
    except OpenAIError as exc:
      raise classify_provider_error(exc) from exc

    content = (response.choices[0].message.content or "") if response.choices else ""
    usage = TokenUsage()
    if response.usage:
      usage = TokenUsage(input_tokens=response.usage.prompt_tokens or 0, output_tokens=response.usage.completion_tokens or 0)
    logger.debug("OpenAI completion (%s chars, %s tokens)", len(content), usage.total_tokens)
    return TextCompletion(content=content, usage=usage, model=self.model)


class OpenAIImageGenerator(ImageGenerator):
  def __init__(self, client: AsyncOpenAI, model: str) -> None:
    self._client = client
    self.model = model

  async def generate_image(self, prompt: str, *, size: str = "1024x1024", quality: str = "standard") -> GeneratedImage:
    try:
      response = await self._client.images.generate(model=self.model, prompt=prompt, size=size, quality=quality, n=1)
    except OpenAIError as exc:
      raise classify_provider_error(exc) from exc

    if not response.data or not response.data[0].url:
      raise ProviderError("Image generation returned no URL.")
    image = response.data[0]
    return GeneratedImage(url=image.url, revised_prompt=image.revised_prompt)
