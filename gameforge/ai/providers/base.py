"""Narrow interfaces for the text and image generation collaborators."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class TokenUsage:
  input_tokens: int = 0
  output_tokens: int = 0

  @property
  def total_tokens(self) -> int:
    return self.input_tokens + self.output_tokens

  def __add__(self, other: TokenUsage) -> TokenUsage:
    return TokenUsage(input_tokens=self.input_tokens + other.input_tokens, output_tokens=self.output_tokens + other.output_tokens)


@dataclass(frozen=True)
class TextCompletion:
  content: str
  usage: TokenUsage
  model: str | None = None


@dataclass(frozen=True)
class GeneratedImage:
  url: str
  revised_prompt: str | None = None


class TextGenerator(Protocol):
  """Chat-completion collaborator.

  Implementations raise TransientProviderError for rate limits, timeouts and
  overload signals, and ProviderError (with ``status_code`` when known) otherwise.
  """

  async def generate_text(self, system_prompt: str, user_prompt: str, *, json_mode: bool = False) -> TextCompletion:
    """Return the completion text and its token usage."""


class ImageGenerator(Protocol):
  """Image generation collaborator, with the same error contract as TextGenerator."""

  async def generate_image(self, prompt: str, *, size: str = "1024x1024", quality: str = "standard") -> GeneratedImage:
    """Return a URL for the generated image."""
