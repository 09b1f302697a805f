"""Error taxonomy shared by the API, queue, worker, and generation pipeline."""

from __future__ import annotations

from datetime import datetime


class GameForgeError(Exception):
  """Base class for every classified service error."""


class ValidationError(GameForgeError):
  """Raised when a request is malformed; no job is created and nothing is retried."""

  def __init__(self, message: str, *, errors: list[str] | None = None) -> None:
    super().__init__(message)
    self.errors = list(errors or [message])


class RateLimitError(GameForgeError):
  """Raised when a caller exceeded its quota for the current window."""

  def __init__(self, message: str, *, reset_at: datetime) -> None:
    super().__init__(message)
    self.reset_at = reset_at


class ProviderError(GameForgeError):
  """Non-retryable failure reported by an AI provider (auth, bad input, policy)."""

  def __init__(self, message: str, *, status_code: int | None = None) -> None:
    super().__init__(message)
    self.status_code = status_code


class TransientProviderError(ProviderError):
  """Rate-limited, timed out, or overloaded provider response; safe to retry."""


class ContentError(GameForgeError):
  """Provider response failed shape, length, or domain validation."""


class GenerationFailure(GameForgeError):
  """Terminal failure of the generation pipeline for one job."""

  def __init__(self, message: str, *, attempts: int | None = None) -> None:
    super().__init__(message)
    self.attempts = attempts


class StoreUnavailableError(GameForgeError):
  """Raised when the cache/queue backing store cannot be reached."""


class StaleJobTimeout(GameForgeError):
  """A job stayed PROCESSING past the sweep threshold."""

  MESSAGE = "Job timeout: worker did not finish within the processing window."

  def __init__(self, timeout_seconds: float | None = None) -> None:
    message = self.MESSAGE if timeout_seconds is None else f"{self.MESSAGE} ({int(timeout_seconds)}s)"
    super().__init__(message)


class TemplateNotFoundError(GameForgeError):
  """Raised by the template provider when a template kind has no files."""


def is_retryable(exc: BaseException) -> bool:
  """Return True for errors the generation client may retry within its budget."""
  return isinstance(exc, TransientProviderError | ContentError)
