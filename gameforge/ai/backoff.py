"""Retry logic with exponential backoff."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

T = TypeVar("T")
logger = logging.getLogger(__name__)


class RetryError(Exception):
  """Raised when a retried call gives up, carrying the attempt count and last error."""

  def __init__(self, last_error: Exception, *, attempts: int, exhausted: bool) -> None:
    super().__init__(str(last_error))
    self.last_error = last_error
    self.attempts = attempts
    self.exhausted = exhausted


def backoff_delay(attempt: int, base_delay: float = 1.0) -> float:
  """Delay after a failed attempt (1-based): base * 2**attempt."""
  return base_delay * (2**attempt)


async def retry_with_backoff(
  func: Callable[[], Awaitable[T]],
  *,
  max_attempts: int = 3,
  base_delay: float = 1.0,
  should_retry: Callable[[Exception], bool],
  sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
  label: str = "call",
) -> T:
  """
  Execute ``func`` until it succeeds, a non-retryable error occurs, or attempts run out.

  With the default base the waits are 2s, 4s, 8s and so on.
  """
  if max_attempts < 1:
    raise ValueError("max_attempts must be at least 1")

  attempt = 0
  while True:
    attempt += 1
    try:
      return await func()
    except Exception as exc:  # noqa: BLE001
      if not should_retry(exc):
        logger.warning("%s failed with a non-retryable error on attempt %s: %s", label, attempt, exc)
        raise RetryError(exc, attempts=attempt, exhausted=False) from exc
      if attempt >= max_attempts:
        logger.warning("%s failed on final attempt %s/%s: %s", label, attempt, max_attempts, exc)
        raise RetryError(exc, attempts=attempt, exhausted=True) from exc
      delay = backoff_delay(attempt, base_delay)
      logger.warning("Retry attempt %s/%s needed for %s. Error: %s. Retrying in %ss...", attempt, max_attempts, label, exc, delay)
      await sleep(delay)
