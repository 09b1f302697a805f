"""Explicit wrapper for side effects whose failure must not fail the caller."""

from __future__ import annotations

import logging
from collections.abc import Awaitable
from typing import TypeVar

T = TypeVar("T")

logger = logging.getLogger(__name__)


async def best_effort(operation: str, awaitable: Awaitable[T]) -> T | None:
  """Await a side effect, logging and discarding any failure."""
  try:
    return await awaitable
  except Exception as exc:  # noqa: BLE001
    logger.warning("Best-effort %s failed: %s", operation, exc)
    return None
