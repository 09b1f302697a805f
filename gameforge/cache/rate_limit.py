"""Fixed-window rate limiter on top of the shared key-value store."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from gameforge.cache.generation_cache import CacheNamespace, cache_key
from gameforge.cache.store import KeyValueStore
from gameforge.core.errors import StoreUnavailableError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitDecision:
  allowed: bool
  remaining: int
  reset_at: datetime


def _utc_now() -> datetime:
  return datetime.now(UTC)


class FixedWindowRateLimiter:
  """Count calls per identity in discrete windows.

  Windows do not slide, so an identity can spend its limit at the end of one
  window and again at the start of the next.
  """

  def __init__(self, store: KeyValueStore, *, window_seconds: int = CacheNamespace.RATE_LIMIT.ttl_seconds, clock: Callable[[], datetime] = _utc_now) -> None:
    self._store = store
    self._window_seconds = window_seconds
    self._clock = clock

  async def check_and_consume(self, identity: str, limit: int) -> RateLimitDecision:
    """Consume one call for ``identity``; a rejected call never increments the counter."""
    if limit <= 0:
      raise ValueError("Rate limit must be a positive integer.")

    now = self._clock()
    key = cache_key(CacheNamespace.RATE_LIMIT, identity)
    try:
      consumption = await self._store.consume_fixed_window(key, limit=limit, window_seconds=self._window_seconds)
    except StoreUnavailableError as exc:
      # Fail open: a store outage must not block all traffic.
      logger.warning("Rate limiter store unavailable for %s, allowing request: %s", identity, exc)
      return RateLimitDecision(allowed=True, remaining=limit - 1, reset_at=now + timedelta(seconds=self._window_seconds))

    # An unreadable TTL is reported as an immediate reset.
    reset_at = now + timedelta(seconds=consumption.ttl_seconds) if consumption.ttl_seconds is not None else now

    if not consumption.allowed:
      logger.info("Rate limit blocked %s (%s/%s)", identity, consumption.count, limit)
      return RateLimitDecision(allowed=False, remaining=0, reset_at=reset_at)

    remaining = max(0, limit - consumption.count)
    logger.debug("Rate limit consumed for %s (%s/%s)", identity, consumption.count, limit)
    return RateLimitDecision(allowed=True, remaining=remaining, reset_at=reset_at)
