"""Key-value store contract and its Redis implementation."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Protocol

from redis import asyncio as redis_asyncio
from redis.exceptions import RedisError, WatchError

from gameforge.core.errors import StoreUnavailableError

logger = logging.getLogger(__name__)

_DELETE_BATCH_SIZE = 500


@dataclass(frozen=True)
class WindowConsumption:
  """Outcome of one fixed-window counter consumption attempt.

  ``ttl_seconds`` is None when the remaining window could not be read.
  """

  allowed: bool
  count: int
  ttl_seconds: int | None


@dataclass(frozen=True)
class StoreStats:
  total_keys: int
  memory_usage: int
  hit_rate: float


class KeyValueStore(Protocol):
  """Shared store for cache entries, rate-limit counters, and the job ordering structure.

  Every method raises StoreUnavailableError when the backing store cannot be reached.
  """

  async def ping(self) -> bool:
    """Round-trip to the store; used by the health check."""

  async def get(self, key: str) -> Any | None:
    """Return the decoded value or None when the key is absent or expired."""

  async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
    """Store a JSON-serialisable value with an expiry."""

  async def set_if_absent(self, key: str, value: Any, ttl_seconds: int) -> bool:
    """Store a value only when the key is absent; return whether it was written."""

  async def delete_matching(self, pattern: str) -> int:
    """Delete keys matching a glob pattern and return how many were removed."""

  async def consume_fixed_window(self, key: str, *, limit: int, window_seconds: int) -> WindowConsumption:
    """Atomically check a counter against a limit and increment it when below."""

  async def zadd(self, key: str, member: str, score: float, *, only_if_absent: bool = False) -> int:
    """Add a member to a sorted set; return the number of members added."""

  async def zpopmin(self, key: str) -> tuple[str, float] | None:
    """Atomically remove and return the lowest-scored member."""

  async def zcard(self, key: str) -> int:
    """Return the sorted set cardinality."""

  async def sadd(self, key: str, member: str) -> int:
    """Add a member to a set."""

  async def srem(self, key: str, member: str) -> int:
    """Remove a member from a set."""

  async def scard(self, key: str) -> int:
    """Return the set cardinality."""

  async def stats(self) -> StoreStats:
    """Return key count, memory usage, and keyspace hit rate."""


@contextmanager
def _store_errors(operation: str, key: str | None = None) -> Iterator[None]:
  try:
    yield
  except RedisError as exc:
    target = f" for key {key}" if key else ""
    raise StoreUnavailableError(f"Redis {operation} failed{target}: {exc}") from exc


class RedisStore(KeyValueStore):
  """KeyValueStore backed by redis.asyncio with JSON-encoded values."""

  def __init__(self, client: redis_asyncio.Redis) -> None:
    self._client = client

  @classmethod
  def from_url(cls, url: str, *, max_connections: int = 50) -> RedisStore:
    pool = redis_asyncio.ConnectionPool.from_url(url, max_connections=max_connections, decode_responses=True)
    return cls(redis_asyncio.Redis(connection_pool=pool))

  async def close(self) -> None:
    await self._client.aclose()

  async def ping(self) -> bool:
    with _store_errors("ping"):
      return bool(await self._client.ping())

  async def get(self, key: str) -> Any | None:
    with _store_errors("get", key):
      raw = await self._client.get(key)
    if raw is None:
      return None
    return json.loads(raw)

  async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
    with _store_errors("set", key):
      await self._client.set(key, json.dumps(value), ex=ttl_seconds)

  async def set_if_absent(self, key: str, value: Any, ttl_seconds: int) -> bool:
    with _store_errors("set", key):
      return bool(await self._client.set(key, json.dumps(value), ex=ttl_seconds, nx=True))

  async def delete_matching(self, pattern: str) -> int:
    deleted = 0
    batch: list[str] = []
    with _store_errors("delete", pattern):
      # SCAN instead of KEYS so large keyspaces do not block the server.
      async for key in self._client.scan_iter(match=pattern, count=_DELETE_BATCH_SIZE):
        batch.append(key)
        if len(batch) >= _DELETE_BATCH_SIZE:
          deleted += await self._client.delete(*batch)
          batch = []
      if batch:
        deleted += await self._client.delete(*batch)
    logger.info("Deleted %s keys matching %s", deleted, pattern)
    return deleted

  async def consume_fixed_window(self, key: str, *, limit: int, window_seconds: int) -> WindowConsumption:
    with _store_errors("consume", key):
      async with self._client.pipeline(transaction=True) as pipe:
        while True:
          try:
            await pipe.watch(key)
            raw = await pipe.get(key)
            count = int(raw) if raw is not None else 0
            if count >= limit:
              ttl = await self._read_ttl(pipe, key)
              await pipe.unwatch()
              return WindowConsumption(allowed=False, count=count, ttl_seconds=ttl)

            pipe.multi()
            if raw is None:
              pipe.set(key, 1, ex=window_seconds)
            else:
              pipe.incr(key)
              # Re-arm the window if the key expired and INCR recreated it without a TTL.
              pipe.expire(key, window_seconds, nx=True)
            pipe.ttl(key)
            results = await pipe.execute()
            ttl = results[-1]
            return WindowConsumption(allowed=True, count=count + 1, ttl_seconds=ttl if ttl >= 0 else None)
          except WatchError:
            # Another caller touched the counter between WATCH and EXEC.
            logger.debug("Retrying window consumption for %s after concurrent update", key)
            continue

  async def _read_ttl(self, pipe: Any, key: str) -> int | None:
    try:
      ttl = await pipe.ttl(key)
    except RedisError as exc:
      logger.warning("TTL read failed for %s: %s", key, exc)
      return None
    return ttl if ttl >= 0 else None

  async def zadd(self, key: str, member: str, score: float, *, only_if_absent: bool = False) -> int:
    with _store_errors("zadd", key):
      return int(await self._client.zadd(key, {member: score}, nx=only_if_absent))

  async def zpopmin(self, key: str) -> tuple[str, float] | None:
    with _store_errors("zpopmin", key):
      popped = await self._client.zpopmin(key, 1)
    if not popped:
      return None
    member, score = popped[0]
    return member, float(score)

  async def zcard(self, key: str) -> int:
    with _store_errors("zcard", key):
      return int(await self._client.zcard(key))

  async def sadd(self, key: str, member: str) -> int:
    with _store_errors("sadd", key):
      return int(await self._client.sadd(key, member))

  async def srem(self, key: str, member: str) -> int:
    with _store_errors("srem", key):
      return int(await self._client.srem(key, member))

  async def scard(self, key: str) -> int:
    with _store_errors("scard", key):
      return int(await self._client.scard(key))

  async def stats(self) -> StoreStats:
    with _store_errors("info"):
      total_keys = int(await self._client.dbsize())
      memory = await self._client.info("memory")
      keyspace = await self._client.info("stats")
    hits = int(keyspace.get("keyspace_hits", 0))
    misses = int(keyspace.get("keyspace_misses", 0))
    lookups = hits + misses
    return StoreStats(total_keys=total_keys, memory_usage=int(memory.get("used_memory", 0)), hit_rate=hits / lookups if lookups else 0.0)
