"""Namespaced cache for generation results, asset descriptors, and in-flight submissions."""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Literal

from gameforge.cache.store import KeyValueStore, StoreStats
from gameforge.core.errors import StoreUnavailableError
from gameforge.jobs.models import TemplateKind

logger = logging.getLogger(__name__)


class CacheNamespace(Enum):
  """Key prefix and TTL (seconds) for each cached value family."""

  GAME_CODE = ("game:code:", 60 * 60 * 24)
  ASSETS = ("game:assets:", 60 * 60 * 24 * 7)
  USER_GENERATION = ("user:gen:", 60)
  RATE_LIMIT = ("ratelimit:", 60 * 60)

  @property
  def prefix(self) -> str:
    return self.value[0]

  @property
  def ttl_seconds(self) -> int:
    return self.value[1]


# Namespaces cleared when no explicit pattern is given.
GENERATION_NAMESPACES = (CacheNamespace.GAME_CODE, CacheNamespace.ASSETS, CacheNamespace.USER_GENERATION)


def normalize_prompt(prompt: str) -> str:
  return " ".join(prompt.split()).lower()


def cache_key(namespace: CacheNamespace, *parts: str) -> str:
  """Build a deterministic key from a namespace and its identifying parts."""
  digest = hashlib.sha256("\x1f".join(parts).encode("utf-8")).hexdigest()[:32]
  return f"{namespace.prefix}{digest}"


@dataclass(frozen=True)
class CacheLookup:
  """Result of a cache read; ``unavailable`` means the store failed and the caller treated it as a miss."""

  status: Literal["hit", "miss", "unavailable"]
  value: Any | None = None

  @property
  def hit(self) -> bool:
    return self.status == "hit"


class GenerationCache:
  """Pure accelerator over the shared store: a failed read is reported, never raised."""

  def __init__(self, store: KeyValueStore) -> None:
    self._store = store

  async def _lookup(self, key: str, label: str) -> CacheLookup:
    try:
      value = await self._store.get(key)
    except StoreUnavailableError as exc:
      logger.warning("Cache %s lookup unavailable, treating as miss: %s", label, exc)
      return CacheLookup(status="unavailable")
    if value is None:
      logger.info("Cache miss for %s (%s)", label, key)
      return CacheLookup(status="miss")
    logger.info("Cache hit for %s (%s)", label, key)
    return CacheLookup(status="hit", value=value)

  async def get_result(self, template: TemplateKind, prompt: str) -> CacheLookup:
    return await self._lookup(cache_key(CacheNamespace.GAME_CODE, template.value, normalize_prompt(prompt)), "game code")

  async def put_result(self, template: TemplateKind, prompt: str, descriptor: dict[str, Any]) -> None:
    key = cache_key(CacheNamespace.GAME_CODE, template.value, normalize_prompt(prompt))
    await self._store.set(key, descriptor, CacheNamespace.GAME_CODE.ttl_seconds)

  async def get_assets(self, *parts: str) -> CacheLookup:
    return await self._lookup(cache_key(CacheNamespace.ASSETS, *parts), "assets")

  async def put_assets(self, value: dict[str, Any], *parts: str) -> None:
    await self._store.set(cache_key(CacheNamespace.ASSETS, *parts), value, CacheNamespace.ASSETS.ttl_seconds)

  async def find_in_flight(self, user_id: str, template: TemplateKind, prompt: str) -> CacheLookup:
    return await self._lookup(cache_key(CacheNamespace.USER_GENERATION, user_id, template.value, normalize_prompt(prompt)), "in-flight submission")

  async def mark_in_flight(self, user_id: str, template: TemplateKind, prompt: str, job_id: str) -> bool:
    key = cache_key(CacheNamespace.USER_GENERATION, user_id, template.value, normalize_prompt(prompt))
    return await self._store.set_if_absent(key, job_id, CacheNamespace.USER_GENERATION.ttl_seconds)

  async def clear(self, pattern: str | None = None) -> int:
    """Delete keys matching ``pattern``, or every generation namespace when omitted."""
    if pattern:
      return await self._store.delete_matching(pattern)
    deleted = 0
    for namespace in GENERATION_NAMESPACES:
      deleted += await self._store.delete_matching(f"{namespace.prefix}*")
    return deleted

  async def stats(self) -> StoreStats:
    return await self._store.stats()
