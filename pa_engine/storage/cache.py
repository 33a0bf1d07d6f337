"""Tiered metadata cache - in-memory layer over an optional durable store.

Keys are "type:k1=v1|k2=v2" with parameters sorted by name. Each type has
its own TTL. Storage failures are logged and treated as misses, so the
cache can only change latency, never results.
"""

import asyncio
import time
from collections import OrderedDict
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

from pa_engine.storage.database import DurableCacheStore
from pa_engine.config.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_TTL_SECONDS = 3600


class TieredMetadataCache:
    """Single-flight async cache for external metadata lookups."""

    def __init__(
        self,
        ttls: Optional[Dict[str, int]] = None,
        store: Optional[DurableCacheStore] = None,
        max_memory_entries: int = 1000,
        clock: Callable[[], float] = time.time,
    ):
        self.ttls = dict(ttls or {})
        self.store = store
        self.max_memory_entries = max_memory_entries
        self._clock = clock
        self._memory: "OrderedDict[str, Tuple[float, Any]]" = OrderedDict()
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_refs: Dict[str, int] = {}
        self.stats = {"hits": 0, "misses": 0, "sets": 0, "errors": 0}

    @classmethod
    def from_settings(cls, settings, store: Optional[DurableCacheStore] = None) -> "TieredMetadataCache":
        return cls(ttls=settings.cache_ttls(), store=store)

    @staticmethod
    def make_key(cache_type: str, params: Dict[str, Any]) -> str:
        return f"{cache_type}:" + "|".join(f"{k}={params[k]}" for k in sorted(params))

    def ttl_for(self, cache_type: str) -> int:
        return self.ttls.get(cache_type, DEFAULT_TTL_SECONDS)

    def _retain_lock(self, cache_type: str, params: Dict[str, Any]) -> str:
        key = self.make_key(cache_type, params)
        if key not in self._locks:
            self._locks[key] = asyncio.Lock()
        self._lock_refs[key] = self._lock_refs.get(key, 0) + 1
        return key

    def _release_lock(self, key: str) -> None:
        # Locks live only while some caller holds or waits on them
        self._lock_refs[key] -= 1
        if self._lock_refs[key] == 0:
            del self._lock_refs[key]
            del self._locks[key]

    def _memory_get(self, key: str) -> Optional[Any]:
        item = self._memory.get(key)
        if item is None:
            return None
        expires_at, value = item
        if expires_at <= self._clock():
            del self._memory[key]
            return None
        return value

    def _memory_set(self, key: str, value: Any, ttl: int) -> None:
        self._memory[key] = (self._clock() + ttl, value)
        self._memory.move_to_end(key)
        while len(self._memory) > self.max_memory_entries:
            self._memory.popitem(last=False)

    async def get(self, cache_type: str, params: Dict[str, Any]) -> Optional[Any]:
        key = self.make_key(cache_type, params)
        value = self._memory_get(key)
        if value is None and self.store is not None:
            try:
                value = await self.store.get(key)
            except Exception as e:
                self.stats["errors"] += 1
                logger.warning("Durable cache read failed", key=key, error=str(e))
                value = None
            if value is not None:
                self._memory_set(key, value, self.ttl_for(cache_type))
        if value is None:
            self.stats["misses"] += 1
        else:
            self.stats["hits"] += 1
        return value

    async def set(self, cache_type: str, params: Dict[str, Any], value: Any, ttl: Optional[int] = None) -> None:
        key = self.make_key(cache_type, params)
        ttl = ttl if ttl is not None else self.ttl_for(cache_type)
        self._memory_set(key, value, ttl)
        self.stats["sets"] += 1
        if self.store is not None:
            try:
                await self.store.set(key, cache_type, value, ttl)
            except Exception as e:
                self.stats["errors"] += 1
                logger.warning("Durable cache write failed", key=key, error=str(e))

    async def get_or_load(
        self,
        cache_type: str,
        params: Dict[str, Any],
        loader: Callable[[], Awaitable[Any]],
    ) -> Any:
        """
        Cached value, or the loader's result (cached unless None).

        Concurrent callers for the same key share one loader call. Loader
        errors propagate and are not cached.
        """
        value = await self.get(cache_type, params)
        if value is not None:
            return value
        key = self._retain_lock(cache_type, params)
        try:
            async with self._locks[key]:
                value = self._memory_get(key)
                if value is not None:
                    self.stats["hits"] += 1
                    return value
                value = await loader()
                if value is not None:
                    await self.set(cache_type, params, value)
                return value
        finally:
            self._release_lock(key)

    def clear_memory(self) -> None:
        self._memory.clear()

    @property
    def hit_rate(self) -> float:
        lookups = self.stats["hits"] + self.stats["misses"]
        return self.stats["hits"] / lookups if lookups else 0.0
