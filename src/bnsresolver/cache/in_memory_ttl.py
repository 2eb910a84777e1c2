from __future__ import annotations

from typing import Any, Hashable, Optional, Tuple

from bnsresolver.cache.backends.ttl_store import TTLStore

from .base import CachePlugin, cache_aliases


@cache_aliases("in_memory_ttl", "memory", "ttl")
class InMemoryTTLCache(CachePlugin):
    """In-memory TTL cache plugin.

    Brief:
      Default CachePlugin implementation backed by
      `bnsresolver.cache.backends.ttl_store.TTLStore`. Contents are lost on
      restart.

    Inputs:
      - **config: Optional implementation-specific config.
          - maxsize: Optional positive entry bound shared by all namespaces.
          - eviction_policy: "none", "lru" or "fifo".

    Outputs:
      - InMemoryTTLCache instance.
    """

    def __init__(self, _store: Optional[TTLStore] = None, **config: object) -> None:
        if _store is not None:
            self._cache = _store
            return
        maxsize = config.get("maxsize")
        self._cache = TTLStore(
            maxsize=int(maxsize) if maxsize is not None else None,  # type: ignore[arg-type]
            eviction_policy=str(config.get("eviction_policy", "none") or "none"),
        )

    @property
    def namespace(self) -> str | None:
        return self._cache.namespace

    def get(self, key: Hashable) -> Any | None:
        return self._cache.get(key)

    def get_with_meta(
        self, key: Hashable
    ) -> Tuple[Any | None, Optional[float], Optional[int]]:
        return self._cache.get_with_meta(key)

    def set(self, key: Hashable, ttl: int, value: Any) -> None:
        self._cache.set(key, ttl, value)

    def purge(self) -> int:
        """Brief: Purge expired items from this cache view.

        Inputs:
          - None.

        Outputs:
          - int: Number of removed entries.
        """

        return int(self._cache.purge_expired())

    def with_namespace(self, namespace: str) -> "InMemoryTTLCache":
        """Brief: Return a namespaced plugin sharing this plugin's store.

        Inputs:
          - namespace: Namespace identifier.

        Outputs:
          - InMemoryTTLCache wrapping a namespaced TTLStore view.
        """

        return InMemoryTTLCache(_store=self._cache.with_namespace(namespace))
