from __future__ import annotations

from typing import Any, Hashable, Optional, Tuple


def cache_aliases(*aliases: str):
    """Brief: Decorator to set aliases on a cache plugin class for discovery.

    Inputs:
      - *aliases: Variable number of alias strings.

    Outputs:
      - Callable that applies the aliases to a CachePlugin subclass and returns it.

    Example:
      >>> from bnsresolver.cache.base import CachePlugin, cache_aliases
      >>> @cache_aliases('none', 'null')
      ... class NullCache(CachePlugin):
      ...     pass
      >>> NullCache.aliases
      ('none', 'null')
    """

    def _wrap(cls: type) -> type:
        cls.aliases = tuple(aliases)
        return cls

    return _wrap


class CachePlugin:
    """Base class for the resolver's TTL caches.

    Brief:
      CachePlugin is the capability injected into the height oracle, the
      external subdomain fetcher and the resolver. Subclasses must implement
      get/get_with_meta/set/purge; with_namespace() returns a view whose keys
      do not collide with other namespaces.

    Inputs:
      - None.

    Outputs:
      - CachePlugin instance.
    """

    aliases: tuple[str, ...] = ()

    def get(self, key: Hashable) -> Any | None:
        """Brief: Lookup a cached entry.

        Inputs:
          - key: Hashable cache key.

        Outputs:
          - Any | None: Cached value if present and fresh; otherwise None.
        """

        raise NotImplementedError("CachePlugin.get() must be implemented by a subclass")

    def get_with_meta(
        self, key: Hashable
    ) -> Tuple[Any | None, Optional[float], Optional[int]]:
        """Brief: Lookup a cached entry and return metadata.

        Inputs:
          - key: Hashable cache key.

        Outputs:
          - (value_or_None, seconds_remaining_or_None, original_ttl_or_None)
        """

        raise NotImplementedError(
            "CachePlugin.get_with_meta() must be implemented by a subclass"
        )

    def set(self, key: Hashable, ttl: int, value: Any) -> None:
        """Brief: Store a value under key with a TTL.

        Inputs:
          - key: Hashable cache key.
          - ttl: int time-to-live in seconds.
          - value: Cached value.

        Outputs:
          - None.
        """

        raise NotImplementedError("CachePlugin.set() must be implemented by a subclass")

    def purge(self) -> int:
        """Brief: Purge expired entries.

        Inputs:
          - None.

        Outputs:
          - int: Number of entries removed (best-effort).
        """

        raise NotImplementedError(
            "CachePlugin.purge() must be implemented by a subclass"
        )

    def with_namespace(self, namespace: str) -> "CachePlugin":
        """Brief: Return a view of this cache isolated under namespace.

        Inputs:
          - namespace: Namespace string (for example "mainnet").

        Outputs:
          - CachePlugin sharing this cache's storage. The base implementation
            returns self, which is correct for caches that store nothing.
        """

        return self
