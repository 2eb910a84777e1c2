"""Cache plugins.

Brief: Defines the CachePlugin interface and the TTL cache implementations
injected into the height oracle, external file fetcher and resolver.

Inputs:
  - None

Outputs:
  - None
"""

from __future__ import annotations

from .base import CachePlugin, cache_aliases
from .in_memory_ttl import InMemoryTTLCache
from .null import NullCache
from .registry import load_cache_plugin

__all__ = [
    "CachePlugin",
    "InMemoryTTLCache",
    "NullCache",
    "cache_aliases",
    "load_cache_plugin",
]
