"""Cache plugin selection.

Brief:
  The service ships two cache plugins: the in-memory TTL cache and the null
  cache. Config selects one by alias (any entry of the class's `aliases`) or
  by a dotted `package.module.ClassName` path for out-of-tree plugins.
"""

from __future__ import annotations

import importlib
from typing import Dict, Optional, Type

from cachetools import LRUCache, cached

from .base import CachePlugin
from .in_memory_ttl import InMemoryTTLCache
from .null import NullCache

DEFAULT_CACHE_MODULE = "in_memory_ttl"

_BUILTIN_PLUGINS = (InMemoryTTLCache, NullCache)

CACHE_PLUGINS: Dict[str, Type[CachePlugin]] = {
    alias: cls for cls in _BUILTIN_PLUGINS for alias in cls.aliases
}


def _normalize(alias: str) -> str:
    return alias.strip().lower().replace("-", "_")


@cached(cache=LRUCache(maxsize=32))
def _import_plugin(path: str) -> Type[CachePlugin]:
    modname, _, classname = path.rpartition(".")
    if not modname or not classname:
        raise ValueError(f"Invalid cache plugin path '{path}'")
    cls = getattr(importlib.import_module(modname), classname)
    if not isinstance(cls, type) or not issubclass(cls, CachePlugin):
        raise TypeError(f"{path} is not a CachePlugin subclass")
    return cls


def get_cache_plugin_class(identifier: str) -> Type[CachePlugin]:
    """Brief: Resolve identifier to a cache plugin class.

    Inputs:
      - identifier: Alias (case and dashes ignored) or dotted import path.

    Outputs:
      - CachePlugin subclass.

    Raises:
      - KeyError: unknown alias.
    """

    ident = str(identifier).strip()
    if "." in ident:
        return _import_plugin(ident)

    try:
        return CACHE_PLUGINS[_normalize(ident)]
    except KeyError:
        raise KeyError(
            f"Unknown cache plugin alias '{identifier}'. "
            f"Known aliases: {', '.join(sorted(CACHE_PLUGINS))}"
        ) from None


def load_cache_plugin(cfg: Optional[object]) -> CachePlugin:
    """Brief: Build the configured cache plugin.

    Inputs:
      - cfg: Cache config. Supported forms:
        - None: Use default in-memory TTL cache.
        - str: Alias or dotted import path.
        - dict: {"module": <str>, "config": <dict>}; "ttls" is ignored here.

    Outputs:
      - CachePlugin instance.

    Example:
      cache:
        module: in_memory_ttl
        config:
          maxsize: 100000
          eviction_policy: lru
    """

    if cfg is None:
        return get_cache_plugin_class(DEFAULT_CACHE_MODULE)()

    if isinstance(cfg, str):
        return get_cache_plugin_class(cfg)()

    if not isinstance(cfg, dict):
        raise TypeError("cache config must be a mapping, string, or null")

    # An explicit null module disables caching; omitting the key keeps the
    # default in-memory cache.
    if "module" in cfg and cfg["module"] is None:
        module = "none"
    else:
        module = str(cfg.get("module") or "").strip() or DEFAULT_CACHE_MODULE

    subcfg = cfg.get("config")
    cls = get_cache_plugin_class(module)
    return cls(**(subcfg if isinstance(subcfg, dict) else {}))
