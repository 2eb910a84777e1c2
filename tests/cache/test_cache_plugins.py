"""Brief: Tests for cache plugins, the plugin registry and TTL configuration.

Inputs:
  - None

Outputs:
  - None
"""

import pytest

from bnsresolver.cache.in_memory_ttl import InMemoryTTLCache
from bnsresolver.cache.null import NullCache
from bnsresolver.cache.registry import (
    CACHE_PLUGINS,
    get_cache_plugin_class,
    load_cache_plugin,
)
from bnsresolver.cache.ttls import DEFAULT_TTLS, resolve_ttls


def test_null_cache_always_misses() -> None:
    """Brief: NullCache never returns values and ignores set/purge.

    Inputs:
      - None

    Outputs:
      - None
    """

    c = NullCache()
    c.set(("name_info", "alice.btc"), 60, {"x": 1})
    assert c.get(("name_info", "alice.btc")) is None
    assert c.get_with_meta("k") == (None, None, None)
    assert c.purge() == 0
    assert c.with_namespace("testnet") is c


def test_in_memory_views_are_isolated() -> None:
    """Brief: InMemoryTTLCache.with_namespace returns isolated views on one store.

    Inputs:
      - None

    Outputs:
      - None
    """

    cache = InMemoryTTLCache()
    main = cache.with_namespace("mainnet")
    test = cache.with_namespace("testnet")
    main.set("k", 60, "m")
    assert test.get("k") is None
    assert main.get("k") == "m"
    assert main.namespace == "mainnet"
    assert cache.get("k") is None


@pytest.mark.parametrize("ident", [None, "in_memory_ttl", "memory", "ttl"])
def test_registry_defaults_to_in_memory(ident) -> None:
    """Brief: load_cache_plugin resolves the in-memory plugin by default and by alias.

    Inputs:
      - ident: None or alias string.

    Outputs:
      - None
    """

    assert isinstance(load_cache_plugin(ident), InMemoryTTLCache)


@pytest.mark.parametrize("ident", ["none", "off", "null", "disabled"])
def test_registry_loads_null_aliases(ident: str) -> None:
    """Brief: Null cache aliases resolve to NullCache.

    Inputs:
      - ident: Alias string.

    Outputs:
      - None
    """

    assert isinstance(load_cache_plugin(ident), NullCache)


def test_registry_mapping_forms() -> None:
    """Brief: Mapping configs honour module, config and an explicit null module.

    Inputs:
      - None

    Outputs:
      - None
    """

    assert isinstance(load_cache_plugin({"module": None}), NullCache)
    assert isinstance(load_cache_plugin({"ttls": {"height": 5}}), InMemoryTTLCache)
    cache = load_cache_plugin(
        {"module": "memory", "config": {"maxsize": 10, "eviction_policy": "lru"}}
    )
    assert isinstance(cache, InMemoryTTLCache)


def test_registry_dotted_path_and_unknown_alias() -> None:
    """Brief: Dotted paths import classes; unknown aliases raise KeyError.

    Inputs:
      - None

    Outputs:
      - None
    """

    cls = get_cache_plugin_class("bnsresolver.cache.null.NullCache")
    assert cls is NullCache
    with pytest.raises(KeyError):
        load_cache_plugin("memcached-please")
    with pytest.raises(TypeError):
        load_cache_plugin(42)


def test_resolve_ttls_merges_and_rejects_unknown_kinds() -> None:
    """Brief: TTL overrides replace defaults; unknown kinds are rejected.

    Inputs:
      - None

    Outputs:
      - None
    """

    ttls = resolve_ttls({"height": 5, "name_list": -3})
    assert ttls["height"] == 5
    assert ttls["name_list"] == 0
    assert ttls["namespace_info"] == DEFAULT_TTLS["namespace_info"] == 3600
    with pytest.raises(ValueError):
        resolve_ttls({"bogus": 1})


def test_registry_alias_map_normalizes_and_lists_known_aliases() -> None:
    """Brief: Aliases ignore case and dashes; unknown aliases list the known ones.

    Inputs:
      - None

    Outputs:
      - None
    """

    assert CACHE_PLUGINS["memory"] is InMemoryTTLCache
    assert CACHE_PLUGINS["no_cache"] is NullCache
    assert get_cache_plugin_class(" In-Memory_TTL ") is InMemoryTTLCache
    with pytest.raises(KeyError) as err:
        get_cache_plugin_class("redis")
    assert "in_memory_ttl" in str(err.value)
    with pytest.raises(TypeError):
        get_cache_plugin_class("bnsresolver.cache.ttls.resolve_ttls")
