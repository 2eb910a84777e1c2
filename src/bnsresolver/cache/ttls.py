from __future__ import annotations

from typing import Any, Dict, Mapping, Optional

# Seconds each kind of cached value stays fresh.
DEFAULT_TTLS: Dict[str, int] = {
    "height": 60,
    "namespace_info": 3600,
    "name_info": 300,
    "name_list": 60,
    "name_count": 300,
    "namespace_list": 1800,
    "namespace_count": 3600,
    "rarity": 3600,
    "token_data": 300,
    "last_token_id": 600,
    "subdomain_list": 120,
    "external_file": 300,
    "zonefile_data": 300,
}


def resolve_ttls(overrides: Optional[Mapping[str, Any]] = None) -> Dict[str, int]:
    """Brief: Merge configured TTL overrides onto DEFAULT_TTLS.

    Inputs:
      - overrides: Optional mapping of kind -> seconds.

    Outputs:
      - Dict of kind -> non-negative int seconds.

    Raises:
      - ValueError: for unknown kinds.
    """

    ttls = dict(DEFAULT_TTLS)
    for kind, value in (overrides or {}).items():
        if kind not in ttls:
            raise ValueError(f"Unknown cache ttl kind {kind!r}")
        ttls[kind] = max(0, int(value))
    return ttls
