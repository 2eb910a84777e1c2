from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

MAINNET = "mainnet"
TESTNET = "testnet"

DEFAULT_NETWORKS: Dict[str, Dict[str, str]] = {
    MAINNET: {"schema": "public", "api_url": "https://api.hiro.so"},
    TESTNET: {"schema": "testnet", "api_url": "https://api.testnet.hiro.so"},
}


@dataclass(frozen=True)
class NetworkConfig:
    """Per-network wiring for the resolver.

    Inputs:
      - name: Network selector ('mainnet' or 'testnet').
      - schema: Database schema holding this network's names/namespaces tables.
      - api_url: Base URL of the chain API used as the height oracle.
      - route_prefix: URL prefix for this network's query routes.

    Outputs:
      - Immutable network description. The cache namespace is the network
        name, so cached values never leak across networks.
    """

    name: str
    schema: str
    api_url: str
    route_prefix: str = ""

    @property
    def cache_namespace(self) -> str:
        return self.name

    @property
    def response_tag(self) -> Optional[str]:
        """Network tag added to responses; only non-mainnet networks carry one."""
        return None if self.name == MAINNET else self.name


def build_networks(cfg: Optional[Mapping[str, Any]]) -> Dict[str, NetworkConfig]:
    """Brief: Merge configured network overrides onto the defaults.

    Inputs:
      - cfg: Optional mapping of network name -> {'schema', 'api_url'}.

    Outputs:
      - Dict of network name -> NetworkConfig. Mainnet is served unprefixed;
        every other network is served under '/<name>'.

    Example:
      >>> nets = build_networks({"testnet": {"api_url": "http://localhost:3999"}})
      >>> nets["testnet"].api_url, nets["testnet"].route_prefix
      ('http://localhost:3999', '/testnet')
    """

    merged: Dict[str, Dict[str, str]] = {k: dict(v) for k, v in DEFAULT_NETWORKS.items()}
    for name, overrides in (cfg or {}).items():
        base = merged.setdefault(str(name), {"schema": str(name), "api_url": ""})
        for key in ("schema", "api_url"):
            value = (overrides or {}).get(key)
            if value:
                base[key] = str(value)

    out: Dict[str, NetworkConfig] = {}
    for name, values in merged.items():
        if not values.get("api_url"):
            raise ValueError(f"networks.{name}.api_url is required")
        out[name] = NetworkConfig(
            name=name,
            schema=values["schema"],
            api_url=values["api_url"].rstrip("/"),
            route_prefix="" if name == MAINNET else f"/{name}",
        )
    return out
