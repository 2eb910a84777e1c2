"""Chain height oracle.

Brief:
  Fetches the current burn-chain height for a network from its chain API and
  caches it for a short TTL. The height is the clock used by the name
  lifecycle engine.

Inputs:
  - NetworkConfig describing the API base URL.
  - CachePlugin used for the per-network height entry.

Outputs:
  - int heights; UpstreamUnavailableError on any upstream failure.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import requests

from ..cache.base import CachePlugin
from ..errors import UpstreamUnavailableError
from ..networks import NetworkConfig

logger = logging.getLogger(__name__)

HEIGHT_CACHE_KEY = "burn_block_height"
DEFAULT_HEIGHT_TTL = 60
BURN_BLOCKS_PATH = "/extended/v2/burn-blocks?limit=1"


def parse_height_payload(payload: Any) -> int:
    """
    Brief: Extract the latest burn block height from a burn-blocks payload.

    Inputs:
    - payload: Decoded JSON body of the burn-blocks endpoint.

    Outputs:
    - int: results[0].burn_block_height

    Raises:
    - ValueError: When the payload is not shaped as expected.

    Example:
        >>> parse_height_payload({"results": [{"burn_block_height": 871000}]})
        871000
    """
    try:
        height = payload["results"][0]["burn_block_height"]
    except (KeyError, IndexError, TypeError) as exc:
        raise ValueError(f"malformed burn-blocks payload: {exc!r}") from exc
    if isinstance(height, bool) or not isinstance(height, int):
        raise ValueError(f"burn_block_height is not an integer: {height!r}")
    return height


class HeightOracle:
    """Cached, per-network source of the current chain height.

    Inputs (constructor):
      - cache: CachePlugin (already namespaced or shared; keys are qualified
        with the network name).
      - session: Optional requests.Session-like object exposing get().
      - ttl: Seconds a fetched height stays fresh.
      - timeout: Optional transport timeout in seconds for the GET.

    Outputs:
      - HeightOracle instance.

    Notes:
      - A miss issues exactly one GET; there is no retry and no fallback to a
        stale height. Concurrent misses may each fetch; the result is
        idempotent.
    """

    def __init__(
        self,
        cache: CachePlugin,
        *,
        session: Optional[Any] = None,
        ttl: int = DEFAULT_HEIGHT_TTL,
        timeout: Optional[float] = 10.0,
    ) -> None:
        self.cache = cache
        self.session = session if session is not None else requests.Session()
        self.ttl = int(ttl)
        self.timeout = timeout

    def get_current_height(self, network: NetworkConfig) -> int:
        """Brief: Return the current height for network, fetching on cache miss.

        Inputs:
          - network: NetworkConfig whose api_url is queried.

        Outputs:
          - int height.

        Raises:
          - UpstreamUnavailableError: non-2xx, transport failure or malformed
            payload.
        """

        key = (network.cache_namespace, HEIGHT_CACHE_KEY)
        cached = self.cache.get(key)
        if cached is not None:
            return int(cached)

        url = f"{network.api_url}{BURN_BLOCKS_PATH}"
        try:
            resp = self.session.get(url, timeout=self.timeout)
        except requests.RequestException as exc:
            logger.error("Height oracle request failed for %s: %s", network.name, exc)
            raise UpstreamUnavailableError("Unable to fetch current burn block height") from exc

        if not 200 <= int(resp.status_code) < 300:
            logger.error(
                "Height oracle for %s returned HTTP %s", network.name, resp.status_code
            )
            raise UpstreamUnavailableError("Unable to fetch current burn block height")

        try:
            height = parse_height_payload(resp.json())
        except ValueError as exc:
            logger.error("Height oracle for %s sent bad payload: %s", network.name, exc)
            raise UpstreamUnavailableError("Unable to fetch current burn block height") from exc

        self.cache.set(key, self.ttl, height)
        logger.debug("Fetched %s burn block height %d", network.name, height)
        return height
