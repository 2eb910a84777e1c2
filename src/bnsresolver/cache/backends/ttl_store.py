""" TTL store where each entry has its own TTL.

Brief:
  Thread-safe in-memory key/value store where each entry has an independent
  TTL and an optional capacity bound.

Notes:
  - Expired entries are removed lazily on get() and opportunistically on
    set(); nothing is ever invalidated eagerly.
  - Entries are replaced wholesale on set(); values are never mutated in
    place, so concurrent readers always see a complete value.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Dict, Hashable, Optional, Tuple

_logger = logging.getLogger(__name__)


class TTLStore:
    """Thread-safe in-memory store with per-entry TTL and optional eviction.

    Brief:
        The store can optionally be namespaced. Namespaced views share one
        backing dictionary and lock, which lets each network keep its own key
        space while the process keeps a single physical cache.

    Inputs:
        - namespace: Optional string namespace. When set, keys are stored
          internally under (namespace, key).
        - maxsize: Optional positive capacity bound shared by all views.
        - eviction_policy: "none", "lru" or "fifo" (used only with maxsize).

    Outputs:
        TTLStore instance

    Example use:
        >>> from bnsresolver.cache.backends.ttl_store import TTLStore
        >>> store = TTLStore()
        >>> store.set("name_info:alice.btc", 60, {"owner": "SP..."})
        >>> store.get("name_info:alice.btc")
        {'owner': 'SP...'}
        >>> mainnet = store.with_namespace("mainnet")
        >>> mainnet.get("name_info:alice.btc") is None
        True
    """

    def __init__(
        self,
        namespace: str | None = None,
        *,
        maxsize: Optional[int] = None,
        eviction_policy: str = "none",
        _store: Optional[Dict[Hashable, Tuple[float, Any]]] = None,
        _ttls: Optional[Dict[Hashable, int]] = None,
        _order: Optional[Dict[Hashable, int]] = None,
        _lock: Optional[threading.RLock] = None,
    ) -> None:
        ns = None
        if namespace is not None:
            s = str(namespace).strip()
            ns = s if s else None
        self.namespace: str | None = ns

        # Backing dictionaries are optionally injected so namespaced views
        # share the same store, ordering metadata and lock.
        self._store: Dict[Hashable, Tuple[float, Any]] = (
            {} if _store is None else _store
        )
        self._ttls: Dict[Hashable, int] = {} if _ttls is None else _ttls
        self._order: Dict[Hashable, int] = {} if _order is None else _order
        self._lock = threading.RLock() if _lock is None else _lock

        try:
            self._maxsize: Optional[int] = int(maxsize) if maxsize is not None else None
        except (TypeError, ValueError):
            self._maxsize = None
        if isinstance(self._maxsize, int) and self._maxsize <= 0:
            self._maxsize = None

        self._eviction_policy: str = (eviction_policy or "none").strip().lower()
        self._op_counter: int = 0

    def _ns_key(self, key: Hashable) -> Hashable:
        if self.namespace is None:
            return key
        return (self.namespace, key)

    def _touch_locked(self, ns_key: Hashable, *, inserted: bool) -> None:
        self._op_counter += 1
        if inserted or self._eviction_policy == "lru":
            self._order[ns_key] = self._op_counter

    def with_namespace(self, namespace: str) -> "TTLStore":
        """Brief: Return a namespaced view sharing the same backing store.

        Inputs:
            namespace: Namespace identifier (for example a network name).

        Outputs:
            TTLStore view that shares backing store, capacity and lock.
        """

        return TTLStore(
            namespace=namespace,
            maxsize=self._maxsize,
            eviction_policy=self._eviction_policy,
            _store=self._store,
            _ttls=self._ttls,
            _order=self._order,
            _lock=self._lock,
        )

    def get(self, key: Hashable) -> Any | None:
        """Brief: Return the value for key when present and not expired.

        Inputs:
            key: The key to retrieve.

        Outputs:
            The cached value, or None if the key is missing or expired.
        """
        now = time.time()
        ns_key = self._ns_key(key)
        with self._lock:
            entry = self._store.get(ns_key)
            if entry is None:
                return None

            expiry, data = entry
            if now >= expiry:
                self._drop_locked(ns_key)
                _logger.debug(
                    "TTLStore stale eviction: ns=%r key=%r", self.namespace, key
                )
                return None

            self._touch_locked(ns_key, inserted=False)
            return data

    def get_with_meta(
        self, key: Hashable
    ) -> Tuple[Any | None, Optional[float], Optional[int]]:
        """Brief: Return cached value plus seconds_remaining and original TTL.

        Inputs:
            key: Cache key.

        Outputs:
            Tuple of (value_or_None, seconds_remaining_or_None, ttl_or_None).
            Expired entries are reported as missing.
        """

        now = time.time()
        ns_key = self._ns_key(key)
        with self._lock:
            entry = self._store.get(ns_key)
            if entry is None:
                return None, None, None
            expiry, data = entry
            if now >= expiry:
                return None, None, None
            ttl = self._ttls.get(ns_key)
            return data, float(expiry - now), int(ttl) if ttl is not None else None

    def set(self, key: Hashable, ttl: int, data: Any) -> None:
        """Brief: Store data under key for ttl seconds, replacing any entry.

        Inputs:
            key: The key to store the value under.
            ttl: Time-To-Live in seconds; negative values are clamped to 0.
            data: The value to store.

        Outputs:
            None
        """
        ttl_int = max(0, int(ttl))
        expiry = time.time() + ttl_int
        ns_key = self._ns_key(key)
        with self._lock:
            is_new = ns_key not in self._store
            self._store[ns_key] = (expiry, data)
            self._ttls[ns_key] = ttl_int
            self._touch_locked(ns_key, inserted=is_new)
            self._purge_expired_locked(now=time.time(), namespace=self.namespace)

            if isinstance(self._maxsize, int):
                over = len(self._store) - self._maxsize
                if over > 0:
                    self._evict_locked(over)

    def purge_expired(self) -> int:
        """Brief: Remove all expired entries in this view's namespace.

        Inputs:
            None

        Outputs:
            Number of entries removed.
        """
        with self._lock:
            return self._purge_expired_locked(now=time.time(), namespace=self.namespace)

    def __len__(self) -> int:
        with self._lock:
            if self.namespace is None:
                return len(self._store)
            return sum(
                1
                for k in self._store
                if isinstance(k, tuple) and len(k) == 2 and k[0] == self.namespace
            )

    def _drop_locked(self, ns_key: Hashable) -> None:
        self._store.pop(ns_key, None)
        self._ttls.pop(ns_key, None)
        self._order.pop(ns_key, None)

    def _purge_expired_locked(self, now: float, namespace: str | None = None) -> int:
        removed = 0
        for k, (exp, _) in list(self._store.items()):
            if namespace is not None:
                if not (isinstance(k, tuple) and len(k) == 2 and k[0] == namespace):
                    continue
            if exp <= now:
                self._drop_locked(k)
                removed += 1
        return removed

    def _evict_locked(self, to_evict: int) -> int:
        """Brief: Evict up to to_evict entries according to eviction_policy.

        Inputs:
          - to_evict: Positive number of entries to evict.

        Outputs:
          - int: Number of entries actually evicted.

        Notes:
          - "fifo" evicts by insertion order, "lru" by last access; with
            "none" the bound is advisory and nothing is evicted.
        """

        if self._eviction_policy not in {"lru", "fifo"}:
            return 0
        victims = sorted(self._store.keys(), key=lambda k: self._order.get(k, 0))
        evicted = 0
        for k in victims[:to_evict]:
            self._drop_locked(k)
            evicted += 1
        return evicted
