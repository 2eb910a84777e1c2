"""Resolution orchestrator.

Brief:
  Composes the store, height oracle, lifecycle engine, zonefile pipeline,
  external subdomain fetcher and rarity scorer to answer every read query of
  the HTTP surface. Each public method returns a ResponseEnvelope; failures
  are raised as ResolverError subclasses.

Inputs:
  - NameStore, HeightOracle, ExternalSubdomainFetcher and a CachePlugin.

Outputs:
  - ResponseEnvelope values ready for JSON encoding.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Hashable, List, Mapping, Optional, Tuple

from . import lifecycle
from .cache.base import CachePlugin
from .cache.ttls import resolve_ttls
from .chain.height import HeightOracle
from .errors import InvalidFormatError, NamespaceNotLaunchedError, NotFoundError
from .networks import NetworkConfig
from .rarity import rarity_metrics, score_name
from .store.base import (
    NAME_FILTER_ALL,
    NAME_FILTER_EXPIRED,
    NAME_FILTER_EXPIRING_SOON,
    NAME_FILTER_VALID,
    NameRecord,
    NamespaceRecord,
    NameStore,
)
from .subdomains.fetcher import ExternalSubdomainFetcher
from .zonefile.codec import decode
from .zonefile.profile import validate_profile
from .zonefile.validator import SOURCE_EXTERNAL, ZonefileDocument, load_zonefile

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 50
MAX_LIMIT = 100

NAME_UNAVAILABLE = "Name not found, expired or revoked"
PARENT_UNAVAILABLE = "Parent name not found, expired, or revoked"

# Filters whose result depends on the chain height.
_HEIGHT_DEPENDENT_FILTERS = frozenset(
    {NAME_FILTER_VALID, NAME_FILTER_EXPIRED, NAME_FILTER_EXPIRING_SOON}
)


@dataclass(frozen=True)
class ResponseEnvelope:
    """JSON response body plus its optional network tag and HTTP status.

    Inputs:
      - body: Response fields.
      - network: Network tag; None for mainnet, in which case the field is
        omitted from the JSON.
      - status_code: HTTP status (200 unless the query reports a soft failure).
    """

    body: Dict[str, Any]
    network: Optional[str] = None
    status_code: int = 200

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        if self.network is not None:
            out["network"] = self.network
        out.update(self.body)
        return out


def parse_full_name(full_name: str) -> Tuple[str, str]:
    """Brief: Split 'name.namespace' into its two parts.

    Inputs:
      - full_name: Fully qualified name.

    Outputs:
      - (name, namespace)

    Raises:
      - InvalidFormatError: when the input is not exactly two non-empty labels.

    Example:
      >>> parse_full_name("satoshi.btc")
      ('satoshi', 'btc')
    """

    parts = str(full_name).split(".")
    if len(parts) != 2 or not all(parts):
        raise InvalidFormatError("Invalid name format")
    return parts[0], parts[1]


def parse_full_subdomain(full_subdomain: str) -> Tuple[str, str, str]:
    """Split 'label.name.namespace' into (label, name, namespace)."""
    label, sep, parent = str(full_subdomain).partition(".")
    if not sep or not label:
        raise InvalidFormatError("Invalid subdomain format")
    try:
        name, namespace = parse_full_name(parent)
    except InvalidFormatError:
        raise InvalidFormatError("Invalid parent name format") from None
    return label, name, namespace


def _summary(record: NameRecord) -> Dict[str, Any]:
    return {
        "full_name": record.full_name,
        "name_string": record.name_string,
        "namespace_string": record.namespace_string,
        "owner": record.owner,
        "registered_at": record.registered_at,
        "renewal_height": record.renewal_height,
        "stx_burn": record.stx_burn,
        "revoked": record.revoked,
    }


class Resolver:
    """Answers the read-only name, namespace, token and resolution queries.

    Inputs (constructor):
      - store: NameStore over the names/namespaces snapshot.
      - height_oracle: HeightOracle for the current chain height.
      - fetcher: ExternalSubdomainFetcher for external subdomain files.
      - cache: Root CachePlugin; each network uses its own namespaced view.
      - ttls: Optional overrides of cache.ttls.DEFAULT_TTLS.
      - max_limit: Upper bound applied to list page sizes.

    Outputs:
      - Resolver instance.
    """

    def __init__(
        self,
        store: NameStore,
        height_oracle: HeightOracle,
        fetcher: ExternalSubdomainFetcher,
        cache: CachePlugin,
        *,
        ttls: Optional[Mapping[str, Any]] = None,
        max_limit: int = MAX_LIMIT,
    ) -> None:
        self.store = store
        self.height_oracle = height_oracle
        self.fetcher = fetcher
        self.cache = cache
        self.ttls = resolve_ttls(ttls)
        self.max_limit = int(max_limit)
        self._views: Dict[str, CachePlugin] = {}

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _cache_for(self, network: NetworkConfig) -> CachePlugin:
        view = self._views.get(network.cache_namespace)
        if view is None:
            view = self.cache.with_namespace(network.cache_namespace)
            self._views[network.cache_namespace] = view
        return view

    def _memo(
        self,
        network: NetworkConfig,
        kind: str,
        key: Hashable,
        compute: Callable[[], Any],
    ) -> Any:
        """Return the cached value for (kind, key) or compute and cache it.

        None results are never cached so a missing record is re-read.
        """

        cache = self._cache_for(network)
        full_key = (kind, key)
        hit = cache.get(full_key)
        if hit is not None:
            return hit
        value = compute()
        if value is not None:
            cache.set(full_key, self.ttls[kind], value)
        return value

    def _respond(
        self, network: NetworkConfig, body: Dict[str, Any], status_code: int = 200
    ) -> ResponseEnvelope:
        return ResponseEnvelope(body=body, network=network.response_tag, status_code=status_code)

    def _page(self, limit: Optional[int], offset: Optional[int]) -> Tuple[int, int]:
        lim = DEFAULT_LIMIT if limit is None else int(limit)
        off = 0 if offset is None else int(offset)
        if lim < 0 or off < 0:
            raise InvalidFormatError("limit and offset must be non-negative")
        return min(lim, self.max_limit), off

    def current_height(self, network: NetworkConfig) -> int:
        return self.height_oracle.get_current_height(network)

    def _name(self, network: NetworkConfig, name: str, namespace: str) -> Optional[NameRecord]:
        return self._memo(
            network,
            "name_info",
            (name, namespace),
            lambda: self.store.get_name(network.schema, name, namespace),
        )

    def _namespace(self, network: NetworkConfig, namespace: str) -> Optional[NamespaceRecord]:
        return self._memo(
            network,
            "namespace_info",
            namespace,
            lambda: self.store.get_namespace(network.schema, namespace),
        )

    def _require_namespace(self, network: NetworkConfig, namespace: str) -> NamespaceRecord:
        record = self._namespace(network, namespace)
        if record is None:
            raise NotFoundError("Namespace not found")
        return record

    def _lifecycle_of(
        self, network: NetworkConfig, record: NameRecord, height: int
    ) -> Optional[lifecycle.NameLifecycle]:
        """Lifecycle of record, or None when its namespace is absent or unlaunched."""
        namespace = self._namespace(network, record.namespace_string)
        if namespace is None:
            return None
        try:
            return lifecycle.evaluate(record, namespace, height)
        except NamespaceNotLaunchedError:
            return None

    # ------------------------------------------------------------------
    # Name lists
    # ------------------------------------------------------------------
    def _count(
        self,
        network: NetworkConfig,
        status: str,
        height: int,
        owner: Optional[str] = None,
        namespace: Optional[str] = None,
    ) -> int:
        height_key = height if status in _HEIGHT_DEPENDENT_FILTERS else None
        return self._memo(
            network,
            "name_count",
            (status, height_key, owner, namespace),
            lambda: self.store.count_names(
                network.schema, status=status, height=height, owner=owner, namespace=namespace
            ),
        )

    def _name_list(
        self,
        network: NetworkConfig,
        status: str,
        limit: Optional[int],
        offset: Optional[int],
        *,
        owner: Optional[str] = None,
        namespace: Optional[str] = None,
    ) -> Dict[str, Any]:
        lim, off = self._page(limit, offset)

        def compute() -> Dict[str, Any]:
            height = self.current_height(network)
            records = self.store.list_names(
                network.schema,
                status=status,
                height=height,
                owner=owner,
                namespace=namespace,
                limit=lim,
                offset=off,
            )
            rows: List[Dict[str, Any]] = []
            for record in records:
                row = _summary(record)
                if status == NAME_FILTER_ALL:
                    lc = self._lifecycle_of(network, record, height)
                    row["is_valid"] = bool(lc and lc.resolvable)
                elif status == NAME_FILTER_EXPIRING_SOON:
                    lc = self._lifecycle_of(network, record, height)
                    row["blocks_until_expiry"] = lc.blocks_until_expiry if lc else 0
                rows.append(row)
            return {
                "total": self._count(network, status, height, owner, namespace),
                "current_burn_block": height,
                "limit": lim,
                "offset": off,
                "names": rows,
            }

        return self._memo(network, "name_list", (status, owner, namespace, lim, off), compute)

    def list_names(
        self,
        network: NetworkConfig,
        status: str = NAME_FILTER_ALL,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> ResponseEnvelope:
        """List every name, or only valid / expired / revoked ones."""
        return self._respond(network, self._name_list(network, status, limit, offset))

    def names_by_address(
        self,
        network: NetworkConfig,
        address: str,
        status: str,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> ResponseEnvelope:
        """List names owned by address in one lifecycle bucket."""
        body = self._name_list(network, status, limit, offset, owner=address)
        return self._respond(network, body)

    def names_by_namespace(
        self,
        network: NetworkConfig,
        namespace: str,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> ResponseEnvelope:
        self._require_namespace(network, namespace)
        body = self._name_list(network, NAME_FILTER_ALL, limit, offset, namespace=namespace)
        return self._respond(network, body)

    # ------------------------------------------------------------------
    # Single names
    # ------------------------------------------------------------------
    def name_details(self, network: NetworkConfig, full_name: str) -> ResponseEnvelope:
        name, ns = parse_full_name(full_name)
        height = self.current_height(network)
        namespace = self._require_namespace(network, ns)
        record = self._name(network, name, ns)
        if record is None:
            raise NotFoundError("Name not found")

        lc = lifecycle.evaluate(record, namespace, height)
        data = record.to_dict()
        data["is_valid"] = lc.resolvable
        return self._respond(
            network,
            {
                "current_burn_block": height,
                "status": lc.status,
                "is_managed": lc.is_managed,
                "data": data,
            },
        )

    def name_renewal(self, network: NetworkConfig, full_name: str) -> ResponseEnvelope:
        name, ns = parse_full_name(full_name)
        height = self.current_height(network)
        namespace = self._require_namespace(network, ns)
        record = self._name(network, name, ns)
        if record is None:
            raise NotFoundError("Name not found")

        lc = lifecycle.evaluate(record, namespace, height)
        return self._respond(
            network,
            {
                "current_burn_block": height,
                "renewal_height": lc.renewal_height,
                "blocks_until_expiry": lc.blocks_until_expiry,
                "status": lc.status,
                "needs_renewal": lc.needs_renewal,
                "is_managed": lc.is_managed,
            },
        )

    def can_resolve(self, network: NetworkConfig, full_name: str) -> ResponseEnvelope:
        name, ns = parse_full_name(full_name)
        height = self.current_height(network)
        namespace = self._require_namespace(network, ns)
        if namespace.launched_at is None:
            raise NamespaceNotLaunchedError()
        record = self._name(network, name, ns)
        if record is None:
            raise NotFoundError("Name not found")

        if record.revoked:
            return self._respond(
                network,
                {"can_resolve": False, "error": "Name is revoked", "current_burn_block": height},
            )

        lc = lifecycle.evaluate(record, namespace, height)
        body: Dict[str, Any] = {
            "can_resolve": lc.resolvable,
            "renewal_height": lc.renewal_height,
            "owner": record.owner,
            "current_burn_block": height,
        }
        if not lc.resolvable:
            body["error"] = "Name expired"
        return self._respond(network, body)

    def name_owner(self, network: NetworkConfig, full_name: str) -> ResponseEnvelope:
        name, ns = parse_full_name(full_name)
        height = self.current_height(network)
        record = self._name(network, name, ns)
        if record is None:
            raise NotFoundError("Name not found")
        namespace = self._require_namespace(network, ns)

        lc = lifecycle.evaluate(record, namespace, height)
        return self._respond(
            network,
            {
                "owner": record.owner,
                "current_burn_block": height,
                "renewal_height": lc.renewal_height,
                "status": lc.status,
            },
        )

    def name_id(self, network: NetworkConfig, full_name: str) -> ResponseEnvelope:
        name, ns = parse_full_name(full_name)
        record = self._name(network, name, ns)
        if record is None:
            raise NotFoundError("Name not found")
        return self._respond(network, {"name": name, "namespace": ns, "id": record.id})

    def name_rarity(self, network: NetworkConfig, full_name: str) -> ResponseEnvelope:
        name, ns = parse_full_name(full_name)
        if self._name(network, name, ns) is None:
            raise NotFoundError("Name not found")

        def compute() -> Dict[str, Any]:
            counts = self.store.character_class_counts(network.schema, ns)
            return {"name": name, "namespace": ns, "metrics": rarity_metrics(name, counts)}

        return self._respond(network, self._memo(network, "rarity", ("name", name, ns), compute))

    def can_register(self, network: NetworkConfig, namespace_id: str, name: str) -> ResponseEnvelope:
        """Brief: Report whether name can be registered in namespace_id.

        Inputs:
          - network: NetworkConfig.
          - namespace_id: Namespace string.
          - name: Name string.

        Outputs:
          - ResponseEnvelope with can_register and one reason code:
            NAMESPACE_NOT_FOUND (404), NAMESPACE_NOT_LAUNCHED, NAME_AVAILABLE,
            NAME_IMPORTED, NAME_EXPIRED or NAME_TAKEN.
        """

        height = self.current_height(network)
        namespace = self._namespace(network, namespace_id)
        if namespace is None:
            return self._respond(
                network,
                {
                    "error": "Namespace not found",
                    "can_register": False,
                    "reason": "NAMESPACE_NOT_FOUND",
                },
                status_code=404,
            )
        if namespace.launched_at is None:
            return self._respond(
                network, {"can_register": False, "reason": "NAMESPACE_NOT_LAUNCHED"}
            )

        record = self._name(network, name, namespace_id)
        if record is None:
            return self._respond(network, {"can_register": True, "reason": "NAME_AVAILABLE"})
        if record.imported_at is not None:
            return self._respond(
                network,
                {"can_register": False, "reason": "NAME_IMPORTED", "current_owner": record.owner},
            )

        lc = lifecycle.evaluate(record, namespace, height)
        if lc.status == lifecycle.STATUS_EXPIRED:
            return self._respond(
                network,
                {
                    "can_register": True,
                    "reason": "NAME_EXPIRED",
                    "previous_owner": record.owner,
                    "expired_at": lc.renewal_height,
                },
            )
        return self._respond(
            network,
            {"can_register": False, "reason": "NAME_TAKEN", "current_owner": record.owner},
        )

    # ------------------------------------------------------------------
    # Namespaces
    # ------------------------------------------------------------------
    def list_namespaces(
        self, network: NetworkConfig, limit: Optional[int] = None, offset: Optional[int] = None
    ) -> ResponseEnvelope:
        lim, off = self._page(limit, offset)

        def compute() -> Dict[str, Any]:
            height = self.current_height(network)
            total = self._memo(
                network,
                "namespace_count",
                "all",
                lambda: self.store.count_namespaces(network.schema),
            )
            rows = []
            for record, stats in self.store.list_namespaces(
                network.schema, height=height, limit=lim, offset=off
            ):
                row = record.to_dict()
                row["total_names"] = stats.total_names
                row["active_names"] = stats.active_names
                rows.append(row)
            return {
                "total": total,
                "current_burn_block": height,
                "limit": lim,
                "offset": off,
                "namespaces": rows,
            }

        return self._respond(network, self._memo(network, "namespace_list", (lim, off), compute))

    def namespace_details(self, network: NetworkConfig, namespace: str) -> ResponseEnvelope:
        def compute() -> Optional[Dict[str, Any]]:
            record = self.store.get_namespace(network.schema, namespace)
            if record is None:
                return None
            height = self.current_height(network)
            stats = self.store.namespace_stats(network.schema, namespace, height=height)
            detail = record.to_dict()
            detail.update(stats.to_dict())
            return {"current_burn_block": height, "namespace": detail}

        body = self._memo(network, "namespace_list", ("detail", namespace), compute)
        if body is None:
            raise NotFoundError("Namespace not found")
        return self._respond(network, body)

    def rare_names(
        self,
        network: NetworkConfig,
        namespace: str,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> ResponseEnvelope:
        """Brief: Valid names of namespace ranked rarest first.

        Inputs:
          - network: NetworkConfig.
          - namespace: Namespace string.
          - limit/offset: Page over the ranking.

        Outputs:
          - ResponseEnvelope with total, current_burn_block and rare_names
            ordered by score, then length, then name.
        """

        self._require_namespace(network, namespace)
        lim, off = self._page(limit, offset)

        def compute() -> Dict[str, Any]:
            height = self.current_height(network)
            counts = self.store.character_class_counts(network.schema, namespace)
            records = self.store.list_names(
                network.schema, status=NAME_FILTER_VALID, height=height, namespace=namespace
            )
            scored = sorted(
                ((score_name(r.name_string, counts), r) for r in records),
                key=lambda pair: (pair[0].raw_score, len(pair[1].name_string), pair[1].name_string),
            )
            rows = [
                {
                    "name_string": r.name_string,
                    "namespace_string": r.namespace_string,
                    "owner": r.owner,
                    "name_length": len(r.name_string),
                    "is_palindrome": s.is_palindrome,
                    "rarity_score": s.score,
                    "rarity_classification": s.classification,
                }
                for s, r in scored[off : off + lim]
            ]
            return {
                "total": len(scored),
                "current_burn_block": height,
                "limit": lim,
                "offset": off,
                "rare_names": rows,
            }

        body = self._memo(network, "rarity", ("namespace", namespace, lim, off), compute)
        return self._respond(network, body)

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------
    def last_token_id(self, network: NetworkConfig) -> ResponseEnvelope:
        last = self._memo(
            network, "last_token_id", "last", lambda: self.store.last_token_id(network.schema)
        )
        return self._respond(network, {"last_token_id": last})

    def _token(self, network: NetworkConfig, token_id: int) -> NameRecord:
        record = self._memo(
            network,
            "token_data",
            ("record", int(token_id)),
            lambda: self.store.get_name_by_id(network.schema, int(token_id)),
        )
        if record is None:
            raise NotFoundError("Token ID not found")
        return record

    def token_owner(self, network: NetworkConfig, token_id: int) -> ResponseEnvelope:
        record = self._token(network, token_id)
        height = self.current_height(network)
        namespace = self._require_namespace(network, record.namespace_string)
        lc = lifecycle.evaluate(record, namespace, height)
        return self._respond(
            network,
            {
                "owner": record.owner,
                "name": record.name_string,
                "namespace": record.namespace_string,
                "current_burn_block": height,
                "renewal_height": lc.renewal_height,
                "status": lc.status,
            },
        )

    def token_name(self, network: NetworkConfig, token_id: int) -> ResponseEnvelope:
        record = self._token(network, token_id)
        return self._respond(
            network,
            {
                "id": int(token_id),
                "name": record.name_string,
                "namespace": record.namespace_string,
                "full_name": record.full_name,
            },
        )

    def token_info(self, network: NetworkConfig, token_id: int) -> ResponseEnvelope:
        record = self._token(network, token_id)
        height = self.current_height(network)
        lc = self._lifecycle_of(network, record, height)
        data = record.to_dict()
        data["is_valid"] = bool(lc and lc.resolvable)
        if lc is not None:
            status = lc.status
        else:
            status = lifecycle.STATUS_REVOKED if record.revoked else lifecycle.STATUS_EXPIRED
        return self._respond(
            network, {"current_burn_block": height, "status": status, "data": data}
        )

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------
    def _resolvable_record(
        self, network: NetworkConfig, name: str, ns: str, unavailable: str
    ) -> NameRecord:
        record = self._name(network, name, ns)
        if record is None or record.owner is None:
            raise NotFoundError(unavailable)
        namespace = self._namespace(network, ns)
        if namespace is None:
            raise NotFoundError(unavailable)
        lc = lifecycle.evaluate(record, namespace, self.current_height(network))
        if not lc.resolvable:
            raise NotFoundError(unavailable)
        return record

    def _resolved_zonefile(
        self, network: NetworkConfig, name: str, ns: str, unavailable: str = NAME_UNAVAILABLE
    ) -> ZonefileDocument:
        record = self._resolvable_record(network, name, ns, unavailable)
        return load_zonefile(record.zonefile, record.owner)

    def _subdomain_source(self, document: ZonefileDocument) -> Any:
        if document.source == SOURCE_EXTERNAL:
            return self.fetcher.fetch(document.external_url)["subdomains"]
        return document.subdomains

    def resolve_name(self, network: NetworkConfig, full_name: str) -> ResponseEnvelope:
        """Return the validated, owner-checked zonefile of a resolvable name."""
        name, ns = parse_full_name(full_name)
        document = self._resolved_zonefile(network, name, ns)
        return self._respond(network, {"zonefile": document.data})

    def btc_address(self, network: NetworkConfig, full_name: str) -> ResponseEnvelope:
        name, ns = parse_full_name(full_name)
        document = self._resolved_zonefile(network, name, ns)
        if not document.has_btc_address():
            raise NotFoundError("No BTC address set in zonefile")
        return self._respond(network, {"btc": document.btc})

    def subdomains(self, network: NetworkConfig, full_name: str) -> ResponseEnvelope:
        """Brief: Inline or external subdomains of a resolvable name.

        Inputs:
          - network: NetworkConfig.
          - full_name: 'name.namespace'.

        Outputs:
          - ResponseEnvelope with 'subdomains'. Legacy zonefiles yield their
            ordered list; Current zonefiles yield a label -> record map.
        """

        name, ns = parse_full_name(full_name)

        def compute() -> Dict[str, Any]:
            document = self._resolved_zonefile(network, name, ns)
            return {"subdomains": self._subdomain_source(document)}

        body = self._memo(network, "subdomain_list", ("list", name, ns), compute)
        return self._respond(network, body)

    def _subdomain_record(self, network: NetworkConfig, full_subdomain: str) -> Dict[str, Any]:
        label, name, ns = parse_full_subdomain(full_subdomain)

        def compute() -> Dict[str, Any]:
            document = self._resolved_zonefile(network, name, ns, PARENT_UNAVAILABLE)
            source = self._subdomain_source(document)
            if isinstance(source, dict):
                record = source.get(label)
            else:
                record = next(
                    (e for e in source or () if isinstance(e, dict) and e.get("name") == label),
                    None,
                )
            if record is None:
                raise NotFoundError("Subdomain not found")
            return record

        return self._memo(network, "subdomain_list", ("single", full_subdomain), compute)

    def subdomain(self, network: NetworkConfig, full_subdomain: str) -> ResponseEnvelope:
        record = self._subdomain_record(network, full_subdomain)
        return self._respond(network, {"subdomain": full_subdomain, "data": record})

    def subdomain_owner(self, network: NetworkConfig, full_subdomain: str) -> ResponseEnvelope:
        record = self._subdomain_record(network, full_subdomain)
        return self._respond(network, {"subdomain": full_subdomain, "owner": record.get("owner")})

    def _decoded_zonefile(self, network: NetworkConfig, name: str, ns: str) -> Tuple[NameRecord, Any]:
        record = self._resolvable_record(network, name, ns, NAME_UNAVAILABLE)
        if not record.zonefile:
            raise NotFoundError("No zonefile found for this name")
        decoded = decode(record.zonefile)
        if not decoded:
            raise InvalidFormatError("Unable to decode zonefile")
        return record, decoded

    @staticmethod
    def _check_decoded_owner(decoded: Any, owner: Optional[str]) -> None:
        embedded = decoded.get("owner") if isinstance(decoded, dict) else None
        if embedded != owner:
            raise InvalidFormatError("Zonefile owner does not match name owner")

    def raw_zonefile(self, network: NetworkConfig, full_name: str) -> ResponseEnvelope:
        name, ns = parse_full_name(full_name)

        def compute() -> Dict[str, Any]:
            record, decoded = self._decoded_zonefile(network, name, ns)
            self._check_decoded_owner(decoded, record.owner)
            return {"full_name": record.full_name, "zonefile": decoded}

        body = self._memo(network, "zonefile_data", ("raw", name, ns), compute)
        return self._respond(network, body)

    def profile_zonefile(self, network: NetworkConfig, full_name: str) -> ResponseEnvelope:
        name, ns = parse_full_name(full_name)

        def compute() -> Dict[str, Any]:
            record, decoded = self._decoded_zonefile(network, name, ns)
            validate_profile(decoded)
            self._check_decoded_owner(decoded, record.owner)
            return {
                "full_name": record.full_name,
                "profile": decoded,
                "validation": {"valid": True, "format": "profile"},
            }

        body = self._memo(network, "zonefile_data", ("profile", name, ns), compute)
        return self._respond(network, body)

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------
    def health(self) -> ResponseEnvelope:
        if self.store.check_health():
            return ResponseEnvelope({"status": "healthy", "database": "healthy"})
        logger.warning("Health endpoint reporting unhealthy database")
        return ResponseEnvelope(
            {
                "status": "unhealthy",
                "database": "unhealthy",
                "message": "Database connection issue",
            },
            status_code=503,
        )
