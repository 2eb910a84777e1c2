"""Read-only relational store interface.

Brief:
  Records and the abstract NameStore used by the resolver. Concrete stores
  answer parameterized reads against a pre-materialized snapshot of names and
  namespaces; nothing here writes.

Inputs:
  - None

Outputs:
  - NameRecord, NamespaceRecord, NamespaceStats, CharacterClassCounts and the
    NameStore base class.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

# List filters understood by NameStore.count_names()/list_names().
NAME_FILTER_ALL = "all"
NAME_FILTER_VALID = "valid"
NAME_FILTER_EXPIRED = "expired"
NAME_FILTER_EXPIRING_SOON = "expiring-soon"
NAME_FILTER_REVOKED = "revoked"

NAME_FILTERS = (
    NAME_FILTER_ALL,
    NAME_FILTER_VALID,
    NAME_FILTER_EXPIRED,
    NAME_FILTER_EXPIRING_SOON,
    NAME_FILTER_REVOKED,
)

PRICING_FIELDS = (
    "price_function_base",
    "price_function_coeff",
    "price_function_buckets",
    "price_function_no_vowel_discount",
    "price_function_nonalpha_discount",
    "manager_transferable",
    "can_update_price_function",
)


@dataclass(frozen=True)
class NameRecord:
    """Immutable snapshot of one registered name."""

    name_string: str
    namespace_string: str
    owner: Optional[str] = None
    registered_at: Optional[int] = None
    renewal_height: int = 0
    stx_burn: Optional[int] = None
    revoked: bool = False
    imported_at: Optional[int] = None
    preordered_by: Optional[str] = None
    zonefile: Optional[str] = None
    id: Optional[int] = None

    @property
    def full_name(self) -> str:
        return f"{self.name_string}.{self.namespace_string}"

    def to_dict(self) -> Dict[str, Any]:
        """Public JSON view; the raw zonefile blob is not included."""
        return {
            "full_name": self.full_name,
            "name_string": self.name_string,
            "namespace_string": self.namespace_string,
            "owner": self.owner,
            "registered_at": self.registered_at,
            "renewal_height": self.renewal_height,
            "stx_burn": self.stx_burn,
            "revoked": self.revoked,
            "imported_at": self.imported_at,
            "preordered_by": self.preordered_by,
            "id": self.id,
        }


@dataclass(frozen=True)
class NamespaceRecord:
    """Immutable snapshot of one namespace and its renewal policy.

    Inputs:
      - namespace_string: Namespace identifier.
      - launched_at: Launch height; None while unlaunched.
      - lifetime: Blocks between renewals; 0 means no renewal needed.
      - namespace_manager: Manager address, None or the 'none' sentinel.
      - pricing: Opaque pricing parameters passed through to clients.
    """

    namespace_string: str
    launched_at: Optional[int] = None
    lifetime: int = 0
    namespace_manager: Optional[str] = None
    pricing: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "namespace_string": self.namespace_string,
            "launched_at": self.launched_at,
            "lifetime": self.lifetime,
            "namespace_manager": self.namespace_manager,
        }
        for key in PRICING_FIELDS:
            out[key] = self.pricing.get(key)
        return out


@dataclass(frozen=True)
class NamespaceStats:
    total_names: int = 0
    active_names: int = 0
    expired_names: int = 0
    revoked_names: int = 0
    first_registration: Optional[int] = None
    last_registration: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_names": self.total_names,
            "active_names": self.active_names,
            "expired_names": self.expired_names,
            "revoked_names": self.revoked_names,
            "first_registration": self.first_registration,
            "last_registration": self.last_registration,
        }


@dataclass(frozen=True)
class CharacterClassCounts:
    """Per-namespace aggregate counts used by the rarity scorer.

    Inputs:
      - total: Names in the namespace.
      - numeric: Names matching ^[0-9]+$.
      - letters: Names matching ^[a-z]+$.
      - special: Names containing a character outside [a-z0-9].
      - by_length: Name length -> number of names with that length.
    """

    total: int = 0
    numeric: int = 0
    letters: int = 0
    special: int = 0
    by_length: Dict[int, int] = field(default_factory=dict)

    def same_length(self, length: int) -> int:
        return int(self.by_length.get(int(length), 0))


class NameStore:
    """Abstract read interface over the names/namespaces snapshot.

    Every method takes the network's database schema name so one store can
    serve several networks. Implementations raise ResolverError subclasses
    for failures the client should see.
    """

    def get_name(self, schema: str, name: str, namespace: str) -> Optional[NameRecord]:
        raise NotImplementedError

    def get_name_by_id(self, schema: str, token_id: int) -> Optional[NameRecord]:
        raise NotImplementedError

    def get_namespace(self, schema: str, namespace: str) -> Optional[NamespaceRecord]:
        raise NotImplementedError

    def count_names(
        self,
        schema: str,
        *,
        status: str = NAME_FILTER_ALL,
        height: int = 0,
        owner: Optional[str] = None,
        namespace: Optional[str] = None,
    ) -> int:
        raise NotImplementedError

    def list_names(
        self,
        schema: str,
        *,
        status: str = NAME_FILTER_ALL,
        height: int = 0,
        owner: Optional[str] = None,
        namespace: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[NameRecord]:
        """Brief: List names matching a lifecycle filter.

        Inputs:
          - schema: Database schema of the network.
          - status: One of NAME_FILTERS.
          - height: Current chain height used by the lifecycle filters.
          - owner: Optional owner address filter.
          - namespace: Optional namespace filter.
          - limit: Maximum rows; None returns all matches.
          - offset: Rows to skip.

        Outputs:
          - List[NameRecord] ordered by full name; by name within a namespace
            filter; by effective renewal height for expiring-soon.
        """
        raise NotImplementedError

    def count_namespaces(self, schema: str) -> int:
        raise NotImplementedError

    def list_namespaces(
        self, schema: str, *, height: int, limit: int, offset: int = 0
    ) -> List[Tuple[NamespaceRecord, NamespaceStats]]:
        raise NotImplementedError

    def namespace_stats(self, schema: str, namespace: str, *, height: int) -> NamespaceStats:
        raise NotImplementedError

    def character_class_counts(self, schema: str, namespace: str) -> CharacterClassCounts:
        raise NotImplementedError

    def last_token_id(self, schema: str) -> int:
        raise NotImplementedError

    def check_health(self) -> bool:
        """Return True when a trivial probe against the store succeeds."""
        raise NotImplementedError

    def close(self) -> None:
        return None
