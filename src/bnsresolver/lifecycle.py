"""Name lifecycle engine.

Brief:
  Derives a name's status, resolvability and renewal information from its
  record, its namespace record and the current chain height.

Inputs:
  - NameRecord, NamespaceRecord and an integer height.

Outputs:
  - NameLifecycle values; NamespaceNotLaunchedError for unlaunched namespaces.

Notes:
  - The status buckets below are the only definition of validity. SQL list
    filters in the store are generated from the same constants.
"""

from __future__ import annotations

from dataclasses import dataclass

from .errors import NamespaceNotLaunchedError
from .store.base import NameRecord, NamespaceRecord

GRACE_PERIOD = 5000
EXPIRING_SOON_WINDOW = 4320

STATUS_ACTIVE = "active"
STATUS_GRACE_PERIOD = "grace-period"
STATUS_EXPIRING_SOON = "expiring-soon"
STATUS_EXPIRED = "expired"
STATUS_REVOKED = "revoked"
STATUS_NOT_FOUND = "not_found"

RESOLVABLE_STATUSES = frozenset(
    {STATUS_ACTIVE, STATUS_EXPIRING_SOON, STATUS_GRACE_PERIOD}
)


@dataclass(frozen=True)
class NameLifecycle:
    """Derived lifecycle view of a single name at a given height.

    Inputs:
      - status: One of the STATUS_* constants.
      - resolvable: True when zonefile resolution is allowed.
      - renewal_height: Effective renewal height; 0 when perpetual or revoked.
      - needs_renewal: True inside the expiring-soon and grace-period windows.
      - is_managed: True when the namespace has a manager.
      - blocks_until_expiry: Blocks left before renewal_height; 0 when past it
        or perpetual.
    """

    status: str
    resolvable: bool
    renewal_height: int
    needs_renewal: bool
    is_managed: bool
    blocks_until_expiry: int

    @property
    def perpetual(self) -> bool:
        return self.status == STATUS_ACTIVE and self.renewal_height == 0


def is_managed(namespace: NamespaceRecord) -> bool:
    """Return True when namespace has a manager other than the 'none' sentinel."""
    manager = namespace.namespace_manager
    return manager is not None and manager != "none"


def effective_renewal_height(name: NameRecord, namespace: NamespaceRecord) -> int:
    """Brief: Renewal height used for classification.

    Inputs:
      - name: NameRecord.
      - namespace: Launched NamespaceRecord of the name.

    Outputs:
      - int: launched_at + lifetime for imported names still carrying the 0
        placeholder, otherwise the stored renewal_height.

    Example:
      >>> ns = NamespaceRecord("btc", launched_at=100, lifetime=50)
      >>> effective_renewal_height(NameRecord("a", "btc", imported_at=90), ns)
      150
    """

    if name.renewal_height == 0 and name.imported_at is not None:
        return int(namespace.launched_at or 0) + int(namespace.lifetime)
    return int(name.renewal_height)


def classify_height(renewal_height: int, height: int) -> str:
    """Brief: Place height into a status bucket relative to renewal_height.

    Inputs:
      - renewal_height: Effective renewal height R.
      - height: Current chain height H.

    Outputs:
      - str status:
        H > R + GRACE            -> expired
        R < H <= R + GRACE       -> grace-period
        R - SOON < H <= R        -> expiring-soon
        otherwise                -> active

    Example:
      >>> classify_height(10000, 15000), classify_height(10000, 15001)
      ('grace-period', 'expired')
    """

    r = int(renewal_height)
    h = int(height)
    if h > r + GRACE_PERIOD:
        return STATUS_EXPIRED
    if h > r:
        return STATUS_GRACE_PERIOD
    if h > r - EXPIRING_SOON_WINDOW:
        return STATUS_EXPIRING_SOON
    return STATUS_ACTIVE


def _perpetual(managed: bool) -> NameLifecycle:
    return NameLifecycle(
        status=STATUS_ACTIVE,
        resolvable=True,
        renewal_height=0,
        needs_renewal=False,
        is_managed=managed,
        blocks_until_expiry=0,
    )


def evaluate(name: NameRecord, namespace: NamespaceRecord, height: int) -> NameLifecycle:
    """Brief: Evaluate a name's lifecycle in strict priority order.

    Inputs:
      - name: NameRecord snapshot.
      - namespace: NamespaceRecord the name belongs to.
      - height: Current chain height.

    Outputs:
      - NameLifecycle.

    Raises:
      - NamespaceNotLaunchedError: namespace has no launch height (checked
        after the revocation check).

    Notes:
      - Order: revoked, namespace launched, managed namespace, lifetime 0,
        stored renewal height 0 on a non-imported name (perpetual), then the
        height buckets.
    """

    managed = is_managed(namespace)

    if name.revoked:
        return NameLifecycle(
            status=STATUS_REVOKED,
            resolvable=False,
            renewal_height=0,
            needs_renewal=False,
            is_managed=managed,
            blocks_until_expiry=0,
        )

    if namespace.launched_at is None:
        raise NamespaceNotLaunchedError()

    if managed:
        return _perpetual(True)

    if int(namespace.lifetime) == 0:
        return _perpetual(False)

    r = effective_renewal_height(name, namespace)
    if r == 0:
        return _perpetual(False)

    status = classify_height(r, height)
    return NameLifecycle(
        status=status,
        resolvable=status in RESOLVABLE_STATUSES,
        renewal_height=r,
        needs_renewal=status in (STATUS_EXPIRING_SOON, STATUS_GRACE_PERIOD),
        is_managed=False,
        blocks_until_expiry=max(r - int(height), 0),
    )


def is_valid(name: NameRecord, namespace: NamespaceRecord, height: int) -> bool:
    """Return True when name is resolvable; unlaunched namespaces yield False."""
    try:
        return evaluate(name, namespace, height).resolvable
    except NamespaceNotLaunchedError:
        return False
