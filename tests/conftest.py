"""
Brief: Global pytest configuration enforcing per-test 10s timeout, plus shared
fakes for the store, HTTP session and height oracle.

Inputs:
  - None

Outputs:
  - None
"""

import json
import os
import signal
import sys

import pytest

# Ensure 'src' is on sys.path so 'bnsresolver' package is importable in tests
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
SRC_DIR = os.path.join(ROOT, "src")
if SRC_DIR not in sys.path:
    sys.path.insert(0, SRC_DIR)

from bnsresolver import lifecycle  # noqa: E402
from bnsresolver.cache.in_memory_ttl import InMemoryTTLCache  # noqa: E402
from bnsresolver.errors import NamespaceNotLaunchedError  # noqa: E402
from bnsresolver.networks import build_networks  # noqa: E402
from bnsresolver.resolver import Resolver  # noqa: E402
from bnsresolver.store.base import (  # noqa: E402
    NAME_FILTER_ALL,
    NAME_FILTER_EXPIRED,
    NAME_FILTER_EXPIRING_SOON,
    NAME_FILTER_REVOKED,
    NAME_FILTER_VALID,
    CharacterClassCounts,
    NameRecord,
    NamespaceRecord,
    NamespaceStats,
    NameStore,
)

CURRENT_HEIGHT = 100000


def _alarm_handler(signum, frame):
    """
    Brief: Signal handler that raises TimeoutError when alarm triggers.

    Inputs:
      - signum: signal number (int)
      - frame: current frame (ignored)

    Outputs:
      - None: Raises TimeoutError to fail the test
    """
    raise TimeoutError("Test exceeded 10 seconds")


# Install handler if supported on this platform
if hasattr(signal, "SIGALRM"):
    signal.signal(signal.SIGALRM, _alarm_handler)


@pytest.fixture(autouse=True)
def enforce_test_timeout():
    """
    Brief: Enforce a hard 10-second timeout for each test.

    Inputs:
      - None

    Outputs:
      - None: Cancels alarm after test
    """
    if hasattr(signal, "SIGALRM"):
        signal.alarm(10)
        try:
            yield
        finally:
            signal.alarm(0)
    else:
        yield


def encode_zonefile(doc):
    """Hex-encode a zonefile document the way the indexer stores it."""
    text = doc if isinstance(doc, str) else json.dumps(doc)
    return "0x" + text.encode("utf-8").hex()


def base_fields(owner, **overrides):
    fields = {
        "owner": owner,
        "general": "",
        "twitter": "",
        "url": "",
        "nostr": "",
        "lightning": "",
        "btc": "",
    }
    fields.update(overrides)
    return fields


class FakeResponse:
    """Minimal requests.Response stand-in supporting json() and streaming."""

    def __init__(self, status_code=200, payload=None, headers=None, chunks=None, raise_on_iter=None):
        self.status_code = status_code
        self._payload = payload
        self.headers = dict(headers or {})
        self._chunks = list(chunks or [])
        self._raise_on_iter = raise_on_iter
        self.closed = False
        self.chunks_served = 0

    def json(self):
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload

    def iter_content(self, chunk_size=None):
        for chunk in self._chunks:
            self.chunks_served += 1
            yield chunk
        if self._raise_on_iter is not None:
            raise self._raise_on_iter

    def close(self):
        self.closed = True


class FakeSession:
    """requests.Session stand-in returning queued responses per method."""

    def __init__(self, get=None, head=None):
        self._get = get
        self._head = head
        self.calls = []

    @staticmethod
    def _answer(spec):
        if isinstance(spec, Exception):
            raise spec
        if callable(spec):
            return spec()
        return spec

    def get(self, url, **kwargs):
        self.calls.append(("GET", url, kwargs))
        return self._answer(self._get)

    def head(self, url, **kwargs):
        self.calls.append(("HEAD", url, kwargs))
        return self._answer(self._head)


class FixedHeightOracle:
    """Height oracle returning a constant height and counting lookups."""

    def __init__(self, height=CURRENT_HEIGHT):
        self.height = height
        self.calls = 0

    def get_current_height(self, network):
        self.calls += 1
        return self.height


class StubFetcher:
    """External fetcher returning canned documents by URL."""

    def __init__(self, documents=None, error=None):
        self.documents = dict(documents or {})
        self.error = error
        self.urls = []

    def fetch(self, url):
        self.urls.append(url)
        if self.error is not None:
            raise self.error
        return self.documents[url]


class FakeNameStore(NameStore):
    """In-memory NameStore classifying rows with the lifecycle engine."""

    def __init__(self, names=(), namespaces=(), healthy=True):
        self.names = list(names)
        self.namespaces = {ns.namespace_string: ns for ns in namespaces}
        self.healthy = healthy
        self.calls = []
        self.closed = False

    def _status(self, record, height):
        namespace = self.namespaces.get(record.namespace_string)
        if record.revoked:
            return lifecycle.STATUS_REVOKED
        if namespace is None:
            return None
        try:
            return lifecycle.evaluate(record, namespace, height).status
        except NamespaceNotLaunchedError:
            return None

    def _matches(self, record, status, height, owner, namespace):
        if owner is not None and record.owner != owner:
            return False
        if namespace is not None and record.namespace_string != namespace:
            return False
        if status == NAME_FILTER_ALL:
            return True
        current = self._status(record, height)
        if status == NAME_FILTER_REVOKED:
            return current == lifecycle.STATUS_REVOKED
        if status == NAME_FILTER_VALID:
            return current in lifecycle.RESOLVABLE_STATUSES
        if status == NAME_FILTER_EXPIRED:
            return current == lifecycle.STATUS_EXPIRED
        if status == NAME_FILTER_EXPIRING_SOON:
            return current == lifecycle.STATUS_EXPIRING_SOON
        raise ValueError(status)

    def get_name(self, schema, name, namespace):
        self.calls.append(("get_name", schema, name, namespace))
        for record in self.names:
            if record.name_string == name and record.namespace_string == namespace:
                return record
        return None

    def get_name_by_id(self, schema, token_id):
        self.calls.append(("get_name_by_id", schema, token_id))
        return next((r for r in self.names if r.id == token_id), None)

    def get_namespace(self, schema, namespace):
        self.calls.append(("get_namespace", schema, namespace))
        return self.namespaces.get(namespace)

    def count_names(self, schema, *, status=NAME_FILTER_ALL, height=0, owner=None, namespace=None):
        self.calls.append(("count_names", schema, status))
        return sum(1 for r in self.names if self._matches(r, status, height, owner, namespace))

    def list_names(
        self,
        schema,
        *,
        status=NAME_FILTER_ALL,
        height=0,
        owner=None,
        namespace=None,
        limit=None,
        offset=0,
    ):
        self.calls.append(("list_names", schema, status))
        rows = [r for r in self.names if self._matches(r, status, height, owner, namespace)]
        if status == NAME_FILTER_EXPIRING_SOON:
            rows.sort(
                key=lambda r: (
                    lifecycle.effective_renewal_height(r, self.namespaces[r.namespace_string]),
                    r.name_string,
                )
            )
        elif namespace is not None:
            rows.sort(key=lambda r: r.name_string)
        else:
            rows.sort(key=lambda r: r.full_name)
        end = None if limit is None else offset + limit
        return rows[offset:end]

    def count_namespaces(self, schema):
        return len(self.namespaces)

    def namespace_stats(self, schema, namespace, *, height):
        rows = [r for r in self.names if r.namespace_string == namespace]
        registered = [r.registered_at for r in rows if r.registered_at is not None]
        return NamespaceStats(
            total_names=len(rows),
            active_names=sum(1 for r in rows if self._matches(r, NAME_FILTER_VALID, height, None, None)),
            expired_names=sum(1 for r in rows if self._matches(r, NAME_FILTER_EXPIRED, height, None, None)),
            revoked_names=sum(1 for r in rows if r.revoked),
            first_registration=min(registered) if registered else None,
            last_registration=max(registered) if registered else None,
        )

    def list_namespaces(self, schema, *, height, limit, offset=0):
        keys = sorted(self.namespaces)[offset : offset + limit]
        return [
            (self.namespaces[k], self.namespace_stats(schema, k, height=height)) for k in keys
        ]

    def character_class_counts(self, schema, namespace):
        rows = [r.name_string for r in self.names if r.namespace_string == namespace]
        by_length = {}
        for name in rows:
            by_length[len(name)] = by_length.get(len(name), 0) + 1
        return CharacterClassCounts(
            total=len(rows),
            numeric=sum(1 for n in rows if n.isdigit()),
            letters=sum(1 for n in rows if n.isalpha() and n.islower()),
            special=sum(1 for n in rows if any(not (c.isdigit() or ("a" <= c <= "z")) for c in n)),
            by_length=by_length,
        )

    def last_token_id(self, schema):
        return max((r.id or 0 for r in self.names), default=0)

    def check_health(self):
        return self.healthy

    def close(self):
        self.closed = True


ALICE = "SP_ALICE"
BOB = "SP_BOB"
EXTERNAL_URL = "https://bns-subdomains.s3.us-east-1.amazonaws.com/alice.json"


def sample_namespaces():
    return [
        NamespaceRecord("btc", launched_at=1000, lifetime=52595),
        NamespaceRecord("man", launched_at=1000, lifetime=5000, namespace_manager="SP_MANAGER"),
        NamespaceRecord("forever", launched_at=1000, lifetime=0),
        NamespaceRecord("unl", launched_at=None, lifetime=1000),
    ]


def sample_names():
    current = base_fields(
        ALICE,
        btc="bc1qalice",
        subdomains={"pay": base_fields("SP_PAY", btc="bc1qpay")},
    )
    legacy = base_fields(
        BOB,
        subdomains=[
            {"name": "mail", "sequence": 1, "owner": "SP_MAIL", "signature": "sig", "text": "t"}
        ],
    )
    external = base_fields("SP_EXT", externalSubdomainFile=EXTERNAL_URL)
    return [
        NameRecord("alice", "btc", owner=ALICE, registered_at=5000, renewal_height=200000,
                   stx_burn=2000000, zonefile=encode_zonefile(current), id=1),
        NameRecord("bob", "btc", owner=BOB, registered_at=6000, renewal_height=99000,
                   zonefile=encode_zonefile(legacy), id=2),
        NameRecord("carol", "btc", owner=ALICE, registered_at=7000, renewal_height=90000, id=3),
        NameRecord("dave", "btc", owner=BOB, registered_at=8000, renewal_height=300000,
                   revoked=True, id=4),
        NameRecord("erin", "btc", owner=ALICE, registered_at=9000, renewal_height=102000, id=5),
        NameRecord("frank", "man", owner=BOB, registered_at=9500, renewal_height=1, id=6),
        NameRecord("ext", "btc", owner="SP_EXT", registered_at=9600, renewal_height=250000,
                   zonefile=encode_zonefile(external), id=7),
        NameRecord("imp", "btc", owner=BOB, registered_at=900, imported_at=900, id=8),
        NameRecord("ghost", "unl", owner=BOB, registered_at=900, renewal_height=5000, id=9),
    ]


@pytest.fixture
def networks():
    return build_networks(None)


@pytest.fixture
def mainnet(networks):
    return networks["mainnet"]


@pytest.fixture
def testnet(networks):
    return networks["testnet"]


@pytest.fixture
def store():
    return FakeNameStore(sample_names(), sample_namespaces())


@pytest.fixture
def height_oracle():
    return FixedHeightOracle()


@pytest.fixture
def external_document():
    return {"subdomains": {"shop": base_fields("SP_SHOP", btc="bc1qshop")}}


@pytest.fixture
def fetcher(external_document):
    return StubFetcher({EXTERNAL_URL: external_document})


@pytest.fixture
def resolver(store, height_oracle, fetcher):
    return Resolver(store, height_oracle, fetcher, InMemoryTTLCache())
