"""Brief: Tests for PostgresNameStore using an in-process fake DB-API driver.

Inputs:
  - None

Outputs:
  - None
"""

from __future__ import annotations

import types

import pytest

from bnsresolver.errors import ConflictError, UpstreamTimeoutError, UpstreamUnavailableError
from bnsresolver.lifecycle import EXPIRING_SOON_WINDOW, GRACE_PERIOD
from bnsresolver.store import postgresql as pg
from bnsresolver.store.base import NAME_FILTER_EXPIRING_SOON, NAME_FILTER_VALID


class DriverError(Exception):
    def __init__(self, message: str, sqlstate: str | None = None) -> None:
        super().__init__(message)
        self.sqlstate = sqlstate


class OperationalError(DriverError):
    pass


class InterfaceError(DriverError):
    pass


class FakeCursor:
    def __init__(self, conn: "FakeConnection") -> None:
        self.conn = conn
        self.description = None
        self._rows: list = []

    def execute(self, sql, params=None):
        self.conn.executed.append((sql, params))
        result = self.conn.results.pop(0) if self.conn.results else []
        if isinstance(result, Exception):
            raise result
        columns = list(result[0].keys()) if result else []
        self.description = [(c,) for c in columns]
        self._rows = [tuple(row[c] for c in columns) for row in result]

    def fetchall(self):
        return list(self._rows)

    def close(self):
        pass


class FakeConnection:
    def __init__(self, results) -> None:
        self.results = results
        self.executed: list = []
        self.autocommit = False
        self.closed = False

    def cursor(self):
        return FakeCursor(self)

    def close(self):
        self.closed = True


def make_driver(results=None, connect_error=None):
    """
    Brief: Build a fake DB-API driver module sharing one result queue.

    Inputs:
      - results: List of row lists (dicts) or exceptions, consumed per execute().
      - connect_error: Optional exception raised by connect().

    Outputs:
      - SimpleNamespace with connect/Error/OperationalError/InterfaceError and
        the list of opened connections and connect kwargs.
    """

    queue = list(results or [])
    driver = types.SimpleNamespace(
        Error=DriverError,
        OperationalError=OperationalError,
        InterfaceError=InterfaceError,
        connections=[],
        connect_calls=[],
    )

    def connect(**kwargs):
        driver.connect_calls.append(kwargs)
        if connect_error is not None:
            raise connect_error
        conn = FakeConnection(queue)
        driver.connections.append(conn)
        return conn

    driver.connect = connect
    return driver


def _name_row(**overrides):
    row = {
        "name_string": "alice",
        "namespace_string": "btc",
        "owner": "SP1",
        "registered_at": 5,
        "renewal_height": None,
        "stx_burn": "10",
        "revoked": 0,
        "imported_at": None,
        "preordered_by": None,
        "zonefile": "0x7b7d",
        "id": 1,
    }
    row.update(overrides)
    return row


def test_connect_kwargs_and_autocommit() -> None:
    """Brief: Connections carry libpq options, timeout and extra kwargs.

    Inputs:
      - None

    Outputs:
      - None
    """

    driver = make_driver([[{"count": 3}], [{"count": 4}]])
    store = pg.PostgresNameStore(
        host="db",
        port="6543",
        user="reader",
        password="pw",
        database="bns",
        statement_timeout_ms=30000,
        connect_kwargs={"sslmode": "require"},
        driver=driver,
    )
    assert store.count_namespaces("public") == 3
    assert store.count_namespaces("public") == 4
    assert driver.connect_calls == [
        {
            "host": "db",
            "port": 6543,
            "dbname": "bns",
            "user": "reader",
            "password": "pw",
            "options": "-c statement_timeout=30000",
            "sslmode": "require",
        }
    ]
    assert driver.connections[0].autocommit is True


def test_get_name_maps_row() -> None:
    """Brief: get_name() is parameterized and maps nullable columns.

    Inputs:
      - None

    Outputs:
      - None
    """

    driver = make_driver([[_name_row()], []])
    store = pg.PostgresNameStore(driver=driver)
    record = store.get_name("public", "alice", "btc")
    assert record.full_name == "alice.btc"
    assert record.renewal_height == 0
    assert record.stx_burn == 10
    assert record.revoked is False
    assert record.zonefile == "0x7b7d"

    sql, params = driver.connections[0].executed[0]
    assert "FROM public.names n" in sql
    assert params == ("alice", "btc")

    assert store.get_name("testnet", "nobody", "btc") is None
    assert "FROM testnet.names n" in driver.connections[0].executed[1][0]


def test_invalid_schema_is_rejected_before_io() -> None:
    driver = make_driver()
    store = pg.PostgresNameStore(driver=driver)
    with pytest.raises(ValueError):
        store.get_name("public; DROP TABLE names", "a", "btc")
    assert driver.connect_calls == []


def test_list_names_sql_and_params() -> None:
    """Brief: Lifecycle filters use the shared constants; paging is parameterized.

    Inputs:
      - None

    Outputs:
      - None
    """

    driver = make_driver([[_name_row()], []])
    store = pg.PostgresNameStore(driver=driver)

    records = store.list_names(
        "public", status=NAME_FILTER_VALID, height=100000, owner="SP1", limit=10, offset=5
    )
    assert [r.name_string for r in records] == ["alice"]
    sql, params = driver.connections[0].executed[0]
    assert f"+ {GRACE_PERIOD}" in sql
    assert "n.owner = %(owner)s" in sql
    assert "NULL AS zonefile" in sql
    assert params == {"height": 100000, "owner": "SP1", "limit": 10, "offset": 5}

    store.list_names("public", status=NAME_FILTER_EXPIRING_SOON, height=1)
    sql, params = driver.connections[0].executed[1]
    assert f"- {EXPIRING_SOON_WINDOW}" in sql
    assert "LIMIT" not in sql
    assert params == {"height": 1, "offset": 0}


def test_unknown_filter_raises() -> None:
    store = pg.PostgresNameStore(driver=make_driver())
    with pytest.raises(ValueError):
        store.count_names("public", status="pending")


def test_count_and_last_token_id() -> None:
    driver = make_driver([[{"count": 7}], [{"last_token_id": 42}]])
    store = pg.PostgresNameStore(driver=driver)
    assert store.count_names("public", status="revoked") == 7
    assert store.last_token_id("public") == 42


def test_namespaces_and_stats() -> None:
    """Brief: Namespace rows map onto records with pricing and statistics.

    Inputs:
      - None

    Outputs:
      - None
    """

    row = {
        "namespace_string": "btc",
        "launched_at": 1000,
        "lifetime": 52595,
        "namespace_manager": None,
        "price_function_base": 4,
        "total_names": 10,
        "active_names": 7,
        "expired_names": 2,
        "revoked_names": 1,
        "first_registration": 900,
        "last_registration": None,
    }
    driver = make_driver([[row], [row], [row]])
    store = pg.PostgresNameStore(driver=driver)

    (record, stats), = store.list_namespaces("public", height=100, limit=5, offset=0)
    assert record.lifetime == 52595
    assert record.pricing["price_function_base"] == 4
    assert record.pricing["price_function_coeff"] is None
    assert stats.active_names == 7
    assert stats.last_registration is None

    assert store.get_namespace("public", "btc").launched_at == 1000
    assert store.namespace_stats("public", "btc", height=100).expired_names == 2


def test_character_class_counts() -> None:
    driver = make_driver(
        [
            [{"total": 5, "numeric_count": 1, "letters_count": 3, "special_count": 1}],
            [{"name_length": 3, "count": 2}, {"name_length": 5, "count": 3}],
        ]
    )
    counts = pg.PostgresNameStore(driver=driver).character_class_counts("public", "btc")
    assert (counts.total, counts.numeric, counts.letters, counts.special) == (5, 1, 3, 1)
    assert counts.by_length == {3: 2, 5: 3}


@pytest.mark.parametrize(
    "exc,expected,message",
    [
        (DriverError("dup", "23505"), ConflictError, "Conflict: Resource already exists"),
        (DriverError("missing", "42P01"), UpstreamUnavailableError, "Database schema error"),
        (DriverError("auth", "28P01"), UpstreamUnavailableError, "Database authentication error"),
        (DriverError("canceled", "57014"), UpstreamTimeoutError, "Request timed out"),
        (DriverError("connection timeout expired"), UpstreamTimeoutError, "Request timed out"),
        (DriverError("boom"), UpstreamUnavailableError, "Internal Server Error"),
    ],
)
def test_translate_db_error(exc, expected, message) -> None:
    """Brief: Driver errors map to client-facing errors without driver detail.

    Inputs:
      - exc: Driver exception.
      - expected/message: Resulting error class and message.

    Outputs:
      - None
    """

    translated = pg.translate_db_error(exc)
    assert isinstance(translated, expected)
    assert translated.message == message


def test_translate_db_error_reads_pgcode() -> None:
    class Psycopg2Error(Exception):
        pgcode = "23505"

    assert isinstance(pg.translate_db_error(Psycopg2Error()), ConflictError)


def test_operational_error_discards_connection() -> None:
    """Brief: Broken connections are closed and replaced on the next query.

    Inputs:
      - None

    Outputs:
      - None
    """

    driver = make_driver([OperationalError("server closed the connection"), [{"count": 1}]])
    store = pg.PostgresNameStore(driver=driver)
    with pytest.raises(UpstreamUnavailableError):
        store.count_namespaces("public")
    assert driver.connections[0].closed is True

    assert store.count_namespaces("public") == 1
    assert len(driver.connections) == 2


def test_statement_timeout_keeps_connection() -> None:
    driver = make_driver([DriverError("canceling statement", "57014"), [{"count": 1}]])
    store = pg.PostgresNameStore(driver=driver)
    with pytest.raises(UpstreamTimeoutError):
        store.count_namespaces("public")
    assert store.count_namespaces("public") == 1
    assert len(driver.connections) == 1


def test_connect_failure_is_translated() -> None:
    store = pg.PostgresNameStore(driver=make_driver(connect_error=DriverError("refused")))
    with pytest.raises(UpstreamUnavailableError):
        store.get_namespace("public", "btc")


def test_check_health() -> None:
    """Brief: check_health() is True for one row and False on any error.

    Inputs:
      - None

    Outputs:
      - None
    """

    ok = pg.PostgresNameStore(driver=make_driver([[{"health_check": 1}]]))
    assert ok.check_health() is True

    down = pg.PostgresNameStore(driver=make_driver(connect_error=DriverError("refused")))
    assert down.check_health() is False


def test_close_closes_connections() -> None:
    driver = make_driver([[{"count": 1}]])
    store = pg.PostgresNameStore(driver=driver)
    store.count_namespaces("public")
    store.close()
    assert driver.connections[0].closed is True
    store.close()
