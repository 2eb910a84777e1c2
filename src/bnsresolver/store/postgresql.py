from __future__ import annotations

"""PostgreSQL-backed implementation of the NameStore interface.

Inputs:
  - Constructed from the 'database' config section with host, port, user,
    password, database and optional connect_kwargs.

Outputs:
  - Concrete read-only store answering name/namespace queries against the
    per-network schemas (e.g. 'public' for mainnet, 'testnet' for testnet).

Notes:
  - The underlying DB driver (psycopg or psycopg2) is imported lazily so that
    the package imports without it; only this backend needs it.
  - Each worker thread gets its own connection in autocommit mode.
  - Lifecycle list filters are generated from the constants in
    bnsresolver.lifecycle so SQL and Python classification agree.
"""

import logging
import re
import threading
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..errors import ConflictError, UpstreamTimeoutError, UpstreamUnavailableError
from ..lifecycle import EXPIRING_SOON_WINDOW, GRACE_PERIOD
from .base import (
    NAME_FILTER_ALL,
    NAME_FILTER_EXPIRED,
    NAME_FILTER_EXPIRING_SOON,
    NAME_FILTER_REVOKED,
    NAME_FILTER_VALID,
    PRICING_FIELDS,
    CharacterClassCounts,
    NameRecord,
    NamespaceRecord,
    NamespaceStats,
    NameStore,
)

logger = logging.getLogger(__name__)

_SCHEMA_RE = re.compile(r"^[a-z_][a-z0-9_]*$")

SQLSTATE_UNIQUE_VIOLATION = "23505"
SQLSTATE_UNDEFINED_TABLE = "42P01"
SQLSTATE_INVALID_PASSWORD = "28P01"
SQLSTATE_QUERY_CANCELED = "57014"

# Effective renewal height, mirroring lifecycle.effective_renewal_height().
_R = (
    "(CASE WHEN n.renewal_height = 0 AND n.imported_at IS NOT NULL "
    "THEN s.launched_at + COALESCE(s.lifetime, 0) ELSE n.renewal_height END)"
)
_PERPETUAL = (
    "((s.namespace_manager IS NOT NULL AND s.namespace_manager <> 'none') "
    f"OR COALESCE(s.lifetime, 0) = 0 OR {_R} = 0)"
)
_LIVE = "n.revoked = false AND s.launched_at IS NOT NULL"

STATUS_FILTERS: Dict[str, str] = {
    NAME_FILTER_ALL: "TRUE",
    NAME_FILTER_REVOKED: "n.revoked = true",
    NAME_FILTER_VALID: (
        f"{_LIVE} AND ({_PERPETUAL} OR %(height)s <= {_R} + {GRACE_PERIOD})"
    ),
    NAME_FILTER_EXPIRED: (
        f"{_LIVE} AND NOT {_PERPETUAL} AND %(height)s > {_R} + {GRACE_PERIOD}"
    ),
    NAME_FILTER_EXPIRING_SOON: (
        f"{_LIVE} AND NOT {_PERPETUAL} "
        f"AND %(height)s > {_R} - {EXPIRING_SOON_WINDOW} AND %(height)s <= {_R}"
    ),
}

_NAME_COLUMNS = (
    "n.name_string, n.namespace_string, n.owner, n.registered_at, "
    "n.renewal_height, n.stx_burn, n.revoked, n.imported_at, n.preordered_by, "
    "{zonefile} AS zonefile, n.id"
)

_NAMESPACE_COLUMNS = ", ".join(
    ["s.namespace_string", "s.launched_at", "s.lifetime", "s.namespace_manager"]
    + [f"s.{c}" for c in PRICING_FIELDS]
)


def _import_postgres_driver():
    """Import and return a DB-API compatible PostgreSQL driver module.

    Inputs:
        None.

    Outputs:
        DB-API like module exposing a ``connect`` callable.

    Raises:
        RuntimeError: When no supported PostgreSQL driver is available.
    """

    try:  # pragma: no cover - import-path dependent
        import psycopg as driver  # type: ignore[import]

        return driver
    except ImportError:  # pragma: no cover - environment specific
        try:
            import psycopg2 as driver  # type: ignore[import]

            return driver
        except ImportError as exc:  # pragma: no cover - environment specific
            raise RuntimeError(
                "No supported PostgreSQL driver found; install either "
                "'psycopg' or 'psycopg2' to use the PostgresNameStore"
            ) from exc


def _qualified(schema: str, table: str) -> str:
    if not _SCHEMA_RE.match(schema or ""):
        raise ValueError(f"Invalid database schema name {schema!r}")
    return f"{schema}.{table}"


def _int_or_none(value: Any) -> Optional[int]:
    return None if value is None else int(value)


def translate_db_error(exc: BaseException) -> Exception:
    """Brief: Map a driver exception to a client-facing ResolverError.

    Inputs:
      - exc: Exception raised by the DB driver.

    Outputs:
      - ConflictError for unique violations, UpstreamTimeoutError for
        cancelled/timed-out statements, otherwise UpstreamUnavailableError
        with a generic message.
    """

    code = getattr(exc, "sqlstate", None) or getattr(exc, "pgcode", None)
    if code == SQLSTATE_UNIQUE_VIOLATION:
        return ConflictError()
    if code == SQLSTATE_UNDEFINED_TABLE:
        return UpstreamUnavailableError("Database schema error")
    if code == SQLSTATE_INVALID_PASSWORD:
        return UpstreamUnavailableError("Database authentication error")
    if code == SQLSTATE_QUERY_CANCELED or "timeout" in str(exc).lower():
        return UpstreamTimeoutError()
    return UpstreamUnavailableError("Internal Server Error")


class PostgresNameStore(NameStore):
    """PostgreSQL-backed read-only store for names and namespaces.

    Inputs (constructor):
        host: Database host (default "127.0.0.1").
        port: Database port (default 5432).
        user: Database username.
        password: Database password.
        database: Database name.
        statement_timeout_ms: Server-side statement timeout; 0 disables it.
        connect_kwargs: Optional mapping of additional keyword arguments passed
            through to the driver's ``connect`` function (for example sslmode).
        driver: Optional DB-API module; defaults to psycopg/psycopg2.

    Outputs:
        Initialized PostgresNameStore. Connections are opened lazily per thread.
    """

    def __init__(
        self,
        host: str = "127.0.0.1",
        port: int = 5432,
        user: Optional[str] = None,
        password: Optional[str] = None,
        database: str = "bns",
        statement_timeout_ms: int = 30000,
        connect_kwargs: Optional[Dict[str, Any]] = None,
        driver: Any = None,
        **_: Any,
    ) -> None:
        self._driver = driver if driver is not None else _import_postgres_driver()

        kwargs: Dict[str, Any] = {"host": host, "port": int(port), "dbname": database}
        if user is not None:
            kwargs["user"] = user
        if password is not None:
            kwargs["password"] = password
        if statement_timeout_ms:
            kwargs["options"] = f"-c statement_timeout={int(statement_timeout_ms)}"
        if connect_kwargs:
            kwargs.update(dict(connect_kwargs))

        self._connect_kwargs = kwargs
        self._local = threading.local()
        self._all_conns: List[Any] = []
        self._conns_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Connection helpers
    # ------------------------------------------------------------------
    def _connection(self) -> Any:
        conn = getattr(self._local, "conn", None)
        if conn is not None and not getattr(conn, "closed", False):
            return conn
        try:
            conn = self._driver.connect(**self._connect_kwargs)
        except Exception as exc:
            logger.error("Unable to connect to PostgreSQL: %s", exc)
            raise translate_db_error(exc) from exc
        conn.autocommit = True
        self._local.conn = conn
        with self._conns_lock:
            self._all_conns.append(conn)
        return conn

    def _discard_connection(self) -> None:
        conn = getattr(self._local, "conn", None)
        self._local.conn = None
        if conn is None:
            return
        with self._conns_lock:
            if conn in self._all_conns:
                self._all_conns.remove(conn)
        try:
            conn.close()
        except Exception:  # pragma: no cover - defensive
            logger.debug("Error closing broken PostgreSQL connection", exc_info=True)

    def _query(self, sql: str, params: Any = None) -> List[Dict[str, Any]]:
        """Brief: Execute sql and return rows as dicts.

        Inputs:
            sql: Parameterized statement.
            params: Sequence or mapping of parameters.

        Outputs:
            List of column-name -> value dicts.

        Raises:
            ResolverError subclasses translated from driver errors.
        """

        conn = self._connection()
        try:
            cur = conn.cursor()
            try:
                cur.execute(sql, params)
                columns = [d[0] for d in (cur.description or [])]
                return [dict(zip(columns, row)) for row in cur.fetchall()]
            finally:
                cur.close()
        except self._driver.Error as exc:
            logger.error("PostgreSQL query failed: %s", exc)
            if isinstance(exc, (self._driver.OperationalError, self._driver.InterfaceError)):
                self._discard_connection()
            raise translate_db_error(exc) from exc

    def _scalar(self, sql: str, params: Any = None) -> Any:
        rows = self._query(sql, params)
        if not rows:
            return None
        return next(iter(rows[0].values()))

    # ------------------------------------------------------------------
    # Row mapping
    # ------------------------------------------------------------------
    @staticmethod
    def _name_from_row(row: Dict[str, Any]) -> NameRecord:
        return NameRecord(
            name_string=row["name_string"],
            namespace_string=row["namespace_string"],
            owner=row.get("owner"),
            registered_at=_int_or_none(row.get("registered_at")),
            renewal_height=int(row.get("renewal_height") or 0),
            stx_burn=_int_or_none(row.get("stx_burn")),
            revoked=bool(row.get("revoked")),
            imported_at=_int_or_none(row.get("imported_at")),
            preordered_by=row.get("preordered_by"),
            zonefile=row.get("zonefile"),
            id=_int_or_none(row.get("id")),
        )

    @staticmethod
    def _namespace_from_row(row: Dict[str, Any]) -> NamespaceRecord:
        return NamespaceRecord(
            namespace_string=row["namespace_string"],
            launched_at=_int_or_none(row.get("launched_at")),
            lifetime=int(row.get("lifetime") or 0),
            namespace_manager=row.get("namespace_manager"),
            pricing={k: row.get(k) for k in PRICING_FIELDS},
        )

    @staticmethod
    def _stats_from_row(row: Dict[str, Any]) -> NamespaceStats:
        return NamespaceStats(
            total_names=int(row.get("total_names") or 0),
            active_names=int(row.get("active_names") or 0),
            expired_names=int(row.get("expired_names") or 0),
            revoked_names=int(row.get("revoked_names") or 0),
            first_registration=_int_or_none(row.get("first_registration")),
            last_registration=_int_or_none(row.get("last_registration")),
        )

    # ------------------------------------------------------------------
    # Single-record lookups
    # ------------------------------------------------------------------
    def get_name(self, schema: str, name: str, namespace: str) -> Optional[NameRecord]:
        sql = (
            f"SELECT {_NAME_COLUMNS.format(zonefile='n.zonefile')} "
            f"FROM {_qualified(schema, 'names')} n "
            "WHERE n.name_string = %s AND n.namespace_string = %s"
        )
        rows = self._query(sql, (name, namespace))
        return self._name_from_row(rows[0]) if rows else None

    def get_name_by_id(self, schema: str, token_id: int) -> Optional[NameRecord]:
        sql = (
            f"SELECT {_NAME_COLUMNS.format(zonefile='n.zonefile')} "
            f"FROM {_qualified(schema, 'names')} n WHERE n.id = %s"
        )
        rows = self._query(sql, (int(token_id),))
        return self._name_from_row(rows[0]) if rows else None

    def get_namespace(self, schema: str, namespace: str) -> Optional[NamespaceRecord]:
        sql = (
            f"SELECT {_NAMESPACE_COLUMNS} FROM {_qualified(schema, 'namespaces')} s "
            "WHERE s.namespace_string = %s"
        )
        rows = self._query(sql, (namespace,))
        return self._namespace_from_row(rows[0]) if rows else None

    # ------------------------------------------------------------------
    # Name lists
    # ------------------------------------------------------------------
    def _name_where(
        self,
        status: str,
        height: int,
        owner: Optional[str],
        namespace: Optional[str],
    ) -> Tuple[str, Dict[str, Any]]:
        try:
            clauses = [STATUS_FILTERS[status]]
        except KeyError:
            raise ValueError(f"Unknown name filter {status!r}") from None
        params: Dict[str, Any] = {"height": int(height)}
        if owner is not None:
            clauses.append("n.owner = %(owner)s")
            params["owner"] = owner
        if namespace is not None:
            clauses.append("n.namespace_string = %(namespace)s")
            params["namespace"] = namespace
        return " AND ".join(f"({c})" for c in clauses), params

    @staticmethod
    def _from_names(schema: str) -> str:
        return (
            f"FROM {_qualified(schema, 'names')} n "
            f"LEFT JOIN {_qualified(schema, 'namespaces')} s "
            "ON s.namespace_string = n.namespace_string"
        )

    def count_names(
        self,
        schema: str,
        *,
        status: str = NAME_FILTER_ALL,
        height: int = 0,
        owner: Optional[str] = None,
        namespace: Optional[str] = None,
    ) -> int:
        where, params = self._name_where(status, height, owner, namespace)
        sql = f"SELECT COUNT(*) AS count {self._from_names(schema)} WHERE {where}"
        return int(self._scalar(sql, params) or 0)

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
        where, params = self._name_where(status, height, owner, namespace)
        if status == NAME_FILTER_EXPIRING_SOON:
            order = f"{_R} ASC, n.name_string ASC"
        elif namespace is not None:
            order = "n.name_string ASC"
        else:
            order = "n.name_string || '.' || n.namespace_string ASC"

        sql = (
            f"SELECT {_NAME_COLUMNS.format(zonefile='NULL')} {self._from_names(schema)} "
            f"WHERE {where} ORDER BY {order}"
        )
        if limit is not None:
            sql += " LIMIT %(limit)s"
            params["limit"] = int(limit)
        sql += " OFFSET %(offset)s"
        params["offset"] = int(offset)
        return [self._name_from_row(r) for r in self._query(sql, params)]

    # ------------------------------------------------------------------
    # Namespaces
    # ------------------------------------------------------------------
    def count_namespaces(self, schema: str) -> int:
        sql = f"SELECT COUNT(*) AS count FROM {_qualified(schema, 'namespaces')}"
        return int(self._scalar(sql) or 0)

    def _stats_columns(self, schema: str) -> str:
        names = _qualified(schema, "names")
        per_ns = f"FROM {names} n WHERE n.namespace_string = s.namespace_string"
        return ", ".join(
            [
                f"(SELECT COUNT(*) {per_ns}) AS total_names",
                f"(SELECT COUNT(*) {per_ns} AND {STATUS_FILTERS[NAME_FILTER_VALID]}) AS active_names",
                f"(SELECT COUNT(*) {per_ns} AND {STATUS_FILTERS[NAME_FILTER_EXPIRED]}) AS expired_names",
                f"(SELECT COUNT(*) {per_ns} AND n.revoked = true) AS revoked_names",
                f"(SELECT MIN(n.registered_at) {per_ns}) AS first_registration",
                f"(SELECT MAX(n.registered_at) {per_ns}) AS last_registration",
            ]
        )

    def list_namespaces(
        self, schema: str, *, height: int, limit: int, offset: int = 0
    ) -> List[Tuple[NamespaceRecord, NamespaceStats]]:
        sql = (
            f"SELECT {_NAMESPACE_COLUMNS}, {self._stats_columns(schema)} "
            f"FROM {_qualified(schema, 'namespaces')} s "
            "ORDER BY s.namespace_string ASC LIMIT %(limit)s OFFSET %(offset)s"
        )
        rows = self._query(
            sql, {"height": int(height), "limit": int(limit), "offset": int(offset)}
        )
        return [(self._namespace_from_row(r), self._stats_from_row(r)) for r in rows]

    def namespace_stats(self, schema: str, namespace: str, *, height: int) -> NamespaceStats:
        sql = (
            f"SELECT {self._stats_columns(schema)} "
            f"FROM {_qualified(schema, 'namespaces')} s "
            "WHERE s.namespace_string = %(namespace)s"
        )
        rows = self._query(sql, {"height": int(height), "namespace": namespace})
        return self._stats_from_row(rows[0]) if rows else NamespaceStats()

    def character_class_counts(self, schema: str, namespace: str) -> CharacterClassCounts:
        names = _qualified(schema, "names")
        totals = self._query(
            "SELECT COUNT(*) AS total, "
            "COUNT(*) FILTER (WHERE name_string ~ '^[0-9]+$') AS numeric_count, "
            "COUNT(*) FILTER (WHERE name_string ~ '^[a-z]+$') AS letters_count, "
            "COUNT(*) FILTER (WHERE name_string ~ '[^a-z0-9]') AS special_count "
            f"FROM {names} WHERE namespace_string = %s",
            (namespace,),
        )
        lengths = self._query(
            "SELECT LENGTH(name_string) AS name_length, COUNT(*) AS count "
            f"FROM {names} WHERE namespace_string = %s GROUP BY LENGTH(name_string)",
            (namespace,),
        )
        row = totals[0] if totals else {}
        return CharacterClassCounts(
            total=int(row.get("total") or 0),
            numeric=int(row.get("numeric_count") or 0),
            letters=int(row.get("letters_count") or 0),
            special=int(row.get("special_count") or 0),
            by_length={int(r["name_length"]): int(r["count"]) for r in lengths},
        )

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------
    def last_token_id(self, schema: str) -> int:
        sql = f"SELECT COALESCE(MAX(id), 0) AS last_token_id FROM {_qualified(schema, 'names')}"
        return int(self._scalar(sql) or 0)

    # ------------------------------------------------------------------
    # Health and lifecycle
    # ------------------------------------------------------------------
    def check_health(self) -> bool:
        """Return True when a trivial connectivity probe succeeds.

        Inputs:
            None.

        Outputs:
            bool: True when ``SELECT 1`` returns one row, else False.
        """

        try:
            rows = self._query("SELECT 1 AS health_check")
        except Exception as exc:
            logger.warning("Database health check failed: %s", exc)
            return False
        return len(rows) == 1

    def close(self) -> None:
        """Close every connection opened by this store."""

        with self._conns_lock:
            conns, self._all_conns = self._all_conns, []
        for conn in conns:
            try:
                conn.close()
            except Exception:  # pragma: no cover - defensive
                logger.exception("Error while closing PostgresNameStore connection")
        self._local = threading.local()
