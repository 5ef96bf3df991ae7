"""SQL execution backends for the database tools.

Tools depend only on the :class:`Querier` protocol. The Postgres
implementation wraps a psycopg2 ``ThreadedConnectionPool`` that is created
lazily on first use, so building a server never opens a connection.
"""

from __future__ import annotations

import threading
import uuid
from collections.abc import Sequence
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Protocol

import psycopg2
import psycopg2.pool

from supabase_mcp.observability import get_logger

logger = get_logger(__name__)

Row = dict[str, Any]


class Querier(Protocol):
    """Runs SQL and returns rows as JSON-safe dicts."""

    def execute(
        self,
        sql: str,
        params: Sequence[Any] | None = None,
        read_only: bool = True,
    ) -> list[Row]:
        """Execute ``sql`` and return its result rows.

        Args:
            sql: Statement with ``%s`` placeholders.
            params: Placeholder values.
            read_only: Run inside a read-only transaction.

        Returns:
            One dict per row, keyed by column name. Statements without a
            result set return an empty list.
        """
        ...

    def close(self) -> None:
        """Release every connection held by the querier."""
        ...


def normalize_value(value: Any) -> Any:
    """Convert a database value into something ``json.dumps`` accepts.

    Decimals become floats, dates and times ISO strings, UUIDs strings and
    binary data a hex string. Lists and dicts are normalized recursively.
    """
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, datetime | date | time):
        return value.isoformat()
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, bytes | bytearray | memoryview):
        return bytes(value).hex()
    if isinstance(value, list | tuple):
        return [normalize_value(item) for item in value]
    if isinstance(value, dict):
        return {key: normalize_value(item) for key, item in value.items()}
    return value


def rows_to_dicts(cursor: Any) -> list[Row]:
    """Fetch all rows from ``cursor`` as normalized dicts."""
    if not cursor.description:
        return []
    columns = [column[0] for column in cursor.description]
    return [
        {name: normalize_value(value) for name, value in zip(columns, row)}
        for row in cursor.fetchall()
    ]


class PostgresQuerier:
    """:class:`Querier` backed by a psycopg2 connection pool.

    Each call borrows a connection, runs the statement in its own
    transaction (read-only unless asked otherwise), commits and returns
    the connection. A stale connection is discarded and the statement
    retried once on a fresh one.

    Args:
        dsn: libpq connection string or ``postgresql://`` URL.
        min_connections: Connections the pool keeps open.
        max_connections: Upper bound on concurrent connections.

    Raises:
        ValueError: If the pool bounds are inconsistent.

    Example:
        >>> querier = PostgresQuerier("postgresql://postgres@localhost/postgres")
        >>> querier.execute("select 1 as one")
        [{'one': 1}]
    """

    def __init__(
        self,
        dsn: str,
        min_connections: int = 1,
        max_connections: int = 5,
    ) -> None:
        if min_connections < 0 or max_connections < max(min_connections, 1):
            raise ValueError(
                f"Invalid pool bounds: min={min_connections}, max={max_connections}"
            )
        self._dsn = dsn
        self._min_connections = min_connections
        self._max_connections = max_connections
        self._pool: psycopg2.pool.ThreadedConnectionPool | None = None
        self._lock = threading.Lock()

    def _get_pool(self) -> psycopg2.pool.ThreadedConnectionPool:
        with self._lock:
            if self._pool is None:
                self._pool = psycopg2.pool.ThreadedConnectionPool(
                    minconn=self._min_connections,
                    maxconn=self._max_connections,
                    dsn=self._dsn,
                )
                logger.info(
                    "Connection pool created",
                    min_connections=self._min_connections,
                    max_connections=self._max_connections,
                )
            return self._pool

    def _run(
        self,
        pool: psycopg2.pool.ThreadedConnectionPool,
        sql: str,
        params: Sequence[Any] | None,
        read_only: bool,
    ) -> list[Row]:
        conn = pool.getconn()
        close = False
        try:
            conn.set_session(readonly=read_only)
            with conn.cursor() as cur:
                cur.execute(sql, params)
                rows = rows_to_dicts(cur)
            conn.commit()
            return rows
        except psycopg2.OperationalError:
            close = True
            raise
        except Exception:
            conn.rollback()
            raise
        finally:
            pool.putconn(conn, close=close)

    def execute(
        self,
        sql: str,
        params: Sequence[Any] | None = None,
        read_only: bool = True,
    ) -> list[Row]:
        pool = self._get_pool()
        try:
            return self._run(pool, sql, params, read_only)
        except psycopg2.OperationalError as e:
            logger.warning("Stale connection, retrying once", error=str(e))
            return self._run(pool, sql, params, read_only)

    def close(self) -> None:
        with self._lock:
            if self._pool is not None:
                self._pool.closeall()
                self._pool = None
                logger.info("Connection pool closed")
