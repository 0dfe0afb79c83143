"""
PostgreSQL view store for Dataclip.

This module serves views from the connection's current schema
(the first entry of search_path) using a psycopg2 threaded pool:
- View lookup through the pg_views catalog
- Grant counting against the access-cookie table
- Optional append to the access-log table
- Streaming SELECT through a server-side cursor

Invariants:
    - Every statement except the view SELECT is fully parameterized
    - The view name is validated and quoted with sql.Identifier before use
    - statement_timeout is set on every pooled connection
    - Connections go back to the pool with no open transaction

How to change safely:
    - Keep the pool small; every gateway request holds one connection
    - Test catalog queries against a schema other than public
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, Sequence

import psycopg2
from psycopg2 import sql
from psycopg2.pool import ThreadedConnectionPool

from ..config import DatabaseConfig
from ..errors import QueryError, StoreConnectionError, StoreError
from ..validation import require_valid_viewname
from .base import ACCESS_COOKIES_TABLE, ACCESS_LOG_TABLE, ViewRows

logger = logging.getLogger(__name__)

VIEW_EXISTS_SQL = """
    SELECT count(*) AS view_count
    FROM pg_views
    WHERE viewname = %s
    AND schemaname = current_schema()
"""

COUNT_GRANTS_SQL = sql.SQL(
    "SELECT count(*) AS entry_count FROM {} WHERE viewname = %s"
).format(sql.Identifier(ACCESS_COOKIES_TABLE))

COUNT_COOKIE_GRANTS_SQL = sql.SQL(
    "SELECT count(*) AS cookie_match_count FROM {} WHERE viewname = %s AND access_cookie = %s"
).format(sql.Identifier(ACCESS_COOKIES_TABLE))

LOG_ACCESS_SQL = sql.SQL("INSERT INTO {} (viewname, access_allowed) VALUES (%s, %s)").format(
    sql.Identifier(ACCESS_LOG_TABLE)
)

SANITY_SQL = "SELECT 1+1 AS two"

# Connections opened beyond pool_max, kept for health checks
HEALTH_CHECK_CONNECTIONS = 1


class PostgresViewSession:
    """One request's view of the database.

    Holds a single pooled connection. The connection runs without
    autocommit so the view SELECT can use a named (server-side) cursor;
    the access-log insert commits on its own.
    """

    def __init__(self, conn: Any, fetch_batch_size: int = 1000) -> None:
        self._conn = conn
        self._fetch_batch_size = fetch_batch_size
        self._cursors: list[Any] = []

    def _describe(self, query: Any) -> str:
        if isinstance(query, sql.Composable):
            try:
                return query.as_string(self._conn)
            except Exception:
                return repr(query)
        return " ".join(str(query).split())

    def _query_error(self, query: Any, exc: Exception) -> QueryError:
        text = self._describe(query)
        diagnostic = str(exc).strip()
        logger.error(f"query {text} failed: {diagnostic}")
        try:
            self._conn.rollback()
        except psycopg2.Error:
            logger.warning("rollback after failed query also failed", exc_info=True)
        return QueryError("Query failed", query=text, diagnostic=diagnostic)

    def _fetch_count(self, query: Any, params: Sequence[Any]) -> int:
        try:
            with self._conn.cursor() as cur:
                cur.execute(query, params)
                row = cur.fetchone()
        except psycopg2.Error as e:
            raise self._query_error(query, e) from e
        return int(row[0]) if row else 0

    def view_exists(self, viewname: str) -> bool:
        return self._fetch_count(VIEW_EXISTS_SQL, (viewname,)) == 1

    def count_grants(self, viewname: str) -> int:
        return self._fetch_count(COUNT_GRANTS_SQL, (viewname,))

    def count_cookie_grants(self, viewname: str, access_cookie: str) -> int:
        return self._fetch_count(COUNT_COOKIE_GRANTS_SQL, (viewname, access_cookie))

    def log_access(self, viewname: str, access_allowed: bool) -> None:
        try:
            with self._conn.cursor() as cur:
                cur.execute(LOG_ACCESS_SQL, (viewname, access_allowed))
            self._conn.commit()
        except psycopg2.Error as e:
            raise self._query_error(LOG_ACCESS_SQL, e) from e

    def select_view(self, viewname: str, offset: int) -> ViewRows:
        viewname = require_valid_viewname(viewname)
        query = sql.SQL("SELECT * FROM {} OFFSET %s").format(sql.Identifier(viewname))

        cur = self._conn.cursor(name=f"dataclip_{uuid.uuid4().hex}")
        cur.itersize = self._fetch_batch_size
        self._cursors.append(cur)
        try:
            cur.execute(query, (offset,))
            # A named cursor only has a description after the first fetch
            first_batch = cur.fetchmany(self._fetch_batch_size)
        except psycopg2.Error as e:
            raise self._query_error(query, e) from e

        columns = [d[0] for d in (cur.description or [])]
        return ViewRows(columns=columns, rows=self._iter_rows(cur, query, first_batch))

    def _iter_rows(self, cur: Any, query: Any, batch: list[Any]) -> Iterator[Sequence[Any]]:
        while batch:
            yield from batch
            try:
                batch = cur.fetchmany(self._fetch_batch_size)
            except psycopg2.Error as e:
                raise self._query_error(query, e) from e

    def release(self) -> None:
        """Close cursors and end the transaction."""
        for cur in self._cursors:
            try:
                cur.close()
            except psycopg2.Error:
                logger.debug("closing cursor failed", exc_info=True)
        self._cursors.clear()
        try:
            self._conn.rollback()
        except psycopg2.Error:
            logger.warning("rollback on session release failed", exc_info=True)


class PostgresViewStore:
    """PostgreSQL-backed ViewStore.

    Attributes:
        config: Database configuration

    Example:
        >>> store = PostgresViewStore(DatabaseConfig(connection_string="dbname=app"))
        >>> store.open()
        >>> with store.session() as session:
        ...     session.view_exists("daily_sales")
        True
    """

    def __init__(self, config: DatabaseConfig) -> None:
        self.config = config
        self._pool: ThreadedConnectionPool | None = None

    @property
    def is_open(self) -> bool:
        return self._pool is not None

    def open(self) -> None:
        if self._pool is not None:
            return
        if not self.config.connection_string:
            raise StoreConnectionError("No connection string configured")

        try:
            self._pool = ThreadedConnectionPool(
                self.config.pool_min,
                self.config.pool_max + HEALTH_CHECK_CONNECTIONS,
                self.config.connection_string,
                options=f"-c statement_timeout={self.config.statement_timeout_ms}",
            )
        except psycopg2.Error as e:
            raise StoreConnectionError(
                "Could not connect to the database", diagnostic=str(e).strip()
            ) from e

        try:
            with self.session() as session:
                two = session._fetch_count(SANITY_SQL, ())
        except StoreError as e:
            self.close()
            raise StoreConnectionError(
                "Sanity query failed, database connection is not working",
                diagnostic=e.details.get("diagnostic"),
            ) from e

        if two != 2:
            self.close()
            raise StoreConnectionError(
                "test query select 1+1 did not work, database connection is not working",
                diagnostic=f"got {two!r}",
            )
        logger.info(
            "PostgreSQL view store connected",
            extra={"pool_min": self.config.pool_min, "pool_max": self.config.pool_max},
        )

    def close(self) -> None:
        if self._pool is None:
            return
        self._pool.closeall()
        self._pool = None
        logger.info("PostgreSQL view store closed")

    @contextmanager
    def session(self) -> Iterator[PostgresViewSession]:
        if self._pool is None:
            raise StoreConnectionError("View store is not open")

        try:
            conn = self._pool.getconn()
        except psycopg2.Error as e:
            raise StoreConnectionError(
                "Could not check out a database connection", diagnostic=str(e).strip()
            ) from e

        session = PostgresViewSession(conn, fetch_batch_size=self.config.fetch_batch_size)
        try:
            yield session
        finally:
            session.release()
            self._pool.putconn(conn, close=bool(conn.closed))

    def ping(self) -> bool:
        try:
            with self.session() as session:
                return session._fetch_count(SANITY_SQL, ()) == 2
        except StoreError:
            return False
