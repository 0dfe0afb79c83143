"""
Integration test fixtures for Dataclip.

These tests need a disposable PostgreSQL database. Point
DATACLIP_PG_TEST_CONNECTION_STRING (or PG_SCHEMA_DATACLIP_CONNECTION_STRING)
at it and set DATACLIP_PG_TESTS=1.
"""

import os
from typing import Generator

import psycopg2
import pytest

from dbaas.dataclip_server.config import CONNECTION_STRING_ENV, DatabaseConfig
from dbaas.dataclip_server.store import ACCESS_COOKIES_TABLE, ACCESS_LOG_TABLE
from dbaas.dataclip_server.tools import control_tables_ddl

PG_TESTS_ENABLED = os.environ.get("DATACLIP_PG_TESTS", "0") == "1"

VIEW_PREFIX = "dataclip_it_"

FIXTURE_SQL = f"""
CREATE OR REPLACE VIEW {VIEW_PREFIX}public AS
    SELECT n AS id, 'row ' || n AS label, NULL::text AS note
    FROM generate_series(1, 25) AS n;
CREATE OR REPLACE VIEW {VIEW_PREFIX}restricted AS
    SELECT 'classified'::text AS secret;
CREATE OR REPLACE VIEW {VIEW_PREFIX}markup AS
    SELECT '<b>bold</b>'::text AS "<i>col</i>";
CREATE OR REPLACE VIEW {VIEW_PREFIX}broken AS
    SELECT 1 / (n - 3) AS boom FROM generate_series(1, 5) AS n;
INSERT INTO "{ACCESS_COOKIES_TABLE}" (viewname, access_cookie)
    VALUES ('{VIEW_PREFIX}restricted', 'secret-token');
"""

TEARDOWN_SQL = f"""
DROP VIEW IF EXISTS {VIEW_PREFIX}public, {VIEW_PREFIX}restricted,
    {VIEW_PREFIX}markup, {VIEW_PREFIX}broken;
DELETE FROM "{ACCESS_COOKIES_TABLE}" WHERE viewname LIKE '{VIEW_PREFIX}%';
DELETE FROM "{ACCESS_LOG_TABLE}" WHERE viewname LIKE '{VIEW_PREFIX}%';
"""


@pytest.fixture(scope="session")
def connection_string() -> str:
    """Connection string for the test database."""
    if not PG_TESTS_ENABLED:
        pytest.skip("PostgreSQL tests disabled. Set DATACLIP_PG_TESTS=1 to enable.")
    dsn = os.environ.get("DATACLIP_PG_TEST_CONNECTION_STRING") or os.environ.get(
        CONNECTION_STRING_ENV
    )
    if not dsn:
        pytest.skip("No test database configured")
    return dsn


@pytest.fixture(scope="session")
def seeded_database(connection_string: str) -> Generator[str, None, None]:
    """Create the control tables and fixture views, and remove them afterwards."""
    conn = psycopg2.connect(connection_string)
    conn.autocommit = True
    try:
        with conn.cursor() as cur:
            cur.execute(control_tables_ddl())
            cur.execute(TEARDOWN_SQL)
            cur.execute(FIXTURE_SQL)
        yield connection_string
    finally:
        with conn.cursor() as cur:
            cur.execute(TEARDOWN_SQL)
        conn.close()


@pytest.fixture
def database_config(seeded_database: str) -> DatabaseConfig:
    return DatabaseConfig(
        connection_string=seeded_database,
        pool_min=1,
        pool_max=2,
        statement_timeout_ms=5000,
        fetch_batch_size=7,
    )


@pytest.fixture
def access_log_rows(seeded_database: str):
    """Return a function reading this suite's access-log rows in insertion order."""

    def read():
        conn = psycopg2.connect(seeded_database)
        try:
            with conn.cursor() as cur:
                cur.execute(
                    f'SELECT viewname, access_allowed FROM "{ACCESS_LOG_TABLE}" '
                    "WHERE viewname LIKE %s ORDER BY logged_at",
                    (VIEW_PREFIX + "%",),
                )
                return cur.fetchall()
        finally:
            conn.close()

    return read
