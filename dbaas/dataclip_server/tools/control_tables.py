"""
DDL for the Dataclip control tables.

Dataclip never creates or modifies these tables itself; an administrator
runs the printed DDL in the schema the gateway connects to (the first
entry of search_path), then inserts grant rows by hand.

Usage:
    dataclip schema | psql "$PG_SCHEMA_DATACLIP_CONNECTION_STRING"
"""

from __future__ import annotations

from ..store.base import ACCESS_COOKIES_TABLE, ACCESS_LOG_TABLE

CONTROL_TABLES_DDL = f"""\
-- Grants: a view with no rows here is public.
-- A view with rows here is readable only with one of the listed access cookies.
CREATE TABLE IF NOT EXISTS "{ACCESS_COOKIES_TABLE}" (
    viewname text NOT NULL,
    access_cookie text NOT NULL DEFAULT 'public',
    PRIMARY KEY (viewname, access_cookie)
);

-- Optional access log, written when DATACLIP_ACCESS_LOG_ENABLED=true.
CREATE TABLE IF NOT EXISTS "{ACCESS_LOG_TABLE}" (
    viewname text NOT NULL,
    access_allowed boolean NOT NULL,
    logged_at timestamptz NOT NULL DEFAULT now()
);

-- Examples:
--   INSERT INTO "{ACCESS_COOKIES_TABLE}" (viewname) VALUES ('foo');
--   INSERT INTO "{ACCESS_COOKIES_TABLE}" (viewname, access_cookie)
--       VALUES ('bar', gen_random_uuid());
--
--   GRANT SELECT ON "{ACCESS_COOKIES_TABLE}" TO your_user;
--   GRANT INSERT ON "{ACCESS_LOG_TABLE}" TO your_user;
"""


def control_tables_ddl() -> str:
    return CONTROL_TABLES_DDL
