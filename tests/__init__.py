"""
Dataclip Test Suite.

This package contains:
- unit/: Unit tests (in-memory view store, fake psycopg2 pool)
- integration/: Integration tests (live PostgreSQL, opt-in via DATACLIP_PG_TESTS=1)
"""
