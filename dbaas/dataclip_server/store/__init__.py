"""
View store abstraction for Dataclip.

This module provides a pluggable database backend supporting:
- PostgreSQL (production)
- In-memory (for testing)

Invariants:
    - The gateway never writes to user data; only the access log is appended
    - Sessions are scoped to one request and release their connection on exit
"""

from .base import (
    ACCESS_COOKIES_TABLE,
    ACCESS_LOG_TABLE,
    ViewRows,
    ViewSession,
    ViewStore,
)
from .memory import AccessLogEntry, InMemoryViewStore
from .postgres import PostgresViewStore

__all__ = [
    # Protocol and types
    "ViewStore",
    "ViewSession",
    "ViewRows",
    "ACCESS_COOKIES_TABLE",
    "ACCESS_LOG_TABLE",
    # Implementations
    "PostgresViewStore",
    "InMemoryViewStore",
    "AccessLogEntry",
]
