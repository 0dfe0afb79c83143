"""
In-memory view store implementation for testing.

This module provides a simple in-memory ViewStore for:
- Unit tests
- Local demos without a PostgreSQL server

Invariants:
    - All data is lost on process exit
    - Same semantics as PostgresViewStore (offset, grant counting, validation)
    - Rows come back in insertion order

How to change safely:
    - This is test-only code, changes don't affect production
    - Keep interface compatible with the ViewStore protocol
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Sequence

from ..errors import QueryError, StoreConnectionError
from ..validation import require_valid_viewname
from .base import ViewRows

logger = logging.getLogger(__name__)


@dataclass
class InMemoryView:
    """A view definition with fixed contents."""

    columns: list[str]
    rows: list[tuple[Any, ...]] = field(default_factory=list)


@dataclass(frozen=True)
class AccessLogEntry:
    """One recorded authorization decision."""

    viewname: str
    access_allowed: bool


class InMemoryViewSession:
    """Session over an InMemoryViewStore."""

    def __init__(self, store: InMemoryViewStore) -> None:
        self._store = store

    def view_exists(self, viewname: str) -> bool:
        self._store._maybe_fail("view_exists")
        return viewname in self._store.views

    def count_grants(self, viewname: str) -> int:
        self._store._maybe_fail("count_grants")
        return sum(1 for v, _ in self._store.grants if v == viewname)

    def count_cookie_grants(self, viewname: str, access_cookie: str) -> int:
        self._store._maybe_fail("count_cookie_grants")
        return 1 if (viewname, access_cookie) in self._store.grants else 0

    def log_access(self, viewname: str, access_allowed: bool) -> None:
        self._store._maybe_fail("log_access")
        with self._store._lock:
            self._store.access_log.append(AccessLogEntry(viewname, access_allowed))

    def select_view(self, viewname: str, offset: int) -> ViewRows:
        viewname = require_valid_viewname(viewname)
        self._store._maybe_fail("select_view")
        self._store.executed_queries.append(f"SELECT * FROM {viewname} OFFSET {offset}")

        view = self._store.views.get(viewname)
        if view is None:
            raise QueryError(
                "Query failed",
                query=f"SELECT * FROM {viewname} OFFSET {offset}",
                diagnostic=f'relation "{viewname}" does not exist',
            )
        return ViewRows(columns=list(view.columns), rows=iter(view.rows[offset:]))


class InMemoryViewStore:
    """In-memory implementation of ViewStore for testing.

    Attributes:
        views: View name to definition
        grants: Set of (viewname, access_cookie) grant rows
        access_log: Recorded access decisions
        executed_queries: SELECTs issued against views
        failing_operations: Session operations that raise QueryError

    Example:
        >>> store = InMemoryViewStore()
        >>> store.add_view("foo", ["id", "name"], [(1, "a"), (2, "b")])
        >>> store.grant("bar", "secret-token")
    """

    def __init__(self) -> None:
        self.views: dict[str, InMemoryView] = {}
        self.grants: set[tuple[str, str]] = set()
        self.access_log: list[AccessLogEntry] = []
        self.executed_queries: list[str] = []
        self.failing_operations: set[str] = set()
        self.sessions_opened = 0
        self._open = False
        self._lock = threading.Lock()

    def add_view(
        self,
        viewname: str,
        columns: Sequence[str],
        rows: Sequence[Sequence[Any]] = (),
    ) -> None:
        """Register a view. Names are not validated, so tests can add any name."""
        self.views[viewname] = InMemoryView(list(columns), [tuple(r) for r in rows])

    def grant(self, viewname: str, access_cookie: str = "public") -> None:
        """Add a grant row."""
        self.grants.add((viewname, access_cookie))

    def fail(self, *operations: str) -> None:
        """Make the named session operations raise QueryError."""
        self.failing_operations.update(operations)

    def _maybe_fail(self, operation: str) -> None:
        if operation in self.failing_operations:
            raise QueryError(
                "Query failed", query=operation, diagnostic=f"simulated failure in {operation}"
            )

    @property
    def is_open(self) -> bool:
        return self._open

    def open(self) -> None:
        self._open = True

    def close(self) -> None:
        self._open = False

    @contextmanager
    def session(self) -> Iterator[InMemoryViewSession]:
        if not self._open:
            raise StoreConnectionError("View store is not open")
        with self._lock:
            self.sessions_opened += 1
        yield InMemoryViewSession(self)

    def ping(self) -> bool:
        return self._open
