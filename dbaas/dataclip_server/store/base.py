"""
Base protocol and types for the view store abstraction.

This module defines the ViewStore protocol that all backends implement,
along with the per-request ViewSession and the ViewRows result type.

Invariants:
    - A ViewSession holds exactly one database connection for its lifetime
    - select_view() never receives a name that failed require_valid_viewname()
    - Rows are yielded in the order the database returns them

How to change safely:
    - Protocol changes require updating PostgresViewStore and InMemoryViewStore
    - Keep the store read-only apart from log_access()
"""

from __future__ import annotations

from abc import abstractmethod
from contextlib import AbstractContextManager
from dataclasses import dataclass
from typing import Any, Iterator, Protocol, Sequence, runtime_checkable

# Names are quoted in SQL text, so they keep the marker used by the validator.
ACCESS_COOKIES_TABLE = "##PG_SCHEMA_DATACLIP_ACCESS_COOKIES##"
ACCESS_LOG_TABLE = "##PG_SCHEMA_DATACLIP_ACCESS_LOG##"


@dataclass
class ViewRows:
    """Rows streamed from a single view query.

    Attributes:
        columns: Column names in database order
        rows: Iterator over row tuples, valid until the session closes
    """

    columns: list[str]
    rows: Iterator[Sequence[Any]]


@runtime_checkable
class ViewSession(Protocol):
    """Database operations available to one request."""

    @abstractmethod
    def view_exists(self, viewname: str) -> bool:
        """Return True iff exactly one view with this name is in the active schema."""
        ...

    @abstractmethod
    def count_grants(self, viewname: str) -> int:
        """Count grant rows naming the view, for any access cookie."""
        ...

    @abstractmethod
    def count_cookie_grants(self, viewname: str, access_cookie: str) -> int:
        """Count grant rows for exactly (viewname, access_cookie)."""
        ...

    @abstractmethod
    def log_access(self, viewname: str, access_allowed: bool) -> None:
        """Append one row to the access log."""
        ...

    @abstractmethod
    def select_view(self, viewname: str, offset: int) -> ViewRows:
        """Run SELECT * FROM <viewname> OFFSET <offset>.

        Raises:
            InvalidViewNameError: If viewname fails validation
            QueryError: If the query fails
        """
        ...


@runtime_checkable
class ViewStore(Protocol):
    """Protocol for view store backends.

    Example:
        >>> store = PostgresViewStore(config.database)
        >>> store.open()
        >>> with store.session() as session:
        ...     session.view_exists("daily_sales")
        >>> store.close()
    """

    @abstractmethod
    def open(self) -> None:
        """Connect and run a sanity query.

        Raises:
            StoreConnectionError: If the database is unreachable
        """
        ...

    @abstractmethod
    def close(self) -> None:
        """Release all connections."""
        ...

    @abstractmethod
    def session(self) -> AbstractContextManager[ViewSession]:
        """Check out a connection for one request."""
        ...

    @abstractmethod
    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        ...
