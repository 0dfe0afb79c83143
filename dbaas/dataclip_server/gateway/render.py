"""
Paginated result windows for Dataclip views.

The view query applies OFFSET in the database but no LIMIT: every remaining
row is fetched so that the true post-offset row count can be reported, and
the display limit is applied while iterating.

Invariants:
    - At most `limit` rows are displayed; limit=0 is valid
    - total_rows counts every row after the offset
    - Column order and row order are exactly the database's
    - Values are raw text; escaping happens once, in the page template
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from ..store.base import ViewSession


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, memoryview):
        value = value.tobytes()
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


@dataclass
class ResultWindow:
    """One page of a view.

    Attributes:
        viewname: View the rows came from
        columns: Column names in database order
        rows: Displayed rows as text tuples
        total_rows: Rows in the result after the offset
        limit: Display cap used
        offset: Rows skipped in the database
    """

    viewname: str
    columns: list[str]
    rows: list[tuple[str, ...]] = field(default_factory=list)
    total_rows: int = 0
    limit: int = 0
    offset: int = 0

    @property
    def displayed_rows(self) -> int:
        return len(self.rows)

    @property
    def truncated(self) -> bool:
        return self.total_rows > self.limit

    def as_dicts(self) -> list[dict[str, str]]:
        """Rows as column-name mappings."""
        return [dict(zip(self.columns, row)) for row in self.rows]


class ResultRenderer:
    """Runs the view query and builds a ResultWindow."""

    def render(self, session: ViewSession, viewname: str, limit: int, offset: int) -> ResultWindow:
        """Fetch one page of a view.

        Args:
            session: Database session for this request
            viewname: Validated view name
            limit: Maximum rows to display (>= 0)
            offset: Rows to skip in the database (>= 0)

        Raises:
            ValueError: If limit or offset is negative
            QueryError: If the query fails
        """
        if limit < 0 or offset < 0:
            raise ValueError("limit and offset must be non-negative")

        result = session.select_view(viewname, offset)

        rows: list[tuple[str, ...]] = []
        total = 0
        for row in result.rows:
            if total < limit:
                rows.append(tuple(_as_text(v) for v in row))
            total += 1

        return ResultWindow(
            viewname=viewname,
            columns=[_as_text(c) for c in result.columns],
            rows=rows,
            total_rows=total,
            limit=limit,
            offset=offset,
        )
