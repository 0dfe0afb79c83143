"""
Dataclip Server - Read-only HTTP gateway for named PostgreSQL views.

This package serves the rows of a database view as an HTML table:
- View names are checked against a strict allowlist before any SQL is built
- An access-control table decides which access cookies may read a view
- Results are paginated with a server-side OFFSET and a display-side limit

Architecture:
    ┌─────────────┐     ┌──────────────┐     ┌──────────────────┐
    │   Browser   │────▶│  HTTP / CLI  │────▶│  RequestHandler  │
    └─────────────┘     └──────────────┘     └────────┬─────────┘
                                                      │
                        ┌─────────────────────────────┼──────────────┐
                        ▼                             ▼              ▼
                  ┌───────────┐              ┌──────────────┐  ┌──────────┐
                  │ validate  │              │ catalog/ACL  │  │  render  │
                  └───────────┘              └──────┬───────┘  └────┬─────┘
                                                    ▼               ▼
                                              ┌─────────────────────────┐
                                              │  ViewStore (PostgreSQL) │
                                              └─────────────────────────┘

Invariants:
    - Views are public unless at least one grant row names them
    - Missing views and denied views are indistinguishable to the caller
    - Nothing is ever written except the optional access log

How to change safely:
    - Any new query built from a view name must use require_valid_viewname()
    - Keep refusal messages identical across denial causes
"""

from ._version import __version__

__all__ = ["__version__"]
