"""
View access gateway for Dataclip.

This module provides:
- Access control decisions against the grant table
- View existence checks against the catalog
- Paginated result windows
- The request handler that sequences them
"""

from .acl import AccessControlOracle, ViewCatalogChecker
from .handler import (
    INVALID_NAME_MESSAGE,
    NOT_FOUND_OR_DENIED_MESSAGE,
    GatewayOutcome,
    GatewayState,
    RefusalReason,
    RequestHandler,
    ViewRequest,
)
from .render import ResultRenderer, ResultWindow

__all__ = [
    "AccessControlOracle",
    "ViewCatalogChecker",
    "ResultRenderer",
    "ResultWindow",
    "RequestHandler",
    "ViewRequest",
    "GatewayOutcome",
    "GatewayState",
    "RefusalReason",
    "INVALID_NAME_MESSAGE",
    "NOT_FOUND_OR_DENIED_MESSAGE",
]
