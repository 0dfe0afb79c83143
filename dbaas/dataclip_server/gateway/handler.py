"""
Request orchestration for the view gateway.

A request moves through:

    START -> NAME_VALIDATED -> AUTHORIZED -> RENDERED
                  |                |
                  v                v
               REFUSED  <------ DENIED

Invariants:
    - The view name is validated before the database is touched
    - Missing views, denied views and failed view queries produce the same
      refusal message and status
    - With the access log enabled, existence and authorization are both
      evaluated so every request leaves a log row

How to change safely:
    - Do not add refusal messages that depend on why access failed
    - Keep the handler synchronous; the HTTP layer runs it in a threadpool
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping

from ..errors import QueryError
from ..store.base import ViewStore
from ..validation import (
    DEFAULT_LIMIT,
    normalize_access_cookie,
    parse_limit,
    parse_offset,
    valid_viewname,
)
from .acl import AccessControlOracle, ViewCatalogChecker
from .render import ResultRenderer, ResultWindow

logger = logging.getLogger(__name__)

INVALID_NAME_MESSAGE = "viewname was not supplied, or was not a valid format for a viewname."
NOT_FOUND_OR_DENIED_MESSAGE = (
    "Sorry, either a view by that name does not exist, "
    "or the access_cookie does not allow you access."
)


class GatewayState(Enum):
    """States of a gateway request."""

    START = "start"
    NAME_VALIDATED = "name_validated"
    AUTHORIZED = "authorized"
    DENIED = "denied"
    RENDERED = "rendered"
    REFUSED = "refused"


class RefusalReason(Enum):
    """Caller-visible refusal categories."""

    INVALID_NAME = "invalid_name"
    NOT_FOUND_OR_DENIED = "not_found_or_denied"


@dataclass(frozen=True)
class ViewRequest:
    """Raw request parameters, as received.

    Attributes:
        viewname: Requested view name
        access_cookie: Access cookie, if any
        limit: Display limit, unparsed
        offset: Skip count, unparsed
    """

    viewname: str | None = None
    access_cookie: str | None = None
    limit: str | None = None
    offset: str | None = None

    @classmethod
    def from_params(cls, params: Mapping[str, Any]) -> ViewRequest:
        """Build from a query-string style mapping."""

        def _get(name: str) -> str | None:
            value = params.get(name)
            return None if value is None else str(value)

        return cls(
            viewname=_get("viewname"),
            access_cookie=_get("access_cookie"),
            limit=_get("limit"),
            offset=_get("offset"),
        )


@dataclass
class GatewayOutcome:
    """Final result of a gateway request.

    Attributes:
        state: RENDERED or REFUSED
        viewname: Validated view name (None if validation failed)
        window: Result page when rendered
        reason: Refusal category when refused
    """

    state: GatewayState
    viewname: str | None = None
    window: ResultWindow | None = None
    reason: RefusalReason | None = None

    @property
    def rendered(self) -> bool:
        return self.state == GatewayState.RENDERED

    @property
    def message(self) -> str | None:
        if self.reason == RefusalReason.INVALID_NAME:
            return INVALID_NAME_MESSAGE
        if self.reason == RefusalReason.NOT_FOUND_OR_DENIED:
            return NOT_FOUND_OR_DENIED_MESSAGE
        return None

    @property
    def status_code(self) -> int:
        if self.reason == RefusalReason.INVALID_NAME:
            return 400
        if self.reason == RefusalReason.NOT_FOUND_OR_DENIED:
            return 404
        return 200


class RequestHandler:
    """Sequences validation, authorization and rendering for one request.

    Attributes:
        store: View store backend
        oracle: Access control decisions
        catalog: View existence checks
        renderer: Result window builder
        default_limit: Display limit when none (or an invalid one) is given

    Example:
        >>> handler = RequestHandler(store)
        >>> outcome = handler.handle(ViewRequest(viewname="foo"))
        >>> outcome.state
        <GatewayState.RENDERED: 'rendered'>
    """

    def __init__(
        self,
        store: ViewStore,
        access_log_enabled: bool = False,
        default_limit: int = DEFAULT_LIMIT,
    ) -> None:
        self.store = store
        self.oracle = AccessControlOracle(access_log_enabled=access_log_enabled)
        self.catalog = ViewCatalogChecker()
        self.renderer = ResultRenderer()
        self.default_limit = default_limit

    @property
    def access_log_enabled(self) -> bool:
        return self.oracle.access_log_enabled

    def handle(self, request: ViewRequest) -> GatewayOutcome:
        """Process one view request.

        Store connection failures propagate; every other failure becomes a
        REFUSED outcome.
        """
        if not valid_viewname(request.viewname):
            return GatewayOutcome(state=GatewayState.REFUSED, reason=RefusalReason.INVALID_NAME)

        viewname: str = request.viewname  # type: ignore[assignment]
        access_cookie = normalize_access_cookie(request.access_cookie)

        limit = parse_limit(request.limit, self.default_limit)
        offset = parse_offset(request.offset)
        for name, parsed, raw in (("limit", limit, request.limit), ("offset", offset, request.offset)):
            if parsed.defaulted and parsed.reason != "missing":
                logger.info(
                    f"{name} {raw!r} is {parsed.reason}, using {parsed.value}",
                    extra={"viewname": viewname},
                )

        with self.store.session() as session:
            exists = self.catalog.exists(session, viewname)
            if self.access_log_enabled:
                authorized = self.oracle.is_authorized(session, viewname, access_cookie)
            else:
                authorized = exists and self.oracle.is_authorized(session, viewname, access_cookie)

            if not (exists and authorized):
                logger.info(
                    "View request denied",
                    extra={"viewname": viewname, "view_exists": exists, "authorized": authorized},
                )
                return self._denied(viewname)

            try:
                window = self.renderer.render(session, viewname, limit.value, offset.value)
            except QueryError:
                # The store has already logged the SQL and diagnostic
                logger.info("View query failed, refusing", extra={"viewname": viewname})
                return self._denied(viewname)

        logger.info(
            "View rendered",
            extra={
                "viewname": viewname,
                "total_rows": window.total_rows,
                "displayed_rows": window.displayed_rows,
                "offset": window.offset,
            },
        )
        return GatewayOutcome(state=GatewayState.RENDERED, viewname=viewname, window=window)

    def _denied(self, viewname: str) -> GatewayOutcome:
        return GatewayOutcome(
            state=GatewayState.REFUSED,
            viewname=viewname,
            reason=RefusalReason.NOT_FOUND_OR_DENIED,
        )
