"""
Access control for Dataclip views.

This module decides whether an access cookie may read a view:
- Views with no grant rows are public
- Views with grant rows are readable only with a listed cookie
- Optionally, every decision is appended to the access log

Grants are provisioned by an administrator directly in the database:

    INSERT INTO "##PG_SCHEMA_DATACLIP_ACCESS_COOKIES##" (viewname)
        VALUES ('foo');
    INSERT INTO "##PG_SCHEMA_DATACLIP_ACCESS_COOKIES##" (viewname, access_cookie)
        VALUES ('bar', gen_random_uuid());

Invariants:
    - Any one matching grant suffices (OR semantics)
    - A failed access-log write never changes the decision
    - A failed grant lookup denies access

How to change safely:
    - Never pass an unvalidated view name to these classes
    - Keep the control tables named with the validator's marker
"""

from __future__ import annotations

import logging

from ..errors import StoreError
from ..store.base import ViewSession

logger = logging.getLogger(__name__)


class AccessControlOracle:
    """Authorization decisions for (view, access cookie) pairs.

    Thread safety:
        This class is stateless and thread-safe.

    Example:
        >>> oracle = AccessControlOracle(access_log_enabled=True)
        >>> with store.session() as session:
        ...     oracle.is_authorized(session, "bar", "secret-token")
        True
    """

    def __init__(self, access_log_enabled: bool = False) -> None:
        self.access_log_enabled = access_log_enabled

    def is_authorized(self, session: ViewSession, viewname: str, access_cookie: str) -> bool:
        """Check whether access_cookie may read viewname.

        Args:
            session: Database session for this request
            viewname: Validated view name
            access_cookie: Normalized access cookie

        Returns:
            True if the view has no grants or a grant matches the cookie
        """
        allowed = self._decide(session, viewname, access_cookie)

        if self.access_log_enabled:
            self._log_access(session, viewname, allowed)

        return allowed

    def _decide(self, session: ViewSession, viewname: str, access_cookie: str) -> bool:
        try:
            if session.count_grants(viewname) == 0:
                logger.debug("No restrictions for view", extra={"viewname": viewname})
                return True

            if session.count_cookie_grants(viewname, access_cookie) >= 1:
                logger.debug("Access cookie matched for view", extra={"viewname": viewname})
                return True
        except StoreError as e:
            logger.error(
                f"Access control lookup failed, denying: {e.message}",
                extra={"viewname": viewname},
            )
            return False

        return False

    def _log_access(self, session: ViewSession, viewname: str, allowed: bool) -> None:
        try:
            session.log_access(viewname, allowed)
        except StoreError as e:
            logger.warning(
                f"Access log write failed: {e.message}",
                extra={"viewname": viewname, "access_allowed": allowed},
            )


class ViewCatalogChecker:
    """Checks that a view exists in the connection's current schema."""

    def exists(self, session: ViewSession, viewname: str) -> bool:
        try:
            found = session.view_exists(viewname)
        except StoreError as e:
            logger.error(f"View lookup failed: {e.message}", extra={"viewname": viewname})
            return False

        if not found:
            logger.info("View does not exist in the current schema", extra={"viewname": viewname})
        return found
