"""
Request parameter validation for the view gateway.

View names cannot be bound as query parameters, so they are interpolated
into SQL text. The allowlist in this module is the injection boundary for
that value:
- View names: ^[a-z0-9_]+$ and never containing the control-table marker
- Access cookies: lowercased, ^[0-9a-z_-]+$, otherwise the public tier
- limit / offset: non-negative integers, otherwise documented defaults

Invariants:
    - require_valid_viewname() is called before any SQL is built from a name
    - A malformed access cookie degrades to 'public', never to elevated access
    - normalize_access_cookie() is idempotent

How to change safely:
    - Never widen VIEWNAME_PATTERN to include quotes, dots, or whitespace
    - Control tables must keep CONTROL_TABLE_MARKER in their names
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from .errors import InvalidViewNameError

logger = logging.getLogger(__name__)

# Every access-control and access-log table carries this marker in its name.
CONTROL_TABLE_MARKER = "PG_SCHEMA_DATACLIP_ACCESS"

VIEWNAME_PATTERN = re.compile(r"[a-z0-9_]+")
ACCESS_COOKIE_PATTERN = re.compile(r"[0-9a-z_-]+")
_MARKER_PATTERN = re.compile(re.escape(CONTROL_TABLE_MARKER), re.IGNORECASE)
_INTEGER_PATTERN = re.compile(r"-?[0-9]+")

PUBLIC_ACCESS_COOKIE = "public"
DEFAULT_LIMIT = 5000
DEFAULT_OFFSET = 0
# PostgreSQL bigint, the type OFFSET is bound as
MAX_INTEGER = 2**63 - 1


def _preview(value: str, width: int = 80) -> str:
    return value if len(value) <= width else value[:width] + "..."


def valid_viewname(candidate: str | None) -> bool:
    """Check whether a string may be used as a view name in SQL text.

    Args:
        candidate: Caller-supplied view name

    Returns:
        True if the name matches the allowlist and is not a control table
    """
    if not candidate:
        return False

    if _MARKER_PATTERN.search(candidate):
        logger.warning(
            "viewname rejected: resembles an access control table",
            extra={"viewname": _preview(candidate)},
        )
        return False

    if VIEWNAME_PATTERN.fullmatch(candidate) is None:
        logger.warning(
            f"viewname does not match validation {VIEWNAME_PATTERN.pattern}",
            extra={"viewname": _preview(candidate)},
        )
        return False

    return True


def require_valid_viewname(candidate: str | None) -> str:
    """Return the name unchanged if valid.

    Raises:
        InvalidViewNameError: If the name fails valid_viewname()
    """
    if not valid_viewname(candidate):
        raise InvalidViewNameError(candidate)
    return candidate  # type: ignore[return-value]


def normalize_access_cookie(raw: str | None) -> str:
    """Normalize a caller-supplied access cookie.

    The access cookie is either a token (originally a UUID) for restricted
    views, or the string 'public'. Anything that does not look like a token
    is treated as 'public'.

    Args:
        raw: Cookie as received, or None when absent

    Returns:
        Lowercased cookie, or 'public'
    """
    if raw is None:
        logger.debug("access_cookie not defined, using public")
        return PUBLIC_ACCESS_COOKIE

    cookie = raw.strip().lower()
    if ACCESS_COOKIE_PATTERN.fullmatch(cookie) is None:
        logger.warning(
            f"access_cookie does not match validation {ACCESS_COOKIE_PATTERN.pattern}, "
            "using public"
        )
        return PUBLIC_ACCESS_COOKIE
    return cookie


@dataclass(frozen=True)
class ParsedParam:
    """Result of parsing an optional integer request parameter.

    Attributes:
        value: Parsed value, or the default
        defaulted: True if the default was used
        reason: Why the default was used (missing, not_integer, negative,
            out_of_range)
    """

    value: int
    defaulted: bool = False
    reason: str | None = None


def parse_non_negative_int(raw: str | int | None, default: int) -> ParsedParam:
    """Parse a non-negative integer, falling back to a default.

    Args:
        raw: Raw parameter value
        default: Value used when raw is missing, non-numeric, negative, or
            above MAX_INTEGER
    """
    if raw is None or (isinstance(raw, str) and raw.strip() == ""):
        return ParsedParam(value=default, defaulted=True, reason="missing")

    if isinstance(raw, bool):
        return ParsedParam(value=default, defaulted=True, reason="not_integer")

    if isinstance(raw, int):
        value = raw
    else:
        text = raw.strip()
        # int() would also accept "+5", "1_000" and non-ASCII digits
        if _INTEGER_PATTERN.fullmatch(text) is None:
            return ParsedParam(value=default, defaulted=True, reason="not_integer")
        if len(text.lstrip("-").lstrip("0")) > len(str(MAX_INTEGER)):
            return ParsedParam(value=default, defaulted=True, reason="out_of_range")
        value = int(text)

    if value < 0:
        return ParsedParam(value=default, defaulted=True, reason="negative")
    if value > MAX_INTEGER:
        return ParsedParam(value=default, defaulted=True, reason="out_of_range")
    return ParsedParam(value=value)


def parse_limit(raw: str | int | None, default: int = DEFAULT_LIMIT) -> ParsedParam:
    """Parse the display limit (default 5000)."""
    return parse_non_negative_int(raw, default)


def parse_offset(raw: str | int | None) -> ParsedParam:
    """Parse the skip count (default 0)."""
    return parse_non_negative_int(raw, DEFAULT_OFFSET)
