"""
Error types for Dataclip Server.

This module defines the exception types raised inside the server:
- DataclipError: Base exception
- ConfigError: Missing or invalid configuration (fatal at startup)
- StoreError: Database access failures
- StoreConnectionError: Connection or sanity query failed (fatal at startup)
- QueryError: A statement against the database failed
- InvalidViewNameError: A view name failed the allowlist check

Invariants:
    - All errors inherit from DataclipError
    - Raw database diagnostics stay in `details` and logs, never in responses
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class DataclipError(Exception):
    """Base exception for all Dataclip errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "DATACLIP_ERROR"
        self.details = details or {}


class ConfigError(DataclipError):
    """Configuration is missing or invalid.

    Attributes:
        setting: Environment variable or option at fault
        hint: How to fix it
    """

    def __init__(
        self,
        message: str,
        setting: Optional[str] = None,
        hint: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            code="CONFIG_ERROR",
            details={"setting": setting, "hint": hint},
        )
        self.setting = setting
        self.hint = hint


class StoreError(DataclipError):
    """Database access failed."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, code=code or "STORE_ERROR", details=details)


class StoreConnectionError(StoreError):
    """Could not connect to the database, or the sanity query failed."""

    def __init__(self, message: str, diagnostic: Optional[str] = None) -> None:
        super().__init__(
            message,
            code="STORE_CONNECTION_ERROR",
            details={"diagnostic": diagnostic},
        )
        self.diagnostic = diagnostic


class QueryError(StoreError):
    """A statement failed.

    Attributes:
        query: SQL text that failed
        diagnostic: Database error text (server-side logging only)
    """

    def __init__(
        self,
        message: str,
        query: Optional[str] = None,
        diagnostic: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            code="QUERY_ERROR",
            details={"query": query, "diagnostic": diagnostic},
        )
        self.query = query
        self.diagnostic = diagnostic


class InvalidViewNameError(DataclipError):
    """A view name was about to be used in SQL without passing validation."""

    def __init__(self, viewname: Optional[str]) -> None:
        super().__init__(
            "View name failed validation",
            code="INVALID_VIEW_NAME",
            details={"viewname": viewname},
        )
        self.viewname = viewname
