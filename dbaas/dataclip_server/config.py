"""
Configuration management for Dataclip Server.

All configuration is done via environment variables - no config files.
This module provides typed configuration classes with validation.

Invariants:
    - All settings except the connection string have working defaults
    - A missing connection string is a fatal startup error, never a per-request one
    - Secrets (the connection string) are never logged or exposed in error messages

How to change safely:
    - Add new settings with defaults that maintain backward compatibility
    - Keep PG_SCHEMA_DATACLIP_CONNECTION_STRING as the connection variable name
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field

from .errors import ConfigError

logger = logging.getLogger(__name__)

CONNECTION_STRING_ENV = "PG_SCHEMA_DATACLIP_CONNECTION_STRING"

CONNECTION_STRING_HINT = (
    "Set it before starting dataclip, for example:\n"
    f"  export {CONNECTION_STRING_ENV}=\"user='pguser' host='pghost' "
    "dbname='pgdatabase' password='pgpassword' sslmode='require'\"\n"
    "libpq is used, so passwords may also be stored in ~/.pgpass"
)


def _getenv_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}", setting=name)


def _getenv_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}", setting=name)


def _getenv_bool(name: str, default: bool) -> bool:
    return os.getenv(name, "true" if default else "false").lower() == "true"


@dataclass(frozen=True)
class DatabaseConfig:
    """PostgreSQL connection configuration.

    Attributes:
        connection_string: libpq conninfo string or postgresql:// URI
        pool_min: Connections opened eagerly
        pool_max: Concurrent gateway requests; the pool holds one more
            connection for health checks
        statement_timeout_ms: Per-statement timeout set on every connection
        fetch_batch_size: Rows fetched per round trip when streaming a view
    """

    connection_string: str | None = None
    pool_min: int = 1
    pool_max: int = 4
    statement_timeout_ms: int = 30000
    fetch_batch_size: int = 1000

    @classmethod
    def from_env(cls) -> DatabaseConfig:
        """Load configuration from environment variables."""
        return cls(
            connection_string=os.getenv(CONNECTION_STRING_ENV) or None,
            pool_min=_getenv_int("DATACLIP_POOL_MIN", 1),
            pool_max=_getenv_int("DATACLIP_POOL_MAX", 4),
            statement_timeout_ms=_getenv_int("DATACLIP_STATEMENT_TIMEOUT_MS", 30000),
            fetch_batch_size=_getenv_int("DATACLIP_FETCH_BATCH_SIZE", 1000),
        )

    def __repr__(self) -> str:
        return (
            "DatabaseConfig("
            f"connection_string={'***' if self.connection_string else None}, "
            f"pool_min={self.pool_min}, pool_max={self.pool_max}, "
            f"statement_timeout_ms={self.statement_timeout_ms}, "
            f"fetch_batch_size={self.fetch_batch_size})"
        )


@dataclass(frozen=True)
class HttpConfig:
    """HTTP server configuration.

    Attributes:
        host: Address to bind
        port: Port to listen on
        request_timeout_seconds: Upper bound on one request's total blocking time
    """

    host: str = "0.0.0.0"
    port: int = 8080
    request_timeout_seconds: float = 60.0

    @classmethod
    def from_env(cls) -> HttpConfig:
        """Load configuration from environment variables."""
        return cls(
            host=os.getenv("DATACLIP_HTTP_HOST", "0.0.0.0"),
            port=_getenv_int("DATACLIP_HTTP_PORT", 8080),
            request_timeout_seconds=_getenv_float("DATACLIP_REQUEST_TIMEOUT_SECONDS", 60.0),
        )


@dataclass(frozen=True)
class GatewayConfig:
    """View gateway behaviour.

    Attributes:
        default_limit: Rows displayed when limit is missing or invalid
        access_log_enabled: Append one access-log row per authorization decision
    """

    default_limit: int = 5000
    access_log_enabled: bool = False

    @classmethod
    def from_env(cls) -> GatewayConfig:
        """Load configuration from environment variables."""
        return cls(
            default_limit=_getenv_int("DATACLIP_DEFAULT_LIMIT", 5000),
            access_log_enabled=_getenv_bool("DATACLIP_ACCESS_LOG_ENABLED", False),
        )


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "INFO"
    log_format: str = "json"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "json"),
        )


@dataclass
class ServerConfig:
    """Complete server configuration.

    Attributes:
        database: PostgreSQL configuration
        http: HTTP server configuration
        gateway: View gateway configuration
        observability: Logging configuration
    """

    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    http: HttpConfig = field(default_factory=HttpConfig)
    gateway: GatewayConfig = field(default_factory=GatewayConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> ServerConfig:
        """Load complete configuration from environment variables.

        Raises:
            ConfigError: If required configuration is missing or invalid.
        """
        config = cls(
            database=DatabaseConfig.from_env(),
            http=HttpConfig.from_env(),
            gateway=GatewayConfig.from_env(),
            observability=ObservabilityConfig.from_env(),
        )
        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ConfigError: If configuration is invalid.
        """
        if not self.database.connection_string:
            raise ConfigError(
                f"{CONNECTION_STRING_ENV} environment variable not defined, please set one.",
                setting=CONNECTION_STRING_ENV,
                hint=CONNECTION_STRING_HINT,
            )
        if self.database.pool_min < 0 or self.database.pool_max < 1:
            raise ConfigError("DATACLIP_POOL_MAX must be at least 1", setting="DATACLIP_POOL_MAX")
        if self.database.pool_min > self.database.pool_max:
            raise ConfigError(
                "DATACLIP_POOL_MIN cannot exceed DATACLIP_POOL_MAX",
                setting="DATACLIP_POOL_MIN",
            )
        if self.database.fetch_batch_size < 1:
            raise ConfigError(
                "DATACLIP_FETCH_BATCH_SIZE must be at least 1",
                setting="DATACLIP_FETCH_BATCH_SIZE",
            )
        if self.gateway.default_limit < 0:
            raise ConfigError(
                "DATACLIP_DEFAULT_LIMIT cannot be negative", setting="DATACLIP_DEFAULT_LIMIT"
            )
        if self.http.request_timeout_seconds <= 0:
            raise ConfigError(
                "DATACLIP_REQUEST_TIMEOUT_SECONDS must be positive",
                setting="DATACLIP_REQUEST_TIMEOUT_SECONDS",
            )

    def log_config(self) -> None:
        """Log configuration (redacting secrets)."""
        logger.info(
            "Server configuration loaded",
            extra={
                "http_bind": f"{self.http.host}:{self.http.port}",
                "pool_min": self.database.pool_min,
                "pool_max": self.database.pool_max,
                "statement_timeout_ms": self.database.statement_timeout_ms,
                "default_limit": self.gateway.default_limit,
                "access_log_enabled": self.gateway.access_log_enabled,
                "log_level": self.observability.log_level,
            },
        )
