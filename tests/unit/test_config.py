"""
Unit tests for configuration loading.
"""

import pytest

from dbaas.dataclip_server.config import (
    CONNECTION_STRING_ENV,
    DatabaseConfig,
    GatewayConfig,
    HttpConfig,
    ServerConfig,
)
from dbaas.dataclip_server.errors import ConfigError

CONNSTRING = "user='pguser' host='pghost' dbname='pgdatabase' password='hunter2'"


@pytest.fixture
def clean_env(monkeypatch):
    """Remove every Dataclip variable from the environment."""
    for name in [
        CONNECTION_STRING_ENV,
        "DATACLIP_POOL_MIN",
        "DATACLIP_POOL_MAX",
        "DATACLIP_STATEMENT_TIMEOUT_MS",
        "DATACLIP_FETCH_BATCH_SIZE",
        "DATACLIP_HTTP_HOST",
        "DATACLIP_HTTP_PORT",
        "DATACLIP_REQUEST_TIMEOUT_SECONDS",
        "DATACLIP_DEFAULT_LIMIT",
        "DATACLIP_ACCESS_LOG_ENABLED",
        "LOG_LEVEL",
        "LOG_FORMAT",
    ]:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestServerConfig:
    """Tests for ServerConfig.from_env()."""

    def test_missing_connection_string_is_fatal(self, clean_env):
        with pytest.raises(ConfigError) as exc_info:
            ServerConfig.from_env()

        assert exc_info.value.setting == CONNECTION_STRING_ENV
        assert "export" in exc_info.value.hint

    def test_defaults(self, clean_env):
        clean_env.setenv(CONNECTION_STRING_ENV, CONNSTRING)
        config = ServerConfig.from_env()

        assert config.database.connection_string == CONNSTRING
        assert config.database.pool_max == 4
        assert config.http.port == 8080
        assert config.gateway.default_limit == 5000
        assert config.gateway.access_log_enabled is False
        assert config.observability.log_format == "json"

    def test_overrides(self, clean_env):
        clean_env.setenv(CONNECTION_STRING_ENV, CONNSTRING)
        clean_env.setenv("DATACLIP_POOL_MAX", "2")
        clean_env.setenv("DATACLIP_HTTP_PORT", "9000")
        clean_env.setenv("DATACLIP_ACCESS_LOG_ENABLED", "TRUE")
        clean_env.setenv("DATACLIP_DEFAULT_LIMIT", "100")
        clean_env.setenv("DATACLIP_REQUEST_TIMEOUT_SECONDS", "2.5")

        config = ServerConfig.from_env()

        assert config.database.pool_max == 2
        assert config.http.port == 9000
        assert config.http.request_timeout_seconds == 2.5
        assert config.gateway.access_log_enabled is True
        assert config.gateway.default_limit == 100

    def test_non_integer_setting(self, clean_env):
        clean_env.setenv(CONNECTION_STRING_ENV, CONNSTRING)
        clean_env.setenv("DATACLIP_POOL_MAX", "four")

        with pytest.raises(ConfigError) as exc_info:
            ServerConfig.from_env()
        assert exc_info.value.setting == "DATACLIP_POOL_MAX"

    @pytest.mark.parametrize(
        "database,gateway,http",
        [
            (DatabaseConfig(connection_string="x", pool_min=5, pool_max=2), GatewayConfig(), HttpConfig()),
            (DatabaseConfig(connection_string="x", pool_max=0), GatewayConfig(), HttpConfig()),
            (DatabaseConfig(connection_string="x", fetch_batch_size=0), GatewayConfig(), HttpConfig()),
            (DatabaseConfig(connection_string="x"), GatewayConfig(default_limit=-1), HttpConfig()),
            (DatabaseConfig(connection_string="x"), GatewayConfig(), HttpConfig(request_timeout_seconds=0)),
        ],
    )
    def test_validate_rejects_inconsistent_values(self, database, gateway, http):
        config = ServerConfig(database=database, gateway=gateway, http=http)
        with pytest.raises(ConfigError):
            config.validate()


def test_connection_string_not_in_repr():
    """The connection string may hold a password and is never shown."""
    config = DatabaseConfig(connection_string=CONNSTRING)
    assert "hunter2" not in repr(config)
    assert "hunter2" not in repr(ServerConfig(database=config))
