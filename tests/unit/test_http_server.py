"""
Unit tests for the HTTP server.

Uses FastAPI's TestClient with an in-memory view store.

Tests cover:
- Rendering and refusal status codes
- HTML escaping of column names and values
- Banner and truncation notice
- Request timeout and store outages
- Health endpoint
"""

import asyncio
import threading
import time
from contextlib import contextmanager

import pytest
from fastapi.testclient import TestClient

from dbaas.dataclip_server.api import http_server
from dbaas.dataclip_server.api.http_server import create_app
from dbaas.dataclip_server.config import DatabaseConfig, HttpConfig, ServerConfig
from dbaas.dataclip_server.gateway import INVALID_NAME_MESSAGE, NOT_FOUND_OR_DENIED_MESSAGE
from dbaas.dataclip_server.store import InMemoryViewStore


class SlowStore(InMemoryViewStore):
    """In-memory store whose sessions block like a slow database."""

    def __init__(self, delay):
        super().__init__()
        self.delay = delay
        self.active = 0
        self.max_active = 0
        self._active_lock = threading.Lock()

    @contextmanager
    def session(self):
        with super().session() as session:
            with self._active_lock:
                self.active += 1
                self.max_active = max(self.max_active, self.active)
            try:
                time.sleep(self.delay)
                yield session
            finally:
                with self._active_lock:
                    self.active -= 1


@pytest.fixture
def store():
    s = InMemoryViewStore()
    s.add_view("foo", ["id", "name"], [(1, "alpha"), (2, "beta"), (3, "gamma")])
    s.add_view("bar", ["secret"], [("classified",)])
    s.add_view("xss", ["<script>col</script>"], [("<img src=x onerror=alert(1)>",)])
    s.grant("bar", "secret-token")
    return s


@pytest.fixture
def client(store):
    app = create_app(ServerConfig(), store=store)
    with TestClient(app) as c:
        yield c


class TestDataclipEndpoint:
    """Tests for GET /dataclip."""

    def test_renders_public_view(self, client):
        response = client.get("/dataclip", params={"viewname": "foo"})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/html")
        assert "<title>Data for: foo</title>" in response.text
        assert "<th>id</th><th>name</th>" in response.text
        assert "<td>2</td><td>beta</td>" in response.text
        assert "Showing 3 of 3 rows" in response.text

    def test_root_path_serves_views(self, client):
        response = client.get("/", params={"viewname": "foo"})
        assert response.status_code == 200
        assert "alpha" in response.text

    def test_restricted_view_with_cookie(self, client):
        response = client.get(
            "/dataclip", params={"viewname": "bar", "access_cookie": "Secret-Token"}
        )
        assert response.status_code == 200
        assert "classified" in response.text

    @pytest.mark.parametrize("params", [{"viewname": "bar"}, {"viewname": "bar", "access_cookie": "wrong"}])
    def test_restricted_view_refused(self, client, params):
        response = client.get("/dataclip", params=params)

        assert response.status_code == 404
        assert "classified" not in response.text
        assert NOT_FOUND_OR_DENIED_MESSAGE in response.text

    def test_missing_view_indistinguishable(self, client):
        missing = client.get("/dataclip", params={"viewname": "missing_view"})
        denied = client.get("/dataclip", params={"viewname": "bar", "access_cookie": "wrong"})

        assert missing.status_code == denied.status_code == 404
        assert missing.text == denied.text

    def test_refusal_does_not_echo_cookie(self, client):
        response = client.get(
            "/dataclip", params={"viewname": "bar", "access_cookie": "guessed-cookie"}
        )
        assert "guessed-cookie" not in response.text

    def test_missing_viewname(self, client):
        response = client.get("/dataclip")

        assert response.status_code == 400
        assert INVALID_NAME_MESSAGE in response.text

    def test_control_table_name(self, client, store):
        response = client.get(
            "/dataclip", params={"viewname": "##pg_schema_dataclip_access_cookies##"}
        )

        assert response.status_code == 400
        assert store.sessions_opened == 0

    def test_escapes_database_text(self, client):
        response = client.get("/dataclip", params={"viewname": "xss"})

        assert response.status_code == 200
        assert "<script>" not in response.text
        assert "&lt;script&gt;col&lt;/script&gt;" in response.text
        assert "&lt;img src=x onerror=alert(1)&gt;" in response.text

    def test_pagination_and_truncation_notice(self, client):
        response = client.get("/dataclip", params={"viewname": "foo", "limit": "1", "offset": "1"})

        assert response.status_code == 200
        assert "<td>2</td><td>beta</td>" in response.text
        assert "gamma" not in response.text
        assert "Showing 1 of 2 rows (offset 1)" in response.text
        assert "Only the first 1 rows are displayed" in response.text

    def test_invalid_pagination_falls_back(self, client):
        response = client.get(
            "/dataclip", params={"viewname": "foo", "limit": "many", "offset": "-1"}
        )

        assert response.status_code == 200
        assert "Showing 3 of 3 rows" in response.text

    def test_query_error_hidden(self, client, store):
        store.fail("select_view")
        response = client.get("/dataclip", params={"viewname": "foo"})

        assert response.status_code == 404
        assert "simulated" not in response.text

    def test_store_outage(self, client, store):
        store.close()
        response = client.get("/dataclip", params={"viewname": "foo"})

        assert response.status_code == 503
        assert "not open" not in response.text


class TestRequestTimeout:
    """Requests are bounded by request_timeout_seconds."""

    def test_slow_request_times_out(self, store, monkeypatch):
        async def slow_handle(app, view_request):
            await asyncio.sleep(5)

        monkeypatch.setattr(http_server, "_handle", slow_handle)
        config = ServerConfig(http=HttpConfig(request_timeout_seconds=0.05))

        with TestClient(create_app(config, store=store)) as client:
            response = client.get("/dataclip", params={"viewname": "foo"})

        assert response.status_code == 504
        assert "took too long" in response.text

    def test_timed_out_worker_keeps_its_slot(self):
        """A worker left running by a timeout still counts against pool_max."""
        store = SlowStore(delay=0.5)
        store.add_view("foo", ["id"], [(1,)])
        config = ServerConfig(
            database=DatabaseConfig(pool_max=1),
            http=HttpConfig(request_timeout_seconds=0.1),
        )

        with TestClient(create_app(config, store=store)) as client:
            first = client.get("/dataclip", params={"viewname": "foo"})
            second = client.get("/dataclip", params={"viewname": "foo"})
            health = client.get("/health")
            time.sleep(1.0)
            third = client.get("/dataclip", params={"viewname": "foo"})
            time.sleep(0.7)

        assert first.status_code == second.status_code == third.status_code == 504
        assert health.status_code == 200
        assert store.max_active <= 1
        # the second request never got a slot; the third did once the first finished
        assert store.sessions_opened == 2


class TestHealth:
    """Tests for GET /health."""

    def test_healthy(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "service": "dataclip"}

    def test_unhealthy(self, client, store):
        store.close()
        response = client.get("/health")

        assert response.status_code == 503
        assert response.json()["status"] == "unhealthy"


def test_injected_store_left_open_after_shutdown(store):
    """The app closes only stores it created itself."""
    with TestClient(create_app(ServerConfig(), store=store)):
        assert store.is_open
    assert store.is_open
