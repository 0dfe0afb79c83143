"""
HTTP server for Dataclip.

This module provides the FastAPI application that serves views as HTML:
- GET / and GET /dataclip: render a view (viewname, access_cookie, limit, offset)
- GET /health: database health check (JSON)

Invariants:
    - Handlers never return database error text to the caller
    - Each request is bounded by request_timeout_seconds
    - Worker threads holding a gateway connection never exceed pool_max,
      including threads left running by timed-out requests
    - /health uses the one connection reserved beyond pool_max

How to change safely:
    - Keep query parameter names stable; links with access cookies are shared
    - New endpoints must go through RequestHandler, never query the store directly

Usage:
    uvicorn --factory dbaas.dataclip_server.api.http_server:create_app
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Query, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import HTMLResponse, JSONResponse
from pydantic import BaseModel, Field

from .._version import __version__
from ..config import ServerConfig
from ..errors import StoreError
from ..gateway.handler import GatewayOutcome, RequestHandler, ViewRequest
from ..store.base import ViewStore
from ..store.postgres import PostgresViewStore
from .pages import ERROR_MESSAGE, TIMEOUT_MESSAGE, render_message, render_outcome

logger = logging.getLogger(__name__)


class HealthResponse(BaseModel):
    """Body of GET /health."""

    status: str = Field(..., description="healthy or unhealthy")
    service: str = "dataclip"


def create_app(
    config: ServerConfig | None = None,
    store: ViewStore | None = None,
) -> FastAPI:
    """Create the Dataclip FastAPI application.

    Args:
        config: Server configuration (loaded from env if not provided)
        store: View store to use instead of PostgreSQL (tests, demos)

    Returns:
        FastAPI application

    Raises:
        ConfigError: If config is loaded from env and is invalid
    """
    config = config or ServerConfig.from_env()
    view_store: ViewStore = store if store is not None else PostgresViewStore(config.database)
    owns_store = store is None

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Manage view store lifecycle."""
        await run_in_threadpool(view_store.open)

        app.state.config = config
        app.state.store = view_store
        app.state.handler = RequestHandler(
            view_store,
            access_log_enabled=config.gateway.access_log_enabled,
            default_limit=config.gateway.default_limit,
        )
        app.state.limiter = asyncio.Semaphore(config.database.pool_max)
        app.state.health_lock = asyncio.Lock()

        yield

        if owns_store:
            await run_in_threadpool(view_store.close)

    app = FastAPI(
        title="Dataclip",
        description="Read-only HTML access to named database views.",
        version=__version__,
        lifespan=lifespan,
    )

    @app.get("/", response_class=HTMLResponse)
    @app.get("/dataclip", response_class=HTMLResponse)
    async def dataclip(
        request: Request,
        viewname: str | None = Query(None, description="View to display"),
        access_cookie: str | None = Query(None, description="Access token for restricted views"),
        limit: str | None = Query(None, description="Rows to display (default 5000)"),
        offset: str | None = Query(None, description="Rows to skip (default 0)"),
    ) -> HTMLResponse:
        view_request = ViewRequest(
            viewname=viewname,
            access_cookie=access_cookie,
            limit=limit,
            offset=offset,
        )

        try:
            outcome = await asyncio.wait_for(
                _handle(request.app, view_request),
                timeout=config.http.request_timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.error(
                "View request timed out",
                extra={"viewname": viewname, "timeout": config.http.request_timeout_seconds},
            )
            return HTMLResponse(render_message(TIMEOUT_MESSAGE), status_code=504)
        except StoreError as e:
            logger.error(f"View store unavailable: {e.message}", extra={"viewname": viewname})
            return HTMLResponse(render_message(ERROR_MESSAGE), status_code=503)

        return HTMLResponse(render_outcome(outcome), status_code=outcome.status_code)

    @app.get("/health", response_model=HealthResponse)
    async def health(request: Request) -> JSONResponse:
        # One connection beyond pool_max is reserved for health checks
        async with request.app.state.health_lock:
            healthy = await run_in_threadpool(request.app.state.store.ping)
        body = HealthResponse(status="healthy" if healthy else "unhealthy")
        return JSONResponse(
            body.model_dump(),
            status_code=200 if healthy else 503,
        )

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception) -> HTMLResponse:
        logger.error(f"HTTP handler error: {exc}", exc_info=exc)
        return HTMLResponse(render_message(ERROR_MESSAGE), status_code=500)

    return app


async def _handle(app: FastAPI, view_request: ViewRequest) -> GatewayOutcome:
    """Run the handler in a worker thread under the concurrency limiter.

    A timed-out request cancels only the wait. The worker thread keeps its
    pooled connection until it finishes, and holds its limiter slot until then.
    """
    limiter: asyncio.Semaphore = app.state.limiter
    await limiter.acquire()
    task = asyncio.ensure_future(run_in_threadpool(app.state.handler.handle, view_request))
    task.add_done_callback(lambda t: _release_slot(limiter, t))
    return await asyncio.shield(task)


def _release_slot(limiter: asyncio.Semaphore, task: asyncio.Future) -> None:
    limiter.release()
    if not task.cancelled() and task.exception() is not None:
        logger.debug("Worker finished with an error", exc_info=task.exception())
