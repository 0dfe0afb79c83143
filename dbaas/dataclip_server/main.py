"""
Dataclip Server - Main entry point.

Commands:
    dataclip serve [--host HOST] [--port PORT]
        Run the HTTP server.
    dataclip render viewname=foo [access_cookie=...] [limit=N] [offset=N]
        Render one view to stdout, taking request parameters as key=value
        arguments (useful from cron jobs and shells).
    dataclip schema
        Print the DDL for the access-control tables.

Configuration is entirely via environment variables.
See config.py for all available settings.

Invariants:
    - Configuration and connection errors exit non-zero before serving anything
    - A refused render exits 1, a rendered one exits 0
"""

from __future__ import annotations

import argparse
import logging
import sys
from collections.abc import Sequence

import json_log_formatter
import uvicorn

from .api.http_server import create_app
from .api.pages import render_outcome
from .config import ServerConfig
from .errors import ConfigError, StoreConnectionError, StoreError
from .gateway.handler import RequestHandler, ViewRequest
from .store.postgres import PostgresViewStore
from .tools.control_tables import control_tables_ddl

logger = logging.getLogger(__name__)


def setup_logging(config: ServerConfig) -> None:
    """Configure logging based on configuration.

    Args:
        config: Server configuration
    """
    level = getattr(logging, config.observability.log_level.upper(), logging.INFO)

    if config.observability.log_format == "json":
        formatter: logging.Formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    # Logs go to stderr so `dataclip render` can write HTML to stdout
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Reduce noise from libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def parse_request_args(args: Sequence[str]) -> dict[str, str]:
    """Turn key=value arguments into request parameters.

    A bare `key` sets that parameter to the empty string.
    """
    params: dict[str, str] = {}
    for arg in args:
        key, sep, value = arg.partition("=")
        params[key] = value if sep else ""
    return params


def _load_config() -> ServerConfig:
    try:
        return ServerConfig.from_env()
    except ConfigError as e:
        print(f"Configuration error: {e.message}", file=sys.stderr)
        if e.hint:
            print(e.hint, file=sys.stderr)
        raise SystemExit(1)


def cmd_serve(args: argparse.Namespace) -> int:
    config = _load_config()
    setup_logging(config)
    config.log_config()

    host = args.host or config.http.host
    port = args.port or config.http.port
    app = create_app(config)

    logger.info(f"HTTP server running on http://{host}:{port}")
    uvicorn.run(app, host=host, port=port, log_config=None)
    return 0


def cmd_render(args: argparse.Namespace) -> int:
    config = _load_config()
    setup_logging(config)

    store = PostgresViewStore(config.database)
    try:
        store.open()
    except StoreConnectionError as e:
        logger.error(f"{e.message}: {e.diagnostic}")
        return 1

    try:
        handler = RequestHandler(
            store,
            access_log_enabled=config.gateway.access_log_enabled,
            default_limit=config.gateway.default_limit,
        )
        outcome = handler.handle(ViewRequest.from_params(parse_request_args(args.params)))
    except StoreError as e:
        logger.error(f"{e.message}: {e.details.get('diagnostic')}")
        return 1
    finally:
        store.close()

    sys.stdout.write(render_outcome(outcome))
    return 0 if outcome.rendered else 1


def cmd_schema(args: argparse.Namespace) -> int:
    sys.stdout.write(control_tables_ddl())
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dataclip",
        description="Serve named PostgreSQL views as HTML tables",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Run the HTTP server")
    serve.add_argument("--host", help="Bind host (default DATACLIP_HTTP_HOST)")
    serve.add_argument("--port", type=int, help="Bind port (default DATACLIP_HTTP_PORT)")

    render = subparsers.add_parser("render", help="Render one view to stdout")
    render.add_argument(
        "params",
        nargs="*",
        metavar="key=value",
        help="Request parameters, e.g. viewname=foo limit=10",
    )

    subparsers.add_parser("schema", help="Print access-control table DDL")

    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "serve":
        return cmd_serve(args)
    elif args.command == "render":
        return cmd_render(args)
    elif args.command == "schema":
        return cmd_schema(args)
    parser.error(f"unknown command {args.command}")
    return 2


if __name__ == "__main__":
    sys.exit(main())
