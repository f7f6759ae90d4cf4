"""
Entrypoint for the Eventra MCP server.

``create_app`` builds the network (SSE) application; ``create_callback_app``
builds the standalone OAuth callback listener used alongside the stdio
transport. ``main`` loads configuration, prepares the token store and starts
the selected transport.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sqlite3
import sys
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pydantic import ValidationError as SettingsValidationError

from eventra.api.routes import callback_router, router as api_router
from eventra.api.tools import SERVER_VERSION, build_tool_server
from eventra.core.config import AppSettings, get_settings
from eventra.core.errors import StartupError
from eventra.core.logging import configure_logging
from eventra.dependencies import (
    get_app_settings,
    get_calendar_tool_service,
    get_credential_manager,
    get_token_store,
)
from eventra.services import CalendarToolService

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[AppSettings] = None,
    tool_service: Optional[CalendarToolService] = None,
) -> FastAPI:
    """Factory for the network-mode application (HTTP routes plus MCP over SSE)."""
    settings = settings or get_settings()
    tool_service = tool_service or get_calendar_tool_service()

    app = FastAPI(
        title="Eventra MCP Server",
        version=SERVER_VERSION,
        description="Calendar integration tools for Large Language Models.",
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origin_regex=".*",
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "Cache-Control"],
    )
    app.dependency_overrides[get_app_settings] = lambda: settings
    app.include_router(callback_router)
    app.include_router(api_router)

    tool_server = build_tool_server(tool_service, host=settings.server.host)
    app.state.tool_server = tool_server
    # Mounted last so the explicit routes above take precedence.
    app.mount("/", tool_server.sse_app())
    return app


def create_callback_app(settings: Optional[AppSettings] = None) -> FastAPI:
    """Factory for the standalone OAuth callback listener used in stdio mode."""
    settings = settings or get_settings()
    app = FastAPI(title="Eventra OAuth Callback", version=SERVER_VERSION)
    app.dependency_overrides[get_app_settings] = lambda: settings
    app.include_router(callback_router)
    return app


def load_settings() -> AppSettings:
    try:
        return get_settings()
    except SettingsValidationError as exc:
        raise StartupError(f"Missing or invalid configuration:\n{exc}") from exc


def initialize(settings: AppSettings) -> CalendarToolService:
    """Apply the token schema and load stored credentials for the default user."""
    store = get_token_store()
    try:
        store.ensure_schema()
    except (sqlite3.Error, OSError) as exc:
        if settings.is_production:
            raise StartupError(f"Token database unavailable: {exc}") from exc
        logger.warning(
            "Token database unavailable (%s); continuing without stored credentials", exc
        )

    get_credential_manager().session(settings.default_user_id)
    return get_calendar_tool_service()


def _tls_files(settings: AppSettings) -> tuple[Optional[str], Optional[str]]:
    server = settings.server
    if not server.use_https:
        return None, None
    if not settings.is_production:
        logger.warning("HTTPS is only enabled in production; using HTTP instead.")
        return None, None
    cert, key = server.ssl_cert_path, server.ssl_key_path
    if not cert or not key:
        logger.warning(
            "HTTPS was requested but certificate/key paths were not provided. Using HTTP instead."
        )
        return None, None
    if not (os.access(cert, os.R_OK) and os.access(key, os.R_OK)):
        logger.error("Cannot read TLS material at %s / %s; falling back to HTTP", cert, key)
        return None, None
    return cert, key


def _uvicorn_server(app: FastAPI, settings: AppSettings) -> uvicorn.Server:
    cert, key = _tls_files(settings)
    config = uvicorn.Config(
        app,
        host=settings.server.host,
        port=settings.server.port,
        ssl_certfile=cert,
        ssl_keyfile=key,
        # stdout may carry the MCP stream; keep uvicorn on the root logger.
        log_config=None,
        access_log=False,
    )
    scheme = "https" if cert else "http"
    logger.info(
        "HTTP listener on %s://%s:%d", scheme, settings.server.host, settings.server.port
    )
    return uvicorn.Server(config)


async def serve_network(settings: AppSettings, tool_service: CalendarToolService) -> None:
    app = create_app(settings, tool_service)
    logger.info("MCP endpoint at /sse, OAuth callback at /oauth2callback")
    await _uvicorn_server(app, settings).serve()


async def serve_stdio(settings: AppSettings, tool_service: CalendarToolService) -> None:
    tool_server = build_tool_server(tool_service, host=settings.server.host)
    callback_server = _uvicorn_server(create_callback_app(settings), settings)
    callback_task = asyncio.create_task(callback_server.serve())
    logger.info("MCP server initialized successfully (stdio mode)")
    try:
        await tool_server.run_stdio_async()
    finally:
        callback_server.should_exit = True
        await callback_task


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run the Eventra calendar MCP server.")
    parser.add_argument(
        "--transport",
        choices=("stdio", "network"),
        default=None,
        help="Override MCP_TRANSPORT for this run.",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)

    try:
        settings = load_settings()
    except StartupError as exc:
        configure_logging()
        logger.critical("Failed to initialize MCP server: %s", exc)
        return 1

    configure_logging(settings.log_level)
    if args.transport:
        settings.server.transport = args.transport

    try:
        tool_service = initialize(settings)
    except StartupError as exc:
        logger.critical("Failed to initialize MCP server: %s", exc)
        return 1

    runner = serve_network if settings.server.transport == "network" else serve_stdio
    logger.info(
        "Starting Eventra in %s mode (%s)",
        settings.server.transport,
        "production" if settings.is_production else "development",
    )
    try:
        asyncio.run(runner(settings, tool_service))
    except KeyboardInterrupt:
        logger.info("Shutting down gracefully")
    return 0


__all__ = ["create_app", "create_callback_app", "initialize", "load_settings", "main"]


if __name__ == "__main__":  # pragma: no cover - script entry point
    sys.exit(main())
