"""
Transport launchers for the Pulumi MCP server.

- stdio: a single session over stdin/stdout
- sse: FastMCP's built-in SSE server
- http: Streamable HTTP with per-session servers, CORS and idle-session cleanup
"""

import logging
import sys
from typing import Literal, Optional

import anyio

from .config import load_cors_config, load_http_config, load_session_config
from .constants import DEFAULT_PORT, MCP_ENDPOINT
from .http import HttpRequestRouter, SessionStore, create_http_app, make_connector, run_http_server
from .server import Services, build_services, create_server

logger = logging.getLogger(__name__)

Transport = Literal["stdio", "sse", "http"]


def run_stdio(services: Services) -> None:
    print("Pulumi MCP Server running via stdio", file=sys.stderr)
    mcp = create_server(services)

    async def serve() -> None:
        try:
            await mcp.run_stdio_async()
        finally:
            await services.close()

    anyio.run(serve)


def run_sse(services: Services, port: int = DEFAULT_PORT) -> None:
    http_config = load_http_config(port)
    mcp = create_server(services)
    mcp.settings.host = http_config.host
    mcp.settings.port = http_config.port
    print(f"Pulumi MCP Server running via SSE at http://{http_config.host}:{port}/sse", file=sys.stderr)

    async def serve() -> None:
        try:
            await mcp.run_sse_async()
        finally:
            await services.close()

    anyio.run(serve)


def create_router(services: Services) -> HttpRequestRouter:
    """Build the session-aware router; every session gets its own MCP server over shared services."""
    store = SessionStore(load_session_config(), make_connector(lambda: create_server(services)))
    return HttpRequestRouter(store)


def run_http(services: Services, port: int = DEFAULT_PORT) -> None:
    http_config = load_http_config(port)
    cors_config = load_cors_config()
    logger.info("CORS mode: %s", cors_config.mode.value)

    app = create_http_app(create_router(services), cors_config, http_config, on_shutdown=services.close)
    print(
        f"Pulumi MCP Server running via Streamable HTTP at http://{http_config.host}:{port}{MCP_ENDPOINT}",
        file=sys.stderr,
    )
    run_http_server(app, http_config)


def run_server(
    transport: Transport = "stdio",
    port: int = DEFAULT_PORT,
    services: Optional[Services] = None,
) -> None:
    """Run the MCP server with the specified transport.

    Args:
        transport: Transport type - "stdio", "sse" or "http"
        port: Port to bind to (for network transports)
        services: Shared collaborators; built from the environment when omitted
    """
    services = services or build_services()
    logger.info("Pulumi MCP Server starting (transport=%s, test_mode=%s)", transport, services.test_mode)

    if transport == "stdio":
        run_stdio(services)
    elif transport == "sse":
        run_sse(services, port)
    elif transport == "http":
        run_http(services, port)
    else:
        raise ValueError(f"Unknown transport: {transport}")
