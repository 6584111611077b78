"""
HTTP transport server.

Serves the session router behind the CORS middleware at ``/mcp``. Uvicorn
handles SIGINT/SIGTERM; the application lifespan starts the session sweep on
startup, destroys every session on shutdown, then runs the shutdown hook.
"""

import logging
from contextlib import asynccontextmanager
from typing import Awaitable, Callable, Optional

import uvicorn
from fastapi import FastAPI

from ..config import CorsConfig, HttpServerConfig
from ..constants import HTTP_TIMEOUT_SECONDS, MCP_ENDPOINT, SERVER_NAME, SERVER_VERSION
from .cors import CorsMiddleware
from .router import HttpRequestRouter

logger = logging.getLogger(__name__)


def create_http_app(
    router: HttpRequestRouter,
    cors_config: CorsConfig,
    http_config: HttpServerConfig,
    on_shutdown: Optional[Callable[[], Awaitable[None]]] = None,
) -> FastAPI:
    """Build the ASGI application serving MCP at ``/mcp``.

    Args:
        router: Session router; destroyed when the app shuts down
        cors_config: CORS policy applied ahead of the router
        http_config: Bind address, used for the startup log line
        on_shutdown: Awaited after every session is closed
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        router.store.start()
        logger.info(
            "MCP server listening on %s:%d%s (CORS mode: %s)",
            http_config.host,
            http_config.port,
            MCP_ENDPOINT,
            cors_config.mode.value,
        )
        yield
        logger.info("Shutting down, closing all sessions")
        await router.destroy()
        if on_shutdown is not None:
            await on_shutdown()
        logger.info("HTTP server closed")

    app = FastAPI(
        title=SERVER_NAME,
        version=SERVER_VERSION,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
        lifespan=lifespan,
    )
    app.add_route(MCP_ENDPOINT, CorsMiddleware(router, cors_config), include_in_schema=False)
    return app


def run_http_server(app: FastAPI, http_config: HttpServerConfig) -> None:
    """Serve ``app`` until a termination signal arrives.

    Startup failures (e.g. port already bound) propagate to the caller.
    """
    uvicorn.run(
        app,
        host=http_config.host,
        port=http_config.port,
        timeout_keep_alive=HTTP_TIMEOUT_SECONDS,
        log_level="warning",
    )
