"""
CORS policy for the MCP HTTP endpoint.

Modes:
- strict: only origins in the allow-list
- development: allow-list plus localhost origins
- disabled: every origin (not recommended for production)

Requests without an Origin header (same-origin or non-browser clients) are
always allowed.
"""

import logging
import re
from typing import Optional

from fastapi import Request
from fastapi.responses import PlainTextResponse, Response

from ..config import CorsConfig, CorsMode
from ..constants import CORS_ALLOWED_HEADERS, CORS_ALLOWED_METHODS, CORS_MAX_AGE_SECONDS

logger = logging.getLogger(__name__)

LOCALHOST_PATTERN = re.compile(r"^https?://(localhost|127\.0\.0\.1|\[::1\])(:\d+)?$")


def is_origin_allowed(origin: Optional[str], config: CorsConfig) -> bool:
    """Decide whether a request from ``origin`` may proceed."""
    if config.mode == CorsMode.DISABLED:
        return True
    if not origin:
        return True
    if origin in config.allowed_origins:
        return True
    if config.mode == CorsMode.DEVELOPMENT and LOCALHOST_PATTERN.match(origin):
        return True
    return False


def cors_headers(origin: Optional[str] = None) -> list[tuple[bytes, bytes]]:
    """Response headers advertising the allowed origin, methods and headers."""
    return [
        (b"access-control-max-age", str(CORS_MAX_AGE_SECONDS).encode()),
        (b"access-control-allow-origin", (origin or "*").encode()),
        (b"access-control-allow-methods", CORS_ALLOWED_METHODS.encode()),
        (b"access-control-allow-headers", CORS_ALLOWED_HEADERS.encode()),
    ]


class CorsMiddleware:
    """ASGI middleware enforcing :func:`is_origin_allowed` ahead of ``app``.

    Denied origins get 403 "Origin not allowed". Allowed cross-origin requests
    get CORS headers on their response, and OPTIONS preflights are answered
    with 200 without reaching ``app``.
    """

    def __init__(self, app, config: CorsConfig):
        self.app = app
        self.config = config

    async def __call__(self, scope, receive, send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request = Request(scope)
        origin = request.headers.get("origin")

        if self.config.mode == CorsMode.DISABLED:
            headers = cors_headers()
        elif not origin:
            await self.app(scope, receive, send)
            return
        elif not is_origin_allowed(origin, self.config):
            logger.info("Rejected request from disallowed origin %s", origin)
            await PlainTextResponse("Origin not allowed", status_code=403)(scope, receive, send)
            return
        else:
            headers = cors_headers(origin)

        if request.method == "OPTIONS":
            response = Response(status_code=200)
            response.raw_headers.extend(headers)
            await response(scope, receive, send)
            return

        async def send_with_cors(message) -> None:
            if message["type"] == "http.response.start":
                message["headers"] = list(message.get("headers", [])) + headers
            await send(message)

        await self.app(scope, receive, send_with_cors)
