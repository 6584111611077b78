"""Streamable HTTP transport: CORS policy, session store and request router."""

from .cors import CorsMiddleware, is_origin_allowed
from .router import HttpRequestRouter, is_initialize_request
from .server import create_http_app, run_http_server
from .sessions import Session, SessionStore, make_connector

__all__ = [
    "CorsMiddleware",
    "HttpRequestRouter",
    "Session",
    "SessionStore",
    "create_http_app",
    "is_initialize_request",
    "is_origin_allowed",
    "make_connector",
    "run_http_server",
]
