"""
Configuration models for the Pulumi MCP Server.

All settings are read from the environment once at startup and injected into
the components that need them. Invalid values never fail startup: they fall
back to defaults with a warning.
"""

import logging
import os
from enum import Enum
from typing import Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

from .constants import (
    DEFAULT_CLEANUP_INTERVAL_MS,
    DEFAULT_HTTP_HOST,
    DEFAULT_MAX_SESSIONS,
    DEFAULT_NEO_ORG,
    DEFAULT_PORT,
    DEFAULT_SESSION_TIMEOUT_MS,
    ENV_ALLOWED_ORIGINS,
    ENV_CACHE_DIR,
    ENV_CLEANUP_INTERVAL,
    ENV_CORS_MODE,
    ENV_HTTP_HOST,
    ENV_MAX_SESSIONS,
    ENV_NEO_ORG,
    ENV_SESSION_TIMEOUT,
    NEO_POLL_INTERVAL_SECONDS,
    NEO_POLL_TIMEOUT_SECONDS,
    REQUEST_TIMEOUT_SECONDS,
    get_api_url,
    get_console_url,
)

logger = logging.getLogger(__name__)


class CorsMode(str, Enum):
    """How strictly browser origins are checked."""

    STRICT = "strict"
    """Only origins in the explicit allow-list."""

    DEVELOPMENT = "development"
    """Allow-list plus any localhost origin."""

    DISABLED = "disabled"
    """No origin checks at all."""


class CorsConfig(BaseModel):
    """CORS policy configuration."""

    model_config = ConfigDict(frozen=True)

    mode: CorsMode = CorsMode.STRICT
    allowed_origins: list[str] = Field(default_factory=list)


class SessionConfig(BaseModel):
    """Session store limits. Durations are in milliseconds."""

    model_config = ConfigDict(frozen=True)

    session_timeout_ms: int = Field(default=DEFAULT_SESSION_TIMEOUT_MS, gt=0)
    cleanup_interval_ms: int = Field(default=DEFAULT_CLEANUP_INTERVAL_MS, gt=0)
    max_sessions: int = Field(default=DEFAULT_MAX_SESSIONS, gt=0)


class HttpServerConfig(BaseModel):
    """Bind address for the streamable HTTP transport."""

    host: str = DEFAULT_HTTP_HOST
    port: int = DEFAULT_PORT


class NeoConfig(BaseModel):
    """Neo task service settings."""

    model_config = ConfigDict(frozen=True)

    api_url: str = Field(default_factory=get_api_url)
    console_url: str = Field(default_factory=get_console_url)
    org: str = DEFAULT_NEO_ORG
    request_timeout: float = REQUEST_TIMEOUT_SECONDS
    poll_interval: float = NEO_POLL_INTERVAL_SECONDS
    poll_timeout: float = NEO_POLL_TIMEOUT_SECONDS

    @property
    def tasks_url(self) -> str:
        return f"{self.api_url}/api/preview/agents/{self.org}/tasks"

    def task_console_url(self, task_id: str) -> str:
        return f"{self.console_url}/{self.org}/neo/tasks/{task_id}"


def _int_from_env(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning("Invalid %s=%r, using default %d", name, raw, default)
        return default
    if value <= 0:
        logger.warning("Invalid %s=%r, using default %d", name, raw, default)
        return default
    return value


def load_cors_config(env: Optional[Mapping[str, str]] = None) -> CorsConfig:
    """Read MCP_CORS_MODE and MCP_ALLOWED_ORIGINS.

    An unknown mode falls back to strict with a warning.
    """
    env = os.environ if env is None else env

    raw_mode = env.get(ENV_CORS_MODE, CorsMode.STRICT.value).strip().lower()
    try:
        mode = CorsMode(raw_mode)
    except ValueError:
        logger.warning(
            "Invalid %s '%s'. Must be one of: strict, development, disabled. Using 'strict'.",
            ENV_CORS_MODE,
            raw_mode,
        )
        mode = CorsMode.STRICT

    origins = [
        origin.strip()
        for origin in env.get(ENV_ALLOWED_ORIGINS, "").split(",")
        if origin.strip()
    ]
    return CorsConfig(mode=mode, allowed_origins=origins)


def load_session_config(env: Optional[Mapping[str, str]] = None) -> SessionConfig:
    """Read MCP_SESSION_TIMEOUT, MCP_CLEANUP_INTERVAL and MCP_MAX_SESSIONS."""
    env = os.environ if env is None else env
    return SessionConfig(
        session_timeout_ms=_int_from_env(env, ENV_SESSION_TIMEOUT, DEFAULT_SESSION_TIMEOUT_MS),
        cleanup_interval_ms=_int_from_env(env, ENV_CLEANUP_INTERVAL, DEFAULT_CLEANUP_INTERVAL_MS),
        max_sessions=_int_from_env(env, ENV_MAX_SESSIONS, DEFAULT_MAX_SESSIONS),
    )


def load_http_config(port: int = DEFAULT_PORT, env: Optional[Mapping[str, str]] = None) -> HttpServerConfig:
    env = os.environ if env is None else env
    return HttpServerConfig(host=env.get(ENV_HTTP_HOST) or DEFAULT_HTTP_HOST, port=port)


def load_neo_config(env: Optional[Mapping[str, str]] = None) -> NeoConfig:
    env = os.environ if env is None else env
    return NeoConfig(org=env.get(ENV_NEO_ORG) or DEFAULT_NEO_ORG)


def get_cache_dir(env: Optional[Mapping[str, str]] = None) -> str:
    """Directory where provider schemas are cached."""
    env = os.environ if env is None else env
    return env.get(ENV_CACHE_DIR) or os.path.join(
        os.path.expanduser("~"), ".cache", "pulumi-mcp-server"
    )
