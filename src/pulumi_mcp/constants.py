"""
Constants for the Pulumi MCP Server.

Defines environment variable names, HTTP header names, default URLs and
timeouts shared by the transports and tools.
"""

import os
from typing import Optional

SERVER_NAME = "pulumi-mcp-server"
SERVER_VERSION = "0.1.0"

# HTTP transport
MCP_ENDPOINT = "/mcp"
HEADER_SESSION_ID = "mcp-session-id"
DEFAULT_HTTP_HOST = "0.0.0.0"
DEFAULT_PORT = 3000
HTTP_TIMEOUT_SECONDS = 60  # socket / keep-alive timeout

# Session store environment
ENV_SESSION_TIMEOUT = "MCP_SESSION_TIMEOUT"
ENV_CLEANUP_INTERVAL = "MCP_CLEANUP_INTERVAL"
ENV_MAX_SESSIONS = "MCP_MAX_SESSIONS"
ENV_HTTP_HOST = "MCP_HTTP_HOST"

DEFAULT_SESSION_TIMEOUT_MS = 30 * 60 * 1000  # 30 minutes
DEFAULT_CLEANUP_INTERVAL_MS = 5 * 60 * 1000  # 5 minutes
DEFAULT_MAX_SESSIONS = 1000

# CORS environment
ENV_CORS_MODE = "MCP_CORS_MODE"
ENV_ALLOWED_ORIGINS = "MCP_ALLOWED_ORIGINS"

CORS_MAX_AGE_SECONDS = 3600
CORS_ALLOWED_METHODS = "GET, POST, OPTIONS"
CORS_ALLOWED_HEADERS = "Content-Type, Mcp-Session-Id"

# Pulumi Cloud
ENV_ACCESS_TOKEN = "PULUMI_ACCESS_TOKEN"
ENV_API_URL = "PULUMI_API_URL"
ENV_CONSOLE_URL = "PULUMI_CONSOLE_URL"
ENV_NEO_ORG = "PULUMI_NEO_ORG"
ENV_CACHE_DIR = "PULUMI_MCP_CACHE_DIR"
ENV_TEST_MODE = "MCP_TEST_MODE"

DEFAULT_API_URL = "https://api.pulumi.com"
DEFAULT_CONSOLE_URL = "https://app.pulumi.com"
DEFAULT_NEO_ORG = "pulumi"

REQUEST_TIMEOUT_SECONDS = 30.0

# Neo task polling
NEO_EVENT_PAGE_SIZE = 100
NEO_POLL_INTERVAL_SECONDS = 1.0
NEO_POLL_TIMEOUT_SECONDS = 5 * 60.0

# Logging
ENV_DEBUG = "MCP_SERVER_DEBUG"
ENV_LOG_FILE = "MCP_LOG_FILE"


def get_api_url() -> str:
    """Get Pulumi Cloud API URL from environment or default."""
    return os.environ.get(ENV_API_URL, DEFAULT_API_URL).rstrip("/")


def get_console_url() -> str:
    """Get Pulumi Cloud console URL from environment or default."""
    return os.environ.get(ENV_CONSOLE_URL, DEFAULT_CONSOLE_URL).rstrip("/")


def get_access_token() -> Optional[str]:
    """Get the Pulumi access token, or None when unset or blank."""
    token = os.environ.get(ENV_ACCESS_TOKEN, "").strip()
    return token or None


def is_test_mode() -> bool:
    return os.environ.get(ENV_TEST_MODE, "false").lower() == "true"
