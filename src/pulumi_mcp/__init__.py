"""
Pulumi MCP Server.

Exposes Pulumi Registry, Pulumi CLI, Pulumi Cloud insights and Pulumi Neo
agent tasks as Model Context Protocol tools over stdio, SSE or Streamable HTTP.
"""

from .constants import SERVER_NAME, SERVER_VERSION
from .errors import ConfigurationError, NeoApiError, NeoBusyError, PulumiApiError, PulumiMcpError, ToolError

__version__ = SERVER_VERSION

__all__ = [
    "ConfigurationError",
    "NeoApiError",
    "NeoBusyError",
    "PulumiApiError",
    "PulumiMcpError",
    "SERVER_NAME",
    "ToolError",
    "__version__",
]
