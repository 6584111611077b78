"""Exceptions raised by Pulumi MCP Server collaborators."""

from typing import Optional


class PulumiMcpError(Exception):
    """Base exception for Pulumi MCP Server operations."""

    pass


class ConfigurationError(PulumiMcpError):
    """Raised when a required credential or environment variable is missing."""

    pass


class ToolError(PulumiMcpError):
    """Raised when a tool cannot complete for a reason the caller can act on."""

    pass


class PulumiApiError(PulumiMcpError):
    """Raised when a Pulumi Cloud API call fails."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
    ):
        self.status_code = status_code
        self.body = body
        super().__init__(message)


class NeoApiError(PulumiApiError):
    """Raised when a Neo task API call fails."""

    pass


class NeoBusyError(NeoApiError):
    """Raised when Neo rejects a follow-up message because it is still working."""

    def __init__(self):
        super().__init__(
            "Neo is currently busy processing. Please wait and try again.",
            status_code=409,
        )
