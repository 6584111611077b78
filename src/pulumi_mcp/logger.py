"""
Logging setup for the Pulumi MCP Server.

Modules log through ``logging.getLogger(__name__)``. This module only wires
handlers once at process start:

- stderr handler (stdout carries the stdio MCP transport)
- optional file handler when MCP_LOG_FILE is set
- DEBUG level when MCP_SERVER_DEBUG=true, INFO otherwise
"""

import logging
import os
import sys
from pathlib import Path
from typing import Optional

from .constants import ENV_DEBUG, ENV_LOG_FILE

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def is_debug_enabled() -> bool:
    """Check if debug logging is enabled via environment variable."""
    return os.environ.get(ENV_DEBUG, "false").lower() == "true"


def setup_logging(level: Optional[int] = None) -> logging.Logger:
    """Configure the ``pulumi_mcp`` logger hierarchy.

    Args:
        level: Explicit log level. Defaults to DEBUG when MCP_SERVER_DEBUG=true,
            INFO otherwise.

    Returns:
        The package root logger.
    """
    if level is None:
        level = logging.DEBUG if is_debug_enabled() else logging.INFO

    root = logging.getLogger("pulumi_mcp")
    root.setLevel(level)
    root.handlers.clear()
    root.propagate = False

    formatter = logging.Formatter(LOG_FORMAT)

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setFormatter(formatter)
    root.addHandler(stderr_handler)

    log_file = os.environ.get(ENV_LOG_FILE)
    if log_file:
        path = Path(log_file).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path, encoding="utf-8")
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    return root
