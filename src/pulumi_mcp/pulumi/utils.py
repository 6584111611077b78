"""Helpers shared by tools that shell out to the ``pulumi`` CLI."""

import asyncio
import logging

from ..errors import ToolError

logger = logging.getLogger(__name__)


async def run_pulumi(*args: str) -> bytes:
    """Run ``pulumi <args>`` and return its stdout.

    Raises:
        ToolError: The CLI is missing or exited non-zero.
    """
    logger.debug("Running pulumi %s", " ".join(args))
    try:
        process = await asyncio.create_subprocess_exec(
            "pulumi",
            *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError as e:
        raise ToolError("The pulumi CLI was not found on PATH") from e

    stdout, stderr = await process.communicate()
    if process.returncode != 0:
        message = stderr.decode(errors="replace").strip() or f"exit code {process.returncode}"
        raise ToolError(f"pulumi {' '.join(args)} failed: {message}")
    return stdout


async def get_default_org() -> str:
    """Organization configured by ``pulumi org set-default``."""
    try:
        default_org = (await run_pulumi("org", "get-default")).decode().strip()
        if not default_org:
            raise ToolError("No default organization set")
    except ToolError as e:
        raise ToolError(
            "Could not determine Pulumi default organization. "
            f"Please specify 'org' parameter. Error: {e}"
        ) from e
    return default_org
