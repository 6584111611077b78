"""Deeplinks into Pulumi Agents in the Pulumi Console."""

from typing import Optional
from urllib.parse import urlencode

from .constants import get_console_url
from .schemas import ToolResult


def start_task(
    organization: str,
    description: Optional[str] = None,
    stack: Optional[str] = None,
    repo: Optional[str] = None,
    console_url: Optional[str] = None,
) -> ToolResult:
    """Build a console link that opens a new agent task."""
    params = {
        key: value
        for key, value in (("description", description), ("stack", stack), ("repo", repo))
        if value
    }
    url = f"{console_url or get_console_url()}/{organization}/agents/tasks"
    if params:
        url += f"?{urlencode(params)}"
    return ToolResult.text("Pulumi Agents task link", f"[Continue task using Pulumi Agents]({url})")
