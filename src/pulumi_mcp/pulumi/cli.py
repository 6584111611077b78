"""
Pulumi CLI tools built on the Automation API.

The Automation API blocks while the engine runs, so every call is pushed to
a worker thread.
"""

import functools
import json
import logging
from typing import Any, Callable, Mapping, Optional

import anyio
from pulumi import automation as auto

from ..errors import ToolError
from ..schemas import ToolResult

logger = logging.getLogger(__name__)

DEFAULT_STACK_NAME = "dev"


def format_changes(changes: Optional[Mapping[str, int]]) -> str:
    changes = changes or {}
    return "\n".join(
        f"{label}: {changes.get(op, 0)}"
        for label, op in (("Create", "create"), ("Update", "update"), ("Delete", "delete"), ("Same", "same"))
    )


class CliTools:
    """Implements the ``pulumi-cli-*`` tools against local programs."""

    def __init__(self, automation: Any = auto):
        """Initialize CliTools.

        Args:
            automation: Module exposing ``create_or_select_stack`` and
                ``select_stack`` (``pulumi.automation``; tests pass a mock)
        """
        self._auto = automation

    async def _run(self, func: Callable, *args, **kwargs) -> Any:
        try:
            return await anyio.to_thread.run_sync(functools.partial(func, *args, **kwargs))
        except auto.CommandError as e:
            raise ToolError(str(e)) from e

    async def _stack(self, work_dir: str, stack_name: Optional[str], create: bool = True):
        select = self._auto.create_or_select_stack if create else self._auto.select_stack
        return await self._run(select, stack_name=stack_name or DEFAULT_STACK_NAME, work_dir=work_dir)

    async def preview(self, work_dir: str, stack_name: Optional[str] = None) -> ToolResult:
        stack = await self._stack(work_dir, stack_name)
        logger.info("Running preview for stack %s in %s", stack.name, work_dir)
        result = await self._run(stack.preview, diff=True)
        return ToolResult.text(
            "Pulumi Preview Results",
            f"\nPreview Results for stack: {stack.name}\n\n"
            f"Changes:\n{format_changes(result.change_summary)}\n\n"
            f"{result.stdout or 'No additional output'}\n",
        )

    async def up(self, work_dir: str, stack_name: Optional[str] = None) -> ToolResult:
        stack = await self._stack(work_dir, stack_name)
        logger.info("Running up for stack %s in %s", stack.name, work_dir)
        result = await self._run(stack.up)
        return ToolResult.text(
            "Pulumi Up Results",
            f"\nDeployment Results for stack: {stack.name}\n\n"
            f"Changes:\n{format_changes(result.summary.resource_changes)}\n\n"
            f"{result.stdout or 'No additional output'}\n",
        )

    async def refresh(self, work_dir: str, stack_name: Optional[str] = None) -> ToolResult:
        stack = await self._stack(work_dir, stack_name)
        logger.info("Running refresh for stack %s in %s", stack.name, work_dir)
        result = await self._run(stack.refresh)
        return ToolResult.text(
            "Pulumi Refresh Results",
            f"\nRefresh Results for stack: {stack.name}\n\n"
            f"Changes:\n{format_changes(result.summary.resource_changes)}\n\n"
            f"{result.stdout or 'No additional output'}\n",
        )

    async def stack_output(
        self,
        work_dir: str,
        stack_name: Optional[str] = None,
        output_name: Optional[str] = None,
    ) -> ToolResult:
        stack = await self._stack(work_dir, stack_name, create=False)
        outputs = await self._run(stack.outputs)

        if output_name:
            description = f"Pulumi Stack Output: {output_name}"
            output = outputs.get(output_name)
            if output is not None:
                body = f"{output_name}: {json.dumps(output.value)}"
            else:
                body = f"Output '{output_name}' not found."
        else:
            description = "Pulumi Stack Outputs"
            body = "\n".join(f"{key}: {json.dumps(value.value)}" for key, value in outputs.items())
            body = body or "No outputs found"

        return ToolResult.text(description, f"\nStack: {stack.name}\n\n{body}\n")
