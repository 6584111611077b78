"""
Policy violations tool.

Fetches an organization's policy violations and keeps the ones that belong
to the local project. A violation is kept when the logical name of the
violating resource appears quoted in a source file under the working
directory.

Logical names are resolved from the stack export (cloud id + type ->
logical name from the URN). When no stack can be resolved or the export
fails, the last URN segment is used instead.
"""

import functools
import json
import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, Optional

import anyio
from pulumi import automation as auto

from ..errors import PulumiMcpError, ToolError
from ..pulumi.cli import DEFAULT_STACK_NAME
from ..pulumi.utils import get_default_org
from ..schemas import ToolResult
from .client import InsightsClient, PolicyViolation

logger = logging.getLogger(__name__)

SOURCE_EXTENSIONS = (".ts", ".js", ".py", ".go", ".cs", ".java")
SKIPPED_DIRS = {"node_modules", "dist", "build"}


@dataclass
class StackInfo:
    org: str
    project: str
    stack: str


def extract_logical_name(urn: str) -> str:
    """``urn:pulumi:stack::project::type::name`` -> ``name``"""
    return urn.split("::")[-1]


def find_source_files(root: str = ".") -> list[str]:
    """Source files under ``root``, skipping hidden and build directories."""
    source_files = []
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if not d.startswith(".") and d not in SKIPPED_DIRS)
        for filename in sorted(filenames):
            if filename.startswith("."):
                continue
            if filename.endswith(SOURCE_EXTENSIONS):
                source_files.append(os.path.join(dirpath, filename))
    return source_files


def find_resource_in_files(logical_name: str, file_paths: list[str]) -> list[str]:
    """Files mentioning ``logical_name`` in single or double quotes."""
    needles = (f'"{logical_name}"', f"'{logical_name}'")
    matches = []
    for path in file_paths:
        try:
            content = Path(path).read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            logger.debug("Cannot read %s: %s", path, e)
            continue
        if any(needle in content for needle in needles):
            matches.append(path)
    return matches


def _enhance(violation: PolicyViolation, logical_name: str, file_paths: list[str]) -> dict:
    data = violation.model_dump()
    data["logicalName"] = logical_name
    data["filePaths"] = file_paths
    return data


def map_violations_by_urn(violations: list[PolicyViolation], work_dir: Optional[str] = None) -> list[dict]:
    """Keep violations whose URN logical name appears in local sources."""
    source_files = find_source_files(work_dir or ".")
    enhanced = []
    for violation in violations:
        logical_name = extract_logical_name(violation.resourceURN)
        file_paths = find_resource_in_files(logical_name, source_files)
        if file_paths:
            enhanced.append(_enhance(violation, logical_name, file_paths))
        else:
            logger.debug("Filtering out violation for %s (not found in local files)", logical_name)
    return enhanced


async def map_violations_by_stack_export(
    violations: list[PolicyViolation],
    client: InsightsClient,
    stack: StackInfo,
    work_dir: Optional[str] = None,
) -> list[dict]:
    """Keep violations whose resource maps to a logical name used in local sources.

    Falls back to :func:`map_violations_by_urn` if the export cannot be read.
    """
    try:
        export = await client.get_stack_export(stack.org, stack.project, stack.stack)
    except PulumiMcpError as e:
        logger.info("Stack export failed (%s), falling back to URN matching", e)
        return map_violations_by_urn(violations, work_dir)

    logical_names = {
        f"{resource.id}::{resource.type}": extract_logical_name(resource.urn)
        for resource in export.resources
        if resource.id and resource.custom
    }
    logger.debug("Mapped %d resources from stack export", len(logical_names))

    source_files = find_source_files(work_dir or ".")
    enhanced = []
    for violation in violations:
        logical_name = logical_names.get(f"{violation.resourceName}::{violation.resourceType}")
        if logical_name is None:
            logger.debug("No mapping for %s (%s)", violation.resourceName, violation.resourceType)
            continue
        file_paths = find_resource_in_files(logical_name, source_files)
        if file_paths:
            enhanced.append(_enhance(violation, logical_name, file_paths))
    return enhanced


def _read_project_name(work_dir: str) -> Optional[str]:
    try:
        content = (Path(work_dir) / "Pulumi.yaml").read_text(encoding="utf-8")
    except OSError:
        return None
    match = re.search(r"name:\s*(.+)", content)
    return match.group(1).strip() if match else None


def _select_stack_info(work_dir: str, stack_name: str) -> tuple[str, str, Optional[str]]:
    stack = auto.select_stack(stack_name=stack_name, work_dir=work_dir)
    workspace = stack.workspace
    project = workspace.project_settings().name
    settings = workspace.stack_settings(stack.name)
    org_value = (settings.config or {}).get("pulumi:org")
    if isinstance(org_value, dict):
        org_value = org_value.get("value")
    return project, stack.name, org_value


async def detect_stack_info(
    work_dir: Optional[str] = None,
    stack_name: Optional[str] = None,
    org_resolver: Callable[[], Awaitable[str]] = get_default_org,
) -> StackInfo:
    """Find org/project/stack for a local program.

    Uses the Automation API, then falls back to reading Pulumi.yaml.

    Raises:
        ToolError: Neither method found the project.
    """
    work_dir = work_dir or os.getcwd()
    stack_name = stack_name or DEFAULT_STACK_NAME
    try:
        project, stack, org = await anyio.to_thread.run_sync(
            functools.partial(_select_stack_info, work_dir, stack_name)
        )
        return StackInfo(org=org or await org_resolver(), project=project, stack=stack)
    except (auto.CommandError, OSError, ToolError) as e:
        logger.debug("Automation API stack detection failed: %s", e)
        project = _read_project_name(work_dir)
        if project:
            return StackInfo(org=await org_resolver(), project=project, stack=stack_name)
        raise ToolError(f"Could not detect Pulumi project/stack info: {e}") from e


def violations_summary(kept: int, total: int) -> str:
    if kept > 0:
        summary = f"Found {kept} policy violation{'' if kept == 1 else 's'} in current project"
        if total > kept:
            summary += f" (filtered {total - kept} external violations)"
        return summary
    if total > 0:
        return f"No policy violations found in current project (filtered {total} external violations)"
    return "No policy violations found"


class PolicyViolations:
    """Implements the ``policy-violations`` tool."""

    def __init__(
        self,
        client: InsightsClient,
        org_resolver: Callable[[], Awaitable[str]] = get_default_org,
        stack_detector: Callable[..., Awaitable[StackInfo]] = detect_stack_info,
    ):
        self._client = client
        self._org_resolver = org_resolver
        self._stack_detector = stack_detector

    async def get(
        self,
        org: Optional[str] = None,
        work_dir: Optional[str] = None,
        stack_name: Optional[str] = None,
        project: Optional[str] = None,
        stack: Optional[str] = None,
    ) -> ToolResult:
        org = org or await self._org_resolver()
        violations = await self._client.get_policy_violations(org)
        result_org = org

        try:
            info = await self._stack_detector(work_dir, stack_name, self._org_resolver)
            result_org = info.org
            kept = await map_violations_by_stack_export(violations, self._client, info, work_dir)
        except ToolError as e:
            logger.debug("Stack auto-detection failed: %s", e)
            if project and stack:
                info = StackInfo(org=org, project=project, stack=stack)
                kept = await map_violations_by_stack_export(violations, self._client, info, work_dir)
            else:
                kept = map_violations_by_urn(violations, work_dir)

        payload = {
            "org": result_org,
            "violations": kept,
            "summary": violations_summary(len(kept), len(violations)),
            "totalViolations": len(kept),
        }
        return ToolResult.text("Pulumi policy violations", json.dumps(payload, indent=2))
