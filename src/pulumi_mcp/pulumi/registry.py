"""
Pulumi Registry lookups backed by provider package schemas.

Schemas come from ``pulumi package get-schema <provider>[@version]`` and are
cached on disk, one JSON file per provider/version. Schema tokens have the
form ``provider:module[/sub]:Name``; lookups match on the first module path
segment.
"""

import json
import logging
import re
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional

from ..schemas import ToolResult
from .utils import run_pulumi

logger = logging.getLogger(__name__)


async def fetch_schema(provider_with_version: str) -> bytes:
    return await run_pulumi("package", "get-schema", provider_with_version)


def _compact(data: Any) -> str:
    return json.dumps(data, separators=(",", ":"))


def split_token(token: str) -> Optional[tuple[str, str]]:
    """Return (main module, name) for a schema token, or None if malformed."""
    parts = token.split(":")
    if len(parts) < 3:
        return None
    return parts[1].split("/")[0], parts[-1]


class SchemaCache:
    """Read-through disk cache of provider schemas."""

    def __init__(
        self,
        cache_dir: str,
        fetch: Callable[[str], Awaitable[bytes]] = fetch_schema,
    ):
        self.cache_dir = Path(cache_dir)
        self._fetch = fetch

    def cache_file(self, provider: str, version: Optional[str] = None) -> Path:
        provider_with_version = f"{provider}@{version}" if version else provider
        safe_name = re.sub(r"[^a-zA-Z0-9]", "_", provider_with_version)
        return self.cache_dir / f"{safe_name}_schema.json"

    async def get(self, provider: str, version: Optional[str] = None) -> dict:
        path = self.cache_file(provider, version)
        if not path.exists():
            provider_with_version = f"{provider}@{version}" if version else provider
            logger.info("Fetching schema for %s", provider_with_version)
            output = await self._fetch(provider_with_version)
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            path.write_bytes(output)
        return json.loads(path.read_text(encoding="utf-8"))


class RegistryTools:
    """Implements the ``pulumi-registry-*`` tools."""

    def __init__(self, cache: SchemaCache):
        self.cache = cache

    @staticmethod
    def _matching(entries: dict, name: str, module: Optional[str]) -> list[tuple[str, dict]]:
        matches = []
        for token, data in entries.items():
            parsed = split_token(token)
            if parsed is None:
                continue
            main_module, entry_name = parsed
            if entry_name == name and (not module or main_module == module):
                matches.append((token, data))
        return matches

    @staticmethod
    def _in_module(module: Optional[str]) -> str:
        return f" in module {module}" if module else ""

    async def get_type(self, provider: str, name: str, module: Optional[str] = None, version: Optional[str] = None) -> ToolResult:
        schema = await self.cache.get(provider, version)
        matches = self._matching(schema.get("types", {}), name, module)
        description = "Returns information about Pulumi Registry Types"
        if not matches:
            return ToolResult.text(description, f"No information found for {name}{self._in_module(module)}")
        return ToolResult.text(description, _compact(matches[0][1]))

    async def get_resource(self, provider: str, resource: str, module: Optional[str] = None, version: Optional[str] = None) -> ToolResult:
        schema = await self.cache.get(provider, version)
        matches = self._matching(schema.get("resources", {}), resource, module)
        description = "Returns information about a Pulumi Registry resource"
        if not matches:
            return ToolResult.text(
                description,
                f"No information found for {resource}{self._in_module(module)}. "
                "You can call list-resources to get a list of resources",
            )

        resources = []
        for token, data in matches:
            # description is omitted, it embeds examples in every language
            inputs = data.get("inputProperties", {})
            resources.append(
                {
                    "type": token,
                    "requiredInputs": data.get("requiredInputs", []),
                    "inputProperties": inputs,
                    "outputProperties": {
                        key: value
                        for key, value in data.get("properties", {}).items()
                        if key not in inputs
                    },
                    "requiredOutputs": [
                        key for key in data.get("required", []) if key not in inputs
                    ],
                }
            )
        return ToolResult.text(description, _compact(resources))

    async def get_function(self, provider: str, function: str, module: Optional[str] = None, version: Optional[str] = None) -> ToolResult:
        schema = await self.cache.get(provider, version)
        matches = self._matching(schema.get("functions", {}), function, module)
        description = "Returns information about a Pulumi Registry function"
        if not matches:
            return ToolResult.text(
                description,
                f"No information found for {function}{self._in_module(module)}. "
                "You can call list-functions to get a list of functions",
            )
        functions = [
            {"type": token, "inputs": data.get("inputs"), "outputs": data.get("outputs")}
            for token, data in matches
        ]
        return ToolResult.text(description, _compact(functions))

    @staticmethod
    def _summaries(entries: dict, module: Optional[str]) -> list[dict]:
        summaries = []
        for token, data in entries.items():
            parsed = split_token(token)
            if parsed is None:
                continue
            main_module, name = parsed
            if module and main_module != module:
                continue
            description = data.get("description")
            summaries.append(
                {
                    "type": token,
                    "name": name,
                    "module": main_module,
                    "description": description.split("\n")[0].strip() if description else "<no description>",
                }
            )
        return summaries

    async def list_resources(self, provider: str, module: Optional[str] = None, version: Optional[str] = None) -> ToolResult:
        schema = await self.cache.get(provider, version)
        resources = self._summaries(schema.get("resources", {}), module)
        if not resources:
            where = f" in module '{module}'" if module else ""
            return ToolResult.text("No resources found", f"No resources found for provider '{provider}'{where}")
        return ToolResult.text("Lists available Pulumi Registry resources", _compact(resources))

    async def list_functions(self, provider: str, module: Optional[str] = None, version: Optional[str] = None) -> ToolResult:
        schema = await self.cache.get(provider, version)
        functions = self._summaries(schema.get("functions", {}), module)
        if not functions:
            where = f" in module '{module}'" if module else ""
            return ToolResult.text("No functions found", f"No functions found for provider '{provider}'{where}")
        return ToolResult.text("Lists available Pulumi Registry functions", _compact(functions))
