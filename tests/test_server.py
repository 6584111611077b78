"""
Tests for the MCP tool registry and command line.

Tests cover:
- Every tool and prompt is registered under its public name
- Tool results and error wrapping through FastMCP
- Server identity and shutdown of shared clients
- Transport argument parsing
"""

import json
from unittest.mock import AsyncMock

import pytest

from pulumi_mcp.__main__ import parse_args
from pulumi_mcp.config import NeoConfig
from pulumi_mcp.constants import SERVER_VERSION
from pulumi_mcp.errors import ToolError
from pulumi_mcp.insights import PolicyViolations, ResourceSearch, StubInsightsClient
from pulumi_mcp.neo import NeoBridge, NeoClient
from pulumi_mcp.pulumi import CliTools, RegistryTools, SchemaCache
from pulumi_mcp.schemas import ToolResult
from pulumi_mcp.server import Services, build_services, create_server, run_tool

TOOL_NAMES = {
    "pulumi-registry-get-type",
    "pulumi-registry-get-resource",
    "pulumi-registry-get-function",
    "pulumi-registry-list-resources",
    "pulumi-registry-list-functions",
    "pulumi-cli-preview",
    "pulumi-cli-up",
    "pulumi-cli-refresh",
    "pulumi-cli-stack-output",
    "neo-bridge",
    "neo-reset-conversation",
    "resource-search",
    "policy-violations",
    "start-task",
    "deploy-to-aws",
}


async def default_org() -> str:
    return "acme"


@pytest.fixture
def services(tmp_path):
    async def failing_fetch(provider_with_version):
        raise ToolError("pulumi package get-schema failed: unknown provider")

    insights = StubInsightsClient()
    return Services(
        bridge=NeoBridge(NeoClient(NeoConfig(org="acme"), token_provider=lambda: None)),
        registry=RegistryTools(SchemaCache(str(tmp_path), fetch=failing_fetch)),
        cli=CliTools(),
        resource_search=ResourceSearch(insights, org_resolver=default_org),
        policy_violations=PolicyViolations(insights, org_resolver=default_org),
        test_mode=True,
    )


@pytest.fixture
def server(services):
    return create_server(services)


async def call(server, name, arguments) -> dict:
    """Call a tool and decode its JSON text result."""
    result = await server.call_tool(name, arguments)
    # Newer SDKs return (content, structured_content)
    content = result[0] if isinstance(result, tuple) else result
    return json.loads(content[0].text)


class TestRegistration:
    async def test_tools(self, server):
        tools = await server.list_tools()
        assert {tool.name for tool in tools} == TOOL_NAMES

    async def test_neo_bridge_parameters(self, server):
        tools = {tool.name: tool for tool in await server.list_tools()}
        properties = tools["neo-bridge"].inputSchema["properties"]
        assert set(properties) == {"query", "context", "taskId", "approval"}
        assert "required" not in tools["neo-bridge"].inputSchema or not tools["neo-bridge"].inputSchema["required"]

    async def test_prompts(self, server):
        prompts = await server.list_prompts()
        assert {prompt.name for prompt in prompts} == {"deploy-to-aws", "convert-terraform-to-typescript"}

    async def test_convert_prompt_argument(self, server):
        result = await server.get_prompt("convert-terraform-to-typescript", {"outputDir": "./infra"})
        assert "--out ./infra" in result.messages[0].content.text


class TestToolCalls:
    async def test_neo_reset(self, server, services):
        services.bridge.states.get("t1")

        result = await call(server, "neo-reset-conversation", {"taskId": "t1"})

        assert result["description"] == "Neo task reset"
        assert "t1" not in services.bridge.states

    async def test_neo_bridge_without_token(self, server):
        result = await call(server, "neo-bridge", {"query": "do X"})

        assert result["description"] == "Missing PULUMI_ACCESS_TOKEN"
        assert result["has_more"] is False

    async def test_known_errors_become_results(self, server):
        result = await call(server, "pulumi-registry-list-resources", {"provider": "nope"})

        assert result == {
            "description": "Error executing pulumi-registry-list-resources",
            "content": [
                {"type": "text", "text": "Operation failed: pulumi package get-schema failed: unknown provider"}
            ],
        }

    async def test_unexpected_errors_are_hidden(self, server, services, caplog):
        async def explode(*args, **kwargs):
            raise KeyError("secret detail")

        services.resource_search.search = explode

        result = await call(server, "resource-search", {"query": "stack:dev"})

        assert result["description"] == "Error executing resource-search"
        assert "secret detail" not in result["content"][0]["text"]
        assert "secret detail" in caplog.text

    async def test_deploy_to_aws_test_mode(self, server):
        result = await call(server, "deploy-to-aws", {})
        assert result["content"][0]["text"] == "deploy-to-aws tool invoked successfully in test mode"

    async def test_start_task(self, server):
        result = await call(server, "start-task", {"organization": "acme"})
        assert result["content"][0]["text"].startswith("[Continue task using Pulumi Agents](")

    async def test_sync_tool_errors_are_hidden(self, server, services, caplog):
        def explode(task_id=None):
            raise RuntimeError("reset blew up")

        services.bridge.reset = explode

        result = await call(server, "neo-reset-conversation", {"taskId": "t1"})

        assert result["description"] == "Error executing neo-reset-conversation"
        assert "reset blew up" not in result["content"][0]["text"]
        assert "reset blew up" in caplog.text


class TestRunTool:
    """Tests for run_tool()"""

    async def test_sync_result(self):
        result = await run_tool("t", lambda: ToolResult.text("done", "ok"))
        assert result["description"] == "done"

    async def test_async_result(self):
        async def body():
            return ToolResult.text("done", "ok")

        result = await run_tool("t", body)
        assert result["description"] == "done"

    async def test_sync_known_error_becomes_result(self):
        def body():
            raise ToolError("stack not found")

        result = await run_tool("pulumi-cli-preview", body)

        assert result["description"] == "Error executing pulumi-cli-preview"
        assert result["content"][0]["text"] == "Operation failed: stack not found"

    async def test_sync_unexpected_error_becomes_result(self):
        result = await run_tool("t", lambda: {}["missing"])
        assert result["description"] == "Error executing t"


class TestServerIdentity:
    def test_reports_own_version(self, server):
        assert server._mcp_server.version == SERVER_VERSION


class TestServicesClose:
    """Shared HTTP clients are closed when the process shuts down."""

    async def test_closes_bridge_and_insights(self, services):
        services.bridge.close = AsyncMock()
        services.insights = AsyncMock()

        await services.close()

        services.bridge.close.assert_awaited_once()
        services.insights.close.assert_awaited_once()

    async def test_without_insights_client(self, services):
        services.bridge.close = AsyncMock()

        await services.close()

        services.bridge.close.assert_awaited_once()

    async def test_test_mode_services_close_cleanly(self):
        services = build_services(test_mode=True)
        assert isinstance(services.insights, StubInsightsClient)

        await services.close()

    async def test_bridge_close_closes_neo_client(self, services):
        neo_client = services.bridge._client
        neo_client.close = AsyncMock()

        await services.bridge.close()

        neo_client.close.assert_awaited_once()


class TestParseArgs:
    def test_defaults_to_stdio(self):
        args = parse_args([])
        assert (args.transport, args.port) == ("stdio", 3000)

    def test_http_port(self):
        args = parse_args(["http", "--port", "8080"])
        assert (args.transport, args.port) == ("http", 8080)

    def test_sse_default_port(self):
        assert parse_args(["sse"]).port == 3000
