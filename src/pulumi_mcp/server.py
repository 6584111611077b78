"""
Pulumi MCP Server tool and prompt registry.

``create_server()`` builds a FastMCP server exposing:
- pulumi-registry-*: provider schema lookups
- pulumi-cli-*: preview / up / refresh / stack outputs
- neo-bridge, neo-reset-conversation: Neo agent tasks
- resource-search, policy-violations: Pulumi Cloud insights
- start-task, deploy-to-aws
- prompts: deploy-to-aws, convert-terraform-to-typescript

Every tool returns ``{"description", "content", "has_more"?, "taskId"?}``.
Known failures become "Error executing <tool>" results; anything else is
logged and reported without internal detail.

Collaborators live in :class:`Services`, built once per process and shared
by every MCP session, so a Neo task started in one HTTP session can be
resumed from another.
"""

import inspect
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Union

from mcp.server.fastmcp import FastMCP
from pydantic import Field

from . import prompts
from .agents import start_task
from .config import get_cache_dir, load_neo_config
from .constants import SERVER_NAME, SERVER_VERSION, is_test_mode
from .deploy import deploy_to_aws, deploy_to_aws_prompt
from .errors import PulumiMcpError
from .insights import InsightsClient, PolicyViolations, ResourceSearch, create_insights_client
from .neo import NeoBridge, NeoClient
from .pulumi import CliTools, RegistryTools, SchemaCache
from .schemas import ToolResult, error_result

logger = logging.getLogger(__name__)

INSTRUCTIONS = (
    "An MCP server for querying Pulumi Registry information, running Pulumi CLI commands, "
    "searching Pulumi Cloud resources and driving Pulumi Neo agent tasks."
)

PROVIDER_DESCRIPTION = (
    "The cloud provider (e.g., 'aws', 'azure', 'gcp', 'random') or github.com/org/repo "
    "for Git-hosted components"
)
VERSION_DESCRIPTION = (
    "The provider version to use (e.g., '6.0.0'). If not specified, uses the latest available version."
)
WORK_DIR_DESCRIPTION = "The working directory of the program."
STACK_NAME_DESCRIPTION = "The associated stack name. Defaults to 'dev'."

NEO_BRIDGE_DESCRIPTION = (
    "Launch and monitor Neo tasks step by step. Pulumi Neo is a purpose-built cloud infrastructure "
    "automation agent. If the JSON result has `has_more=true`, call this tool again with the same "
    "taskId and an empty query to read more data. Continue calling until `has_more=false`. If you stop "
    "calling the tool, tell the user that the task continues running in Pulumi Console. "
    "When Neo asks for approval, ask the user and call again with `approval=true` or `approval=false`; "
    "never approve on the user's behalf. "
    "When displaying messages to the user, try to return the data as-is with minimal summarization."
)

RESOURCE_SEARCH_DESCRIPTION = """Search and analyze Pulumi-managed cloud resources using Lucene-style queries. This tool can discover, count, and analyze your deployed infrastructure across all cloud providers.

Query Syntax Examples:
- All S3 buckets: type:aws:s3:Bucket
- Untagged resources: -properties.tags:*
- Untagged S3 buckets: type:aws:s3:Bucket AND -properties.tags:*
- Resources in production stack: stack:production
- AWS Lambda functions: package:aws type:lambda:Function
- Resources by project: project:my-app

Supports field filters, boolean operators (AND, OR, NOT), exact matches with quotes, and property searches. The top parameter controls the maximum number of results to return (defaults to 20)."""


@dataclass
class Services:
    """Collaborators shared by every MCP server instance in the process."""

    bridge: NeoBridge
    registry: RegistryTools
    cli: CliTools
    resource_search: ResourceSearch
    policy_violations: PolicyViolations
    insights: Optional[InsightsClient] = None
    """Client behind resource_search and policy_violations, closed with the services."""

    test_mode: bool = False

    async def close(self) -> None:
        """Close the HTTP clients held by the collaborators."""
        await self.bridge.close()
        if self.insights is not None:
            await self.insights.close()


def build_services(test_mode: Optional[bool] = None) -> Services:
    """Wire the production collaborators from the environment."""
    if test_mode is None:
        test_mode = is_test_mode()
    insights = create_insights_client(test_mode)
    return Services(
        bridge=NeoBridge(NeoClient(load_neo_config())),
        registry=RegistryTools(SchemaCache(get_cache_dir())),
        cli=CliTools(),
        resource_search=ResourceSearch(insights),
        policy_violations=PolicyViolations(insights),
        insights=insights,
        test_mode=test_mode,
    )


async def run_tool(tool_name: str, call: Callable[[], Union[ToolResult, Awaitable[ToolResult]]]) -> dict:
    """Run a tool implementation and convert failures into results.

    Args:
        tool_name: Public tool name, used in error results
        call: Zero-argument callable returning a ToolResult or an awaitable of one
    """
    try:
        result = call()
        if inspect.isawaitable(result):
            result = await result
    except PulumiMcpError as e:
        logger.warning("Tool %s failed: %s", tool_name, e)
        result = error_result(tool_name, str(e))
    except Exception:
        logger.exception("Unexpected error in tool %s", tool_name)
        result = error_result(tool_name, "An internal error occurred. Check the server logs for details.")
    return result.to_dict()


def create_server(services: Services) -> FastMCP:
    """Create a FastMCP server with every Pulumi tool and prompt registered."""
    mcp = FastMCP(SERVER_NAME, instructions=INSTRUCTIONS)
    mcp._mcp_server.version = SERVER_VERSION
    _register_registry_tools(mcp, services)
    _register_cli_tools(mcp, services)
    _register_neo_tools(mcp, services)
    _register_insights_tools(mcp, services)
    _register_misc_tools(mcp, services)
    _register_prompts(mcp)
    return mcp


def _register_registry_tools(mcp: FastMCP, services: Services) -> None:
    registry = services.registry

    @mcp.tool(name="pulumi-registry-get-type", description="Get the JSON schema for a specific JSON schema type reference")
    async def get_type(
        provider: str = Field(description=PROVIDER_DESCRIPTION),
        name: str = Field(
            description="The name of the type to query (e.g., 'BucketGrant', 'FunctionEnvironment', 'InstanceCpuOptions')"
        ),
        module: Optional[str] = Field(
            default=None,
            description="The module to query (e.g., 's3', 'ec2', 'lambda'). Optional for smaller providers.",
        ),
        version: Optional[str] = Field(default=None, description=VERSION_DESCRIPTION),
    ) -> dict:
        return await run_tool("pulumi-registry-get-type", lambda: registry.get_type(provider, name, module, version))

    @mcp.tool(name="pulumi-registry-get-resource", description="Returns information about a Pulumi Registry resource")
    async def get_resource(
        provider: str = Field(description=PROVIDER_DESCRIPTION),
        resource: str = Field(description="The resource type to query (e.g., 'Bucket', 'Function', 'Instance')"),
        module: Optional[str] = Field(
            default=None,
            description="The module to query (e.g., 's3', 'ec2', 'lambda'). If not specified it will match resources with the given name in any module.",
        ),
        version: Optional[str] = Field(default=None, description=VERSION_DESCRIPTION),
    ) -> dict:
        return await run_tool("pulumi-registry-get-resource", lambda: registry.get_resource(provider, resource, module, version))

    @mcp.tool(name="pulumi-registry-get-function", description="Returns information about a Pulumi Registry function")
    async def get_function(
        provider: str = Field(description=PROVIDER_DESCRIPTION),
        function: str = Field(
            description="The function type to query (e.g., 'getBucket', 'getFunction', 'getInstance')"
        ),
        module: Optional[str] = Field(
            default=None,
            description="The module to query (e.g., 's3', 'ec2', 'lambda'). If not specified it will match functions with the given name in any module.",
        ),
        version: Optional[str] = Field(default=None, description=VERSION_DESCRIPTION),
    ) -> dict:
        return await run_tool("pulumi-registry-get-function", lambda: registry.get_function(provider, function, module, version))

    @mcp.tool(name="pulumi-registry-list-resources", description="List all resource types for a given provider and module")
    async def list_resources(
        provider: str = Field(description=PROVIDER_DESCRIPTION),
        module: Optional[str] = Field(default=None, description="Optional module to filter by (e.g., 's3', 'ec2', 'lambda')"),
        version: Optional[str] = Field(default=None, description=VERSION_DESCRIPTION),
    ) -> dict:
        return await run_tool("pulumi-registry-list-resources", lambda: registry.list_resources(provider, module, version))

    @mcp.tool(name="pulumi-registry-list-functions", description="List all function types for a given provider and module")
    async def list_functions(
        provider: str = Field(description=PROVIDER_DESCRIPTION),
        module: Optional[str] = Field(default=None, description="Optional module to filter by (e.g., 's3', 'ec2', 'lambda')"),
        version: Optional[str] = Field(default=None, description=VERSION_DESCRIPTION),
    ) -> dict:
        return await run_tool("pulumi-registry-list-functions", lambda: registry.list_functions(provider, module, version))


def _register_cli_tools(mcp: FastMCP, services: Services) -> None:
    cli = services.cli

    @mcp.tool(name="pulumi-cli-preview", description="Run pulumi preview for a given project and stack")
    async def preview(
        workDir: str = Field(description=WORK_DIR_DESCRIPTION),
        stackName: Optional[str] = Field(default=None, description=STACK_NAME_DESCRIPTION),
    ) -> dict:
        return await run_tool("pulumi-cli-preview", lambda: cli.preview(workDir, stackName))

    @mcp.tool(name="pulumi-cli-up", description="Run pulumi up for a given project and stack")
    async def up(
        workDir: str = Field(description=WORK_DIR_DESCRIPTION),
        stackName: Optional[str] = Field(default=None, description=STACK_NAME_DESCRIPTION),
    ) -> dict:
        return await run_tool("pulumi-cli-up", lambda: cli.up(workDir, stackName))

    @mcp.tool(name="pulumi-cli-refresh", description="Run pulumi refresh for a given project and stack")
    async def refresh(
        workDir: str = Field(description=WORK_DIR_DESCRIPTION),
        stackName: Optional[str] = Field(default=None, description=STACK_NAME_DESCRIPTION),
    ) -> dict:
        return await run_tool("pulumi-cli-refresh", lambda: cli.refresh(workDir, stackName))

    @mcp.tool(name="pulumi-cli-stack-output", description="Get the output value(s) of a given stack")
    async def stack_output(
        workDir: str = Field(description=WORK_DIR_DESCRIPTION),
        stackName: Optional[str] = Field(default=None, description=STACK_NAME_DESCRIPTION),
        outputName: Optional[str] = Field(default=None, description="The specific stack output name to retrieve."),
    ) -> dict:
        return await run_tool("pulumi-cli-stack-output", lambda: cli.stack_output(workDir, stackName, outputName))


def _register_neo_tools(mcp: FastMCP, services: Services) -> None:
    bridge = services.bridge

    @mcp.tool(name="neo-bridge", description=NEO_BRIDGE_DESCRIPTION)
    async def neo_bridge(
        query: Optional[str] = Field(
            default=None,
            description="The task query to send to Neo (what the user wants Neo to do). "
            "Leave it empty when the tool is called again to read more data.",
        ),
        context: Optional[str] = Field(
            default=None,
            description="Optional conversation context with details of work done so far: a summary of what "
            "the user has been working on, git diffs of modified files, and an explanation of what changed and why.",
        ),
        taskId: Optional[str] = Field(
            default=None,
            description="Task ID to continue an existing Neo conversation. Leave empty to start a new task. "
            "Use the taskId returned from previous calls.",
        ),
        approval: Optional[bool] = Field(
            default=None,
            description="The user's answer when Neo is waiting for approval: true to approve, false to reject. "
            "Only set this after asking the user.",
        ),
    ) -> dict:
        return await run_tool("neo-bridge", lambda: bridge.handle(query, context, taskId, approval))

    @mcp.tool(name="neo-reset-conversation", description="Reset the Neo conversation for a specific task")
    async def neo_reset_conversation(
        taskId: Optional[str] = Field(default=None, description="Task ID to reset. If not provided, resets all tasks."),
    ) -> dict:
        return await run_tool("neo-reset-conversation", lambda: bridge.reset(taskId))


def _register_insights_tools(mcp: FastMCP, services: Services) -> None:
    org_description = "Pulumi organization name (optional, defaults to current default org)"

    @mcp.tool(name="resource-search", description=RESOURCE_SEARCH_DESCRIPTION)
    async def resource_search(
        query: str = Field(
            description="Lucene-style query to search for cloud resources. Examples: "
            '"type:aws:s3:Bucket AND -properties.tags:*" (untagged S3 buckets), '
            '"package:aws type:lambda:Function" (Lambda functions), "stack:production" (production resources)'
        ),
        org: Optional[str] = Field(default=None, description=org_description),
        top: Optional[int] = Field(default=None, description="Maximum number of top results to return (defaults to 20)"),
        size: Optional[int] = Field(default=None, description="Number of results per page (defaults to 25)"),
        properties: Optional[bool] = Field(
            default=None, description="Whether to include resource properties in the response (defaults to false)"
        ),
    ) -> dict:
        return await run_tool(
            "resource-search", lambda: services.resource_search.search(query, org, top, size, properties)
        )

    @mcp.tool(
        name="policy-violations",
        description="Retrieve policy violations for a Pulumi organization. Shows all current policy violations "
        "including security, compliance, and best practice violations detected in your infrastructure.",
    )
    async def policy_violations(
        org: Optional[str] = Field(default=None, description=org_description),
        workDir: Optional[str] = Field(
            default=None, description="The working directory of the program (optional, defaults to current directory)"
        ),
        stackName: Optional[str] = Field(default=None, description='The associated stack name (optional, defaults to "dev")'),
        project: Optional[str] = Field(default=None, description="Pulumi project name (fallback when auto-detection fails)"),
        stack: Optional[str] = Field(default=None, description="Pulumi stack name (fallback when auto-detection fails)"),
    ) -> dict:
        return await run_tool(
            "policy-violations", lambda: services.policy_violations.get(org, workDir, stackName, project, stack)
        )


def _register_misc_tools(mcp: FastMCP, services: Services) -> None:
    @mcp.tool(
        name="start-task",
        description="Generate a deeplink URL to the Pulumi Console, where the user can continue their cloud "
        "development task using Pulumi Agents. Requires knowing the organization of the user before proceeding.",
    )
    async def start_task_tool(
        organization: str = Field(description="The Pulumi organization name (required)"),
        description: Optional[str] = Field(
            default=None,
            description="A brief but detailed LLM-oriented description of the task that the user wishes "
            "the Pulumi Agent to perform (optional)",
        ),
        stack: Optional[str] = Field(
            default=None,
            description='The name of the stack to which the work will be restricted to, either "project/stack" '
            'format or just "stack" name (optional)',
        ),
        repo: Optional[str] = Field(
            default=None, description="The name of the Git repository to which the work will be restricted to (optional)"
        ),
    ) -> dict:
        return await run_tool("start-task", lambda: start_task(organization, description, stack, repo))

    @mcp.tool(
        name="deploy-to-aws",
        description="Deploy application code to AWS by generating Pulumi infrastructure. This tool automatically "
        "analyzes your application files and provisions the appropriate AWS resources (S3, Lambda, EC2, etc.) "
        "based on what it finds. No prior analysis needed - just invoke directly.",
    )
    async def deploy_to_aws_tool() -> dict:
        return await run_tool("deploy-to-aws", lambda: deploy_to_aws(services.test_mode))


def _register_prompts(mcp: FastMCP) -> None:
    @mcp.prompt(
        name="deploy-to-aws",
        description="AWS deployment guidance prompt. Used to generate Pulumi infrastructure code for deploying "
        "applications to AWS.",
    )
    def deploy_prompt() -> str:
        return deploy_to_aws_prompt()

    @mcp.prompt(name="convert-terraform-to-typescript", description="Converts a Terraform file to TypeScript")
    def convert_prompt(outputDir: Optional[str] = None) -> str:
        return prompts.convert_terraform_to_typescript(outputDir)
