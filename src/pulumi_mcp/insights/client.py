"""
Pulumi Cloud insights API clients.

``InsightsClient`` is the capability the insights tools depend on. The HTTP
implementation talks to Pulumi Cloud; the stub returns canned data and is
wired in when MCP_TEST_MODE=true.

Endpoints:
- GET /api/orgs/{org}/search/resources
- GET /api/orgs/{org}/policyresults/violationsv2
- GET /api/stacks/{org}/{project}/{stack}/export
"""

import logging
from typing import Any, Callable, Optional, Protocol

import httpx
from pydantic import BaseModel, ConfigDict, Field

from ..constants import REQUEST_TIMEOUT_SECONDS, SERVER_NAME, get_access_token, get_api_url
from ..errors import ConfigurationError, PulumiApiError

logger = logging.getLogger(__name__)

DEFAULT_FACETS = ["type", "package", "project", "stack"]


# ========== Models ==========


class SearchRequest(BaseModel):
    """Resource search parameters."""

    query: str
    org: str
    size: int = 25
    page: int = 0
    top: int = 20
    properties: bool = False
    source: str = "mcp-server"
    facet: list[str] = Field(default_factory=lambda: list(DEFAULT_FACETS))
    ai: Optional[str] = None


class SearchResponse(BaseModel):
    """Resource search results. Resource entries are passed through as-is."""

    resources: list[dict[str, Any]] = Field(default_factory=list)
    facets: dict[str, dict[str, int]] = Field(
        default_factory=lambda: {facet: {} for facet in DEFAULT_FACETS}
    )
    totalResources: int = 0
    page: Optional[int] = None
    size: Optional[int] = None


class PolicyViolation(BaseModel):
    """A policy violation as reported by Pulumi Cloud."""

    model_config = ConfigDict(extra="allow")

    projectName: str = ""
    stackName: str = ""
    policyPack: str = ""
    policyPackTag: str = ""
    policyName: str = ""
    resourceURN: str = ""
    resourceType: str = ""
    resourceName: str = ""
    message: str = ""
    observedAt: str = ""
    level: str = ""


class StackResource(BaseModel):
    """A resource entry from a stack export."""

    model_config = ConfigDict(extra="ignore")

    urn: str
    type: str
    id: Optional[str] = None
    custom: bool = False


class StackExport(BaseModel):
    resources: list[StackResource] = Field(default_factory=list)


class InsightsClient(Protocol):
    """Capabilities the insights tools need from Pulumi Cloud."""

    async def search_resources(self, request: SearchRequest) -> SearchResponse: ...

    async def get_policy_violations(self, org: str) -> list[PolicyViolation]: ...

    async def get_stack_export(self, org: str, project: str, stack: str) -> StackExport: ...

    async def close(self) -> None: ...


# ========== HTTP client ==========


def status_error(status_code: int, reason: str, org: str, operation: str) -> PulumiApiError:
    """Map a failed response to a readable error."""
    if status_code == 401:
        message = "Unauthorized: Invalid or expired access token"
    elif status_code == 402:
        message = f"Quota limit exceeded for {operation} API"
    elif status_code == 403:
        message = f"Forbidden: Insufficient permissions for {operation}"
    elif status_code == 404:
        message = f"Organization '{org}' not found"
    else:
        message = f"Pulumi API error: {status_code} {reason}"
    return PulumiApiError(message, status_code=status_code)


class PulumiCloudClient:
    """
    Async HTTP client for the Pulumi Cloud insights endpoints.

    The access token is read per request; a missing token raises
    :class:`ConfigurationError`.
    """

    def __init__(
        self,
        api_url: Optional[str] = None,
        token_provider: Callable[[], Optional[str]] = get_access_token,
        timeout: float = REQUEST_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._api_url = (api_url or get_api_url()).rstrip("/")
        self._token_provider = token_provider
        self._timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout, transport=self._transport)
        return self._client

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    def _get_headers(self, accept: Optional[str] = None) -> dict:
        token = self._token_provider()
        if not token:
            raise ConfigurationError("PULUMI_ACCESS_TOKEN environment variable is required")
        headers = {
            "Authorization": f"token {token}",
            "Content-Type": "application/json",
            "User-Agent": SERVER_NAME,
        }
        if accept:
            headers["Accept"] = accept
        return headers

    async def _get(self, path: str, org: str, operation: str, accept: Optional[str] = None, params=None) -> Any:
        client = await self._ensure_client()
        headers = self._get_headers(accept)
        try:
            response = await client.get(f"{self._api_url}{path}", headers=headers, params=params)
        except httpx.RequestError as e:
            raise PulumiApiError(f"Request to Pulumi Cloud failed: {e}") from e
        if response.is_error:
            raise status_error(response.status_code, response.reason_phrase, org, operation)
        return response.json()

    async def search_resources(self, request: SearchRequest) -> SearchResponse:
        params: list[tuple[str, str]] = [
            ("query", request.query),
            ("size", str(request.size)),
            ("page", str(request.page)),
            ("top", str(request.top)),
            ("properties", "true" if request.properties else "false"),
            ("source", request.source),
        ]
        params.extend(("facet", facet) for facet in request.facet)
        if request.ai:
            params.append(("ai", request.ai))

        data = await self._get(
            f"/api/orgs/{request.org}/search/resources",
            request.org,
            "resource search",
            params=params,
        )
        return SearchResponse(
            resources=data.get("resources") or [],
            facets=data.get("facets") or {facet: {} for facet in DEFAULT_FACETS},
            totalResources=data.get("total") or 0,
            page=data.get("page"),
            size=data.get("size"),
        )

    async def get_policy_violations(self, org: str) -> list[PolicyViolation]:
        data = await self._get(
            f"/api/orgs/{org}/policyresults/violationsv2",
            org,
            "policy violations",
            accept="application/vnd.pulumi+8",
        )
        return [PolicyViolation.model_validate(v) for v in data.get("policyViolations") or []]

    async def get_stack_export(self, org: str, project: str, stack: str) -> StackExport:
        data = await self._get(f"/api/stacks/{org}/{project}/{stack}/export", org, "stack export")
        deployment = data.get("deployment") or {}
        return StackExport(resources=deployment.get("resources") or [])


# ========== Stub client ==========


class StubInsightsClient:
    """Canned Pulumi Cloud responses for test mode. Makes no network calls."""

    async def search_resources(self, request: SearchRequest) -> SearchResponse:
        query = request.query.lower()
        if "type:aws:s3:bucket" in query and "-properties.tags:" in query:
            resource = {
                "name": "acme-bucket",
                "type": "aws:s3:Bucket",
                "project": "example-project",
                "stack": "dev",
                "properties": {"bucket": "acme-bucket", "region": "us-west-2"} if request.properties else {},
                "id": "arn:aws:s3:::acme-bucket",
                "created": "2024-01-15T10:30:00Z",
                "modified": "2024-01-15T10:30:00Z",
                "provider": "aws",
                "package": "aws",
            }
        else:
            resource = {
                "name": "example-resource",
                "type": "aws:ec2:Instance",
                "project": "example-project",
                "stack": "dev",
                "properties": (
                    {"instanceType": "t3.micro", "tags": {"Environment": "dev"}} if request.properties else {}
                ),
                "id": "i-1234567890abcdef0",
                "created": "2024-01-15T10:30:00Z",
                "modified": "2024-01-15T10:30:00Z",
                "provider": "aws",
                "package": "aws",
            }
        return SearchResponse(
            resources=[resource],
            facets={
                "type": {resource["type"]: 1},
                "package": {"aws": 1},
                "project": {"example-project": 1},
                "stack": {"dev": 1},
            },
            totalResources=1,
        )

    async def get_policy_violations(self, org: str) -> list[PolicyViolation]:
        return [
            PolicyViolation(
                projectName="my-web-app",
                stackName="dev",
                policyPack="security-policies",
                policyPackTag="1.0.0",
                policyName="no-public-s3-buckets",
                resourceURN="urn:pulumi:dev::my-web-app::aws:s3/bucket:Bucket::myBucket",
                resourceType="aws:s3/bucket:Bucket",
                resourceName="my-public-bucket",
                message="S3 bucket should not be publicly accessible",
                observedAt="2024-01-15T10:30:00Z",
                level="mandatory",
            ),
            PolicyViolation(
                projectName="infrastructure",
                stackName="prod",
                policyPack="compliance-policies",
                policyPackTag="2.1.0",
                policyName="require-encryption",
                resourceURN="urn:pulumi:prod::infrastructure::aws:rds/instance:Instance::database",
                resourceType="aws:rds/instance:Instance",
                resourceName="main-db",
                message="RDS instance must have encryption enabled",
                observedAt="2024-01-14T15:45:00Z",
                level="advisory",
            ),
        ]

    async def get_stack_export(self, org: str, project: str, stack: str) -> StackExport:
        return StackExport(
            resources=[
                StackResource(
                    urn="urn:pulumi:dev::my-web-app::aws:s3/bucket:Bucket::myBucket",
                    type="aws:s3/bucket:Bucket",
                    id="my-public-bucket",
                    custom=True,
                ),
                StackResource(
                    urn="urn:pulumi:dev::my-web-app::pulumi:pulumi:Stack::my-web-app-dev",
                    type="pulumi:pulumi:Stack",
                ),
            ]
        )

    async def close(self) -> None:
        pass


def create_insights_client(test_mode: bool = False) -> InsightsClient:
    """Pick the insights client once at startup."""
    if test_mode:
        logger.info("Test mode: using stub insights client")
        return StubInsightsClient()
    return PulumiCloudClient()
