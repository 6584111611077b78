"""
Tests for the Pulumi Cloud insights tools.

Tests cover:
- HTTP status mapping and request shapes
- Resource search payloads
- Policy violation filtering against local sources
"""

import json

import httpx
import pytest

from pulumi_mcp.errors import ConfigurationError, PulumiApiError, ToolError
from pulumi_mcp.insights import (
    PolicyViolation,
    PolicyViolations,
    PulumiCloudClient,
    ResourceSearch,
    SearchRequest,
    StubInsightsClient,
    create_insights_client,
)
from pulumi_mcp.insights.client import status_error
from pulumi_mcp.insights.policy_violations import (
    StackInfo,
    detect_stack_info,
    extract_logical_name,
    find_source_files,
    map_violations_by_urn,
    violations_summary,
)


async def default_org() -> str:
    return "acme"


class TestStatusError:
    @pytest.mark.parametrize(
        "status, expected",
        [
            (401, "Unauthorized: Invalid or expired access token"),
            (402, "Quota limit exceeded for resource search API"),
            (403, "Forbidden: Insufficient permissions for resource search"),
            (404, "Organization 'acme' not found"),
            (500, "Pulumi API error: 500 Internal Server Error"),
        ],
    )
    def test_messages(self, status, expected):
        error = status_error(status, "Internal Server Error", "acme", "resource search")
        assert str(error) == expected
        assert error.status_code == status


class TestPulumiCloudClient:
    """Tests for PulumiCloudClient with a mocked transport"""

    async def test_search_sends_params_and_maps_total(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"resources": [{"name": "b"}], "total": 7, "facets": {"type": {}}})

        client = PulumiCloudClient(
            api_url="https://api.pulumi.test/",
            token_provider=lambda: "pul-token",
            transport=httpx.MockTransport(handler),
        )

        response = await client.search_resources(SearchRequest(query="type:aws:s3:Bucket", org="acme", top=5))

        request = seen[0]
        assert request.url.path == "/api/orgs/acme/search/resources"
        assert request.url.params["query"] == "type:aws:s3:Bucket"
        assert request.url.params["top"] == "5"
        assert request.url.params["properties"] == "false"
        assert request.url.params.get_list("facet") == ["type", "package", "project", "stack"]
        assert request.headers["Authorization"] == "token pul-token"
        assert response.totalResources == 7
        assert response.resources == [{"name": "b"}]

    async def test_violations_use_versioned_accept(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"policyViolations": [{"policyName": "p1", "extraField": 1}]})

        client = PulumiCloudClient(
            api_url="https://api.pulumi.test", token_provider=lambda: "t", transport=httpx.MockTransport(handler)
        )

        violations = await client.get_policy_violations("acme")

        assert seen[0].headers["Accept"] == "application/vnd.pulumi+8"
        assert violations[0].policyName == "p1"

    async def test_stack_export(self):
        def handler(request):
            assert request.url.path == "/api/stacks/acme/web/dev/export"
            return httpx.Response(
                200,
                json={"deployment": {"resources": [{"urn": "urn:pulumi:dev::web::aws:s3/bucket:Bucket::b", "type": "aws:s3/bucket:Bucket", "id": "b-1", "custom": True, "inputs": {}}]}},
            )

        client = PulumiCloudClient(
            api_url="https://api.pulumi.test", token_provider=lambda: "t", transport=httpx.MockTransport(handler)
        )

        export = await client.get_stack_export("acme", "web", "dev")

        assert export.resources[0].id == "b-1"

    async def test_error_status(self):
        client = PulumiCloudClient(
            api_url="https://api.pulumi.test",
            token_provider=lambda: "t",
            transport=httpx.MockTransport(lambda request: httpx.Response(404)),
        )

        with pytest.raises(PulumiApiError, match="Organization 'nope' not found"):
            await client.get_policy_violations("nope")

    async def test_missing_token(self):
        client = PulumiCloudClient(api_url="https://api.pulumi.test", token_provider=lambda: None)

        with pytest.raises(ConfigurationError):
            await client.get_policy_violations("acme")


class TestResourceSearch:
    async def test_payload(self):
        search = ResourceSearch(StubInsightsClient(), org_resolver=default_org)

        result = await search.search("type:aws:s3:Bucket AND -properties.tags:*", properties=True)

        payload = json.loads(result.texts[0])
        assert result.description == "Pulumi resource search results"
        assert payload["org"] == "acme"
        assert payload["summary"] == "Found 1 resource matching your query"
        assert payload["results"]["resources"][0]["name"] == "acme-bucket"
        assert payload["results"]["resources"][0]["properties"]["region"] == "us-west-2"

    async def test_explicit_org_skips_resolver(self):
        async def resolver():
            raise AssertionError("resolver should not be called")

        search = ResourceSearch(StubInsightsClient(), org_resolver=resolver)

        result = await search.search("stack:dev", org="other")

        assert json.loads(result.texts[0])["org"] == "other"

    async def test_org_resolution_failure_propagates(self):
        async def resolver():
            raise ToolError("Could not determine Pulumi default organization.")

        search = ResourceSearch(StubInsightsClient(), org_resolver=resolver)

        with pytest.raises(ToolError):
            await search.search("stack:dev")


@pytest.fixture
def project_dir(tmp_path):
    (tmp_path / "index.ts").write_text('const bucket = new aws.s3.Bucket("myBucket");\n')
    (tmp_path / "node_modules").mkdir()
    (tmp_path / "node_modules" / "lib.ts").write_text('"database"')
    (tmp_path / ".pulumi").mkdir()
    (tmp_path / ".pulumi" / "state.py").write_text('"database"')
    (tmp_path / "README.md").write_text('"database"')
    return tmp_path


class TestSourceMatching:
    def test_extract_logical_name(self):
        assert extract_logical_name("urn:pulumi:dev::web::aws:s3/bucket:Bucket::myBucket") == "myBucket"

    def test_find_source_files_skips_hidden_and_build_dirs(self, project_dir):
        assert find_source_files(str(project_dir)) == [str(project_dir / "index.ts")]

    def test_map_by_urn_keeps_local_resources(self, project_dir):
        violations = [
            PolicyViolation(resourceURN="urn:pulumi:dev::web::aws:s3/bucket:Bucket::myBucket", policyName="p1"),
            PolicyViolation(resourceURN="urn:pulumi:prod::infra::aws:rds/instance:Instance::database"),
        ]

        kept = map_violations_by_urn(violations, str(project_dir))

        assert len(kept) == 1
        assert kept[0]["logicalName"] == "myBucket"
        assert kept[0]["filePaths"] == [str(project_dir / "index.ts")]
        assert kept[0]["policyName"] == "p1"

    @pytest.mark.parametrize(
        "kept, total, expected",
        [
            (1, 1, "Found 1 policy violation in current project"),
            (2, 5, "Found 2 policy violations in current project (filtered 3 external violations)"),
            (0, 4, "No policy violations found in current project (filtered 4 external violations)"),
            (0, 0, "No policy violations found"),
        ],
    )
    def test_summary(self, kept, total, expected):
        assert violations_summary(kept, total) == expected


class TestPolicyViolations:
    async def test_uses_stack_export_mapping(self, project_dir):
        async def detector(work_dir, stack_name, org_resolver):
            return StackInfo(org="acme", project="my-web-app", stack="dev")

        tool = PolicyViolations(StubInsightsClient(), org_resolver=default_org, stack_detector=detector)

        result = await tool.get(work_dir=str(project_dir))

        payload = json.loads(result.texts[0])
        assert result.description == "Pulumi policy violations"
        assert payload["org"] == "acme"
        assert payload["totalViolations"] == 1
        assert payload["violations"][0]["policyName"] == "no-public-s3-buckets"
        assert payload["summary"] == "Found 1 policy violation in current project (filtered 1 external violations)"

    async def test_falls_back_to_urn_matching(self, project_dir):
        async def detector(work_dir, stack_name, org_resolver):
            raise ToolError("no stack")

        tool = PolicyViolations(StubInsightsClient(), org_resolver=default_org, stack_detector=detector)

        result = await tool.get(work_dir=str(project_dir))

        payload = json.loads(result.texts[0])
        assert [v["logicalName"] for v in payload["violations"]] == ["myBucket"]

    async def test_explicit_project_and_stack_fallback(self, project_dir):
        calls = []

        class RecordingClient(StubInsightsClient):
            async def get_stack_export(self, org, project, stack):
                calls.append((org, project, stack))
                return await super().get_stack_export(org, project, stack)

        async def detector(work_dir, stack_name, org_resolver):
            raise ToolError("no stack")

        tool = PolicyViolations(RecordingClient(), org_resolver=default_org, stack_detector=detector)

        await tool.get(org="acme", work_dir=str(project_dir), project="my-web-app", stack="dev")

        assert calls == [("acme", "my-web-app", "dev")]


class TestDetectStackInfo:
    async def test_reads_pulumi_yaml_when_automation_fails(self, tmp_path, monkeypatch):
        from pulumi_mcp.insights import policy_violations

        def fail(work_dir, stack_name):
            raise OSError("pulumi not installed")

        monkeypatch.setattr(policy_violations, "_select_stack_info", fail)
        (tmp_path / "Pulumi.yaml").write_text("name: my-web-app\nruntime: nodejs\n")

        info = await detect_stack_info(str(tmp_path), None, default_org)

        assert info == StackInfo(org="acme", project="my-web-app", stack="dev")

    async def test_raises_without_project(self, tmp_path, monkeypatch):
        from pulumi_mcp.insights import policy_violations

        def fail(work_dir, stack_name):
            raise OSError("pulumi not installed")

        monkeypatch.setattr(policy_violations, "_select_stack_info", fail)

        with pytest.raises(ToolError, match="Could not detect Pulumi project/stack info"):
            await detect_stack_info(str(tmp_path), "prod", default_org)


def test_create_insights_client_in_test_mode():
    assert isinstance(create_insights_client(True), StubInsightsClient)
    assert isinstance(create_insights_client(False), PulumiCloudClient)
