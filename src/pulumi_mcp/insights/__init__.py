"""Pulumi Cloud insights: resource search and policy violations."""

from .client import (
    InsightsClient,
    PolicyViolation,
    PulumiCloudClient,
    SearchRequest,
    SearchResponse,
    StackExport,
    StackResource,
    StubInsightsClient,
    create_insights_client,
)
from .policy_violations import PolicyViolations
from .resource_search import ResourceSearch

__all__ = [
    "InsightsClient",
    "PolicyViolation",
    "PolicyViolations",
    "PulumiCloudClient",
    "ResourceSearch",
    "SearchRequest",
    "SearchResponse",
    "StackExport",
    "StackResource",
    "StubInsightsClient",
    "create_insights_client",
]
