"""Resource search tool."""

import json
import logging
from typing import Awaitable, Callable, Optional

from ..pulumi.utils import get_default_org
from ..schemas import ToolResult
from .client import InsightsClient, SearchRequest

logger = logging.getLogger(__name__)


def search_summary(total: int) -> str:
    return f"Found {total} resource{'' if total == 1 else 's'} matching your query"


class ResourceSearch:
    """Searches Pulumi-managed resources with Lucene-style queries."""

    def __init__(
        self,
        client: InsightsClient,
        org_resolver: Callable[[], Awaitable[str]] = get_default_org,
    ):
        self._client = client
        self._org_resolver = org_resolver

    async def search(
        self,
        query: str,
        org: Optional[str] = None,
        top: Optional[int] = None,
        size: Optional[int] = None,
        properties: Optional[bool] = None,
    ) -> ToolResult:
        org = org or await self._org_resolver()

        request = SearchRequest(query=query, org=org)
        if top is not None:
            request.top = top
        if size is not None:
            request.size = size
        if properties is not None:
            request.properties = properties

        logger.debug("Searching resources in %s: %s", org, query)
        response = await self._client.search_resources(request)

        payload = {
            "query": query,
            "org": org,
            "results": {
                "resources": response.resources,
                "facets": response.facets,
                "totalResources": response.totalResources,
            },
            "summary": search_summary(response.totalResources),
        }
        return ToolResult.text("Pulumi resource search results", json.dumps(payload, indent=2))
