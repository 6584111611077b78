"""
Async HTTP client for the Neo tasks API.

Endpoints (rooted at ``{api}/api/preview/agents/{org}/tasks``):

- ``POST /``                       create a task, returns ``{"taskId": ...}``
- ``GET /{id}/events?pageSize=N``  read the task's event feed
- ``POST /{id}``                   send a user_message or user_confirmation event
"""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Optional

import httpx

from ..config import NeoConfig
from ..constants import NEO_EVENT_PAGE_SIZE, get_access_token
from ..errors import ConfigurationError, NeoApiError, NeoBusyError

logger = logging.getLogger(__name__)


def utc_timestamp() -> str:
    """Current time as ISO-8601 UTC with millisecond precision."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class NeoClient:
    """
    Async HTTP client for Neo tasks.

    The access token is read on every request so a token exported after
    startup is picked up. Transport and status failures are raised as
    :class:`NeoApiError`.
    """

    def __init__(
        self,
        config: NeoConfig,
        token_provider: Callable[[], Optional[str]] = get_access_token,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize NeoClient.

        Args:
            config: Neo API location and timeouts
            token_provider: Returns the Pulumi access token, or None
            transport: Optional httpx transport (tests pass a MockTransport)
        """
        self._config = config
        self._token_provider = token_provider
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def config(self) -> NeoConfig:
        return self._config

    @property
    def has_token(self) -> bool:
        return bool(self._token_provider())

    async def _ensure_client(self) -> httpx.AsyncClient:
        """Get or create the async HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self._config.request_timeout,
                transport=self._transport,
            )
        return self._client

    def _get_auth_headers(self) -> dict:
        token = self._token_provider()
        if not token:
            raise ConfigurationError("PULUMI_ACCESS_TOKEN environment variable is not set")
        return {
            "Authorization": f"token {token}",
            "Content-Type": "application/json",
        }

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        client = await self._ensure_client()
        try:
            return await client.request(method, url, headers=self._get_auth_headers(), **kwargs)
        except httpx.RequestError as e:
            raise NeoApiError(f"{type(e).__name__}: {e}") from e

    async def create_task(self, content: str) -> str:
        """Create a task and return its id.

        Raises:
            NeoApiError: On transport failure, or with ``status_code`` and
                ``body`` set when the API answers non-2xx.
        """
        response = await self._request("POST", self._config.tasks_url, json={"content": content})
        if response.is_error:
            raise NeoApiError(
                f"Failed to launch Neo task. Status: {response.status_code}, Error: {response.text}",
                status_code=response.status_code,
                body=response.text,
            )
        try:
            task_id = response.json()["taskId"]
        except (ValueError, KeyError, TypeError) as e:
            raise NeoApiError(f"Unexpected task creation response: {response.text}") from e
        logger.info("Created Neo task %s", task_id)
        return task_id

    async def list_events(self, task_id: str) -> list[Any]:
        """Fetch one page of the task's raw events."""
        response = await self._request(
            "GET",
            f"{self._config.tasks_url}/{task_id}/events",
            params={"pageSize": NEO_EVENT_PAGE_SIZE},
        )
        if response.is_error:
            raise NeoApiError(
                f"Events API returned status {response.status_code}",
                status_code=response.status_code,
                body=response.text,
            )
        try:
            data = response.json()
        except ValueError as e:
            raise NeoApiError("Events API returned invalid JSON") from e
        events = data.get("events") if isinstance(data, dict) else None
        return events if isinstance(events, list) else []

    async def send_user_message(self, task_id: str, content: str) -> None:
        """Send a follow-up message.

        Raises:
            NeoBusyError: Neo is still working on the previous message (409).
            NeoApiError: Any other failure.
        """
        event = {"type": "user_message", "content": content, "timestamp": utc_timestamp()}
        response = await self._request("POST", f"{self._config.tasks_url}/{task_id}", json={"event": event})
        if response.status_code == 409:
            raise NeoBusyError()
        if response.is_error:
            raise NeoApiError(
                f"Follow-up API returned status {response.status_code}: {response.text}",
                status_code=response.status_code,
                body=response.text,
            )

    async def send_confirmation(
        self,
        task_id: str,
        approval_id: str,
        approved: bool,
        note: Optional[str] = None,
    ) -> None:
        """Answer a pending approval request."""
        event: dict[str, Any] = {
            "type": "user_confirmation",
            "timestamp": utc_timestamp(),
            "approval_request_id": approval_id,
            "ok": approved,
        }
        if note:
            event["note"] = note
        response = await self._request("POST", f"{self._config.tasks_url}/{task_id}", json={"event": event})
        if response.is_error:
            raise NeoApiError(
                f"Approval API returned status {response.status_code}: {response.text}",
                status_code=response.status_code,
                body=response.text,
            )
