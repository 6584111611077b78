"""
Neo task bridge.

Drives an asynchronous Neo conversation through a synchronous tool call.
Every call returns one result with ``has_more``; the caller keeps calling
with the same task id and an empty query while ``has_more`` is true.

Per-call dispatch:

- no task id                 -> create task, then poll
- pending approval, no flag  -> "Approval required", no remote calls
- pending approval, flag set -> send confirmation, then poll
- task id, empty query       -> poll
- task id, query             -> send follow-up, then poll

Polling long-polls the event feed until new content arrives, a final or
approval event is seen, or the poll timeout elapses. Task state (watermark
and pending approval) is only written once a poll returns content, so a
failed call can be retried safely.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional

from ..errors import NeoApiError, PulumiMcpError
from ..schemas import ToolResult
from .client import NeoClient
from .events import ApprovalRequest, AssistantMessage, relevant_events

logger = logging.getLogger(__name__)


@dataclass
class TaskState:
    """Bridge state for one Neo task."""

    last_shown_seq: int = 0
    """Number of relevant events already returned to the caller."""

    pending_approval_id: Optional[str] = None
    """Approval request Neo is blocked on, if any."""


class TaskStateStore:
    """In-memory task states keyed by task id."""

    def __init__(self):
        self._states: dict[str, TaskState] = {}

    def get(self, task_id: str) -> TaskState:
        """Return the task's state, creating it on first reference."""
        state = self._states.get(task_id)
        if state is None:
            state = TaskState()
            self._states[task_id] = state
        return state

    def reset(self, task_id: Optional[str] = None) -> None:
        """Forget one task, or every task when ``task_id`` is None."""
        if task_id is None:
            self._states.clear()
        else:
            self._states.pop(task_id, None)

    def __contains__(self, task_id: str) -> bool:
        return task_id in self._states

    def __len__(self) -> int:
        return len(self._states)


@dataclass
class PollResult:
    messages: list[str] = field(default_factory=list)
    has_more: bool = False


def compose_content(query: str, context: Optional[str] = None) -> str:
    """Prefix the query with conversation context when one is given."""
    if context and context.strip():
        return f"Conversation context:\n\n{context}\n\nUser request:\n\n{query}"
    return query


class NeoBridge:
    """
    Task state machine between MCP tool calls and Neo tasks.

    Owns a :class:`TaskStateStore` shared by every session of the server.
    Remote failures never escape :meth:`handle`; they come back as results.
    """

    def __init__(
        self,
        client: NeoClient,
        states: Optional[TaskStateStore] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize NeoBridge.

        Args:
            client: Neo tasks API client
            states: Task state store (a fresh one if omitted)
            sleep: Awaitable sleep between empty poll cycles
            clock: Monotonic clock in seconds for the poll timeout
        """
        self._client = client
        self.states = states if states is not None else TaskStateStore()
        self._sleep = sleep
        self._clock = clock
        self._config = client.config

    def task_url(self, task_id: str) -> str:
        return self._config.task_console_url(task_id)

    # ========== Tool entry points ==========

    async def handle(
        self,
        query: Optional[str] = None,
        context: Optional[str] = None,
        task_id: Optional[str] = None,
        approval: Optional[bool] = None,
    ) -> ToolResult:
        """Run one bridge call and return its result."""
        logger.debug(
            "neo-bridge called: task_id=%s approval=%s has_query=%s",
            task_id,
            approval,
            bool(query and query.strip()),
        )

        if not self._client.has_token:
            return ToolResult.text(
                "Missing PULUMI_ACCESS_TOKEN",
                "PULUMI_ACCESS_TOKEN environment variable is not set. "
                "Please set it to use the Neo task launcher.",
                has_more=False,
            )

        has_query = bool(query and query.strip())

        if not task_id and not has_query:
            return ToolResult.text(
                "Missing query parameter",
                "A query is required to start a new Neo task. "
                "Pass taskId to continue an existing task.",
                has_more=False,
            )

        try:
            if not task_id:
                try:
                    task_id = await self.create_task(query, context)
                except NeoApiError as e:
                    if e.status_code is None:
                        raise
                    return ToolResult.text(
                        "API request failed",
                        f"Failed to launch Neo task. Status: {e.status_code}, Error: {e.body}",
                        has_more=False,
                    )
                return await self._poll_and_format(
                    task_id, f"Neo task launched at: {self.task_url(task_id)}"
                )

            state = self.states.get(task_id)
            if state.pending_approval_id:
                if approval is None:
                    return self._approval_required(task_id)
                await self.send_approval(task_id, state.pending_approval_id, approval, query)
                verb = "Approval" if approval else "Rejection"
                return await self._poll_and_format(
                    task_id, f"{verb} sent to task {self.task_url(task_id)}"
                )

            if not has_query:
                return await self._poll_and_format(task_id, f"Polling task {task_id}")

            await self.send_follow_up(task_id, compose_content(query, context))
            return await self._poll_and_format(
                task_id, f"Sent follow-up message to task {self.task_url(task_id)}"
            )
        except PulumiMcpError as e:
            logger.warning("Neo bridge call failed for task %s: %s", task_id, e)
            return ToolResult.text(
                "Network error",
                f"Failed to process Neo task: {e}",
                has_more=False,
                taskId=task_id,
            )

    def reset(self, task_id: Optional[str] = None) -> ToolResult:
        """Clear one task's state, or all task states."""
        self.states.reset(task_id)
        if task_id:
            return ToolResult.text(
                "Neo task reset", f"Neo task {task_id} has been reset.", has_more=False
            )
        return ToolResult.text(
            "Neo conversation reset", "All Neo task states have been cleared.", has_more=False
        )

    async def close(self) -> None:
        await self._client.close()

    # ========== Operations ==========

    async def create_task(self, query: str, context: Optional[str] = None) -> str:
        return await self._client.create_task(compose_content(query, context))

    async def send_approval(
        self,
        task_id: str,
        approval_id: str,
        approved: bool,
        note: Optional[str] = None,
    ) -> None:
        """Answer the pending approval and clear it once Neo accepted it."""
        try:
            await self._client.send_confirmation(
                task_id, approval_id, approved, note.strip() if note else None
            )
        except NeoApiError as e:
            raise NeoApiError(f"Error sending approval: {e}", e.status_code, e.body) from e
        logger.info("Sent %s for approval %s on task %s", approved, approval_id, task_id)
        self.states.get(task_id).pending_approval_id = None

    async def send_follow_up(self, task_id: str, message: str) -> None:
        await self._client.send_user_message(task_id, message)
        logger.debug("Follow-up sent to task %s", task_id)

    async def poll(self, task_id: str) -> PollResult:
        """Long-poll the task's feed for events past its watermark."""
        state = self.states.get(task_id)
        since = state.last_shown_seq
        started = self._clock()
        logger.debug("Polling task %s from seq %d", task_id, since)

        while self._clock() - started < self._config.poll_timeout:
            try:
                raw_events = await self._client.list_events(task_id)
            except NeoApiError as e:
                raise NeoApiError(f"Error polling task events: {e}", e.status_code, e.body) from e

            events = relevant_events(raw_events)
            new_events = events[since:]
            logger.debug(
                "Task %s: %d relevant events, %d new", task_id, len(events), len(new_events)
            )

            messages = [e.content for e in new_events if e.content]

            approvals = [e for e in new_events if isinstance(e, ApprovalRequest)]
            approval = approvals[-1] if approvals else None
            if approval is not None:
                messages.append(approval.prompt_text())

            if messages:
                done = approval is not None or any(
                    isinstance(e, AssistantMessage) and e.is_final for e in new_events
                )
                if approval is not None:
                    if approval.approval_id is None:
                        logger.warning("Approval request %s has no id", approval.event_id)
                    state.pending_approval_id = approval.approval_id
                state.last_shown_seq = len(events)
                return PollResult(messages=messages, has_more=not done)

            await self._sleep(self._config.poll_interval)

        logger.info("Polling task %s timed out", task_id)
        return PollResult(
            messages=[
                f"Polling timed out after {self._config.poll_timeout / 60:g} minutes. "
                "Neo may still be working on your request."
                f"\n\nCheck the task status at: {self.task_url(task_id)}"
            ],
            has_more=False,
        )

    # ========== Formatting ==========

    async def _poll_and_format(self, task_id: str, first_message: str) -> ToolResult:
        result = await self.poll(task_id)
        return ToolResult.text(
            f"Neo task poll - {len(result.messages)} new messages",
            first_message,
            *result.messages,
            has_more=result.has_more,
            taskId=task_id,
        )

    def _approval_required(self, task_id: str) -> ToolResult:
        return ToolResult.text(
            "Approval required",
            f"Neo task {task_id} is waiting for your approval. Ask the user whether to proceed, "
            "then call this tool again with approval=true to approve or approval=false to reject.",
            has_more=False,
            taskId=task_id,
        )
