"""Neo agent tasks: event decoding, REST client and the task bridge."""

from .bridge import NeoBridge, PollResult, TaskState, TaskStateStore, compose_content
from .client import NeoClient
from .events import (
    ApprovalRequest,
    AssistantMessage,
    OtherEvent,
    decode_event,
    is_relevant_message,
    relevant_events,
)

__all__ = [
    "ApprovalRequest",
    "AssistantMessage",
    "NeoBridge",
    "NeoClient",
    "OtherEvent",
    "PollResult",
    "TaskState",
    "TaskStateStore",
    "compose_content",
    "decode_event",
    "is_relevant_message",
    "relevant_events",
]
