"""
Neo task events.

The events feed returns loosely-typed JSON. Each event is decoded once into
one of three variants and the rest of the bridge works with those.
"""

from dataclasses import dataclass
from typing import Any, Optional, Union

AGENT_RESPONSE = "agentResponse"
ASSISTANT_MESSAGE = "assistant_message"
USER_APPROVAL_REQUEST = "user_approval_request"

APPROVAL_WAITING_SUFFIX = "\n\nNeo is waiting for your approval."
DEFAULT_APPROVAL_MESSAGE = "Neo is requesting approval to continue."


@dataclass(frozen=True)
class AssistantMessage:
    """Text produced by Neo."""

    event_id: str
    timestamp: str
    content: Optional[str] = None
    is_final: bool = False


@dataclass(frozen=True)
class ApprovalRequest:
    """Neo is blocked until the user approves or rejects an action."""

    event_id: str
    timestamp: str
    approval_id: Optional[str] = None
    """Id to send back in the user_confirmation event (not the event id)."""

    message: Optional[str] = None
    content: Optional[str] = None

    def prompt_text(self) -> str:
        return (self.message or DEFAULT_APPROVAL_MESSAGE) + APPROVAL_WAITING_SUFFIX


@dataclass(frozen=True)
class OtherEvent:
    """Anything the bridge does not act on."""

    raw: Any


NeoEvent = Union[AssistantMessage, ApprovalRequest, OtherEvent]


def is_relevant_message(event: Any) -> bool:
    """True for agent responses carrying an assistant message or approval request.

    The envelope needs string ``type`` and ``id`` fields, ``type`` must be
    ``agentResponse``, and ``eventBody`` must be an object with a ``type`` and
    a string ``timestamp``.
    """
    if not isinstance(event, dict):
        return False
    if not isinstance(event.get("type"), str) or not isinstance(event.get("id"), str):
        return False
    if event["type"] != AGENT_RESPONSE:
        return False

    body = event.get("eventBody")
    if not isinstance(body, dict):
        return False
    if "type" not in body or not isinstance(body.get("timestamp"), str):
        return False

    return body["type"] in (ASSISTANT_MESSAGE, USER_APPROVAL_REQUEST)


def _optional_str(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


def decode_event(event: Any) -> NeoEvent:
    """Decode a raw feed event into its variant."""
    if not is_relevant_message(event):
        return OtherEvent(raw=event)

    body = event["eventBody"]
    if body["type"] == USER_APPROVAL_REQUEST:
        return ApprovalRequest(
            event_id=event["id"],
            timestamp=body["timestamp"],
            approval_id=_optional_str(body.get("id")),
            message=_optional_str(body.get("message")),
            content=_optional_str(body.get("content")),
        )
    return AssistantMessage(
        event_id=event["id"],
        timestamp=body["timestamp"],
        content=_optional_str(body.get("content")),
        is_final=body.get("is_final") is True,
    )


def relevant_events(raw_events: Any) -> list[Union[AssistantMessage, ApprovalRequest]]:
    """Decode, filter and order a feed page by body timestamp."""
    if not isinstance(raw_events, list):
        return []
    decoded = [decode_event(raw) for raw in raw_events]
    relevant = [e for e in decoded if not isinstance(e, OtherEvent)]
    # ISO-8601 strings sort chronologically; sort is stable for ties
    return sorted(relevant, key=lambda e: e.timestamp)
