"""
Request router for the streamable HTTP transport.

Routing by (session id header, initialize body):

- no id, initialize     -> create a session and forward to it
- id, not initialize    -> forward to the existing session, 404 if unknown
- id, initialize        -> 400
- no id, not initialize -> 400
"""

import json
import logging
from typing import Any, Optional

from fastapi import Request
from fastapi.responses import JSONResponse

from ..constants import HEADER_SESSION_ID
from .sessions import Session, SessionStore

logger = logging.getLogger(__name__)

_SESSION_HEADER = HEADER_SESSION_ID.encode()


def is_initialize_request(body: Any) -> bool:
    """True if ``body`` (single JSON-RPC message or batch) calls ``initialize``."""

    def has_initialize_method(obj: Any) -> bool:
        return isinstance(obj, dict) and obj.get("method") == "initialize"

    if isinstance(body, list):
        return any(has_initialize_method(item) for item in body)
    return has_initialize_method(body)


def _parse_body(raw: bytes) -> Any:
    if not raw:
        return None
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None


def _replay_receive(body: bytes, receive):
    """Receive callable yielding the already-read body once, then the client stream."""
    delivered = False

    async def replay():
        nonlocal delivered
        if not delivered:
            delivered = True
            return {"type": "http.request", "body": body, "more_body": False}
        return await receive()

    return replay


def _send_with_session_id(send, session_id: str):
    async def wrapped(message) -> None:
        if message["type"] == "http.response.start":
            headers = list(message.get("headers", []))
            if not any(name.lower() == _SESSION_HEADER for name, _ in headers):
                headers.append((_SESSION_HEADER, session_id.encode()))
            message["headers"] = headers
        await send(message)

    return wrapped


class HttpRequestRouter:
    """ASGI app routing MCP requests to sessions in a :class:`SessionStore`."""

    def __init__(self, store: SessionStore):
        self.store = store

    async def __call__(self, scope, receive, send) -> None:
        response_started = False

        async def tracking_send(message) -> None:
            nonlocal response_started
            if message["type"] == "http.response.start":
                response_started = True
            await send(message)

        try:
            await self.route(scope, receive, tracking_send)
        except Exception:
            logger.exception("Error handling MCP request")
            if not response_started:
                response = JSONResponse({"error": "Internal server error"}, status_code=500)
                await response(scope, receive, send)

    async def route(self, scope, receive, send) -> None:
        request = Request(scope, receive)
        raw_body = await request.body()
        session_id: Optional[str] = request.headers.get(HEADER_SESSION_ID)
        is_initialize = is_initialize_request(_parse_body(raw_body))
        replay = _replay_receive(raw_body, receive)

        if not session_id and is_initialize:
            session = await self.store.create_session(request.headers.get("origin"))
            await self._forward(session, scope, replay, send)
        elif session_id and not is_initialize:
            session = self.store.get_and_bump(session_id, request.headers.get("origin"))
            if session is None:
                # Unknown id and origin mismatch look the same
                await JSONResponse({"error": "Session not found"}, status_code=404)(scope, replay, send)
                return
            await self._forward(session, scope, replay, send)
        else:
            if session_id and is_initialize:
                message = "Bad Request: cannot send initialize request with existing session ID."
            else:
                message = "Bad Request: invalid session ID or method."
            await JSONResponse({"error": message}, status_code=400)(scope, replay, send)

    async def _forward(self, session: Session, scope, receive, send) -> None:
        await session.connection.handle_request(scope, receive, _send_with_session_id(send, session.id))

    async def destroy(self) -> None:
        await self.store.destroy()
