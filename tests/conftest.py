"""Shared fixtures for the Pulumi MCP Server tests."""

import json
from typing import Callable, Optional

import pytest
from fastapi import Request
from fastapi.responses import JSONResponse

from pulumi_mcp.config import SessionConfig


class FakeConnection:
    """Stands in for a transport/server pair; echoes the request body back."""

    def __init__(self, session_id: str, on_close: Callable[[], None]):
        self.session_id = session_id
        self.on_close = on_close
        self.close_calls = 0
        self.requests: list[bytes] = []
        self.fail_on_close = False

    async def handle_request(self, scope, receive, send) -> None:
        body = await Request(scope, receive).body()
        self.requests.append(body)
        payload = {"session": self.session_id, "echo": json.loads(body) if body else None}
        await JSONResponse(payload)(scope, receive, send)

    async def close(self) -> None:
        self.close_calls += 1
        if self.fail_on_close:
            raise RuntimeError("close failed")


class FakeConnector:
    """Connector recording every connection it creates."""

    def __init__(self):
        self.connections: dict[str, FakeConnection] = {}

    async def __call__(self, session_id: str, on_close: Callable[[], None]) -> FakeConnection:
        connection = FakeConnection(session_id, on_close)
        self.connections[session_id] = connection
        return connection


class FakeClock:
    """Millisecond clock advanced by hand."""

    def __init__(self, now: float = 1_000_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


@pytest.fixture
def connector():
    return FakeConnector()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def session_config():
    return SessionConfig(session_timeout_ms=1_800_000, cleanup_interval_ms=300_000, max_sessions=1000)


def initialize_message(request_id: Optional[int] = 1) -> dict:
    return {
        "jsonrpc": "2.0",
        "id": request_id,
        "method": "initialize",
        "params": {
            "protocolVersion": "2025-03-26",
            "capabilities": {},
            "clientInfo": {"name": "test-client", "version": "1.0.0"},
        },
    }


@pytest.fixture
def init_body():
    """A JSON-RPC initialize request."""
    return initialize_message()
