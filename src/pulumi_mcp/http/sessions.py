"""
Session store for the streamable HTTP transport.

Each session pairs an MCP transport with its own MCP server instance and is
bound to the Origin header that created it. Sessions expire after a period
of inactivity and are swept periodically.
"""

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Protocol

from mcp.server.fastmcp import FastMCP
from mcp.server.streamable_http import StreamableHTTPServerTransport

from ..config import SessionConfig

logger = logging.getLogger(__name__)


class McpConnection(Protocol):
    """A connected MCP transport + server pair serving one session."""

    async def handle_request(self, scope, receive, send) -> None: ...

    async def close(self) -> None: ...


# (session_id, on_close) -> connected McpConnection
Connector = Callable[[str, Callable[[], None]], Awaitable[McpConnection]]


class StreamableHttpConnection:
    """Runs one MCP server over a ``StreamableHTTPServerTransport``.

    The server loop runs in a background task for the lifetime of the
    session. ``on_close`` fires once when that loop ends, whether the client
    terminated the session or :meth:`close` was called.
    """

    def __init__(self, session_id: str, server: FastMCP, on_close: Callable[[], None]):
        self.session_id = session_id
        self.server = server
        self.transport = StreamableHTTPServerTransport(
            mcp_session_id=session_id,
            is_json_response_enabled=False,
        )
        self._on_close = on_close
        self._task: Optional[asyncio.Task] = None
        self._closed = False

    async def start(self) -> None:
        """Connect the server to the transport and wait until it is ready."""
        ready = asyncio.Event()
        lowlevel = self.server._mcp_server

        async def run_server() -> None:
            try:
                async with self.transport.connect() as (read_stream, write_stream):
                    ready.set()
                    await lowlevel.run(
                        read_stream,
                        write_stream,
                        lowlevel.create_initialization_options(),
                    )
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("MCP server for session %s crashed", self.session_id)
            finally:
                ready.set()
                self._mark_closed()

        self._task = asyncio.create_task(run_server(), name=f"mcp-session-{self.session_id}")
        await ready.wait()

    def _mark_closed(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._on_close()

    @property
    def closed(self) -> bool:
        return self._closed

    async def handle_request(self, scope, receive, send) -> None:
        await self.transport.handle_request(scope, receive, send)

    async def close(self) -> None:
        if self._closed:
            return
        await self.transport.terminate()
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._mark_closed()


def make_connector(server_factory: Callable[[], FastMCP]) -> Connector:
    """Build a connector creating a fresh MCP server per session."""

    async def connect(session_id: str, on_close: Callable[[], None]) -> McpConnection:
        connection = StreamableHttpConnection(session_id, server_factory(), on_close)
        await connection.start()
        return connection

    return connect


def _monotonic_ms() -> float:
    return time.monotonic() * 1000


@dataclass
class Session:
    """An active MCP session."""

    id: str
    """Opaque session identifier sent in the mcp-session-id header."""

    connection: McpConnection
    """Transport + server pair owned by this session."""

    created_at: float
    """Creation time in milliseconds (store clock)."""

    last_activity: float
    """Last request time in milliseconds (store clock)."""

    origin: Optional[str] = None
    """Origin header value that created the session, if any."""


class SessionStore:
    """Owns every live HTTP session.

    Sessions are keyed by id and never exposed as a map. A periodic sweep
    (see :meth:`start`) removes sessions idle longer than the configured
    timeout. When the store is at capacity a sweep runs before a new session
    is created; if nothing expired the session is created anyway.
    """

    def __init__(
        self,
        config: SessionConfig,
        connect: Connector,
        clock: Callable[[], float] = _monotonic_ms,
    ):
        """Initialize SessionStore.

        Args:
            config: Timeout, sweep interval and capacity settings
            connect: Creates and connects the MCP transport/server for a new session
            clock: Millisecond clock, injectable for tests
        """
        self._config = config
        self._connect = connect
        self._clock = clock
        self._sessions: dict[str, Session] = {}
        self._sweep_task: Optional[asyncio.Task] = None

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    async def create_session(self, origin: Optional[str] = None) -> Session:
        """Create, connect and register a new session bound to ``origin``."""
        if len(self._sessions) >= self._config.max_sessions:
            logger.warning(
                "Maximum sessions (%d) reached, cleaning up expired sessions",
                self._config.max_sessions,
            )
            await self.sweep()

        session_id = str(uuid.uuid4())

        def on_close() -> None:
            if self._sessions.pop(session_id, None) is not None:
                logger.debug("Session %s closed by transport", session_id)

        connection = await self._connect(session_id, on_close)
        now = self._clock()
        session = Session(
            id=session_id,
            connection=connection,
            created_at=now,
            last_activity=now,
            origin=origin,
        )
        self._sessions[session_id] = session
        logger.info("Created session %s (%d active)", session_id, len(self._sessions))
        return session

    def get_and_bump(self, session_id: str, origin: Optional[str] = None) -> Optional[Session]:
        """Look up a session and refresh its activity time.

        Returns None when the session does not exist or was created from a
        different origin. Both cases look the same to the caller.
        """
        session = self._sessions.get(session_id)
        if session is None:
            return None
        if session.origin != origin:
            return None
        session.last_activity = self._clock()
        return session

    async def delete_session(self, session_id: str) -> bool:
        """Close and remove a single session. Returns False if it was unknown."""
        session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        await self._close_session(session)
        return True

    async def sweep(self) -> int:
        """Remove sessions idle longer than the session timeout.

        Returns:
            Number of sessions removed.
        """
        now = self._clock()
        expired = [
            session
            for session in self._sessions.values()
            if now - session.last_activity > self._config.session_timeout_ms
        ]
        for session in expired:
            self._sessions.pop(session.id, None)
        for session in expired:
            await self._close_session(session)
        if expired:
            logger.info("Swept %d expired session(s)", len(expired))
        return len(expired)

    def start(self) -> None:
        """Start the periodic sweep. Must be called from a running event loop."""
        if self._sweep_task is None:
            self._sweep_task = asyncio.create_task(self._sweep_periodically())

    async def destroy(self) -> None:
        """Stop sweeping and close every remaining session."""
        if self._sweep_task is not None:
            self._sweep_task.cancel()
            try:
                await self._sweep_task
            except asyncio.CancelledError:
                pass
            self._sweep_task = None

        sessions = list(self._sessions.values())
        self._sessions.clear()
        for session in sessions:
            await self._close_session(session)

    async def _sweep_periodically(self) -> None:
        interval = self._config.cleanup_interval_ms / 1000
        while True:
            await asyncio.sleep(interval)
            try:
                await self.sweep()
            except Exception:
                logger.exception("Session sweep failed")

    async def _close_session(self, session: Session) -> None:
        try:
            await session.connection.close()
        except Exception as e:
            logger.warning("Error cleaning up session %s: %s", session.id, e)
