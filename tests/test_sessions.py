"""
Tests for SessionStore.

Tests cover:
- Origin binding and id reachability
- Idle-timeout sweeps and capacity handling
- Transport-initiated close, delete and destroy
"""

import asyncio

import pytest

from pulumi_mcp.config import SessionConfig
from pulumi_mcp.http.sessions import SessionStore


@pytest.fixture
def store(session_config, connector, clock):
    return SessionStore(session_config, connector, clock=clock)


class TestOriginBinding:
    """Sessions are only reachable from the origin that created them."""

    @pytest.mark.parametrize(
        "created_with, requested_with",
        [
            ("https://a.test", "https://b.test"),
            ("https://a.test", None),
            (None, "https://a.test"),
        ],
    )
    async def test_origin_mismatch_is_not_found(self, store, created_with, requested_with):
        session = await store.create_session(created_with)

        assert store.get_and_bump(session.id, requested_with) is None
        # Still there for the right origin
        assert store.get_and_bump(session.id, created_with) is session

    async def test_same_origin_is_found(self, store):
        session = await store.create_session("https://a.test")
        assert store.get_and_bump(session.id, "https://a.test") is session

    async def test_no_origin_session_found_without_origin(self, store):
        session = await store.create_session(None)
        assert store.get_and_bump(session.id, None) is session


class TestReachability:
    """A fresh session is reachable by its id and no other."""

    async def test_created_session_is_registered(self, store, connector):
        session = await store.create_session("https://a.test")

        assert session.id in store
        assert len(store) == 1
        assert session.connection is connector.connections[session.id]
        assert session.created_at == session.last_activity

    async def test_unknown_id_is_not_found(self, store):
        await store.create_session("https://a.test")
        assert store.get_and_bump("not-a-session", "https://a.test") is None

    async def test_ids_are_unique(self, store):
        ids = {(await store.create_session()).id for _ in range(20)}
        assert len(ids) == 20

    async def test_get_and_bump_refreshes_activity(self, store, clock):
        session = await store.create_session()
        clock.advance(5000)

        store.get_and_bump(session.id)

        assert session.last_activity == clock.now
        assert session.last_activity - session.created_at == 5000

    async def test_mismatched_origin_does_not_refresh_activity(self, store, clock):
        session = await store.create_session("https://a.test")
        before = session.last_activity
        clock.advance(5000)

        store.get_and_bump(session.id, "https://b.test")

        assert session.last_activity == before


class TestSweep:
    """Tests for SessionStore.sweep()"""

    async def test_expiry_threshold(self, store, clock, connector):
        expired = await store.create_session()
        kept = await store.create_session()
        expired.last_activity = clock.now - 1_800_001
        kept.last_activity = clock.now - 1_799_999

        removed = await store.sweep()

        assert removed == 1
        assert expired.id not in store
        assert kept.id in store
        assert connector.connections[expired.id].close_calls == 1
        assert connector.connections[kept.id].close_calls == 0

    async def test_exact_timeout_survives(self, store, clock):
        session = await store.create_session()
        session.last_activity = clock.now - 1_800_000

        assert await store.sweep() == 0
        assert session.id in store

    async def test_second_sweep_does_not_close_again(self, store, clock, connector):
        session = await store.create_session()
        clock.advance(1_800_001)

        await store.sweep()
        await store.sweep()

        assert connector.connections[session.id].close_calls == 1

    async def test_close_failure_is_logged_not_raised(self, store, clock, connector, caplog):
        session = await store.create_session()
        connector.connections[session.id].fail_on_close = True
        clock.advance(1_800_001)

        assert await store.sweep() == 1
        assert session.id not in store
        assert "close failed" in caplog.text


class TestCapacity:
    """Tests for the max_sessions limit"""

    async def test_full_store_sweeps_before_creating(self, connector, clock):
        config = SessionConfig(session_timeout_ms=1000, cleanup_interval_ms=1000, max_sessions=2)
        store = SessionStore(config, connector, clock=clock)
        old = await store.create_session()
        clock.advance(2000)
        fresh = await store.create_session()

        newest = await store.create_session()

        assert old.id not in store
        assert fresh.id in store
        assert newest.id in store
        assert len(store) == 2

    async def test_full_store_still_creates_when_nothing_expired(self, connector, clock, caplog):
        config = SessionConfig(session_timeout_ms=1000, cleanup_interval_ms=1000, max_sessions=1)
        store = SessionStore(config, connector, clock=clock)
        await store.create_session()

        await store.create_session()

        assert len(store) == 2
        assert "Maximum sessions (1) reached" in caplog.text


class TestLifecycle:
    """Tests for close, delete and destroy"""

    async def test_transport_close_removes_session(self, store, connector):
        session = await store.create_session()

        connector.connections[session.id].on_close()

        assert session.id not in store
        assert store.get_and_bump(session.id) is None

    async def test_delete_session(self, store, connector):
        session = await store.create_session()

        assert await store.delete_session(session.id) is True
        assert await store.delete_session(session.id) is False
        assert connector.connections[session.id].close_calls == 1

    async def test_destroy_closes_everything(self, store, connector):
        sessions = [await store.create_session() for _ in range(3)]
        store.start()

        await store.destroy()

        assert len(store) == 0
        for session in sessions:
            assert connector.connections[session.id].close_calls == 1

    async def test_periodic_sweep_runs(self, connector):
        config = SessionConfig(session_timeout_ms=1, cleanup_interval_ms=10, max_sessions=10)
        store = SessionStore(config, connector)
        session = await store.create_session()
        store.start()
        try:
            for _ in range(100):
                if session.id not in store:
                    break
                await asyncio.sleep(0.01)
        finally:
            await store.destroy()

        assert connector.connections[session.id].close_calls == 1
