"""
Tests for the SessionManager write policy and cookie handling.
"""

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock

import pytest
from starlette.requests import Request
from starlette.responses import Response

from storefront.exceptions import StoreUnavailableError
from storefront.models.domain import Identity
from storefront.services.session_store import MemorySessionStore
from storefront.services.sessions import SessionManager


def make_request(cookie: str | None = None) -> Request:
    headers = []
    if cookie is not None:
        headers.append((b"cookie", cookie.encode()))
    return Request({"type": "http", "method": "GET", "path": "/", "headers": headers})


class TestCookieSigning:
    """Tests for the signed session cookie."""

    def test_sign_unsign_roundtrip(self, session_manager: SessionManager):
        assert session_manager.unsign(session_manager.sign("sess-abc")) == "sess-abc"

    def test_tampered_cookie_rejected(self, session_manager: SessionManager):
        signed = session_manager.sign("sess-abc")
        assert session_manager.unsign("sess-xyz" + signed[len("sess-abc"):]) is None

    def test_cookie_from_other_secret_rejected(self, memory_store: MemorySessionStore):
        other = SessionManager("another-secret", memory_store)
        manager = SessionManager("unit-test-secret", memory_store)
        assert manager.unsign(other.sign("sess-abc")) is None

    def test_garbage_rejected(self, session_manager: SessionManager):
        assert session_manager.unsign("not-a-signed-value") is None


class TestResolve:
    """Tests for resolving the session of a request."""

    @pytest.mark.asyncio
    async def test_no_cookie_gives_new_anonymous_session(self, session_manager: SessionManager):
        session = await session_manager.resolve(make_request())

        assert session.is_new
        assert not session.is_authenticated
        assert session.expires_at - session.created_at == timedelta(hours=24)

    @pytest.mark.asyncio
    async def test_valid_cookie_loads_stored_session(
        self, session_manager: SessionManager, identity: Identity
    ):
        session = session_manager.new_session()
        session.attach_identity(identity)
        await session_manager.save(session)

        cookie = f"sid={session_manager.sign(session.session_id)}"
        loaded = await session_manager.resolve(make_request(cookie))

        assert loaded.session_id == session.session_id
        assert loaded.identity == identity
        assert not loaded.is_new

    @pytest.mark.asyncio
    async def test_tampered_cookie_gives_anonymous_session(
        self, session_manager: SessionManager, identity: Identity
    ):
        session = session_manager.new_session()
        session.attach_identity(identity)
        await session_manager.save(session)

        loaded = await session_manager.resolve(make_request(f"sid={session.session_id}.forged"))

        assert loaded.session_id != session.session_id
        assert not loaded.is_authenticated

    @pytest.mark.asyncio
    async def test_cookie_for_unknown_session_gives_new_session(
        self, session_manager: SessionManager
    ):
        cookie = f"sid={session_manager.sign('gone')}"
        loaded = await session_manager.resolve(make_request(cookie))

        assert loaded.is_new
        assert loaded.session_id != "gone"

    @pytest.mark.asyncio
    async def test_store_failure_propagates(self):
        store = AsyncMock()
        store.get.side_effect = StoreUnavailableError("get failed")
        manager = SessionManager("unit-test-secret", store)

        with pytest.raises(StoreUnavailableError):
            await manager.resolve(make_request(f"sid={manager.sign('sess-abc')}"))

    @pytest.mark.asyncio
    async def test_uninitialized_store_is_unavailable(self):
        manager = SessionManager("unit-test-secret")
        with pytest.raises(StoreUnavailableError):
            await manager.resolve(make_request(f"sid={manager.sign('sess-abc')}"))


class TestCommit:
    """Tests for the per-response write policy."""

    @pytest.mark.asyncio
    async def test_unmodified_new_session_is_not_persisted(
        self, session_manager: SessionManager, memory_store: MemorySessionStore
    ):
        """Anonymous visitors that never log in leave nothing behind."""
        session = session_manager.new_session()
        response = Response()

        await session_manager.commit(session, response)

        assert len(memory_store) == 0
        assert "set-cookie" not in response.headers

    @pytest.mark.asyncio
    async def test_modified_session_is_saved_with_cookie(
        self,
        session_manager: SessionManager,
        memory_store: MemorySessionStore,
        identity: Identity,
    ):
        session = session_manager.new_session()
        session.attach_identity(identity)
        response = Response()

        await session_manager.commit(session, response)

        assert len(memory_store) == 1
        cookie = response.headers["set-cookie"]
        assert cookie.startswith(f"sid={session_manager.sign(session.session_id)}")
        assert "HttpOnly" in cookie
        assert "SameSite=lax" in cookie
        assert "Max-Age=86400" in cookie
        assert "Secure" not in cookie

    @pytest.mark.asyncio
    async def test_secure_cookie_when_configured(
        self, memory_store: MemorySessionStore, identity: Identity
    ):
        manager = SessionManager("unit-test-secret", memory_store, cookie_secure=True)
        session = manager.new_session()
        session.attach_identity(identity)
        response = Response()

        await manager.commit(session, response)

        assert "Secure" in response.headers["set-cookie"]

    @pytest.mark.asyncio
    async def test_save_slides_expiry(self, session_manager: SessionManager, identity: Identity):
        session = session_manager.new_session()
        session.expires_at = datetime.now(UTC) + timedelta(minutes=5)
        session.attach_identity(identity)

        await session_manager.save(session)

        assert session.expires_at - datetime.now(UTC) > timedelta(hours=23)
        assert not session.modified
        assert not session.is_new

    @pytest.mark.asyncio
    async def test_destroyed_session_drops_cookie(
        self,
        session_manager: SessionManager,
        memory_store: MemorySessionStore,
        identity: Identity,
    ):
        session = session_manager.new_session()
        session.attach_identity(identity)
        await session_manager.save(session)

        await session_manager.destroy(session)
        response = Response()
        await session_manager.commit(session, response)

        assert len(memory_store) == 0
        cookie = response.headers["set-cookie"]
        assert cookie.startswith('sid="";') or cookie.startswith("sid=;")
        assert "Max-Age=0" in cookie


class TestTouch:
    """Tests for lazy re-persisting of unmodified sessions."""

    @pytest.mark.asyncio
    async def test_recently_written_session_is_not_touched(
        self, identity: Identity, memory_store: MemorySessionStore
    ):
        store = AsyncMock(wraps=memory_store)
        manager = SessionManager("unit-test-secret", store)
        session = manager.new_session()
        session.attach_identity(identity)
        await manager.save(session)

        assert await manager.touch(session) is False
        store.touch.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_stale_session_is_touched(
        self, identity: Identity, memory_store: MemorySessionStore
    ):
        store = AsyncMock(wraps=memory_store)
        manager = SessionManager("unit-test-secret", store)
        session = manager.new_session()
        session.attach_identity(identity)
        await manager.save(session)
        session.needs_cookie = False
        session.last_written_at = datetime.now(UTC) - timedelta(hours=13)

        assert await manager.touch(session) is True
        store.touch.assert_awaited_once()
        assert session.needs_cookie

    def test_touch_threshold_is_below_lifetime(self, session_manager: SessionManager):
        assert session_manager.touch_after < session_manager.max_age
        assert session_manager.touch_after == timedelta(hours=12)

    @pytest.mark.asyncio
    async def test_active_session_keeps_sliding(
        self, session_manager: SessionManager, memory_store: MemorySessionStore, identity: Identity
    ):
        session = session_manager.new_session()
        session.attach_identity(identity)
        await session_manager.save(session)
        cookie = f"{session_manager.cookie_name}={session_manager.sign(session.session_id)}"

        # Last write 23h ago: one hour of lifetime left
        now = datetime.now(UTC)
        await memory_store.touch(
            session.session_id, now - timedelta(hours=23), now + timedelta(hours=1)
        )

        resolved = await session_manager.resolve(make_request(cookie))
        response = Response()
        await session_manager.commit(resolved, response)

        stored = await memory_store.get(session.session_id)
        assert stored is not None
        assert stored.expires_at - datetime.now(UTC) > timedelta(hours=23)
        assert "set-cookie" in response.headers

    @pytest.mark.asyncio
    async def test_recent_activity_does_not_rewrite(
        self, session_manager: SessionManager, memory_store: MemorySessionStore, identity: Identity
    ):
        session = session_manager.new_session()
        session.attach_identity(identity)
        await session_manager.save(session)
        cookie = f"{session_manager.cookie_name}={session_manager.sign(session.session_id)}"
        now = datetime.now(UTC)
        expires_at = now + timedelta(hours=13)
        await memory_store.touch(session.session_id, now - timedelta(hours=11), expires_at)

        resolved = await session_manager.resolve(make_request(cookie))
        response = Response()
        await session_manager.commit(resolved, response)

        stored = await memory_store.get(session.session_id)
        assert stored is not None
        assert stored.expires_at == expires_at
        assert "set-cookie" not in response.headers

    def test_should_touch_threshold(self, memory_store: MemorySessionStore):
        manager = SessionManager("unit-test-secret", memory_store, touch_after_seconds=60)
        session = manager.new_session()
        session.is_new = False
        now = datetime.now(UTC)

        session.last_written_at = now - timedelta(seconds=59)
        assert not manager.should_touch(session, now)

        session.last_written_at = now - timedelta(seconds=60)
        assert manager.should_touch(session, now)

    def test_new_session_is_never_touched(self, session_manager: SessionManager):
        assert not session_manager.should_touch(session_manager.new_session())


class TestRegenerate:
    """Tests for session id rotation."""

    @pytest.mark.asyncio
    async def test_regenerate_rotates_id_and_drops_old_record(
        self,
        session_manager: SessionManager,
        memory_store: MemorySessionStore,
        identity: Identity,
    ):
        session = session_manager.new_session()
        session.attach_identity(identity)
        await session_manager.save(session)
        old_id = session.session_id

        await session_manager.regenerate(session)

        assert session.session_id != old_id
        assert session.is_new
        assert await memory_store.get(old_id) is None

    @pytest.mark.asyncio
    async def test_destroy_new_session_skips_store(self):
        store = AsyncMock()
        manager = SessionManager("unit-test-secret", store)
        session = manager.new_session()

        await manager.destroy(session)

        store.destroy.assert_not_awaited()
        assert session.destroyed
