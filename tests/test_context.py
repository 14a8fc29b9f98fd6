"""End-to-end tests: several contexts sharing one durable backend."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, patch

import pytest

from finodash.auth.credentials import Credentials
from finodash.auth.registration import RegistrationData
from finodash.auth.session import AuthStatus, Role
from finodash.config import Settings
from finodash.context import AppContext, app_context, create_backend
from finodash.storage.adapter import AUTH_EXPIRY_KEY, AUTH_ROLE_KEY, AUTH_TOKEN_KEY, AUTH_USER_KEY
from finodash.storage.backend import MemoryBackend, RedisBackend

MEMBER = Credentials(role=Role.MEMBER, phone="01711000001", otp="123456")


class TestStartup:
    @pytest.mark.asyncio
    async def test_both_tabs_see_seed(self, two_tabs):
        tab_a, tab_b = two_tabs
        assert len(tab_a.store.state.users) == 8
        assert len(tab_b.store.state.users) == 8
        assert (await tab_b.reconciler.check_consistency()).consistent

    @pytest.mark.asyncio
    async def test_session_restored_on_startup(self, backend: MemoryBackend, settings: Settings, clock):
        first = AppContext(backend, settings, origin="tab-a", clock=clock)
        await first.startup(poll=False)
        await first.guard.login(MEMBER)
        await first.shutdown()

        second = AppContext(backend, settings, origin="tab-c", clock=clock)
        await second.startup(poll=False)
        try:
            assert second.guard.is_authenticated
            assert second.guard.state.token == first.guard.state.token
        finally:
            await second.shutdown()


class TestCrossContextSession:
    @pytest.mark.asyncio
    async def test_logout_in_one_tab_logs_out_the_other(self, two_tabs):
        tab_a, tab_b = two_tabs
        await tab_a.guard.login(MEMBER)
        await tab_b.guard.hydrate()
        assert tab_b.guard.is_authenticated

        await tab_a.guard.logout()

        assert tab_b.guard.state.status is AuthStatus.ANONYMOUS

    @pytest.mark.asyncio
    async def test_token_removed_elsewhere(self, two_tabs):
        tab_a, tab_b = two_tabs
        await tab_a.guard.login(MEMBER)

        await tab_b.storage.remove_item(AUTH_TOKEN_KEY)

        assert tab_a.guard.state.status is AuthStatus.ANONYMOUS
        assert set((await tab_a.guard.sessions.read_raw()).values()) == {None}

    @pytest.mark.asyncio
    async def test_login_elsewhere_does_not_sign_in_this_tab(self, two_tabs):
        tab_a, tab_b = two_tabs
        await tab_a.guard.login(MEMBER)
        assert tab_b.guard.state.status is AuthStatus.ANONYMOUS

    @pytest.mark.asyncio
    async def test_login_while_other_tab_authenticated(self, two_tabs):
        tab_a, tab_b = two_tabs
        await tab_a.guard.login(MEMBER)

        ok = await tab_b.guard.login(Credentials(role=Role.MEMBER, phone="01711000002", otp="123456"))

        assert ok is True
        assert tab_b.guard.state.status is AuthStatus.AUTHENTICATED
        assert tab_a.guard.state.status is AuthStatus.ANONYMOUS
        raw = await tab_a.guard.sessions.read_raw()
        assert raw[AUTH_TOKEN_KEY] == tab_b.guard.state.token
        assert json.loads(raw[AUTH_USER_KEY])["id"] == "u2"
        assert raw[AUTH_EXPIRY_KEY] == str(tab_b.guard.state.expiry)

    @pytest.mark.asyncio
    async def test_login_over_shared_session(self, two_tabs):
        tab_a, tab_b = two_tabs
        await tab_a.guard.login(MEMBER)
        await tab_b.guard.hydrate()

        await tab_b.guard.login(Credentials(role=Role.ADMIN, email="admin@finobytes.com", password="admin123"))

        assert tab_b.guard.state.role is Role.ADMIN
        assert not tab_a.guard.is_authenticated
        assert (await tab_b.guard.check()) is AuthStatus.AUTHENTICATED

    @pytest.mark.asyncio
    async def test_register_while_other_tab_authenticated(self, two_tabs):
        tab_a, tab_b = two_tabs
        await tab_a.guard.login(MEMBER)

        ok = await tab_b.guard.register(
            RegistrationData(role=Role.MEMBER, password="pw", name="Nadia", email="nadia@example.com")
        )

        assert ok is True
        assert tab_b.guard.is_authenticated
        assert not tab_a.guard.is_authenticated
        raw = await tab_b.guard.sessions.read_raw()
        assert json.loads(raw[AUTH_USER_KEY])["id"] == tab_b.guard.state.user["id"]
        assert None not in raw.values()

    @pytest.mark.asyncio
    async def test_force_logout_and_clear_removes_stray_keys(self, two_tabs):
        tab_a, _ = two_tabs
        await tab_a.storage.set_item(AUTH_TOKEN_KEY, "member-token-0-stray0000")
        await tab_a.storage.set_item(AUTH_ROLE_KEY, "member")
        assert not tab_a.guard.is_authenticated

        await tab_a.force_logout_and_clear()

        assert set((await tab_a.guard.sessions.read_raw()).values()) == {None}

    @pytest.mark.asyncio
    async def test_force_logout_and_clear(self, two_tabs):
        tab_a, tab_b = two_tabs
        await tab_a.guard.login(MEMBER)
        await tab_b.guard.hydrate()
        await tab_a.dispatch("deleteUser", "u2")

        await tab_a.force_logout_and_clear()

        assert not tab_a.guard.is_authenticated
        assert not tab_b.guard.is_authenticated
        assert tab_a.store.find_user("u2") is not None
        assert await tab_a.storage.has_blob() is False


class TestCrossContextData:
    @pytest.mark.asyncio
    async def test_write_visible_after_pull(self, two_tabs):
        tab_a, tab_b = two_tabs
        user = await tab_a.dispatch("addUser", {"name": "Nadia", "password": "pw", "email": "nadia@example.com"})

        assert tab_b.store.find_user(user.id) is None
        await tab_b.dispatch("forceSyncFromDurable")
        assert tab_b.store.find_user(user.id) is not None

    @pytest.mark.asyncio
    async def test_registration_visible_to_other_tab_login(self, two_tabs):
        tab_a, tab_b = two_tabs
        await tab_a.guard.register(
            RegistrationData(role=Role.MERCHANT, password="pw", email="tea@shop.com", store_name="Tea", owner="Rina")
        )

        await tab_a.guard.logout()
        await tab_b.reconciler.sync_durable_to_store()

        assert await tab_b.guard.login(Credentials(role=Role.MERCHANT, email="tea@shop.com", password="pw"))


class TestSnapshot:
    @pytest.mark.asyncio
    async def test_shape(self, two_tabs):
        tab_a, _ = two_tabs
        snapshot = tab_a.snapshot()

        assert set(snapshot) == {"data", "auth"}
        assert snapshot["auth"]["status"] == "anonymous"
        assert snapshot["auth"]["initialized"] is True
        points = {u["id"]: u["points"] for u in snapshot["data"]["users"]}
        assert points["u3"] == 1000


class TestBackendFactory:
    @pytest.mark.asyncio
    async def test_memory(self, settings: Settings):
        backend, owns_redis = await create_backend(settings)
        assert isinstance(backend, MemoryBackend)
        assert owns_redis is False

    @pytest.mark.asyncio
    async def test_redis(self):
        settings = Settings(_env_file=None, storage_backend="redis")
        with patch("finodash.context.init_redis", new=AsyncMock()) as init, patch(
            "finodash.context.get_redis", return_value=AsyncMock()
        ):
            backend, owns_redis = await create_backend(settings)

        init.assert_awaited_once_with(settings.redis_url, max_connections=20)
        assert isinstance(backend, RedisBackend)
        assert backend.prefix == "finodash:"
        assert owns_redis is True

    @pytest.mark.asyncio
    async def test_unknown(self):
        with pytest.raises(ValueError):
            await create_backend(Settings(_env_file=None, storage_backend="sqlite"))

    @pytest.mark.asyncio
    async def test_app_context_block(self, settings: Settings):
        async with app_context(settings, MemoryBackend(), poll=False) as context:
            assert context.store.status.value == "succeeded"
            assert await context.storage.has_blob()
