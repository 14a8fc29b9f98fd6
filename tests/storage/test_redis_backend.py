"""Tests for the Redis storage backend (Redis client mocked)."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock

import pytest
import redis.asyncio as redis

from finodash.storage.backend import RedisBackend
from finodash.storage.events import StorageEvent


def make_backend() -> tuple[RedisBackend, AsyncMock]:
    client = AsyncMock()
    return RedisBackend(client, prefix="fd:", channel="fd:events"), client


class TestRedisBackend:
    @pytest.mark.asyncio
    async def test_get_uses_prefix(self):
        backend, client = make_backend()
        client.get.return_value = "value"

        assert await backend.get("app-data") == "value"
        client.get.assert_awaited_once_with("fd:app-data")

    @pytest.mark.asyncio
    async def test_get_decodes_bytes(self):
        backend, client = make_backend()
        client.get.return_value = b"value"
        assert await backend.get("auth-token") == "value"

    @pytest.mark.asyncio
    async def test_set_and_delete_use_prefix(self):
        backend, client = make_backend()
        await backend.set("auth-role", "admin")
        await backend.delete("auth-role")

        client.set.assert_awaited_once_with("fd:auth-role", "admin")
        client.delete.assert_awaited_once_with("fd:auth-role")

    @pytest.mark.asyncio
    async def test_keys_strips_prefix(self):
        backend, client = make_backend()

        async def fake_scan_iter(match):
            assert match == "fd:*"
            for name in ["fd:app-data", b"fd:auth-token"]:
                yield name

        client.scan_iter = MagicMock(side_effect=fake_scan_iter)

        assert await backend.keys() == ["app-data", "auth-token"]

    @pytest.mark.asyncio
    async def test_clear_only_deletes_namespace(self):
        backend, client = make_backend()

        async def fake_scan_iter(match):
            yield "fd:app-data"
            yield "fd:auth-user"

        client.scan_iter = MagicMock(side_effect=fake_scan_iter)

        await backend.clear()
        client.delete.assert_awaited_once_with("fd:app-data", "fd:auth-user")

    @pytest.mark.asyncio
    async def test_clear_empty_namespace(self):
        backend, client = make_backend()

        async def fake_scan_iter(match):
            return
            yield  # pragma: no cover

        client.scan_iter = MagicMock(side_effect=fake_scan_iter)

        await backend.clear()
        client.delete.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_publish_sends_json_event(self):
        backend, client = make_backend()
        event = StorageEvent(key="auth-token", old_value="a", new_value=None, origin="tab-a", ts=1.0)

        await backend.publish(event)

        channel, payload = client.publish.call_args[0]
        assert channel == "fd:events"
        assert json.loads(payload)["key"] == "auth-token"
        assert json.loads(payload)["new_value"] is None

    @pytest.mark.asyncio
    async def test_publish_failure_is_logged_not_raised(self):
        backend, client = make_backend()
        client.publish.side_effect = redis.ConnectionError("down")
        event = StorageEvent(key="k", old_value=None, new_value="v", origin="tab-a")

        await backend.publish(event)  # Should not raise
