"""Durable store adapter.

All reads and writes of durable state go through ``DurableStore``. It wraps a
``KeyValueBackend`` and turns every mutation into a ``StorageEvent`` that is
delivered to local listeners and broadcast to the other contexts, so a
destructive call (``remove_item``, ``clear``) is observable no matter which
context made it.

Domain entities live in one JSON document under ``app-data``. The session is
kept in four independent scalar keys so that the removal of any one of them
can be detected on its own.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any

import structlog

from finodash.ids import new_id
from finodash.storage.backend import KeyValueBackend
from finodash.storage.events import StorageEvent, StorageListener

logger = structlog.get_logger()

DATA_KEY = "app-data"
BACKUP_KEY = "app-data-backup"

AUTH_TOKEN_KEY = "auth-token"
AUTH_ROLE_KEY = "auth-role"
AUTH_USER_KEY = "auth-user"
AUTH_EXPIRY_KEY = "auth-expiry"
AUTH_KEYS = (AUTH_TOKEN_KEY, AUTH_ROLE_KEY, AUTH_USER_KEY, AUTH_EXPIRY_KEY)


class DurableStore:
    """Event-emitting wrapper around a key-value backend."""

    def __init__(self, backend: KeyValueBackend, *, origin: str | None = None) -> None:
        self.backend = backend
        self.origin = origin or new_id("ctx-")
        self._listeners: list[StorageListener] = []

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def on_change(self, listener: StorageListener) -> Callable[[], None]:
        """Register a listener for local and external changes.

        Returns a callable that removes the listener.
        """
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    async def receive_external(self, event: StorageEvent) -> None:
        """Deliver an event broadcast by another context."""
        if event.origin == self.origin:
            return
        logger.debug("storage_event_received", key=event.key, source=event.origin)
        await self._notify(event)

    async def _notify(self, event: StorageEvent) -> None:
        for listener in list(self._listeners):
            await listener(event)

    async def _emit(self, key: str | None, old_value: str | None, new_value: str | None) -> None:
        event = StorageEvent(key=key, old_value=old_value, new_value=new_value, origin=self.origin)
        await self._notify(event)
        await self.backend.publish(event)

    # ------------------------------------------------------------------
    # Raw key access
    # ------------------------------------------------------------------

    async def get_item(self, key: str) -> str | None:
        return await self.backend.get(key)

    async def set_item(self, key: str, value: str) -> None:
        old_value = await self.backend.get(key)
        await self.backend.set(key, value)
        if old_value != value:
            await self._emit(key, old_value, value)

    async def remove_item(self, key: str) -> None:
        """Remove one key. Removing an absent key is a no-op and emits nothing."""
        old_value = await self.backend.get(key)
        if old_value is None:
            return
        await self.backend.delete(key)
        await self._emit(key, old_value, None)

    async def clear(self) -> None:
        """Remove every key in the namespace."""
        await self.backend.clear()
        logger.info("storage_cleared")
        await self._emit(None, None, None)

    # ------------------------------------------------------------------
    # JSON documents
    # ------------------------------------------------------------------

    async def read_json(self, key: str) -> dict[str, Any] | None:
        """Parse the JSON object stored under ``key``.

        Absent keys, malformed JSON and non-object documents all read as None.
        """
        raw = await self.backend.get(key)
        if raw is None:
            return None
        try:
            parsed = json.loads(raw)
        except ValueError:
            logger.warning("durable_json_malformed", key=key)
            return None
        if not isinstance(parsed, dict):
            logger.warning("durable_json_not_object", key=key, kind=type(parsed).__name__)
            return None
        return parsed

    async def write_json(self, key: str, document: dict[str, Any]) -> None:
        await self.set_item(key, json.dumps(document, separators=(",", ":")))

    async def has_blob(self) -> bool:
        return await self.backend.get(DATA_KEY) is not None

    async def read_blob(self) -> dict[str, Any] | None:
        return await self.read_json(DATA_KEY)

    async def write_blob(self, document: dict[str, Any]) -> None:
        """Overwrite the whole ``app-data`` document."""
        await self.write_json(DATA_KEY, document)

    async def remove_blob(self) -> None:
        await self.remove_item(DATA_KEY)
