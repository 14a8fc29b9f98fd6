"""Key-value backends for the durable store.

A backend is a flat string -> string namespace plus a way to broadcast
storage events to the other contexts sharing it.

- ``MemoryBackend``: in-process dict. Every ``DurableStore`` created on the
  same instance behaves like a browser tab on the same origin.
- ``RedisBackend``: keys live under a prefix in Redis; events are published on
  a pub/sub channel and picked up by ``StorageEventBridge`` in each process.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Protocol

import redis.asyncio as redis

from finodash.storage.events import StorageEvent

logger = logging.getLogger("finodash.storage.backend")


class KeyValueBackend(Protocol):
    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str) -> None: ...

    async def delete(self, key: str) -> None: ...

    async def keys(self) -> list[str]: ...

    async def clear(self) -> None: ...

    async def publish(self, event: StorageEvent) -> None: ...


class MemoryBackend:
    """Process-local storage shared by every context created on it."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})
        self._subscribers: list[Callable[[StorageEvent], Awaitable[None]]] = []

    async def get(self, key: str) -> str | None:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self._data[key] = value

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def keys(self) -> list[str]:
        return list(self._data)

    async def clear(self) -> None:
        self._data.clear()

    def subscribe(self, callback: Callable[[StorageEvent], Awaitable[None]]) -> Callable[[], None]:
        """Receive every published event. Returns an unsubscribe callable."""
        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return _unsubscribe

    async def publish(self, event: StorageEvent) -> None:
        # Delivered inline so every context has seen the change when the writer resumes.
        for callback in list(self._subscribers):
            await callback(event)


class RedisBackend:
    """Durable storage in Redis under a key prefix."""

    def __init__(
        self,
        client: redis.Redis,
        *,
        prefix: str = "finodash:",
        channel: str = "finodash:storage-events",
    ) -> None:
        self.client = client
        self.prefix = prefix
        self.channel = channel

    def _key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    async def get(self, key: str) -> str | None:
        value = await self.client.get(self._key(key))
        if isinstance(value, bytes):
            value = value.decode()
        return value

    async def set(self, key: str, value: str) -> None:
        await self.client.set(self._key(key), value)

    async def delete(self, key: str) -> None:
        await self.client.delete(self._key(key))

    async def keys(self) -> list[str]:
        found: list[str] = []
        async for raw in self.client.scan_iter(match=f"{self.prefix}*"):
            name = raw.decode() if isinstance(raw, bytes) else raw
            found.append(name[len(self.prefix):])
        return found

    async def clear(self) -> None:
        """Delete every key in this backend's namespace, nothing else."""
        names = [self._key(key) for key in await self.keys()]
        if names:
            await self.client.delete(*names)

    async def publish(self, event: StorageEvent) -> None:
        try:
            await self.client.publish(self.channel, event.to_json())
        except redis.RedisError:
            # The write itself succeeded; other contexts fall back to polling.
            logger.exception("Failed to publish storage event for key %s", event.key)
