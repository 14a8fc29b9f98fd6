"""Bridges Redis pub/sub storage events into a local durable store.

Each process runs one bridge per context. Events written by other processes
arrive on the storage events channel and are handed to
``DurableStore.receive_external``, which drops the context's own events.
"""

import asyncio

import redis.asyncio as aioredis
import structlog

from finodash.storage.adapter import DurableStore
from finodash.storage.events import StorageEvent

logger = structlog.get_logger()


class StorageEventBridge:
    """Subscribes to the storage events channel and forwards events."""

    def __init__(self, redis_client: aioredis.Redis, store: DurableStore, channel: str) -> None:
        self.redis = redis_client
        self.store = store
        self.channel = channel
        self._running = False

    async def start(self) -> None:
        """Listen until ``stop()`` is called or the task is cancelled."""
        self._running = True
        pubsub = self.redis.pubsub()
        await pubsub.subscribe(self.channel)

        logger.info("storage_bridge_started", channel=self.channel)

        try:
            while self._running:
                message = await pubsub.get_message(
                    ignore_subscribe_messages=True,
                    timeout=1.0,
                )
                if message is None:
                    continue

                try:
                    event = StorageEvent.from_json(message.get("data", b""))
                except (ValueError, UnicodeDecodeError, TypeError):
                    logger.warning("storage_bridge_invalid_message", channel=self.channel)
                    continue

                await self.store.receive_external(event)

        except asyncio.CancelledError:
            pass
        finally:
            await pubsub.unsubscribe()
            await pubsub.aclose()
            logger.info("storage_bridge_stopped", channel=self.channel)

    async def stop(self) -> None:
        """Signal the bridge to stop."""
        self._running = False
