"""Process-wide application context.

One ``AppContext`` is one execution context (the equivalent of a browser
tab). It owns the durable store wrapper, the reactive store, the reconciler
and the session guard, and is the only object the rendering layer talks to.

Lifecycle::

    startup()   seed/merge durable, pull into memory, hydrate the session,
                subscribe to external storage events, start polling
    shutdown()  stop polling and the event bridge, detach listeners,
                close the Redis pool if this context opened it
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncGenerator, Callable
from contextlib import asynccontextmanager
from typing import Any

import structlog

from finodash.auth.credentials import AuthResult, Credentials, check_credentials
from finodash.auth.guard import SessionGuard
from finodash.auth.registration import Registrar
from finodash.config import Settings, get_settings
from finodash.data.merge import MergeEngine
from finodash.data.reconciler import Reconciler
from finodash.data.store import ReactiveStore
from finodash.log_config import bind_context, setup_logging, unbind_context
from finodash.redis_client import close_redis, get_redis, init_redis
from finodash.storage.adapter import DurableStore
from finodash.storage.backend import KeyValueBackend, MemoryBackend, RedisBackend
from finodash.storage.bridge import StorageEventBridge

logger = structlog.get_logger()


class AppContext:
    """Bundles every component of one context and wires them together."""

    def __init__(
        self,
        backend: KeyValueBackend,
        settings: Settings | None = None,
        *,
        origin: str | None = None,
        clock: Callable[[], float] | None = None,
        owns_redis: bool = False,
    ) -> None:
        self.settings = settings or get_settings()
        self.backend = backend
        self.storage = DurableStore(backend, origin=origin)
        self.store = ReactiveStore(self.storage, default_rate=self.settings.default_contribution_rate)
        self.merge = MergeEngine(self.storage, default_rate=self.settings.default_contribution_rate)
        self.reconciler = Reconciler(
            self.storage,
            self.store,
            self.merge,
            backup_version=self.settings.backup_version,
        )
        guard_options: dict[str, Any] = {
            "ttl_seconds": self.settings.session_ttl_seconds,
            "poll_interval": self.settings.session_poll_interval_seconds,
        }
        if clock is not None:
            guard_options["clock"] = clock
        self.guard = SessionGuard(
            self.storage,
            self.check_credentials,
            Registrar(self.store, self.settings),
            **guard_options,
        )
        self._unsubscribe_external: Callable[[], None] | None = None
        self._bridge: StorageEventBridge | None = None
        self._bridge_task: asyncio.Task | None = None
        self._owns_redis = owns_redis

    @property
    def origin(self) -> str:
        return self.storage.origin

    def check_credentials(self, credentials: Credentials) -> AuthResult:
        """Credential check against the live in-memory directory."""
        return check_credentials(credentials, self.store, self.settings)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def startup(self, *, poll: bool = True) -> None:
        bind_context(self.origin, self.settings.environment)
        await self.reconciler.initialize()
        await self.guard.hydrate()
        self.guard.attach()
        self._watch_external()
        if poll:
            self.guard.start()
        logger.info("context_started", authenticated=self.guard.is_authenticated)

    def _watch_external(self) -> None:
        if isinstance(self.backend, MemoryBackend):
            self._unsubscribe_external = self.backend.subscribe(self.storage.receive_external)
        elif isinstance(self.backend, RedisBackend):
            self._bridge = StorageEventBridge(self.backend.client, self.storage, self.backend.channel)
            self._bridge_task = asyncio.create_task(self._bridge.start())

    async def shutdown(self) -> None:
        await self.guard.stop()
        self.guard.detach()
        if self._unsubscribe_external is not None:
            self._unsubscribe_external()
            self._unsubscribe_external = None
        if self._bridge is not None:
            await self._bridge.stop()
            self._bridge_task.cancel()
            try:
                await self._bridge_task
            except asyncio.CancelledError:
                pass
            self._bridge = None
            self._bridge_task = None
        if self._owns_redis:
            await close_redis()
            self._owns_redis = False
        logger.info("context_stopped")
        unbind_context()

    # ------------------------------------------------------------------
    # Rendering-layer interface
    # ------------------------------------------------------------------

    async def dispatch(self, action: str, payload: Any = None) -> Any:
        return await self.store.dispatch(action, payload)

    def snapshot(self) -> dict[str, Any]:
        """Read-only view of data and auth state."""
        data = self.store.snapshot()
        data["users"] = self.store.projected_users()
        return {
            "data": data,
            "auth": self.guard.state.model_dump(mode="json"),
        }

    async def force_logout_and_clear(self) -> None:
        """Sign out and discard all local data customization."""
        await self.guard.force_logout("manual reset")
        # Stray keys survive force_logout when this context was already signed out
        await self.guard.sessions.clear()
        await self.store.reset_to_seed()


async def create_backend(settings: Settings) -> tuple[KeyValueBackend, bool]:
    """Build the configured backend. The flag says whether a Redis pool was opened."""
    if settings.storage_backend == "redis":
        await init_redis(settings.redis_url, max_connections=settings.redis_max_connections)
        backend = RedisBackend(
            get_redis(),
            prefix=settings.redis_key_prefix,
            channel=settings.storage_events_channel,
        )
        return backend, True
    if settings.storage_backend == "memory":
        return MemoryBackend(), False
    raise ValueError(f"Unknown storage backend: {settings.storage_backend}")


@asynccontextmanager
async def app_context(
    settings: Settings | None = None,
    backend: KeyValueBackend | None = None,
    *,
    poll: bool = True,
) -> AsyncGenerator[AppContext, None]:
    """Start a context for the duration of the block."""
    settings = settings or get_settings()
    owns_redis = False
    if backend is None:
        backend, owns_redis = await create_backend(settings)

    setup_logging(settings)
    context = AppContext(backend, settings, owns_redis=owns_redis)
    await context.startup(poll=poll)
    try:
        yield context
    finally:
        await context.shutdown()
