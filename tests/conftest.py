"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio

from finodash.auth.credentials import check_credentials
from finodash.auth.guard import SessionGuard
from finodash.auth.registration import Registrar
from finodash.config import Settings
from finodash.context import AppContext
from finodash.data.merge import MergeEngine
from finodash.data.reconciler import Reconciler
from finodash.data.store import ReactiveStore
from finodash.storage.adapter import DurableStore
from finodash.storage.backend import MemoryBackend


class FakeClock:
    """Manually advanced wall clock (seconds since the epoch)."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    @property
    def ms(self) -> int:
        return int(self.now * 1000)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        log_format="console",
        session_ttl_seconds=3600,
        session_poll_interval_seconds=0.01,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def backend() -> MemoryBackend:
    return MemoryBackend()


@pytest.fixture
def storage(backend: MemoryBackend) -> DurableStore:
    return DurableStore(backend, origin="tab-a")


@pytest.fixture
def store(storage: DurableStore) -> ReactiveStore:
    return ReactiveStore(storage)


@pytest.fixture
def merge(storage: DurableStore) -> MergeEngine:
    return MergeEngine(storage)


@pytest.fixture
def reconciler(storage: DurableStore, store: ReactiveStore, merge: MergeEngine) -> Reconciler:
    return Reconciler(storage, store, merge)


@pytest.fixture
def guard(storage: DurableStore, store: ReactiveStore, settings: Settings, clock: FakeClock) -> SessionGuard:
    guard = SessionGuard(
        storage,
        lambda credentials: check_credentials(credentials, store, settings),
        Registrar(store, settings),
        ttl_seconds=settings.session_ttl_seconds,
        poll_interval=settings.session_poll_interval_seconds,
        clock=clock,
    )
    guard.attach()
    return guard


@pytest_asyncio.fixture
async def two_tabs(
    backend: MemoryBackend,
    settings: Settings,
    clock: FakeClock,
) -> AsyncGenerator[tuple[AppContext, AppContext], None]:
    """Two started contexts sharing one durable backend, polling disabled."""
    tab_a = AppContext(backend, settings, origin="tab-a", clock=clock)
    tab_b = AppContext(backend, settings, origin="tab-b", clock=clock)
    await tab_a.startup(poll=False)
    await tab_b.startup(poll=False)
    yield tab_a, tab_b
    await tab_a.shutdown()
    await tab_b.shutdown()
