"""Session guard: the auth state machine and its watchdog.

States::

    anonymous --login/register--> authenticating --success--> authenticated
                                   authenticating --failure--> anonymous
    authenticated --logout--------------------------------> anonymous
    authenticated --session key removed elsewhere---------> anonymous (keys cleared)
    authenticated --another context signed in-------------> anonymous (keys kept)
    authenticated --poll finds now >= expiry--> expired --> anonymous

Two independent triggers feed ``force_logout``: storage events (immediate,
covers writes made through any durable store) and a polling loop (covers
expiry and writes that bypass the event path, e.g. a direct ``DEL`` in Redis).
``force_logout`` moves to anonymous before touching storage, so a second call,
including the one caused by its own key removals, is a no-op.

A session key *replaced* by another context means that context signed in. The
keys are its session now, so this context only drops its own state.
"""

from __future__ import annotations

import asyncio
import json
import time
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import Any

import redis.asyncio as redis
import structlog
from pydantic import BaseModel, ValidationError

from finodash.auth.credentials import AuthResult, Credentials
from finodash.auth.registration import RegistrationData
from finodash.auth.session import (
    AuthStatus,
    Role,
    Session,
    SessionStorage,
    generate_token,
    random_suffix,
)
from finodash.storage.adapter import (
    AUTH_EXPIRY_KEY,
    AUTH_KEYS,
    AUTH_ROLE_KEY,
    AUTH_TOKEN_KEY,
    AUTH_USER_KEY,
    DurableStore,
)
from finodash.storage.events import StorageEvent

logger = structlog.get_logger()

CredentialCheck = Callable[[Credentials], AuthResult]
RegistrarFn = Callable[[RegistrationData], Awaitable[AuthResult]]
GuardListener = Callable[["AuthState"], None]


class AuthState(BaseModel):
    status: AuthStatus = AuthStatus.ANONYMOUS
    token: str | None = None
    role: Role | None = None
    user: dict[str, Any] | None = None
    expiry: int | None = None
    initialized: bool = False
    error: str | None = None


_SIGNED_OUT: dict[str, Any] = {
    "status": AuthStatus.ANONYMOUS,
    "token": None,
    "role": None,
    "user": None,
    "expiry": None,
}


def _iso_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def parse_session(raw: dict[str, str | None]) -> Session | None:
    """Build a session from the raw key values; None if any is missing or invalid."""
    if not all(raw.get(key) for key in AUTH_KEYS):
        return None
    try:
        return Session(
            token=raw[AUTH_TOKEN_KEY],
            role=Role(raw[AUTH_ROLE_KEY]),
            user=json.loads(raw[AUTH_USER_KEY]),
            expiry=int(raw[AUTH_EXPIRY_KEY]),
        )
    except (ValueError, ValidationError):
        return None


class SessionGuard:
    """Owns the auth state and keeps it in line with the durable session keys."""

    def __init__(
        self,
        storage: DurableStore,
        credential_check: CredentialCheck,
        registrar: RegistrarFn | None = None,
        *,
        ttl_seconds: int = 24 * 60 * 60,
        poll_interval: float = 5.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.storage = storage
        self.sessions = SessionStorage(storage)
        self._credential_check = credential_check
        self._registrar = registrar
        self.ttl_ms = ttl_seconds * 1000
        self.poll_interval = poll_interval
        self._clock = clock
        self.state = AuthState()
        self._listeners: list[GuardListener] = []
        self._detach: Callable[[], None] | None = None
        self._running = False
        self._task: asyncio.Task | None = None
        self._writing = False

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------

    @property
    def is_authenticated(self) -> bool:
        return self.state.status is AuthStatus.AUTHENTICATED

    def subscribe(self, listener: GuardListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _set_state(self, **changes: Any) -> None:
        self.state = self.state.model_copy(update=changes)
        for listener in list(self._listeners):
            listener(self.state)

    def attach(self) -> None:
        """Start receiving storage events."""
        if self._detach is None:
            self._detach = self.storage.on_change(self.handle_storage_event)

    def detach(self) -> None:
        if self._detach is not None:
            self._detach()
            self._detach = None

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def hydrate(self) -> AuthState:
        """Restore a persisted, unexpired session or land in anonymous."""
        raw = await self.sessions.read_raw()
        session = parse_session(raw)

        if session is not None and self._now_ms() < session.expiry:
            self._set_state(
                status=AuthStatus.AUTHENTICATED,
                token=session.token,
                role=session.role,
                user=session.user,
                expiry=session.expiry,
                initialized=True,
                error=None,
            )
            logger.info("session_hydrated", role=session.role.value)
            return self.state

        self._set_state(**_SIGNED_OUT, initialized=True)
        if any(raw.values()):
            reason = "expired" if session is not None else "incomplete"
            logger.info("session_discarded", reason=reason)
            await self.sessions.clear()
        return self.state

    async def login(self, credentials: Credentials) -> bool:
        self._set_state(status=AuthStatus.AUTHENTICATING, error=None)
        return await self._complete(self._credential_check(credentials))

    async def register(self, data: RegistrationData) -> bool:
        if self._registrar is None:
            raise RuntimeError("SessionGuard was created without a registrar")
        self._set_state(status=AuthStatus.AUTHENTICATING, error=None)
        return await self._complete(await self._registrar(data))

    async def _complete(self, result: AuthResult) -> bool:
        if not result.success or result.identity is None or result.role is None:
            self._set_state(**_SIGNED_OUT, initialized=True, error=result.message or "Authentication failed")
            logger.info("authentication_failed", reason=result.message)
            return False

        now = self._now_ms()
        stamp = _iso_now()
        session = Session(
            token=generate_token(result.role, now),
            role=result.role,
            user={**result.identity, "loginTime": stamp, "lastActivity": stamp, "sessionId": random_suffix()},
            expiry=now + self.ttl_ms,
        )
        self._set_state(
            status=AuthStatus.AUTHENTICATED,
            token=session.token,
            role=session.role,
            user=session.user,
            expiry=session.expiry,
            initialized=True,
            error=None,
        )
        self._writing = True
        try:
            written = await self.sessions.write(session, still_current=lambda: self.state.token == session.token)
        finally:
            self._writing = False
        if not written:
            logger.info("session_write_abandoned", role=session.role.value)
            return False
        logger.info("authenticated", role=session.role.value, user_id=session.user.get("id"))
        return True

    async def logout(self) -> None:
        self._set_state(**_SIGNED_OUT, initialized=True, error=None)
        await self.sessions.clear()
        logger.info("logged_out")

    def _release(self, reason: str) -> bool:
        """Sign out of this context only. The session keys now belong to someone else."""
        if self.state.status is AuthStatus.ANONYMOUS:
            return False
        self._set_state(**_SIGNED_OUT, initialized=True)
        logger.info("session_superseded", reason=reason)
        return True

    async def force_logout(self, reason: str) -> bool:
        """Drop the session and clear its keys. Returns False if already signed out."""
        if self.state.status is AuthStatus.ANONYMOUS:
            return False
        self._set_state(**_SIGNED_OUT, initialized=True)
        logger.warning("forced_logout", reason=reason)
        await self.sessions.clear()
        return True

    async def _expire(self) -> None:
        if not self.is_authenticated:
            return
        self._set_state(status=AuthStatus.EXPIRED)
        await self.force_logout("expired")

    async def refresh(self) -> bool:
        """Extend the session by one TTL from now."""
        if not self.is_authenticated:
            return False
        expiry = self._now_ms() + self.ttl_ms
        self._set_state(expiry=expiry)
        await self.sessions.write_expiry(expiry)
        return True

    async def touch(self) -> None:
        """Record user activity in the persisted user snapshot."""
        if not self.is_authenticated or self.state.user is None:
            return
        user = {**self.state.user, "lastActivity": _iso_now()}
        self._set_state(user=user)
        await self.sessions.write_user(user)

    # ------------------------------------------------------------------
    # Detection
    # ------------------------------------------------------------------

    def _user_matches(self, raw_user: str) -> bool:
        try:
            user = json.loads(raw_user)
        except ValueError:
            return False
        return isinstance(user, dict) and user.get("id") == (self.state.user or {}).get("id")

    async def handle_storage_event(self, event: StorageEvent) -> None:
        """React to a change made through any durable store."""
        if not self.is_authenticated:
            return
        if event.is_clear:
            await self.force_logout("storage cleared")
            return
        if event.key not in AUTH_KEYS:
            return
        if event.new_value is None:
            await self.force_logout(f"{event.key} removed")
            return

        if event.key == AUTH_TOKEN_KEY and event.new_value != self.state.token:
            self._release("token replaced")
        elif event.key == AUTH_ROLE_KEY and event.new_value != (self.state.role and self.state.role.value):
            self._release("role replaced")
        elif event.key == AUTH_USER_KEY:
            if not self._user_matches(event.new_value):
                self._release("user replaced")
            else:
                self._set_state(user=json.loads(event.new_value))
        elif event.key == AUTH_EXPIRY_KEY:
            try:
                expiry = int(event.new_value)
            except ValueError:
                await self.force_logout("expiry tampered")
                return
            if expiry != self.state.expiry:
                self._set_state(expiry=expiry)
            if self._now_ms() >= expiry:
                await self._expire()

    async def check(self) -> AuthStatus:
        """One polling tick: key presence, key integrity, expiry."""
        # Keys are half written while a login is persisting its session
        if not self.is_authenticated or self._writing:
            return self.state.status

        raw = await self.sessions.read_raw()
        if not self.is_authenticated:
            return self.state.status

        missing = [key for key in AUTH_KEYS if not raw[key]]
        if missing:
            await self.force_logout(f"{', '.join(missing)} missing")
            return self.state.status

        session = parse_session(raw)
        if session is None:
            await self.force_logout("session keys unreadable")
            return self.state.status
        if (
            session.token != self.state.token
            or session.role is not self.state.role
            or not self._user_matches(raw[AUTH_USER_KEY])
        ):
            self._release("session replaced")
            return self.state.status

        if session.expiry != self.state.expiry:
            self._set_state(expiry=session.expiry)
        if self._now_ms() >= session.expiry:
            await self._expire()
        return self.state.status

    # ------------------------------------------------------------------
    # Polling loop
    # ------------------------------------------------------------------

    async def run(self) -> None:
        """Poll until ``stop()`` is called or the task is cancelled."""
        self._running = True
        logger.info("session_guard_started", interval=self.poll_interval)
        try:
            while self._running:
                await asyncio.sleep(self.poll_interval)
                try:
                    await self.check()
                except redis.RedisError:
                    logger.exception("session_check_failed")
        except asyncio.CancelledError:
            pass
        finally:
            logger.info("session_guard_stopped")

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run())
        return self._task

    async def stop(self) -> None:
        self._running = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
