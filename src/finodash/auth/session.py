"""Session schema and the four durable session keys."""

from __future__ import annotations

import json
import secrets
import string
import time
from collections.abc import Callable
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from finodash.storage.adapter import (
    AUTH_EXPIRY_KEY,
    AUTH_KEYS,
    AUTH_ROLE_KEY,
    AUTH_TOKEN_KEY,
    AUTH_USER_KEY,
    DurableStore,
)

TOKEN_CHARSET = string.ascii_lowercase + string.digits
TOKEN_SUFFIX_LENGTH = 9


class Role(str, Enum):
    ADMIN = "admin"
    MERCHANT = "merchant"
    MEMBER = "member"


class AuthStatus(str, Enum):
    ANONYMOUS = "anonymous"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    EXPIRED = "expired"


class Session(BaseModel):
    """An established session as persisted across the four keys."""

    token: str
    role: Role
    user: dict[str, Any] = Field(default_factory=dict)
    expiry: int  # epoch milliseconds


def now_ms() -> int:
    return int(time.time() * 1000)


def random_suffix(length: int = TOKEN_SUFFIX_LENGTH) -> str:
    return "".join(secrets.choice(TOKEN_CHARSET) for _ in range(length))


def generate_token(role: Role | str, issued_ms: int | None = None) -> str:
    """Opaque token readable by humans: ``member-token-1729331200000-k3j9x0a2b``."""
    role_value = role.value if isinstance(role, Role) else role
    issued = now_ms() if issued_ms is None else issued_ms
    return f"{role_value}-token-{issued}-{random_suffix()}"


class SessionStorage:
    """Reads and writes the session keys through the durable store."""

    def __init__(self, storage: DurableStore) -> None:
        self.storage = storage

    async def read_raw(self) -> dict[str, str | None]:
        return {key: await self.storage.get_item(key) for key in AUTH_KEYS}

    async def write(self, session: Session, *, still_current: Callable[[], bool] | None = None) -> bool:
        """Write the four keys, token first.

        ``still_current`` is checked before every key; once it returns False
        the remaining keys are left alone and False is returned.
        """
        values = (
            (AUTH_TOKEN_KEY, session.token),
            (AUTH_ROLE_KEY, session.role.value),
            (AUTH_USER_KEY, json.dumps(session.user)),
            (AUTH_EXPIRY_KEY, str(session.expiry)),
        )
        for key, value in values:
            if still_current is not None and not still_current():
                return False
            await self.storage.set_item(key, value)
        return True

    async def write_user(self, user: dict[str, Any]) -> None:
        await self.storage.set_item(AUTH_USER_KEY, json.dumps(user))

    async def write_expiry(self, expiry: int) -> None:
        await self.storage.set_item(AUTH_EXPIRY_KEY, str(expiry))

    async def clear(self) -> None:
        for key in AUTH_KEYS:
            await self.storage.remove_item(key)
