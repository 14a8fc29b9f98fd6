"""Storage change events.

Every write that goes through the durable store produces a ``StorageEvent``.
Events are delivered to listeners in the writing context and broadcast to
every other context sharing the same backend. A ``key`` of ``None`` means the
whole namespace was cleared.
"""

from __future__ import annotations

import json
import time
from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass, field


@dataclass(frozen=True)
class StorageEvent:
    """A single change to the durable store."""

    key: str | None
    old_value: str | None
    new_value: str | None
    origin: str
    ts: float = field(default_factory=time.time)

    @property
    def is_clear(self) -> bool:
        return self.key is None

    @property
    def is_removal(self) -> bool:
        """True for removals and for a full clear."""
        return self.new_value is None

    def to_json(self) -> str:
        return json.dumps(asdict(self))

    @classmethod
    def from_json(cls, raw: str | bytes) -> StorageEvent:
        """Parse a broadcast event.

        Raises ``ValueError`` (``json.JSONDecodeError`` is a subclass) when the
        payload is not a JSON object carrying an ``origin``.
        """
        if isinstance(raw, bytes):
            raw = raw.decode()
        payload = json.loads(raw)
        if not isinstance(payload, dict) or not isinstance(payload.get("origin"), str):
            raise ValueError("storage event without origin")
        return cls(
            key=payload.get("key"),
            old_value=payload.get("old_value"),
            new_value=payload.get("new_value"),
            origin=payload["origin"],
            ts=float(payload.get("ts") or time.time()),
        )


StorageListener = Callable[[StorageEvent], Awaitable[None]]
