"""Collision-resistant identifiers for new entities.

An id is ``<prefix><wall-clock ms>_<random>_<perf counter>``:

- the millisecond timestamp never goes backwards within a process, even if
  the system clock does;
- the random part is 9 base36 characters from ``secrets`` (36**9 values);
- the perf counter is an independent high-resolution clock in base36.

Components are base36 (digits and lowercase letters), so the ``_`` separator
cannot appear inside any of them.
"""

from __future__ import annotations

import secrets
import string
import threading
import time
from collections.abc import Iterable, Mapping

ID_ALPHABET = string.digits + string.ascii_lowercase
RANDOM_LENGTH = 9
SEPARATOR = "_"

_clock_lock = threading.Lock()
_last_ms = 0


def _base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(ID_ALPHABET[rem])
    return "".join(reversed(digits))


def _wall_clock_ms() -> int:
    """Current epoch milliseconds, clamped to be non-decreasing."""
    global _last_ms  # noqa: PLW0603
    with _clock_lock:
        now = time.time_ns() // 1_000_000
        if now < _last_ms:
            now = _last_ms
        _last_ms = now
        return now


def new_id(prefix: str = "n") -> str:
    """Generate a new identifier, e.g. ``n1729331200000_k3j9x0a2b_1f4c8``."""
    random_part = "".join(secrets.choice(ID_ALPHABET) for _ in range(RANDOM_LENGTH))
    perf_part = _base36(time.perf_counter_ns())
    return f"{prefix}{_wall_clock_ms()}{SEPARATOR}{random_part}{SEPARATOR}{perf_part}"


def find_duplicate_ids(records: Iterable[Mapping]) -> list[str]:
    """Ids that appear more than once, in order of their second appearance."""
    seen: set = set()
    reported: set = set()
    duplicates: list[str] = []
    for record in records:
        record_id = record.get("id")
        if record_id in seen and record_id not in reported:
            reported.add(record_id)
            duplicates.append(record_id)
        seen.add(record_id)
    return duplicates


def repair_duplicate_ids(records: Iterable[Mapping], prefix: str = "n") -> list[dict]:
    """Give every repeated id after its first occurrence a fresh id.

    Returns a new list in the original order. First occurrences are returned
    unchanged; replacements never collide with any id already in the sequence.
    """
    items = [dict(record) for record in records]
    taken = {item.get("id") for item in items}
    seen: set = set()

    for item in items:
        record_id = item.get("id")
        if record_id in seen:
            fresh = new_id(prefix)
            while fresh in taken:
                fresh = new_id(prefix)
            item["id"] = fresh
            taken.add(fresh)
            record_id = fresh
        seen.add(record_id)

    return items
