"""Shared Redis client for the redis storage backend.

One client per process. ``create_backend`` opens it when the settings select
the redis backend, every context in the process shares it, and the context
that opened it closes it on shutdown.
"""

import redis.asyncio as redis

_client: redis.Redis | None = None


async def init_redis(url: str, *, max_connections: int = 20) -> redis.Redis:
    """Open the shared client. An already open client is closed first."""
    global _client  # noqa: PLW0603
    if _client is not None:
        await _client.aclose()
    _client = redis.from_url(  # type: ignore[no-untyped-call]
        url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=max_connections,
    )
    return _client


async def close_redis() -> None:
    global _client  # noqa: PLW0603
    if _client is None:
        return
    client, _client = _client, None
    await client.aclose()


def get_redis() -> redis.Redis:
    if _client is None:
        msg = "Redis client is not open; init_redis() must run before the redis storage backend is used."
        raise RuntimeError(msg)
    return _client
