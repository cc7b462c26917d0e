from redis import asyncio as aioredis

from app.core.config import REDIS_URL


def build_client(url: str | None = None) -> aioredis.Redis:
    """Create a lazily-connecting async Redis client for the realtime bus."""
    return aioredis.from_url(
        (url or REDIS_URL).strip(),
        decode_responses=True,
        socket_connect_timeout=2,
        socket_timeout=5,
        health_check_interval=30,
        retry_on_timeout=True,
    )


redis = build_client()

__all__ = ["redis", "build_client"]
