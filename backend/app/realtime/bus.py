"""Redis pub/sub mirror for realtime events across API instances.

Envelopes go out on ``ws-topic:<topic>`` tagged with this process's
``INSTANCE_ID`` so consumers can drop their own echoes.
"""

from __future__ import annotations

import asyncio
import logging
import os
from typing import Any, Awaitable, Callable, Optional

from redis.exceptions import RedisError

from app.core.config import settings
from app.services import redis_client
from app.utils.json import dumps, loads

logger = logging.getLogger(__name__)

TOPIC_PREFIX = "ws-topic:"
INSTANCE_ID = os.getenv("INSTANCE_ID", "inst-" + os.urandom(4).hex())

Handler = Callable[[str, dict[str, Any]], Awaitable[None]]


def bus_enabled() -> bool:
    return bool(settings.WS_BUS_ENABLED)


async def publish_topic(topic: str, envelope: dict[str, Any]) -> bool:
    """Publish an envelope to ``ws-topic:<topic>``.

    Returns ``False`` when the bus is disabled or Redis is unreachable; local
    delivery has already happened by then, so the error is only logged.
    """
    if not bus_enabled():
        return False
    env = dict(envelope)
    env.setdefault("v", 1)
    env.setdefault("topic", topic)
    env.setdefault("origin", INSTANCE_ID)
    try:
        await redis_client.redis.publish(f"{TOPIC_PREFIX}{topic}", dumps(env))
    except (RedisError, OSError) as exc:
        logger.warning("Realtime bus publish to %s failed: %s", topic, exc)
        return False
    return True


def _decode(data: Any) -> dict[str, Any]:
    if isinstance(data, (bytes, bytearray)):
        data = data.decode("utf-8")
    if not isinstance(data, str):
        return {}
    try:
        payload = loads(data)
    except ValueError:
        logger.warning("Dropping malformed bus payload")
        return {}
    return payload if isinstance(payload, dict) else {}


_consumer_task: Optional[asyncio.Task] = None


async def _consume(pubsub: Any, handler: Handler) -> None:
    try:
        async for msg in pubsub.listen():
            if not isinstance(msg, dict) or msg.get("type") != "pmessage":
                continue
            payload = _decode(msg.get("data"))
            if not payload:
                continue
            topic = str(msg.get("channel") or "")
            if topic.startswith(TOPIC_PREFIX):
                topic = topic[len(TOPIC_PREFIX):]
            try:
                await handler(topic, payload)
            except Exception:
                # keep the stream alive for other topics
                logger.exception("Realtime bus handler failed for %s", topic)
    finally:
        await pubsub.close()


async def start_pattern_consumer(pattern: str, handler: Handler) -> Optional[asyncio.Task]:
    """PSUBSCRIBE to ``pattern`` and feed decoded envelopes to ``handler``.

    Only one consumer runs per process. Returns the consumer task, or ``None``
    when the bus is disabled or the subscription failed.
    """
    global _consumer_task
    if not bus_enabled():
        return None
    if _consumer_task is not None and not _consumer_task.done():
        return _consumer_task
    pubsub = redis_client.redis.pubsub()
    try:
        await pubsub.psubscribe(pattern)
    except (RedisError, OSError) as exc:
        logger.warning("Realtime bus subscribe to %s failed: %s", pattern, exc)
        return None
    _consumer_task = asyncio.create_task(_consume(pubsub, handler))
    logger.info("Realtime bus consuming %s as %s", pattern, INSTANCE_ID)
    return _consumer_task


async def stop_consumer() -> None:
    global _consumer_task
    task, _consumer_task = _consumer_task, None
    if task is None or task.done():
        return
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass


__all__ = [
    "INSTANCE_ID",
    "bus_enabled",
    "publish_topic",
    "start_pattern_consumer",
    "stop_consumer",
]
