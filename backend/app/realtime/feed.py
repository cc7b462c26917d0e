"""Per-booking change feed for chat messages.

``message_feed.subscribe(booking_id, on_message)`` returns a ``Subscription``
whose ``unsubscribe()`` removes exactly that registration. Delivery is
at-least-once while subscribed: the same row may arrive again after a bus
echo or a client retry, so consumers dedupe with ``merge_message``.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import threading
from concurrent.futures import Future
from datetime import datetime
from typing import Any, Callable, Coroutine, Dict, List, Optional, Sequence, Set

from .. import models, schemas
from . import bus

logger = logging.getLogger(__name__)

Callback = Callable[[Dict[str, Any]], Any]

MESSAGE_EVENT = "message"
READ_EVENT = "read"


def topic_for(booking_id: int) -> str:
    return f"bookings:{int(booking_id)}"


def message_payload(msg: models.Message) -> Dict[str, Any]:
    """JSON-ready row for a persisted message."""
    return schemas.MessageResponse.model_validate(msg).model_dump(mode="json")


def read_payload(booking_id: int, reader_id: int, message_ids: Sequence[int], read_at: Optional[datetime]) -> Dict[str, Any]:
    return {
        "booking_id": int(booking_id),
        "reader_id": int(reader_id),
        "message_ids": [int(i) for i in message_ids],
        "read_at": read_at.isoformat() if read_at else None,
    }


def _message_id(item: Any) -> Any:
    if isinstance(item, dict):
        return item.get("id")
    return getattr(item, "id", None)


def merge_message(history: List[Any], message: Any) -> List[Any]:
    """Append ``message`` unless a row with the same id is already present.

    Works with dict rows and ORM/pydantic objects alike; returns a new list.
    """
    mid = _message_id(message)
    if mid is not None and any(_message_id(m) == mid for m in history):
        return list(history)
    return [*history, message]


def _log_failed_publish(future: Future) -> None:
    if not future.cancelled() and future.exception() is not None:
        logger.error("Realtime publish failed: %s", future.exception())


class Subscription:
    """Handle for one registration on the feed."""

    def __init__(
        self,
        feed: "MessageFeed",
        booking_id: int,
        on_message: Callback,
        on_read: Optional[Callback] = None,
    ) -> None:
        self.booking_id = booking_id
        self.on_message = on_message
        self.on_read = on_read
        self._feed = feed
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self) -> None:
        """Stop deliveries to this subscription. Safe to call more than once."""
        if not self._active:
            return
        self._active = False
        self._feed._discard(self)

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.unsubscribe()


class MessageFeed:
    def __init__(self) -> None:
        self._listeners: Dict[int, List[Subscription]] = {}
        self._lock = threading.Lock()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._pending: Set[asyncio.Task] = set()

    def bind_loop(self, loop: Optional[asyncio.AbstractEventLoop]) -> None:
        """Route publishes from worker threads onto the server's event loop."""
        self._loop = loop

    def subscribe(
        self,
        booking_id: int,
        on_message: Callback,
        on_read: Optional[Callback] = None,
    ) -> Subscription:
        sub = Subscription(self, int(booking_id), on_message, on_read)
        with self._lock:
            self._listeners.setdefault(sub.booking_id, []).append(sub)
        logger.debug("Subscribed to booking %s", sub.booking_id)
        return sub

    def _discard(self, sub: Subscription) -> None:
        with self._lock:
            subs = self._listeners.get(sub.booking_id)
            if not subs:
                return
            try:
                subs.remove(sub)
            except ValueError:
                return
            if not subs:
                del self._listeners[sub.booking_id]
        logger.debug("Unsubscribed from booking %s", sub.booking_id)

    def subscriber_count(self, booking_id: int) -> int:
        with self._lock:
            return len(self._listeners.get(int(booking_id), ()))

    async def _deliver(self, booking_id: int, event: str, payload: Dict[str, Any]) -> int:
        with self._lock:
            subs = list(self._listeners.get(int(booking_id), ()))
        delivered = 0
        for sub in subs:
            callback = sub.on_message if event == MESSAGE_EVENT else sub.on_read
            if callback is None or not sub.active:
                continue
            try:
                result = callback(dict(payload))
                if inspect.isawaitable(result):
                    await result
                delivered += 1
            except Exception:
                logger.exception("Realtime %s subscriber for booking %s failed", event, booking_id)
        return delivered

    async def publish(self, booking_id: int, row: Dict[str, Any], *, broadcast: bool = True) -> int:
        """Deliver an inserted message row to local subscribers and the bus.

        Returns the number of local callbacks that ran successfully.
        """
        delivered = await self._deliver(booking_id, MESSAGE_EVENT, row)
        if broadcast:
            await bus.publish_topic(topic_for(booking_id), {"type": MESSAGE_EVENT, "payload": row})
        return delivered

    async def publish_read(self, booking_id: int, receipt: Dict[str, Any], *, broadcast: bool = True) -> int:
        delivered = await self._deliver(booking_id, READ_EVENT, receipt)
        if broadcast:
            await bus.publish_topic(topic_for(booking_id), {"type": READ_EVENT, "payload": receipt})
        return delivered

    def _submit(self, coro: Coroutine[Any, Any, int]) -> None:
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is not None:
            task = running.create_task(coro)
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)
            return
        loop = self._loop
        if loop is not None and loop.is_running():
            asyncio.run_coroutine_threadsafe(coro, loop).add_done_callback(_log_failed_publish)
            return
        # No server loop (scripts, workers, tests): deliver inline
        asyncio.run(coro)

    def publish_threadsafe(self, booking_id: int, row: Dict[str, Any]) -> None:
        """Publish from synchronous code such as the service layer."""
        self._submit(self.publish(booking_id, row))

    def publish_read_threadsafe(self, booking_id: int, receipt: Dict[str, Any]) -> None:
        self._submit(self.publish_read(booking_id, receipt))

    async def handle_bus_event(self, topic: str, envelope: Dict[str, Any]) -> None:
        """Re-deliver an envelope published by another instance."""
        if envelope.get("origin") == bus.INSTANCE_ID:
            return
        prefix, _, raw_id = topic.partition(":")
        if prefix != "bookings" or not raw_id.isdigit():
            return
        payload = envelope.get("payload")
        if not isinstance(payload, dict):
            return
        event = envelope.get("type")
        if event == MESSAGE_EVENT:
            await self._deliver(int(raw_id), MESSAGE_EVENT, payload)
        elif event == READ_EVENT:
            await self._deliver(int(raw_id), READ_EVENT, payload)

    async def start_bus_consumer(self) -> None:
        await bus.start_pattern_consumer(f"{bus.TOPIC_PREFIX}bookings:*", self.handle_bus_event)


message_feed = MessageFeed()
