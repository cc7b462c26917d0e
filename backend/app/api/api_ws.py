# WebSocket transport for booking threads: /ws/bookings/{id}.
# Subscribes the socket to the booking's message feed and forwards typed
# envelopes; answers ping with pong.

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session
from starlette.exceptions import WebSocketException

from ..database import get_db_session
from ..realtime.feed import MESSAGE_EVENT, READ_EVENT, message_feed, topic_for
from ..services import messaging
from ..utils.json import dumps, loads
from .auth import email_from_token, get_user_by_email

logger = logging.getLogger(__name__)
router = APIRouter()

SEND_TIMEOUT = 10.0
WS_4401_UNAUTHORIZED = 4401
WS_4403_FORBIDDEN = 4403
MAX_BEARER_LEN = 4096


@dataclass
class Envelope:
    v: int = 1
    type: str = ""        # default to "message" on send
    topic: Optional[str] = None
    payload: Optional[Dict[str, Any]] = None

    @staticmethod
    def from_raw(raw: Any) -> "Envelope":
        if isinstance(raw, dict):
            return Envelope(
                v=int(raw.get("v", 1)),
                type=str(raw.get("type") or ""),
                topic=(str(raw["topic"]) if raw.get("topic") is not None else None),
                payload=(raw.get("payload") if isinstance(raw.get("payload"), dict) else None),
            )
        if isinstance(raw, str):
            return Envelope(type=raw.strip().lower())
        return Envelope()

    def to_json(self) -> str:
        data: Dict[str, Any] = {"v": self.v, "type": (self.type or "message")}
        if self.topic is not None: data["topic"] = self.topic
        if self.payload is not None: data["payload"] = self.payload
        return dumps(data)


# -------- auth helpers --------

def _extract_bearer_token(ws: WebSocket) -> tuple[Optional[str], str]:
    """Return (token, source). Source is one of query/authorization/none."""
    qtok = ws.query_params.get("token")
    if qtok:
        if len(qtok) > MAX_BEARER_LEN:
            return None, "query_oversize"
        return qtok.strip(), "query"
    auth = ws.headers.get("authorization")
    if auth and auth.lower().startswith("bearer "):
        token = auth.split(" ", 1)[1].strip()
        if len(token) > MAX_BEARER_LEN:
            return None, "authorization_oversize"
        return token, "authorization"
    return None, "none"


def _authorize(db: Session, token: Optional[str], booking_id: int) -> tuple[Optional[int], Optional[int]]:
    """Return ``(user_id, close_code)``; ``close_code`` is None when the socket may join."""
    email = email_from_token(token)
    if email is None:
        return None, WS_4401_UNAUTHORIZED
    user = get_user_by_email(db, email)
    if user is None or not user.is_active:
        return None, WS_4401_UNAUTHORIZED
    if not messaging.can_access(db, booking_id, user.id):
        return int(user.id), WS_4403_FORBIDDEN
    return int(user.id), None


def _decode_frame(text: str) -> Envelope:
    try:
        return Envelope.from_raw(loads(text))
    except ValueError:
        return Envelope.from_raw(text)


def _call_with_session(fn, *args, **kwargs):
    """Run a DB function with a short-lived session (sync)."""
    with get_db_session() as db:
        return fn(db, *args, **kwargs)


async def _pump(websocket: WebSocket, outbox: "asyncio.Queue[Envelope]") -> None:
    while True:
        env = await outbox.get()
        await asyncio.wait_for(websocket.send_text(env.to_json()), timeout=SEND_TIMEOUT)


async def _stop_pump(task: "asyncio.Task[None]") -> None:
    """Cancel the sender task and collect its outcome, including a failed send."""
    task.cancel()
    (outcome,) = await asyncio.gather(task, return_exceptions=True)
    if isinstance(outcome, Exception):
        logger.debug("WS sender stopped after error: %s", outcome)


# -------- /ws/bookings/{id} --------

@router.websocket("/ws/bookings/{booking_id}")
async def booking_ws(
    websocket: WebSocket,
    booking_id: int,
):
    token, token_src = _extract_bearer_token(websocket)
    user_id, close_code = await run_in_threadpool(_call_with_session, _authorize, token, booking_id)
    if close_code == WS_4401_UNAUTHORIZED:
        logger.warning("WS auth failed for booking %s (source=%s)", booking_id, token_src)
        raise WebSocketException(code=WS_4401_UNAUTHORIZED, reason="Invalid token")
    if close_code == WS_4403_FORBIDDEN:
        logger.warning("WS user %s forbidden on booking %s", user_id, booking_id)
        raise WebSocketException(code=WS_4403_FORBIDDEN, reason="Forbidden")

    await websocket.accept()
    loop = asyncio.get_running_loop()
    outbox: asyncio.Queue[Envelope] = asyncio.Queue()
    topic = topic_for(booking_id)

    def _forward(event: str):
        # Feed callbacks may fire on another thread or loop
        def _cb(payload: Dict[str, Any]) -> None:
            loop.call_soon_threadsafe(
                outbox.put_nowait, Envelope(type=event, topic=topic, payload=payload)
            )
        return _cb

    subscription = message_feed.subscribe(
        booking_id, _forward(MESSAGE_EVENT), on_read=_forward(READ_EVENT)
    )
    sender = asyncio.create_task(_pump(websocket, outbox))
    logger.info("WS user %s joined booking %s", user_id, booking_id)
    try:
        while True:
            env = _decode_frame(await websocket.receive_text())
            if env.v != 1:
                continue
            if env.type == "ping":
                outbox.put_nowait(Envelope(type="pong"))
            # ignore everything else
    except WebSocketDisconnect:
        pass
    finally:
        subscription.unsubscribe()
        await _stop_pump(sender)
        logger.info("WS user %s left booking %s", user_id, booking_id)
