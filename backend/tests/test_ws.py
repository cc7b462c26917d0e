import asyncio
from contextlib import contextmanager

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from app.api import api_ws
from app.api.auth import create_access_token
from app.api.dependencies import get_db
from app.main import app
from app.realtime.feed import message_feed

PREFIX = "/api/v1"


@pytest.fixture
def client(session_factory, monkeypatch):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    # the socket opens its own short-lived sessions
    monkeypatch.setattr(api_ws, "get_db_session", contextmanager(override_get_db))
    return TestClient(app)


def _token(user):
    return create_access_token({"sub": user.email})


def _ws_url(booking_id, user=None):
    url = f"{PREFIX}/ws/bookings/{booking_id}"
    return f"{url}?token={_token(user)}" if user else url


def test_missing_token_closes_4401(client, make_booking):
    world = make_booking()
    with pytest.raises(WebSocketDisconnect) as exc:
        with client.websocket_connect(_ws_url(world.booking.id)):
            pass
    assert exc.value.code == 4401


def test_invalid_token_closes_4401(client, make_booking):
    world = make_booking()
    with pytest.raises(WebSocketDisconnect) as exc:
        with client.websocket_connect(f"{PREFIX}/ws/bookings/{world.booking.id}?token=garbage"):
            pass
    assert exc.value.code == 4401


def test_outsider_closes_4403(client, make_booking):
    world = make_booking()
    outsider = make_booking().client_user
    with pytest.raises(WebSocketDisconnect) as exc:
        with client.websocket_connect(_ws_url(world.booking.id, outsider)):
            pass
    assert exc.value.code == 4403


def test_bearer_header_is_accepted(client, make_booking):
    world = make_booking()
    headers = {"Authorization": f"Bearer {_token(world.client_user)}"}
    with client.websocket_connect(f"{PREFIX}/ws/bookings/{world.booking.id}", headers=headers) as ws:
        ws.send_json({"v": 1, "type": "ping"})
        assert ws.receive_json() == {"v": 1, "type": "pong"}


def test_plain_ping_gets_pong(client, make_booking):
    world = make_booking()
    with client.websocket_connect(_ws_url(world.booking.id, world.barber_user)) as ws:
        ws.send_text("ping")
        assert ws.receive_json()["type"] == "pong"


def test_posted_message_is_pushed_and_socket_unsubscribes(client, make_booking):
    world = make_booking()
    booking_id = world.booking.id
    with client.websocket_connect(_ws_url(booking_id, world.barber_user)) as ws:
        # round-trip once so the subscription is registered
        ws.send_json({"v": 1, "type": "ping"})
        assert ws.receive_json()["type"] == "pong"
        assert message_feed.subscriber_count(booking_id) == 1

        res = client.post(
            f"{PREFIX}/messages",
            json={"booking_id": booking_id, "receiver_id": world.barber_user.id, "message_text": "hi"},
            headers={"Authorization": f"Bearer {_token(world.client_user)}"},
        )
        assert res.status_code == 200

        env = ws.receive_json()
        assert env["type"] == "message"
        assert env["topic"] == f"bookings:{booking_id}"
        assert env["payload"]["id"] == res.json()["id"]
        assert env["payload"]["message_text"] == "hi"

        client.put(
            f"{PREFIX}/messages/{res.json()['id']}/read",
            headers={"Authorization": f"Bearer {_token(world.barber_user)}"},
        )
        receipt = ws.receive_json()
        assert receipt["type"] == "read"
        assert receipt["payload"]["message_ids"] == [res.json()["id"]]

    assert message_feed.subscriber_count(booking_id) == 0


def test_failed_send_is_collected_when_socket_closes():
    class BrokenSocket:
        async def send_text(self, text):
            raise RuntimeError("connection reset")

    async def run():
        outbox = asyncio.Queue()
        outbox.put_nowait(api_ws.Envelope(type="pong"))
        task = asyncio.create_task(api_ws._pump(BrokenSocket(), outbox))
        await asyncio.wait([task])
        await api_ws._stop_pump(task)
        idle = asyncio.create_task(api_ws._pump(BrokenSocket(), asyncio.Queue()))
        await asyncio.sleep(0)
        await api_ws._stop_pump(idle)
        return task, idle

    failed, idle = asyncio.run(run())
    assert isinstance(failed.exception(), RuntimeError)
    assert idle.cancelled()
