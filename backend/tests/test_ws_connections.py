from contextlib import contextmanager

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import QueuePool

from app.api import api_ws
from app.api.auth import create_access_token
from app.api.dependencies import get_db
from app.main import app
from app.models.base import BaseModel

PREFIX = "/api/v1"


@pytest.fixture
def session_factory(tmp_path):
    """File-backed store with a single pooled connection."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'ws.db'}",
        connect_args={"check_same_thread": False},
        poolclass=QueuePool,
        pool_size=1,
        max_overflow=0,
        pool_timeout=2,
    )
    BaseModel.metadata.create_all(engine)
    yield sessionmaker(bind=engine, expire_on_commit=False)
    engine.dispose()


@pytest.fixture
def client(session_factory, monkeypatch):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    monkeypatch.setattr(api_ws, "get_db_session", contextmanager(override_get_db))
    return TestClient(app)


def test_open_socket_does_not_hold_a_connection(client, session_factory, db, make_booking):
    world = make_booking()
    db.close()
    engine = session_factory.kw["bind"]
    token = create_access_token({"sub": world.barber_user.email})

    with client.websocket_connect(f"{PREFIX}/ws/bookings/{world.booking.id}?token={token}") as ws:
        ws.send_json({"v": 1, "type": "ping"})
        assert ws.receive_json()["type"] == "pong"

        assert engine.pool.checkedout() == 0
        res = client.get(f"{PREFIX}/conversations", headers={"Authorization": f"Bearer {token}"})
        assert res.status_code == 200
        assert [c["booking_id"] for c in res.json()] == [world.booking.id]
