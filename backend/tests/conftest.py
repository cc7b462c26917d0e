from pathlib import Path
from dotenv import load_dotenv

# Load environment variables for tests before the app reads its settings
load_dotenv(Path(__file__).resolve().parents[1] / '.env.test')

from datetime import date
from types import SimpleNamespace
from unittest.mock import MagicMock
import itertools

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.models import BarberProfile, Booking, BookingStatus, ClientProfile, Service, User
from app.models.base import BaseModel


# Keep SMS/email fan-out off the worker pool for all tests
@pytest.fixture(autouse=True)
def patch_new_message_dispatch(monkeypatch):
    """Replace the detached notification hand-off with a MagicMock."""
    mock = MagicMock(return_value=None)
    monkeypatch.setattr(
        "app.notifications.new_message.dispatch_new_message",
        mock,
    )
    return mock


@pytest.fixture(autouse=True)
def clear_dependency_overrides():
    yield
    from app.main import app

    app.dependency_overrides.clear()


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    BaseModel.metadata.create_all(engine)
    yield sessionmaker(bind=engine, expire_on_commit=False)
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


_seq = itertools.count(1)


def _user(db, first: str, last: str) -> User:
    n = next(_seq)
    user = User(email=f"{first.lower()}{n}@example.com", password="x", first_name=first, last_name=last)
    db.add(user)
    db.flush()
    return user


@pytest.fixture
def make_booking(db):
    """Build a barber/client pair sharing one booking.

    ``barber_claimed=False`` leaves the barber profile without a user account.
    Pass ``barber_profile``/``client_profile`` from an earlier call to give the
    same two people another booking, or ``barber_user``/``client_user`` to link
    fresh profiles to existing accounts.
    """

    def _make(
        status=BookingStatus.CONFIRMED,
        *,
        barber_claimed: bool = True,
        client_linked: bool = True,
        barber_user: User | None = None,
        client_user: User | None = None,
        barber_profile: BarberProfile | None = None,
        client_profile: ClientProfile | None = None,
        appointment_date: date = date(2030, 5, 17),
        appointment_time: str = "10:30",
        service_name: str = "Skin Fade",
        barber_contact: dict | None = None,
        client_contact: dict | None = None,
    ) -> SimpleNamespace:
        if barber_profile is None:
            if barber_claimed and barber_user is None:
                barber_user = _user(db, "Barry", "Barber")
            barber_profile = BarberProfile(
                user_id=barber_user.id if barber_claimed else None,
                business_name="Fade Factory",
                **(barber_contact or {}),
            )
            db.add(barber_profile)
        if client_profile is None:
            if client_linked and client_user is None:
                client_user = _user(db, "Cleo", "Client")
            client_profile = ClientProfile(
                user_id=client_user.id if client_linked else None,
                first_name="Cleo",
                last_name="Client",
                **(client_contact or {}),
            )
            db.add(client_profile)
        db.flush()

        service = Service(barber_id=barber_profile.id, name=service_name, duration_minutes=30, price=25)
        db.add(service)
        db.flush()
        booking = Booking(
            barber_id=barber_profile.id,
            client_id=client_profile.id,
            service_id=service.id,
            appointment_date=appointment_date,
            appointment_time=appointment_time,
            status=status,
        )
        db.add(booking)
        db.commit()
        return SimpleNamespace(
            booking=booking,
            barber_user=db.get(User, barber_profile.user_id) if barber_profile.user_id else None,
            client_user=db.get(User, client_profile.user_id) if client_profile.user_id else None,
            barber_profile=barber_profile,
            client_profile=client_profile,
            service=service,
        )

    return _make
