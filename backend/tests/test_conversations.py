from datetime import date, datetime, timedelta

from sqlalchemy.exc import OperationalError

from app.models import BookingStatus, Message
from app.schemas import MessageCreate
from app.services import messaging
from app.services.conversations import list_conversations
from app.services.participants import (
    ResolvedParticipant,
    UnresolvedParticipant,
    counterpart_for,
    resolve_parties,
)


def _send(db, sender, booking, receiver, text):
    return messaging.send_message(
        db,
        sender,
        MessageCreate(booking_id=booking.id, receiver_id=receiver.id, message_text=text),
    )


def test_cancelled_and_refund_bookings_are_excluded_for_both_parties(db, make_booking):
    open_bk = make_booking(BookingStatus.PENDING)
    cancelled = make_booking(
        BookingStatus.CANCELLED,
        barber_profile=open_bk.barber_profile,
        client_profile=open_bk.client_profile,
    )
    refund = make_booking(
        BookingStatus.REFUND_REQUESTED,
        barber_profile=open_bk.barber_profile,
        client_profile=open_bk.client_profile,
    )

    for user in (open_bk.barber_user, open_bk.client_user):
        ids = [c.booking_id for c in list_conversations(db, user.id)]
        assert ids == [open_bk.booking.id]
        assert cancelled.booking.id not in ids
        assert refund.booking.id not in ids


def test_completed_bookings_are_listed(db, make_booking):
    world = make_booking(BookingStatus.COMPLETED)
    convs = list_conversations(db, world.client_user.id)
    assert [c.booking.status for c in convs] == ["completed"]


def test_unclaimed_barber_is_listed_as_read_only(db, make_booking):
    world = make_booking(barber_claimed=False)

    convs = list_conversations(db, world.client_user.id)

    assert len(convs) == 1
    participant = convs[0].participant
    assert participant.id is None
    assert participant.can_message is False
    assert participant.type == "barber"
    assert participant.name == "Fade Factory"


def test_snapshot_carries_booking_fields(db, make_booking):
    world = make_booking(
        BookingStatus.CONFIRMED,
        appointment_date=date(2031, 2, 3),
        appointment_time="14:15",
        service_name="Beard Trim",
    )
    conv = list_conversations(db, world.barber_user.id)[0]
    assert conv.booking.model_dump() == {
        "service_name": "Beard Trim",
        "appointment_date": date(2031, 2, 3),
        "appointment_time": "14:15",
        "status": "confirmed",
    }
    assert conv.last_message is None
    assert conv.unread_count == 0
    assert conv.participant.can_message is True


def test_sorted_by_last_message_then_appointment(db, make_booking):
    a = make_booking(appointment_date=date(2030, 1, 1))
    barber_profile, client_profile = a.barber_profile, a.client_profile
    barber, client = a.barber_user, a.client_user
    b = make_booking(appointment_date=date(2030, 1, 2), barber_profile=barber_profile, client_profile=client_profile)
    idle_old = make_booking(appointment_date=date(2030, 3, 1), barber_profile=barber_profile, client_profile=client_profile)
    idle_new = make_booking(appointment_date=date(2030, 6, 1), barber_profile=barber_profile, client_profile=client_profile)

    m_a = _send(db, client, a.booking, barber, "on booking a")
    m_b = _send(db, client, b.booking, barber, "on booking b")
    now = datetime(2030, 1, 1, 12, 0)
    db.get(Message, m_a.id).created_at = now + timedelta(hours=2)
    db.get(Message, m_b.id).created_at = now
    db.commit()

    order = [c.booking_id for c in list_conversations(db, barber.id)]
    assert order == [a.booking.id, b.booking.id, idle_new.booking.id, idle_old.booking.id]


def test_last_message_and_unread_are_per_booking(db, make_booking):
    a = make_booking()
    b = make_booking(barber_profile=a.barber_profile, client_profile=a.client_profile)
    barber, client = a.barber_user, a.client_user

    _send(db, client, a.booking, barber, "a1")
    _send(db, client, a.booking, barber, "a2")
    _send(db, barber, a.booking, client, "a3 reply")
    _send(db, client, b.booking, barber, "b1")

    by_id = {c.booking_id: c for c in list_conversations(db, barber.id)}
    assert by_id[a.booking.id].unread_count == 2
    assert by_id[a.booking.id].last_message.message_text == "a3 reply"
    assert by_id[b.booking.id].unread_count == 1
    assert by_id[b.booking.id].last_message.message_text == "b1"

    client_view = {c.booking_id: c for c in list_conversations(db, client.id)}
    assert client_view[a.booking.id].unread_count == 1
    assert client_view[b.booking.id].unread_count == 0


def test_self_booking_appears_once_with_barber_role(db, make_booking):
    first = make_booking()
    owner = first.barber_user
    world = make_booking(barber_profile=first.barber_profile, client_user=owner)

    convs = [c for c in list_conversations(db, owner.id) if c.booking_id == world.booking.id]

    assert len(convs) == 1
    # the owner acts as barber, so the counterpart shown is the client side
    assert convs[0].participant.type == "client"


def test_outsider_sees_nothing(db, make_booking):
    make_booking()
    stranger = make_booking(BookingStatus.CANCELLED).client_user
    assert list_conversations(db, stranger.id) == []


def test_store_failure_degrades_to_empty_list(db, make_booking, monkeypatch):
    world = make_booking()

    def fail(*args, **kwargs):
        raise OperationalError("SELECT", {}, Exception("connection reset"))

    monkeypatch.setattr("app.crud.crud_message.get_last_messages_for_bookings", fail)
    assert list_conversations(db, world.barber_user.id) == []


def test_projection_failure_degrades_to_empty_list(db, make_booking, monkeypatch):
    world = make_booking()
    messaging.send_message(
        db,
        world.client_user,
        MessageCreate(booking_id=world.booking.id, receiver_id=world.barber_user.id, message_text="hi"),
    )

    def broken_snapshot(booking):
        raise ValueError("appointment_time is not HH:MM")

    monkeypatch.setattr("app.services.conversations._snapshot", broken_snapshot)
    assert list_conversations(db, world.barber_user.id) == []


def test_resolve_parties_tags_each_side(db, make_booking):
    world = make_booking(client_linked=False)
    parties = resolve_parties(world.booking)

    assert isinstance(parties.barber, ResolvedParticipant)
    assert parties.barber.user_id == world.barber_user.id
    assert isinstance(parties.client, UnresolvedParticipant)
    assert parties.client.name == "Cleo Client"
    assert counterpart_for(parties, world.barber_user.id) is parties.client
    assert counterpart_for(parties, 424242) is None


def test_display_name_fallbacks(db, make_booking):
    world = make_booking()
    world.barber_profile.business_name = "  "
    world.client_profile.first_name = None
    world.client_profile.last_name = None
    db.commit()

    parties = resolve_parties(world.booking)
    assert parties.barber.name == "Barber"
    assert parties.client.name == "Client"
