"""Derive the conversation list for a user from their bookings.

Conversations are never stored: every call projects the user's messaging
bookings plus their messages into ``schemas.Conversation`` rows.
"""

import logging
from typing import Dict, List

from sqlalchemy.orm import Session

from .. import crud, models, schemas
from .participants import (
    Participant,
    ResolvedParticipant,
    counterpart_for,
    resolve_parties,
)

logger = logging.getLogger(__name__)


def _participant_out(participant: Participant) -> schemas.Participant:
    resolved = isinstance(participant, ResolvedParticipant)
    return schemas.Participant(
        id=participant.user_id if resolved else None,
        name=participant.name,
        type=participant.type,
        avatar=participant.avatar,
        can_message=resolved,
    )


def _snapshot(booking: models.Booking) -> schemas.BookingSnapshot:
    status = booking.status
    return schemas.BookingSnapshot(
        service_name=booking.service.name if booking.service else None,
        appointment_date=booking.appointment_date,
        appointment_time=booking.appointment_time,
        status=getattr(status, "value", status),
    )


def _load_bookings(db: Session, user_id: int) -> Dict[int, models.Booking]:
    # Barber-side rows go in first so a self-booking keeps the barber role.
    merged: Dict[int, models.Booking] = {}
    for booking in crud.booking.get_messaging_bookings_as_barber(db, user_id):
        merged.setdefault(booking.id, booking)
    for booking in crud.booking.get_messaging_bookings_as_client(db, user_id):
        merged.setdefault(booking.id, booking)
    return merged


def sort_conversations(items: List[schemas.Conversation]) -> List[schemas.Conversation]:
    """Most recent activity first; threads without messages go last by appointment."""
    active = [c for c in items if c.last_message is not None]
    idle = [c for c in items if c.last_message is None]
    active.sort(key=lambda c: (c.last_message.created_at, c.last_message.id), reverse=True)
    idle.sort(key=lambda c: (c.booking.appointment_date, c.booking.appointment_time), reverse=True)
    return active + idle


def _project(db: Session, user_id: int) -> List[schemas.Conversation]:
    bookings = _load_bookings(db, user_id)
    booking_ids = list(bookings)
    last_messages = crud.crud_message.get_last_messages_for_bookings(db, booking_ids)
    unread_counts = crud.crud_message.get_unread_counts_for_bookings(db, user_id, booking_ids)

    items: List[schemas.Conversation] = []
    for booking_id, booking in bookings.items():
        counterpart = counterpart_for(resolve_parties(booking), user_id)
        if counterpart is None:
            continue
        last = last_messages.get(booking_id)
        items.append(
            schemas.Conversation(
                booking_id=booking_id,
                participant=_participant_out(counterpart),
                last_message=schemas.MessageResponse.model_validate(last) if last else None,
                unread_count=unread_counts.get(booking_id, 0),
                booking=_snapshot(booking),
            )
        )
    return sort_conversations(items)


def list_conversations(db: Session, user_id: int) -> List[schemas.Conversation]:
    """Return the user's conversations, or ``[]`` if anything fails.

    The dashboard shell renders an empty inbox rather than an error.
    """
    try:
        items = _project(db, user_id)
    except Exception:
        logger.exception("Failed to load conversations for user %s", user_id)
        return []
    logger.debug("Derived %d conversations for user %s", len(items), user_id)
    return items
