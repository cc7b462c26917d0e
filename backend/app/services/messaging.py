"""Message history, sending, read state and unread totals for booking threads."""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .. import crud, models, schemas
from ..core.config import settings
from ..models.booking_status import MESSAGING_STATUSES
from ..notifications import new_message
from ..realtime import feed as realtime_feed
from ..utils.messages import sanitize_message_text
from .errors import AccessDenied, AuthError, NotFound, TransientIOError, ValidationError
from .participants import (
    BARBER,
    CLIENT,
    BookingParties,
    ResolvedParticipant,
    counterpart_for,
    resolve_parties,
)

logger = logging.getLogger(__name__)

Dispatcher = Callable[[models.Message], object]


@dataclass
class ReadResult:
    """Outcome of a mark-read call; ``message_ids`` lists rows this call stamped."""

    booking_id: int
    reader_id: int
    message_ids: List[int] = field(default_factory=list)
    read_at: Optional[datetime] = None

    @property
    def updated(self) -> int:
        return len(self.message_ids)


def _authorized_booking(db: Session, booking_id: int, user_id: int) -> Tuple[models.Booking, BookingParties]:
    booking = crud.booking.get_booking(db, booking_id)
    if booking is None:
        raise NotFound("Booking not found", {"booking_id": "not_found"})
    parties = resolve_parties(booking)
    if not parties.is_party(user_id):
        logger.warning("User %s denied access to booking %s", user_id, booking_id)
        raise AccessDenied()
    return booking, parties


def _participant_refs(parties: BookingParties) -> Dict[int, schemas.ParticipantRef]:
    refs: Dict[int, schemas.ParticipantRef] = {}
    # Client first so the barber entry wins on a self-booking
    for p in (parties.client, parties.barber):
        if isinstance(p, ResolvedParticipant):
            refs[p.user_id] = schemas.ParticipantRef(id=p.user_id, name=p.name, type=p.type)
    return refs


def _ref(refs: Dict[int, schemas.ParticipantRef], user_id: int, other_type: Optional[str]) -> schemas.ParticipantRef:
    ref = refs.get(user_id)
    if ref is not None:
        return ref
    # Profile was unlinked after the message was written
    kind = CLIENT if other_type == BARBER else BARBER
    return schemas.ParticipantRef(id=user_id, name=kind.capitalize(), type=kind)


def _live_feed(feed: Optional[realtime_feed.MessageFeed]) -> realtime_feed.MessageFeed:
    return feed or realtime_feed.message_feed


def _publish(feed: Optional[realtime_feed.MessageFeed], msg: models.Message) -> None:
    try:
        _live_feed(feed).publish_threadsafe(msg.booking_id, realtime_feed.message_payload(msg))
    except Exception as exc:
        logger.warning("Realtime publish for message %s failed: %s", msg.id, exc)


def _publish_receipt(feed: Optional[realtime_feed.MessageFeed], result: "ReadResult") -> None:
    if not result.message_ids:
        return
    receipt = realtime_feed.read_payload(
        result.booking_id, result.reader_id, result.message_ids, result.read_at
    )
    try:
        _live_feed(feed).publish_read_threadsafe(result.booking_id, receipt)
    except Exception as exc:
        logger.warning("Read receipt for booking %s failed: %s", result.booking_id, exc)


def get_messages(db: Session, booking_id: int, user_id: int) -> List[schemas.ThreadMessage]:
    """Return the booking's thread oldest first, each row tagged with both parties."""
    _, parties = _authorized_booking(db, booking_id, user_id)
    refs = _participant_refs(parties)
    out: List[schemas.ThreadMessage] = []
    for msg in crud.crud_message.get_messages_for_booking(db, booking_id):
        receiver = refs.get(msg.receiver_id)
        sender = _ref(refs, msg.sender_id, receiver.type if receiver else None)
        if receiver is None:
            receiver = _ref(refs, msg.receiver_id, sender.type)
        row = schemas.MessageResponse.model_validate(msg)
        out.append(schemas.ThreadMessage(**row.model_dump(), sender=sender, receiver=receiver))
    return out


def send_message(
    db: Session,
    sender: Optional[models.User],
    message_in: schemas.MessageCreate,
    dispatcher: Optional[Dispatcher] = None,
    feed: Optional[realtime_feed.MessageFeed] = None,
) -> models.Message:
    """Validate, persist and hand a new message to the notification dispatcher.

    Every check runs before the insert. The stored row is then pushed to the
    booking's live subscribers. Feed and dispatcher failures are logged and
    never affect the returned message.
    """
    if sender is None or getattr(sender, "id", None) is None:
        raise AuthError()

    text = sanitize_message_text(message_in.message_text)
    if not text:
        raise ValidationError("Message cannot be empty", {"message_text": "required"})
    if len(text) > settings.MESSAGE_MAX_LENGTH:
        raise ValidationError(
            f"Message must be at most {settings.MESSAGE_MAX_LENGTH} characters",
            {"message_text": "too_long"},
        )

    booking, parties = _authorized_booking(db, message_in.booking_id, sender.id)
    if booking.status not in MESSAGING_STATUSES:
        raise ValidationError(
            "This booking is not open for messaging", {"booking_id": "closed"}
        )

    counterpart = counterpart_for(parties, sender.id)
    if message_in.receiver_id is None or not isinstance(counterpart, ResolvedParticipant):
        raise ValidationError(
            "The other party has not claimed their profile yet and cannot receive messages",
            {"receiver_id": "unresolved"},
        )
    if message_in.receiver_id != counterpart.user_id:
        raise ValidationError(
            "Recipient is not the other party on this booking", {"receiver_id": "invalid"}
        )

    try:
        msg = crud.crud_message.create_message(
            db,
            booking_id=booking.id,
            sender_id=sender.id,
            receiver_id=counterpart.user_id,
            message_text=text,
        )
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Failed to store message on booking %s", booking.id)
        raise TransientIOError("Could not send message, please retry") from exc

    logger.info("Message %s sent on booking %s by user %s", msg.id, msg.booking_id, sender.id)
    _publish(feed, msg)

    dispatch = dispatcher or new_message.dispatch_new_message
    try:
        dispatch(msg)
    except Exception as exc:
        logger.warning("Notification dispatch for message %s failed: %s", msg.id, exc)
    return msg


def mark_read(
    db: Session,
    message_id: int,
    user_id: int,
    feed: Optional[realtime_feed.MessageFeed] = None,
) -> ReadResult:
    """Stamp one message as read; a no-op unless ``user_id`` is its unread receiver."""
    msg = crud.crud_message.get_message(db, message_id)
    if msg is None:
        raise NotFound("Message not found", {"message_id": "not_found"})
    booking_id = msg.booking_id
    now = datetime.utcnow()
    try:
        updated = crud.crud_message.mark_message_read(db, message_id, user_id, now)
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Failed to mark message %s read", message_id)
        raise TransientIOError("Could not update read state, please retry") from exc
    if not updated:
        return ReadResult(booking_id=booking_id, reader_id=user_id)
    result = ReadResult(booking_id=booking_id, reader_id=user_id, message_ids=[message_id], read_at=now)
    _publish_receipt(feed, result)
    return result


def mark_conversation_read(
    db: Session,
    booking_id: int,
    user_id: int,
    feed: Optional[realtime_feed.MessageFeed] = None,
) -> ReadResult:
    """Stamp every unread message addressed to ``user_id`` in the booking."""
    _authorized_booking(db, booking_id, user_id)
    now = datetime.utcnow()
    try:
        ids = crud.crud_message.mark_messages_read(db, booking_id, user_id, now)
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Failed to mark booking %s read for user %s", booking_id, user_id)
        raise TransientIOError("Could not update read state, please retry") from exc
    if ids:
        logger.debug("User %s read %d messages on booking %s", user_id, len(ids), booking_id)
    result = ReadResult(booking_id=booking_id, reader_id=user_id, message_ids=ids, read_at=now if ids else None)
    _publish_receipt(feed, result)
    return result


def get_unread_totals(db: Session, user_id: int) -> Tuple[int, Optional[datetime]]:
    """Unread count addressed to the user plus the newest unread timestamp.

    Store failures degrade to ``(0, None)``.
    """
    try:
        return crud.crud_message.get_unread_message_totals_for_user(db, user_id)
    except SQLAlchemyError:
        logger.exception("Failed to count unread messages for user %s", user_id)
        return 0, None


def get_unread_count(db: Session, user_id: int) -> int:
    total, _ = get_unread_totals(db, user_id)
    return total


def can_access(db: Session, booking_id: int, user_id: int) -> bool:
    """True when the booking exists and ``user_id`` is one of its linked parties."""
    try:
        _authorized_booking(db, booking_id, user_id)
    except (NotFound, AccessDenied):
        return False
    return True
