from typing import Dict, List, Optional, Tuple
from datetime import datetime

from sqlalchemy.orm import Session
from sqlalchemy import func, update

from .. import models


def create_message(
    db: Session,
    booking_id: int,
    sender_id: int,
    receiver_id: int,
    message_text: str,
) -> models.Message:
    db_msg = models.Message(
        booking_id=booking_id,
        sender_id=sender_id,
        receiver_id=receiver_id,
        message_text=message_text,
        read_at=None,
    )
    db.add(db_msg)
    db.commit()
    db.refresh(db_msg)
    return db_msg


def get_message(db: Session, message_id: int) -> models.Message | None:
    return db.query(models.Message).filter(models.Message.id == message_id).first()


def get_messages_for_booking(db: Session, booking_id: int) -> List[models.Message]:
    """Return the full thread oldest first; ``id`` breaks timestamp ties."""
    return (
        db.query(models.Message)
        .filter(models.Message.booking_id == booking_id)
        .order_by(models.Message.created_at.asc(), models.Message.id.asc())
        .all()
    )


def get_last_messages_for_bookings(
    db: Session,
    booking_ids: List[int],
) -> Dict[int, models.Message]:
    """Return the latest message for each booking in one query."""
    if not booking_ids:
        return {}

    window = (
        db.query(
            models.Message.booking_id.label("booking_id"),
            models.Message.id.label("message_id"),
            func.row_number()
            .over(
                partition_by=models.Message.booking_id,
                order_by=(models.Message.created_at.desc(), models.Message.id.desc()),
            )
            .label("rn"),
        )
        .filter(models.Message.booking_id.in_(booking_ids))
        .subquery()
    )

    latest_ids = (
        db.query(window.c.message_id)
        .filter(window.c.rn == 1)
        .all()
    )
    message_ids = [row.message_id for row in latest_ids if row.message_id is not None]
    if not message_ids:
        return {}

    messages = (
        db.query(models.Message)
        .filter(models.Message.id.in_(message_ids))
        .all()
    )
    return {m.booking_id: m for m in messages}


def get_unread_counts_for_bookings(
    db: Session,
    user_id: int,
    booking_ids: List[int],
) -> Dict[int, int]:
    """Unread messages addressed to ``user_id``, grouped by booking."""
    if not booking_ids:
        return {}
    rows = (
        db.query(models.Message.booking_id, func.count(models.Message.id))
        .filter(models.Message.booking_id.in_(booking_ids))
        .filter(models.Message.receiver_id == user_id)
        .filter(models.Message.read_at.is_(None))
        .group_by(models.Message.booking_id)
        .all()
    )
    return {int(bid): int(cnt or 0) for bid, cnt in rows}


def mark_message_read(db: Session, message_id: int, user_id: int, read_at: datetime) -> int:
    """Stamp ``read_at`` on one message if ``user_id`` received it and it is unread."""
    updated = (
        db.query(models.Message)
        .filter(
            models.Message.id == message_id,
            models.Message.receiver_id == user_id,
            models.Message.read_at.is_(None),
        )
        .update({"read_at": read_at}, synchronize_session="fetch")
    )
    db.commit()
    return int(updated)


def mark_messages_read(db: Session, booking_id: int, user_id: int, read_at: datetime) -> List[int]:
    """Mark every unread message addressed to ``user_id`` in a booking as read.

    Returns only the ids this call stamped; rows a concurrent reader got to
    first keep their original ``read_at`` and are left out.
    """
    stmt = (
        update(models.Message)
        .where(
            models.Message.booking_id == booking_id,
            models.Message.receiver_id == user_id,
            models.Message.read_at.is_(None),
        )
        .values(read_at=read_at)
    )
    if db.get_bind().dialect.update_returning:
        result = db.execute(
            stmt.returning(models.Message.id),
            execution_options={"synchronize_session": "evaluate"},
        )
        ids = list(result.scalars().all())
    else:
        db.execute(stmt, execution_options={"synchronize_session": "evaluate"})
        ids = [
            row.id
            for row in db.query(models.Message.id).filter(
                models.Message.booking_id == booking_id,
                models.Message.receiver_id == user_id,
                models.Message.read_at == read_at,
            )
        ]
    db.commit()
    return sorted(ids)


def get_unread_message_totals_for_user(
    db: Session, user_id: int
) -> Tuple[int, Optional[datetime]]:
    """Return total unread messages addressed to the user and the newest unread timestamp."""
    count, latest_ts = (
        db.query(
            func.count(models.Message.id),
            func.max(models.Message.created_at),
        )
        .filter(models.Message.receiver_id == user_id)
        .filter(models.Message.read_at.is_(None))
        .one()
    )
    return int(count or 0), latest_ts
