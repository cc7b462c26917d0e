from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List

from .. import models, schemas
from ..services import messaging
from .dependencies import get_db, get_current_user

router = APIRouter(tags=["messages"])


@router.get("/bookings/{booking_id}/messages", response_model=List[schemas.ThreadMessage])
def read_messages(
    booking_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    """Full thread for a booking, oldest first."""
    return messaging.get_messages(db, booking_id, current_user.id)


@router.post("/messages", response_model=schemas.MessageResponse)
def create_message(
    message_in: schemas.MessageCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    # The service pushes the stored row to live subscribers
    return messaging.send_message(db, current_user, message_in)


@router.put("/messages/{message_id}/read", response_model=schemas.MarkReadResponse)
def mark_message_read(
    message_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    result = messaging.mark_read(db, message_id, current_user.id)
    return {"updated": result.updated, "read_at": result.read_at}


@router.put("/bookings/{booking_id}/messages/read", response_model=schemas.MarkReadResponse)
def mark_conversation_read(
    booking_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    """Mark every message addressed to the current user in this booking as read."""
    result = messaging.mark_conversation_read(db, booking_id, current_user.id)
    return {"updated": result.updated, "read_at": result.read_at}
