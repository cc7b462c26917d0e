from datetime import date
from typing import Optional

from pydantic import BaseModel

from .message import MessageResponse, ParticipantType


class Participant(BaseModel):
    # ``id`` is null for unclaimed profiles; such threads are read-only
    id: Optional[int] = None
    name: str
    type: ParticipantType
    avatar: Optional[str] = None
    can_message: bool = True


class BookingSnapshot(BaseModel):
    service_name: Optional[str] = None
    appointment_date: date
    appointment_time: str
    status: str


class Conversation(BaseModel):
    booking_id: int
    participant: Participant
    last_message: Optional[MessageResponse] = None
    unread_count: int = 0
    booking: BookingSnapshot
