from typing import Literal, Optional
from datetime import datetime
from pydantic import BaseModel


ParticipantType = Literal["barber", "client"]


class MessageCreate(BaseModel):
    booking_id: int
    # Null when the counterpart profile is unclaimed; rejected by the send path
    receiver_id: Optional[int] = None
    message_text: str


class MessageResponse(BaseModel):
    id: int
    booking_id: int
    sender_id: int
    receiver_id: int
    message_text: str
    created_at: datetime
    read_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class ParticipantRef(BaseModel):
    id: Optional[int] = None
    name: str
    type: ParticipantType


class ThreadMessage(MessageResponse):
    """History row annotated with both parties resolved from the booking."""

    sender: ParticipantRef
    receiver: ParticipantRef


class MarkReadResponse(BaseModel):
    updated: int
    read_at: Optional[datetime] = None


class UnreadCountResponse(BaseModel):
    total: int
