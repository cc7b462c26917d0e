from .message import (
    MessageCreate,
    MessageResponse,
    ParticipantRef,
    ThreadMessage,
    MarkReadResponse,
    UnreadCountResponse,
)
from .conversation import Participant, BookingSnapshot, Conversation
