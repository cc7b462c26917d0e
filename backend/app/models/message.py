from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import relationship

from .base import BaseModel


class Message(BaseModel):
    """One chat line inside a booking's thread.

    Rows are append-only: only ``read_at`` changes after insert, and only from
    NULL to a timestamp.
    """

    __tablename__ = "messages"
    __table_args__ = (
        # History reads and last-message lookups
        Index("ix_messages_booking_created", "booking_id", "created_at"),
        # Unread badge counts
        Index("ix_messages_receiver_read", "receiver_id", "read_at"),
    )

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False)
    sender_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    receiver_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    message_text = Column(String(1000), nullable=False)
    read_at = Column(DateTime, nullable=True)

    booking = relationship("Booking", back_populates="messages")
    sender = relationship("User", foreign_keys=[sender_id])
    receiver = relationship("User", foreign_keys=[receiver_id])
