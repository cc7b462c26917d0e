# backend/app/models/booking.py

from sqlalchemy import Column, Date, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from .base import BaseModel
from .booking_status import BookingStatus
from .types import CaseInsensitiveEnum


class Booking(BaseModel):
    __tablename__ = "bookings"

    id               = Column(Integer, primary_key=True, index=True)
    barber_id        = Column(Integer, ForeignKey("barber_profiles.id"), nullable=False, index=True)
    client_id        = Column(Integer, ForeignKey("client_profiles.id"), nullable=False, index=True)
    service_id       = Column(Integer, ForeignKey("services.id", ondelete="SET NULL"), nullable=True)
    appointment_date = Column(Date, nullable=False, index=True)
    appointment_time = Column(String, nullable=False)  # "HH:MM" in the shop's local time
    status           = Column(
        CaseInsensitiveEnum(BookingStatus, name="bookingstatus"),
        default=BookingStatus.PENDING,
        nullable=False,
        index=True,
    )
    notes            = Column(Text, nullable=True)

    # Relationships
    barber   = relationship("BarberProfile", back_populates="bookings")
    client   = relationship("ClientProfile", back_populates="bookings")
    service  = relationship("Service", back_populates="bookings")
    messages = relationship("Message", back_populates="booking", cascade="all, delete-orphan")
