# backend/app/models/barber_profile.py

from sqlalchemy import Boolean, Column, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from .base import BaseModel


class BarberProfile(BaseModel):
    """A barber's public business profile.

    ``user_id`` stays NULL until the barber claims the profile; unclaimed
    profiles can be booked but cannot receive chat messages.
    """

    __tablename__ = "barber_profiles"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        unique=True,
        index=True,
    )
    business_name = Column(String, index=True, nullable=True)
    email = Column(String, nullable=True)
    phone = Column(String, nullable=True)
    profile_image_url = Column(String, nullable=True)
    sms_consent = Column(Boolean, nullable=False, default=False)
    email_consent = Column(Boolean, nullable=False, default=True)

    user = relationship("User", back_populates="barber_profile")
    services = relationship("Service", back_populates="barber")
    bookings = relationship("Booking", back_populates="barber")
