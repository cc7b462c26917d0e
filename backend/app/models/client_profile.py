# backend/app/models/client_profile.py

from sqlalchemy import Boolean, Column, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from .base import BaseModel


class ClientProfile(BaseModel):
    __tablename__ = "client_profiles"

    id = Column(Integer, primary_key=True, index=True)
    # NULL when the client booked as a guest and never linked an account
    user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        unique=True,
        index=True,
    )
    first_name = Column(String, nullable=True)
    last_name = Column(String, nullable=True)
    email = Column(String, nullable=True)
    phone = Column(String, nullable=True)
    profile_image_url = Column(String, nullable=True)
    sms_consent = Column(Boolean, nullable=False, default=False)
    email_consent = Column(Boolean, nullable=False, default=True)

    user = relationship("User", back_populates="client_profile")
    bookings = relationship("Booking", back_populates="client")
