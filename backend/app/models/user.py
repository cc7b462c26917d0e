# backend/app/models/user.py

from sqlalchemy import Boolean, Column, Integer, String
from sqlalchemy.orm import relationship
from .base import BaseModel


class User(BaseModel):
    """Authenticated account. ``id`` is the identity used on every message row."""

    __tablename__ = "users"

    id           = Column(Integer, primary_key=True, index=True)
    email        = Column(String, unique=True, index=True, nullable=False)
    password     = Column(String, nullable=False)
    first_name   = Column(String, nullable=False, default="")
    last_name    = Column(String, nullable=False, default="")
    phone_number = Column(String, nullable=True)
    is_active    = Column(Boolean, default=True)

    # ↔–↔ A user may have claimed a barber profile, a client profile, or both.
    barber_profile = relationship("BarberProfile", back_populates="user", uselist=False)
    client_profile = relationship("ClientProfile", back_populates="user", uselist=False)
