# backend/app/models/service.py

from sqlalchemy import Column, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import relationship

from .base import BaseModel


class Service(BaseModel):
    __tablename__ = "services"

    id = Column(Integer, primary_key=True, index=True)
    barber_id = Column(Integer, ForeignKey("barber_profiles.id", ondelete="CASCADE"), index=True)
    name = Column(String, nullable=False)
    duration_minutes = Column(Integer, nullable=True)
    price = Column(Numeric(10, 2), nullable=True)

    barber = relationship("BarberProfile", back_populates="services")
    bookings = relationship("Booking", back_populates="service")
