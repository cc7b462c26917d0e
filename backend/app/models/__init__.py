from .user import User
from .barber_profile import BarberProfile
from .client_profile import ClientProfile
from .service import Service
from .booking import Booking
from .booking_status import BookingStatus, MESSAGING_STATUSES
from .message import Message

__all__ = [
    "User",
    "BarberProfile",
    "ClientProfile",
    "Service",
    "Booking",
    "BookingStatus",
    "MESSAGING_STATUSES",
    "Message",
]
