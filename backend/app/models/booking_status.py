import enum


class BookingStatus(str, enum.Enum):
    """Booking lifecycle states as stored by the booking flow."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REFUND_REQUESTED = "refund_requested"


# Bookings in these states have an open chat thread.
MESSAGING_STATUSES = frozenset(
    {BookingStatus.PENDING, BookingStatus.CONFIRMED, BookingStatus.COMPLETED}
)
