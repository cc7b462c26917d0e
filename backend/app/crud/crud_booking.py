from sqlalchemy.orm import Session, joinedload
from typing import List, Optional

from .. import models
from ..models.booking_status import MESSAGING_STATUSES


class CRUDBooking:
    def _with_parties(self, db: Session):
        return db.query(models.Booking).options(
            joinedload(models.Booking.barber),
            joinedload(models.Booking.client),
            joinedload(models.Booking.service),
        )

    def get_booking(self, db: Session, booking_id: int) -> Optional[models.Booking]:
        """Return the booking with both profiles and the service eagerly loaded."""
        return self._with_parties(db).filter(models.Booking.id == booking_id).first()

    def get_messaging_bookings_as_barber(self, db: Session, user_id: int) -> List[models.Booking]:
        return (
            self._with_parties(db)
            .join(models.BarberProfile, models.BarberProfile.id == models.Booking.barber_id)
            .filter(models.BarberProfile.user_id == user_id)
            .filter(models.Booking.status.in_(list(MESSAGING_STATUSES)))
            .all()
        )

    def get_messaging_bookings_as_client(self, db: Session, user_id: int) -> List[models.Booking]:
        return (
            self._with_parties(db)
            .join(models.ClientProfile, models.ClientProfile.id == models.Booking.client_id)
            .filter(models.ClientProfile.user_id == user_id)
            .filter(models.Booking.status.in_(list(MESSAGING_STATUSES)))
            .all()
        )


booking = CRUDBooking()
