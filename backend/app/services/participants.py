"""Resolve the two sides of a booking into messaging identities.

A profile that is not linked to a user account cannot receive messages, so
each side is either a ``ResolvedParticipant`` carrying a ``user_id`` or an
``UnresolvedParticipant`` with only display data.
"""

from dataclasses import dataclass
from typing import Optional, Union

from .. import models

BARBER = "barber"
CLIENT = "client"


@dataclass(frozen=True)
class ResolvedParticipant:
    user_id: int
    name: str
    type: str
    avatar: Optional[str] = None


@dataclass(frozen=True)
class UnresolvedParticipant:
    name: str
    type: str
    avatar: Optional[str] = None


Participant = Union[ResolvedParticipant, UnresolvedParticipant]


@dataclass(frozen=True)
class BookingParties:
    barber: Participant
    client: Participant

    def role_of(self, user_id: int) -> Optional[str]:
        """Return the role ``user_id`` plays; barber wins on a self-booking."""
        if isinstance(self.barber, ResolvedParticipant) and self.barber.user_id == user_id:
            return BARBER
        if isinstance(self.client, ResolvedParticipant) and self.client.user_id == user_id:
            return CLIENT
        return None

    def is_party(self, user_id: int) -> bool:
        return self.role_of(user_id) is not None

    def by_user_id(self, user_id: int) -> Optional[ResolvedParticipant]:
        role = self.role_of(user_id)
        if role == BARBER:
            return self.barber  # type: ignore[return-value]
        if role == CLIENT:
            return self.client  # type: ignore[return-value]
        return None


def barber_display_name(profile: Optional[models.BarberProfile]) -> str:
    name = (getattr(profile, "business_name", None) or "").strip()
    return name or "Barber"


def client_display_name(profile: Optional[models.ClientProfile]) -> str:
    parts = [
        (getattr(profile, "first_name", None) or "").strip(),
        (getattr(profile, "last_name", None) or "").strip(),
    ]
    name = " ".join(p for p in parts if p)
    return name or "Client"


def _participant(user_id: Optional[int], name: str, kind: str, avatar: Optional[str]) -> Participant:
    if user_id is None:
        return UnresolvedParticipant(name=name, type=kind, avatar=avatar)
    return ResolvedParticipant(user_id=int(user_id), name=name, type=kind, avatar=avatar)


def resolve_parties(booking: models.Booking) -> BookingParties:
    barber = booking.barber
    client = booking.client
    return BookingParties(
        barber=_participant(
            getattr(barber, "user_id", None),
            barber_display_name(barber),
            BARBER,
            getattr(barber, "profile_image_url", None),
        ),
        client=_participant(
            getattr(client, "user_id", None),
            client_display_name(client),
            CLIENT,
            getattr(client, "profile_image_url", None),
        ),
    )


def counterpart_for(parties: BookingParties, user_id: int) -> Optional[Participant]:
    """The other side of the booking from ``user_id``'s point of view.

    Returns ``None`` when ``user_id`` is not a party.
    """
    role = parties.role_of(user_id)
    if role == BARBER:
        return parties.client
    if role == CLIENT:
        return parties.barber
    return None
