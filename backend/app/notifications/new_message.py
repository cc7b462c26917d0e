"""Cross-channel alerts (SMS and email) for a newly sent chat message.

``dispatch_new_message`` is the only entry point the send path uses: it hands
the job to the background worker and never raises. ``notify_new_message`` does
the actual work and is safe to call directly in tests.
"""

from __future__ import annotations

import html
import logging
from datetime import date
from typing import Dict, Optional

from sqlalchemy.orm import Session

from app import crud, models
from app.core.config import frontend_link, settings
from app.database import get_db_session
from app.services.participants import BARBER, resolve_parties
from app.utils import background_worker
from app.utils.email import send_email
from app.utils.messages import sms_preview
from app.utils.sms import send_sms

logger = logging.getLogger(__name__)


def dashboard_link(booking_id: int) -> str:
    return frontend_link(f"/dashboard?tab=messages&booking={booking_id}")


def format_new_message_sms(sender_name: str, message_text: str) -> str:
    preview = sms_preview(message_text, settings.SMS_PREVIEW_LENGTH)
    return f"New message from {sender_name}: {preview}"


def render_new_message_email(
    *,
    booking_id: int,
    sender_name: str,
    receiver_name: str,
    message_text: str,
    service_name: Optional[str],
    appointment_date: Optional[date],
) -> tuple[str, str]:
    """Return ``(subject, html)`` for the new-message email.

    The full message text is included, HTML-escaped.
    """
    subject = f"New message from {sender_name}"
    when = appointment_date.strftime("%A, %B %d, %Y") if appointment_date else "your appointment"
    service = service_name or "your appointment"
    link = dashboard_link(booking_id)
    body = (
        "<html><body style=\"font-family:Arial,sans-serif;color:#111\">"
        f"<p>Hi {html.escape(receiver_name)},</p>"
        f"<p><strong>{html.escape(sender_name)}</strong> sent you a message about "
        f"{html.escape(service)} on {html.escape(when)}:</p>"
        "<blockquote style=\"border-left:3px solid #ddd;margin:0;padding:8px 12px\">"
        f"{html.escape(message_text).replace(chr(10), '<br>')}"
        "</blockquote>"
        f"<p><a href=\"{html.escape(link, quote=True)}\">Reply in your dashboard</a></p>"
        "</body></html>"
    )
    return subject, body


def _notify(
    db: Session,
    booking_id: int,
    receiver_id: int,
    message_text: str,
    sender_id: int,
) -> Dict[str, bool]:
    sent = {"sms": False, "email": False}
    booking = crud.booking.get_booking(db, booking_id)
    if booking is None:
        logger.warning("New-message notification skipped: booking %s missing", booking_id)
        return sent

    parties = resolve_parties(booking)
    sender_role = parties.role_of(sender_id)
    if sender_role is None:
        logger.warning(
            "New-message notification skipped: sender %s not on booking %s", sender_id, booking_id
        )
        return sent
    if sender_role == BARBER:
        sender, receiver = parties.barber, parties.client
        profile: models.BarberProfile | models.ClientProfile | None = booking.client
    else:
        sender, receiver = parties.client, parties.barber
        profile = booking.barber

    if profile is None or profile.user_id != receiver_id:
        logger.warning(
            "New-message notification skipped: receiver %s does not match booking %s",
            receiver_id,
            booking_id,
        )
        return sent

    if profile.sms_consent and profile.phone:
        try:
            sent["sms"] = send_sms(profile.phone, format_new_message_sms(sender.name, message_text))
        except Exception as exc:
            logger.warning("SMS for booking %s failed: %s", booking_id, exc)

    if profile.email_consent and profile.email:
        subject, body = render_new_message_email(
            booking_id=booking_id,
            sender_name=sender.name,
            receiver_name=receiver.name,
            message_text=message_text,
            service_name=booking.service.name if booking.service else None,
            appointment_date=booking.appointment_date,
        )
        try:
            send_email(profile.email, subject, body, text=f"{sender.name}: {message_text}")
            sent["email"] = True
        except Exception as exc:
            logger.warning("Email for booking %s failed: %s", booking_id, exc)

    logger.info(
        "New-message notifications for booking %s: sms=%s email=%s",
        booking_id,
        sent["sms"],
        sent["email"],
    )
    return sent


def notify_new_message(
    booking_id: int,
    receiver_id: int,
    message_text: str,
    sender_id: int,
    *,
    db: Session | None = None,
) -> Dict[str, bool]:
    """Send SMS and email to the receiver according to their consent flags.

    Each channel is attempted independently. Returns which channels went out.
    """
    if db is not None:
        return _notify(db, booking_id, receiver_id, message_text, sender_id)
    with get_db_session() as session:
        return _notify(session, booking_id, receiver_id, message_text, sender_id)


def dispatch_new_message(message: models.Message) -> Optional[str]:
    """Queue ``notify_new_message`` for ``message`` on the background worker.

    Returns the worker task id, or ``None`` when disabled or scheduling failed.
    """
    if not settings.NOTIFY_NEW_MESSAGES:
        return None
    try:
        return background_worker.enqueue(
            notify_new_message,
            int(message.booking_id),
            int(message.receiver_id),
            message.message_text,
            int(message.sender_id),
            retries=1,
        )
    except Exception as exc:
        logger.warning("Could not schedule notifications for message %s: %s", message.id, exc)
        return None
