import logging
from typing import Optional

from twilio.rest import Client

from ..core.config import settings

logger = logging.getLogger(__name__)


def sms_configured() -> bool:
    return bool(
        settings.TWILIO_ACCOUNT_SID
        and settings.TWILIO_AUTH_TOKEN
        and settings.TWILIO_FROM_NUMBER
    )


def send_sms(phone: Optional[str], message: str) -> bool:
    """Send ``message`` to ``phone`` through Twilio.

    Returns ``False`` without sending when there is no number or Twilio is not
    configured. Twilio errors propagate to the caller.
    """
    if not phone:
        return False
    if not sms_configured():
        logger.debug("Twilio not configured; skipping SMS to %s", phone)
        return False
    Client(settings.TWILIO_ACCOUNT_SID, settings.TWILIO_AUTH_TOKEN).messages.create(
        body=message, from_=settings.TWILIO_FROM_NUMBER, to=phone
    )
    logger.info("Sent SMS to %s", phone)
    return True
