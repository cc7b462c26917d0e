import asyncio
import logging
from email.message import EmailMessage
from typing import Optional

import aiosmtplib

from ..core.config import settings

logger = logging.getLogger(__name__)


async def _send_async(msg: EmailMessage) -> None:
    await aiosmtplib.send(
        msg,
        hostname=settings.SMTP_HOST,
        port=settings.SMTP_PORT,
        username=settings.SMTP_USERNAME or None,
        password=settings.SMTP_PASSWORD or None,
        start_tls=bool(settings.SMTP_USERNAME),
    )


def send_email(recipient: str, subject: str, html: str, text: Optional[str] = None) -> None:
    """Send a multipart HTML email over SMTP.

    Runs its own event loop, so call it from a worker thread rather than from
    inside a running loop. SMTP errors propagate to the caller.
    """
    msg = EmailMessage()
    msg["From"] = settings.SMTP_FROM
    msg["To"] = recipient
    msg["Subject"] = subject
    msg.set_content(text or "You have a new message. Open the dashboard to read it.")
    msg.add_alternative(html, subtype="html")
    asyncio.run(_send_async(msg))
    logger.info("Sent email to %s", recipient)
