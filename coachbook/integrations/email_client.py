import asyncio
import logging
from typing import Optional

import resend

from coachbook.core import config

logger = logging.getLogger(__name__)


class EmailDeliveryError(Exception):
    """Resend rejected or failed to accept the message."""


class EmailSender:
    def __init__(self, api_key: Optional[str] = None, from_address: Optional[str] = None):
        self.api_key = api_key or config.RESEND_API_KEY
        self.from_address = from_address or config.EMAIL_FROM

        if not self.api_key:
            logger.warning("RESEND_API_KEY not configured; emails will not be sent")

    def send_sync(self, to: str, subject: str, text: str, reply_to: Optional[str] = None) -> Optional[str]:
        """Send a plain-text email and return the Resend message id"""
        if not self.api_key:
            raise EmailDeliveryError("Email sending is not configured")

        resend.api_key = self.api_key
        params = {
            "from": self.from_address,
            "to": [to],
            "subject": subject,
            "text": text,
        }
        if reply_to:
            params["reply_to"] = reply_to

        try:
            response = resend.Emails.send(params)
        except Exception as e:
            raise EmailDeliveryError(f"Failed to send email: {e}") from e

        message_id = response.get("id") if isinstance(response, dict) else None
        logger.info(f"Email sent to {to}: {subject} ({message_id})")
        return message_id

    async def send(self, to: str, subject: str, text: str, reply_to: Optional[str] = None) -> Optional[str]:
        # resend's client is blocking
        return await asyncio.to_thread(self.send_sync, to, subject, text, reply_to)


def app_url(path: str) -> str:
    """Absolute link into the coach dashboard."""
    normalized = path if path.startswith("/") else f"/{path}"
    return f"{config.APP_BASE_URL.rstrip('/')}{normalized}"


#Initialize the sender
email_sender = EmailSender()
