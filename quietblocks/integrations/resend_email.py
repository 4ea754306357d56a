"""Resend email integration for quietblocks."""

import logging
import os
from typing import Optional
import requests
from dotenv import load_dotenv

from quietblocks.engine.reminders import DeliveryResult, ReminderMessage
from quietblocks.integrations.email_templates import reminder_html, reminder_subject, reminder_text

load_dotenv()

logger = logging.getLogger(__name__)

RESEND_API_BASE = "https://api.resend.com"
DEFAULT_FROM_EMAIL = "noreply@quietblocks.app"


def _mask_email(address: str) -> str:
    local, _, domain = address.partition("@")
    if not domain:
        return "***"
    return f"{local[:1]}***@{domain}"


class ResendEmailNotifier:
    """Sends reminder emails through the Resend HTTP API.

    Constructed with explicit configuration and passed to the scheduler;
    there is no shared module-level instance.
    """
    
    def __init__(
        self,
        api_key: Optional[str] = None,
        from_email: Optional[str] = None,
        timeout: float = 10,
        session: Optional[requests.Session] = None,
    ):
        """Initialize Resend client.
        
        Args:
            api_key: Resend API key. If None, reads from RESEND_API_KEY env var.
            from_email: Sender address. If None, reads from FROM_EMAIL env var.
            timeout: Per-request timeout in seconds.
            session: Optional requests session (connection reuse, tests).
        """
        self.api_key = api_key or os.getenv("RESEND_API_KEY")
        if not self.api_key:
            raise ValueError("Resend API key is required. Set RESEND_API_KEY env var.")
        self.from_email = from_email or os.getenv("FROM_EMAIL", DEFAULT_FROM_EMAIL)
        self.timeout = timeout
        self.session = session or requests.Session()
        self.headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    def send_email(self, to: str, subject: str, html: str, text: str) -> DeliveryResult:
        """Send one email; never raises for transport or API errors."""
        payload = {
            "from": self.from_email,
            "to": [to],
            "subject": subject,
            "html": html,
            "text": text,
        }
        try:
            response = self.session.post(
                f"{RESEND_API_BASE}/emails",
                headers=self.headers,
                json=payload,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error(f"Resend request failed for {_mask_email(to)}: {type(e).__name__}: {str(e)}")
            return DeliveryResult(success=False, error=f"{type(e).__name__}: {str(e)}")

        if not response.ok:
            try:
                detail = response.json().get("message") or response.text
            except ValueError:
                detail = response.text
            logger.error(f"Resend rejected email to {_mask_email(to)}: HTTP {response.status_code} {detail}")
            return DeliveryResult(success=False, error=f"HTTP {response.status_code}: {detail}")

        message_id = None
        try:
            message_id = response.json().get("id")
        except ValueError:
            pass
        logger.info(f"Email sent to {_mask_email(to)} (id={message_id})")
        return DeliveryResult(success=True, message_id=message_id)

    def send_reminder(self, message: ReminderMessage) -> DeliveryResult:
        """Send a quiet block reminder email."""
        return self.send_email(
            to=message.recipient_email,
            subject=reminder_subject(message),
            html=reminder_html(message),
            text=reminder_text(message),
        )

    def send_test_email(self, to: str) -> DeliveryResult:
        """Send a short message to verify the email configuration."""
        body = "If you receive this email, the email service is working correctly!"
        return self.send_email(
            to=to,
            subject="Test Email from quietblocks",
            html=f"<p>{body}</p>",
            text=body,
        )
