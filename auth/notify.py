"""
auth/notify.py -- Outbound email for OTP delivery.

The OTP ledger depends on the Notifier protocol, not on Mailjet. Tests pass a
recording fake; production uses MailjetNotifier, which posts to the Mailjet
v3.1 send API over HTTPS.

Delivery is fire-and-confirm: send() returns only after Mailjet accepted the
message and raises DeliveryError otherwise. There are no retries -- the user
can ask for a new code once the resend cooldown has passed.

Logging rule: recipient and outcome only. Subjects and bodies may contain the
raw code and are never logged.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Protocol

import requests
from jinja2 import Environment, select_autoescape

from auth.errors import DeliveryError
from auth.identity import is_valid_email

logger = logging.getLogger("docdesk.notify")

MAILJET_SEND_URL = "https://api.mailjet.com/v3.1/send"

_jinja = Environment(autoescape=select_autoescape(default_for_string=True, default=True))

_OTP_TEMPLATE = _jinja.from_string(
    """\
<div style="font-family: Arial, sans-serif; max-width: 550px; margin: auto; padding: 20px; \
border: 1px solid #ddd; border-radius: 10px;">
  <h2 style="text-align: center; color: #333;">{{ app_name }} OTP Verification</h2>
  <p style="font-size: 14px; color: #444;">Use the code below to continue:</p>
  <div style="text-align: center; margin: 20px 0;">
    <div style="display: inline-block; font-size: 26px; letter-spacing: 4px; font-weight: bold; \
padding: 10px 16px; border: 1px dashed #777; border-radius: 8px;">{{ code }}</div>
  </div>
  <p style="font-size: 13px; color: #444;">This code will expire in <b>{{ minutes }} minutes</b>.</p>
  <p style="font-size: 12px; color: #777;">If you didn't request this, you can safely ignore this email.</p>
  <hr style="border: none; border-top: 1px solid #eee;" />
  <p style="font-size: 11px; color: #999; text-align: center;">&copy; {{ year }} {{ app_name }}</p>
</div>
"""
)


class Notifier(Protocol):
    def send(self, recipient_email: str, subject: str, body: str) -> None: ...


def render_otp_email(code: str, expires_in_minutes: int, app_name: str) -> tuple[str, str]:
    """Return (subject, html_body) for an OTP email."""
    subject = f"Your {app_name} verification code"
    body = _OTP_TEMPLATE.render(
        code=code,
        minutes=expires_in_minutes,
        app_name=app_name,
        year=datetime.now(timezone.utc).year,
    )
    return subject, body


class MailjetNotifier:
    """Notifier backed by the Mailjet HTTPS API.

    One requests.Session is kept for connection pooling across sends.
    """

    def __init__(
        self,
        api_key_public: str,
        api_key_private: str,
        sender_email: str,
        sender_name: str = "DocDesk",
        session: requests.Session | None = None,
        timeout: float = 10.0,
    ) -> None:
        self._auth = (api_key_public, api_key_private)
        self._sender_email = sender_email
        self._sender_name = sender_name
        self._timeout = timeout
        self._session = session or requests.Session()
        self._session.max_redirects = 3
        if not (api_key_public and api_key_private):
            logger.warning("Mailjet keys missing: MAILJET_API_KEY_PUBLIC / MAILJET_API_KEY_PRIVATE")
        if not sender_email:
            logger.warning("Missing SENDER_EMAIL -- OTP emails cannot be sent")

    @property
    def configured(self) -> bool:
        return bool(self._auth[0] and self._auth[1] and self._sender_email)

    def send(self, recipient_email: str, subject: str, body: str) -> None:
        recipient = str(recipient_email or "").strip()
        if not is_valid_email(recipient):
            raise DeliveryError("Invalid recipient email.")
        if not subject or not body:
            raise DeliveryError("Email subject and body are required.")
        if not self.configured:
            raise DeliveryError("Email delivery is not configured.")

        message = {
            "From": {"Email": self._sender_email, "Name": self._sender_name},
            "To": [{"Email": recipient}],
            "Subject": subject,
            "TextPart": "",
            "HTMLPart": body,
        }
        try:
            resp = self._session.post(
                MAILJET_SEND_URL,
                json={"Messages": [message]},
                auth=self._auth,
                timeout=self._timeout,
            )
            resp.raise_for_status()
            data = resp.json()
        except (requests.RequestException, ValueError) as e:
            logger.warning("Mailjet send failed for %s: %s", recipient, type(e).__name__)
            raise DeliveryError("Email sending failed.") from e

        results = data.get("Messages") if isinstance(data, dict) else None
        if not isinstance(results, list) or not results or not isinstance(results[0], dict):
            logger.warning("Mailjet returned an unexpected body for %s", recipient)
            raise DeliveryError("Email sending failed.")
        if results[0].get("Status") != "success":
            logger.warning("Mailjet rejected message for %s", recipient)
            raise DeliveryError("Email sending failed.")
        logger.info("Mailjet email sent to %s", recipient)
