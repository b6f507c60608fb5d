from __future__ import annotations

import logging
from typing import Optional

from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail as SendGridMail

from domain.errors import DeliveryError
from domain.repositories import NotificationChannel


logger = logging.getLogger(__name__)

RESET_SUBJECT = "ParkEasy password reset"


def _reset_body(token: str, ttl_minutes: int) -> str:
    return (
        "<h1>Password reset</h1>"
        f"<p>Use this code to choose a new password. It expires in {ttl_minutes} "
        "minutes and works once.</p>"
        f"<p><code>{token}</code></p>"
        "<p>If you did not ask for a reset you can ignore this message.</p>"
    )


class SendGridNotificationChannel(NotificationChannel):
    """Email reset tokens through the SendGrid API."""

    def __init__(
        self,
        api_key: str,
        from_email: str,
        ttl_minutes: int = 30,
        client: Optional[SendGridAPIClient] = None,
    ) -> None:
        self._from_email = from_email
        self._ttl_minutes = ttl_minutes
        self._client = client or SendGridAPIClient(api_key)

    def send(self, email: str, token: str) -> None:
        message = SendGridMail(
            from_email=self._from_email,
            to_emails=email,
            subject=RESET_SUBJECT,
            html_content=_reset_body(token, self._ttl_minutes),
        )
        try:
            response = self._client.send(message)
        except Exception as exc:  # sendgrid raises python_http_client errors.
            raise DeliveryError(f"SendGrid request failed: {exc}") from exc

        if response.status_code >= 400:
            raise DeliveryError(f"SendGrid rejected the message: HTTP {response.status_code}")
        logger.info("Reset email handed to SendGrid, status: %s", response.status_code)


class LoggingNotificationChannel(NotificationChannel):
    """
    Development stand-in used when SendGrid is not configured.

    Records that a token was issued for an address. The token itself is
    never written out, so nothing reaches the user.
    """

    def send(self, email: str, token: str) -> None:
        logger.warning("SendGrid not configured. Reset token issued for %s was not sent.", email)
