"""
Notification service — best-effort delivery of verification codes.

Delivery is an external capability: send(destination, content). Email
addresses go out over SMTP, phone numbers through an HTTP SMS gateway. When
a channel is not configured (local development) only the masked
destination and subject are logged; message bodies carry codes and are
never logged.

Callers never see delivery failures. otp_service catches and logs them so
that error channels cannot reveal whether an account exists.
"""

import smtplib
import ssl
from email.message import EmailMessage
from typing import Protocol

import httpx
from fastapi.concurrency import run_in_threadpool

from authcore.config import settings
from authcore.logging import get_logger, mask_identifier

logger = get_logger(__name__)


class Notifier(Protocol):
    async def send(self, destination: str, content: str, *, subject: str | None = None) -> None: ...


class DeliveryNotifier:
    """Routes messages to SMTP or the SMS gateway based on the destination."""

    def __init__(
        self,
        *,
        smtp_host: str | None = None,
        smtp_port: int = 587,
        smtp_user: str | None = None,
        smtp_password: str | None = None,
        smtp_use_tls: bool = True,
        email_from: str | None = None,
        sms_gateway_url: str | None = None,
        sms_gateway_token: str | None = None,
        timeout: float = 10.0,
    ) -> None:
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_user = smtp_user
        self.smtp_password = smtp_password
        self.smtp_use_tls = smtp_use_tls
        self.email_from = email_from or smtp_user
        self.sms_gateway_url = sms_gateway_url
        self.sms_gateway_token = sms_gateway_token
        self.timeout = timeout

    @property
    def email_configured(self) -> bool:
        return bool(self.smtp_host and self.email_from)

    async def send(self, destination: str, content: str, *, subject: str | None = None) -> None:
        if "@" in destination:
            await self._send_email(destination, subject or "Verification Code", content)
        else:
            await self._send_sms(destination, content)

    async def _send_email(self, to_email: str, subject: str, body: str) -> None:
        if not self.email_configured:
            logger.info(
                "email_dev_mode",
                destination=mask_identifier(to_email),
                subject=subject,
            )
            return

        message = EmailMessage()
        message["Subject"] = subject
        message["From"] = self.email_from
        message["To"] = to_email
        message.set_content(body)

        # smtplib is blocking; keep it off the event loop
        await run_in_threadpool(self._smtp_send, message)
        logger.info("email_sent", destination=mask_identifier(to_email), subject=subject)

    def _smtp_send(self, message: EmailMessage) -> None:
        with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=self.timeout) as server:
            if self.smtp_use_tls:
                server.starttls(context=ssl.create_default_context())
            if self.smtp_user and self.smtp_password:
                server.login(self.smtp_user, self.smtp_password)
            server.send_message(message)

    async def _send_sms(self, phone: str, body: str) -> None:
        if not self.sms_gateway_url:
            logger.info("sms_dev_mode", destination=mask_identifier(phone))
            return

        headers = {}
        if self.sms_gateway_token:
            headers["Authorization"] = f"Bearer {self.sms_gateway_token}"
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(
                self.sms_gateway_url,
                json={"to": phone, "message": body},
                headers=headers,
            )
            response.raise_for_status()
        logger.info("sms_sent", destination=mask_identifier(phone))


_notifier = DeliveryNotifier(
    smtp_host=settings.SMTP_HOST,
    smtp_port=settings.SMTP_PORT,
    smtp_user=settings.SMTP_USER,
    smtp_password=settings.SMTP_PASSWORD,
    smtp_use_tls=settings.SMTP_USE_TLS,
    email_from=settings.EMAIL_FROM,
    sms_gateway_url=settings.SMS_GATEWAY_URL,
    sms_gateway_token=settings.SMS_GATEWAY_TOKEN,
    timeout=settings.NOTIFICATION_TIMEOUT_SECONDS,
)


def get_notifier() -> Notifier:
    """FastAPI dependency returning the process-wide notifier (overridden in tests)."""
    return _notifier
