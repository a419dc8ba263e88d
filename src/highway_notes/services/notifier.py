"""One-time code delivery.

Learn: The OTP engine only needs "send this code to this address, tell me
whether it went out". Two implementations:

- SmtpNotifier: real email over SMTP + STARTTLS (Gmail by default).
  smtplib is blocking, so the send runs in a worker thread with a fixed
  connection timeout.
- ConsoleNotifier: writes the code to the log. Used when SMTP credentials
  are not configured, e.g. local development.

Delivery never raises. A False result is the caller's signal that the
user did not get an email.
"""

import asyncio
import smtplib
import ssl
from abc import ABC, abstractmethod
from email.message import EmailMessage
from email.utils import formataddr

import structlog

from highway_notes.config import Settings

logger = structlog.get_logger()


class Notifier(ABC):
    """Delivers a one-time code to an email address."""

    @abstractmethod
    async def send_code(self, email: str, code: str, ttl_minutes: int) -> bool:
        """Send the code. Returns True if it was handed off for delivery."""


class ConsoleNotifier(Notifier):
    async def send_code(self, email: str, code: str, ttl_minutes: int) -> bool:
        logger.warning(
            "notifier.console_delivery",
            email=email,
            otp=code,
            hint="SMTP not configured; code written to log instead of email",
        )
        return True


class SmtpNotifier(Notifier):
    def __init__(
        self,
        host: str,
        port: int,
        username: str,
        password: str,
        from_name: str = "Highway Notes",
        timeout: float = 10.0,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.from_name = from_name
        self.timeout = timeout

    async def send_code(self, email: str, code: str, ttl_minutes: int) -> bool:
        message = build_otp_message(
            sender=formataddr((self.from_name, self.username)),
            recipient=email,
            code=code,
            ttl_minutes=ttl_minutes,
            app_name=self.from_name,
        )
        try:
            await asyncio.to_thread(self._send, message)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(
                "notifier.smtp_failed",
                email=email,
                host=self.host,
                error=str(e),
                error_type=type(e).__name__,
            )
            return False

        logger.info("notifier.email_sent", email=email)
        return True

    def _send(self, message: EmailMessage) -> None:
        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
            smtp.starttls(context=ssl.create_default_context())
            smtp.login(self.username, self.password)
            smtp.send_message(message)


def build_otp_message(
    sender: str,
    recipient: str,
    code: str,
    ttl_minutes: int,
    app_name: str = "Highway Notes",
) -> EmailMessage:
    """Plain-text email with an HTML alternative."""
    message = EmailMessage()
    message["From"] = sender
    message["To"] = recipient
    message["Subject"] = f"Your verification code for {app_name}"

    message.set_content(
        f"Your {app_name} verification code is {code}.\n\n"
        f"This code will expire in {ttl_minutes} minutes.\n"
        "If you didn't request this code, you can ignore this email.\n"
    )
    message.add_alternative(
        f"""\
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">
  <h1 style="color: #3B82F6; text-align: center;">{app_name}</h1>
  <div style="background-color: #F8FAFC; border: 1px solid #E5E7EB; border-radius: 8px; padding: 30px; text-align: center;">
    <h2 style="color: #1F2937; margin: 0 0 10px 0;">Your Verification Code</h2>
    <div style="background-color: #3B82F6; color: white; font-size: 32px; font-weight: bold; padding: 15px; border-radius: 8px; letter-spacing: 3px;">{code}</div>
    <p style="color: #6B7280; font-size: 14px;">This code will expire in {ttl_minutes} minutes</p>
  </div>
  <p style="color: #9CA3AF; font-size: 12px; text-align: center;">If you didn't request this code, you can ignore this email.</p>
</div>
""",
        subtype="html",
    )
    return message


def build_notifier(settings: Settings) -> Notifier:
    """Pick the delivery channel from configuration."""
    if not settings.mail_configured:
        logger.warning("notifier.smtp_not_configured")
        return ConsoleNotifier()
    return SmtpNotifier(
        host=settings.smtp_host,
        port=settings.smtp_port,
        username=settings.smtp_user,
        password=settings.smtp_password,
        from_name=settings.smtp_from_name,
        timeout=settings.smtp_timeout_seconds,
    )
