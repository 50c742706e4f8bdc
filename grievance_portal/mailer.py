"""Outbound mail over SMTP.

``send`` raises ``DependencyError`` when delivery fails, for flows where the
mail is part of the operation (registration rolls back without it).
``notify`` is fire-and-forget: failures are logged and swallowed so lifecycle
transitions never depend on the mail server. Without ``SMTP_HOST`` messages
are written to the log instead of sent.
"""

import email.utils
import logging
from email.mime.text import MIMEText
from typing import Optional

import aiosmtplib

from . import config
from .errors import DependencyError
from .models import GrievanceView, LEVEL_LABELS

logger = logging.getLogger(__name__)


class Mailer:
    def __init__(self, smtp_host: Optional[str] = None, smtp_port: int = 587,
                 smtp_user: Optional[str] = None, smtp_password: Optional[str] = None,
                 smtp_from: str = "noreply@manit.ac.in", smtp_use_tls: bool = False,
                 client_url: str = "http://localhost:3000") -> None:
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_user = smtp_user
        self.smtp_password = smtp_password
        self.smtp_from = smtp_from
        self.smtp_use_tls = smtp_use_tls
        self.client_url = client_url.rstrip("/")

    @classmethod
    def from_config(cls) -> "Mailer":
        return cls(
            smtp_host=config.SMTP_HOST, smtp_port=config.SMTP_PORT,
            smtp_user=config.SMTP_USER, smtp_password=config.SMTP_PASSWORD,
            smtp_from=config.SMTP_FROM, smtp_use_tls=config.SMTP_USE_TLS,
            client_url=config.CLIENT_URL)

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------
    async def send_verification_email(self, to: str, token: str) -> None:
        url = f"{self.client_url}/verify-email/{token}"
        html = (
            "<h2>Welcome to the Grievance Portal</h2>"
            "<p>Please verify your email address by clicking the link below:</p>"
            f'<a href="{url}">Verify Email</a>'
            "<p>This link will expire in 24 hours.</p>"
            "<p>If you did not create an account, please ignore this email.</p>"
        )
        await self.send(to, "Grievance Portal - Email Verification", html)

    async def send_password_reset_otp(self, to: str, otp: str) -> None:
        html = (
            "<h2>Grievance Portal - Password Reset</h2>"
            "<p>Use the following OTP to reset your password:</p>"
            f"<h3>{otp}</h3>"
            "<p>This OTP will expire in 15 minutes.</p>"
            "<p>If you did not request a password reset, please ignore this email.</p>"
        )
        await self.send(to, "Grievance Portal - Password Reset OTP", html)

    async def notify_escalation(self, to: str, grievance: GrievanceView) -> bool:
        level = LEVEL_LABELS[grievance.current_level.value]
        html = (
            f"<p>Your grievance <b>{grievance.title}</b> has been escalated to the {level}.</p>"
            f"<p>Current status: {grievance.status.value}</p>"
        )
        return await self.notify(to, f"Grievance escalated to {level}", html)

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------
    async def notify(self, to: str, subject: str, html: str) -> bool:
        try:
            await self.send(to, subject, html)
            return True
        except DependencyError as e:
            logger.error("Notification to %s failed: %s", to, e.message)
            return False

    async def send(self, to: str, subject: str, html: str) -> None:
        if not self.smtp_host:
            logger.info("SMTP not configured; mail to %s (%s) logged only:\n%s", to, subject, html)
            return
        message = MIMEText(html, "html", "utf-8")
        message["From"] = self.smtp_from
        message["To"] = to
        message["Subject"] = subject
        message["Date"] = email.utils.formatdate(localtime=True)
        message["Message-ID"] = email.utils.make_msgid()
        kwargs = {"hostname": self.smtp_host, "port": self.smtp_port, "use_tls": self.smtp_use_tls}
        if self.smtp_user:
            kwargs["username"] = self.smtp_user
        if self.smtp_password:
            kwargs["password"] = self.smtp_password
        try:
            await aiosmtplib.send(message, **kwargs)
        except (aiosmtplib.SMTPException, OSError) as e:
            logger.error("Mail to %s failed: %s", to, e)
            raise DependencyError(f"Failed to send email to {to}") from e
        logger.info("Mail sent to %s: %s", to, subject)
