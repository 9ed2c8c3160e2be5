"""Transactional email: activation and password reset links over SMTP."""

from __future__ import annotations

import asyncio
import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from clouddrive.config import Settings
from clouddrive.exceptions import EmailDeliveryError

logger = logging.getLogger(__name__)

_BUTTON_STYLE = (
    "display: inline-block; padding: 12px 24px; "
    "background: linear-gradient(135deg, #3b82f6, #8b5cf6); color: white; "
    "text-decoration: none; border-radius: 8px; margin: 16px 0;"
)

_TEMPLATE = """\
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
  <h1 style="color: #3b82f6;">{heading}</h1>
  <p>{intro}</p>
  <a href="{url}" style="{button_style}">{button}</a>
  <p style="color: #666;">{ignore_note}</p>
  <p style="color: #666;">This link will expire in {validity}.</p>
</div>
"""


def render_activation_email(activation_url: str) -> str:
    return _TEMPLATE.format(
        heading="Welcome to CloudDrive!",
        intro="Thank you for registering. Please click the button below to activate your account:",
        url=activation_url,
        button_style=_BUTTON_STYLE,
        button="Activate Account",
        ignore_note="If you didn't create an account, please ignore this email.",
        validity="24 hours",
    )


def render_password_reset_email(reset_url: str) -> str:
    return _TEMPLATE.format(
        heading="Password Reset Request",
        intro="You requested to reset your password. Click the button below to create a new password:",
        url=reset_url,
        button_style=_BUTTON_STYLE,
        button="Reset Password",
        ignore_note="If you didn't request this, please ignore this email.",
        validity="1 hour",
    )


class Mailer:
    """SMTP sender.

    One instance per process, created in ``create_app``. A fresh SMTP
    connection is opened per message, so there is nothing to tear down.
    In dev mode, or without an SMTP host, messages are logged instead.
    """

    def __init__(
        self,
        host: str,
        port: int = 587,
        username: str = "",
        password: str = "",
        use_tls: bool = True,
        timeout: float = 15.0,
        sender: str = "no-reply@localhost",
        frontend_url: str = "http://localhost:5173",
        dry_run: bool = False,
    ):
        self._host = host
        self._port = port
        self._username = username
        self._password = password
        self._use_tls = use_tls
        self._timeout = timeout
        self._sender = sender
        self._frontend_url = frontend_url.rstrip("/")
        self._dry_run = dry_run or not host

    @classmethod
    def from_settings(cls, settings: Settings) -> Mailer:
        return cls(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_username,
            password=settings.smtp_password,
            use_tls=settings.smtp_use_tls,
            timeout=settings.smtp_timeout_seconds,
            sender=settings.email_from,
            frontend_url=settings.frontend_url,
            dry_run=settings.is_dev_mode,
        )

    def activation_url(self, token: str) -> str:
        return f"{self._frontend_url}/activate/{token}"

    def reset_url(self, token: str) -> str:
        return f"{self._frontend_url}/reset-password?token={token}"

    async def send_activation_email(self, to: str, token: str) -> None:
        await self.send(
            to,
            "Activate Your CloudDrive Account",
            render_activation_email(self.activation_url(token)),
        )

    async def send_password_reset_email(self, to: str, token: str) -> None:
        await self.send(
            to,
            "Reset Your CloudDrive Password",
            render_password_reset_email(self.reset_url(token)),
        )

    async def send(self, to: str, subject: str, html: str) -> None:
        if self._dry_run:
            logger.info("[DEV] Email to %s (not sent): %s", to, subject)
            logger.debug("[DEV] Email body:\n%s", html)
            return
        try:
            await asyncio.to_thread(self._send_sync, to, subject, html)
        except (smtplib.SMTPException, OSError) as exc:
            raise EmailDeliveryError(f"Could not send email to {to}: {exc}") from exc
        logger.info("Email sent to %s: %s", to, subject)

    def _send_sync(self, to: str, subject: str, html: str) -> None:
        msg = MIMEMultipart("alternative")
        msg["From"] = self._sender
        msg["To"] = to
        msg["Subject"] = subject
        msg.attach(MIMEText(html, "html"))

        with smtplib.SMTP(self._host, self._port, timeout=self._timeout) as server:
            if self._use_tls:
                server.starttls()
            if self._username:
                server.login(self._username, self._password)
            server.sendmail(self._sender, [to], msg.as_string())
