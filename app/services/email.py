"""Transactional email: verification and welcome messages over SMTP."""

import logging
import smtplib
import ssl
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from pathlib import Path
from urllib.parse import urlencode

from jinja2 import Environment, FileSystemLoader, select_autoescape

from app.config import get_settings
from app.errors import UpstreamFailure

logger = logging.getLogger("auth_service")

TEMPLATES_DIR = Path(__file__).resolve().parent.parent / "templates" / "email"
SMTP_TIMEOUT_SECONDS = 15


def _redact(email: str) -> str:
    if "@" not in email:
        return "redacted"
    local, domain = email.split("@", 1)
    return f"{local[:2]}***@{domain}"


class EmailService:
    """Renders email bodies from templates and delivers them over SMTP.

    Without SMTP credentials (local development) nothing is sent and the
    verification link is logged instead.
    """

    def __init__(self) -> None:
        self.settings = get_settings()
        self.templates = Environment(
            loader=FileSystemLoader(TEMPLATES_DIR),
            autoescape=select_autoescape(["html"]),
        )

    def verification_url(self, token: str) -> str:
        return f"{self.settings.frontend_url}/verify-email?{urlencode({'token': token})}"

    def send_verification_email(self, to: str, name: str, token: str) -> None:
        url = self.verification_url(token)
        if not self.settings.smtp_configured:
            logger.info("DEV MODE verification link for %s: %s", _redact(to), url)
            return
        html = self.templates.get_template("verification.html").render(name=name, verification_url=url)
        text = f"Hello {name},\n\nVerify your email address: {url}\n\nThis link expires in 24 hours."
        self._send(to, "Verify your email address", html, text)

    def send_welcome_email(self, to: str, name: str) -> None:
        if not self.settings.smtp_configured:
            return
        app_url = self.settings.frontend_url
        html = self.templates.get_template("welcome.html").render(name=name, app_url=app_url)
        text = f"Welcome, {name}! Your email has been verified successfully.\n\n{app_url}"
        self._send(to, "Welcome!", html, text)

    def _send(self, to: str, subject: str, html: str, text: str) -> None:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = f"{self.settings.SMTP_FROM_NAME} <{self.settings.SMTP_USER}>"
        msg["To"] = to
        msg.attach(MIMEText(text, "plain"))
        msg.attach(MIMEText(html, "html"))

        try:
            context = ssl.create_default_context()
            with smtplib.SMTP(self.settings.SMTP_HOST, self.settings.SMTP_PORT, timeout=SMTP_TIMEOUT_SECONDS) as server:
                server.starttls(context=context)
                server.login(self.settings.SMTP_USER, self.settings.SMTP_PASS)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            raise UpstreamFailure(f"Failed to send email: {e}") from e

        logger.info("Email '%s' sent to %s", subject, _redact(to))


_email_service: EmailService | None = None


def get_email_service() -> EmailService:
    """Get singleton email service instance."""
    global _email_service
    if _email_service is None:
        _email_service = EmailService()
    return _email_service
