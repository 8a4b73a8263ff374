"""
core/mailer.py -- Outbound email for verification codes.

Mailer is the only component that talks SMTP. It renders HTML bodies from
core/templates/ with Jinja2 (autoescaping on, so a display name cannot inject
markup) and hands them to smtplib -- STARTTLS on SMTP_PORT when SMTP_USE_TLS
is true, implicit TLS otherwise.

Dev mode: when SMTP_HOST is empty the message is logged (recipient redacted,
code included) instead of sent, so local signups can be completed from the
server log.

Failures raise MailDeliveryError. Callers that send inside a database
transaction (signup, resend-verification) rely on that to roll back.

Layer rule: core/ is the kernel. No imports from api/ or auth/.
"""

from __future__ import annotations

import logging
import smtplib
import ssl
from email.message import EmailMessage
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, select_autoescape

from core.config import Settings

logger = logging.getLogger("inkwell.mail")

_TEMPLATES_DIR = Path(__file__).parent / "templates"

_jinja_env = Environment(
    loader=FileSystemLoader(_TEMPLATES_DIR),
    autoescape=select_autoescape(["html"]),
)


class MailDeliveryError(RuntimeError):
    """The message could not be handed to the SMTP server."""


def redact_email(email: str) -> str:
    """a.person@example.com -> a.***@example.com (for logs)."""
    if "@" not in email:
        return "redacted"
    local, domain = email.split("@", 1)
    return f"{local[:2]}***@{domain}"


def render_template(name: str, **context) -> str:
    return _jinja_env.get_template(name).render(**context)


class Mailer:
    """SMTP mail sender with a log-only fallback.

    Usage:
        mailer = Mailer.from_settings(get_settings())
        mailer.send_verification_code("a@x.com", "A", "12345678", 10)
    """

    def __init__(
        self,
        *,
        smtp_host: str = "",
        smtp_port: int = 587,
        smtp_user: str = "",
        smtp_password: str = "",
        smtp_use_tls: bool = True,
        from_email: str = "",
        from_name: str = "Inkwell",
        timeout: float = 30.0,
    ) -> None:
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_user = smtp_user
        self.smtp_password = smtp_password
        self.smtp_use_tls = smtp_use_tls
        self.from_email = from_email or smtp_user
        self.from_name = from_name
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> "Mailer":
        return cls(
            smtp_host=settings.smtp_host,
            smtp_port=settings.smtp_port,
            smtp_user=settings.smtp_user,
            smtp_password=settings.smtp_password,
            smtp_use_tls=settings.smtp_use_tls,
            from_email=settings.mail_from,
            from_name=settings.mail_from_name,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.smtp_host and self.from_email)

    def send(self, recipient: str, subject: str, html_body: str) -> None:
        """Deliver one HTML message or raise MailDeliveryError."""
        full_subject = f"{self.from_name} - {subject}"
        if not self.is_configured:
            logger.info(
                "SMTP not configured; mail to %s not sent. subject=%r body=%s",
                redact_email(recipient),
                full_subject,
                html_body,
            )
            return

        msg = EmailMessage()
        msg["Subject"] = full_subject
        msg["From"] = f"{self.from_name} <{self.from_email}>"
        msg["To"] = recipient
        msg["Reply-To"] = self.from_email
        msg.set_content("This message requires an HTML-capable mail client.")
        msg.add_alternative(html_body, subtype="html")

        context = ssl.create_default_context()
        try:
            if self.smtp_use_tls:
                with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=self.timeout) as server:
                    server.starttls(context=context)
                    self._login(server)
                    server.send_message(msg)
            else:
                with smtplib.SMTP_SSL(self.smtp_host, self.smtp_port, context=context, timeout=self.timeout) as server:
                    self._login(server)
                    server.send_message(msg)
        except (smtplib.SMTPException, ssl.SSLError, OSError) as exc:
            logger.error(
                "Mail delivery to %s failed: %s: %s",
                redact_email(recipient),
                type(exc).__name__,
                exc,
            )
            raise MailDeliveryError(f"Could not deliver mail to {redact_email(recipient)}") from exc

        logger.info("Mail sent to %s subject=%r", redact_email(recipient), full_subject)

    def _login(self, server: smtplib.SMTP) -> None:
        if self.smtp_user and self.smtp_password:
            server.login(self.smtp_user, self.smtp_password)

    def send_verification_code(self, recipient: str, display_name: str, code: str, valid_minutes: int) -> None:
        html_body = render_template(
            "email_verification.html",
            display_name=display_name,
            code=code,
            valid_minutes=valid_minutes,
        )
        self.send(recipient, "Email Verification", html_body)
