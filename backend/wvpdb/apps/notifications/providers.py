from __future__ import annotations

from email.message import EmailMessage
import os
import smtplib
from typing import Optional, Tuple


class EmailProvider:
    def send(
        self,
        *,
        template_key: str,
        recipient: str,
        subject: str,
        context: dict,
        correlation_id: str | None,
    ) -> None:
        raise NotImplementedError


class NoopProvider(EmailProvider):
    def send(
        self,
        *,
        template_key: str,
        recipient: str,
        subject: str,
        context: dict,
        correlation_id: str | None,
    ) -> None:
        return None


class SmtpProvider(EmailProvider):
    """
    Plain SMTP with STARTTLS. The rendered text body is expected in
    `context["body"]`.
    """

    def __init__(
        self,
        *,
        host: str,
        port: int = 587,
        user: Optional[str] = None,
        password: Optional[str] = None,
        sender: Optional[str] = None,
        timeout: float = 10.0,
    ) -> None:
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.sender = sender or user or "no-reply@localhost"
        self.timeout = timeout

    def send(
        self,
        *,
        template_key: str,
        recipient: str,
        subject: str,
        context: dict,
        correlation_id: str | None,
    ) -> None:
        msg = EmailMessage()
        msg["From"] = self.sender
        msg["To"] = recipient
        msg["Subject"] = subject
        if correlation_id:
            msg["X-Correlation-ID"] = correlation_id
        msg.set_content(context.get("body") or subject)

        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as s:
            s.starttls()
            if self.user and self.password:
                s.login(self.user, self.password)
            s.send_message(msg)


def _smtp_from_env() -> Optional[SmtpProvider]:
    host = os.getenv("SMTP_HOST")
    if not host:
        return None
    return SmtpProvider(
        host=host,
        port=int(os.getenv("SMTP_PORT", "587")),
        user=os.getenv("SMTP_USER"),
        password=os.getenv("SMTP_PASS"),
        sender=os.getenv("SMTP_FROM"),
    )


def get_email_provider() -> Tuple[EmailProvider, bool]:
    provider_name = (
        os.getenv("NOTIFICATIONS_EMAIL_PROVIDER")
        or os.getenv("EMAIL_PROVIDER")
        or ""
    ).strip().lower()
    if not provider_name or provider_name in {"none", "noop", "disabled"}:
        return NoopProvider(), False
    if provider_name == "smtp":
        provider = _smtp_from_env()
        if provider is None:
            return NoopProvider(), False
        return provider, True
    raise ValueError(f"Unsupported email provider: {provider_name}")
