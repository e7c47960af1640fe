"""Outbound email for account verification and password reset."""

from __future__ import annotations

import logging
import smtplib
import uuid
from email.message import EmailMessage
from pathlib import Path
from typing import Iterable
from urllib.parse import urlencode

from fastapi import BackgroundTasks
from jinja2 import Environment, FileSystemLoader, select_autoescape

from app.core.config import get_settings
from app.security.redact import mask_email

logger = logging.getLogger(__name__)

_TEMPLATE_DIR = Path(__file__).resolve().parents[1] / "templates"
_ENV = Environment(
    loader=FileSystemLoader(_TEMPLATE_DIR),
    autoescape=select_autoescape(["html", "xml"]),
)


def schedule_email(
    background_tasks: BackgroundTasks,
    *,
    recipients: Iterable[str],
    subject: str,
    html: str,
) -> None:
    """Queue an email to be delivered after the response is sent."""
    recipients_list = [addr for addr in recipients if addr]
    if not recipients_list:
        logger.debug("No recipients provided for email; skipping")
        return
    settings = get_settings()
    if not settings.smtp_host or not settings.smtp_port:
        logger.debug("SMTP disabled; skipping email to %d recipient(s)", len(recipients_list))
        return
    background_tasks.add_task(_send_email, recipients_list, subject, html)


def _link(path: str, *, token: str, user_id: uuid.UUID) -> str:
    settings = get_settings()
    query = urlencode({"token": token, "user": str(user_id)})
    return f"{settings.app_url.rstrip('/')}{settings.api_prefix}{path}?{query}"


def build_verification_email(
    *, name: str, token: str, user_id: uuid.UUID
) -> tuple[str, str]:
    html = _ENV.get_template("verify_email.html").render(
        name=name,
        link=_link("/user/verify", token=token, user_id=user_id),
        ttl_minutes=get_settings().token_ttl_minutes,
    )
    return "Please verify your email", html


def build_password_reset_email(
    *, name: str, token: str, user_id: uuid.UUID
) -> tuple[str, str]:
    html = _ENV.get_template("reset_password.html").render(
        name=name,
        link=_link("/user/reset-password", token=token, user_id=user_id),
        ttl_minutes=get_settings().token_ttl_minutes,
    )
    return "Reset your password", html


def _send_email(recipients: list[str], subject: str, html: str) -> None:
    settings = get_settings()
    if not settings.smtp_host or not settings.smtp_port:
        logger.info("SMTP settings missing; skipping email delivery")
        return

    message = EmailMessage()
    message["Subject"] = subject
    message["To"] = ", ".join(recipients)
    message["From"] = (
        settings.smtp_from or settings.smtp_username or "no-reply@sealed-share.local"
    )
    message.set_content("This message contains HTML content.")
    message.add_alternative(html, subtype="html")

    masked = [mask_email(addr) for addr in recipients]
    try:
        with smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=10) as smtp:
            if settings.smtp_username and settings.smtp_password:
                try:
                    smtp.starttls()
                except smtplib.SMTPException:
                    logger.debug("SMTP server does not support STARTTLS")
                smtp.login(settings.smtp_username, settings.smtp_password)
            smtp.send_message(message)
        logger.info("Email sent to %s", masked)
    except (smtplib.SMTPException, OSError):
        logger.exception("Failed to send email to %s", masked)
