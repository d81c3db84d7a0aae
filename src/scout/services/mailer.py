from __future__ import annotations

"""SMTP notice sent to admins when an edit brief arrives.

Env vars: SCOUT_SMTP_HOST, SCOUT_SMTP_PORT (587), SCOUT_SMTP_USER,
SCOUT_SMTP_PASSWORD, SCOUT_SMTP_SENDER, SCOUT_SMTP_USE_TLS (1),
SCOUT_SMTP_USE_SSL (0), SCOUT_SMTP_TIMEOUT (10).
"""

import logging
import os
import smtplib
import ssl
from email.message import EmailMessage

from ..config import env_flag, env_int


logger = logging.getLogger("scout.mailer")


def smtp_configured() -> bool:
    host = os.getenv("SCOUT_SMTP_HOST")
    user = os.getenv("SCOUT_SMTP_USER")
    password = os.getenv("SCOUT_SMTP_PASSWORD")
    sender = os.getenv("SCOUT_SMTP_SENDER") or user
    if not host or not user or not password or not sender:
        return False
    try:
        int(os.getenv("SCOUT_SMTP_PORT", "587"))
    except ValueError:
        return False
    return True


def send_brief_notice(recipient: str, project_name: str, brief_md: str) -> bool:
    """Send one brief notice. Returns False when SMTP is unconfigured or the send fails."""
    if not smtp_configured():
        logger.info("SMTP not fully configured; skipping brief notice")
        return False
    host = os.getenv("SCOUT_SMTP_HOST")
    port = env_int("SCOUT_SMTP_PORT", 587)
    user = os.getenv("SCOUT_SMTP_USER")
    password = os.getenv("SCOUT_SMTP_PASSWORD")
    sender = os.getenv("SCOUT_SMTP_SENDER") or user
    use_tls = env_flag("SCOUT_SMTP_USE_TLS", True)
    use_ssl = env_flag("SCOUT_SMTP_USE_SSL")
    timeout = env_int("SCOUT_SMTP_TIMEOUT", 10)

    first_line = next((ln.strip() for ln in brief_md.splitlines() if ln.strip()), "edit brief")
    message = EmailMessage()
    message["Subject"] = f"new edit brief: {project_name}"
    message["From"] = sender
    message["To"] = recipient
    message.set_content(f"{first_line}\n\n{brief_md}\n")

    try:
        context = ssl.create_default_context()
        if use_ssl:
            with smtplib.SMTP_SSL(host, port, timeout=timeout, context=context) as client:
                client.login(user, password)
                client.send_message(message)
        else:
            with smtplib.SMTP(host, port, timeout=timeout) as client:
                client.ehlo()
                if use_tls:
                    client.starttls(context=context)
                    client.ehlo()
                client.login(user, password)
                client.send_message(message)
        logger.info("Sent brief notice to %s via %s:%s", recipient, host, port)
        return True
    except (smtplib.SMTPException, OSError):
        logger.exception("Failed to send brief notice to %s", recipient)
        return False
