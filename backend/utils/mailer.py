import html
import logging
from email.message import EmailMessage

import aiosmtplib

from config.env import (
    SMTP_HOST,
    SMTP_PORT,
    SMTP_USER,
    SMTP_PASSWORD,
    SMTP_FROM_EMAIL,
)

logger = logging.getLogger(__name__)

SMTP_TIMEOUT_SECONDS = 20


def _smtp_configured() -> bool:
    return bool(SMTP_HOST and SMTP_FROM_EMAIL)


def build_message(to: str, subject: str, message: str) -> EmailMessage:
    mail = EmailMessage()
    mail["From"] = SMTP_FROM_EMAIL
    mail["To"] = to
    mail["Subject"] = subject
    mail.set_content(message)
    mail.add_alternative(f"<p>{html.escape(message)}</p>", subtype="html")
    return mail


async def send_email_simple(to: str | None, subject: str, message: str) -> bool:
    """
    Fire-and-forget email. Returns False when skipped or failed; never raises.
    """
    if not to or not subject or not message:
        return False

    if not _smtp_configured():
        logger.debug("EMAIL_SKIPPED to=%s subject=%s", to, subject)
        return False

    authenticated = bool(SMTP_USER and SMTP_PASSWORD)
    try:
        await aiosmtplib.send(
            build_message(to, subject, message),
            hostname=SMTP_HOST,
            port=SMTP_PORT,
            username=SMTP_USER if authenticated else None,
            password=SMTP_PASSWORD if authenticated else None,
            start_tls=authenticated,
            timeout=SMTP_TIMEOUT_SECONDS,
        )
        return True
    except Exception:
        logger.exception("EMAIL_SEND_FAILED to=%s", to)
        return False
