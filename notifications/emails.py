"""
NOTIFICATIONS App - Email Service

Sends transactional email through the Django mail framework (SMTP in
production). Every message carries an HTML body and a plain-text
alternative derived from it.
"""

import logging
from typing import Iterable, Optional

from django.conf import settings
from django.core.mail import EmailMultiAlternatives
from django.utils.html import strip_tags

logger = logging.getLogger(__name__)


def get_from_address() -> str:
    sender_name = getattr(settings, 'EMAIL_SENDER_NAME', 'LuggEase')
    sender_email = settings.EMAIL_HOST_USER or settings.DEFAULT_FROM_EMAIL
    return f'"{sender_name}" <{sender_email}>'


def send_email(to: str, subject: str, html: str, text: Optional[str] = None) -> int:
    """
    Send a single HTML email.

    Args:
        to: Recipient address
        subject: Subject line
        html: HTML body
        text: Plain-text body (defaults to `html` with tags stripped)

    Returns:
        Number of messages sent (1)

    Raises:
        Any transport error from the email backend, after logging it.
    """
    message = EmailMultiAlternatives(
        subject=subject,
        body=text or strip_tags(html).strip(),
        from_email=get_from_address(),
        to=[to],
    )
    message.attach_alternative(html, 'text/html')

    try:
        sent = message.send()
    except Exception as e:
        logger.error(f"[EMAIL] Send to {to} failed: {e}")
        raise

    logger.info(f"[EMAIL] Sent '{subject}' to {to}")
    return sent


def send_bulk_email(recipients: Iterable[dict]) -> dict:
    """
    Send several emails, attempting every one.

    Each recipient is a dict of `send_email` kwargs. Failures are logged
    and counted, never raised.

    Returns:
        dict: {"sent": int, "failed": int}
    """
    sent = 0
    failed = 0
    for recipient in recipients:
        try:
            send_email(**recipient)
            sent += 1
        except Exception:
            failed += 1

    logger.info(f"[EMAIL] Bulk email: {sent} sent, {failed} failed")
    return {'sent': sent, 'failed': failed}
