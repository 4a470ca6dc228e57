"""
NOTIFICATIONS App - Celery Tasks

- Asynchronous email delivery with retries
- Daily purge of old read notifications
"""

import logging
from datetime import timedelta

from celery import shared_task
from django.conf import settings
from django.utils import timezone

logger = logging.getLogger(__name__)


@shared_task(
    bind=True,
    max_retries=3,
    default_retry_delay=30,
)
def send_email_task(self, to: str, subject: str, html: str, text: str = None):
    """
    Send one email (async).

    Retried up to 3 times on transport errors.
    """
    from notifications.emails import send_email

    try:
        return send_email(to=to, subject=subject, html=html, text=text)
    except Exception as e:
        logger.error(f"[TASK] Error sending email to {to}: {e}")
        raise self.retry(exc=e)


@shared_task(name='notifications.tasks.cleanup_old_notifications')
def cleanup_old_notifications():
    """
    Delete read notifications older than the retention window (30 days).

    Runs daily at 02:00. Unread notifications are kept regardless of age.
    """
    from notifications.models import Notification

    retention_days = getattr(settings, 'NOTIFICATION_RETENTION_DAYS', 30)
    cutoff = timezone.now() - timedelta(days=retention_days)

    deleted, _ = Notification.objects.filter(
        created_at__lt=cutoff,
        is_read=True,
    ).delete()

    logger.info(f"[NOTIFICATIONS TASK] Cleaned up {deleted} old notifications")
    return deleted
