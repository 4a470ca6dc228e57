"""
NOTIFICATIONS App - Notification Service

Single entry point used by the other apps to:
- persist in-app notifications
- queue emails
- push the notification to the recipient's open sockets
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

from django.contrib.auth import get_user_model

from core.models import UserRole
from .models import Notification, NotificationType, NotificationPriority
from . import events

logger = logging.getLogger(__name__)

User = get_user_model()


class NotificationService:
    """Creates notifications and dispatches emails without failing the caller."""

    @staticmethod
    def queue_email(to: str, subject: str, html: str) -> bool:
        """
        Queue an email on Celery.

        Returns False (and logs) if the broker rejects the task; the caller's
        operation is never interrupted by email problems.
        """
        from notifications.tasks import send_email_task

        if not to:
            return False
        try:
            send_email_task.delay(to=to, subject=subject, html=html)
            return True
        except Exception as e:
            logger.warning(f"[NOTIFY] Email '{subject}' to {to} not queued: {e}")
            return False

    @staticmethod
    def create(
        recipient,
        title: str,
        message: str,
        type: str = NotificationType.GENERAL,
        priority: str = NotificationPriority.MEDIUM,
        data: Optional[Dict[str, Any]] = None,
    ) -> Notification:
        """Persist a notification and push it to the recipient's sockets."""
        notification = Notification.objects.create(
            recipient=recipient,
            title=title,
            message=message,
            type=type,
            priority=priority,
            data=data or {},
        )
        events.notify_user(recipient.pk, 'notification', {
            'id': notification.pk,
            'title': notification.title,
            'message': notification.message,
            'type': notification.type,
            'priority': notification.priority,
            'data': notification.data,
            'is_read': False,
            'timestamp': notification.created_at,
        })
        return notification

    @classmethod
    def notify_admins(
        cls,
        title: str,
        message: str,
        type: str = NotificationType.SYSTEM,
        priority: str = NotificationPriority.MEDIUM,
        data: Optional[Dict[str, Any]] = None,
        email_subject: Optional[str] = None,
        email_html: Optional[str] = None,
    ) -> List[Notification]:
        """
        Create one notification per admin, optionally emailing each of them.
        """
        created = []
        for admin in cls.admins():
            created.append(cls.create(
                recipient=admin,
                title=title,
                message=message,
                type=type,
                priority=priority,
                data=data,
            ))
            if email_subject and email_html:
                cls.queue_email(admin.email, email_subject, email_html)

        logger.info(f"[NOTIFY] '{title}' sent to {len(created)} admin(s)")
        return created

    @staticmethod
    def admins() -> Iterable:
        return User.objects.filter(role=UserRole.ADMIN, is_active=True)
