"""
LOGISTICS App - Driver assignment

- Driver self-service accept (race condition safe)
- Admin manual assignment
- Driver completion
- Hourly auto-assignment of overdue pending deliveries, escalating to admins
  when no driver is free
"""

import logging
from datetime import timedelta
from typing import List

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from core.models import User, UserRole
from logistics.models import Delivery, DeliveryPriority, DeliveryStatus
from . import notify
from .lifecycle import transition

logger = logging.getLogger(__name__)


class AssignmentError(ValueError):
    """Raised when a delivery cannot be given to (or completed by) a driver."""


def available_drivers() -> List[User]:
    """Active, available drivers, oldest accounts first."""
    return list(
        User.objects.filter(
            role=UserRole.DRIVER,
            is_active=True,
            is_available=True,
        ).order_by('date_joined')
    )


def _assign(delivery: Delivery, driver: User, auto: bool = False) -> Delivery:
    now = timezone.now()
    delivery.driver = driver
    delivery.assigned_at = now
    update_fields = ['driver', 'assigned_at']
    if auto:
        delivery.auto_assigned_at = now
        update_fields.append('auto_assigned_at')
    delivery.save(update_fields=update_fields)

    transition(delivery, DeliveryStatus.ASSIGNED, notes='Auto-assigned' if auto else '')

    User.objects.filter(pk=driver.pk).update(is_available=False)
    driver.is_available = False
    return delivery


@transaction.atomic
def accept_delivery(delivery_id, driver: User) -> Delivery:
    """
    Accept a pending delivery as a driver.

    Uses SELECT FOR UPDATE so two drivers cannot take the same delivery.

    Raises:
        Delivery.DoesNotExist: unknown delivery
        AssignmentError: delivery taken or driver unavailable
    """
    delivery = Delivery.objects.select_for_update().get(pk=delivery_id)

    if delivery.status != DeliveryStatus.PENDING or delivery.driver_id:
        raise AssignmentError("Delivery no longer available")

    driver.refresh_from_db(fields=['is_available'])
    if not driver.is_available:
        raise AssignmentError("Driver not available")

    _assign(delivery, driver)
    logger.info(f"[ASSIGN] Delivery {str(delivery.id)[:8]} accepted by {driver.email}")

    transaction.on_commit(lambda: notify.driver_assigned(delivery, driver, by='driver'))
    return delivery


@transaction.atomic
def assign_delivery(delivery: Delivery, driver: User) -> Delivery:
    """
    Admin assignment of a pending delivery to a driver.

    Raises:
        AssignmentError: delivery not pending or user not a driver
    """
    if delivery.status != DeliveryStatus.PENDING:
        raise AssignmentError("Delivery cannot be assigned")
    if not driver.is_driver:
        raise AssignmentError("User is not a driver")

    _assign(delivery, driver)
    logger.info(f"[ASSIGN] Delivery {str(delivery.id)[:8]} assigned to {driver.email} by admin")

    transaction.on_commit(lambda: notify.driver_assigned(delivery, driver, by='admin'))
    return delivery


@transaction.atomic
def complete_delivery(delivery: Delivery, driver: User) -> Delivery:
    """
    Mark an in-transit delivery as delivered by its driver.

    The row is locked and re-read so a delivery is only counted once.

    Raises:
        PermissionError: driver does not own the delivery
        AssignmentError: delivery is not in transit
    """
    delivery = Delivery.objects.select_for_update().get(pk=delivery.pk)

    if delivery.driver_id != driver.pk:
        raise PermissionError("Not authorized")
    if delivery.status != DeliveryStatus.IN_TRANSIT:
        raise AssignmentError("Delivery not in transit")

    transition(delivery, DeliveryStatus.DELIVERED)

    transaction.on_commit(lambda: notify.delivery_completed(delivery))
    return delivery


def overdue_deliveries():
    hours = getattr(settings, 'AUTO_ASSIGN_AFTER_HOURS', 24)
    cutoff = timezone.now() - timedelta(hours=hours)
    return Delivery.objects.filter(
        status=DeliveryStatus.PENDING,
        driver__isnull=True,
        created_at__lt=cutoff,
    ).select_related('customer').order_by('created_at')


def auto_assign_overdue_deliveries() -> dict:
    """
    Give every overdue pending delivery to the first available driver.

    When nobody is free the delivery is flagged urgent (which raises its fee)
    and every admin is alerted. A failure on one delivery is logged and the
    run continues with the next.

    Returns:
        {'processed', 'assigned', 'escalated', 'failed'} counts
    """
    summary = {'processed': 0, 'assigned': 0, 'escalated': 0, 'failed': 0}

    for delivery in overdue_deliveries():
        summary['processed'] += 1
        try:
            drivers = available_drivers()
            if drivers:
                driver = drivers[0]
                with transaction.atomic():
                    _assign(delivery, driver, auto=True)
                notify.driver_assigned(delivery, driver, by='auto')
                summary['assigned'] += 1
                logger.info(
                    f"[ASSIGN] Auto-assigned delivery {str(delivery.id)[:8]} to {driver.email}"
                )
            else:
                delivery.is_urgent = True
                delivery.priority = DeliveryPriority.URGENT
                delivery.save(update_fields=['is_urgent', 'priority', 'updated_at'])
                notify.no_driver_available(delivery)
                summary['escalated'] += 1
                logger.warning(
                    f"[ASSIGN] No drivers available for delivery {str(delivery.id)[:8]}, marked as urgent"
                )
        except Exception as e:
            summary['failed'] += 1
            logger.error(f"[ASSIGN] Auto-assignment failed for delivery {delivery.id}: {e}")

    logger.info(f"[ASSIGN] Processed {summary['processed']} overdue deliveries")
    return summary
