"""
LOGISTICS App - Delivery lifecycle (state machine)

    pending -> assigned -> picked_up -> in_transit -> delivered
    pending | assigned | picked_up -> cancelled

delivered and cancelled are terminal. Every transition appends a
TrackingEvent and stamps the matching timestamp on the delivery.
"""

import logging
from typing import Optional

from django.db import transaction
from django.db.models import F
from django.utils import timezone

from core.models import User
from logistics.models import Delivery, DeliveryStatus, TrackingEvent

logger = logging.getLogger(__name__)


ALLOWED_TRANSITIONS = {
    DeliveryStatus.PENDING: {DeliveryStatus.ASSIGNED, DeliveryStatus.CANCELLED},
    DeliveryStatus.ASSIGNED: {DeliveryStatus.PICKED_UP, DeliveryStatus.CANCELLED},
    DeliveryStatus.PICKED_UP: {DeliveryStatus.IN_TRANSIT, DeliveryStatus.CANCELLED},
    DeliveryStatus.IN_TRANSIT: {DeliveryStatus.DELIVERED},
    DeliveryStatus.DELIVERED: set(),
    DeliveryStatus.CANCELLED: set(),
}

# Statuses in which a driver is actively working a delivery
ACTIVE_STATUSES = [
    DeliveryStatus.ASSIGNED,
    DeliveryStatus.PICKED_UP,
    DeliveryStatus.IN_TRANSIT,
]


class InvalidTransition(ValueError):
    """Raised when a status change is not allowed from the current status."""


def can_transition(current: str, new: str) -> bool:
    return new in ALLOWED_TRANSITIONS.get(current, set())


def release_driver(driver: User, completed: bool = False) -> None:
    """Make a driver available again, counting the delivery when completed."""
    updates = {'is_available': True}
    if completed:
        updates['total_deliveries'] = F('total_deliveries') + 1
    User.objects.filter(pk=driver.pk).update(**updates)
    driver.refresh_from_db(fields=['is_available', 'total_deliveries'])


@transaction.atomic
def transition(
    delivery: Delivery,
    new_status: str,
    notes: str = '',
    latitude: Optional[float] = None,
    longitude: Optional[float] = None,
    address: str = '',
) -> Delivery:
    """
    Move `delivery` to `new_status`.

    Raises:
        InvalidTransition: if the change is not allowed, or if the delivery
        would become assigned without a driver.
    """
    old_status = delivery.status
    if not can_transition(old_status, new_status):
        raise InvalidTransition(
            f"Cannot change status from {old_status} to {new_status}"
        )
    if new_status == DeliveryStatus.ASSIGNED and not delivery.driver_id:
        raise InvalidTransition("Delivery has no driver to assign")

    now = timezone.now()
    delivery.status = new_status
    update_fields = ['status', 'updated_at']

    if new_status == DeliveryStatus.ASSIGNED and not delivery.assigned_at:
        delivery.assigned_at = now
        update_fields.append('assigned_at')
    elif new_status == DeliveryStatus.PICKED_UP:
        delivery.actual_pickup_time = now
        update_fields.append('actual_pickup_time')
    elif new_status == DeliveryStatus.DELIVERED:
        delivery.actual_delivery_time = now
        update_fields.append('actual_delivery_time')

    delivery.save(update_fields=update_fields)

    TrackingEvent.objects.create(
        delivery=delivery,
        status=new_status,
        latitude=latitude,
        longitude=longitude,
        address=address or '',
        notes=notes or '',
        timestamp=now,
    )

    if delivery.driver_id and new_status in (DeliveryStatus.DELIVERED, DeliveryStatus.CANCELLED):
        release_driver(delivery.driver, completed=new_status == DeliveryStatus.DELIVERED)

    logger.info(
        f"[LIFECYCLE] Delivery {str(delivery.id)[:8]}: {old_status} -> {new_status}"
    )
    return delivery
