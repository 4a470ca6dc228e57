"""
LOGISTICS App - Delivery notifications

Email bodies and socket events emitted by the delivery workflows. Emails go
through the Celery queue and socket events through the channel layer; none
of these helpers raise.
"""

from django.utils import timezone
from django.utils.html import format_html

from notifications import events
from notifications.models import NotificationPriority, NotificationType
from notifications.services import NotificationService
from logistics.models import Delivery


STATUS_MESSAGES = {
    'assigned': 'A driver has been assigned to your delivery',
    'picked_up': 'Your items have been picked up',
    'in_transit': 'Your delivery is in transit',
    'delivered': 'Your delivery has been completed',
    'cancelled': 'Your delivery has been cancelled',
}


def _driver_info(driver) -> dict:
    return {
        'vehicle_type': driver.vehicle_type,
        'vehicle_number': driver.vehicle_number,
        'rating': driver.rating,
    }


def delivery_payload(delivery: Delivery) -> dict:
    """Flat delivery summary for socket events."""
    return {
        'id': delivery.id,
        'status': delivery.status,
        'priority': delivery.priority,
        'pickup_location': delivery.pickup_location,
        'drop_location': delivery.drop_location,
        'distance': delivery.distance,
        'delivery_fee': delivery.delivery_fee,
        'created_at': delivery.created_at,
    }


# ============================================
# Creation
# ============================================

def delivery_created(delivery: Delivery) -> None:
    customer = delivery.customer
    NotificationService.queue_email(
        customer.email,
        'Delivery Request Created - LuggEase',
        format_html(
            "<h2>Delivery Request Confirmed</h2>"
            "<p>Hi {},</p>"
            "<p>Your delivery request has been created successfully.</p>"
            "<p><strong>Delivery ID:</strong> {}</p>"
            "<p><strong>Pickup:</strong> {}</p>"
            "<p><strong>Drop:</strong> {}</p>"
            "<p><strong>Estimated Fee:</strong> ${}</p>"
            "<p>We'll notify you once a driver accepts your request.</p>",
            customer.name, delivery.id, delivery.pickup_address,
            delivery.drop_address, delivery.delivery_fee,
        ),
    )

    NotificationService.notify_admins(
        title='New Delivery Request',
        message=f"New delivery request from {customer.name}",
        type=NotificationType.DELIVERY,
        data={'delivery_id': str(delivery.id)},
    )

    events.broadcast('new_delivery', delivery_payload(delivery))


# ============================================
# Assignment
# ============================================

def driver_assigned(delivery: Delivery, driver, by: str = 'driver') -> None:
    """
    Tell the customer (and, for admin/auto assignment, the driver) that a
    driver now owns the delivery.

    `by` is one of 'driver' (driver accepted), 'admin' or 'auto'.
    """
    customer = delivery.customer

    if by == 'driver':
        intro = "Good news! A driver has accepted your delivery request."
        subject = 'Driver Assigned - LuggEase'
    elif by == 'admin':
        intro = "We've assigned a driver to your delivery request."
        subject = 'Driver Assigned - LuggEase'
    else:
        intro = "We've automatically assigned a driver to your delivery request."
        subject = 'Driver Auto-Assigned - LuggEase'

    NotificationService.queue_email(
        customer.email,
        subject,
        format_html(
            "<h2>Driver Assigned to Your Delivery</h2>"
            "<p>Hi {},</p>"
            "<p>{}</p>"
            "<p><strong>Driver:</strong> {}</p>"
            "<p><strong>Vehicle:</strong> {} ({})</p>"
            "<p><strong>Phone:</strong> {}</p>"
            "<p>Track your delivery in real-time on our platform.</p>",
            customer.name, intro, driver.name, driver.vehicle_type,
            driver.vehicle_number, driver.phone or 'Contact through app',
        ),
    )

    assigned_data = {
        'delivery_id': delivery.id,
        'driver': {
            'id': driver.pk,
            'name': driver.name,
            'phone': driver.phone,
            'vehicle_info': _driver_info(driver),
        },
    }
    if by == 'auto':
        assigned_data['auto_assigned'] = True
    events.notify_user(customer.pk, 'delivery_assigned', assigned_data)

    if by == 'driver':
        return

    message = (
        'You have been auto-assigned a delivery' if by == 'auto'
        else 'You have been assigned a new delivery'
    )
    NotificationService.queue_email(
        driver.email,
        'New Delivery Assignment - LuggEase',
        format_html(
            "<h2>New Delivery Assignment</h2>"
            "<p>Hi {},</p>"
            "<p>{}.</p>"
            "<p><strong>Pickup:</strong> {}</p>"
            "<p><strong>Drop:</strong> {}</p>"
            "<p>Please check your driver dashboard for details.</p>",
            driver.name, message, delivery.pickup_address, delivery.drop_address,
        ),
    )
    events.notify_user(driver.pk, 'new_assignment', {
        'delivery_id': delivery.id,
        'message': message,
    })


def no_driver_available(delivery: Delivery) -> None:
    """Escalate an overdue delivery nobody can take to every admin."""
    customer = delivery.customer
    NotificationService.notify_admins(
        title='Urgent: No Drivers Available',
        message=(
            f"Delivery {delivery.id} has been pending for 24+ hours "
            f"with no available drivers"
        ),
        type=NotificationType.SYSTEM,
        priority=NotificationPriority.HIGH,
        data={'delivery_id': str(delivery.id), 'action_required': True},
        email_subject='URGENT: Delivery Assignment Needed',
        email_html=format_html(
            "<h2>Urgent Delivery Assignment Required</h2>"
            "<p>Delivery {} has been pending for over 24 hours.</p>"
            "<p><strong>Customer:</strong> {}</p>"
            "<p><strong>Pickup:</strong> {}</p>"
            "<p><strong>Drop:</strong> {}</p>"
            "<p>Please manually assign a driver or contact the customer.</p>",
            delivery.id, customer.name, delivery.pickup_address, delivery.drop_address,
        ),
    )


# ============================================
# Status changes
# ============================================

def status_changed(delivery: Delivery) -> None:
    customer = delivery.customer
    status = delivery.status

    NotificationService.queue_email(
        customer.email,
        f"Delivery Update - {status.replace('_', ' ').upper()}",
        format_html(
            "<h2>Delivery Status Update</h2>"
            "<p>Hi {},</p>"
            "<p>{}</p>"
            "<p><strong>Delivery ID:</strong> {}</p>"
            "<p>Track your delivery in real-time on our platform.</p>",
            customer.name, STATUS_MESSAGES.get(status, status), delivery.id,
        ),
    )

    data = {
        'delivery_id': delivery.id,
        'status': status,
        'timestamp': timezone.now(),
    }
    events.notify_user(customer.pk, 'delivery_status_update', data)
    events.notify_delivery(delivery.id, 'delivery_status_update', data)


def delivery_completed(delivery: Delivery) -> None:
    customer = delivery.customer
    NotificationService.queue_email(
        customer.email,
        'Delivery Completed - LuggEase',
        format_html(
            "<h2>Delivery Completed Successfully</h2>"
            "<p>Hi {},</p>"
            "<p>Your delivery has been completed successfully!</p>"
            "<p><strong>Delivery ID:</strong> {}</p>"
            "<p><strong>Completed at:</strong> {}</p>"
            "<p>Please rate your experience to help us improve our service.</p>",
            customer.name, delivery.id,
            timezone.localtime(delivery.actual_delivery_time).strftime('%Y-%m-%d %H:%M'),
        ),
    )
    events.notify_user(customer.pk, 'delivery_completed', {
        'delivery_id': delivery.id,
        'completed_at': delivery.actual_delivery_time,
    })


def driver_location_changed(driver, delivery_ids) -> None:
    data = {
        'driver_id': driver.pk,
        'location': driver.current_location,
        'timestamp': driver.location_updated_at,
    }
    for delivery_id in delivery_ids:
        events.notify_delivery(delivery_id, 'driver_location', data)
