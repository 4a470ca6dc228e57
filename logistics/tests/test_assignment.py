"""
Tests for driver assignment: accept, admin assign, complete and the hourly
auto-assignment job.
"""

from datetime import timedelta
from decimal import Decimal
from unittest.mock import patch

from django.core import mail
from django.test import TestCase
from django.utils import timezone

from logistics.models import Delivery, DeliveryPriority, DeliveryStatus
from logistics.services.assignment import (
    AssignmentError, accept_delivery, assign_delivery,
    auto_assign_overdue_deliveries, complete_delivery,
)
from logistics.services.lifecycle import transition
from logistics.tasks import auto_assign_overdue_deliveries as auto_assign_task
from notifications.models import Notification, NotificationPriority, NotificationType
from .factories import make_admin, make_customer, make_driver, make_delivery


def make_overdue(delivery, hours=25):
    Delivery.objects.filter(pk=delivery.pk).update(
        created_at=timezone.now() - timedelta(hours=hours)
    )


class TestAcceptDelivery(TestCase):

    def setUp(self):
        self.customer = make_customer()
        self.driver = make_driver()
        self.delivery = make_delivery(self.customer)

    def test_accept_assigns_and_marks_driver_busy(self):
        with self.captureOnCommitCallbacks(execute=True):
            delivery = accept_delivery(self.delivery.pk, self.driver)

        self.assertEqual(delivery.status, DeliveryStatus.ASSIGNED)
        self.assertEqual(delivery.driver, self.driver)
        self.assertIsNotNone(delivery.assigned_at)
        self.assertIsNone(delivery.auto_assigned_at)

        self.driver.refresh_from_db()
        self.assertFalse(self.driver.is_available)

        self.assertEqual(len(mail.outbox), 1)
        self.assertEqual(mail.outbox[0].to, [self.customer.email])
        self.assertEqual(mail.outbox[0].subject, 'Driver Assigned - LuggEase')

    def test_already_taken(self):
        other = make_driver(email='other-driver@example.com')
        accept_delivery(self.delivery.pk, other)

        with self.assertRaisesMessage(AssignmentError, 'Delivery no longer available'):
            accept_delivery(self.delivery.pk, self.driver)

    def test_unavailable_driver(self):
        self.driver.is_available = False
        self.driver.save()

        with self.assertRaisesMessage(AssignmentError, 'Driver not available'):
            accept_delivery(self.delivery.pk, self.driver)

    @patch('logistics.services.notify.events.notify_user')
    def test_socket_event_to_customer(self, mock_notify):
        with self.captureOnCommitCallbacks(execute=True):
            accept_delivery(self.delivery.pk, self.driver)

        mock_notify.assert_called_once()
        user_id, event, data = mock_notify.call_args[0]
        self.assertEqual(user_id, self.customer.pk)
        self.assertEqual(event, 'delivery_assigned')
        self.assertEqual(data['driver']['name'], 'Dan Driver')
        self.assertNotIn('auto_assigned', data)


class TestAdminAssign(TestCase):

    def setUp(self):
        self.customer = make_customer()
        self.driver = make_driver()
        self.delivery = make_delivery(self.customer)

    def test_assign_emails_both_parties(self):
        with self.captureOnCommitCallbacks(execute=True):
            assign_delivery(self.delivery, self.driver)

        self.delivery.refresh_from_db()
        self.assertEqual(self.delivery.status, DeliveryStatus.ASSIGNED)
        self.assertIsNotNone(self.delivery.assigned_at)
        self.assertIsNone(self.delivery.auto_assigned_at)

        recipients = sorted(m.to[0] for m in mail.outbox)
        self.assertEqual(recipients, sorted([self.customer.email, self.driver.email]))

    def test_rejects_non_driver(self):
        with self.assertRaisesMessage(AssignmentError, 'User is not a driver'):
            assign_delivery(self.delivery, self.customer)

    def test_rejects_non_pending(self):
        transition(self.delivery, DeliveryStatus.CANCELLED)
        with self.assertRaisesMessage(AssignmentError, 'Delivery cannot be assigned'):
            assign_delivery(self.delivery, self.driver)


class TestCompleteDelivery(TestCase):

    def setUp(self):
        self.customer = make_customer()
        self.driver = make_driver()
        self.delivery = make_delivery(self.customer)
        accept_delivery(self.delivery.pk, self.driver)
        self.delivery.refresh_from_db()

    def test_requires_in_transit(self):
        with self.assertRaisesMessage(AssignmentError, 'Delivery not in transit'):
            complete_delivery(self.delivery, self.driver)

    def test_requires_assigned_driver(self):
        other = make_driver(email='other-driver@example.com')
        with self.assertRaises(PermissionError):
            complete_delivery(self.delivery, other)

    def test_complete(self):
        transition(self.delivery, DeliveryStatus.PICKED_UP)
        transition(self.delivery, DeliveryStatus.IN_TRANSIT)

        with self.captureOnCommitCallbacks(execute=True):
            complete_delivery(self.delivery, self.driver)

        self.delivery.refresh_from_db()
        self.assertEqual(self.delivery.status, DeliveryStatus.DELIVERED)
        self.assertIsNotNone(self.delivery.actual_delivery_time)

        self.driver.refresh_from_db()
        self.assertTrue(self.driver.is_available)
        self.assertEqual(self.driver.total_deliveries, 1)
        self.assertEqual(mail.outbox[-1].subject, 'Delivery Completed - LuggEase')

    def test_second_complete_from_stale_copy_is_rejected(self):
        transition(self.delivery, DeliveryStatus.PICKED_UP)
        transition(self.delivery, DeliveryStatus.IN_TRANSIT)
        stale = Delivery.objects.get(pk=self.delivery.pk)

        complete_delivery(self.delivery, self.driver)
        with self.assertRaisesMessage(AssignmentError, 'Delivery not in transit'):
            complete_delivery(stale, self.driver)

        self.driver.refresh_from_db()
        self.assertEqual(self.driver.total_deliveries, 1)
        self.assertEqual(Delivery.objects.get(pk=self.delivery.pk).tracking.count(), 4)


class TestAutoAssignment(TestCase):

    def setUp(self):
        self.customer = make_customer()
        self.admin = make_admin()

    def test_recent_deliveries_untouched(self):
        make_driver()
        delivery = make_delivery(self.customer)

        summary = auto_assign_overdue_deliveries()

        self.assertEqual(summary['processed'], 0)
        delivery.refresh_from_db()
        self.assertEqual(delivery.status, DeliveryStatus.PENDING)

    def test_assigns_first_available_driver(self):
        first = make_driver(email='first@example.com', date_joined=timezone.now() - timedelta(days=10))
        make_driver(email='second@example.com', date_joined=timezone.now() - timedelta(days=1))
        make_driver(email='busy@example.com', is_available=False, date_joined=timezone.now() - timedelta(days=20))
        delivery = make_delivery(self.customer)
        make_overdue(delivery)

        summary = auto_assign_overdue_deliveries()

        self.assertEqual(summary, {'processed': 1, 'assigned': 1, 'escalated': 0, 'failed': 0})
        delivery.refresh_from_db()
        self.assertEqual(delivery.status, DeliveryStatus.ASSIGNED)
        self.assertEqual(delivery.driver, first)
        self.assertIsNotNone(delivery.auto_assigned_at)

        first.refresh_from_db()
        self.assertFalse(first.is_available)

        subjects = sorted(m.subject for m in mail.outbox)
        self.assertEqual(subjects, ['Driver Auto-Assigned - LuggEase', 'New Delivery Assignment - LuggEase'])

    def test_driver_used_once_per_run(self):
        make_driver()
        first = make_delivery(self.customer)
        second = make_delivery(self.customer)
        make_overdue(first, hours=30)
        make_overdue(second, hours=26)

        summary = auto_assign_overdue_deliveries()

        self.assertEqual(summary['assigned'], 1)
        self.assertEqual(summary['escalated'], 1)
        second.refresh_from_db()
        self.assertTrue(second.is_urgent)

    @patch('logistics.services.notify.events.notify_user')
    def test_auto_assigned_flag_in_socket_event(self, mock_notify):
        driver = make_driver()
        delivery = make_delivery(self.customer)
        make_overdue(delivery)

        auto_assign_overdue_deliveries()

        events = {call[0][1]: call[0] for call in mock_notify.call_args_list}
        self.assertTrue(events['delivery_assigned'][2]['auto_assigned'])
        self.assertEqual(events['new_assignment'][0], driver.pk)

    def test_escalates_when_no_driver(self):
        delivery = make_delivery(self.customer, distance=10)
        make_overdue(delivery)

        summary = auto_assign_overdue_deliveries()

        self.assertEqual(summary['escalated'], 1)
        delivery.refresh_from_db()
        self.assertTrue(delivery.is_urgent)
        self.assertEqual(delivery.priority, DeliveryPriority.URGENT)
        self.assertEqual(delivery.status, DeliveryStatus.PENDING)
        self.assertEqual(delivery.delivery_fee, Decimal('20.00'))

        notification = Notification.objects.get(recipient=self.admin)
        self.assertEqual(notification.title, 'Urgent: No Drivers Available')
        self.assertEqual(notification.type, NotificationType.SYSTEM)
        self.assertEqual(notification.priority, NotificationPriority.HIGH)
        self.assertEqual(notification.data, {'delivery_id': str(delivery.id), 'action_required': True})

        self.assertEqual(mail.outbox[0].to, [self.admin.email])
        self.assertEqual(mail.outbox[0].subject, 'URGENT: Delivery Assignment Needed')

    def test_one_failure_does_not_stop_the_run(self):
        make_driver()
        broken = make_delivery(self.customer)
        fine = make_delivery(self.customer)
        make_overdue(broken, hours=30)
        make_overdue(fine, hours=26)

        original = transition

        def flaky(delivery, *args, **kwargs):
            if delivery.pk == broken.pk:
                raise RuntimeError('boom')
            return original(delivery, *args, **kwargs)

        with patch('logistics.services.assignment.transition', side_effect=flaky):
            summary = auto_assign_overdue_deliveries()

        self.assertEqual(summary['failed'], 1)
        self.assertEqual(summary['assigned'], 1)
        fine.refresh_from_db()
        self.assertEqual(fine.status, DeliveryStatus.ASSIGNED)

    def test_celery_task_returns_summary(self):
        result = auto_assign_task.delay()
        self.assertEqual(result.get(), {'processed': 0, 'assigned': 0, 'escalated': 0, 'failed': 0})
