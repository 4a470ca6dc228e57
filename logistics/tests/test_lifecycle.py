"""
Tests for the delivery status state machine.
"""

from django.test import TestCase

from logistics.models import DeliveryStatus, TrackingEvent
from logistics.services.lifecycle import (
    ALLOWED_TRANSITIONS, InvalidTransition, can_transition, transition,
)
from .factories import make_customer, make_driver, make_delivery


class TestAllowedTransitions(TestCase):

    def test_happy_path(self):
        path = [
            DeliveryStatus.PENDING,
            DeliveryStatus.ASSIGNED,
            DeliveryStatus.PICKED_UP,
            DeliveryStatus.IN_TRANSIT,
            DeliveryStatus.DELIVERED,
        ]
        for current, new in zip(path, path[1:]):
            self.assertTrue(can_transition(current, new), f"{current} -> {new}")

    def test_cancellable_until_in_transit(self):
        self.assertTrue(can_transition(DeliveryStatus.PENDING, DeliveryStatus.CANCELLED))
        self.assertTrue(can_transition(DeliveryStatus.ASSIGNED, DeliveryStatus.CANCELLED))
        self.assertTrue(can_transition(DeliveryStatus.PICKED_UP, DeliveryStatus.CANCELLED))
        self.assertFalse(can_transition(DeliveryStatus.IN_TRANSIT, DeliveryStatus.CANCELLED))

    def test_terminal_states(self):
        self.assertEqual(ALLOWED_TRANSITIONS[DeliveryStatus.DELIVERED], set())
        self.assertEqual(ALLOWED_TRANSITIONS[DeliveryStatus.CANCELLED], set())

    def test_no_skipping(self):
        self.assertFalse(can_transition(DeliveryStatus.PENDING, DeliveryStatus.DELIVERED))
        self.assertFalse(can_transition(DeliveryStatus.ASSIGNED, DeliveryStatus.IN_TRANSIT))


class TestTransition(TestCase):

    def setUp(self):
        self.customer = make_customer()
        self.driver = make_driver(is_available=False)
        self.delivery = make_delivery(self.customer, driver=self.driver)

    def test_assign_stamps_assigned_at_and_tracks(self):
        transition(self.delivery, DeliveryStatus.ASSIGNED)

        self.delivery.refresh_from_db()
        self.assertEqual(self.delivery.status, DeliveryStatus.ASSIGNED)
        self.assertIsNotNone(self.delivery.assigned_at)
        self.assertEqual(
            list(TrackingEvent.objects.filter(delivery=self.delivery).values_list('status', flat=True)),
            [DeliveryStatus.ASSIGNED]
        )

    def test_assign_without_driver_rejected(self):
        delivery = make_delivery(self.customer)
        with self.assertRaises(InvalidTransition):
            transition(delivery, DeliveryStatus.ASSIGNED)

    def test_pickup_and_delivery_timestamps(self):
        transition(self.delivery, DeliveryStatus.ASSIGNED)
        transition(self.delivery, DeliveryStatus.PICKED_UP)
        self.assertIsNotNone(self.delivery.actual_pickup_time)

        transition(self.delivery, DeliveryStatus.IN_TRANSIT)
        transition(self.delivery, DeliveryStatus.DELIVERED)
        self.assertIsNotNone(self.delivery.actual_delivery_time)
        self.assertEqual(self.delivery.tracking.count(), 4)

    def test_delivered_frees_driver_and_counts(self):
        for status in (
            DeliveryStatus.ASSIGNED,
            DeliveryStatus.PICKED_UP,
            DeliveryStatus.IN_TRANSIT,
            DeliveryStatus.DELIVERED,
        ):
            transition(self.delivery, status)

        self.driver.refresh_from_db()
        self.assertTrue(self.driver.is_available)
        self.assertEqual(self.driver.total_deliveries, 1)

    def test_cancel_frees_driver_without_counting(self):
        transition(self.delivery, DeliveryStatus.ASSIGNED)
        transition(self.delivery, DeliveryStatus.CANCELLED, notes='Customer changed plans')

        self.driver.refresh_from_db()
        self.assertTrue(self.driver.is_available)
        self.assertEqual(self.driver.total_deliveries, 0)
        self.assertEqual(self.delivery.tracking.last().notes, 'Customer changed plans')

    def test_invalid_transition_leaves_delivery_untouched(self):
        with self.assertRaises(InvalidTransition):
            transition(self.delivery, DeliveryStatus.DELIVERED)

        self.delivery.refresh_from_db()
        self.assertEqual(self.delivery.status, DeliveryStatus.PENDING)
        self.assertEqual(self.delivery.tracking.count(), 0)

    def test_terminal_state_is_final(self):
        transition(self.delivery, DeliveryStatus.CANCELLED)
        with self.assertRaises(InvalidTransition):
            transition(self.delivery, DeliveryStatus.ASSIGNED)
