"""
Tests for the Delivery model: fee recomputation and helpers.
"""

from decimal import Decimal
from django.test import TestCase

from logistics.models import Delivery, DeliveryPriority, DeliveryStatus
from .factories import make_customer, make_driver, make_delivery


class TestDeliveryFee(TestCase):

    def setUp(self):
        self.customer = make_customer()

    def test_fee_computed_on_create(self):
        delivery = make_delivery(self.customer, distance=10)
        self.assertEqual(delivery.delivery_fee, Decimal('10.00'))
        self.assertEqual(delivery.status, DeliveryStatus.PENDING)
        self.assertEqual(delivery.priority, DeliveryPriority.MEDIUM)

    def test_fee_recomputed_when_priority_changes(self):
        delivery = make_delivery(self.customer, distance=10)

        delivery = Delivery.objects.get(pk=delivery.pk)
        delivery.priority = DeliveryPriority.URGENT
        delivery.save(update_fields=['priority'])

        delivery.refresh_from_db()
        self.assertEqual(delivery.delivery_fee, Decimal('20.00'))

    def test_fee_recomputed_when_distance_changes(self):
        delivery = make_delivery(self.customer, distance=10)
        delivery.distance = 20
        delivery.save()

        delivery.refresh_from_db()
        self.assertEqual(delivery.delivery_fee, Decimal('15.00'))

    def test_fee_kept_when_pricing_inputs_unchanged(self):
        delivery = make_delivery(self.customer, distance=10)
        Delivery.objects.filter(pk=delivery.pk).update(delivery_fee=Decimal('99.00'))

        delivery = Delivery.objects.get(pk=delivery.pk)
        delivery.pickup_instructions = 'Ring twice'
        delivery.save()

        delivery.refresh_from_db()
        self.assertEqual(delivery.delivery_fee, Decimal('99.00'))


class TestDeliveryHelpers(TestCase):

    def setUp(self):
        self.customer = make_customer()
        self.driver = make_driver()
        self.delivery = make_delivery(self.customer, driver=self.driver)

    def test_is_party(self):
        other = make_customer(email='other@example.com')
        self.assertTrue(self.delivery.is_party(self.customer))
        self.assertTrue(self.delivery.is_party(self.driver))
        self.assertFalse(self.delivery.is_party(other))

    def test_locations(self):
        self.assertEqual(self.delivery.pickup_location['address'], 'Gare du Nord, Paris')
        self.assertEqual(self.delivery.drop_location['latitude'], 48.8443)

    def test_items_related(self):
        self.assertEqual(self.delivery.items.count(), 1)
