"""
API tests for /api/delivery/, /api/driver/ and /api/admin/.
"""

from datetime import timedelta
from decimal import Decimal, ROUND_HALF_UP
from unittest.mock import patch

from django.core import mail
from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APITestCase

from logistics.models import Delivery, DeliveryStatus, DeliveryPriority
from logistics.services.lifecycle import transition
from notifications.models import Notification
from .factories import (
    DROP, PICKUP, make_admin, make_customer, make_delivery, make_driver,
)


def delivery_payload(**overrides):
    payload = {
        'pickup_location': dict(PICKUP, contact_name='Carla', contact_phone='+33600000000'),
        'drop_location': dict(DROP),
        'items': [{'description': 'Large suitcase', 'weight': 21.5, 'fragile': False}],
    }
    payload.update(overrides)
    return payload


class TestCreateDelivery(APITestCase):

    def setUp(self):
        self.customer = make_customer()
        self.admin = make_admin()
        self.client.force_authenticate(self.customer)
        self.url = reverse('delivery-create')

    @patch('logistics.services.notify.events.broadcast')
    def test_create(self, mock_broadcast):
        response = self.client.post(self.url, delivery_payload(), format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        body = response.data['delivery']
        self.assertEqual(body['status'], DeliveryStatus.PENDING)
        self.assertEqual(body['customer']['email'], self.customer.email)
        self.assertEqual(body['pickup_location']['contact_name'], 'Carla')
        self.assertEqual(len(body['items']), 1)
        self.assertAlmostEqual(body['distance'], 4.3, delta=0.1)
        self.assertGreater(body['estimated_duration'], 0)

        delivery = Delivery.objects.get()
        self.assertEqual(
            delivery.delivery_fee,
            (Decimal('5') + Decimal('0.5') * Decimal(str(delivery.distance))).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)
        )

        # Confirmation email to the customer
        self.assertEqual(mail.outbox[0].to, [self.customer.email])
        self.assertEqual(mail.outbox[0].subject, 'Delivery Request Created - LuggEase')

        # One notification per admin
        notification = Notification.objects.get(recipient=self.admin)
        self.assertEqual(notification.title, 'New Delivery Request')
        self.assertEqual(notification.data['delivery_id'], str(delivery.id))

        mock_broadcast.assert_called_once()
        self.assertEqual(mock_broadcast.call_args[0][0], 'new_delivery')

    def test_high_priority_fee(self):
        response = self.client.post(
            self.url, delivery_payload(priority=DeliveryPriority.HIGH), format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        delivery = Delivery.objects.get()
        base = Decimal('5') + Decimal('0.5') * Decimal(str(delivery.distance))
        self.assertEqual(delivery.delivery_fee, (base * Decimal('1.5')).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP))

    def test_requires_items(self):
        response = self.client.post(self.url, delivery_payload(items=[]), format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('items', response.data)

    def test_rejects_light_items(self):
        response = self.client.post(
            self.url,
            delivery_payload(items=[{'description': 'Envelope', 'weight': 0.05}]),
            format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_rejects_missing_address(self):
        pickup = dict(PICKUP)
        del pickup['address']
        response = self.client.post(self.url, delivery_payload(pickup_location=pickup), format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_rejects_non_numeric_coordinates(self):
        drop = dict(DROP, latitude='north')
        response = self.client.post(self.url, delivery_payload(drop_location=drop), format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_requires_authentication(self):
        self.client.force_authenticate(None)
        response = self.client.post(self.url, delivery_payload(), format='json')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)


class TestMyDeliveries(APITestCase):

    def setUp(self):
        self.customer = make_customer()
        self.other_customer = make_customer(email='other@example.com')
        self.driver = make_driver()
        self.admin = make_admin()

        self.mine = make_delivery(self.customer, driver=self.driver)
        make_delivery(self.customer)
        make_delivery(self.other_customer)
        self.url = reverse('delivery-my-deliveries')

    def test_customer_sees_own(self):
        self.client.force_authenticate(self.customer)
        response = self.client.get(self.url)
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['total'], 2)
        self.assertEqual(response.data['current_page'], 1)
        self.assertEqual(response.data['total_pages'], 1)

    def test_driver_sees_assigned(self):
        self.client.force_authenticate(self.driver)
        response = self.client.get(self.url)
        self.assertEqual(response.data['total'], 1)
        self.assertEqual(response.data['deliveries'][0]['id'], str(self.mine.id))

    def test_admin_sees_all(self):
        self.client.force_authenticate(self.admin)
        response = self.client.get(self.url)
        self.assertEqual(response.data['total'], 3)

    def test_status_filter_and_paging(self):
        transition(self.mine, DeliveryStatus.CANCELLED)
        self.client.force_authenticate(self.admin)

        response = self.client.get(self.url, {'status': 'cancelled'})
        self.assertEqual(response.data['total'], 1)

        response = self.client.get(self.url, {'limit': 2, 'page': 2})
        self.assertEqual(response.data['total_pages'], 2)
        self.assertEqual(response.data['current_page'], 2)
        self.assertEqual(len(response.data['deliveries']), 1)

    def test_page_past_the_end_is_empty(self):
        self.client.force_authenticate(self.driver)
        response = self.client.get(self.url, {'page': 3})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['deliveries'], [])
        self.assertEqual(response.data['total'], 1)
        self.assertEqual(response.data['total_pages'], 1)
        self.assertEqual(response.data['current_page'], 3)

    def test_newest_first(self):
        newest = make_delivery(self.customer)
        self.client.force_authenticate(self.customer)
        response = self.client.get(self.url)
        self.assertEqual(response.data['deliveries'][0]['id'], str(newest.id))


class TestDeliveryDetail(APITestCase):

    def setUp(self):
        self.customer = make_customer()
        self.driver = make_driver()
        self.delivery = make_delivery(self.customer, driver=self.driver)
        self.url = reverse('delivery-detail', args=[self.delivery.pk])

    def test_parties_and_admin_can_view(self):
        for user in (self.customer, self.driver, make_admin()):
            self.client.force_authenticate(user)
            response = self.client.get(self.url)
            self.assertEqual(response.status_code, status.HTTP_200_OK)
            self.assertEqual(response.data['delivery']['id'], str(self.delivery.id))

    def test_stranger_forbidden(self):
        self.client.force_authenticate(make_customer(email='stranger@example.com'))
        response = self.client.get(self.url)
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_not_found(self):
        self.client.force_authenticate(self.customer)
        response = self.client.get(reverse('delivery-detail', args=['00000000-0000-0000-0000-000000000000']))
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_route_from_driver_position(self):
        self.driver.current_latitude = 48.87
        self.driver.current_longitude = 2.35
        self.driver.save()

        self.client.force_authenticate(self.customer)
        response = self.client.get(reverse('delivery-route', args=[self.delivery.pk]))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        route = response.data['route']
        self.assertEqual(len(route), 3)
        self.assertEqual(route[0]['latitude'], 48.87)
        self.assertEqual(route[1]['address'], PICKUP['address'])
        self.assertEqual(route[2]['address'], DROP['address'])


class TestStatusUpdate(APITestCase):

    def setUp(self):
        self.customer = make_customer()
        self.driver = make_driver(is_available=False)
        self.delivery = make_delivery(self.customer, driver=self.driver)
        transition(self.delivery, DeliveryStatus.ASSIGNED)
        self.url = reverse('delivery-status', args=[self.delivery.pk])

    def test_driver_moves_delivery_along(self):
        self.client.force_authenticate(self.driver)

        response = self.client.patch(self.url, {'status': 'picked_up'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['delivery']['status'], 'picked_up')
        self.assertIsNotNone(response.data['delivery']['actual_pickup_time'])
        self.assertEqual(mail.outbox[-1].subject, 'Delivery Update - PICKED UP')
        self.assertIn('Your items have been picked up', mail.outbox[-1].alternatives[0][0])

    def test_invalid_transition(self):
        self.client.force_authenticate(self.driver)
        response = self.client.patch(self.url, {'status': 'delivered'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_unknown_status(self):
        self.client.force_authenticate(self.driver)
        response = self.client.patch(self.url, {'status': 'lost'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_other_driver_forbidden(self):
        self.client.force_authenticate(make_driver(email='other-driver@example.com'))
        response = self.client.patch(self.url, {'status': 'picked_up'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_customer_cannot_advance(self):
        self.client.force_authenticate(self.customer)
        response = self.client.patch(self.url, {'status': 'picked_up'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_admin_can_cancel(self):
        self.client.force_authenticate(make_admin())
        response = self.client.patch(self.url, {'status': 'cancelled'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.driver.refresh_from_db()
        self.assertTrue(self.driver.is_available)

    @patch('logistics.services.notify.events.notify_user')
    def test_socket_event_to_customer(self, mock_notify):
        self.client.force_authenticate(self.driver)
        self.client.patch(self.url, {'status': 'picked_up'}, format='json')

        user_id, event, data = mock_notify.call_args[0]
        self.assertEqual(user_id, self.customer.pk)
        self.assertEqual(event, 'delivery_status_update')
        self.assertEqual(data['status'], 'picked_up')


class TestCustomerCancel(APITestCase):

    def setUp(self):
        self.customer = make_customer()
        self.delivery = make_delivery(self.customer)
        self.client.force_authenticate(self.customer)

    def test_cancel_pending(self):
        response = self.client.post(reverse('delivery-cancel', args=[self.delivery.pk]), {'reason': 'Plans changed'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.delivery.refresh_from_db()
        self.assertEqual(self.delivery.status, DeliveryStatus.CANCELLED)
        self.assertEqual(self.delivery.tracking.get().notes, 'Plans changed')

    def test_cancel_through_status_endpoint(self):
        response = self.client.patch(
            reverse('delivery-status', args=[self.delivery.pk]), {'status': 'cancelled'}, format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)

    def test_cannot_cancel_once_assigned(self):
        driver = make_driver()
        self.delivery.driver = driver
        self.delivery.save()
        transition(self.delivery, DeliveryStatus.ASSIGNED)

        response = self.client.post(reverse('delivery-cancel', args=[self.delivery.pk]))
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_cannot_cancel_someone_elses(self):
        self.client.force_authenticate(make_customer(email='other@example.com'))
        response = self.client.post(reverse('delivery-cancel', args=[self.delivery.pk]))
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)


class TestRating(APITestCase):

    def setUp(self):
        self.customer = make_customer()
        self.driver = make_driver()
        self.delivery = make_delivery(self.customer, driver=self.driver)
        for s in (
            DeliveryStatus.ASSIGNED, DeliveryStatus.PICKED_UP,
            DeliveryStatus.IN_TRANSIT, DeliveryStatus.DELIVERED,
        ):
            transition(self.delivery, s)
        self.url = reverse('delivery-rate', args=[self.delivery.pk])

    def test_customer_rates_driver(self):
        earlier = make_delivery(self.customer, driver=self.driver, customer_rating=3)
        self.assertEqual(earlier.customer_rating, 3)

        self.client.force_authenticate(self.customer)
        response = self.client.post(self.url, {'rating': 4, 'feedback': 'Careful with my bags'})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['delivery']['customer_rating'], 4)
        self.driver.refresh_from_db()
        self.assertEqual(self.driver.rating, Decimal('3.50'))

    def test_driver_rates_customer(self):
        self.client.force_authenticate(self.driver)
        response = self.client.post(self.url, {'rating': 5})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.delivery.refresh_from_db()
        self.assertEqual(self.delivery.driver_rating, 5)

    def test_rate_once(self):
        self.client.force_authenticate(self.customer)
        self.client.post(self.url, {'rating': 5})
        response = self.client.post(self.url, {'rating': 1})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_rating_range(self):
        self.client.force_authenticate(self.customer)
        response = self.client.post(self.url, {'rating': 6})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_only_delivered(self):
        pending = make_delivery(self.customer, driver=self.driver)
        self.client.force_authenticate(self.customer)
        response = self.client.post(reverse('delivery-rate', args=[pending.pk]), {'rating': 5})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class TestDriverAPI(APITestCase):

    def setUp(self):
        self.customer = make_customer()
        self.driver = make_driver()
        self.client.force_authenticate(self.driver)

    def test_available_deliveries_ordering(self):
        old_low = make_delivery(self.customer, priority=DeliveryPriority.LOW)
        Delivery.objects.filter(pk=old_low.pk).update(created_at=timezone.now() - timedelta(hours=3))
        old_medium = make_delivery(self.customer)
        Delivery.objects.filter(pk=old_medium.pk).update(created_at=timezone.now() - timedelta(hours=2))
        new_medium = make_delivery(self.customer)
        urgent = make_delivery(self.customer, priority=DeliveryPriority.URGENT)
        make_delivery(self.customer, driver=make_driver(email='busy@example.com'))

        response = self.client.get(reverse('driver-available-deliveries'))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        ids = [d['id'] for d in response.data['deliveries']]
        self.assertEqual(ids, [str(urgent.id), str(old_medium.id), str(new_medium.id), str(old_low.id)])

    def test_available_deliveries_limited_to_20(self):
        for _ in range(22):
            make_delivery(self.customer)
        response = self.client.get(reverse('driver-available-deliveries'))
        self.assertEqual(len(response.data['deliveries']), 20)

    def test_customers_cannot_use_driver_api(self):
        self.client.force_authenticate(self.customer)
        response = self.client.get(reverse('driver-available-deliveries'))
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_accept(self):
        delivery = make_delivery(self.customer)
        response = self.client.post(reverse('driver-accept', args=[delivery.pk]))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['delivery']['status'], 'assigned')
        self.assertEqual(response.data['delivery']['driver']['email'], self.driver.email)

    def test_accept_taken(self):
        delivery = make_delivery(self.customer, driver=make_driver(email='busy@example.com'))
        response = self.client.post(reverse('driver-accept', args=[delivery.pk]))
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['message'], 'Delivery no longer available')

    def test_accept_missing(self):
        response = self.client.post(reverse('driver-accept', args=['00000000-0000-0000-0000-000000000000']))
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    @patch('logistics.services.notify.events.notify_delivery')
    def test_update_location(self, mock_notify):
        active = make_delivery(self.customer, driver=self.driver)
        transition(active, DeliveryStatus.ASSIGNED)
        make_delivery(self.customer, driver=self.driver)  # still pending

        response = self.client.post(
            reverse('driver-location'),
            {'latitude': 48.86, 'longitude': 2.36, 'address': 'Rue de Rivoli'},
            format='json'
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.driver.refresh_from_db()
        self.assertEqual(self.driver.current_latitude, 48.86)
        self.assertEqual(self.driver.current_address, 'Rue de Rivoli')
        self.assertIsNotNone(self.driver.location_updated_at)

        mock_notify.assert_called_once()
        self.assertEqual(mock_notify.call_args[0][0], active.id)
        self.assertEqual(mock_notify.call_args[0][1], 'driver_location')

    def test_update_location_requires_coordinates(self):
        response = self.client.post(reverse('driver-location'), {'address': 'Nowhere'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_complete(self):
        delivery = make_delivery(self.customer)
        self.client.post(reverse('driver-accept', args=[delivery.pk]))
        delivery.refresh_from_db()
        transition(delivery, DeliveryStatus.PICKED_UP)
        transition(delivery, DeliveryStatus.IN_TRANSIT)

        response = self.client.post(reverse('driver-complete', args=[delivery.pk]))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['delivery']['status'], 'delivered')
        self.driver.refresh_from_db()
        self.assertTrue(self.driver.is_available)
        self.assertEqual(self.driver.total_deliveries, 1)

    def test_complete_not_in_transit(self):
        delivery = make_delivery(self.customer)
        self.client.post(reverse('driver-accept', args=[delivery.pk]))
        response = self.client.post(reverse('driver-complete', args=[delivery.pk]))
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['message'], 'Delivery not in transit')

    def test_complete_someone_elses(self):
        other = make_driver(email='other-driver@example.com')
        delivery = make_delivery(self.customer, driver=other)
        response = self.client.post(reverse('driver-complete', args=[delivery.pk]))
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)


class TestAdminAPI(APITestCase):

    def setUp(self):
        self.admin = make_admin()
        self.customer = make_customer(name='Zoe Traveller')
        self.driver = make_driver()
        self.client.force_authenticate(self.admin)

    def test_dashboard(self):
        make_driver(email='busy@example.com', is_available=False)
        recent = make_delivery(self.customer)
        overdue = make_delivery(self.customer)
        Delivery.objects.filter(pk=overdue.pk).update(created_at=timezone.now() - timedelta(hours=30))

        response = self.client.get(reverse('admin-dashboard'))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['stats'], {
            'total_users': 4,
            'total_drivers': 2,
            'active_drivers': 1,
            'total_deliveries': 2,
            'pending_deliveries': 2,
            'overdue_deliveries': 1,
        })
        self.assertEqual(response.data['recent_deliveries'][0]['id'], str(recent.id))

    def test_dashboard_admin_only(self):
        self.client.force_authenticate(self.customer)
        response = self.client.get(reverse('admin-dashboard'))
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_deliveries_search_counts_matches_only(self):
        make_delivery(self.customer)
        other = make_delivery(self.customer)
        Delivery.objects.filter(pk=other.pk).update(drop_address='Orly Airport')

        response = self.client.get(reverse('admin-deliveries'), {'search': 'orly'})

        self.assertEqual(response.data['total'], 1)
        self.assertEqual(response.data['deliveries'][0]['id'], str(other.id))

    def test_deliveries_filters(self):
        make_delivery(self.customer, priority=DeliveryPriority.HIGH)
        make_delivery(self.customer)

        response = self.client.get(reverse('admin-deliveries'), {'priority': 'high'})
        self.assertEqual(response.data['total'], 1)

        response = self.client.get(reverse('admin-deliveries'), {'status': 'pending'})
        self.assertEqual(response.data['total'], 2)

    def test_assign(self):
        delivery = make_delivery(self.customer)
        response = self.client.post(
            reverse('admin-assign-delivery'),
            {'delivery_id': str(delivery.pk), 'driver_id': str(self.driver.pk)},
            format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['delivery']['status'], 'assigned')
        self.driver.refresh_from_db()
        self.assertFalse(self.driver.is_available)

    def test_assign_missing(self):
        response = self.client.post(
            reverse('admin-assign-delivery'),
            {'delivery_id': '00000000-0000-0000-0000-000000000000', 'driver_id': str(self.driver.pk)},
            format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_assign_to_non_driver(self):
        delivery = make_delivery(self.customer)
        response = self.client.post(
            reverse('admin-assign-delivery'),
            {'delivery_id': str(delivery.pk), 'driver_id': str(self.customer.pk)},
            format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['message'], 'User is not a driver')

    def test_users(self):
        response = self.client.get(reverse('admin-users'), {'role': 'driver'})
        self.assertEqual(response.data['total'], 1)
        self.assertNotIn('password', response.data['users'][0])

        response = self.client.get(reverse('admin-users'), {'search': 'zoe'})
        self.assertEqual(response.data['total'], 1)
        self.assertEqual(response.data['users'][0]['email'], self.customer.email)
