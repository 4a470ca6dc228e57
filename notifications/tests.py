"""
NOTIFICATIONS Tests
===================

1. Email service (single, bulk, from address)
2. Notification service and the REST endpoints
3. Event publishing and the websocket hub
4. Celery tasks (email retry, cleanup)
"""

from datetime import timedelta
from unittest.mock import AsyncMock, patch

from channels.layers import channel_layers, get_channel_layer
from channels.testing import WebsocketCommunicator
from django.contrib.auth.models import AnonymousUser
from django.core import mail
from django.test import SimpleTestCase, TestCase, override_settings
from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APITestCase
from rest_framework_simplejwt.tokens import AccessToken

from core.models import User, UserRole
from notifications import events
from notifications.consumers import NotificationConsumer, UNAUTHORIZED
from notifications.emails import get_from_address, send_bulk_email, send_email
from notifications.middleware import user_for_token
from notifications.models import Notification, NotificationPriority, NotificationType
from notifications.services import NotificationService
from notifications.tasks import cleanup_old_notifications, send_email_task


def make_user(email='user@example.com', role=UserRole.CUSTOMER, **kwargs):
    return User.objects.create_user(email=email, password='luggage-pass-123', name='Test User', role=role, **kwargs)


class TestEmails(TestCase):

    def test_from_address(self):
        self.assertEqual(get_from_address(), '"LuggEase" <noreply@luggease.test>')

    def test_send_email_with_text_fallback(self):
        send_email('jane@example.com', 'Hello', '<h2>Welcome</h2><p>Your bags are safe.</p>')

        self.assertEqual(len(mail.outbox), 1)
        message = mail.outbox[0]
        self.assertEqual(message.to, ['jane@example.com'])
        self.assertEqual(message.from_email, '"LuggEase" <noreply@luggease.test>')
        self.assertIn('Your bags are safe.', message.body)
        self.assertNotIn('<p>', message.body)
        self.assertEqual(message.alternatives[0][1], 'text/html')

    def test_send_email_explicit_text(self):
        send_email('jane@example.com', 'Hello', '<p>html</p>', text='plain')
        self.assertEqual(mail.outbox[0].body, 'plain')

    @patch('notifications.emails.EmailMultiAlternatives.send', side_effect=OSError('smtp down'))
    def test_send_email_reraises(self, mock_send):
        with self.assertRaises(OSError):
            send_email('jane@example.com', 'Hello', '<p>hi</p>')

    def test_bulk_email_counts_failures(self):
        real_send = send_email

        def flaky(to, **kwargs):
            if to == 'broken@example.com':
                raise OSError('bounced')
            return real_send(to=to, **kwargs)

        with patch('notifications.emails.send_email', side_effect=flaky):
            result = send_bulk_email([
                {'to': 'a@example.com', 'subject': 'A', 'html': '<p>a</p>'},
                {'to': 'broken@example.com', 'subject': 'B', 'html': '<p>b</p>'},
                {'to': 'c@example.com', 'subject': 'C', 'html': '<p>c</p>'},
            ])

        self.assertEqual(result, {'sent': 2, 'failed': 1})
        self.assertEqual(len(mail.outbox), 2)


class TestNotificationService(TestCase):

    def setUp(self):
        self.admin = make_user('admin@example.com', role=UserRole.ADMIN)
        self.other_admin = make_user('admin2@example.com', role=UserRole.ADMIN)
        make_user('inactive-admin@example.com', role=UserRole.ADMIN, is_active=False)
        self.customer = make_user()

    @patch('notifications.services.events.notify_user')
    def test_create_pushes_to_recipient(self, mock_notify):
        notification = NotificationService.create(
            self.customer, 'Hello', 'World', data={'delivery_id': 'abc'}
        )

        self.assertEqual(notification.type, NotificationType.GENERAL)
        self.assertEqual(notification.priority, NotificationPriority.MEDIUM)
        mock_notify.assert_called_once()
        user_id, event, data = mock_notify.call_args[0]
        self.assertEqual(user_id, self.customer.pk)
        self.assertEqual(event, 'notification')
        self.assertEqual(data['title'], 'Hello')

    def test_notify_admins_skips_inactive(self):
        created = NotificationService.notify_admins(
            'Heads up', 'Something happened',
            email_subject='Heads up', email_html='<p>Something happened</p>',
        )

        self.assertEqual(len(created), 2)
        self.assertEqual(
            set(Notification.objects.values_list('recipient__email', flat=True)),
            {'admin@example.com', 'admin2@example.com'}
        )
        self.assertEqual(len(mail.outbox), 2)

    @patch('notifications.tasks.send_email_task')
    def test_queue_email_never_raises(self, mock_task):
        mock_task.delay.side_effect = ConnectionError('broker down')
        self.assertFalse(NotificationService.queue_email('a@example.com', 'Subject', '<p>x</p>'))

    def test_queue_email_without_address(self):
        self.assertFalse(NotificationService.queue_email('', 'Subject', '<p>x</p>'))


class TestNotificationModel(TestCase):

    def test_mark_read(self):
        notification = Notification.objects.create(
            recipient=make_user(), title='T', message='M'
        )
        notification.mark_read()
        notification.refresh_from_db()
        self.assertTrue(notification.is_read)
        self.assertIsNotNone(notification.read_at)


class TestNotificationAPI(APITestCase):

    def setUp(self):
        self.user = make_user()
        self.other = make_user('other@example.com')
        self.client.force_authenticate(self.user)

        for i in range(3):
            Notification.objects.create(recipient=self.user, title=f'N{i}', message='m')
        self.read = Notification.objects.create(
            recipient=self.user, title='Old', message='m', is_read=True, read_at=timezone.now()
        )
        self.foreign = Notification.objects.create(recipient=self.other, title='Theirs', message='m')

    def test_list(self):
        response = self.client.get(reverse('notification-list'))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['total'], 4)
        titles = [n['title'] for n in response.data['notifications']]
        self.assertNotIn('Theirs', titles)

    def test_list_unread_only(self):
        response = self.client.get(reverse('notification-list'), {'unread': 'true'})
        self.assertEqual(response.data['total'], 3)

    def test_unread_count(self):
        response = self.client.get(reverse('notification-unread-count'))
        self.assertEqual(response.data, {'unread_count': 3})

    def test_mark_read(self):
        target = Notification.objects.filter(recipient=self.user, is_read=False).first()
        response = self.client.post(reverse('notification-read', args=[target.pk]))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        target.refresh_from_db()
        self.assertTrue(target.is_read)

    def test_cannot_mark_someone_elses(self):
        response = self.client.post(reverse('notification-read', args=[self.foreign.pk]))
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_mark_all_read(self):
        response = self.client.post(reverse('notification-read-all'))
        self.assertEqual(response.data['updated'], 3)
        self.assertFalse(Notification.objects.filter(recipient=self.user, is_read=False).exists())
        self.foreign.refresh_from_db()
        self.assertFalse(self.foreign.is_read)


class TestCleanupTask(TestCase):

    def setUp(self):
        self.user = make_user()
        old = timezone.now() - timedelta(days=31)
        self.old_read = Notification.objects.create(
            recipient=self.user, title='old read', message='m', is_read=True, created_at=old
        )
        self.old_unread = Notification.objects.create(
            recipient=self.user, title='old unread', message='m', created_at=old
        )
        self.recent_read = Notification.objects.create(
            recipient=self.user, title='recent read', message='m', is_read=True
        )

    def test_deletes_only_old_read(self):
        self.assertEqual(cleanup_old_notifications(), 1)
        remaining = set(Notification.objects.values_list('title', flat=True))
        self.assertEqual(remaining, {'old unread', 'recent read'})

    @override_settings(NOTIFICATION_RETENTION_DAYS=60)
    def test_retention_is_configurable(self):
        self.assertEqual(cleanup_old_notifications(), 0)


class TestSendEmailTask(TestCase):

    def test_sends(self):
        send_email_task.delay(to='a@example.com', subject='S', html='<p>x</p>')
        self.assertEqual(len(mail.outbox), 1)

    @patch('notifications.emails.send_email', side_effect=OSError('smtp down'))
    def test_retries_then_fails(self, mock_send):
        with self.assertRaises(OSError):
            send_email_task.delay(to='a@example.com', subject='S', html='<p>x</p>')
        self.assertGreater(mock_send.call_count, 1)


class TestEvents(SimpleTestCase):

    @patch('notifications.events.get_channel_layer', return_value=None)
    def test_no_layer(self, mock_layer):
        self.assertFalse(events.notify_user('abc', 'ping', {}))

    @patch('notifications.events.get_channel_layer')
    def test_failures_are_swallowed(self, mock_layer):
        mock_layer.return_value.group_send = AsyncMock(side_effect=RuntimeError('redis down'))
        self.assertFalse(events.broadcast('new_delivery', {'id': 1}))

    @patch('notifications.events.get_channel_layer')
    def test_group_and_payload(self, mock_layer):
        group_send = AsyncMock()
        mock_layer.return_value.group_send = group_send

        self.assertTrue(events.notify_delivery('d1', 'driver_location', {'at': timezone.now()}))

        group, message = group_send.call_args[0]
        self.assertEqual(group, 'delivery_d1')
        self.assertEqual(message['type'], 'socket.event')
        self.assertEqual(message['event'], 'driver_location')
        self.assertIsInstance(message['data']['at'], str)


class TestWebsocketAuth(TestCase):

    def test_valid_token(self):
        user = make_user()
        self.assertEqual(user_for_token(str(AccessToken.for_user(user))), user)

    def test_invalid_token(self):
        self.assertIsInstance(user_for_token('not-a-jwt'), AnonymousUser)

    def test_inactive_user(self):
        user = make_user(is_active=False)
        self.assertIsInstance(user_for_token(str(AccessToken.for_user(user))), AnonymousUser)


class TestNotificationConsumer(SimpleTestCase):

    def setUp(self):
        # fresh in-memory layer for every event loop
        channel_layers.backends = {}
        self.customer = User(email='customer@example.com', name='Carla', role=UserRole.CUSTOMER)
        self.driver = User(email='driver@example.com', name='Dan', role=UserRole.DRIVER)

    async def connect(self, user):
        communicator = WebsocketCommunicator(NotificationConsumer.as_asgi(), '/ws/notifications/')
        communicator.scope['user'] = user
        connected, _ = await communicator.connect()
        self.assertTrue(connected)
        greeting = await communicator.receive_json_from()
        self.assertEqual(greeting['event'], 'connection_established')
        return communicator

    async def test_rejects_anonymous(self):
        communicator = WebsocketCommunicator(NotificationConsumer.as_asgi(), '/ws/notifications/')
        communicator.scope['user'] = AnonymousUser()
        connected, code = await communicator.connect()
        self.assertFalse(connected)
        self.assertEqual(code, UNAUTHORIZED)

    async def test_ping(self):
        communicator = await self.connect(self.customer)
        await communicator.send_json_to({'type': 'ping'})
        self.assertEqual(await communicator.receive_json_from(), {'event': 'pong', 'data': {}})
        await communicator.disconnect()

    async def test_user_group_events_forwarded(self):
        communicator = await self.connect(self.customer)

        await get_channel_layer().group_send(
            events.user_group(self.customer.pk),
            {'type': 'socket.event', 'event': 'delivery_assigned', 'data': {'delivery_id': 'd1'}},
        )

        self.assertEqual(
            await communicator.receive_json_from(),
            {'event': 'delivery_assigned', 'data': {'delivery_id': 'd1'}}
        )
        await communicator.disconnect()

    async def test_broadcast_reaches_everyone(self):
        customer = await self.connect(self.customer)
        driver = await self.connect(self.driver)

        await get_channel_layer().group_send(
            events.BROADCAST_GROUP,
            {'type': 'socket.event', 'event': 'new_delivery', 'data': {'id': 'd1'}},
        )

        self.assertEqual((await customer.receive_json_from())['event'], 'new_delivery')
        self.assertEqual((await driver.receive_json_from())['event'], 'new_delivery')
        await customer.disconnect()
        await driver.disconnect()

    @patch.object(NotificationConsumer, 'can_track', new=AsyncMock(return_value=True))
    async def test_driver_location_relayed_to_delivery_room(self):
        customer = await self.connect(self.customer)
        driver = await self.connect(self.driver)

        await customer.send_json_to({'type': 'join_delivery', 'delivery_id': 'd1'})
        joined = await customer.receive_json_from()
        self.assertEqual(joined, {'event': 'joined_delivery', 'data': {'delivery_id': 'd1'}})

        location = {'latitude': 48.86, 'longitude': 2.35}
        await driver.send_json_to({
            'type': 'driver_location_update', 'delivery_id': 'd1', 'location': location,
        })

        relayed = await customer.receive_json_from()
        self.assertEqual(relayed['event'], 'driver_location')
        self.assertEqual(relayed['data']['location'], location)
        self.assertEqual(relayed['data']['driver_id'], str(self.driver.pk))

        await customer.disconnect()
        await driver.disconnect()

    @patch.object(NotificationConsumer, 'can_track', new=AsyncMock(return_value=True))
    async def test_customers_cannot_send_locations(self):
        watcher = await self.connect(self.driver)
        await watcher.send_json_to({'type': 'join_delivery', 'delivery_id': 'd1'})
        await watcher.receive_json_from()

        customer = await self.connect(self.customer)
        await customer.send_json_to({
            'type': 'driver_location_update', 'delivery_id': 'd1', 'location': {'latitude': 1},
        })

        self.assertTrue(await watcher.receive_nothing())
        await watcher.disconnect()
        await customer.disconnect()

    async def test_unrelated_driver_cannot_send_locations(self):
        watcher = await self.connect(self.customer)
        intruder = await self.connect(self.driver)

        # the watcher may join; the intruder is not a party to the delivery
        with patch.object(NotificationConsumer, 'can_track', new=AsyncMock(side_effect=[True, False])):
            await watcher.send_json_to({'type': 'join_delivery', 'delivery_id': 'd1'})
            await watcher.receive_json_from()

            await intruder.send_json_to({
                'type': 'driver_location_update', 'delivery_id': 'd1', 'location': {'latitude': 1},
            })
            await intruder.send_json_to({'type': 'ping'})
            self.assertEqual((await intruder.receive_json_from())['event'], 'pong')
            self.assertTrue(await watcher.receive_nothing())

        await watcher.disconnect()
        await intruder.disconnect()

    @patch.object(NotificationConsumer, 'can_track', new=AsyncMock(return_value=False))
    async def test_join_unknown_delivery(self):
        communicator = await self.connect(self.customer)
        await communicator.send_json_to({'type': 'join_delivery', 'delivery_id': 'nope'})
        reply = await communicator.receive_json_from()
        self.assertEqual(reply['event'], 'error')
        await communicator.disconnect()
