"""
NOTIFICATIONS App - WebSocket Consumer (socket hub)

One socket per browser session, keyed by the authenticated user:

    ws://host/ws/notifications/?token=<jwt>

Client -> server messages:
- {"type": "join_delivery", "delivery_id": ...}: follow a delivery's room
- {"type": "leave_delivery", "delivery_id": ...}
- {"type": "driver_location_update", "delivery_id": ..., "location": {...}}
  (the delivery's driver only): relayed to the delivery room as `driver_location`
- {"type": "ping"}

Server -> client messages are {"event": <name>, "data": <payload>}.
"""

import logging

from channels.db import database_sync_to_async
from channels.generic.websocket import AsyncJsonWebsocketConsumer
from django.utils import timezone

from .events import BROADCAST_GROUP, delivery_group, user_group

logger = logging.getLogger(__name__)

# Close code for unauthenticated sockets
UNAUTHORIZED = 4001


class NotificationConsumer(AsyncJsonWebsocketConsumer):

    user = None

    async def connect(self):
        user = self.scope.get('user')
        if not user or user.is_anonymous:
            await self.close(code=UNAUTHORIZED)
            return

        self.user = user
        self.user_group = user_group(user.pk)
        self.delivery_groups = set()

        await self.channel_layer.group_add(self.user_group, self.channel_name)
        await self.channel_layer.group_add(BROADCAST_GROUP, self.channel_name)
        await self.accept()

        await self.send_json({
            'event': 'connection_established',
            'data': {'user_id': str(user.pk), 'role': user.role},
        })
        logger.info(f"[WS] User connected: {str(user.pk)[:8]}")

    async def disconnect(self, close_code):
        if self.user is None:
            return

        await self.channel_layer.group_discard(self.user_group, self.channel_name)
        await self.channel_layer.group_discard(BROADCAST_GROUP, self.channel_name)
        for group in self.delivery_groups:
            await self.channel_layer.group_discard(group, self.channel_name)

        logger.info(f"[WS] User disconnected: {str(self.user.pk)[:8]}")

    async def receive_json(self, content):
        message_type = content.get('type')

        if message_type == 'join_delivery':
            delivery_id = content.get('delivery_id')
            if delivery_id and await self.can_track(delivery_id):
                group = delivery_group(delivery_id)
                await self.channel_layer.group_add(group, self.channel_name)
                self.delivery_groups.add(group)
                await self.send_json({'event': 'joined_delivery', 'data': {'delivery_id': delivery_id}})
            else:
                await self.send_json({'event': 'error', 'data': {'message': 'Delivery not found'}})

        elif message_type == 'leave_delivery':
            group = delivery_group(content.get('delivery_id'))
            if group in self.delivery_groups:
                await self.channel_layer.group_discard(group, self.channel_name)
                self.delivery_groups.discard(group)

        elif message_type == 'driver_location_update':
            await self.relay_driver_location(content)

        elif message_type == 'ping':
            await self.send_json({'event': 'pong', 'data': {}})

    async def relay_driver_location(self, content):
        if not self.user.is_driver:
            return

        delivery_id = content.get('delivery_id')
        location = content.get('location')
        if not delivery_id or not location:
            return
        if not await self.can_track(delivery_id):
            return

        await self.channel_layer.group_send(
            delivery_group(delivery_id),
            {
                'type': 'socket.event',
                'event': 'driver_location',
                'data': {
                    'driver_id': str(self.user.pk),
                    'location': location,
                    'timestamp': timezone.now().isoformat(),
                },
                'sender_channel': self.channel_name,
            }
        )

    # ============================================
    # Event Handlers (called via channel_layer.group_send)
    # ============================================

    async def socket_event(self, event):
        # Relayed messages are not echoed back to their sender
        if event.get('sender_channel') == self.channel_name:
            return
        await self.send_json({'event': event['event'], 'data': event['data']})

    # ============================================
    # Database helpers
    # ============================================

    async def can_track(self, delivery_id: str) -> bool:
        return await database_sync_to_async(self.user_can_track)(delivery_id)

    def user_can_track(self, delivery_id: str) -> bool:
        """Admins, the customer and the assigned driver may follow a delivery."""
        from django.core.exceptions import ValidationError
        from logistics.models import Delivery

        try:
            delivery = Delivery.objects.get(pk=delivery_id)
        except (Delivery.DoesNotExist, ValidationError, ValueError):
            return False

        return self.user.is_admin or delivery.is_party(self.user)
