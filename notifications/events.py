"""
NOTIFICATIONS App - Real-time Event Publishing

Pushes events to connected websocket clients via Django Channels.

Groups:
- user_<id>: every socket opened by that user
- delivery_<id>: sockets that joined a delivery's tracking room
- broadcast: every authenticated socket

Consumers forward each event to the client as {"event": ..., "data": ...}.
Publishing never raises; failures are logged.
"""

import json
import logging
from typing import Any, Dict

from django.core.serializers.json import DjangoJSONEncoder

logger = logging.getLogger(__name__)

BROADCAST_GROUP = 'broadcast'


def user_group(user_id) -> str:
    return f'user_{user_id}'


def delivery_group(delivery_id) -> str:
    return f'delivery_{delivery_id}'


def get_channel_layer():
    """Get the Django Channels layer (lazy import)."""
    from channels.layers import get_channel_layer as _get_channel_layer
    return _get_channel_layer()


def _jsonable(data: Dict[str, Any]) -> Dict[str, Any]:
    """Round-trip through DjangoJSONEncoder so UUIDs, datetimes and Decimals survive msgpack."""
    return json.loads(json.dumps(data, cls=DjangoJSONEncoder))


def _send_group_event(group_name: str, event: str, data: Dict[str, Any]) -> bool:
    """Send a socket event to a channel group."""
    channel_layer = get_channel_layer()
    if not channel_layer:
        logger.warning("[EVENTS] No channel layer configured")
        return False

    try:
        from asgiref.sync import async_to_sync
        async_to_sync(channel_layer.group_send)(
            group_name,
            {
                'type': 'socket.event',
                'event': event,
                'data': _jsonable(data),
            }
        )
        return True
    except Exception as e:
        logger.error(f"[EVENTS] Failed to send {event} to group {group_name}: {e}")
        return False


def notify_user(user_id, event: str, data: Dict[str, Any]) -> bool:
    """Emit `event` to every socket of one user."""
    sent = _send_group_event(user_group(user_id), event, data)
    logger.debug(f"[EVENTS] {event} -> user {str(user_id)[:8]}")
    return sent


def notify_delivery(delivery_id, event: str, data: Dict[str, Any]) -> bool:
    """Emit `event` to everyone tracking a delivery."""
    return _send_group_event(delivery_group(delivery_id), event, data)


def broadcast(event: str, data: Dict[str, Any]) -> bool:
    """Emit `event` to every connected client."""
    sent = _send_group_event(BROADCAST_GROUP, event, data)
    logger.info(f"[EVENTS] Broadcasted {event}")
    return sent
