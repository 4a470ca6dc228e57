"""
NOTIFICATIONS App - WebSocket Routing Configuration
"""

from django.urls import re_path
from . import consumers


websocket_urlpatterns = [
    # Per-user notification socket
    # ws://localhost:8000/ws/notifications/?token=<jwt>
    re_path(r'ws/notifications/$', consumers.NotificationConsumer.as_asgi()),
]
