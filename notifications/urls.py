"""
Notifications App URLs
"""

from django.urls import path

from .views import NotificationViewSet

urlpatterns = [
    path('', NotificationViewSet.as_view({'get': 'list'}), name='notification-list'),
    path(
        'unread-count/',
        NotificationViewSet.as_view({'get': 'unread_count'}),
        name='notification-unread-count'
    ),
    path(
        'read-all/',
        NotificationViewSet.as_view({'post': 'read_all', 'patch': 'read_all'}),
        name='notification-read-all'
    ),
    path(
        '<uuid:pk>/read/',
        NotificationViewSet.as_view({'post': 'read', 'patch': 'read'}),
        name='notification-read'
    ),
]
