"""
NOTIFICATIONS App - API Views

All endpoints are scoped to the authenticated user's own notifications.
"""

from django.shortcuts import get_object_or_404
from django.utils import timezone
from rest_framework import permissions, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from core.pagination import PageLimitPagination
from .models import Notification
from .serializers import NotificationSerializer


class NotificationPagination(PageLimitPagination):
    results_key = 'notifications'


class NotificationViewSet(viewsets.ReadOnlyModelViewSet):
    """
    List notifications (newest first).

    Query params:
    - unread=true: only unread notifications
    - page / limit
    """

    serializer_class = NotificationSerializer
    permission_classes = [permissions.IsAuthenticated]
    pagination_class = NotificationPagination

    def get_queryset(self):
        qs = Notification.objects.filter(recipient=self.request.user)
        if self.request.query_params.get('unread', '').lower() in ('1', 'true'):
            qs = qs.filter(is_read=False)
        return qs

    @action(detail=False, methods=['get'], url_path='unread-count')
    def unread_count(self, request):
        count = Notification.objects.filter(recipient=request.user, is_read=False).count()
        return Response({'unread_count': count})

    @action(detail=True, methods=['post', 'patch'])
    def read(self, request, pk=None):
        notification = get_object_or_404(Notification, pk=pk, recipient=request.user)
        notification.mark_read()
        return Response({
            'message': 'Notification marked as read',
            'notification': NotificationSerializer(notification).data,
        })

    @action(detail=False, methods=['post', 'patch'], url_path='read-all')
    def read_all(self, request):
        updated = Notification.objects.filter(
            recipient=request.user, is_read=False
        ).update(is_read=True, read_at=timezone.now())
        return Response({'message': 'All notifications marked as read', 'updated': updated})
