"""
Logistics App Views - Delivery, Driver & Admin API

- /api/delivery/: customer requests, detail, lifecycle updates, rating
- /api/driver/:   open deliveries, accept, location, complete
- /api/admin/:    dashboard, delivery oversight, manual assignment, users
"""

import logging
from datetime import timedelta
from decimal import Decimal

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db.models import Avg, Case, IntegerField, Q, Value, When
from django.shortcuts import get_object_or_404
from django.utils import timezone
from rest_framework import permissions, status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from core.models import UserRole
from core.pagination import paginate
from core.permissions import IsAdmin, IsDriver
from core.serializers import DriverLocationSerializer, UserSerializer
from .models import Delivery, DeliveryStatus, PRIORITY_RANK
from .serializers import (
    DeliverySerializer, DeliveryCreateSerializer, StatusUpdateSerializer,
    RatingSerializer, AssignDeliverySerializer,
)
from .services import notify
from .services.assignment import (
    AssignmentError, accept_delivery, assign_delivery, complete_delivery,
)
from .services.lifecycle import ACTIVE_STATUSES, InvalidTransition, transition
from .utils import generate_route

User = get_user_model()
logger = logging.getLogger(__name__)


def delivery_queryset():
    return Delivery.objects.select_related('customer', 'driver').prefetch_related('items', 'tracking')


def priority_rank():
    """Annotation expression ranking priorities (urgent highest)."""
    return Case(
        *[When(priority=value, then=Value(rank)) for value, rank in PRIORITY_RANK.items()],
        default=Value(0),
        output_field=IntegerField(),
    )


def can_view(user, delivery) -> bool:
    return user.is_admin or delivery.is_party(user)


class DeliveryViewSet(viewsets.ViewSet):
    """
    Delivery requests.

    Visibility: admins see everything, customers their own requests,
    drivers the deliveries assigned to them.
    """

    permission_classes = [permissions.IsAuthenticated]

    def get_delivery(self, pk):
        delivery = get_object_or_404(delivery_queryset(), pk=pk)
        return delivery

    def create(self, request):
        """Create a delivery request (the caller is the customer)."""
        serializer = DeliveryCreateSerializer(data=request.data, context={'request': request})
        serializer.is_valid(raise_exception=True)
        delivery = serializer.save()
        logger.info(
            f"[DELIVERY] Created {str(delivery.id)[:8]} for {request.user.email} "
            f"({delivery.distance} km, {delivery.delivery_fee})"
        )

        notify.delivery_created(delivery)

        return Response({
            'message': 'Delivery request created successfully',
            'delivery': DeliverySerializer(self.get_delivery(delivery.pk)).data,
        }, status=status.HTTP_201_CREATED)

    @action(detail=False, methods=['get'], url_path='my-deliveries')
    def my_deliveries(self, request):
        """
        Deliveries visible to the caller, newest first.

        Query params: status, page, limit (default 10)
        """
        qs = delivery_queryset().order_by('-created_at')
        user = request.user
        if user.is_customer:
            qs = qs.filter(customer=user)
        elif user.is_driver:
            qs = qs.filter(driver=user)

        status_filter = request.query_params.get('status')
        if status_filter:
            qs = qs.filter(status=status_filter)

        return paginate(self, qs, DeliverySerializer, 'deliveries', page_size=10)

    def retrieve(self, request, pk=None):
        delivery = self.get_delivery(pk)
        if not can_view(request.user, delivery):
            return Response({'message': 'Access denied'}, status=status.HTTP_403_FORBIDDEN)
        return Response({'delivery': DeliverySerializer(delivery).data})

    @action(detail=True, methods=['patch'], url_path='status')
    def update_status(self, request, pk=None):
        """
        Move a delivery along its lifecycle.

        Admins and the assigned driver may set any allowed status; the
        customer may only cancel.
        """
        delivery = self.get_delivery(pk)
        serializer = StatusUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        new_status = data['status']

        user = request.user
        is_assigned_driver = delivery.driver_id is not None and delivery.driver_id == user.pk
        is_owner_cancelling = (
            delivery.customer_id == user.pk and new_status == DeliveryStatus.CANCELLED
        )
        if not user.is_admin and not is_assigned_driver and not is_owner_cancelling:
            return Response({'message': 'Not authorized'}, status=status.HTTP_403_FORBIDDEN)

        if is_owner_cancelling and not user.is_admin and not delivery.is_pending:
            return Response(
                {'message': 'Only pending deliveries can be cancelled'},
                status=status.HTTP_400_BAD_REQUEST
            )

        return self._apply_status(delivery, new_status, data)

    @action(detail=True, methods=['post'])
    def cancel(self, request, pk=None):
        """Customer cancels their own pending delivery."""
        delivery = self.get_delivery(pk)
        if delivery.customer_id != request.user.pk and not request.user.is_admin:
            return Response({'message': 'Not authorized'}, status=status.HTTP_403_FORBIDDEN)
        if not delivery.is_pending and not request.user.is_admin:
            return Response(
                {'message': 'Only pending deliveries can be cancelled'},
                status=status.HTTP_400_BAD_REQUEST
            )
        return self._apply_status(
            delivery, DeliveryStatus.CANCELLED, {'notes': request.data.get('reason', '')}
        )

    def _apply_status(self, delivery, new_status, data):
        try:
            transition(
                delivery,
                new_status,
                notes=data.get('notes', ''),
                latitude=data.get('latitude'),
                longitude=data.get('longitude'),
                address=data.get('address', ''),
            )
        except InvalidTransition as e:
            return Response({'message': str(e)}, status=status.HTTP_400_BAD_REQUEST)

        notify.status_changed(delivery)

        return Response({
            'message': 'Status updated successfully',
            'delivery': DeliverySerializer(self.get_delivery(delivery.pk)).data,
        })

    @action(detail=True, methods=['get'])
    def route(self, request, pk=None):
        """Waypoints from the driver's position (when known) to pickup then drop."""
        delivery = self.get_delivery(pk)
        if not can_view(request.user, delivery):
            return Response({'message': 'Access denied'}, status=status.HTTP_403_FORBIDDEN)

        current = delivery.driver.current_location if delivery.driver else None
        return Response({
            'delivery_id': delivery.id,
            'route': generate_route(delivery.pickup_location, delivery.drop_location, current),
            'distance': delivery.distance,
            'estimated_duration': delivery.estimated_duration,
        })

    @action(detail=True, methods=['post'])
    def rate(self, request, pk=None):
        """
        Rate the other party of a delivered delivery.

        The customer rates the driver (updating the driver's average); the
        driver rates the customer. Each side rates once.
        """
        delivery = self.get_delivery(pk)
        user = request.user
        if not delivery.is_party(user):
            return Response({'message': 'Not authorized'}, status=status.HTTP_403_FORBIDDEN)
        if not delivery.is_delivered:
            return Response(
                {'message': 'Only delivered deliveries can be rated'},
                status=status.HTTP_400_BAD_REQUEST
            )

        serializer = RatingSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        rating = serializer.validated_data['rating']
        feedback = serializer.validated_data['feedback']

        if user.pk == delivery.customer_id:
            if delivery.customer_rating is not None:
                return Response({'message': 'Delivery already rated'}, status=status.HTTP_400_BAD_REQUEST)
            delivery.customer_rating = rating
            delivery.customer_feedback = feedback
            delivery.save(update_fields=['customer_rating', 'customer_feedback', 'updated_at'])
            if delivery.driver:
                self._update_driver_rating(delivery.driver)
        else:
            if delivery.driver_rating is not None:
                return Response({'message': 'Delivery already rated'}, status=status.HTTP_400_BAD_REQUEST)
            delivery.driver_rating = rating
            delivery.driver_feedback = feedback
            delivery.save(update_fields=['driver_rating', 'driver_feedback', 'updated_at'])

        return Response({
            'message': 'Rating submitted successfully',
            'delivery': DeliverySerializer(self.get_delivery(delivery.pk)).data,
        })

    @staticmethod
    def _update_driver_rating(driver):
        average = Delivery.objects.filter(
            driver=driver,
            customer_rating__isnull=False,
        ).aggregate(avg=Avg('customer_rating'))['avg']
        if average is not None:
            driver.rating = Decimal(str(round(average, 2)))
            driver.save(update_fields=['rating', 'updated_at'])


class DriverViewSet(viewsets.ViewSet):
    """Driver-only operations."""

    permission_classes = [IsDriver]

    @action(detail=False, methods=['get'], url_path='available-deliveries')
    def available_deliveries(self, request):
        """Open deliveries: highest priority first, then oldest. Max 20."""
        qs = (
            delivery_queryset()
            .filter(status=DeliveryStatus.PENDING, driver__isnull=True)
            .annotate(priority_rank=priority_rank())
            .order_by('-priority_rank', 'created_at')[:20]
        )
        return Response({'deliveries': DeliverySerializer(qs, many=True).data})

    @action(detail=True, methods=['post'])
    def accept(self, request, pk=None):
        try:
            delivery = accept_delivery(pk, request.user)
        except Delivery.DoesNotExist:
            return Response({'message': 'Delivery not found'}, status=status.HTTP_404_NOT_FOUND)
        except AssignmentError as e:
            return Response({'message': str(e)}, status=status.HTTP_400_BAD_REQUEST)

        return Response({
            'message': 'Delivery accepted successfully',
            'delivery': DeliverySerializer(delivery_queryset().get(pk=delivery.pk)).data,
        })

    @action(detail=False, methods=['post'])
    def location(self, request):
        """Store the driver's position and push it to their active delivery rooms."""
        serializer = DriverLocationSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        driver = request.user
        driver.current_latitude = data['latitude']
        driver.current_longitude = data['longitude']
        driver.current_address = data.get('address', '')
        driver.location_updated_at = timezone.now()
        driver.save(update_fields=[
            'current_latitude', 'current_longitude', 'current_address',
            'location_updated_at', 'updated_at',
        ])

        active_ids = list(
            Delivery.objects.filter(driver=driver, status__in=ACTIVE_STATUSES)
            .values_list('id', flat=True)
        )
        notify.driver_location_changed(driver, active_ids)

        return Response({'message': 'Location updated successfully'})

    @action(detail=True, methods=['post'])
    def complete(self, request, pk=None):
        delivery = get_object_or_404(delivery_queryset(), pk=pk)
        try:
            complete_delivery(delivery, request.user)
        except PermissionError as e:
            return Response({'message': str(e)}, status=status.HTTP_403_FORBIDDEN)
        except (AssignmentError, InvalidTransition) as e:
            return Response({'message': str(e)}, status=status.HTTP_400_BAD_REQUEST)

        return Response({
            'message': 'Delivery completed successfully',
            'delivery': DeliverySerializer(delivery_queryset().get(pk=delivery.pk)).data,
        })


class AdminViewSet(viewsets.ViewSet):
    """Platform oversight for admins."""

    permission_classes = [IsAdmin]

    @action(detail=False, methods=['get'])
    def dashboard(self, request):
        hours = getattr(settings, 'AUTO_ASSIGN_AFTER_HOURS', 24)
        overdue_cutoff = timezone.now() - timedelta(hours=hours)
        drivers = User.objects.filter(role=UserRole.DRIVER)

        stats = {
            'total_users': User.objects.count(),
            'total_drivers': drivers.count(),
            'active_drivers': drivers.filter(is_available=True).count(),
            'total_deliveries': Delivery.objects.count(),
            'pending_deliveries': Delivery.objects.filter(status=DeliveryStatus.PENDING).count(),
            'overdue_deliveries': Delivery.objects.filter(
                status=DeliveryStatus.PENDING,
                created_at__lt=overdue_cutoff,
            ).count(),
        }
        recent = delivery_queryset().order_by('-created_at')[:10]

        return Response({
            'stats': stats,
            'recent_deliveries': DeliverySerializer(recent, many=True).data,
        })

    @action(detail=False, methods=['get'])
    def deliveries(self, request):
        """
        All deliveries, newest first.

        Query params: status, priority, search (pickup/drop address), page, limit
        """
        qs = delivery_queryset().order_by('-created_at')
        params = request.query_params

        if params.get('status'):
            qs = qs.filter(status=params['status'])
        if params.get('priority'):
            qs = qs.filter(priority=params['priority'])
        search = params.get('search')
        if search:
            qs = qs.filter(
                Q(pickup_address__icontains=search) | Q(drop_address__icontains=search)
            )

        return paginate(self, qs, DeliverySerializer, 'deliveries')

    @action(detail=False, methods=['post'], url_path='assign-delivery')
    def assign_delivery(self, request):
        serializer = AssignDeliverySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        delivery = delivery_queryset().filter(pk=serializer.validated_data['delivery_id']).first()
        driver = User.objects.filter(pk=serializer.validated_data['driver_id']).first()
        if delivery is None or driver is None:
            return Response(
                {'message': 'Delivery or driver not found'},
                status=status.HTTP_404_NOT_FOUND
            )

        try:
            assign_delivery(delivery, driver)
        except AssignmentError as e:
            return Response({'message': str(e)}, status=status.HTTP_400_BAD_REQUEST)

        return Response({
            'message': 'Delivery assigned successfully',
            'delivery': DeliverySerializer(delivery_queryset().get(pk=delivery.pk)).data,
        })

    @action(detail=False, methods=['get'])
    def users(self, request):
        """
        All users, newest first.

        Query params: role, search (name/email), page, limit
        """
        qs = User.objects.order_by('-date_joined')
        params = request.query_params

        if params.get('role'):
            qs = qs.filter(role=params['role'])
        search = params.get('search')
        if search:
            qs = qs.filter(Q(name__icontains=search) | Q(email__icontains=search))

        return paginate(self, qs, UserSerializer, 'users')
