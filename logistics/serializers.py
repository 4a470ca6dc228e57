"""
Logistics App Serializers - Deliveries, Items & Tracking
"""

from django.db import transaction
from rest_framework import serializers

from core.serializers import UserSummarySerializer, DriverSummarySerializer
from .models import (
    Delivery, DeliveryItem, TrackingEvent,
    DeliveryStatus, DeliveryPriority,
)
from .utils import calculate_distance, calculate_estimated_time


LOCATION_FIELDS = (
    'address', 'latitude', 'longitude',
    'contact_name', 'contact_phone', 'instructions',
)


class LocationSerializer(serializers.Serializer):
    """Pickup or drop point."""

    address = serializers.CharField(max_length=255)
    latitude = serializers.FloatField(min_value=-90, max_value=90)
    longitude = serializers.FloatField(min_value=-180, max_value=180)
    contact_name = serializers.CharField(max_length=150, required=False, allow_blank=True, default='')
    contact_phone = serializers.CharField(max_length=30, required=False, allow_blank=True, default='')
    instructions = serializers.CharField(required=False, allow_blank=True, default='')


class DeliveryItemSerializer(serializers.ModelSerializer):

    weight = serializers.FloatField(min_value=0.1)

    class Meta:
        model = DeliveryItem
        fields = ['id', 'description', 'weight', 'length', 'width', 'height', 'value', 'fragile']
        read_only_fields = ['id']


class TrackingEventSerializer(serializers.ModelSerializer):

    class Meta:
        model = TrackingEvent
        fields = ['status', 'latitude', 'longitude', 'address', 'notes', 'timestamp']
        read_only_fields = fields


class DeliverySerializer(serializers.ModelSerializer):
    """Full delivery payload (read operations)."""

    customer = UserSummarySerializer(read_only=True)
    driver = DriverSummarySerializer(read_only=True)
    pickup_location = serializers.DictField(read_only=True)
    drop_location = serializers.DictField(read_only=True)
    items = DeliveryItemSerializer(many=True, read_only=True)
    tracking = TrackingEventSerializer(many=True, read_only=True)

    class Meta:
        model = Delivery
        fields = [
            'id', 'customer', 'driver',
            'pickup_location', 'drop_location', 'items',
            'status', 'priority', 'is_urgent',
            'scheduled_pickup', 'estimated_delivery',
            'actual_pickup_time', 'actual_delivery_time',
            'assigned_at', 'auto_assigned_at',
            'distance', 'estimated_duration', 'delivery_fee', 'payment_status',
            'customer_rating', 'driver_rating', 'customer_feedback', 'driver_feedback',
            'tracking', 'created_at', 'updated_at',
        ]
        read_only_fields = fields


class DeliveryCreateSerializer(serializers.Serializer):
    """
    New delivery request from a customer.

    Distance and estimated duration are derived from the coordinates; the
    fee is computed by the model on save.
    """

    pickup_location = LocationSerializer()
    drop_location = LocationSerializer()
    items = DeliveryItemSerializer(many=True)
    priority = serializers.ChoiceField(
        choices=DeliveryPriority.choices,
        default=DeliveryPriority.MEDIUM
    )
    scheduled_pickup = serializers.DateTimeField(required=False)

    def validate_items(self, value):
        if not value:
            raise serializers.ValidationError("At least one item is required")
        return value

    @transaction.atomic
    def create(self, validated_data):
        pickup = validated_data.pop('pickup_location')
        drop = validated_data.pop('drop_location')
        items = validated_data.pop('items')

        distance = calculate_distance(
            pickup['latitude'], pickup['longitude'],
            drop['latitude'], drop['longitude'],
        )

        fields = {f'pickup_{key}': pickup[key] for key in LOCATION_FIELDS}
        fields.update({f'drop_{key}': drop[key] for key in LOCATION_FIELDS})

        delivery = Delivery.objects.create(
            customer=self.context['request'].user,
            distance=distance,
            estimated_duration=calculate_estimated_time(distance),
            **fields,
            **validated_data,
        )
        DeliveryItem.objects.bulk_create([
            DeliveryItem(delivery=delivery, **item) for item in items
        ])
        return delivery


class StatusUpdateSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=[
        DeliveryStatus.ASSIGNED,
        DeliveryStatus.PICKED_UP,
        DeliveryStatus.IN_TRANSIT,
        DeliveryStatus.DELIVERED,
        DeliveryStatus.CANCELLED,
    ])
    notes = serializers.CharField(required=False, allow_blank=True, default='')
    latitude = serializers.FloatField(required=False, min_value=-90, max_value=90)
    longitude = serializers.FloatField(required=False, min_value=-180, max_value=180)
    address = serializers.CharField(required=False, allow_blank=True, default='')


class RatingSerializer(serializers.Serializer):
    rating = serializers.IntegerField(min_value=1, max_value=5)
    feedback = serializers.CharField(required=False, allow_blank=True, default='')


class AssignDeliverySerializer(serializers.Serializer):
    delivery_id = serializers.UUIDField()
    driver_id = serializers.UUIDField()
