"""
LOGISTICS App - Deliveries for LuggEase

Handles: Deliveries, Items, Tracking history
"""

import uuid
from decimal import Decimal
from django.conf import settings
from django.core.validators import MinValueValidator, MaxValueValidator
from django.db import models
from django.utils import timezone

from .utils import calculate_delivery_fee


class DeliveryStatus(models.TextChoices):
    """Delivery status enumeration."""
    PENDING = 'pending', 'Pending'
    ASSIGNED = 'assigned', 'Driver assigned'
    PICKED_UP = 'picked_up', 'Picked up'
    IN_TRANSIT = 'in_transit', 'In transit'
    DELIVERED = 'delivered', 'Delivered'
    CANCELLED = 'cancelled', 'Cancelled'


class DeliveryPriority(models.TextChoices):
    """Delivery priority enumeration. Drives the fee multiplier."""
    LOW = 'low', 'Low'
    MEDIUM = 'medium', 'Medium'
    HIGH = 'high', 'High'
    URGENT = 'urgent', 'Urgent'


class PaymentStatus(models.TextChoices):
    PENDING = 'pending', 'Pending'
    PAID = 'paid', 'Paid'
    REFUNDED = 'refunded', 'Refunded'


# Sort rank used when listing open deliveries to drivers
PRIORITY_RANK = {
    DeliveryPriority.URGENT: 4,
    DeliveryPriority.HIGH: 3,
    DeliveryPriority.MEDIUM: 2,
    DeliveryPriority.LOW: 1,
}


class Delivery(models.Model):
    """
    Core delivery model: one pickup -> drop request.

    The fee is recomputed whenever the delivery is created or its distance
    or priority changes.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    # Actors
    customer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='customer_deliveries',
    )
    driver = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='driver_deliveries',
    )

    # Pickup location
    pickup_address = models.CharField(max_length=255)
    pickup_latitude = models.FloatField()
    pickup_longitude = models.FloatField()
    pickup_contact_name = models.CharField(max_length=150, blank=True, default='')
    pickup_contact_phone = models.CharField(max_length=30, blank=True, default='')
    pickup_instructions = models.TextField(blank=True, default='')

    # Drop location
    drop_address = models.CharField(max_length=255)
    drop_latitude = models.FloatField()
    drop_longitude = models.FloatField()
    drop_contact_name = models.CharField(max_length=150, blank=True, default='')
    drop_contact_phone = models.CharField(max_length=30, blank=True, default='')
    drop_instructions = models.TextField(blank=True, default='')

    # Status
    status = models.CharField(
        max_length=20,
        choices=DeliveryStatus.choices,
        default=DeliveryStatus.PENDING,
    )
    priority = models.CharField(
        max_length=10,
        choices=DeliveryPriority.choices,
        default=DeliveryPriority.MEDIUM,
    )
    is_urgent = models.BooleanField(default=False)

    # Schedule
    scheduled_pickup = models.DateTimeField(default=timezone.now)
    estimated_delivery = models.DateTimeField(null=True, blank=True)
    actual_pickup_time = models.DateTimeField(null=True, blank=True)
    actual_delivery_time = models.DateTimeField(null=True, blank=True)
    assigned_at = models.DateTimeField(null=True, blank=True)
    auto_assigned_at = models.DateTimeField(null=True, blank=True)

    # Pricing
    distance = models.FloatField(verbose_name="Distance (km)")
    estimated_duration = models.PositiveIntegerField(
        null=True,
        blank=True,
        verbose_name="Estimated duration (min)"
    )
    delivery_fee = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        default=Decimal('0.00'),
    )
    payment_status = models.CharField(
        max_length=10,
        choices=PaymentStatus.choices,
        default=PaymentStatus.PENDING,
    )

    # Ratings (customer rates the driver, driver rates the customer)
    customer_rating = models.PositiveSmallIntegerField(
        null=True,
        blank=True,
        validators=[MinValueValidator(1), MaxValueValidator(5)],
        help_text="Rating given by the customer to the driver"
    )
    driver_rating = models.PositiveSmallIntegerField(
        null=True,
        blank=True,
        validators=[MinValueValidator(1), MaxValueValidator(5)],
        help_text="Rating given by the driver to the customer"
    )
    customer_feedback = models.TextField(blank=True, default='')
    driver_feedback = models.TextField(blank=True, default='')

    created_at = models.DateTimeField(default=timezone.now, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = "Delivery"
        verbose_name_plural = "Deliveries"
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['status', 'created_at']),
            models.Index(fields=['driver', 'status']),
            models.Index(fields=['customer', 'status']),
        ]

    def __str__(self):
        return f"Delivery {str(self.id)[:8]} - {self.status}"

    @classmethod
    def from_db(cls, db, field_names, values):
        instance = super().from_db(db, field_names, values)
        instance._loaded_pricing = (
            instance.__dict__.get('distance'),
            instance.__dict__.get('priority'),
        )
        return instance

    def _pricing_changed(self) -> bool:
        loaded = getattr(self, '_loaded_pricing', None)
        return loaded is None or loaded != (self.distance, self.priority)

    def save(self, *args, **kwargs):
        if self._state.adding or self._pricing_changed():
            self.delivery_fee = calculate_delivery_fee(self.distance, self.priority)
            update_fields = kwargs.get('update_fields')
            if update_fields is not None and 'delivery_fee' not in update_fields:
                kwargs['update_fields'] = list(update_fields) + ['delivery_fee']
        super().save(*args, **kwargs)
        self._loaded_pricing = (self.distance, self.priority)

    @property
    def is_pending(self) -> bool:
        return self.status == DeliveryStatus.PENDING

    @property
    def is_delivered(self) -> bool:
        return self.status == DeliveryStatus.DELIVERED

    @property
    def pickup_location(self) -> dict:
        return {
            'address': self.pickup_address,
            'latitude': self.pickup_latitude,
            'longitude': self.pickup_longitude,
            'contact_name': self.pickup_contact_name,
            'contact_phone': self.pickup_contact_phone,
            'instructions': self.pickup_instructions,
        }

    @property
    def drop_location(self) -> dict:
        return {
            'address': self.drop_address,
            'latitude': self.drop_latitude,
            'longitude': self.drop_longitude,
            'contact_name': self.drop_contact_name,
            'contact_phone': self.drop_contact_phone,
            'instructions': self.drop_instructions,
        }

    def is_party(self, user) -> bool:
        """True if `user` is the customer or the assigned driver."""
        return user.pk in (self.customer_id, self.driver_id)


class DeliveryItem(models.Model):
    """A piece of luggage in a delivery."""

    delivery = models.ForeignKey(
        Delivery,
        on_delete=models.CASCADE,
        related_name='items',
    )
    description = models.CharField(max_length=255)
    weight = models.FloatField(
        validators=[MinValueValidator(0.1)],
        verbose_name="Weight (kg)"
    )
    length = models.FloatField(null=True, blank=True)
    width = models.FloatField(null=True, blank=True)
    height = models.FloatField(null=True, blank=True)
    value = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    fragile = models.BooleanField(default=False)

    class Meta:
        ordering = ['id']

    def __str__(self):
        return f"{self.description} ({self.weight} kg)"


class TrackingEvent(models.Model):
    """Status history entry for a delivery."""

    delivery = models.ForeignKey(
        Delivery,
        on_delete=models.CASCADE,
        related_name='tracking',
    )
    status = models.CharField(max_length=20, choices=DeliveryStatus.choices)
    latitude = models.FloatField(null=True, blank=True)
    longitude = models.FloatField(null=True, blank=True)
    address = models.CharField(max_length=255, blank=True, default='')
    notes = models.TextField(blank=True, default='')
    timestamp = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ['timestamp', 'id']

    def __str__(self):
        return f"{str(self.delivery_id)[:8]} -> {self.status}"
