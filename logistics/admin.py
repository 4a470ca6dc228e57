"""
Django Admin configuration for LOGISTICS app.
"""

from django.contrib import admin
from .models import Delivery, DeliveryItem, TrackingEvent


class DeliveryItemInline(admin.TabularInline):
    model = DeliveryItem
    extra = 0


class TrackingEventInline(admin.TabularInline):
    model = TrackingEvent
    extra = 0
    readonly_fields = ('status', 'latitude', 'longitude', 'address', 'notes', 'timestamp')
    can_delete = False


@admin.register(Delivery)
class DeliveryAdmin(admin.ModelAdmin):
    """Admin for Delivery with full details."""

    list_display = (
        'short_id',
        'status',
        'priority',
        'is_urgent',
        'customer',
        'driver',
        'distance',
        'delivery_fee',
        'created_at'
    )
    list_filter = ('status', 'priority', 'is_urgent', 'payment_status', 'created_at')
    search_fields = (
        'id',
        'customer__email',
        'driver__email',
        'pickup_address',
        'drop_address',
    )
    ordering = ('-created_at',)
    date_hierarchy = 'created_at'
    raw_id_fields = ('customer', 'driver')
    inlines = [DeliveryItemInline, TrackingEventInline]

    readonly_fields = (
        'id',
        'delivery_fee',
        'created_at',
        'updated_at',
        'assigned_at',
        'auto_assigned_at',
        'actual_pickup_time',
        'actual_delivery_time',
    )

    fieldsets = (
        ('Identification', {
            'fields': ('id', 'status', 'priority', 'is_urgent', 'payment_status')
        }),
        ('Actors', {
            'fields': ('customer', 'driver')
        }),
        ('Pickup', {
            'fields': (
                'pickup_address', 'pickup_latitude', 'pickup_longitude',
                'pickup_contact_name', 'pickup_contact_phone', 'pickup_instructions',
            )
        }),
        ('Drop', {
            'fields': (
                'drop_address', 'drop_latitude', 'drop_longitude',
                'drop_contact_name', 'drop_contact_phone', 'drop_instructions',
            )
        }),
        ('Pricing', {
            'fields': ('distance', 'estimated_duration', 'delivery_fee')
        }),
        ('Ratings', {
            'fields': ('customer_rating', 'customer_feedback', 'driver_rating', 'driver_feedback'),
            'classes': ('collapse',)
        }),
        ('Timestamps', {
            'fields': (
                'scheduled_pickup', 'estimated_delivery', 'created_at', 'updated_at',
                'assigned_at', 'auto_assigned_at', 'actual_pickup_time', 'actual_delivery_time',
            ),
            'classes': ('collapse',)
        }),
    )

    @admin.display(description='ID')
    def short_id(self, obj):
        return str(obj.id)[:8]
