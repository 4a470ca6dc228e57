"""
Django Admin configuration for CORE app.
"""

from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from .models import User, UserRole


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    """Custom admin for User model with email-based auth."""

    list_display = (
        'email',
        'name',
        'role',
        'vehicle_type',
        'is_available',
        'rating',
        'total_deliveries',
        'is_active',
        'date_joined'
    )
    list_filter = ('role', 'is_available', 'is_active', 'is_staff')
    search_fields = ('email', 'name', 'phone')
    ordering = ('-date_joined',)

    fieldsets = (
        (None, {
            'fields': ('email', 'password', 'google_id')
        }),
        ('Profile', {
            'fields': ('name', 'role', 'phone', 'address', 'avatar')
        }),
        ('Driver', {
            'fields': (
                'vehicle_type', 'vehicle_number', 'license_number',
                'is_available', 'rating', 'total_deliveries',
            ),
        }),
        ('Location', {
            'fields': (
                'current_latitude', 'current_longitude',
                'current_address', 'location_updated_at',
            ),
            'classes': ('collapse',)
        }),
        ('Permissions', {
            'fields': ('is_active', 'is_staff', 'is_superuser', 'groups', 'user_permissions'),
            'classes': ('collapse',)
        }),
    )

    add_fieldsets = (
        (None, {
            'classes': ('wide',),
            'fields': ('email', 'name', 'role', 'password1', 'password2'),
        }),
    )

    readonly_fields = ('date_joined', 'location_updated_at')

    actions = ['mark_available', 'deactivate_users']

    @admin.action(description="Mark selected drivers available")
    def mark_available(self, request, queryset):
        updated = queryset.filter(role=UserRole.DRIVER).update(is_available=True)
        self.message_user(request, f"{updated} driver(s) marked available.")

    @admin.action(description="Deactivate selected users")
    def deactivate_users(self, request, queryset):
        updated = queryset.update(is_active=False)
        self.message_user(request, f"{updated} user(s) deactivated.")
