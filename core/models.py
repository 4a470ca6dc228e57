"""
CORE App - Custom User Model for LuggEase

Handles: Users (Customers, Drivers, Admins)
"""

import uuid
from decimal import Decimal
from django.contrib.auth.models import AbstractBaseUser, BaseUserManager, PermissionsMixin
from django.core.validators import MinValueValidator, MaxValueValidator
from django.db import models
from django.utils import timezone


class UserRole(models.TextChoices):
    """User role enumeration."""
    CUSTOMER = 'customer', 'Customer'
    DRIVER = 'driver', 'Driver'
    ADMIN = 'admin', 'Administrator'


class VehicleType(models.TextChoices):
    """Driver vehicle enumeration."""
    BIKE = 'bike', 'Bike'
    CAR = 'car', 'Car'
    VAN = 'van', 'Van'
    TRUCK = 'truck', 'Truck'


class UserManager(BaseUserManager):
    """Custom user manager for email-based authentication."""

    def create_user(self, email, password=None, **extra_fields):
        if not email:
            raise ValueError('Email is required')

        email = self.normalize_email(email).lower()
        user = self.model(email=email, **extra_fields)
        if password:
            user.set_password(password)
        else:
            # Google accounts have no local password
            user.set_unusable_password()
        user.save(using=self._db)
        return user

    def create_superuser(self, email, password=None, **extra_fields):
        extra_fields.setdefault('is_staff', True)
        extra_fields.setdefault('is_superuser', True)
        extra_fields.setdefault('role', UserRole.ADMIN)

        if extra_fields.get('is_staff') is not True:
            raise ValueError('Superuser must have is_staff=True.')
        if extra_fields.get('is_superuser') is not True:
            raise ValueError('Superuser must have is_superuser=True.')

        return self.create_user(email, password, **extra_fields)


class User(AbstractBaseUser, PermissionsMixin):
    """
    Custom User model using email as primary identifier.

    Drivers carry their vehicle, availability, last known position and
    rating directly on the user row. `is_available` is cleared when a
    delivery is assigned to the driver and set again on completion.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=150)
    email = models.EmailField(unique=True)
    google_id = models.CharField(max_length=100, unique=True, null=True, blank=True)
    avatar = models.URLField(max_length=500, blank=True, default='')
    role = models.CharField(
        max_length=20,
        choices=UserRole.choices,
        default=UserRole.CUSTOMER,
    )
    phone = models.CharField(max_length=30, blank=True, default='')
    address = models.CharField(max_length=255, blank=True, default='')

    # Driver info
    vehicle_type = models.CharField(
        max_length=10,
        choices=VehicleType.choices,
        blank=True,
        default='',
    )
    vehicle_number = models.CharField(max_length=30, blank=True, default='')
    license_number = models.CharField(max_length=50, blank=True, default='')
    is_available = models.BooleanField(default=True)
    current_latitude = models.FloatField(null=True, blank=True)
    current_longitude = models.FloatField(null=True, blank=True)
    current_address = models.CharField(max_length=255, blank=True, default='')
    location_updated_at = models.DateTimeField(null=True, blank=True)
    rating = models.DecimalField(
        max_digits=3,
        decimal_places=2,
        default=Decimal('5.00'),
        validators=[MinValueValidator(1), MaxValueValidator(5)],
    )
    total_deliveries = models.PositiveIntegerField(default=0)

    # Django Auth Fields
    is_active = models.BooleanField(default=True)
    is_staff = models.BooleanField(default=False)
    date_joined = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    objects = UserManager()

    USERNAME_FIELD = 'email'
    REQUIRED_FIELDS = ['name']

    class Meta:
        verbose_name = "User"
        verbose_name_plural = "Users"
        ordering = ['-date_joined']
        indexes = [
            models.Index(fields=['role', 'is_available', 'is_active']),
        ]

    def __str__(self):
        return f"{self.name or self.email} ({self.role})"

    def save(self, *args, **kwargs):
        if self.email:
            self.email = self.email.lower()
        super().save(*args, **kwargs)

    @property
    def is_driver(self) -> bool:
        return self.role == UserRole.DRIVER

    @property
    def is_customer(self) -> bool:
        return self.role == UserRole.CUSTOMER

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @property
    def current_location(self):
        """Last reported driver position, or None."""
        if self.current_latitude is None or self.current_longitude is None:
            return None
        return {
            'latitude': self.current_latitude,
            'longitude': self.current_longitude,
            'address': self.current_address,
            'last_updated': self.location_updated_at,
        }
