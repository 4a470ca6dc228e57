"""
Core App Serializers - Users & Authentication
"""

from rest_framework import serializers
from django.contrib.auth import authenticate, get_user_model
from django.contrib.auth.password_validation import validate_password

from .models import UserRole, VehicleType

User = get_user_model()


class DriverInfoSerializer(serializers.Serializer):
    """Read-only driver block nested into user payloads."""

    vehicle_type = serializers.CharField()
    vehicle_number = serializers.CharField()
    license_number = serializers.CharField()
    is_available = serializers.BooleanField()
    current_location = serializers.DictField(allow_null=True)
    rating = serializers.DecimalField(max_digits=3, decimal_places=2)
    total_deliveries = serializers.IntegerField()


class UserSerializer(serializers.ModelSerializer):
    """Serializer for User model (read operations). Never exposes the password."""

    driver_info = serializers.SerializerMethodField()

    class Meta:
        model = User
        fields = [
            'id', 'name', 'email', 'avatar', 'role', 'phone', 'address',
            'is_active', 'driver_info', 'date_joined', 'updated_at',
        ]
        read_only_fields = fields

    def get_driver_info(self, obj):
        if not obj.is_driver:
            return None
        return DriverInfoSerializer(obj).data


class UserSummarySerializer(serializers.ModelSerializer):
    """Compact user reference embedded in deliveries."""

    class Meta:
        model = User
        fields = ['id', 'name', 'email', 'phone']
        read_only_fields = fields


class DriverSummarySerializer(serializers.ModelSerializer):
    """Driver reference embedded in deliveries."""

    class Meta:
        model = User
        fields = [
            'id', 'name', 'email', 'phone',
            'vehicle_type', 'vehicle_number', 'rating',
        ]
        read_only_fields = fields


class RegisterSerializer(serializers.ModelSerializer):
    """Serializer for account registration."""

    password = serializers.CharField(
        write_only=True,
        required=True,
        validators=[validate_password]
    )
    role = serializers.ChoiceField(
        choices=[UserRole.CUSTOMER, UserRole.DRIVER],
        default=UserRole.CUSTOMER
    )

    class Meta:
        model = User
        fields = ['name', 'email', 'password', 'role', 'phone']

    def validate_email(self, value):
        value = value.lower()
        if User.objects.filter(email=value).exists():
            raise serializers.ValidationError("User already exists with this email.")
        return value

    def create(self, validated_data):
        return User.objects.create_user(
            email=validated_data['email'],
            password=validated_data['password'],
            name=validated_data['name'],
            role=validated_data.get('role', UserRole.CUSTOMER),
            phone=validated_data.get('phone', ''),
        )


class LoginSerializer(serializers.Serializer):
    """Email/password credentials."""

    email = serializers.EmailField()
    password = serializers.CharField(write_only=True)

    def validate(self, data):
        email = data['email'].lower()
        user = User.objects.filter(email=email).first()
        if user and not user.is_active:
            raise serializers.ValidationError("Account is deactivated.", code='inactive')

        user = authenticate(
            request=self.context.get('request'),
            email=email,
            password=data['password'],
        )
        if user is None:
            raise serializers.ValidationError("Invalid credentials.", code='authorization')
        data['user'] = user
        return data


class GoogleLoginSerializer(serializers.Serializer):
    """Profile payload returned by the Google sign-in widget."""

    google_id = serializers.CharField(max_length=100)
    email = serializers.EmailField()
    name = serializers.CharField(max_length=150)
    avatar = serializers.URLField(required=False, allow_blank=True, default='')


class ProfileUpdateSerializer(serializers.ModelSerializer):
    """Self-service profile update. Vehicle fields only apply to drivers."""

    vehicle_type = serializers.ChoiceField(
        choices=VehicleType.choices,
        required=False,
        allow_blank=True
    )

    class Meta:
        model = User
        fields = [
            'name', 'phone', 'address', 'avatar',
            'vehicle_type', 'vehicle_number', 'license_number',
        ]
        extra_kwargs = {field: {'required': False} for field in fields}

    def validate(self, data):
        driver_fields = {'vehicle_type', 'vehicle_number', 'license_number'}
        if not self.instance.is_driver and driver_fields & set(data):
            raise serializers.ValidationError("Vehicle details can only be set by drivers.")
        return data


class DriverLocationSerializer(serializers.Serializer):
    """Serializer for updating driver GPS location."""

    latitude = serializers.FloatField(min_value=-90, max_value=90)
    longitude = serializers.FloatField(min_value=-180, max_value=180)
    address = serializers.CharField(required=False, allow_blank=True, default='', trim_whitespace=True)
