"""
LuggEase Core Tests
====================

Tests for:
1. Custom User Model (creation, roles, driver location)
2. Authentication API (register, login, Google sign-in, profile)
3. Security Middleware (rate limiting, headers) and health checks
"""

from django.core.cache import cache
from django.test import TestCase, override_settings
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APITestCase

from core.models import User, UserRole, VehicleType


PASSWORD = 'luggage-pass-123'


class TestUserModel(TestCase):
    """Tests for the custom User model."""

    def test_email_is_lowercased(self):
        user = User.objects.create_user(email='Jane.Doe@Example.COM', password=PASSWORD, name='Jane')
        self.assertEqual(user.email, 'jane.doe@example.com')
        self.assertTrue(user.check_password(PASSWORD))

    def test_defaults(self):
        user = User.objects.create_user(email='jane@example.com', password=PASSWORD, name='Jane')
        self.assertEqual(user.role, UserRole.CUSTOMER)
        self.assertTrue(user.is_customer)
        self.assertTrue(user.is_available)
        self.assertEqual(str(user.rating), '5.00')
        self.assertEqual(user.total_deliveries, 0)

    def test_google_account_without_password(self):
        user = User.objects.create_user(email='g@example.com', name='G', google_id='g-123')
        self.assertFalse(user.has_usable_password())

    def test_superuser_is_admin(self):
        admin = User.objects.create_superuser(email='root@example.com', password=PASSWORD, name='Root')
        self.assertTrue(admin.is_admin)
        self.assertTrue(admin.is_staff)

    def test_role_flags(self):
        driver = User.objects.create_user(
            email='dan@example.com', password=PASSWORD, name='Dan', role=UserRole.DRIVER
        )
        self.assertTrue(driver.is_driver)
        self.assertFalse(driver.is_customer)
        self.assertFalse(driver.is_admin)

    def test_current_location(self):
        driver = User.objects.create_user(
            email='d@example.com', password=PASSWORD, name='D', role=UserRole.DRIVER
        )
        self.assertIsNone(driver.current_location)

        driver.current_latitude = 48.85
        driver.current_longitude = 2.35
        self.assertEqual(driver.current_location['latitude'], 48.85)


class TestAuthAPI(APITestCase):

    def test_register(self):
        response = self.client.post(reverse('auth-register'), {
            'name': 'Jane',
            'email': 'Jane@Example.com',
            'password': PASSWORD,
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertIn('token', response.data)
        self.assertIn('refresh', response.data)
        self.assertEqual(response.data['user']['email'], 'jane@example.com')
        self.assertEqual(response.data['user']['role'], 'customer')
        self.assertNotIn('password', response.data['user'])
        self.assertIsNone(response.data['user']['driver_info'])

    def test_register_driver(self):
        response = self.client.post(reverse('auth-register'), {
            'name': 'Dan', 'email': 'dan@example.com', 'password': PASSWORD, 'role': 'driver',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(response.data['user']['driver_info']['is_available'])

    def test_cannot_register_as_admin(self):
        response = self.client.post(reverse('auth-register'), {
            'name': 'Eve', 'email': 'eve@example.com', 'password': PASSWORD, 'role': 'admin',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_register_duplicate_email(self):
        User.objects.create_user(email='jane@example.com', password=PASSWORD, name='Jane')
        response = self.client.post(reverse('auth-register'), {
            'name': 'Jane', 'email': 'jane@example.com', 'password': PASSWORD,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_register_short_password(self):
        response = self.client.post(reverse('auth-register'), {
            'name': 'Jane', 'email': 'jane@example.com', 'password': 'abc',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_login(self):
        User.objects.create_user(email='jane@example.com', password=PASSWORD, name='Jane')
        response = self.client.post(reverse('auth-login'), {
            'email': 'JANE@example.com', 'password': PASSWORD,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['message'], 'Login successful')

        me = self.client.get(
            reverse('auth-me'), HTTP_AUTHORIZATION=f"Bearer {response.data['token']}"
        )
        self.assertEqual(me.status_code, status.HTTP_200_OK)
        self.assertEqual(me.data['user']['email'], 'jane@example.com')

    def test_login_wrong_password(self):
        User.objects.create_user(email='jane@example.com', password=PASSWORD, name='Jane')
        response = self.client.post(reverse('auth-login'), {
            'email': 'jane@example.com', 'password': 'wrong-password',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_login_inactive(self):
        User.objects.create_user(email='jane@example.com', password=PASSWORD, name='Jane', is_active=False)
        response = self.client.post(reverse('auth-login'), {
            'email': 'jane@example.com', 'password': PASSWORD,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('Account is deactivated.', str(response.data))

    def test_me_requires_auth(self):
        response = self.client.get(reverse('auth-me'))
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)


class TestGoogleLogin(APITestCase):

    def setUp(self):
        self.url = reverse('auth-google')
        self.payload = {
            'google_id': 'google-42',
            'email': 'gina@example.com',
            'name': 'Gina',
            'avatar': 'https://example.com/gina.png',
        }

    def test_creates_customer(self):
        response = self.client.post(self.url, self.payload, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        user = User.objects.get(email='gina@example.com')
        self.assertEqual(user.google_id, 'google-42')
        self.assertEqual(user.role, UserRole.CUSTOMER)
        self.assertFalse(user.has_usable_password())

    def test_links_existing_account(self):
        existing = User.objects.create_user(email='gina@example.com', password=PASSWORD, name='Gina')

        self.client.post(self.url, self.payload, format='json')

        existing.refresh_from_db()
        self.assertEqual(existing.google_id, 'google-42')
        self.assertEqual(existing.avatar, 'https://example.com/gina.png')
        self.assertTrue(existing.check_password(PASSWORD))
        self.assertEqual(User.objects.count(), 1)

    def test_finds_by_google_id(self):
        User.objects.create_user(email='old@example.com', name='Gina', google_id='google-42')
        response = self.client.post(self.url, self.payload, format='json')
        self.assertEqual(response.data['user']['email'], 'old@example.com')
        self.assertEqual(User.objects.count(), 1)

    def test_inactive_account(self):
        User.objects.create_user(email='gina@example.com', name='Gina', google_id='google-42', is_active=False)
        response = self.client.post(self.url, self.payload, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)


class TestProfileAPI(APITestCase):

    def test_update_profile(self):
        user = User.objects.create_user(email='jane@example.com', password=PASSWORD, name='Jane')
        self.client.force_authenticate(user)

        response = self.client.patch(reverse('auth-profile'), {'phone': '+33612345678'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['user']['phone'], '+33612345678')
        self.assertEqual(response.data['user']['name'], 'Jane')

    def test_driver_vehicle(self):
        driver = User.objects.create_user(
            email='dan@example.com', password=PASSWORD, name='Dan', role=UserRole.DRIVER
        )
        self.client.force_authenticate(driver)

        response = self.client.put(reverse('auth-profile'), {
            'vehicle_type': VehicleType.TRUCK, 'vehicle_number': 'XY-987-ZZ',
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['user']['driver_info']['vehicle_type'], 'truck')

    def test_customer_cannot_set_vehicle(self):
        user = User.objects.create_user(email='jane@example.com', password=PASSWORD, name='Jane')
        self.client.force_authenticate(user)
        response = self.client.patch(reverse('auth-profile'), {'vehicle_type': 'car'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class TestSecurityMiddleware(TestCase):
    """Tests for security middleware behavior."""

    def setUp(self):
        cache.clear()

    def test_health_endpoint_accessible(self):
        """Health check should be accessible without auth."""
        response = self.client.get('/api/health/')
        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(data['status'], 'healthy')
        self.assertEqual(data['message'], 'LuggEase API is running')

    def test_readiness_endpoint_accessible(self):
        response = self.client.get('/api/health/ready/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['checks']['database']['status'], 'healthy')

    def test_security_headers_present(self):
        response = self.client.get('/api/health/')
        self.assertEqual(response['X-Content-Type-Options'], 'nosniff')
        self.assertEqual(response['X-Frame-Options'], 'DENY')
        self.assertIn('Referrer-Policy', response)

    @override_settings(RATE_LIMIT_ENABLED=True)
    def test_login_rate_limited(self):
        url = reverse('auth-login')
        for _ in range(10):
            response = self.client.post(url, {'email': 'x@example.com', 'password': 'nope'})
            self.assertEqual(response.status_code, 400)

        response = self.client.post(url, {'email': 'x@example.com', 'password': 'nope'})
        self.assertEqual(response.status_code, 429)
        self.assertEqual(response.json()['error'], 'rate_limit_exceeded')

    @override_settings(RATE_LIMIT_ENABLED=True)
    def test_health_not_rate_limited(self):
        for _ in range(3):
            response = self.client.get('/api/health/')
        self.assertNotIn('X-RateLimit-Limit', response)

    @override_settings(RATE_LIMIT_ENABLED=True)
    def test_api_rate_limit_headers(self):
        response = self.client.get('/api/')
        self.assertEqual(response['X-RateLimit-Limit'], '100')
        self.assertEqual(response['X-RateLimit-Remaining'], '99')
