"""
Tests for core app - user accounts and the identity the booking core trusts.
Tests cover: User model and role, Serializer validation, Auth flow, Admin permission.
"""
from django.test import TestCase, RequestFactory
from django.contrib.auth import get_user_model
from django.contrib.auth.models import AnonymousUser
from rest_framework.test import APITestCase
from rest_framework import status

from core.permissions import IsAdminUser

User = get_user_model()


# =============================================================================
# UNIT TESTS - Models
# =============================================================================

class UserModelTests(TestCase):
    """Test User model constraints and role."""

    def test_create_user_with_email(self):
        """Test creating a user keyed by email."""
        user = User.objects.create_user(
            email='rider@example.com',
            password='ridepass123',
            name='Rider One'
        )

        self.assertEqual(user.email, 'rider@example.com')
        self.assertTrue(user.check_password('ridepass123'))
        self.assertFalse(user.is_admin)
        self.assertEqual(user.role, User.ROLE_USER)

    def test_email_is_unique(self):
        """Test that duplicate emails raise error."""
        User.objects.create_user(email='same@example.com', password='x12345', name='First')

        with self.assertRaises(Exception):
            User.objects.create_user(email='same@example.com', password='x12345', name='Second')

    def test_create_user_without_email_raises_error(self):
        with self.assertRaises(ValueError):
            User.objects.create_user(email='', password='x12345', name='Nobody')

    def test_superuser_has_admin_role(self):
        """Test superusers are admins for trip management."""
        admin = User.objects.create_superuser(
            email='admin@busbooking.com',
            password='Admin@123',
            name='Admin'
        )

        self.assertTrue(admin.is_staff)
        self.assertTrue(admin.is_admin)
        self.assertEqual(admin.role, User.ROLE_ADMIN)

    def test_short_name(self):
        user = User.objects.create_user(email='jane@example.com', password='x12345', name='Jane Smith')
        self.assertEqual(user.get_short_name(), 'Jane')
        self.assertEqual(str(user), 'Jane Smith <jane@example.com>')


# =============================================================================
# UNIT TESTS - Serializers and permissions
# =============================================================================

class UserSerializerTests(TestCase):
    """Test User serializers validation."""

    def test_registration_password_mismatch(self):
        from core.serializers import UserRegistrationSerializer

        serializer = UserRegistrationSerializer(data={
            'email': 'rider@example.com',
            'name': 'Rider',
            'password': 'StrongPass123!',
            'password_confirm': 'OtherPass123!'
        })

        self.assertFalse(serializer.is_valid())
        self.assertIn('password_confirm', serializer.errors)

    def test_login_invalid_credentials(self):
        from core.serializers import UserLoginSerializer

        User.objects.create_user(email='rider@example.com', password='correctpass', name='Rider')
        serializer = UserLoginSerializer(data={'email': 'rider@example.com', 'password': 'wrongpass'})

        self.assertFalse(serializer.is_valid())

    def test_user_serializer_exposes_role(self):
        from core.serializers import UserSerializer

        admin = User.objects.create_user(email='boss@example.com', password='x12345', name='Boss', is_admin=True)
        self.assertEqual(UserSerializer(admin).data['role'], 'admin')


class IsAdminUserPermissionTests(TestCase):
    """Test the admin-only permission."""

    def setUp(self):
        self.factory = RequestFactory()
        self.permission = IsAdminUser()

    def _request_for(self, user):
        request = self.factory.get('/api/trips/')
        request.user = user
        return request

    def test_admin_allowed(self):
        admin = User.objects.create_user(email='boss@example.com', password='x12345', name='Boss', is_admin=True)
        self.assertTrue(self.permission.has_permission(self._request_for(admin), None))

    def test_regular_user_denied(self):
        user = User.objects.create_user(email='rider@example.com', password='x12345', name='Rider')
        self.assertFalse(self.permission.has_permission(self._request_for(user), None))

    def test_anonymous_denied(self):
        self.assertFalse(self.permission.has_permission(self._request_for(AnonymousUser()), None))


# =============================================================================
# INTEGRATION TESTS - API Flow
# =============================================================================

class AuthenticationAPITests(APITestCase):
    """Integration tests for authentication flow."""

    def test_register_returns_jwt_tokens(self):
        """Test registration returns tokens inside the response envelope."""
        response = self.client.post('/api/register/', {
            'email': 'newrider@example.com',
            'name': 'New Rider',
            'password': 'SecurePass123!',
            'password_confirm': 'SecurePass123!'
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(response.data['success'])
        self.assertIn('access', response.data['data']['tokens'])
        self.assertIn('refresh', response.data['data']['tokens'])
        self.assertEqual(response.data['data']['user']['role'], 'user')

    def test_register_validation_error_uses_envelope(self):
        """Test a rejected registration reports success false with a message."""
        response = self.client.post('/api/register/', {
            'email': 'newrider@example.com',
            'name': 'New Rider',
            'password': 'SecurePass123!',
            'password_confirm': 'Mismatch123!'
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(response.data['success'])
        self.assertIn('password_confirm', response.data['message'])

    def test_full_auth_flow(self):
        """Test complete flow: register -> login -> refresh -> profile."""
        self.client.post('/api/register/', {
            'email': 'flow@example.com',
            'name': 'Flow Test',
            'password': 'FlowPass123!',
            'password_confirm': 'FlowPass123!'
        }, format='json')

        login_response = self.client.post('/api/login/', {
            'email': 'flow@example.com',
            'password': 'FlowPass123!'
        }, format='json')
        self.assertEqual(login_response.status_code, status.HTTP_200_OK)
        tokens = login_response.data['data']['tokens']

        refresh_response = self.client.post('/api/token/refresh/', {'refresh': tokens['refresh']}, format='json')
        self.assertEqual(refresh_response.status_code, status.HTTP_200_OK)
        self.assertIn('access', refresh_response.data)

        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {tokens['access']}")
        profile_response = self.client.get('/api/profile/')
        self.assertEqual(profile_response.status_code, status.HTTP_200_OK)
        self.assertEqual(profile_response.data['data']['email'], 'flow@example.com')

    def test_protected_route_without_token(self):
        response = self.client.get('/api/profile/')

        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertFalse(response.data['success'])

    def test_protected_route_with_invalid_token(self):
        self.client.credentials(HTTP_AUTHORIZATION='Bearer invalid_token_here')
        response = self.client.get('/api/profile/')

        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_health_check(self):
        response = self.client.get('/api/health/')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.json()['status'], 'OK')
