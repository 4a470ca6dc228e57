"""
Core App Views - Authentication & Profile API
"""

import logging

from django.contrib.auth import get_user_model
from rest_framework import viewsets, status, permissions
from rest_framework.decorators import action
from rest_framework.response import Response
from rest_framework_simplejwt.tokens import RefreshToken

from .serializers import (
    UserSerializer, RegisterSerializer, LoginSerializer,
    GoogleLoginSerializer, ProfileUpdateSerializer,
)
from .models import UserRole

User = get_user_model()
logger = logging.getLogger(__name__)


def token_response(user, message, status_code=status.HTTP_200_OK):
    """Issue a JWT pair for `user` and wrap it with the serialized profile."""
    refresh = RefreshToken.for_user(user)
    return Response({
        'message': message,
        'token': str(refresh.access_token),
        'refresh': str(refresh),
        'user': UserSerializer(user).data,
    }, status=status_code)


class AuthViewSet(viewsets.ViewSet):
    """
    Account endpoints.

    - register / login / google: public, return a token pair
    - me / profile: authenticated user only
    """

    def get_permissions(self):
        if self.action in ('register', 'login', 'google'):
            return [permissions.AllowAny()]
        return [permissions.IsAuthenticated()]

    @action(detail=False, methods=['post'])
    def register(self, request):
        """Create a customer or driver account."""
        serializer = RegisterSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        user = serializer.save()
        logger.info(f"[AUTH] Registered {user.role} {user.email}")
        return token_response(user, 'User created successfully', status.HTTP_201_CREATED)

    @action(detail=False, methods=['post'])
    def login(self, request):
        """Email/password login."""
        serializer = LoginSerializer(data=request.data, context={'request': request})
        serializer.is_valid(raise_exception=True)
        return token_response(serializer.validated_data['user'], 'Login successful')

    @action(detail=False, methods=['post'])
    def google(self, request):
        """
        Sign in with a Google profile.

        Looks the account up by google_id first, then by email (linking the
        Google id to an existing local account), and creates a customer
        account when neither matches.
        """
        serializer = GoogleLoginSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        email = data['email'].lower()

        user = User.objects.filter(google_id=data['google_id']).first()
        if user is None:
            user = User.objects.filter(email=email).first()
            if user is not None:
                user.google_id = data['google_id']
                if not user.avatar:
                    user.avatar = data['avatar']
                user.save(update_fields=['google_id', 'avatar', 'updated_at'])
                logger.info(f"[AUTH] Linked Google account to {email}")
            else:
                user = User.objects.create_user(
                    email=email,
                    name=data['name'],
                    google_id=data['google_id'],
                    avatar=data['avatar'],
                    role=UserRole.CUSTOMER,
                )
                logger.info(f"[AUTH] Created account from Google sign-in: {email}")

        if not user.is_active:
            return Response(
                {'message': 'Account is deactivated.'},
                status=status.HTTP_403_FORBIDDEN
            )

        return token_response(user, 'Google login successful')

    @action(detail=False, methods=['get'])
    def me(self, request):
        """Get current user profile."""
        return Response({'user': UserSerializer(request.user).data})

    @action(detail=False, methods=['put', 'patch'])
    def profile(self, request):
        """Update current user profile."""
        serializer = ProfileUpdateSerializer(
            request.user,
            data=request.data,
            partial=True
        )
        serializer.is_valid(raise_exception=True)
        user = serializer.save()
        return Response({
            'message': 'Profile updated successfully',
            'user': UserSerializer(user).data,
        })
