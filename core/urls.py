"""
Core App URLs
"""

from django.urls import path
from rest_framework_simplejwt.views import TokenRefreshView

from .views import AuthViewSet

urlpatterns = [
    path('auth/register/', AuthViewSet.as_view({'post': 'register'}), name='auth-register'),
    path('auth/login/', AuthViewSet.as_view({'post': 'login'}), name='auth-login'),
    path('auth/google/', AuthViewSet.as_view({'post': 'google'}), name='auth-google'),
    path('auth/me/', AuthViewSet.as_view({'get': 'me'}), name='auth-me'),
    path(
        'auth/profile/',
        AuthViewSet.as_view({'put': 'profile', 'patch': 'profile'}),
        name='auth-profile'
    ),
    path('auth/token/refresh/', TokenRefreshView.as_view(), name='token_refresh'),
]
