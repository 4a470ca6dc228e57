"""
LuggEase Main URL Configuration
"""

from django.contrib import admin
from django.urls import path, include
from drf_spectacular.views import SpectacularAPIView
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny
from rest_framework.response import Response

from core.health import health_check, readiness_check


admin.site.site_header = "LuggEase Control Tower"
admin.site.site_title = "LuggEase Admin"
admin.site.index_title = "Platform Operations"


@api_view(['GET'])
@permission_classes([AllowAny])
def api_root(request):
    """API Root endpoint with available routes."""
    return Response({
        'name': 'LuggEase API',
        'version': '1.0.0',
        'endpoints': {
            'auth': {
                'register': '/api/auth/register/',
                'login': '/api/auth/login/',
                'google': '/api/auth/google/',
                'me': '/api/auth/me/',
                'profile': '/api/auth/profile/',
            },
            'delivery': '/api/delivery/',
            'driver': '/api/driver/',
            'admin': '/api/admin/',
            'notifications': '/api/notifications/',
            'ai': '/api/ai/',
            'health': '/api/health/',
        }
    })


urlpatterns = [
    path('admin/', admin.site.urls),

    path('api/', api_root, name='api-root'),
    path('api/health/', health_check, name='health'),
    path('api/health/ready/', readiness_check, name='health-ready'),
    path('api/schema/', SpectacularAPIView.as_view(), name='schema'),

    path('api/', include('core.urls')),
    path('api/', include('logistics.urls')),
    path('api/notifications/', include('notifications.urls')),
    path('api/ai/', include('assistant.urls')),
]
