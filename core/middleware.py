"""
LuggEase Security Middleware
=============================

Provides:
1. Rate Limiting (per IP and path) using Django cache (Redis)
2. Security Headers
3. Request Audit Logging for write operations
"""

import logging
import hashlib
from django.conf import settings
from django.core.cache import cache
from django.http import JsonResponse
from django.utils.deprecation import MiddlewareMixin

logger = logging.getLogger('luggease.security')


class RateLimitMiddleware(MiddlewareMixin):
    """
    Rate limiting middleware using the Django cache.

    Rates per endpoint prefix:
    - Auth endpoints: 10 requests/minute per IP
    - AI assistant: 20 requests/minute per IP
    - Other API endpoints: 100 requests per 15 minutes per IP
    """

    # (max_requests, time_window_seconds)
    RATE_LIMITS = {
        '/api/auth/login/': (10, 60),
        '/api/auth/register/': (10, 60),
        '/api/auth/google/': (10, 60),
        '/api/ai/': (20, 60),
    }

    DEFAULT_API_LIMIT = (100, 15 * 60)

    def _get_client_ip(self, request):
        """Extract real client IP, considering proxy headers."""
        x_forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')
        if x_forwarded_for:
            return x_forwarded_for.split(',')[0].strip()
        return request.META.get('REMOTE_ADDR', '0.0.0.0')

    def _get_rate_limit(self, path):
        """Return (scope, limits) for `path`, or None when unlimited."""
        for pattern, limits in self.RATE_LIMITS.items():
            if path.startswith(pattern):
                return pattern, limits

        if path.startswith('/api/') and not path.startswith('/api/health/'):
            return '/api/', self.DEFAULT_API_LIMIT

        return None

    def process_request(self, request):
        """Check rate limits before processing the request."""
        if not getattr(settings, 'RATE_LIMIT_ENABLED', True):
            return None
        if settings.DEBUG and not getattr(settings, 'RATE_LIMIT_IN_DEBUG', False):
            return None

        rate_limit = self._get_rate_limit(request.path)
        if rate_limit is None:
            return None

        scope, (max_requests, window) = rate_limit
        client_ip = self._get_client_ip(request)

        scope_hash = hashlib.md5(scope.encode()).hexdigest()[:8]
        cache_key = f"rl:{client_ip}:{scope_hash}"

        request_count = cache.get(cache_key, 0)

        if request_count >= max_requests:
            logger.warning(
                f"Rate limit exceeded: IP={client_ip} path={request.path} "
                f"count={request_count}/{max_requests} window={window}s"
            )
            ttl = cache.ttl(cache_key) if hasattr(cache, 'ttl') else window

            return JsonResponse({
                'error': 'rate_limit_exceeded',
                'message': 'Too many requests. Please try again later.',
                'retry_after': ttl,
            }, status=429, headers={
                'Retry-After': str(ttl),
                'X-RateLimit-Limit': str(max_requests),
                'X-RateLimit-Remaining': '0',
            })

        try:
            new_count = cache.incr(cache_key)
        except ValueError:
            cache.set(cache_key, 1, window)
            new_count = 1

        request._rate_limit_remaining = max(0, max_requests - new_count)
        request._rate_limit_limit = max_requests

        return None

    def process_response(self, request, response):
        """Add rate limit headers to response."""
        if hasattr(request, '_rate_limit_limit'):
            response['X-RateLimit-Limit'] = str(request._rate_limit_limit)
            response['X-RateLimit-Remaining'] = str(request._rate_limit_remaining)
        return response


class SecurityHeadersMiddleware(MiddlewareMixin):
    """Add security headers to all responses."""

    def process_response(self, request, response):
        response['X-Content-Type-Options'] = 'nosniff'

        # Django admin uses iframes internally
        if not request.path.startswith('/admin/'):
            response['X-Frame-Options'] = 'DENY'

        response['Referrer-Policy'] = 'strict-origin-when-cross-origin'
        response['Permissions-Policy'] = (
            'geolocation=(self), '
            'camera=(), '
            'microphone=(), '
            'payment=()'
        )

        if 'Server' in response:
            del response['Server']

        if not settings.DEBUG:
            response['Strict-Transport-Security'] = 'max-age=31536000; includeSubDomains'

        return response


class RequestAuditMiddleware(MiddlewareMixin):
    """
    Audit logging for write operations and failed API requests.
    """

    SENSITIVE_PATHS = [
        '/api/auth/',
        '/api/delivery/',
        '/api/driver/',
        '/api/admin/',
    ]

    def _should_log(self, request, response):
        path = request.path

        if request.method in ('POST', 'PUT', 'PATCH', 'DELETE'):
            return any(path.startswith(p) for p in self.SENSITIVE_PATHS)

        if response.status_code >= 400 and path.startswith('/api/'):
            return True

        return False

    def process_response(self, request, response):
        if self._should_log(request, response):
            user = getattr(request, 'user', None)
            user_info = str(user) if user and user.is_authenticated else 'anonymous'

            log_data = {
                'method': request.method,
                'path': request.path,
                'status': response.status_code,
                'user': user_info,
                'ip': request.META.get('HTTP_X_FORWARDED_FOR', '').split(',')[0].strip()
                or request.META.get('REMOTE_ADDR', '?'),
            }

            if response.status_code >= 500:
                logger.error(f"AUDIT [ERROR] {log_data}")
            elif response.status_code >= 400:
                logger.warning(f"AUDIT [WARN] {log_data}")
            else:
                logger.info(f"AUDIT [OK] {log_data}")

        return response
