"""
JWT authentication for websocket connections.

Clients connect with `?token=<access token>`; the resolved user is put in
`scope['user']` (AnonymousUser when the token is missing or invalid).
"""

import logging
from urllib.parse import parse_qs

from channels.db import database_sync_to_async
from channels.middleware import BaseMiddleware
from django.contrib.auth import get_user_model
from django.contrib.auth.models import AnonymousUser

logger = logging.getLogger(__name__)


def user_for_token(raw_token: str):
    """Resolve an access token to an active user, or AnonymousUser."""
    from rest_framework_simplejwt.exceptions import TokenError
    from rest_framework_simplejwt.settings import api_settings
    from rest_framework_simplejwt.tokens import AccessToken

    try:
        token = AccessToken(raw_token)
    except TokenError as e:
        logger.info(f"[WS] Rejected token: {e}")
        return AnonymousUser()

    User = get_user_model()
    try:
        return User.objects.get(pk=token[api_settings.USER_ID_CLAIM], is_active=True)
    except (User.DoesNotExist, KeyError):
        return AnonymousUser()


get_user_for_token = database_sync_to_async(user_for_token)


class JWTAuthMiddleware(BaseMiddleware):
    """Populate scope['user'] from the `token` query-string parameter."""

    async def __call__(self, scope, receive, send):
        query = parse_qs(scope.get('query_string', b'').decode())
        token = (query.get('token') or [None])[0]

        scope['user'] = await get_user_for_token(token) if token else AnonymousUser()
        return await super().__call__(scope, receive, send)
