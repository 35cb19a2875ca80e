"""WebSocket authentication middleware using SimpleJWT access tokens."""

import logging
from urllib.parse import parse_qs

from channels.db import database_sync_to_async
from channels.middleware import BaseMiddleware
from django.contrib.auth import get_user_model
from django.contrib.auth.models import AnonymousUser
from rest_framework_simplejwt.exceptions import TokenError
from rest_framework_simplejwt.tokens import AccessToken

User = get_user_model()
logger = logging.getLogger(__name__)


@database_sync_to_async
def get_user_for_token(raw_token: str):
    try:
        access = AccessToken(raw_token)
        return User.objects.get(id=access["user_id"])
    except (TokenError, KeyError, User.DoesNotExist) as exc:
        logger.debug("JWT auth failed: %s", exc)
        return AnonymousUser()


class JWTQueryAuthMiddleware(BaseMiddleware):
    """Authenticate WebSocket connections from ``?token=<access token>``."""

    async def __call__(self, scope, receive, send):
        params = parse_qs(scope.get("query_string", b"").decode())
        token_list = params.get("token")
        scope["user"] = await get_user_for_token(token_list[0]) if token_list else AnonymousUser()
        return await super().__call__(scope, receive, send)
