from datetime import timedelta

from django.conf import settings
from django.utils import timezone
from rest_framework import exceptions
from rest_framework.authentication import TokenAuthentication
from rest_framework.authtoken.models import Token


def token_expired(token: Token) -> bool:
    ttl_hours = getattr(settings, "TOKEN_TTL_HOURS", 0)
    if not ttl_hours:
        return False
    return token.created < timezone.now() - timedelta(hours=ttl_hours)


def issue_token(user) -> Token:
    """Replace any existing token of ``user`` with a fresh one."""
    Token.objects.filter(user=user).delete()
    return Token.objects.create(user=user)


class BearerTokenAuthentication(TokenAuthentication):
    keyword = "Bearer"

    def authenticate_credentials(self, key):
        user, token = super().authenticate_credentials(key)
        if token_expired(token):
            token.delete()
            raise exceptions.AuthenticationFailed("Session expired. Please login again.")
        if not user.is_status_active:
            raise exceptions.AuthenticationFailed(
                "Your account is inactive. Please contact an administrator."
            )
        return user, token
