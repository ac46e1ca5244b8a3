# backend/hms_core/accounts/auth.py

from __future__ import annotations

from django.conf import settings
from rest_framework_simplejwt.authentication import JWTAuthentication

from hms_core.common.api.errors import AccountLocked


def access_cookie_name() -> str:
    return (getattr(settings, "SIMPLE_JWT", {}) or {}).get("AUTH_COOKIE", "hms_access")


class CookieOrHeaderJWTAuthentication(JWTAuthentication):
    """
    Access token from `Authorization: Bearer <jwt>`, else from the HttpOnly
    access cookie set at login.

    simplejwt already refuses inactive users (disabled or soft-deleted).
    On top of that a locked account is refused with 423 even while its
    token is still within its lifetime.
    """

    def authenticate(self, request):
        if self.get_header(request):
            result = super().authenticate(request)
        else:
            raw_token = request.COOKIES.get(access_cookie_name())
            if not raw_token:
                return None
            validated_token = self.get_validated_token(raw_token)
            result = (self.get_user(validated_token), validated_token)

        if result is not None:
            profile = getattr(result[0], "profile", None)
            if profile is not None and profile.is_locked:
                raise AccountLocked()
        return result
