# backend/hms_core/accounts/openapi.py
from django.conf import settings
from drf_spectacular.extensions import OpenApiAuthenticationExtension


class CookieOrHeaderJWTAuthenticationScheme(OpenApiAuthenticationExtension):
    # dotted path only: importing the auth module from AppConfig.ready() would
    # make DRF load it while it is still half-initialised
    target_class = "hms_core.accounts.auth.CookieOrHeaderJWTAuthentication"
    name = "BearerOrCookieJWT"

    def get_security_definition(self, auto_schema):
        # Swagger "Authorize" only speaks bearer; the cookie path is described in text.
        cookie = (getattr(settings, "SIMPLE_JWT", {}) or {}).get("AUTH_COOKIE", "hms_access")
        return {
            "type": "http",
            "scheme": "bearer",
            "bearerFormat": "JWT",
            "description": (
                "Access token from POST /api/v1/auth/login/, sent as `Authorization: Bearer <token>` "
                f"or replayed from the HttpOnly `{cookie}` cookie. "
                "Locked accounts are refused with 423 until the lock expires."
            ),
        }
