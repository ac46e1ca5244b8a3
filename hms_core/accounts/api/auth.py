# backend/hms_core/accounts/api/auth.py

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any

from django.conf import settings
from drf_spectacular.utils import extend_schema
from rest_framework import status
from rest_framework.exceptions import AuthenticationFailed, ValidationError
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView
from rest_framework_simplejwt.serializers import TokenObtainPairSerializer, TokenRefreshSerializer

from hms_core.accounts.api.serializers import (
    ChangePasswordSerializer,
    DetailResponseSerializer,
    ForgotPasswordSerializer,
    LoginRequestSerializer,
    LoginResponseSerializer,
    RegisterSerializer,
    ResetPasswordSerializer,
    UserSerializer,
    VerifyEmailSerializer,
)
from hms_core.accounts.services import AuthService, UserService

logger = logging.getLogger(__name__)


def _seconds(value: Any) -> int:
    """
    Convert a JWT lifetime setting into seconds.
    Supports timedelta OR int/float (already seconds).
    """
    if isinstance(value, timedelta):
        return int(value.total_seconds())
    try:
        return int(value)
    except (TypeError, ValueError):
        # 0 means "session cookie"
        return 0


def _cookie_names() -> tuple[str, str]:
    jwt_cfg = getattr(settings, "SIMPLE_JWT", {}) or {}
    return jwt_cfg.get("AUTH_COOKIE", "hms_access"), jwt_cfg.get("AUTH_COOKIE_REFRESH", "hms_refresh")


def _set_auth_cookies(response: Response, *, access: str, refresh: str) -> None:
    jwt_cfg = getattr(settings, "SIMPLE_JWT", {}) or {}
    access_name, refresh_name = _cookie_names()

    access_lifetime = _seconds(jwt_cfg.get("ACCESS_TOKEN_LIFETIME", timedelta(minutes=10)))
    refresh_lifetime = _seconds(jwt_cfg.get("REFRESH_TOKEN_LIFETIME", timedelta(days=14)))

    secure = bool(jwt_cfg.get("AUTH_COOKIE_SECURE", False))
    samesite = jwt_cfg.get("AUTH_COOKIE_SAMESITE", "Lax")

    response.set_cookie(
        access_name,
        access,
        max_age=access_lifetime,
        httponly=True,
        secure=secure,
        samesite=samesite,
        path="/",
    )
    response.set_cookie(
        refresh_name,
        refresh,
        max_age=refresh_lifetime,
        httponly=True,
        secure=secure,
        samesite=samesite,
        path="/",
    )


def _clear_auth_cookies(response: Response) -> None:
    access_name, refresh_name = _cookie_names()
    response.delete_cookie(access_name, path="/")
    response.delete_cookie(refresh_name, path="/")


class LoginView(APIView):
    permission_classes = [AllowAny]
    authentication_classes = []

    def get_authenticate_header(self, request):
        # keeps bad credentials a 401 (DRF downgrades to 403 without authenticators)
        return 'Bearer realm="api"'

    @extend_schema(
        request=LoginRequestSerializer,
        responses={200: LoginResponseSerializer},
        tags=["Auth"],
    )
    def post(self, request):
        username = str(request.data.get("username") or "")
        profile = AuthService.profile_for_login(username)
        AuthService.ensure_can_login(profile)

        serializer = TokenObtainPairSerializer(data=request.data)
        try:
            serializer.is_valid(raise_exception=True)
        except AuthenticationFailed:
            if profile is not None:
                profile = AuthService.record_failed_login(profile_id=profile.id)
                AuthService.ensure_can_login(profile)
            logger.warning("login failed username=%s", username)
            raise

        user = serializer.user
        AuthService.record_successful_login(user=user)

        access = serializer.validated_data["access"]
        refresh = serializer.validated_data["refresh"]

        res = Response(
            {
                "detail": "login ok",
                "access": access,
                "refresh": refresh,
                "user": UserSerializer(user).data,
            },
            status=status.HTTP_200_OK,
        )
        _set_auth_cookies(res, access=access, refresh=refresh)
        return res


class RefreshView(APIView):
    permission_classes = [AllowAny]
    authentication_classes = []

    @extend_schema(
        request=None,
        responses={200: DetailResponseSerializer},
        tags=["Auth"],
    )
    def post(self, request):
        _, refresh_cookie_name = _cookie_names()
        refresh = request.data.get("refresh") or request.COOKIES.get(refresh_cookie_name)
        if not refresh:
            raise ValidationError({"refresh": "Refresh token is required."})

        serializer = TokenRefreshSerializer(data={"refresh": refresh})
        serializer.is_valid(raise_exception=True)

        access = serializer.validated_data["access"]
        new_refresh = serializer.validated_data.get("refresh", refresh)

        res = Response({"detail": "refreshed", "access": access, "refresh": new_refresh}, status=status.HTTP_200_OK)
        _set_auth_cookies(res, access=access, refresh=new_refresh)
        return res


class LogoutView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(
        request=None,
        responses={200: DetailResponseSerializer},
        tags=["Auth"],
    )
    def post(self, request):
        res = Response({"detail": "logged out"}, status=status.HTTP_200_OK)
        _clear_auth_cookies(res)
        return res


class RegisterView(APIView):
    permission_classes = [AllowAny]
    authentication_classes = []

    @extend_schema(request=RegisterSerializer, responses={201: UserSerializer}, tags=["Auth"])
    def post(self, request):
        ser = RegisterSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        user = UserService.register_patient(**ser.validated_data)
        return Response(UserSerializer(user).data, status=status.HTTP_201_CREATED)


class ChangePasswordView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(request=ChangePasswordSerializer, responses={200: DetailResponseSerializer}, tags=["Auth"])
    def post(self, request):
        ser = ChangePasswordSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        UserService.change_password(user=request.user, **ser.validated_data)
        return Response({"detail": "password changed"}, status=status.HTTP_200_OK)


class ForgotPasswordView(APIView):
    permission_classes = [AllowAny]
    authentication_classes = []

    @extend_schema(request=ForgotPasswordSerializer, responses={200: DetailResponseSerializer}, tags=["Auth"])
    def post(self, request):
        ser = ForgotPasswordSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        UserService.request_password_reset(email=ser.validated_data["email"])
        # same answer whether or not the email exists
        return Response(
            {"detail": "If the email is registered, a reset link has been sent."},
            status=status.HTTP_200_OK,
        )


class ResetPasswordView(APIView):
    permission_classes = [AllowAny]
    authentication_classes = []

    @extend_schema(request=ResetPasswordSerializer, responses={200: DetailResponseSerializer}, tags=["Auth"])
    def post(self, request):
        ser = ResetPasswordSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        UserService.reset_password(**ser.validated_data)
        return Response({"detail": "password reset"}, status=status.HTTP_200_OK)


class VerifyEmailView(APIView):
    permission_classes = [AllowAny]
    authentication_classes = []

    @extend_schema(request=VerifyEmailSerializer, responses={200: DetailResponseSerializer}, tags=["Auth"])
    def post(self, request):
        ser = VerifyEmailSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        UserService.verify_email(token=ser.validated_data["token"])
        return Response({"detail": "email verified"}, status=status.HTTP_200_OK)
