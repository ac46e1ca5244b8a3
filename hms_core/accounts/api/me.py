# backend/hms_core/accounts/api/me.py

from __future__ import annotations

from drf_spectacular.utils import extend_schema
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from hms_core.accounts.api.serializers import MeSerializer, OwnProfileUpdateSerializer
from hms_core.accounts.services import UserService


class MeView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(tags=["Auth"], responses={200: MeSerializer})
    def get(self, request):
        """
        Returns the caller, their roles and the effective permission codes
        (used by clients to gate menus and buttons).
        """
        return Response(MeSerializer.build(request.user), status=status.HTTP_200_OK)

    @extend_schema(tags=["Auth"], request=OwnProfileUpdateSerializer, responses={200: MeSerializer})
    def patch(self, request):
        ser = OwnProfileUpdateSerializer(data=request.data, partial=True)
        ser.is_valid(raise_exception=True)

        user = UserService.update_own_profile(user=request.user, data=ser.validated_data)
        return Response(MeSerializer.build(user), status=status.HTTP_200_OK)
