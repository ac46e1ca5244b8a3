# backend/hms_core/accounts/api/views.py
from __future__ import annotations

from django.contrib.auth import get_user_model
from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import NotFound, ValidationError
from rest_framework.response import Response

from hms_core.accounts.api.serializers import (
    AssignRoleSerializer,
    CheckPermissionSerializer,
    DepartmentSerializer,
    DepartmentWriteSerializer,
    ReasonSerializer,
    UserCreateSerializer,
    UserSerializer,
    UserStatsSerializer,
    UserUpdateSerializer,
)
from hms_core.accounts.models import Department, UserRole, UserStatus
from hms_core.accounts.selectors import (
    find_user_by_email,
    get_user,
    list_deleted_users,
    list_departments,
    list_users,
)
from hms_core.accounts.services import DepartmentService, UserService
from hms_core.common.api.pagination import paginate
from hms_core.common.api.params import pk_uuid, uuid_or_none
from hms_core.common.permissions import (
    ALL_PERMISSIONS,
    DepartmentPermission,
    UserPermission,
    user_permissions,
    user_roles,
)


def _pk_int(pk) -> int:
    try:
        return int(pk)
    except (TypeError, ValueError):
        raise NotFound("Not found.")


class UserViewSet(viewsets.ViewSet):
    permission_classes = [UserPermission]

    serializer_class = UserSerializer
    queryset = get_user_model().objects.none()

    @extend_schema(
        tags=["Users"],
        responses={200: UserSerializer(many=True)},
        parameters=[
            OpenApiParameter(name="role", type=OpenApiTypes.STR, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="status", type=OpenApiTypes.STR, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(
                name="department", type=OpenApiTypes.UUID, location=OpenApiParameter.QUERY, required=False
            ),
            OpenApiParameter(name="search", type=OpenApiTypes.STR, location=OpenApiParameter.QUERY, required=False),
        ],
    )
    def list(self, request):
        role = request.query_params.get("role") or None
        if role and role not in UserRole.values:
            raise ValidationError({"role": f"Unknown role: {role}"})
        status_value = request.query_params.get("status") or None
        if status_value and status_value not in UserStatus.values:
            raise ValidationError({"status": f"Unknown status: {status_value}"})

        qs = list_users(
            role=role,
            status=status_value,
            department_id=uuid_or_none(request.query_params.get("department"), "department"),
            search=request.query_params.get("search", "").strip(),
        )
        return paginate(request, qs, UserSerializer)

    @extend_schema(tags=["Users"], request=UserCreateSerializer, responses={201: UserSerializer})
    def create(self, request):
        ser = UserCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        user = UserService.create_user(actor=request.user, **ser.validated_data)
        return Response(UserSerializer(get_user(user_id=user.id)).data, status=status.HTTP_201_CREATED)

    @extend_schema(tags=["Users"], responses={200: UserSerializer})
    def retrieve(self, request, pk=None):
        user = get_user(user_id=_pk_int(pk))
        return Response(UserSerializer(user).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Users"], request=UserUpdateSerializer, responses={200: UserSerializer})
    def partial_update(self, request, pk=None):
        ser = UserUpdateSerializer(data=request.data, partial=True)
        ser.is_valid(raise_exception=True)

        user = UserService.update_user(actor=request.user, user_id=_pk_int(pk), data=ser.validated_data)
        return Response(UserSerializer(get_user(user_id=user.id)).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Users"], request=ReasonSerializer, responses={200: UserSerializer})
    def destroy(self, request, pk=None):
        ser = ReasonSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        user = UserService.soft_delete(
            actor=request.user,
            user_id=_pk_int(pk),
            reason=ser.validated_data.get("reason", ""),
        )
        return Response(UserSerializer(get_user(user_id=user.id)).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Users"], request=ReasonSerializer, responses={200: UserSerializer})
    @action(detail=True, methods=["post"], url_path="disable")
    def disable(self, request, pk=None):
        ser = ReasonSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        user = UserService.disable_user(
            actor=request.user,
            user_id=_pk_int(pk),
            reason=ser.validated_data.get("reason", ""),
        )
        return Response(UserSerializer(get_user(user_id=user.id)).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Users"], request=None, responses={200: UserSerializer})
    @action(detail=True, methods=["post"], url_path="enable")
    def enable(self, request, pk=None):
        user = UserService.enable_user(actor=request.user, user_id=_pk_int(pk))
        return Response(UserSerializer(get_user(user_id=user.id)).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Users"], request=AssignRoleSerializer, responses={200: UserSerializer})
    @action(detail=True, methods=["post"], url_path="assign-role")
    def assign_role(self, request, pk=None):
        ser = AssignRoleSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        user = UserService.assign_role(actor=request.user, user_id=_pk_int(pk), role=ser.validated_data["role"])
        return Response(UserSerializer(get_user(user_id=user.id)).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Users"], request=None, responses={200: UserSerializer})
    @action(detail=True, methods=["post"], url_path="restore")
    def restore(self, request, pk=None):
        user = UserService.restore(actor=request.user, user_id=_pk_int(pk))
        return Response(UserSerializer(get_user(user_id=user.id)).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Users"], responses={200: UserSerializer(many=True)})
    @action(detail=False, methods=["get"], url_path="deleted")
    def deleted(self, request):
        return paginate(request, list_deleted_users(), UserSerializer)

    @extend_schema(tags=["Users"], responses={200: UserStatsSerializer})
    @action(detail=False, methods=["get"], url_path="stats")
    def stats(self, request):
        return Response(UserService.user_stats(), status=status.HTTP_200_OK)

    @extend_schema(tags=["Users"], responses={200: OpenApiTypes.OBJECT})
    @action(detail=True, methods=["get"], url_path="permissions")
    def permissions(self, request, pk=None):
        user = get_user(user_id=_pk_int(pk))
        return Response(
            {
                "user_id": user.id,
                "roles": sorted(user_roles(user)),
                "permissions": sorted(user_permissions(user)),
            },
            status=status.HTTP_200_OK,
        )

    @extend_schema(tags=["Users"], request=CheckPermissionSerializer, responses={200: OpenApiTypes.OBJECT})
    @action(detail=True, methods=["post"], url_path="check-permission")
    def check_permission(self, request, pk=None):
        ser = CheckPermissionSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        code = ser.validated_data["permission"]
        if code not in ALL_PERMISSIONS:
            raise ValidationError({"permission": f"Unknown permission: {code}"})

        user = get_user(user_id=_pk_int(pk))
        return Response(
            {"user_id": user.id, "permission": code, "granted": code in user_permissions(user)},
            status=status.HTTP_200_OK,
        )

    @extend_schema(
        tags=["Users"],
        responses={200: UserSerializer},
        parameters=[
            OpenApiParameter(name="email", type=OpenApiTypes.EMAIL, location=OpenApiParameter.QUERY, required=True),
        ],
    )
    @action(detail=False, methods=["get"], url_path="by-email")
    def by_email(self, request):
        email = request.query_params.get("email", "").strip()
        if not email:
            raise ValidationError({"email": "This query parameter is required."})

        user = find_user_by_email(email=email)
        if user is None:
            raise NotFound("User not found.")
        return Response(UserSerializer(user).data, status=status.HTTP_200_OK)


class DepartmentViewSet(viewsets.ViewSet):
    permission_classes = [DepartmentPermission]

    serializer_class = DepartmentSerializer
    queryset = Department.objects.none()

    @extend_schema(
        tags=["Departments"],
        responses={200: DepartmentSerializer(many=True)},
        parameters=[
            OpenApiParameter(
                name="include_inactive", type=OpenApiTypes.BOOL, location=OpenApiParameter.QUERY, required=False
            ),
        ],
    )
    def list(self, request):
        include_inactive = request.query_params.get("include_inactive") in ("1", "true", "True")
        return paginate(request, list_departments(include_inactive=include_inactive), DepartmentSerializer)

    @extend_schema(tags=["Departments"], request=DepartmentWriteSerializer, responses={201: DepartmentSerializer})
    def create(self, request):
        ser = DepartmentWriteSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        data = dict(ser.validated_data)
        data.pop("is_active", None)
        dept = DepartmentService.create_department(actor_user_id=request.user.id, **data)
        return Response(DepartmentSerializer(dept).data, status=status.HTTP_201_CREATED)

    @extend_schema(tags=["Departments"], responses={200: DepartmentSerializer})
    def retrieve(self, request, pk=None):
        dept = Department.objects.get(id=pk_uuid(pk))
        return Response(DepartmentSerializer(dept).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Departments"], request=DepartmentWriteSerializer, responses={200: DepartmentSerializer})
    def partial_update(self, request, pk=None):
        ser = DepartmentWriteSerializer(data=request.data, partial=True)
        ser.is_valid(raise_exception=True)

        dept = DepartmentService.update_department(
            actor_user_id=request.user.id,
            department_id=pk_uuid(pk),
            data=ser.validated_data,
        )
        return Response(DepartmentSerializer(dept).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Departments"], responses={200: DepartmentSerializer})
    def destroy(self, request, pk=None):
        dept = DepartmentService.update_department(
            actor_user_id=request.user.id,
            department_id=pk_uuid(pk),
            data={"is_active": False},
        )
        return Response(DepartmentSerializer(dept).data, status=status.HTTP_200_OK)
