# backend/hms_core/accounts/api/serializers.py
from __future__ import annotations

from django.contrib.auth import get_user_model
from rest_framework import serializers

from hms_core.accounts.models import Department, UserRole, UserStatus
from hms_core.common.permissions import user_permissions, user_roles

User = get_user_model()


class DepartmentSerializer(serializers.ModelSerializer):
    class Meta:
        model = Department
        fields = ["id", "code", "name", "description", "head", "is_active", "created_at", "updated_at"]
        read_only_fields = ["id", "created_at", "updated_at"]


class DepartmentWriteSerializer(serializers.Serializer):
    code = serializers.SlugField(max_length=32)
    name = serializers.CharField(max_length=255)
    description = serializers.CharField(required=False, allow_blank=True)
    head_id = serializers.IntegerField(required=False, allow_null=True)
    is_active = serializers.BooleanField(required=False)


class UserSerializer(serializers.ModelSerializer):
    role = serializers.CharField(source="profile.role", read_only=True)
    status = serializers.CharField(source="profile.status", read_only=True)
    phone = serializers.CharField(source="profile.phone", read_only=True)
    date_of_birth = serializers.DateField(source="profile.date_of_birth", read_only=True)
    gender = serializers.CharField(source="profile.gender", read_only=True)
    department = serializers.UUIDField(source="profile.department_id", read_only=True, allow_null=True)
    specialization = serializers.CharField(source="profile.specialization", read_only=True)
    license_number = serializers.CharField(source="profile.license_number", read_only=True)
    email_verified = serializers.BooleanField(source="profile.email_verified", read_only=True)
    is_deleted = serializers.BooleanField(source="profile.is_deleted", read_only=True)

    class Meta:
        model = User
        fields = [
            "id",
            "username",
            "email",
            "first_name",
            "last_name",
            "is_active",
            "role",
            "status",
            "phone",
            "date_of_birth",
            "gender",
            "department",
            "specialization",
            "license_number",
            "email_verified",
            "is_deleted",
            "date_joined",
            "last_login",
        ]
        read_only_fields = fields


class UserCreateSerializer(serializers.Serializer):
    username = serializers.CharField(max_length=150)
    email = serializers.EmailField()
    password = serializers.CharField(write_only=True)
    role = serializers.ChoiceField(choices=UserRole.choices)
    first_name = serializers.CharField(required=False, allow_blank=True, max_length=150)
    last_name = serializers.CharField(required=False, allow_blank=True, max_length=150)
    phone = serializers.CharField(required=False, allow_blank=True, max_length=32)
    date_of_birth = serializers.DateField(required=False, allow_null=True)
    gender = serializers.CharField(required=False, allow_blank=True, max_length=16)
    department_id = serializers.UUIDField(required=False, allow_null=True)
    specialization = serializers.CharField(required=False, allow_blank=True, max_length=128)
    license_number = serializers.CharField(required=False, allow_blank=True, max_length=64)


class RegisterSerializer(serializers.Serializer):
    username = serializers.CharField(max_length=150)
    email = serializers.EmailField()
    password = serializers.CharField(write_only=True)
    first_name = serializers.CharField(required=False, allow_blank=True, max_length=150)
    last_name = serializers.CharField(required=False, allow_blank=True, max_length=150)
    phone = serializers.CharField(required=False, allow_blank=True, max_length=32)
    date_of_birth = serializers.DateField(required=False, allow_null=True)
    gender = serializers.CharField(required=False, allow_blank=True, max_length=16)


class UserUpdateSerializer(serializers.Serializer):
    email = serializers.EmailField(required=False)
    first_name = serializers.CharField(required=False, allow_blank=True, max_length=150)
    last_name = serializers.CharField(required=False, allow_blank=True, max_length=150)
    phone = serializers.CharField(required=False, allow_blank=True, max_length=32)
    date_of_birth = serializers.DateField(required=False, allow_null=True)
    gender = serializers.CharField(required=False, allow_blank=True, max_length=16)
    department_id = serializers.UUIDField(required=False, allow_null=True)
    specialization = serializers.CharField(required=False, allow_blank=True, max_length=128)
    license_number = serializers.CharField(required=False, allow_blank=True, max_length=64)


class OwnProfileUpdateSerializer(serializers.Serializer):
    email = serializers.EmailField(required=False)
    first_name = serializers.CharField(required=False, allow_blank=True, max_length=150)
    last_name = serializers.CharField(required=False, allow_blank=True, max_length=150)
    phone = serializers.CharField(required=False, allow_blank=True, max_length=32)
    date_of_birth = serializers.DateField(required=False, allow_null=True)
    gender = serializers.CharField(required=False, allow_blank=True, max_length=16)


class ReasonSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, max_length=255)


class AssignRoleSerializer(serializers.Serializer):
    role = serializers.ChoiceField(choices=UserRole.choices)


class CheckPermissionSerializer(serializers.Serializer):
    permission = serializers.CharField()


class UserStatusFilterSerializer(serializers.Serializer):
    role = serializers.ChoiceField(choices=UserRole.choices, required=False)
    status = serializers.ChoiceField(choices=UserStatus.choices, required=False)


class MeSerializer(serializers.Serializer):
    user = UserSerializer()
    roles = serializers.ListField(child=serializers.CharField())
    permissions = serializers.ListField(child=serializers.CharField())

    @staticmethod
    def build(user) -> dict:
        return {
            "user": UserSerializer(user).data,
            "roles": sorted(user_roles(user)),
            "permissions": sorted(user_permissions(user)),
        }


class UserStatsSerializer(serializers.Serializer):
    by_role = serializers.DictField(child=serializers.IntegerField())
    summary = serializers.DictField()


# -------------------------
# Auth request/response shapes
# -------------------------
class LoginRequestSerializer(serializers.Serializer):
    username = serializers.CharField()
    password = serializers.CharField()


class LoginResponseSerializer(serializers.Serializer):
    detail = serializers.CharField()
    access = serializers.CharField()
    refresh = serializers.CharField()
    user = UserSerializer()


class DetailResponseSerializer(serializers.Serializer):
    detail = serializers.CharField()


class ChangePasswordSerializer(serializers.Serializer):
    old_password = serializers.CharField()
    new_password = serializers.CharField()


class ForgotPasswordSerializer(serializers.Serializer):
    email = serializers.EmailField()


class ResetPasswordSerializer(serializers.Serializer):
    token = serializers.CharField()
    new_password = serializers.CharField()


class VerifyEmailSerializer(serializers.Serializer):
    token = serializers.CharField()
