# backend/hms_core/accounts/admin.py
from __future__ import annotations

from django.contrib import admin

from hms_core.accounts.models import Department, UserProfile


@admin.register(Department)
class DepartmentAdmin(admin.ModelAdmin):
    list_display = ("code", "name", "head", "is_active", "created_at")
    list_filter = ("is_active",)
    search_fields = ("code", "name")


@admin.register(UserProfile)
class UserProfileAdmin(admin.ModelAdmin):
    list_display = (
        "user",
        "role",
        "status",
        "department",
        "email_verified",
        "failed_login_attempts",
        "locked_until",
        "is_deleted",
    )
    list_filter = ("role", "status", "email_verified", "is_deleted")
    search_fields = ("user__username", "user__email", "phone", "license_number")
    readonly_fields = ("created_at", "updated_at", "deleted_at")
