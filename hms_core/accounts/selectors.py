# backend/hms_core/accounts/selectors.py
from __future__ import annotations

from uuid import UUID

from django.contrib.auth import get_user_model
from django.db.models import Q, QuerySet

from hms_core.accounts.models import Department, UserProfile

User = get_user_model()


def _users_base() -> QuerySet:
    return User.objects.select_related("profile", "profile__department").order_by("username")


def get_user(*, user_id: int):
    return _users_base().get(id=user_id)


def list_users(
    *,
    role: str | None = None,
    status: str | None = None,
    department_id: UUID | None = None,
    search: str = "",
    include_deleted: bool = False,
) -> QuerySet:
    qs = _users_base().filter(profile__isnull=False)

    if not include_deleted:
        qs = qs.filter(profile__is_deleted=False)
    if role:
        qs = qs.filter(profile__role=role)
    if status:
        qs = qs.filter(profile__status=status)
    if department_id:
        qs = qs.filter(profile__department_id=department_id)
    if search:
        qs = qs.filter(
            Q(username__icontains=search)
            | Q(email__icontains=search)
            | Q(first_name__icontains=search)
            | Q(last_name__icontains=search)
            | Q(profile__phone__icontains=search)
        )
    return qs


def list_deleted_users() -> QuerySet:
    return _users_base().filter(profile__is_deleted=True).order_by("-profile__deleted_at")


def find_user_by_email(*, email: str):
    """
    Case-insensitive lookup among non-deleted users.
    """
    return _users_base().filter(email__iexact=email, profile__is_deleted=False).first()


def doctors_in_department(*, department_id: UUID) -> QuerySet:
    return _users_base().filter(
        profile__department_id=department_id,
        profile__role="DOCTOR",
        profile__is_deleted=False,
        is_active=True,
    )


def list_departments(*, include_inactive: bool = False) -> QuerySet:
    qs = Department.objects.select_related("head").order_by("name")
    if not include_inactive:
        qs = qs.filter(is_active=True)
    return qs


def profile_for(user) -> UserProfile | None:
    return UserProfile.objects.filter(user_id=user.id).select_related("department").first()
