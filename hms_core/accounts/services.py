# backend/hms_core/accounts/services.py
from __future__ import annotations

import logging
import re
import secrets
from datetime import timedelta
from uuid import UUID

from django.conf import settings
from django.contrib.auth import get_user_model
from django.contrib.auth.models import Group
from django.contrib.auth.password_validation import validate_password
from django.core.exceptions import ValidationError as DjangoValidationError
from django.core.mail import send_mail
from django.db import transaction
from django.db.models import Count
from django.utils import timezone
from rest_framework.exceptions import PermissionDenied, ValidationError

from hms_core.accounts.models import Department, UserProfile, UserRole, UserStatus
from hms_core.audit.services import AuditService
from hms_core.common.api.errors import AccountLocked
from hms_core.common.permissions import ALL_ROLES, can_manage_role, user_roles
from hms_core.patients.services import PatientService

logger = logging.getLogger(__name__)

User = get_user_model()

_DELETED_PREFIX = re.compile(r"^deleted_\d+_")

USER_FIELDS = {"first_name", "last_name", "email"}
PROFILE_FIELDS = {"phone", "date_of_birth", "gender", "department_id", "specialization", "license_number"}
SELF_EDITABLE_FIELDS = {"first_name", "last_name", "email", "phone", "date_of_birth", "gender"}


def _new_token() -> str:
    return secrets.token_urlsafe(32)


def _validate_password_or_400(password: str, user=None) -> None:
    try:
        validate_password(password, user=user)
    except DjangoValidationError as e:
        raise ValidationError({"password": list(e.messages)})


class UserService:
    """
    User lifecycle: creation (role hierarchy), updates, disable/enable,
    role assignment, soft delete/restore, verification and password flows.
    """

    # -------------------------
    # Internal helpers
    # -------------------------
    @staticmethod
    def _get_profile_locked(user_id: int) -> UserProfile:
        return UserProfile.objects.select_for_update().select_related("user").get(user_id=user_id)

    @staticmethod
    def _email_taken(email: str, *, exclude_user_id: int | None = None) -> bool:
        if not email:
            return False
        qs = User.objects.filter(email__iexact=email).exclude(profile__is_deleted=True)
        if exclude_user_id is not None:
            qs = qs.exclude(id=exclude_user_id)
        return qs.exists()

    @staticmethod
    def _sync_role_group(user, role: str) -> None:
        user.groups.remove(*Group.objects.filter(name__in=ALL_ROLES))
        group, _ = Group.objects.get_or_create(name=role)
        user.groups.add(group)

    @staticmethod
    def _assert_can_manage(actor, role: str) -> None:
        if not can_manage_role(user_roles(actor), role):
            raise PermissionDenied(f"You are not allowed to manage users with role {role}.")

    # -------------------------
    # Create
    # -------------------------
    @staticmethod
    @transaction.atomic
    def create_user(
        *,
        actor,
        username: str,
        email: str,
        password: str,
        role: str,
        first_name: str = "",
        last_name: str = "",
        phone: str = "",
        date_of_birth=None,
        gender: str = "",
        department_id: UUID | None = None,
        specialization: str = "",
        license_number: str = "",
        status: str = UserStatus.ACTIVE,
    ):
        """
        actor=None means public self-registration (PATIENT only).
        """
        if role not in UserRole.values:
            raise ValidationError({"role": f"Unknown role: {role}"})

        if actor is None:
            if role != UserRole.PATIENT:
                raise PermissionDenied("Self-registration is only available for patients.")
        else:
            UserService._assert_can_manage(actor, role)

        if User.objects.filter(username__iexact=username).exists():
            raise ValidationError({"username": "Username already exists."})
        if UserService._email_taken(email):
            raise ValidationError({"email": "Email already exists."})
        if department_id and not Department.objects.filter(id=department_id).exists():
            raise ValidationError({"department": "Department not found."})

        _validate_password_or_400(password)

        user = User.objects.create_user(
            username=username,
            email=email,
            password=password,
            first_name=first_name or "",
            last_name=last_name or "",
            is_active=status == UserStatus.ACTIVE,
        )

        profile = UserProfile.objects.create(
            user=user,
            role=role,
            status=status,
            phone=phone or "",
            date_of_birth=date_of_birth,
            gender=gender or "",
            department_id=department_id,
            specialization=specialization or "",
            license_number=license_number or "",
            email_verification_token=_new_token(),
            email_verification_expires=timezone.now() + timedelta(hours=24),
        )
        UserService._sync_role_group(user, role)

        if role == UserRole.PATIENT:
            PatientService.create_patient(
                actor_user_id=getattr(actor, "id", None) or user.id,
                user_id=user.id,
                full_name=user.get_full_name() or username,
                email=email or "",
                phone=phone or "",
                date_of_birth=date_of_birth,
                gender=gender or "",
            )

        AuditService.log(
            event_code="user.created",
            entity_type="UserProfile",
            entity_id=profile.id,
            actor_user_id=getattr(actor, "id", None),
            metadata={"user_id": user.id, "role": role, "self_registered": actor is None},
        )
        logger.info("user created id=%s role=%s", user.id, role)
        return user

    @staticmethod
    def register_patient(**fields):
        fields.pop("role", None)
        return UserService.create_user(actor=None, role=UserRole.PATIENT, **fields)

    # -------------------------
    # Update
    # -------------------------
    @staticmethod
    def _apply_updates(profile: UserProfile, data: dict, allowed: set[str]) -> list[str]:
        user = profile.user
        updates = {k: v for k, v in (data or {}).items() if k in allowed}

        if "email" in updates and UserService._email_taken(updates["email"], exclude_user_id=user.id):
            raise ValidationError({"email": "Email already exists."})
        if updates.get("department_id") and not Department.objects.filter(id=updates["department_id"]).exists():
            raise ValidationError({"department": "Department not found."})

        user_changed = False
        for k, v in updates.items():
            if k in USER_FIELDS:
                setattr(user, k, v or "")
                user_changed = True
            else:
                setattr(profile, k, v)

        if user_changed:
            user.save()
        profile.save()
        return sorted(updates.keys())

    @staticmethod
    @transaction.atomic
    def update_user(*, actor, user_id: int, data: dict):
        profile = UserService._get_profile_locked(user_id)
        if actor.id != user_id:
            UserService._assert_can_manage(actor, profile.role)

        changed = UserService._apply_updates(profile, data, USER_FIELDS | PROFILE_FIELDS)

        AuditService.log(
            event_code="user.updated",
            entity_type="UserProfile",
            entity_id=profile.id,
            actor_user_id=actor.id,
            metadata={"updated_fields": changed},
        )
        return profile.user

    @staticmethod
    @transaction.atomic
    def update_own_profile(*, user, data: dict):
        profile = UserService._get_profile_locked(user.id)
        changed = UserService._apply_updates(profile, data, SELF_EDITABLE_FIELDS)

        AuditService.log(
            event_code="user.profile_updated",
            entity_type="UserProfile",
            entity_id=profile.id,
            actor_user_id=user.id,
            metadata={"updated_fields": changed},
        )
        return profile.user

    # -------------------------
    # Disable / enable
    # -------------------------
    @staticmethod
    @transaction.atomic
    def disable_user(*, actor, user_id: int, reason: str = ""):
        if actor.id == user_id:
            raise ValidationError({"user": "You cannot disable your own account."})

        profile = UserService._get_profile_locked(user_id)
        UserService._assert_can_manage(actor, profile.role)
        if profile.is_deleted:
            raise ValidationError({"user": "User is deleted."})

        profile.status = UserStatus.INACTIVE
        profile.status_reason = reason or ""
        profile.save(update_fields=["status", "status_reason", "updated_at"])

        profile.user.is_active = False
        profile.user.save(update_fields=["is_active"])

        AuditService.log(
            event_code="user.disabled",
            entity_type="UserProfile",
            entity_id=profile.id,
            actor_user_id=actor.id,
            metadata={"reason": reason},
        )
        logger.info("user disabled id=%s by=%s", user_id, actor.id)
        return profile.user

    @staticmethod
    @transaction.atomic
    def enable_user(*, actor, user_id: int):
        profile = UserService._get_profile_locked(user_id)
        UserService._assert_can_manage(actor, profile.role)
        if profile.is_deleted:
            raise ValidationError({"user": "User is deleted. Restore it first."})

        profile.status = UserStatus.ACTIVE
        profile.status_reason = ""
        profile.failed_login_attempts = 0
        profile.locked_until = None
        profile.save(update_fields=["status", "status_reason", "failed_login_attempts", "locked_until", "updated_at"])

        profile.user.is_active = True
        profile.user.save(update_fields=["is_active"])

        AuditService.log(
            event_code="user.enabled",
            entity_type="UserProfile",
            entity_id=profile.id,
            actor_user_id=actor.id,
        )
        return profile.user

    # -------------------------
    # Roles
    # -------------------------
    @staticmethod
    @transaction.atomic
    def assign_role(*, actor, user_id: int, role: str):
        if role not in UserRole.values:
            raise ValidationError({"role": f"Unknown role: {role}"})

        profile = UserService._get_profile_locked(user_id)
        # must outrank both the current and the new role
        UserService._assert_can_manage(actor, profile.role)
        UserService._assert_can_manage(actor, role)

        old_role = profile.role
        profile.role = role
        profile.save(update_fields=["role", "updated_at"])
        UserService._sync_role_group(profile.user, role)

        if role == UserRole.PATIENT and not hasattr(profile.user, "patient"):
            PatientService.create_patient(
                actor_user_id=actor.id,
                user_id=profile.user.id,
                full_name=profile.user.get_full_name() or profile.user.username,
                email=profile.user.email,
                phone=profile.phone,
            )

        AuditService.log(
            event_code="user.role_assigned",
            entity_type="UserProfile",
            entity_id=profile.id,
            actor_user_id=actor.id,
            metadata={"from": old_role, "to": role},
        )
        return profile.user

    # -------------------------
    # Soft delete / restore
    # -------------------------
    @staticmethod
    @transaction.atomic
    def soft_delete(*, actor, user_id: int, reason: str = ""):
        if actor.id == user_id:
            raise ValidationError({"user": "You cannot delete your own account."})

        profile = UserService._get_profile_locked(user_id)
        UserService._assert_can_manage(actor, profile.role)
        if profile.is_deleted:
            raise ValidationError({"user": "User is already deleted."})

        user = profile.user
        stamp = int(timezone.now().timestamp())
        prefix = f"deleted_{stamp}_"
        if user.email:
            user.email = f"{prefix}{user.email}"
        user.username = f"{prefix}{user.username}"[:150]
        user.is_active = False
        user.save(update_fields=["email", "username", "is_active"])

        profile.is_deleted = True
        profile.deleted_at = timezone.now()
        profile.deleted_by = actor
        profile.deletion_reason = reason or ""
        profile.status = UserStatus.DELETED
        profile.save(
            update_fields=["is_deleted", "deleted_at", "deleted_by", "deletion_reason", "status", "updated_at"]
        )

        AuditService.log(
            event_code="user.deleted",
            entity_type="UserProfile",
            entity_id=profile.id,
            actor_user_id=actor.id,
            metadata={"reason": reason},
        )
        logger.info("user soft-deleted id=%s by=%s", user_id, actor.id)
        return user

    @staticmethod
    @transaction.atomic
    def restore(*, actor, user_id: int):
        profile = UserService._get_profile_locked(user_id)
        UserService._assert_can_manage(actor, profile.role)
        if not profile.is_deleted:
            raise ValidationError({"user": "User is not deleted."})

        user = profile.user
        original_email = _DELETED_PREFIX.sub("", user.email or "")
        original_username = _DELETED_PREFIX.sub("", user.username)

        if UserService._email_taken(original_email, exclude_user_id=user.id):
            raise ValidationError({"email": "Another active user already uses this email."})
        if User.objects.filter(username__iexact=original_username).exclude(id=user.id).exists():
            raise ValidationError({"username": "Another user already uses this username."})

        user.email = original_email
        user.username = original_username
        user.is_active = True
        user.save(update_fields=["email", "username", "is_active"])

        profile.is_deleted = False
        profile.deleted_at = None
        profile.deleted_by = None
        profile.deletion_reason = ""
        profile.status = UserStatus.ACTIVE
        profile.save(
            update_fields=["is_deleted", "deleted_at", "deleted_by", "deletion_reason", "status", "updated_at"]
        )

        AuditService.log(
            event_code="user.restored",
            entity_type="UserProfile",
            entity_id=profile.id,
            actor_user_id=actor.id,
        )
        return user

    # -------------------------
    # Email verification / passwords
    # -------------------------
    @staticmethod
    @transaction.atomic
    def verify_email(*, token: str):
        profile = (
            UserProfile.objects.select_for_update()
            .select_related("user")
            .filter(email_verification_token=token)
            .exclude(email_verification_token="")
            .first()
        )
        if (
            profile is None
            or profile.email_verification_expires is None
            or profile.email_verification_expires < timezone.now()
        ):
            raise ValidationError({"token": "Invalid or expired verification token."})

        profile.email_verified = True
        profile.email_verification_token = ""
        profile.email_verification_expires = None
        profile.save(
            update_fields=["email_verified", "email_verification_token", "email_verification_expires", "updated_at"]
        )
        return profile.user

    @staticmethod
    @transaction.atomic
    def request_password_reset(*, email: str) -> str | None:
        """
        Returns the token (for callers that deliver it) or None when no
        active user matches. The API never reveals which.
        """
        profile = (
            UserProfile.objects.select_for_update()
            .select_related("user")
            .filter(user__email__iexact=email, is_deleted=False, user__is_active=True)
            .first()
        )
        if profile is None:
            logger.info("password reset requested for unknown email")
            return None

        profile.password_reset_token = _new_token()
        profile.password_reset_expires = timezone.now() + timedelta(hours=1)
        profile.save(update_fields=["password_reset_token", "password_reset_expires", "updated_at"])

        send_mail(
            subject="Password reset",
            message=f"Use this token to reset your password within 1 hour: {profile.password_reset_token}",
            from_email=settings.DEFAULT_FROM_EMAIL,
            recipient_list=[profile.user.email],
        )
        return profile.password_reset_token

    @staticmethod
    @transaction.atomic
    def reset_password(*, token: str, new_password: str):
        profile = (
            UserProfile.objects.select_for_update()
            .select_related("user")
            .filter(password_reset_token=token)
            .exclude(password_reset_token="")
            .first()
        )
        if profile is None or profile.password_reset_expires is None or profile.password_reset_expires < timezone.now():
            raise ValidationError({"token": "Invalid or expired reset token."})

        user = profile.user
        _validate_password_or_400(new_password, user=user)
        user.set_password(new_password)
        user.save(update_fields=["password"])

        profile.password_reset_token = ""
        profile.password_reset_expires = None
        profile.failed_login_attempts = 0
        profile.locked_until = None
        profile.save(
            update_fields=[
                "password_reset_token",
                "password_reset_expires",
                "failed_login_attempts",
                "locked_until",
                "updated_at",
            ]
        )

        AuditService.log(
            event_code="user.password_reset",
            entity_type="UserProfile",
            entity_id=profile.id,
            actor_user_id=user.id,
        )
        return user

    @staticmethod
    @transaction.atomic
    def change_password(*, user, old_password: str, new_password: str):
        if not user.check_password(old_password):
            raise ValidationError({"old_password": "Current password is incorrect."})
        if old_password == new_password:
            raise ValidationError({"new_password": "New password must differ from the current one."})

        _validate_password_or_400(new_password, user=user)
        user.set_password(new_password)
        user.save(update_fields=["password"])

        AuditService.log(
            event_code="user.password_changed",
            entity_type="UserProfile",
            entity_id=user.profile.id,
            actor_user_id=user.id,
        )
        return user

    # -------------------------
    # Stats
    # -------------------------
    @staticmethod
    def user_stats() -> dict:
        profiles = UserProfile.objects.all()

        by_role = {role: 0 for role in UserRole.values}
        for row in profiles.filter(is_deleted=False).values("role").annotate(n=Count("id")):
            by_role[row["role"]] = row["n"]

        total = profiles.count()
        deleted = profiles.filter(is_deleted=True).count()
        active = profiles.filter(is_deleted=False, status=UserStatus.ACTIVE).count()
        verified = profiles.filter(email_verified=True).count()
        rate = round(verified * 100 / total, 2) if total else 0.0

        return {
            "by_role": by_role,
            "summary": {
                "total": total,
                "deleted": deleted,
                "active": active,
                "verified": verified,
                "verification_rate": rate,
            },
        }


class AuthService:
    """
    Login bookkeeping: lockout after repeated failures.
    """

    @staticmethod
    def _max_attempts() -> int:
        return int(getattr(settings, "HMS_LOGIN_MAX_ATTEMPTS", 5))

    @staticmethod
    def _lock_duration() -> timedelta:
        return timedelta(hours=float(getattr(settings, "HMS_LOGIN_LOCK_HOURS", 2)))

    @staticmethod
    def profile_for_login(username: str) -> UserProfile | None:
        if not username:
            return None
        return UserProfile.objects.select_related("user").filter(user__username=username).first()

    @staticmethod
    def ensure_can_login(profile: UserProfile | None) -> None:
        if profile is not None and profile.is_locked:
            raise AccountLocked()

    @staticmethod
    @transaction.atomic
    def record_failed_login(*, profile_id: UUID) -> UserProfile:
        profile = UserProfile.objects.select_for_update().get(id=profile_id)
        if profile.locked_until and not profile.is_locked:
            # lock ran out: start a fresh window
            profile.failed_login_attempts = 0
            profile.locked_until = None
            if profile.status == UserStatus.LOCKED:
                profile.status = UserStatus.ACTIVE
        profile.failed_login_attempts += 1

        if profile.failed_login_attempts >= AuthService._max_attempts():
            profile.locked_until = timezone.now() + AuthService._lock_duration()
            profile.status = UserStatus.LOCKED
            logger.warning("account locked user_id=%s after %s failures", profile.user_id, profile.failed_login_attempts)

            AuditService.log(
                event_code="user.locked",
                entity_type="UserProfile",
                entity_id=profile.id,
                actor_user_id=None,
                metadata={"failed_login_attempts": profile.failed_login_attempts},
            )

        profile.save(update_fields=["failed_login_attempts", "locked_until", "status", "updated_at"])
        return profile

    @staticmethod
    @transaction.atomic
    def record_successful_login(*, user) -> None:
        profile = UserProfile.objects.select_for_update().filter(user_id=user.id).first()
        if profile is None:
            return

        fields = []
        if profile.failed_login_attempts:
            profile.failed_login_attempts = 0
            fields.append("failed_login_attempts")
        if profile.status == UserStatus.LOCKED:
            profile.status = UserStatus.ACTIVE
            profile.locked_until = None
            fields += ["status", "locked_until"]

        if fields:
            profile.save(update_fields=fields + ["updated_at"])


class DepartmentService:
    @staticmethod
    @transaction.atomic
    def create_department(*, actor_user_id: int | None, code: str, name: str, description: str = "", head_id=None):
        if Department.objects.filter(code=code).exists():
            raise ValidationError({"code": "Department code already exists."})
        dept = Department.objects.create(code=code, name=name, description=description or "", head_id=head_id)

        AuditService.log(
            event_code="department.created",
            entity_type="Department",
            entity_id=dept.id,
            actor_user_id=actor_user_id,
            metadata={"code": code},
        )
        return dept

    @staticmethod
    @transaction.atomic
    def update_department(*, actor_user_id: int | None, department_id: UUID, data: dict):
        dept = Department.objects.select_for_update().get(id=department_id)
        allowed = {"name", "description", "head_id", "is_active"}
        updates = {k: v for k, v in (data or {}).items() if k in allowed}
        for k, v in updates.items():
            setattr(dept, k, v)
        dept.save()

        AuditService.log(
            event_code="department.updated",
            entity_type="Department",
            entity_id=dept.id,
            actor_user_id=actor_user_id,
            metadata={"updated_fields": sorted(updates.keys())},
        )
        return dept
