# backend/hms_core/accounts/models.py
from __future__ import annotations

from django.conf import settings
from django.db import models
from django.utils import timezone

from hms_core.common import permissions as perms
from hms_core.common.models import UUIDModel


class UserRole(models.TextChoices):
    SUPER_ADMIN = perms.ROLE_SUPER_ADMIN, "Super Admin"
    HOSPITAL_ADMIN = perms.ROLE_HOSPITAL_ADMIN, "Hospital Admin"
    DEPARTMENT_HEAD = perms.ROLE_DEPARTMENT_HEAD, "Department Head"
    DOCTOR = perms.ROLE_DOCTOR, "Doctor"
    NURSE = perms.ROLE_NURSE, "Nurse"
    PHARMACIST = perms.ROLE_PHARMACIST, "Pharmacist"
    LAB_TECHNICIAN = perms.ROLE_LAB_TECHNICIAN, "Lab Technician"
    RECEPTIONIST = perms.ROLE_RECEPTIONIST, "Receptionist"
    BILLING_STAFF = perms.ROLE_BILLING_STAFF, "Billing Staff"
    PATIENT = perms.ROLE_PATIENT, "Patient"


class UserStatus(models.TextChoices):
    ACTIVE = "ACTIVE", "Active"
    INACTIVE = "INACTIVE", "Inactive"
    SUSPENDED = "SUSPENDED", "Suspended"
    PENDING_APPROVAL = "PENDING_APPROVAL", "Pending Approval"
    LOCKED = "LOCKED", "Locked"
    DELETED = "DELETED", "Deleted"


class Department(UUIDModel):
    code = models.SlugField(max_length=32, unique=True)
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    head = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="headed_departments",
    )
    is_active = models.BooleanField(default=True)

    class Meta:
        db_table = "accounts_department"
        ordering = ["name"]

    def __str__(self) -> str:
        return f"{self.name} ({self.code})"


class UserProfile(UUIDModel):
    """
    Hospital-side identity for a Django auth user: role, lifecycle status,
    login lockout, verification/reset tokens and soft-delete markers.
    """
    user = models.OneToOneField(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="profile")

    role = models.CharField(max_length=32, choices=UserRole.choices, default=UserRole.PATIENT, db_index=True)
    status = models.CharField(max_length=32, choices=UserStatus.choices, default=UserStatus.ACTIVE, db_index=True)
    status_reason = models.CharField(max_length=255, blank=True)

    phone = models.CharField(max_length=32, blank=True)
    date_of_birth = models.DateField(null=True, blank=True)
    gender = models.CharField(max_length=16, blank=True)

    # staff details
    department = models.ForeignKey(
        Department,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="members",
    )
    specialization = models.CharField(max_length=128, blank=True)
    license_number = models.CharField(max_length=64, blank=True)

    # login lockout
    failed_login_attempts = models.PositiveIntegerField(default=0)
    locked_until = models.DateTimeField(null=True, blank=True)

    # email verification / password reset
    email_verified = models.BooleanField(default=False)
    email_verification_token = models.CharField(max_length=64, blank=True, db_index=True)
    email_verification_expires = models.DateTimeField(null=True, blank=True)
    password_reset_token = models.CharField(max_length=64, blank=True, db_index=True)
    password_reset_expires = models.DateTimeField(null=True, blank=True)

    # soft delete
    is_deleted = models.BooleanField(default=False, db_index=True)
    deleted_at = models.DateTimeField(null=True, blank=True)
    deleted_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    deletion_reason = models.CharField(max_length=255, blank=True)

    class Meta:
        db_table = "accounts_user_profile"
        indexes = [
            models.Index(fields=["role", "status"]),
            models.Index(fields=["is_deleted", "created_at"]),
        ]

    def __str__(self) -> str:
        return f"{self.user} [{self.role}]"

    @property
    def is_locked(self) -> bool:
        return bool(self.locked_until and self.locked_until > timezone.now())
