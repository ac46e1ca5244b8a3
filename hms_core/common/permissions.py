# backend/hms_core/common/permissions.py

from __future__ import annotations

from typing import Dict, FrozenSet, Iterable, Set

from rest_framework.exceptions import PermissionDenied
from rest_framework.permissions import BasePermission, SAFE_METHODS

# Role names (also used as Django auth Group names)
ROLE_SUPER_ADMIN = "SUPER_ADMIN"
ROLE_HOSPITAL_ADMIN = "HOSPITAL_ADMIN"
ROLE_DEPARTMENT_HEAD = "DEPARTMENT_HEAD"
ROLE_DOCTOR = "DOCTOR"
ROLE_NURSE = "NURSE"
ROLE_PHARMACIST = "PHARMACIST"
ROLE_LAB_TECHNICIAN = "LAB_TECHNICIAN"
ROLE_RECEPTIONIST = "RECEPTIONIST"
ROLE_BILLING_STAFF = "BILLING_STAFF"
ROLE_PATIENT = "PATIENT"

ALL_ROLES = (
    ROLE_SUPER_ADMIN,
    ROLE_HOSPITAL_ADMIN,
    ROLE_DEPARTMENT_HEAD,
    ROLE_DOCTOR,
    ROLE_NURSE,
    ROLE_PHARMACIST,
    ROLE_LAB_TECHNICIAN,
    ROLE_RECEPTIONIST,
    ROLE_BILLING_STAFF,
    ROLE_PATIENT,
)

STAFF_ROLES = frozenset(ALL_ROLES) - {ROLE_PATIENT}

# -----------------------------
# Permission codes
# -----------------------------
USER_VIEW = "USER.VIEW"
USER_CREATE = "USER.CREATE"
USER_UPDATE = "USER.UPDATE"
USER_DELETE = "USER.DELETE"
USER_DISABLE = "USER.DISABLE"
USER_ASSIGN_ROLE = "USER.ASSIGN_ROLE"
USER_VIEW_STATS = "USER.VIEW_STATS"

PATIENT_VIEW = "PATIENT.VIEW"
PATIENT_CREATE = "PATIENT.CREATE"
PATIENT_UPDATE = "PATIENT.UPDATE"

APPOINTMENT_VIEW = "APPOINTMENT.VIEW"
APPOINTMENT_CREATE = "APPOINTMENT.CREATE"
APPOINTMENT_UPDATE = "APPOINTMENT.UPDATE"
APPOINTMENT_CANCEL = "APPOINTMENT.CANCEL"
APPOINTMENT_VIEW_SCHEDULE = "APPOINTMENT.VIEW_SCHEDULE"
APPOINTMENT_MANAGE_SCHEDULE = "APPOINTMENT.MANAGE_SCHEDULE"

PRESCRIPTION_VIEW = "PRESCRIPTION.VIEW"
PRESCRIPTION_CREATE = "PRESCRIPTION.CREATE"
PRESCRIPTION_UPDATE = "PRESCRIPTION.UPDATE"
PRESCRIPTION_CANCEL = "PRESCRIPTION.CANCEL"
PRESCRIPTION_DISPENSE = "PRESCRIPTION.DISPENSE"

MEDICATION_VIEW = "MEDICATION.VIEW"
MEDICATION_MANAGE = "MEDICATION.MANAGE"

BILL_VIEW = "BILL.VIEW"
BILL_CREATE = "BILL.CREATE"
BILL_UPDATE = "BILL.UPDATE"
BILL_PROCESS_PAYMENT = "BILL.PROCESS_PAYMENT"
BILL_VOID = "BILL.VOID"
BILL_VIEW_REVENUE = "BILL.VIEW_REVENUE"

LAB_VIEW_ORDERS = "LAB.VIEW_ORDERS"
LAB_CREATE_ORDERS = "LAB.CREATE_ORDERS"
LAB_UPDATE_ORDERS = "LAB.UPDATE_ORDERS"
LAB_VIEW_RESULTS = "LAB.VIEW_RESULTS"
LAB_CREATE_RESULTS = "LAB.CREATE_RESULTS"
LAB_UPDATE_RESULTS = "LAB.UPDATE_RESULTS"
LAB_APPROVE_RESULTS = "LAB.APPROVE_RESULTS"

MEDICAL_VIEW_RECORDS = "MEDICAL.VIEW_RECORDS"
MEDICAL_CREATE_RECORDS = "MEDICAL.CREATE_RECORDS"
MEDICAL_UPDATE_RECORDS = "MEDICAL.UPDATE_RECORDS"

REPORT_VIEW = "REPORT.VIEW"
AUDIT_VIEW = "AUDIT.VIEW"
SYSTEM_CONFIG = "SYSTEM.CONFIG"

ALL_PERMISSIONS = frozenset(
    v for k, v in dict(globals()).items()
    if k.isupper() and isinstance(v, str) and "." in v
)

_CLINICAL_READ = {
    PATIENT_VIEW,
    APPOINTMENT_VIEW,
    APPOINTMENT_VIEW_SCHEDULE,
    PRESCRIPTION_VIEW,
    MEDICATION_VIEW,
    LAB_VIEW_ORDERS,
    LAB_VIEW_RESULTS,
    MEDICAL_VIEW_RECORDS,
}

ROLE_PERMISSIONS: Dict[str, FrozenSet[str]] = {
    ROLE_SUPER_ADMIN: ALL_PERMISSIONS,
    ROLE_HOSPITAL_ADMIN: ALL_PERMISSIONS - {SYSTEM_CONFIG},
    ROLE_DEPARTMENT_HEAD: frozenset(
        _CLINICAL_READ
        | {
            USER_VIEW,
            USER_CREATE,
            USER_UPDATE,
            USER_DISABLE,
            USER_VIEW_STATS,
            PATIENT_CREATE,
            PATIENT_UPDATE,
            APPOINTMENT_CREATE,
            APPOINTMENT_UPDATE,
            APPOINTMENT_CANCEL,
            APPOINTMENT_MANAGE_SCHEDULE,
            PRESCRIPTION_CREATE,
            PRESCRIPTION_UPDATE,
            PRESCRIPTION_CANCEL,
            LAB_CREATE_ORDERS,
            LAB_UPDATE_ORDERS,
            LAB_APPROVE_RESULTS,
            MEDICAL_CREATE_RECORDS,
            MEDICAL_UPDATE_RECORDS,
            BILL_VIEW,
            BILL_VIEW_REVENUE,
            REPORT_VIEW,
        }
    ),
    ROLE_DOCTOR: frozenset(
        _CLINICAL_READ
        | {
            PATIENT_CREATE,
            PATIENT_UPDATE,
            APPOINTMENT_CREATE,
            APPOINTMENT_UPDATE,
            APPOINTMENT_CANCEL,
            APPOINTMENT_MANAGE_SCHEDULE,
            PRESCRIPTION_CREATE,
            PRESCRIPTION_UPDATE,
            PRESCRIPTION_CANCEL,
            LAB_CREATE_ORDERS,
            LAB_UPDATE_ORDERS,
            LAB_APPROVE_RESULTS,
            MEDICAL_CREATE_RECORDS,
            MEDICAL_UPDATE_RECORDS,
            BILL_VIEW,
        }
    ),
    ROLE_NURSE: frozenset(
        _CLINICAL_READ
        | {
            PATIENT_CREATE,
            PATIENT_UPDATE,
            APPOINTMENT_CREATE,
            APPOINTMENT_UPDATE,
            LAB_CREATE_RESULTS,
            MEDICAL_UPDATE_RECORDS,
        }
    ),
    ROLE_PHARMACIST: frozenset(
        {
            PATIENT_VIEW,
            PRESCRIPTION_VIEW,
            PRESCRIPTION_DISPENSE,
            MEDICATION_VIEW,
            MEDICATION_MANAGE,
            BILL_VIEW,
            BILL_CREATE,
        }
    ),
    ROLE_LAB_TECHNICIAN: frozenset(
        {
            PATIENT_VIEW,
            LAB_VIEW_ORDERS,
            LAB_UPDATE_ORDERS,
            LAB_VIEW_RESULTS,
            LAB_CREATE_RESULTS,
            LAB_UPDATE_RESULTS,
        }
    ),
    ROLE_RECEPTIONIST: frozenset(
        {
            PATIENT_VIEW,
            PATIENT_CREATE,
            PATIENT_UPDATE,
            APPOINTMENT_VIEW,
            APPOINTMENT_CREATE,
            APPOINTMENT_UPDATE,
            APPOINTMENT_CANCEL,
            APPOINTMENT_VIEW_SCHEDULE,
            BILL_VIEW,
        }
    ),
    ROLE_BILLING_STAFF: frozenset(
        {
            PATIENT_VIEW,
            PRESCRIPTION_VIEW,
            MEDICATION_VIEW,
            BILL_VIEW,
            BILL_CREATE,
            BILL_UPDATE,
            BILL_PROCESS_PAYMENT,
            BILL_VOID,
            BILL_VIEW_REVENUE,
            REPORT_VIEW,
        }
    ),
    # Patients only ever see their own rows (enforced per view).
    ROLE_PATIENT: frozenset(
        {
            APPOINTMENT_VIEW,
            APPOINTMENT_CREATE,
            APPOINTMENT_CANCEL,
            PRESCRIPTION_VIEW,
            BILL_VIEW,
            LAB_VIEW_ORDERS,
            LAB_VIEW_RESULTS,
            MEDICAL_VIEW_RECORDS,
        }
    ),
}

ROLE_LEVELS: Dict[str, int] = {
    ROLE_SUPER_ADMIN: 100,
    ROLE_HOSPITAL_ADMIN: 90,
    ROLE_DEPARTMENT_HEAD: 80,
    ROLE_DOCTOR: 70,
    ROLE_NURSE: 60,
    ROLE_PHARMACIST: 60,
    ROLE_LAB_TECHNICIAN: 60,
    ROLE_RECEPTIONIST: 50,
    ROLE_BILLING_STAFF: 50,
    ROLE_PATIENT: 10,
}


def user_roles(user) -> Set[str]:
    """
    Resolve roles from:
    1) superuser flag (treated as SUPER_ADMIN)
    2) Django groups named after a role
    3) the accounts profile role

    Unknown group names are ignored.
    """
    roles: Set[str] = set()

    if not user or not getattr(user, "is_authenticated", False):
        return roles

    if getattr(user, "is_superuser", False):
        roles.add(ROLE_SUPER_ADMIN)
        return roles

    if hasattr(user, "groups"):
        roles.update(n for n in user.groups.values_list("name", flat=True) if n in ROLE_LEVELS)

    profile = getattr(user, "profile", None)
    if profile is not None and profile.role:
        roles.add(str(profile.role))

    return roles


def permissions_for_roles(roles: Iterable[str]) -> Set[str]:
    perms: Set[str] = set()
    for r in roles:
        perms |= ROLE_PERMISSIONS.get(r, frozenset())
    return perms


def user_permissions(user) -> Set[str]:
    return permissions_for_roles(user_roles(user))


def has_permission(user, code: str) -> bool:
    return code in user_permissions(user)


def is_patient_only(user) -> bool:
    """
    True when the caller's only role is PATIENT (ownership rules apply).
    """
    return user_roles(user) == {ROLE_PATIENT}


def ensure_own_patient(user, patient) -> None:
    """
    Patient-only callers may only touch rows belonging to their own Patient.
    Staff callers pass through (their access is decided by role permissions).
    """
    if is_patient_only(user) and getattr(patient, "user_id", None) != user.id:
        raise PermissionDenied("You can only access your own records.")


def highest_level(roles: Iterable[str]) -> int:
    return max((ROLE_LEVELS.get(r, 0) for r in roles), default=0)


def can_manage_role(actor_roles: Iterable[str], target_role: str) -> bool:
    """
    SUPER_ADMIN may create/assign any role except SUPER_ADMIN.
    Everyone else may only act on roles strictly below their highest level.
    """
    actor_roles = set(actor_roles)
    if target_role not in ROLE_LEVELS:
        return False
    if ROLE_SUPER_ADMIN in actor_roles:
        return target_role != ROLE_SUPER_ADMIN
    return ROLE_LEVELS[target_role] < highest_level(actor_roles)


class BaseRolePermission(BasePermission):
    """
    Base permission class for role-based access control.

    Key behavior:
    - Requires authentication.
    - SUPER_ADMIN bypass.
    - Uses required_permission_per_action: action -> permission code.
    - If action is unknown and request is SAFE, fall back to list/retrieve.
    """
    message = "You do not have permission to perform this action."

    # Override in subclasses
    required_permission_per_action: Dict[str, str] = {}

    def _infer_action(self, request, view) -> str | None:
        action = getattr(view, "action", None)
        if action:
            return action

        # fallback inference when action isn't set (APIView)
        kwargs = getattr(view, "kwargs", {}) or {}
        is_detail = "pk" in kwargs or "id" in kwargs

        method = request.method.upper()
        if method in ("GET", "HEAD", "OPTIONS"):
            return "retrieve" if is_detail else "list"
        if method == "POST":
            return "create"
        if method == "PUT":
            return "update"
        if method == "PATCH":
            return "partial_update"
        if method == "DELETE":
            return "destroy"
        return None

    def has_permission(self, request, view) -> bool:
        user = request.user
        if not user or not getattr(user, "is_authenticated", False):
            return False

        roles = user_roles(user)

        if ROLE_SUPER_ADMIN in roles:
            return True

        action = self._infer_action(request, view)
        required = self.required_permission_per_action.get(action)

        if required is None and request.method in SAFE_METHODS:
            kwargs = getattr(view, "kwargs", {}) or {}
            is_detail = "pk" in kwargs or "id" in kwargs
            read_action = "retrieve" if is_detail else "list"
            required = self.required_permission_per_action.get(read_action)

        if required is not None:
            return required in permissions_for_roles(roles)

        # Unknown action => deny by default
        return False

    def has_object_permission(self, request, view, obj) -> bool:
        return self.has_permission(request, view)


# Specific permission classes for each module

class UserPermission(BaseRolePermission):
    """Permissions for user management"""
    required_permission_per_action = {
        "list": USER_VIEW,
        "retrieve": USER_VIEW,
        "create": USER_CREATE,
        "partial_update": USER_UPDATE,
        "update": USER_UPDATE,
        "destroy": USER_DELETE,
        "disable": USER_DISABLE,
        "enable": USER_DISABLE,
        "assign_role": USER_ASSIGN_ROLE,
        "restore": USER_DELETE,
        "deleted": USER_DELETE,
        "stats": USER_VIEW_STATS,
        "permissions": USER_VIEW,
        "check_permission": USER_VIEW,
        "by_email": USER_VIEW,
    }


class DepartmentPermission(BaseRolePermission):
    """Permissions for departments"""
    required_permission_per_action = {
        "list": USER_VIEW,
        "retrieve": USER_VIEW,
        # creating departments is admin-only (USER.DELETE is held by admins alone)
        "create": USER_DELETE,
        "partial_update": USER_UPDATE,
        "update": USER_UPDATE,
    }


class PatientPermission(BaseRolePermission):
    """Permissions for Patient management"""
    required_permission_per_action = {
        "list": PATIENT_VIEW,
        "retrieve": PATIENT_VIEW,
        "create": PATIENT_CREATE,
        "update": PATIENT_UPDATE,
        "partial_update": PATIENT_UPDATE,
        "destroy": PATIENT_UPDATE,
    }


class AppointmentPermission(BaseRolePermission):
    """Permissions for Appointment management"""
    required_permission_per_action = {
        "list": APPOINTMENT_VIEW,
        "retrieve": APPOINTMENT_VIEW,
        "create": APPOINTMENT_CREATE,
        "update": APPOINTMENT_UPDATE,
        "partial_update": APPOINTMENT_UPDATE,
        "change_status": APPOINTMENT_UPDATE,
        "cancel": APPOINTMENT_CANCEL,
        "reschedule": APPOINTMENT_UPDATE,
        "remind": APPOINTMENT_UPDATE,
        "send_scheduled_reminders": SYSTEM_CONFIG,
        "stats": REPORT_VIEW,
        "by_doctor": APPOINTMENT_VIEW_SCHEDULE,
        "by_patient": APPOINTMENT_VIEW,
        "by_department": APPOINTMENT_VIEW_SCHEDULE,
    }


class SchedulePermission(BaseRolePermission):
    """Permissions for doctor working schedules"""
    required_permission_per_action = {
        "list": APPOINTMENT_VIEW_SCHEDULE,
        "retrieve": APPOINTMENT_VIEW_SCHEDULE,
        "create": APPOINTMENT_MANAGE_SCHEDULE,
        "update": APPOINTMENT_MANAGE_SCHEDULE,
        "partial_update": APPOINTMENT_MANAGE_SCHEDULE,
        "available_slots": APPOINTMENT_VIEW_SCHEDULE,
    }


class PrescriptionPermission(BaseRolePermission):
    """Permissions for prescriptions and pharmacy dispensing"""
    required_permission_per_action = {
        "list": PRESCRIPTION_VIEW,
        "retrieve": PRESCRIPTION_VIEW,
        "create": PRESCRIPTION_CREATE,
        "update": PRESCRIPTION_UPDATE,
        "partial_update": PRESCRIPTION_UPDATE,
        "dispense": PRESCRIPTION_DISPENSE,
        "dispense_status": PRESCRIPTION_DISPENSE,
        "cancel": PRESCRIPTION_CANCEL,
        "interactions": PRESCRIPTION_VIEW,
        "pharmacy_queue": PRESCRIPTION_DISPENSE,
        "history": PRESCRIPTION_VIEW,
    }


class MedicationPermission(BaseRolePermission):
    """Permissions for medication inventory"""
    required_permission_per_action = {
        "list": MEDICATION_VIEW,
        "retrieve": MEDICATION_VIEW,
        "create": MEDICATION_MANAGE,
        "update": MEDICATION_MANAGE,
        "partial_update": MEDICATION_MANAGE,
        "destroy": MEDICATION_MANAGE,
        "stock": MEDICATION_VIEW,
        "adjust_stock": MEDICATION_MANAGE,
        "coverage": MEDICATION_VIEW,
        "low_stock": MEDICATION_VIEW,
    }


class BillingPermission(BaseRolePermission):
    """Permissions for Billing management"""
    required_permission_per_action = {
        "list": BILL_VIEW,
        "retrieve": BILL_VIEW,
        "create": BILL_CREATE,
        "update": BILL_UPDATE,
        "partial_update": BILL_UPDATE,
        "from_prescription": BILL_CREATE,
        "void": BILL_VOID,
        "by_patient": BILL_VIEW,
        "payment_history": BILL_VIEW,
        "revenue_stats": BILL_VIEW_REVENUE,
    }


class PaymentPermission(BaseRolePermission):
    """Permissions for bill payments (APIView: GET=list, POST=create)"""
    required_permission_per_action = {
        "list": BILL_VIEW,
        "create": BILL_PROCESS_PAYMENT,
    }


class LabPermission(BaseRolePermission):
    """Permissions for Lab management"""
    required_permission_per_action = {
        "list": LAB_VIEW_ORDERS,
        "retrieve": LAB_VIEW_ORDERS,
        "create": LAB_CREATE_ORDERS,
        "update": LAB_UPDATE_ORDERS,
        "partial_update": LAB_UPDATE_ORDERS,
        "cancel": LAB_UPDATE_ORDERS,
        "collect_sample": LAB_CREATE_RESULTS,
        "start": LAB_CREATE_RESULTS,
        "result": LAB_CREATE_RESULTS,
        "update_result": LAB_UPDATE_RESULTS,
        "approve": LAB_APPROVE_RESULTS,
        "pending": LAB_VIEW_RESULTS,
        "completed": LAB_VIEW_RESULTS,
        "by_patient": LAB_VIEW_RESULTS,
    }


class MedicalRecordPermission(BaseRolePermission):
    """Permissions for medical records and visits"""
    required_permission_per_action = {
        "list": MEDICAL_VIEW_RECORDS,
        "retrieve": MEDICAL_VIEW_RECORDS,
        "create": MEDICAL_CREATE_RECORDS,
        "update": MEDICAL_UPDATE_RECORDS,
        "partial_update": MEDICAL_UPDATE_RECORDS,
        "visits": MEDICAL_VIEW_RECORDS,
        "add_visit": MEDICAL_CREATE_RECORDS,
        "surgical_history": MEDICAL_UPDATE_RECORDS,
        "complete": MEDICAL_UPDATE_RECORDS,
        "cancel": MEDICAL_UPDATE_RECORDS,
    }


class AuditPermission(BaseRolePermission):
    """Permissions for Audit log access"""
    required_permission_per_action = {
        "list": AUDIT_VIEW,
        "retrieve": AUDIT_VIEW,
        "history": AUDIT_VIEW,
    }
