# backend/hms_core/common/api/errors.py

from __future__ import annotations

from rest_framework import status
from rest_framework.exceptions import APIException

# Only rest_framework.exceptions here: the auth class imports this module,
# and DRF resolves that class while rest_framework.views is loading.


class ConflictError(APIException):
    """
    409 Conflict that still flows through the global exception handler.
    Use when current state blocks an action.
    """
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Conflict."
    default_code = "conflict"

    def __init__(self, detail=None, code=None):
        super().__init__(detail=detail or self.default_detail, code=code or self.default_code)


class SchedulingConflict(ConflictError):
    default_detail = "The doctor already has an appointment in this time slot."
    default_code = "scheduling_conflict"


class AccountLocked(APIException):
    status_code = status.HTTP_423_LOCKED
    default_detail = "Account is temporarily locked due to repeated failed logins."
    default_code = "account_locked"


class BusinessRuleError(APIException):
    """
    A rejected business action carrying a stable upper-case code
    (e.g. PAYMENT_AMOUNT_EXCEEDED) that clients can switch on.
    """
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "The request violates a business rule."
    default_code = "business_rule"

    def __init__(self, error_code: str, detail=None, *, status_code: int | None = None):
        super().__init__(detail=detail or self.default_detail, code=error_code)
        self.error_code = error_code
        if status_code is not None:
            self.status_code = status_code
