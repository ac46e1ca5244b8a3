# backend/hms_core/patients/selectors.py
from __future__ import annotations

from uuid import UUID

from django.db.models import Q, QuerySet

from hms_core.patients.models import Patient


def get_patient(*, patient_id: UUID) -> Patient:
    return Patient.objects.get(id=patient_id)


def patient_for_user(user) -> Patient | None:
    if not user or not getattr(user, "is_authenticated", False):
        return None
    return Patient.objects.filter(user_id=user.id).first()


def search_patients(*, q: str | None = None, include_inactive: bool = False) -> QuerySet[Patient]:
    qs = Patient.objects.all()
    if not include_inactive:
        qs = qs.filter(is_active=True)

    qv = (q or "").strip()
    if qv:
        qs = qs.filter(
            Q(full_name__icontains=qv)
            | Q(patient_code__icontains=qv)
            | Q(phone__icontains=qv)
            | Q(email__icontains=qv)
        )

    return qs.order_by("-created_at")
