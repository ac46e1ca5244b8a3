# backend/hms_core/medical_records/selectors.py
from __future__ import annotations

from uuid import UUID

from django.db.models import Count, Max, Prefetch, Q, QuerySet

from hms_core.medical_records.models import Diagnosis, MedicalRecord, Visit


def _visits() -> QuerySet[Visit]:
    return (
        Visit.objects.select_related("record", "record__patient", "doctor")
        .prefetch_related(Prefetch("diagnoses", queryset=Diagnosis.objects.order_by("created_at")))
        .order_by("-visit_date")
    )


def record_for_patient(*, patient_id: UUID) -> MedicalRecord | None:
    return (
        MedicalRecord.objects.select_related("patient")
        .annotate(visit_count=Count("visits"), last_visit_date=Max("visits__visit_date"))
        .filter(patient_id=patient_id)
        .first()
    )


def visits_for_patient(*, patient_id: UUID, status: str | None = None) -> QuerySet[Visit]:
    qs = _visits().filter(record__patient_id=patient_id)
    if status:
        qs = qs.filter(status=status)
    return qs


def get_visit(*, visit_id: UUID) -> Visit:
    return _visits().get(id=visit_id)


def search_by_diagnosis(*, q: str, patient_user_id: int | None = None) -> QuerySet[Visit]:
    """
    Visits carrying a diagnosis whose code or description matches q.
    """
    qs = _visits().filter(Q(diagnoses__code__icontains=q) | Q(diagnoses__description__icontains=q))
    if patient_user_id is not None:
        qs = qs.filter(record__patient__user_id=patient_user_id)
    return qs.distinct()
