# backend/hms_core/prescriptions/selectors.py
from __future__ import annotations

from uuid import UUID

from django.db.models import F, Prefetch, Q, QuerySet

from hms_core.prescriptions.models import (
    DispenseStatus,
    Medication,
    Prescription,
    PrescriptionItem,
    PrescriptionStatus,
)


def _base() -> QuerySet:
    return (
        Prescription.objects.select_related("patient", "doctor")
        .prefetch_related(Prefetch("items", queryset=PrescriptionItem.objects.select_related("medication")))
        .order_by("-created_at")
    )


def get_prescription(*, prescription_id: UUID) -> Prescription:
    return _base().get(id=prescription_id)


def prescriptions_filtered(
    *,
    patient_id: UUID | None = None,
    doctor_id: int | None = None,
    status: str | None = None,
    dispense_status: str | None = None,
    patient_user_id: int | None = None,
    search: str = "",
) -> QuerySet:
    qs = _base()
    if patient_user_id is not None:
        qs = qs.filter(patient__user_id=patient_user_id)
    if patient_id:
        qs = qs.filter(patient_id=patient_id)
    if doctor_id:
        qs = qs.filter(doctor_id=doctor_id)
    if status:
        qs = qs.filter(status=status)
    if dispense_status:
        qs = qs.filter(dispense_status=dispense_status)
    if search:
        qs = qs.filter(
            Q(prescription_code__icontains=search)
            | Q(diagnosis__icontains=search)
            | Q(patient__full_name__icontains=search)
        )
    return qs


def pharmacy_queue(*, dispense_status: str | None = None) -> QuerySet:
    """
    ACTIVE prescriptions still waiting on the pharmacy, oldest first.
    """
    qs = _base().filter(status=PrescriptionStatus.ACTIVE).exclude(dispense_status=DispenseStatus.DISPENSED)
    if dispense_status:
        qs = qs.filter(dispense_status=dispense_status)
    return qs.order_by("created_at")


def medications_search(*, q: str = "", category: str | None = None, include_inactive: bool = False) -> QuerySet:
    qs = Medication.objects.all().order_by("name")
    if not include_inactive:
        qs = qs.filter(is_active=True)
    if category:
        qs = qs.filter(category__iexact=category)
    if q:
        qs = qs.filter(Q(name__icontains=q) | Q(generic_name__icontains=q) | Q(code__icontains=q))
    return qs


def low_stock_medications() -> QuerySet:
    return Medication.objects.filter(is_active=True, stock_quantity__lte=F("reorder_level")).order_by(
        "stock_quantity", "name"
    )
