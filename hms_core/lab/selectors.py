# backend/hms_core/lab/selectors.py
from __future__ import annotations

from uuid import UUID

from django.db.models import Case, IntegerField, Prefetch, QuerySet, Value, When

from hms_core.lab.models import (
    OPEN_TEST_STATUSES,
    RESULTED_TEST_STATUSES,
    LabOrder,
    LabOrderStatus,
    LabPriority,
    LabTest,
)

_PRIORITY_RANK = Case(
    When(order__priority=LabPriority.STAT, then=Value(0)),
    When(order__priority=LabPriority.URGENT, then=Value(1)),
    default=Value(2),
    output_field=IntegerField(),
)


def _orders() -> QuerySet[LabOrder]:
    return (
        LabOrder.objects.select_related("patient", "ordered_by")
        .prefetch_related(Prefetch("tests", queryset=LabTest.objects.order_by("created_at")))
        .order_by("-created_at")
    )


def _tests() -> QuerySet[LabTest]:
    return LabTest.objects.select_related("order", "order__patient")


def get_lab_order(*, order_id: UUID) -> LabOrder:
    return _orders().get(id=order_id)


def get_lab_test(*, test_id: UUID) -> LabTest:
    return _tests().prefetch_related("versions").get(id=test_id)


def lab_orders_filtered(
    *,
    patient_id: UUID | None = None,
    status: str | None = None,
    priority: str | None = None,
    ordered_by_id: int | None = None,
    patient_user_id: int | None = None,
) -> QuerySet[LabOrder]:
    qs = _orders()
    if patient_user_id is not None:
        qs = qs.filter(patient__user_id=patient_user_id)
    if patient_id:
        qs = qs.filter(patient_id=patient_id)
    if status:
        qs = qs.filter(status=status)
    if priority:
        qs = qs.filter(priority=priority)
    if ordered_by_id:
        qs = qs.filter(ordered_by_id=ordered_by_id)
    return qs


def pending_tests(*, patient_user_id: int | None = None) -> QuerySet[LabTest]:
    """
    Work queue for the lab: open tests on live orders, STAT first, then oldest.
    """
    qs = _tests().filter(status__in=OPEN_TEST_STATUSES).exclude(order__status=LabOrderStatus.CANCELLED)
    if patient_user_id is not None:
        qs = qs.filter(order__patient__user_id=patient_user_id)
    return qs.annotate(priority_rank=_PRIORITY_RANK).order_by("priority_rank", "created_at")


def completed_tests(*, patient_user_id: int | None = None) -> QuerySet[LabTest]:
    qs = _tests().filter(status__in=RESULTED_TEST_STATUSES)
    if patient_user_id is not None:
        qs = qs.filter(order__patient__user_id=patient_user_id)
    return qs.order_by("-resulted_at")


def patient_results(*, patient_id: UUID) -> QuerySet[LabTest]:
    return _tests().filter(order__patient_id=patient_id, status__in=RESULTED_TEST_STATUSES).order_by("-resulted_at")
