# backend/hms_core/billing/selectors.py
from __future__ import annotations

from datetime import datetime, time, timedelta
from decimal import Decimal
from uuid import UUID

from django.db.models import Avg, Count, Q, QuerySet, Sum
from django.utils import timezone
from rest_framework.exceptions import ValidationError

from hms_core.billing.models import Bill, BillStatus, Payment

REVENUE_PERIODS = ("day", "week", "month", "year")


def _base() -> QuerySet:
    return Bill.objects.select_related("patient").prefetch_related("items", "payments").order_by("-created_at")


def get_bill(*, bill_id: UUID) -> Bill:
    return _base().get(id=bill_id)


def bills_filtered(
    *,
    status: str | None = None,
    patient_id: UUID | None = None,
    date_from=None,
    date_to=None,
    patient_user_id: int | None = None,
    search: str = "",
) -> QuerySet:
    qs = _base()
    if patient_user_id is not None:
        qs = qs.filter(patient__user_id=patient_user_id)
    if status:
        qs = qs.filter(status=status)
    if patient_id:
        qs = qs.filter(patient_id=patient_id)
    if date_from:
        qs = qs.filter(created_at__date__gte=date_from)
    if date_to:
        qs = qs.filter(created_at__date__lte=date_to)
    if search:
        qs = qs.filter(Q(bill_number__icontains=search) | Q(patient__full_name__icontains=search))
    return qs


def payment_history(
    *,
    patient_id: UUID | None = None,
    method: str | None = None,
    patient_user_id: int | None = None,
) -> QuerySet:
    """
    Payments flattened across bills, newest first.
    """
    qs = Payment.objects.select_related("bill", "bill__patient").order_by("-received_at")
    if patient_user_id is not None:
        qs = qs.filter(bill__patient__user_id=patient_user_id)
    if patient_id:
        qs = qs.filter(bill__patient_id=patient_id)
    if method:
        qs = qs.filter(method=method)
    return qs


def period_start(period: str, *, now=None) -> datetime:
    now = timezone.localtime(now or timezone.now())
    today = now.date()
    if period == "day":
        start = today
    elif period == "week":
        start = today - timedelta(days=7)
    elif period == "month":
        start = today.replace(day=1)
    elif period == "year":
        start = today.replace(month=1, day=1)
    else:
        raise ValidationError({"period": f"Must be one of: {', '.join(REVENUE_PERIODS)}."})
    return timezone.make_aware(datetime.combine(start, time.min), timezone.get_current_timezone())


def revenue_stats(*, period: str = "month") -> dict:
    start = period_start(period)
    qs = Bill.objects.filter(created_at__gte=start, status__in=[BillStatus.PAID, BillStatus.PARTIAL])

    agg = qs.aggregate(
        total_revenue=Sum("amount_paid"),
        total_bills=Count("id"),
        average_bill_amount=Avg("grand_total"),
    )
    avg = agg["average_bill_amount"]
    return {
        "period": period,
        "start": start,
        "total_revenue": agg["total_revenue"] or Decimal("0.00"),
        "total_bills": agg["total_bills"] or 0,
        "average_bill_amount": Decimal(str(avg)).quantize(Decimal("0.01")) if avg is not None else Decimal("0.00"),
    }
