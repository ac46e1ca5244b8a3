# backend/hms_core/appointments/selectors.py
from __future__ import annotations

from collections import OrderedDict
from datetime import date, datetime, timedelta
from uuid import UUID

from django.db.models import Count, QuerySet
from django.utils import timezone
from rest_framework.exceptions import ValidationError

from hms_core.appointments.filters import AppointmentFilter
from hms_core.appointments.models import ACTIVE_STATUSES, Appointment, AppointmentStatus, DoctorSchedule


def _base() -> QuerySet:
    return Appointment.objects.select_related("patient", "doctor", "department").order_by("appointment_date")


def get_appointment(*, appointment_id: UUID) -> Appointment:
    return _base().get(id=appointment_id)


def appointments_filtered(*, params=None, patient_user_id: int | None = None) -> QuerySet:
    """
    Apply AppointmentFilter to query params. patient_user_id narrows the
    result to one patient's own rows.
    """
    qs = _base()
    if patient_user_id is not None:
        qs = qs.filter(patient__user_id=patient_user_id)

    f = AppointmentFilter(data=params or {}, queryset=qs)
    if not f.is_valid():
        raise ValidationError(f.errors)
    return f.qs


def _local_day_bounds(day: date) -> tuple[datetime, datetime]:
    tz = timezone.get_current_timezone()
    start = timezone.make_aware(datetime.combine(day, datetime.min.time()), tz)
    return start, start + timedelta(days=1)


def doctor_schedule(*, doctor_id: int, view: str = "week", on_date: date | None = None) -> dict:
    """
    Appointments for a doctor grouped by local date.
    view=day covers on_date only; view=week covers 7 days starting on_date
    (today when omitted).
    """
    start_day = on_date or timezone.localdate()
    days = 1 if view == "day" else 7
    start, _ = _local_day_bounds(start_day)
    end = start + timedelta(days=days)

    qs = _base().filter(doctor_id=doctor_id, appointment_date__gte=start, appointment_date__lt=end)

    grouped: "OrderedDict[str, list[Appointment]]" = OrderedDict()
    for i in range(days):
        grouped[(start_day + timedelta(days=i)).isoformat()] = []
    for appt in qs:
        key = timezone.localtime(appt.appointment_date).date().isoformat()
        grouped.setdefault(key, []).append(appt)

    return {
        "doctor_id": doctor_id,
        "view": "day" if days == 1 else "week",
        "start_date": start_day.isoformat(),
        "days": grouped,
        "schedules": list(DoctorSchedule.objects.filter(doctor_id=doctor_id, is_active=True)),
    }


def patient_appointments(*, patient_id: UUID) -> QuerySet:
    return _base().filter(patient_id=patient_id).order_by("-appointment_date")


def department_appointments(*, department_id: UUID, on_date: date | None = None) -> dict:
    """
    One day of a department's appointments grouped by doctor.
    """
    day = on_date or timezone.localdate()
    start, end = _local_day_bounds(day)
    qs = _base().filter(department_id=department_id, appointment_date__gte=start, appointment_date__lt=end)

    by_doctor: "OrderedDict[int, dict]" = OrderedDict()
    for appt in qs:
        bucket = by_doctor.setdefault(
            appt.doctor_id,
            {
                "doctor_id": appt.doctor_id,
                "doctor_name": appt.doctor.get_full_name() or appt.doctor.username,
                "appointments": [],
            },
        )
        bucket["appointments"].append(appt)

    return {"department_id": department_id, "date": day.isoformat(), "doctors": list(by_doctor.values())}


def appointment_stats() -> dict:
    today_start, today_end = _local_day_bounds(timezone.localdate())
    qs = Appointment.objects.all()

    by_status = {s: 0 for s in AppointmentStatus.values}
    for row in qs.values("status").annotate(n=Count("id")):
        by_status[row["status"]] = row["n"]

    return {
        "total": qs.count(),
        "today": qs.filter(appointment_date__gte=today_start, appointment_date__lt=today_end).count(),
        "pending": by_status[AppointmentStatus.SCHEDULED] + by_status[AppointmentStatus.RESCHEDULED],
        "confirmed": by_status[AppointmentStatus.CONFIRMED],
        "completed": by_status[AppointmentStatus.COMPLETED],
        "cancelled": by_status[AppointmentStatus.CANCELLED],
        "by_status": by_status,
    }



def list_schedules(*, doctor_id: int | None = None) -> QuerySet:
    qs = DoctorSchedule.objects.select_related("doctor").order_by("doctor_id", "day_of_week")
    if doctor_id is not None:
        qs = qs.filter(doctor_id=doctor_id)
    return qs
