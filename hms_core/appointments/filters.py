# backend/hms_core/appointments/filters.py
from __future__ import annotations

import django_filters
from django.db.models import Q

from hms_core.appointments.models import Appointment, AppointmentStatus, AppointmentType


class AppointmentFilter(django_filters.FilterSet):
    patient = django_filters.UUIDFilter(field_name="patient_id")
    doctor = django_filters.NumberFilter(field_name="doctor_id")
    department = django_filters.UUIDFilter(field_name="department_id")
    status = django_filters.MultipleChoiceFilter(choices=AppointmentStatus.choices)
    appointment_type = django_filters.ChoiceFilter(choices=AppointmentType.choices)
    date_from = django_filters.DateFilter(field_name="appointment_date", lookup_expr="date__gte")
    date_to = django_filters.DateFilter(field_name="appointment_date", lookup_expr="date__lte")
    search = django_filters.CharFilter(method="filter_search")

    class Meta:
        model = Appointment
        fields = ["patient", "doctor", "department", "status", "appointment_type", "date_from", "date_to"]

    def filter_search(self, queryset, name, value):
        value = (value or "").strip()
        if not value:
            return queryset
        return queryset.filter(
            Q(appointment_code__icontains=value)
            | Q(reason__icontains=value)
            | Q(patient__full_name__icontains=value)
            | Q(patient__patient_code__icontains=value)
            | Q(doctor__first_name__icontains=value)
            | Q(doctor__last_name__icontains=value)
        )
