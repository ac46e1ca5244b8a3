# backend/hms_core/appointments/models.py
from __future__ import annotations

from datetime import timedelta

from django.conf import settings
from django.core.validators import MaxLengthValidator, MaxValueValidator, MinValueValidator
from django.db import models

from hms_core.common.models import UUIDModel


class AppointmentStatus(models.TextChoices):
    SCHEDULED = "SCHEDULED", "Scheduled"
    CONFIRMED = "CONFIRMED", "Confirmed"
    IN_PROGRESS = "IN_PROGRESS", "In progress"
    COMPLETED = "COMPLETED", "Completed"
    CANCELLED = "CANCELLED", "Cancelled"
    RESCHEDULED = "RESCHEDULED", "Rescheduled"


class AppointmentType(models.TextChoices):
    CONSULTATION = "CONSULTATION", "Consultation"
    FOLLOW_UP = "FOLLOW_UP", "Follow-up"
    CHECKUP = "CHECKUP", "Checkup"
    SURGERY = "SURGERY", "Surgery"
    TEST = "TEST", "Test"
    OTHER = "OTHER", "Other"


class AppointmentMode(models.TextChoices):
    IN_PERSON = "IN_PERSON", "In person"
    VIDEO = "VIDEO", "Video"
    PHONE = "PHONE", "Phone"


ACTIVE_STATUSES = (
    AppointmentStatus.SCHEDULED,
    AppointmentStatus.CONFIRMED,
    AppointmentStatus.IN_PROGRESS,
    AppointmentStatus.RESCHEDULED,
)

TERMINAL_STATUSES = (AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED)

MIN_DURATION_MINUTES = 15
MAX_DURATION_MINUTES = 480


def _default_location() -> str:
    return getattr(settings, "HMS_DEFAULT_APPOINTMENT_LOCATION", "Main Clinic")


class Appointment(UUIDModel):
    appointment_code = models.CharField(max_length=16, unique=True)

    patient = models.ForeignKey("patients.Patient", on_delete=models.PROTECT, related_name="appointments")
    doctor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="doctor_appointments",
    )
    department = models.ForeignKey(
        "accounts.Department",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="appointments",
    )

    appointment_date = models.DateTimeField(db_index=True)
    duration_minutes = models.PositiveIntegerField(
        default=30,
        validators=[MinValueValidator(MIN_DURATION_MINUTES), MaxValueValidator(MAX_DURATION_MINUTES)],
    )
    appointment_type = models.CharField(
        max_length=16, choices=AppointmentType.choices, default=AppointmentType.CONSULTATION
    )
    mode = models.CharField(max_length=16, choices=AppointmentMode.choices, default=AppointmentMode.IN_PERSON)
    location = models.CharField(max_length=255, default=_default_location)
    room = models.CharField(max_length=64, blank=True)

    reason = models.TextField(validators=[MaxLengthValidator(500)])
    description = models.TextField(blank=True)
    symptoms = models.JSONField(default=list, blank=True)
    preparation_instructions = models.TextField(blank=True)

    status = models.CharField(
        max_length=16, choices=AppointmentStatus.choices, default=AppointmentStatus.SCHEDULED, db_index=True
    )

    actual_start_time = models.DateTimeField(null=True, blank=True)
    actual_end_time = models.DateTimeField(null=True, blank=True)

    # cancellation
    cancelled_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    cancelled_at = models.DateTimeField(null=True, blank=True)
    cancellation_reason = models.CharField(max_length=255, blank=True)
    cancellation_notes = models.TextField(blank=True)

    # rescheduling
    rescheduled_from = models.DateTimeField(null=True, blank=True)
    reschedule_reason = models.CharField(max_length=255, blank=True)

    # reminders
    reminder_sent = models.BooleanField(default=False)
    reminder_sent_at = models.DateTimeField(null=True, blank=True)

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )

    class Meta:
        db_table = "appointments_appointment"
        ordering = ["appointment_date"]
        indexes = [
            models.Index(fields=["doctor", "appointment_date"]),
            models.Index(fields=["patient", "appointment_date"]),
            models.Index(fields=["status", "appointment_date"]),
        ]

    def __str__(self) -> str:
        return f"{self.appointment_code} {self.appointment_date:%Y-%m-%d %H:%M} [{self.status}]"

    @property
    def end_time(self):
        return self.appointment_date + timedelta(minutes=self.duration_minutes)


class DoctorSchedule(UUIDModel):
    """
    Weekly working window for a doctor. day_of_week: 0=Monday .. 6=Sunday.
    """
    doctor = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="schedules")
    day_of_week = models.PositiveSmallIntegerField(validators=[MinValueValidator(0), MaxValueValidator(6)])
    start_time = models.TimeField()
    end_time = models.TimeField()
    slot_duration = models.PositiveIntegerField(
        default=30, validators=[MinValueValidator(15), MaxValueValidator(240)]
    )
    max_appointments_per_day = models.PositiveIntegerField(default=20)
    location = models.CharField(max_length=255, blank=True)
    is_active = models.BooleanField(default=True)

    class Meta:
        db_table = "appointments_doctor_schedule"
        ordering = ["doctor_id", "day_of_week"]
        constraints = [
            models.UniqueConstraint(fields=["doctor", "day_of_week"], name="uq_schedule_doctor_day"),
        ]

    def __str__(self) -> str:
        return f"{self.doctor_id} d{self.day_of_week} {self.start_time:%H:%M}-{self.end_time:%H:%M}"
