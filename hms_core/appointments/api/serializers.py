# backend/hms_core/appointments/api/serializers.py
from __future__ import annotations

from rest_framework import serializers

from hms_core.appointments.models import (
    MAX_DURATION_MINUTES,
    MIN_DURATION_MINUTES,
    Appointment,
    AppointmentMode,
    AppointmentStatus,
    AppointmentType,
    DoctorSchedule,
)


class AppointmentSerializer(serializers.ModelSerializer):
    patient_name = serializers.CharField(source="patient.full_name", read_only=True)
    doctor_name = serializers.SerializerMethodField()
    end_time = serializers.DateTimeField(read_only=True)

    class Meta:
        model = Appointment
        fields = [
            "id",
            "appointment_code",
            "patient",
            "patient_name",
            "doctor",
            "doctor_name",
            "department",
            "appointment_date",
            "end_time",
            "duration_minutes",
            "appointment_type",
            "mode",
            "location",
            "room",
            "reason",
            "description",
            "symptoms",
            "preparation_instructions",
            "status",
            "actual_start_time",
            "actual_end_time",
            "cancelled_by",
            "cancelled_at",
            "cancellation_reason",
            "cancellation_notes",
            "rescheduled_from",
            "reschedule_reason",
            "reminder_sent",
            "reminder_sent_at",
            "created_by",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields

    def get_doctor_name(self, obj) -> str:
        return obj.doctor.get_full_name() or obj.doctor.username


class AppointmentCreateSerializer(serializers.Serializer):
    patient_id = serializers.UUIDField(required=False)
    doctor_id = serializers.IntegerField(required=False, allow_null=True)
    appointment_date = serializers.DateTimeField()
    duration_minutes = serializers.IntegerField(
        required=False, min_value=MIN_DURATION_MINUTES, max_value=MAX_DURATION_MINUTES, default=30
    )
    appointment_type = serializers.ChoiceField(choices=AppointmentType.choices, required=False)
    mode = serializers.ChoiceField(choices=AppointmentMode.choices, required=False)
    location = serializers.CharField(required=False, allow_blank=True, max_length=255)
    room = serializers.CharField(required=False, allow_blank=True, max_length=64)
    reason = serializers.CharField(max_length=500)
    description = serializers.CharField(required=False, allow_blank=True)
    symptoms = serializers.ListField(child=serializers.CharField(), required=False)
    preparation_instructions = serializers.CharField(required=False, allow_blank=True)


class AppointmentUpdateSerializer(serializers.Serializer):
    appointment_date = serializers.DateTimeField(required=False)
    duration_minutes = serializers.IntegerField(
        required=False, min_value=MIN_DURATION_MINUTES, max_value=MAX_DURATION_MINUTES
    )
    appointment_type = serializers.ChoiceField(choices=AppointmentType.choices, required=False)
    mode = serializers.ChoiceField(choices=AppointmentMode.choices, required=False)
    location = serializers.CharField(required=False, allow_blank=True, max_length=255)
    room = serializers.CharField(required=False, allow_blank=True, max_length=64)
    reason = serializers.CharField(required=False, max_length=500)
    description = serializers.CharField(required=False, allow_blank=True)
    symptoms = serializers.ListField(child=serializers.CharField(), required=False)
    preparation_instructions = serializers.CharField(required=False, allow_blank=True)
    status = serializers.ChoiceField(choices=AppointmentStatus.choices, required=False)


class StatusChangeSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=AppointmentStatus.choices)


class CancelSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=255)
    notes = serializers.CharField(required=False, allow_blank=True)


class RescheduleSerializer(serializers.Serializer):
    new_date = serializers.DateTimeField()
    reason = serializers.CharField(required=False, allow_blank=True, max_length=255)


class AppointmentStatsSerializer(serializers.Serializer):
    total = serializers.IntegerField()
    today = serializers.IntegerField()
    pending = serializers.IntegerField()
    confirmed = serializers.IntegerField()
    completed = serializers.IntegerField()
    cancelled = serializers.IntegerField()
    by_status = serializers.DictField(child=serializers.IntegerField())


class ReminderResultSerializer(serializers.Serializer):
    appointment_code = serializers.CharField()
    sent = serializers.BooleanField()
    error = serializers.CharField(allow_null=True)


class ReminderBatchSerializer(serializers.Serializer):
    total = serializers.IntegerField()
    successful = serializers.IntegerField()
    failed = serializers.IntegerField()
    details = ReminderResultSerializer(many=True)


class DoctorScheduleSerializer(serializers.ModelSerializer):
    class Meta:
        model = DoctorSchedule
        fields = [
            "id",
            "doctor",
            "day_of_week",
            "start_time",
            "end_time",
            "slot_duration",
            "max_appointments_per_day",
            "location",
            "is_active",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class DoctorScheduleCreateSerializer(serializers.Serializer):
    doctor_id = serializers.IntegerField()
    day_of_week = serializers.IntegerField(min_value=0, max_value=6)
    start_time = serializers.TimeField()
    end_time = serializers.TimeField()
    slot_duration = serializers.IntegerField(required=False, min_value=15, max_value=240, default=30)
    max_appointments_per_day = serializers.IntegerField(required=False, min_value=1, default=20)
    location = serializers.CharField(required=False, allow_blank=True, max_length=255)
    is_active = serializers.BooleanField(required=False, default=True)


class DoctorScheduleUpdateSerializer(serializers.Serializer):
    start_time = serializers.TimeField(required=False)
    end_time = serializers.TimeField(required=False)
    slot_duration = serializers.IntegerField(required=False, min_value=15, max_value=240)
    max_appointments_per_day = serializers.IntegerField(required=False, min_value=1)
    location = serializers.CharField(required=False, allow_blank=True, max_length=255)
    is_active = serializers.BooleanField(required=False)


class SlotSerializer(serializers.Serializer):
    start = serializers.DateTimeField()
    end = serializers.DateTimeField()
