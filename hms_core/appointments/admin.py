from django.contrib import admin

from hms_core.appointments.models import Appointment, DoctorSchedule


@admin.register(Appointment)
class AppointmentAdmin(admin.ModelAdmin):
    list_display = ("appointment_code", "patient", "doctor", "appointment_date", "status")
    list_filter = ("status", "appointment_type", "mode")
    search_fields = ("appointment_code", "patient__full_name", "reason")
    readonly_fields = ("appointment_code", "created_at", "updated_at")


@admin.register(DoctorSchedule)
class DoctorScheduleAdmin(admin.ModelAdmin):
    list_display = ("doctor", "day_of_week", "start_time", "end_time", "slot_duration", "is_active")
    list_filter = ("day_of_week", "is_active")
