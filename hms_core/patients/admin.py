from django.contrib import admin

from hms_core.patients.models import Patient


@admin.register(Patient)
class PatientAdmin(admin.ModelAdmin):
    list_display = ("patient_code", "full_name", "phone", "email", "is_active", "created_at")
    list_filter = ("is_active", "gender")
    search_fields = ("patient_code", "full_name", "phone", "email")
    ordering = ("-created_at",)
