from django.contrib import admin

from hms_core.medical_records.models import Diagnosis, MedicalRecord, Visit


class DiagnosisInline(admin.TabularInline):
    model = Diagnosis
    extra = 0


@admin.register(MedicalRecord)
class MedicalRecordAdmin(admin.ModelAdmin):
    list_display = ("record_code", "patient", "blood_type", "status", "privacy_level", "updated_at")
    list_filter = ("status", "privacy_level")
    search_fields = ("record_code", "patient__full_name")


@admin.register(Visit)
class VisitAdmin(admin.ModelAdmin):
    list_display = ("visit_code", "record", "doctor", "visit_type", "status", "visit_date")
    list_filter = ("visit_type", "status")
    search_fields = ("visit_code", "chief_complaint")
    inlines = [DiagnosisInline]
