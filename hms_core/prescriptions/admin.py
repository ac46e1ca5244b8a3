from django.contrib import admin

from hms_core.prescriptions.models import DispenseRecord, Medication, Prescription, PrescriptionItem


@admin.register(Medication)
class MedicationAdmin(admin.ModelAdmin):
    list_display = ("code", "name", "generic_name", "stock_quantity", "reorder_level", "selling_price", "is_active")
    list_filter = ("form", "category", "is_active", "insurance_covered")
    search_fields = ("code", "name", "generic_name")


class PrescriptionItemInline(admin.TabularInline):
    model = PrescriptionItem
    extra = 0


@admin.register(Prescription)
class PrescriptionAdmin(admin.ModelAdmin):
    list_display = ("prescription_code", "patient", "doctor", "status", "dispense_status", "created_at")
    list_filter = ("status", "dispense_status")
    search_fields = ("prescription_code", "patient__full_name", "diagnosis")
    inlines = [PrescriptionItemInline]


@admin.register(DispenseRecord)
class DispenseRecordAdmin(admin.ModelAdmin):
    list_display = ("item", "quantity", "dispensed_by", "dispensed_at")
