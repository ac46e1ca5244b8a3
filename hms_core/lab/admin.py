from django.contrib import admin

from hms_core.lab.models import LabOrder, LabResultVersion, LabTest


class LabTestInline(admin.TabularInline):
    model = LabTest
    extra = 0
    fields = ("test_code", "test_name", "status", "version", "is_abnormal", "is_critical")


@admin.register(LabOrder)
class LabOrderAdmin(admin.ModelAdmin):
    list_display = ("order_code", "patient", "priority", "status", "created_at")
    list_filter = ("status", "priority")
    search_fields = ("order_code", "patient__full_name")
    inlines = [LabTestInline]


@admin.register(LabResultVersion)
class LabResultVersionAdmin(admin.ModelAdmin):
    list_display = ("test", "version", "is_abnormal", "is_critical", "created_at")
