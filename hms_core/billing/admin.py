from django.contrib import admin

from hms_core.billing.models import Bill, BillItem, Payment


class BillItemInline(admin.TabularInline):
    model = BillItem
    extra = 0


class PaymentInline(admin.TabularInline):
    model = Payment
    extra = 0


@admin.register(Bill)
class BillAdmin(admin.ModelAdmin):
    list_display = ("bill_number", "patient", "status", "grand_total", "amount_paid", "balance_due", "created_at")
    list_filter = ("status",)
    search_fields = ("bill_number", "patient__full_name")
    inlines = [BillItemInline, PaymentInline]


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ("bill", "amount", "method", "reference", "received_at")
    list_filter = ("method",)
