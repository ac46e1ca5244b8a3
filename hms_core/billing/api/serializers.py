# backend/hms_core/billing/api/serializers.py
from __future__ import annotations

from decimal import Decimal

from rest_framework import serializers

from hms_core.billing.models import Bill, BillItem, BillItemType, Payment, PaymentMethod
from hms_core.billing.selectors import REVENUE_PERIODS


class BillItemSerializer(serializers.ModelSerializer):
    class Meta:
        model = BillItem
        fields = [
            "id",
            "item_type",
            "code",
            "description",
            "quantity",
            "unit_price",
            "line_total",
            "medication",
        ]
        read_only_fields = fields


class PaymentSerializer(serializers.ModelSerializer):
    bill_number = serializers.CharField(source="bill.bill_number", read_only=True)

    class Meta:
        model = Payment
        fields = [
            "id",
            "bill",
            "bill_number",
            "amount",
            "method",
            "reference",
            "received_at",
            "recorded_by",
            "notes",
            "created_at",
        ]
        read_only_fields = fields


class BillSerializer(serializers.ModelSerializer):
    items = BillItemSerializer(many=True, read_only=True)
    patient_name = serializers.CharField(source="patient.full_name", read_only=True)

    class Meta:
        model = Bill
        fields = [
            "id",
            "bill_number",
            "patient",
            "patient_name",
            "prescription",
            "appointment",
            "status",
            "currency",
            "subtotal",
            "discount_total",
            "tax_rate",
            "tax_total",
            "grand_total",
            "amount_paid",
            "balance_due",
            "issued_at",
            "due_date",
            "paid_at",
            "voided_at",
            "notes",
            "created_by",
            "items",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class BillItemInputSerializer(serializers.Serializer):
    item_type = serializers.ChoiceField(choices=BillItemType.choices, required=False, default=BillItemType.OTHER)
    code = serializers.CharField(required=False, allow_blank=True, default="", max_length=64)
    description = serializers.CharField(max_length=255)
    quantity = serializers.DecimalField(max_digits=10, decimal_places=2, default=Decimal("1.00"))
    unit_price = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal("0.00"))
    medication_id = serializers.UUIDField(required=False, allow_null=True)


class BillCreateSerializer(serializers.Serializer):
    patient_id = serializers.UUIDField()
    appointment_id = serializers.UUIDField(required=False, allow_null=True)
    items = BillItemInputSerializer(many=True)
    tax_rate = serializers.DecimalField(max_digits=5, decimal_places=2, required=False, default=Decimal("0.00"))
    discount = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, default=Decimal("0.00"))
    notes = serializers.CharField(required=False, allow_blank=True, default="")
    due_date = serializers.DateField(required=False, allow_null=True)


class BillUpdateSerializer(serializers.Serializer):
    items = BillItemInputSerializer(many=True, required=False)
    tax_rate = serializers.DecimalField(max_digits=5, decimal_places=2, required=False)
    discount = serializers.DecimalField(max_digits=12, decimal_places=2, required=False)
    notes = serializers.CharField(required=False, allow_blank=True)
    due_date = serializers.DateField(required=False, allow_null=True)


class BillFromPrescriptionSerializer(serializers.Serializer):
    prescription_id = serializers.UUIDField()
    consultation_fee = serializers.DecimalField(
        max_digits=12, decimal_places=2, required=False, allow_null=True, min_value=Decimal("0.00")
    )
    discount = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, default=Decimal("0.00"))
    tax_rate = serializers.DecimalField(max_digits=5, decimal_places=2, required=False, default=Decimal("0.00"))
    notes = serializers.CharField(required=False, allow_blank=True, default="")


class VoidBillSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, default="")


class PaymentCreateSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    method = serializers.ChoiceField(choices=PaymentMethod.choices, required=False, default=PaymentMethod.CASH)
    reference = serializers.CharField(required=False, allow_blank=True, default="", max_length=64)
    notes = serializers.CharField(required=False, allow_blank=True, default="")


class RevenueStatsSerializer(serializers.Serializer):
    period = serializers.ChoiceField(choices=REVENUE_PERIODS)
    start = serializers.DateTimeField()
    total_revenue = serializers.DecimalField(max_digits=14, decimal_places=2)
    total_bills = serializers.IntegerField()
    average_bill_amount = serializers.DecimalField(max_digits=14, decimal_places=2)
