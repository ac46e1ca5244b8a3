# backend/hms_core/prescriptions/api/serializers.py
from __future__ import annotations

from rest_framework import serializers

from hms_core.prescriptions.models import (
    DispenseStatus,
    Medication,
    MedicationForm,
    Prescription,
    PrescriptionItem,
)


class MedicationSerializer(serializers.ModelSerializer):
    is_low_stock = serializers.BooleanField(read_only=True)
    is_out_of_stock = serializers.BooleanField(read_only=True)

    class Meta:
        model = Medication
        fields = [
            "id",
            "code",
            "name",
            "generic_name",
            "category",
            "form",
            "strength",
            "unit",
            "manufacturer",
            "selling_price",
            "insurance_covered",
            "insurance_price",
            "stock_quantity",
            "reorder_level",
            "is_low_stock",
            "is_out_of_stock",
            "requires_prescription",
            "expiry_date",
            "is_active",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class MedicationWriteSerializer(serializers.Serializer):
    code = serializers.CharField(max_length=32)
    name = serializers.CharField(max_length=255)
    generic_name = serializers.CharField(required=False, allow_blank=True, max_length=255)
    category = serializers.CharField(required=False, allow_blank=True, max_length=64)
    form = serializers.ChoiceField(choices=MedicationForm.choices, required=False)
    strength = serializers.CharField(required=False, allow_blank=True, max_length=64)
    unit = serializers.CharField(required=False, allow_blank=True, max_length=32)
    manufacturer = serializers.CharField(required=False, allow_blank=True, max_length=255)
    selling_price = serializers.DecimalField(
        max_digits=12, decimal_places=2, min_value=0, required=False, allow_null=True
    )
    insurance_covered = serializers.BooleanField(required=False)
    insurance_price = serializers.DecimalField(
        max_digits=12, decimal_places=2, min_value=0, required=False, allow_null=True
    )
    stock_quantity = serializers.IntegerField(required=False, min_value=0)
    reorder_level = serializers.IntegerField(required=False, min_value=0)
    requires_prescription = serializers.BooleanField(required=False)
    expiry_date = serializers.DateField(required=False, allow_null=True)
    is_active = serializers.BooleanField(required=False)


class StockAdjustSerializer(serializers.Serializer):
    delta = serializers.IntegerField()
    reason = serializers.CharField(required=False, allow_blank=True, max_length=255)

    def validate_delta(self, value):
        if value == 0:
            raise serializers.ValidationError("delta must not be zero.")
        return value


class PrescriptionItemSerializer(serializers.ModelSerializer):
    medication_name = serializers.CharField(source="medication.name", read_only=True)
    remaining_quantity = serializers.IntegerField(read_only=True)

    class Meta:
        model = PrescriptionItem
        fields = [
            "id",
            "medication",
            "medication_name",
            "dosage",
            "frequency",
            "duration_days",
            "total_quantity",
            "dispensed_quantity",
            "remaining_quantity",
            "instructions",
        ]
        read_only_fields = fields


class PrescriptionSerializer(serializers.ModelSerializer):
    items = PrescriptionItemSerializer(many=True, read_only=True)
    patient_name = serializers.CharField(source="patient.full_name", read_only=True)

    class Meta:
        model = Prescription
        fields = [
            "id",
            "prescription_code",
            "patient",
            "patient_name",
            "doctor",
            "appointment",
            "diagnosis",
            "notes",
            "status",
            "dispense_status",
            "valid_until",
            "interaction_warnings",
            "bill_created",
            "items",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class PrescriptionItemInputSerializer(serializers.Serializer):
    medication_id = serializers.UUIDField()
    dosage = serializers.CharField(max_length=128)
    frequency = serializers.CharField(max_length=128)
    duration_days = serializers.IntegerField(min_value=1, required=False, default=1)
    total_quantity = serializers.IntegerField(min_value=1)
    instructions = serializers.CharField(required=False, allow_blank=True)


class PrescriptionCreateSerializer(serializers.Serializer):
    patient_id = serializers.UUIDField()
    appointment_id = serializers.UUIDField(required=False, allow_null=True)
    diagnosis = serializers.CharField(required=False, allow_blank=True)
    notes = serializers.CharField(required=False, allow_blank=True)
    valid_until = serializers.DateField(required=False, allow_null=True)
    as_draft = serializers.BooleanField(required=False, default=False)
    items = PrescriptionItemInputSerializer(many=True)

    def validate_items(self, value):
        if not value:
            raise serializers.ValidationError("At least one medication is required.")
        return value


class PrescriptionUpdateSerializer(serializers.Serializer):
    diagnosis = serializers.CharField(required=False, allow_blank=True)
    notes = serializers.CharField(required=False, allow_blank=True)
    valid_until = serializers.DateField(required=False, allow_null=True)
    items = PrescriptionItemInputSerializer(many=True, required=False)
    activate = serializers.BooleanField(required=False)


class DispenseSerializer(serializers.Serializer):
    medication_id = serializers.UUIDField()
    quantity = serializers.IntegerField(min_value=1)
    notes = serializers.CharField(required=False, allow_blank=True)


class CancelPrescriptionSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=255)


class DispenseStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=DispenseStatus.choices)


class InteractionCheckSerializer(serializers.Serializer):
    medication_ids = serializers.ListField(child=serializers.UUIDField(), required=False)
    names = serializers.ListField(child=serializers.CharField(), required=False)


class InteractionSerializer(serializers.Serializer):
    medications = serializers.ListField(child=serializers.CharField())
    severity = serializers.CharField()
    description = serializers.CharField()
    recommendation = serializers.CharField()


class MedicationHistorySerializer(serializers.Serializer):
    prescription_id = serializers.UUIDField()
    prescription_code = serializers.CharField()
    prescribed_at = serializers.DateTimeField()
    prescribed_by = serializers.IntegerField()
    status = serializers.CharField()
    medication_id = serializers.UUIDField()
    medication_name = serializers.CharField()
    dosage = serializers.CharField()
    frequency = serializers.CharField()
    duration_days = serializers.IntegerField()
    total_quantity = serializers.IntegerField()
    dispensed_quantity = serializers.IntegerField()


class CoverageSerializer(serializers.Serializer):
    medication_id = serializers.UUIDField()
    medication_name = serializers.CharField()
    covered = serializers.BooleanField()
    selling_price = serializers.DecimalField(max_digits=12, decimal_places=2)
    insurance_price = serializers.DecimalField(max_digits=12, decimal_places=2, allow_null=True)
    patient_pays = serializers.DecimalField(max_digits=12, decimal_places=2)
    insurance_pays = serializers.DecimalField(max_digits=12, decimal_places=2)


class StockInfoSerializer(serializers.Serializer):
    medication_id = serializers.UUIDField()
    current = serializers.IntegerField()
    reorder_level = serializers.IntegerField()
    is_low_stock = serializers.BooleanField()
    is_out_of_stock = serializers.BooleanField()
    checked_at = serializers.DateTimeField()
