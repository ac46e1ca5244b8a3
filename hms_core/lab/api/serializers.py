# backend/hms_core/lab/api/serializers.py
from __future__ import annotations

from rest_framework import serializers

from hms_core.lab.models import LabOrder, LabPriority, LabResultVersion, LabTest


class LabResultVersionSerializer(serializers.ModelSerializer):
    class Meta:
        model = LabResultVersion
        fields = [
            "version",
            "result_payload",
            "result_notes",
            "is_abnormal",
            "is_critical",
            "critical_reasons",
            "recorded_by",
            "created_at",
        ]
        read_only_fields = fields


class LabTestSerializer(serializers.ModelSerializer):
    order_code = serializers.CharField(source="order.order_code", read_only=True)
    patient = serializers.UUIDField(source="order.patient_id", read_only=True)

    class Meta:
        model = LabTest
        fields = [
            "id",
            "order",
            "order_code",
            "patient",
            "test_code",
            "test_name",
            "category",
            "sample_type",
            "status",
            "sample_collected_at",
            "sample_collected_by",
            "started_at",
            "result_payload",
            "result_notes",
            "is_abnormal",
            "is_critical",
            "critical_reasons",
            "version",
            "resulted_at",
            "resulted_by",
            "approved_at",
            "approved_by",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class LabTestDetailSerializer(LabTestSerializer):
    versions = LabResultVersionSerializer(many=True, read_only=True)

    class Meta(LabTestSerializer.Meta):
        fields = LabTestSerializer.Meta.fields + ["versions"]
        read_only_fields = fields


class LabOrderSerializer(serializers.ModelSerializer):
    tests = LabTestSerializer(many=True, read_only=True)
    patient_name = serializers.CharField(source="patient.full_name", read_only=True)

    class Meta:
        model = LabOrder
        fields = [
            "id",
            "order_code",
            "patient",
            "patient_name",
            "ordered_by",
            "appointment",
            "priority",
            "clinical_notes",
            "status",
            "cancellation_reason",
            "completed_at",
            "tests",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class LabTestInputSerializer(serializers.Serializer):
    test_code = serializers.CharField(max_length=32)
    test_name = serializers.CharField(max_length=255)
    category = serializers.CharField(required=False, allow_blank=True, max_length=64)
    sample_type = serializers.CharField(required=False, allow_blank=True, max_length=64)


class LabOrderCreateSerializer(serializers.Serializer):
    patient_id = serializers.UUIDField()
    appointment_id = serializers.UUIDField(required=False, allow_null=True)
    priority = serializers.ChoiceField(choices=LabPriority.choices, required=False, default=LabPriority.ROUTINE)
    clinical_notes = serializers.CharField(required=False, allow_blank=True, default="")
    tests = LabTestInputSerializer(many=True)

    def validate_tests(self, value):
        if not value:
            raise serializers.ValidationError("At least one test is required.")
        return value


class LabOrderUpdateSerializer(serializers.Serializer):
    priority = serializers.ChoiceField(choices=LabPriority.choices, required=False)
    clinical_notes = serializers.CharField(required=False, allow_blank=True)


class LabCancelSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=255)


class LabResultSerializer(serializers.Serializer):
    """
    result_payload: {"value", "unit", "reference_low", "reference_high",
    "critical_low", "critical_high", ...}; extra keys are stored as-is.
    """
    result_payload = serializers.JSONField()
    result_notes = serializers.CharField(required=False, allow_blank=True, default="")

    def validate_result_payload(self, value):
        if not isinstance(value, dict) or not value:
            raise serializers.ValidationError("Must be a non-empty object.")
        return value
