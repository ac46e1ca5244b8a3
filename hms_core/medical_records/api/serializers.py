# backend/hms_core/medical_records/api/serializers.py
from __future__ import annotations

from rest_framework import serializers

from hms_core.medical_records.models import (
    BloodType,
    Diagnosis,
    DiagnosisCertainty,
    DiagnosisType,
    MedicalRecord,
    PrivacyLevel,
    RecordStatus,
    Visit,
    VisitStatus,
    VisitType,
)


class DiagnosisSerializer(serializers.ModelSerializer):
    class Meta:
        model = Diagnosis
        fields = ["id", "code", "description", "diagnosis_type", "certainty", "notes"]
        read_only_fields = fields


class VisitSerializer(serializers.ModelSerializer):
    diagnoses = DiagnosisSerializer(many=True, read_only=True)
    patient = serializers.UUIDField(source="record.patient_id", read_only=True)

    class Meta:
        model = Visit
        fields = [
            "id",
            "visit_code",
            "record",
            "patient",
            "doctor",
            "appointment",
            "prescription",
            "visit_date",
            "visit_type",
            "chief_complaint",
            "symptoms",
            "vital_signs",
            "treatment_plan",
            "notes",
            "status",
            "completed_at",
            "diagnoses",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class MedicalRecordSerializer(serializers.ModelSerializer):
    patient_name = serializers.CharField(source="patient.full_name", read_only=True)
    total_visits = serializers.SerializerMethodField()
    last_visit_date = serializers.SerializerMethodField()

    class Meta:
        model = MedicalRecord
        fields = [
            "id",
            "record_code",
            "patient",
            "patient_name",
            "blood_type",
            "allergies",
            "chronic_conditions",
            "family_history",
            "surgical_history",
            "immunizations",
            "status",
            "privacy_level",
            "total_visits",
            "last_visit_date",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields

    def get_total_visits(self, obj) -> int:
        count = getattr(obj, "visit_count", None)
        return count if count is not None else obj.total_visits

    def get_last_visit_date(self, obj):
        if hasattr(obj, "last_visit_date"):
            value = obj.last_visit_date
        else:
            last = obj.last_visit
            value = last.visit_date if last else None
        return serializers.DateTimeField().to_representation(value) if value else None


class HistoryUpdateSerializer(serializers.Serializer):
    blood_type = serializers.ChoiceField(choices=BloodType.choices, required=False, allow_blank=True)
    allergies = serializers.ListField(child=serializers.DictField(), required=False)
    chronic_conditions = serializers.ListField(child=serializers.DictField(), required=False)
    family_history = serializers.ListField(child=serializers.DictField(), required=False)
    immunizations = serializers.ListField(child=serializers.DictField(), required=False)
    privacy_level = serializers.ChoiceField(choices=PrivacyLevel.choices, required=False)
    status = serializers.ChoiceField(choices=RecordStatus.choices, required=False)


class SurgicalHistorySerializer(serializers.Serializer):
    procedure = serializers.CharField(max_length=255)
    date = serializers.DateField(required=False, allow_null=True)
    hospital = serializers.CharField(required=False, allow_blank=True, max_length=255)
    notes = serializers.CharField(required=False, allow_blank=True)

    def to_entry(self) -> dict:
        data = dict(self.validated_data)
        if data.get("date"):
            data["date"] = data["date"].isoformat()
        return data


class DiagnosisInputSerializer(serializers.Serializer):
    code = serializers.CharField(required=False, allow_blank=True, max_length=32)
    description = serializers.CharField(max_length=255)
    diagnosis_type = serializers.ChoiceField(choices=DiagnosisType.choices, required=False)
    certainty = serializers.ChoiceField(choices=DiagnosisCertainty.choices, required=False)
    notes = serializers.CharField(required=False, allow_blank=True)


class VitalSignsSerializer(serializers.Serializer):
    systolic = serializers.IntegerField(required=False, min_value=0)
    diastolic = serializers.IntegerField(required=False, min_value=0)
    heart_rate = serializers.IntegerField(required=False, min_value=0)
    respiratory_rate = serializers.IntegerField(required=False, min_value=0)
    temperature = serializers.FloatField(required=False)
    oxygen_saturation = serializers.FloatField(required=False, min_value=0, max_value=100)
    weight_kg = serializers.FloatField(required=False, min_value=0)
    height_cm = serializers.FloatField(required=False, min_value=0)


class VisitCreateSerializer(serializers.Serializer):
    doctor_id = serializers.IntegerField(required=False, allow_null=True)
    appointment_id = serializers.UUIDField(required=False, allow_null=True)
    prescription_id = serializers.UUIDField(required=False, allow_null=True)
    visit_date = serializers.DateTimeField(required=False)
    visit_type = serializers.ChoiceField(choices=VisitType.choices, required=False, default=VisitType.OUTPATIENT)
    chief_complaint = serializers.CharField(required=False, allow_blank=True, default="")
    symptoms = serializers.ListField(child=serializers.DictField(), required=False, default=list)
    vital_signs = VitalSignsSerializer(required=False)
    treatment_plan = serializers.CharField(required=False, allow_blank=True, default="")
    notes = serializers.CharField(required=False, allow_blank=True, default="")
    diagnoses = DiagnosisInputSerializer(many=True, required=False, default=list)
    status = serializers.ChoiceField(
        choices=[VisitStatus.IN_PROGRESS, VisitStatus.COMPLETED], required=False, default=VisitStatus.IN_PROGRESS
    )


class VisitUpdateSerializer(serializers.Serializer):
    visit_date = serializers.DateTimeField(required=False)
    visit_type = serializers.ChoiceField(choices=VisitType.choices, required=False)
    chief_complaint = serializers.CharField(required=False, allow_blank=True)
    symptoms = serializers.ListField(child=serializers.DictField(), required=False)
    vital_signs = VitalSignsSerializer(required=False)
    treatment_plan = serializers.CharField(required=False, allow_blank=True)
    notes = serializers.CharField(required=False, allow_blank=True)
    diagnoses = DiagnosisInputSerializer(many=True, required=False)
