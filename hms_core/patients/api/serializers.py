# backend/hms_core/patients/api/serializers.py
from rest_framework import serializers

from hms_core.patients.models import Patient


class PatientSerializer(serializers.ModelSerializer):
    class Meta:
        model = Patient
        fields = [
            "id",
            "patient_code",
            "user",
            "full_name",
            "date_of_birth",
            "gender",
            "phone",
            "email",
            "address",
            "blood_type",
            "emergency_contact_name",
            "emergency_contact_phone",
            "insurance_provider",
            "insurance_number",
            "is_active",
            "created_at",
            "updated_at",
        ]
        read_only_fields = ["id", "patient_code", "user", "is_active", "created_at", "updated_at"]


class PatientCreateSerializer(serializers.Serializer):
    full_name = serializers.CharField(max_length=255)
    date_of_birth = serializers.DateField(required=False, allow_null=True)
    gender = serializers.CharField(required=False, allow_blank=True, max_length=16)
    phone = serializers.CharField(required=False, allow_blank=True, max_length=32)
    email = serializers.EmailField(required=False, allow_blank=True)
    address = serializers.CharField(required=False, allow_blank=True)
    blood_type = serializers.CharField(required=False, allow_blank=True, max_length=8)
    emergency_contact_name = serializers.CharField(required=False, allow_blank=True, max_length=255)
    emergency_contact_phone = serializers.CharField(required=False, allow_blank=True, max_length=32)
    insurance_provider = serializers.CharField(required=False, allow_blank=True, max_length=128)
    insurance_number = serializers.CharField(required=False, allow_blank=True, max_length=64)


class PatientUpdateSerializer(PatientCreateSerializer):
    full_name = serializers.CharField(required=False, max_length=255)
