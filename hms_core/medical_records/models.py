# backend/hms_core/medical_records/models.py
from __future__ import annotations

from django.conf import settings
from django.db import models
from django.utils import timezone

from hms_core.common.models import UUIDModel


class BloodType(models.TextChoices):
    A_POS = "A+", "A+"
    A_NEG = "A-", "A-"
    B_POS = "B+", "B+"
    B_NEG = "B-", "B-"
    AB_POS = "AB+", "AB+"
    AB_NEG = "AB-", "AB-"
    O_POS = "O+", "O+"
    O_NEG = "O-", "O-"


class RecordStatus(models.TextChoices):
    ACTIVE = "ACTIVE", "Active"
    ARCHIVED = "ARCHIVED", "Archived"


class PrivacyLevel(models.TextChoices):
    NORMAL = "NORMAL", "Normal"
    RESTRICTED = "RESTRICTED", "Restricted"
    CONFIDENTIAL = "CONFIDENTIAL", "Confidential"


class MedicalRecord(UUIDModel):
    """
    One per patient. History sections are JSON lists of free-form entries,
    e.g. allergies: [{"allergen": "Penicillin", "reaction": "rash", "severity": "MILD"}].
    """
    record_code = models.CharField(max_length=16, unique=True)
    patient = models.OneToOneField("patients.Patient", on_delete=models.PROTECT, related_name="medical_record")

    blood_type = models.CharField(max_length=3, choices=BloodType.choices, blank=True)
    allergies = models.JSONField(default=list, blank=True)
    chronic_conditions = models.JSONField(default=list, blank=True)
    family_history = models.JSONField(default=list, blank=True)
    surgical_history = models.JSONField(default=list, blank=True)
    immunizations = models.JSONField(default=list, blank=True)

    status = models.CharField(max_length=16, choices=RecordStatus.choices, default=RecordStatus.ACTIVE)
    privacy_level = models.CharField(max_length=16, choices=PrivacyLevel.choices, default=PrivacyLevel.NORMAL)

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name="+"
    )
    last_modified_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name="+"
    )

    class Meta:
        db_table = "medical_record"

    def __str__(self) -> str:
        return self.record_code

    @property
    def total_visits(self) -> int:
        return self.visits.count()

    @property
    def last_visit(self):
        return self.visits.order_by("-visit_date").first()


class VisitType(models.TextChoices):
    OUTPATIENT = "OUTPATIENT", "Outpatient"
    INPATIENT = "INPATIENT", "Inpatient"
    EMERGENCY = "EMERGENCY", "Emergency"
    FOLLOW_UP = "FOLLOW_UP", "Follow Up"


class VisitStatus(models.TextChoices):
    IN_PROGRESS = "IN_PROGRESS", "In Progress"
    COMPLETED = "COMPLETED", "Completed"
    CANCELLED = "CANCELLED", "Cancelled"


class Visit(UUIDModel):
    visit_code = models.CharField(max_length=16, unique=True)
    record = models.ForeignKey(MedicalRecord, on_delete=models.CASCADE, related_name="visits")

    doctor = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="visits")
    appointment = models.ForeignKey(
        "appointments.Appointment", on_delete=models.SET_NULL, null=True, blank=True, related_name="visits"
    )
    prescription = models.ForeignKey(
        "prescriptions.Prescription", on_delete=models.SET_NULL, null=True, blank=True, related_name="visits"
    )

    visit_date = models.DateTimeField(default=timezone.now, db_index=True)
    visit_type = models.CharField(max_length=16, choices=VisitType.choices, default=VisitType.OUTPATIENT)

    chief_complaint = models.TextField(blank=True)
    symptoms = models.JSONField(default=list, blank=True)
    # {"systolic", "diastolic", "heart_rate", "temperature", "weight_kg", "height_cm", "bmi", ...}
    vital_signs = models.JSONField(default=dict, blank=True)
    treatment_plan = models.TextField(blank=True)
    notes = models.TextField(blank=True)

    status = models.CharField(max_length=16, choices=VisitStatus.choices, default=VisitStatus.IN_PROGRESS)
    completed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "medical_visit"
        ordering = ["-visit_date"]
        indexes = [
            models.Index(fields=["record", "visit_date"]),
            models.Index(fields=["doctor", "visit_date"]),
        ]

    def __str__(self) -> str:
        return f"{self.visit_code} [{self.status}]"


class DiagnosisType(models.TextChoices):
    PRIMARY = "PRIMARY", "Primary"
    SECONDARY = "SECONDARY", "Secondary"
    DIFFERENTIAL = "DIFFERENTIAL", "Differential"


class DiagnosisCertainty(models.TextChoices):
    CONFIRMED = "CONFIRMED", "Confirmed"
    PROBABLE = "PROBABLE", "Probable"
    POSSIBLE = "POSSIBLE", "Possible"


class Diagnosis(UUIDModel):
    visit = models.ForeignKey(Visit, on_delete=models.CASCADE, related_name="diagnoses")

    code = models.CharField(max_length=32, blank=True, db_index=True)
    description = models.CharField(max_length=255)
    diagnosis_type = models.CharField(max_length=16, choices=DiagnosisType.choices, default=DiagnosisType.PRIMARY)
    certainty = models.CharField(
        max_length=16, choices=DiagnosisCertainty.choices, default=DiagnosisCertainty.CONFIRMED
    )
    notes = models.TextField(blank=True)

    class Meta:
        db_table = "medical_diagnosis"
        ordering = ["created_at"]
