# backend/hms_core/patients/models.py
from django.conf import settings
from django.db import models

from hms_core.common.models import UUIDModel


class Patient(UUIDModel):
    """
    Registered patient. Linked to a login user when the patient uses the app.
    """
    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="patient",
    )

    patient_code = models.CharField(max_length=16, unique=True)

    full_name = models.CharField(max_length=255)
    date_of_birth = models.DateField(null=True, blank=True)
    gender = models.CharField(max_length=16, blank=True)
    phone = models.CharField(max_length=32, blank=True)
    email = models.EmailField(blank=True)
    address = models.TextField(blank=True)

    blood_type = models.CharField(max_length=8, blank=True)
    emergency_contact_name = models.CharField(max_length=255, blank=True)
    emergency_contact_phone = models.CharField(max_length=32, blank=True)

    insurance_provider = models.CharField(max_length=128, blank=True)
    insurance_number = models.CharField(max_length=64, blank=True)

    is_active = models.BooleanField(default=True, db_index=True)

    class Meta:
        db_table = "patients_patient"
        indexes = [
            models.Index(fields=["full_name"]),
            models.Index(fields=["phone"]),
        ]

    def __str__(self) -> str:
        return f"{self.full_name} ({self.patient_code})"
