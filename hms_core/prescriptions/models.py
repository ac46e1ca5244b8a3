# backend/hms_core/prescriptions/models.py
from __future__ import annotations

from decimal import Decimal

from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models
from django.utils import timezone

from hms_core.common.models import UUIDModel


class MedicationForm(models.TextChoices):
    TABLET = "TABLET", "Tablet"
    CAPSULE = "CAPSULE", "Capsule"
    SYRUP = "SYRUP", "Syrup"
    INJECTION = "INJECTION", "Injection"
    CREAM = "CREAM", "Cream"
    DROPS = "DROPS", "Drops"
    INHALER = "INHALER", "Inhaler"
    OTHER = "OTHER", "Other"


class Medication(UUIDModel):
    code = models.CharField(max_length=32, unique=True)
    name = models.CharField(max_length=255, db_index=True)
    generic_name = models.CharField(max_length=255, blank=True, db_index=True)
    category = models.CharField(max_length=64, blank=True, db_index=True)
    form = models.CharField(max_length=16, choices=MedicationForm.choices, default=MedicationForm.TABLET)
    strength = models.CharField(max_length=64, blank=True)
    unit = models.CharField(max_length=32, blank=True)
    manufacturer = models.CharField(max_length=255, blank=True)

    selling_price = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        null=True,
        blank=True,
        validators=[MinValueValidator(Decimal("0.00"))],
    )
    insurance_covered = models.BooleanField(default=False)
    insurance_price = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        null=True,
        blank=True,
        validators=[MinValueValidator(Decimal("0.00"))],
    )

    stock_quantity = models.IntegerField(default=0)
    reorder_level = models.PositiveIntegerField(default=10)

    requires_prescription = models.BooleanField(default=True)
    expiry_date = models.DateField(null=True, blank=True)
    is_active = models.BooleanField(default=True, db_index=True)

    class Meta:
        db_table = "prescriptions_medication"
        ordering = ["name"]

    def __str__(self) -> str:
        return f"{self.name} {self.strength}".strip()

    @property
    def is_out_of_stock(self) -> bool:
        return self.stock_quantity <= 0

    @property
    def is_low_stock(self) -> bool:
        return 0 < self.stock_quantity <= self.reorder_level

    @property
    def is_expired(self) -> bool:
        return bool(self.expiry_date and self.expiry_date < timezone.localdate())


class PrescriptionStatus(models.TextChoices):
    DRAFT = "DRAFT", "Draft"
    ACTIVE = "ACTIVE", "Active"
    COMPLETED = "COMPLETED", "Completed"
    CANCELLED = "CANCELLED", "Cancelled"
    EXPIRED = "EXPIRED", "Expired"


class DispenseStatus(models.TextChoices):
    PENDING = "PENDING", "Pending"
    PARTIAL = "PARTIAL", "Partial"
    DISPENSED = "DISPENSED", "Dispensed"


class Prescription(UUIDModel):
    prescription_code = models.CharField(max_length=16, unique=True)

    patient = models.ForeignKey("patients.Patient", on_delete=models.PROTECT, related_name="prescriptions")
    doctor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="prescriptions_written",
    )
    appointment = models.ForeignKey(
        "appointments.Appointment",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="prescriptions",
    )

    diagnosis = models.TextField(blank=True)
    notes = models.TextField(blank=True)

    status = models.CharField(
        max_length=16, choices=PrescriptionStatus.choices, default=PrescriptionStatus.ACTIVE, db_index=True
    )
    dispense_status = models.CharField(
        max_length=16, choices=DispenseStatus.choices, default=DispenseStatus.PENDING, db_index=True
    )

    valid_until = models.DateField(null=True, blank=True)
    interaction_warnings = models.JSONField(default=list, blank=True)
    bill_created = models.BooleanField(default=False)

    class Meta:
        db_table = "prescriptions_prescription"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["patient", "created_at"]),
            models.Index(fields=["status", "dispense_status"]),
        ]

    def __str__(self) -> str:
        return f"{self.prescription_code} [{self.status}]"


class PrescriptionItem(UUIDModel):
    prescription = models.ForeignKey(Prescription, on_delete=models.CASCADE, related_name="items")
    medication = models.ForeignKey(Medication, on_delete=models.PROTECT, related_name="prescription_items")

    dosage = models.CharField(max_length=128)
    frequency = models.CharField(max_length=128)
    duration_days = models.PositiveIntegerField(default=1)
    total_quantity = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    instructions = models.TextField(blank=True)

    dispensed_quantity = models.PositiveIntegerField(default=0)

    class Meta:
        db_table = "prescriptions_item"
        ordering = ["created_at"]

    def __str__(self) -> str:
        return f"{self.medication} x{self.total_quantity}"

    @property
    def remaining_quantity(self) -> int:
        return max(self.total_quantity - self.dispensed_quantity, 0)


class DispenseRecord(UUIDModel):
    item = models.ForeignKey(PrescriptionItem, on_delete=models.CASCADE, related_name="dispenses")
    quantity = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    dispensed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    dispensed_at = models.DateTimeField(default=timezone.now)
    notes = models.TextField(blank=True)

    class Meta:
        db_table = "prescriptions_dispense_record"
        ordering = ["-dispensed_at"]
