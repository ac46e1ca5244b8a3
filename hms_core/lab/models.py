# backend/hms_core/lab/models.py
from __future__ import annotations

from django.conf import settings
from django.db import models

from hms_core.common.models import UUIDModel


class LabPriority(models.TextChoices):
    ROUTINE = "ROUTINE", "Routine"
    URGENT = "URGENT", "Urgent"
    STAT = "STAT", "STAT"


class LabOrderStatus(models.TextChoices):
    ORDERED = "ORDERED", "Ordered"
    SAMPLE_COLLECTED = "SAMPLE_COLLECTED", "Sample Collected"
    IN_PROGRESS = "IN_PROGRESS", "In Progress"
    COMPLETED = "COMPLETED", "Completed"
    CANCELLED = "CANCELLED", "Cancelled"


class LabTestStatus(models.TextChoices):
    PENDING = "PENDING", "Pending"
    SAMPLE_COLLECTED = "SAMPLE_COLLECTED", "Sample Collected"
    IN_PROGRESS = "IN_PROGRESS", "In Progress"
    COMPLETED = "COMPLETED", "Completed"
    APPROVED = "APPROVED", "Approved"
    CANCELLED = "CANCELLED", "Cancelled"


OPEN_TEST_STATUSES = (LabTestStatus.PENDING, LabTestStatus.SAMPLE_COLLECTED, LabTestStatus.IN_PROGRESS)
RESULTED_TEST_STATUSES = (LabTestStatus.COMPLETED, LabTestStatus.APPROVED)


class LabOrder(UUIDModel):
    order_code = models.CharField(max_length=16, unique=True)

    patient = models.ForeignKey("patients.Patient", on_delete=models.PROTECT, related_name="lab_orders")
    ordered_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="lab_orders_placed",
    )
    appointment = models.ForeignKey(
        "appointments.Appointment",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="lab_orders",
    )

    priority = models.CharField(max_length=16, choices=LabPriority.choices, default=LabPriority.ROUTINE)
    clinical_notes = models.TextField(blank=True)

    status = models.CharField(
        max_length=24, choices=LabOrderStatus.choices, default=LabOrderStatus.ORDERED, db_index=True
    )
    cancellation_reason = models.CharField(max_length=255, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "lab_order"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["patient", "created_at"]),
            models.Index(fields=["status", "priority"]),
        ]

    def __str__(self) -> str:
        return f"{self.order_code} [{self.status}]"


class LabTest(UUIDModel):
    """
    One requested test on an order. The current result lives here; every
    recorded version is kept in LabResultVersion.
    """
    order = models.ForeignKey(LabOrder, on_delete=models.CASCADE, related_name="tests")

    test_code = models.CharField(max_length=32)
    test_name = models.CharField(max_length=255)
    category = models.CharField(max_length=64, blank=True)
    sample_type = models.CharField(max_length=64, blank=True)

    status = models.CharField(
        max_length=24, choices=LabTestStatus.choices, default=LabTestStatus.PENDING, db_index=True
    )

    sample_collected_at = models.DateTimeField(null=True, blank=True)
    sample_collected_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.PROTECT, null=True, blank=True, related_name="+"
    )
    started_at = models.DateTimeField(null=True, blank=True)

    result_payload = models.JSONField(default=dict, blank=True)
    result_notes = models.TextField(blank=True)
    is_abnormal = models.BooleanField(default=False)
    is_critical = models.BooleanField(default=False)
    critical_reasons = models.JSONField(default=list, blank=True)
    version = models.PositiveIntegerField(default=0)

    resulted_at = models.DateTimeField(null=True, blank=True)
    resulted_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.PROTECT, null=True, blank=True, related_name="+"
    )
    approved_at = models.DateTimeField(null=True, blank=True)
    approved_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.PROTECT, null=True, blank=True, related_name="+"
    )

    class Meta:
        db_table = "lab_test"
        ordering = ["created_at"]
        indexes = [
            models.Index(fields=["order", "status"]),
        ]

    def __str__(self) -> str:
        return f"{self.test_code} [{self.status}]"


class LabResultVersion(UUIDModel):
    """
    Append-only history of results entered for a test.
    """
    test = models.ForeignKey(LabTest, on_delete=models.CASCADE, related_name="versions")
    version = models.PositiveIntegerField()
    result_payload = models.JSONField(default=dict)
    result_notes = models.TextField(blank=True)
    is_abnormal = models.BooleanField(default=False)
    is_critical = models.BooleanField(default=False)
    critical_reasons = models.JSONField(default=list, blank=True)
    recorded_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.PROTECT, null=True, blank=True, related_name="+"
    )

    class Meta:
        db_table = "lab_result_version"
        ordering = ["test", "version"]
        constraints = [
            models.UniqueConstraint(fields=["test", "version"], name="uq_lab_result_version_per_test"),
        ]
