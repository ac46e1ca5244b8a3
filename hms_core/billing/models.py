# backend/hms_core/billing/models.py
from __future__ import annotations

from decimal import Decimal

from django.conf import settings
from django.db import models
from django.utils import timezone

from hms_core.common.models import UUIDModel


def _default_currency() -> str:
    return settings.HMS_CURRENCY


class BillStatus(models.TextChoices):
    PENDING = "PENDING", "Pending"
    ISSUED = "ISSUED", "Issued"
    PARTIAL = "PARTIAL", "Partially Paid"
    PAID = "PAID", "Paid"
    WRITTEN_OFF = "WRITTEN_OFF", "Written Off"


# Bills in these states accept no edits, payments or voids.
CLOSED_STATUSES = (BillStatus.PAID, BillStatus.WRITTEN_OFF)


class Bill(UUIDModel):
    """
    Patient bill. Totals are snapshots recomputed by BillService whenever
    items, discount or tax rate change; amount_paid/balance_due follow payments.
    """
    bill_number = models.CharField(max_length=16, unique=True)

    patient = models.ForeignKey("patients.Patient", on_delete=models.PROTECT, related_name="bills")
    prescription = models.ForeignKey(
        "prescriptions.Prescription",
        on_delete=models.PROTECT,
        related_name="bills",
        null=True,
        blank=True,
    )
    appointment = models.ForeignKey(
        "appointments.Appointment",
        on_delete=models.SET_NULL,
        related_name="bills",
        null=True,
        blank=True,
    )

    status = models.CharField(max_length=16, choices=BillStatus.choices, default=BillStatus.PENDING, db_index=True)
    currency = models.CharField(max_length=8, default=_default_currency)

    subtotal = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    discount_total = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    tax_rate = models.DecimalField(max_digits=5, decimal_places=2, default=Decimal("0.00"))
    tax_total = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    grand_total = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))

    amount_paid = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    balance_due = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))

    issued_at = models.DateTimeField(null=True, blank=True)
    due_date = models.DateField(null=True, blank=True)
    paid_at = models.DateTimeField(null=True, blank=True)
    voided_at = models.DateTimeField(null=True, blank=True)

    notes = models.TextField(blank=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )

    class Meta:
        db_table = "billing_bill"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status", "created_at"]),
            models.Index(fields=["patient", "created_at"]),
        ]

    def __str__(self) -> str:
        return f"{self.bill_number} [{self.status}]"

    def mark_void(self):
        self.status = BillStatus.WRITTEN_OFF
        self.voided_at = timezone.now()


class BillItemType(models.TextChoices):
    CONSULTATION = "CONSULTATION", "Consultation"
    MEDICATION = "MEDICATION", "Medication"
    LAB_TEST = "LAB_TEST", "Lab Test"
    PROCEDURE = "PROCEDURE", "Procedure"
    OTHER = "OTHER", "Other"


class BillItem(UUIDModel):
    """
    Snapshot line: unit_price is copied at billing time, not looked up later.
    """
    bill = models.ForeignKey(Bill, on_delete=models.CASCADE, related_name="items")

    item_type = models.CharField(max_length=16, choices=BillItemType.choices, default=BillItemType.OTHER)
    code = models.CharField(max_length=64, blank=True)
    description = models.CharField(max_length=255)
    quantity = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal("1.00"))
    unit_price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    line_total = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))

    medication = models.ForeignKey(
        "prescriptions.Medication",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="bill_items",
    )

    class Meta:
        db_table = "billing_bill_item"
        ordering = ["created_at"]


class PaymentMethod(models.TextChoices):
    CASH = "CASH", "Cash"
    CARD = "CARD", "Card"
    BANK_TRANSFER = "BANK_TRANSFER", "Bank Transfer"
    INSURANCE = "INSURANCE", "Insurance"
    E_WALLET = "E_WALLET", "E-Wallet"
    OTHER = "OTHER", "Other"


class Payment(UUIDModel):
    bill = models.ForeignKey(Bill, on_delete=models.CASCADE, related_name="payments")
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    method = models.CharField(max_length=16, choices=PaymentMethod.choices, default=PaymentMethod.CASH)

    reference = models.CharField(max_length=64, blank=True)
    received_at = models.DateTimeField(default=timezone.now)
    recorded_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    notes = models.TextField(blank=True)

    class Meta:
        db_table = "billing_payment"
        ordering = ["-received_at"]
        indexes = [
            models.Index(fields=["bill", "received_at"]),
        ]
