# backend/hms_core/billing/services.py
from __future__ import annotations

import logging
import re
from datetime import timedelta
from decimal import Decimal
from uuid import UUID

from django.conf import settings
from django.db import transaction
from django.db.models import Sum
from django.db.models.functions import Length
from django.utils import timezone
from rest_framework.exceptions import ValidationError

from hms_core.audit.services import AuditService
from hms_core.billing.models import (
    CLOSED_STATUSES,
    Bill,
    BillItem,
    BillItemType,
    BillStatus,
    Payment,
    PaymentMethod,
)
from hms_core.common.api.errors import BusinessRuleError
from hms_core.patients.models import Patient
from hms_core.prescriptions.models import Prescription, PrescriptionStatus

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")
ZERO = Decimal("0.00")

_BILL_NUMBER = re.compile(r"HD(\d{6,})$")


def _money(value) -> Decimal:
    return Decimal(str(value if value is not None else "0")).quantize(CENTS)


def compute_totals(items: list[dict], *, discount=ZERO, tax_rate=ZERO) -> dict[str, Decimal]:
    """
    subtotal = sum(qty * unit_price); tax is charged on the discounted subtotal.
    """
    subtotal = sum((_money(Decimal(str(i["quantity"])) * _money(i["unit_price"])) for i in items), ZERO)
    discount = _money(discount)
    tax_rate = _money(tax_rate)

    if discount < 0:
        raise ValidationError({"discount": "Discount must be >= 0."})
    if discount > subtotal:
        raise ValidationError({"discount": "Discount cannot exceed the subtotal."})
    if tax_rate < 0 or tax_rate > 100:
        raise ValidationError({"tax_rate": "Tax rate must be between 0 and 100."})

    taxable = subtotal - discount
    tax = (taxable * tax_rate / Decimal("100")).quantize(CENTS)
    return {
        "subtotal": subtotal.quantize(CENTS),
        "discount_total": discount,
        "tax_rate": tax_rate,
        "tax_total": tax,
        "grand_total": (taxable + tax).quantize(CENTS),
    }


def _clean_items(items: list[dict]) -> list[dict]:
    if not items:
        raise ValidationError({"items": "At least one item is required."})

    out = []
    for idx, raw in enumerate(items):
        qty = Decimal(str(raw.get("quantity", 1)))
        price = _money(raw.get("unit_price"))
        if qty <= 0:
            raise ValidationError({"items": f"Item {idx + 1}: quantity must be > 0."})
        if price < 0:
            raise ValidationError({"items": f"Item {idx + 1}: unit price must be >= 0."})
        if not (raw.get("description") or "").strip():
            raise ValidationError({"items": f"Item {idx + 1}: description is required."})
        out.append(
            {
                "item_type": raw.get("item_type") or BillItemType.OTHER,
                "code": raw.get("code") or "",
                "description": raw["description"].strip(),
                "quantity": qty,
                "unit_price": price,
                "medication_id": raw.get("medication_id"),
            }
        )
    return out


def _write_items(bill: Bill, items: list[dict]) -> None:
    BillItem.objects.bulk_create(
        [
            BillItem(
                bill=bill,
                item_type=i["item_type"],
                code=i["code"],
                description=i["description"],
                quantity=i["quantity"],
                unit_price=i["unit_price"],
                line_total=_money(i["quantity"] * i["unit_price"]),
                medication_id=i["medication_id"],
            )
            for i in items
        ]
    )


def _status_after_payment(bill: Bill) -> str:
    if bill.amount_paid > ZERO and bill.amount_paid >= bill.grand_total:
        return BillStatus.PAID
    if bill.amount_paid > ZERO:
        return BillStatus.PARTIAL
    return BillStatus.ISSUED if bill.issued_at else BillStatus.PENDING


class BillService:
    @staticmethod
    def _next_bill_number_locked() -> str:
        latest = (
            Bill.objects.select_for_update()
            .filter(bill_number__startswith="HD")
            # zero-padded, so a longer number is always the larger one
            .annotate(number_len=Length("bill_number"))
            .order_by("-number_len", "-bill_number")
            .first()
        )
        if not latest:
            return "HD000001"

        m = _BILL_NUMBER.match(latest.bill_number.strip())
        if not m:
            return f"HD{Bill.objects.count() + 1:06d}"
        return f"HD{int(m.group(1)) + 1:06d}"

    @staticmethod
    def _get_locked(bill_id: UUID) -> Bill:
        return Bill.objects.select_for_update().get(id=bill_id)

    @staticmethod
    def _ensure_open(bill: Bill) -> None:
        if bill.status == BillStatus.PAID:
            raise BusinessRuleError("BILL_ALREADY_PAID", "The bill is already paid.")
        if bill.status == BillStatus.WRITTEN_OFF:
            raise BusinessRuleError("BILL_VOIDED", "The bill has been voided.")

    @staticmethod
    @transaction.atomic
    def create_bill(
        *,
        actor_user_id: int | None,
        patient_id: UUID,
        items: list[dict],
        tax_rate=ZERO,
        discount=ZERO,
        notes: str = "",
        appointment_id: UUID | None = None,
        due_date=None,
    ) -> Bill:
        patient = Patient.objects.filter(id=patient_id).first()
        if patient is None:
            raise ValidationError({"patient_id": "Patient not found."})

        clean = _clean_items(items)
        totals = compute_totals(clean, discount=discount, tax_rate=tax_rate)

        bill = Bill.objects.create(
            bill_number=BillService._next_bill_number_locked(),
            patient=patient,
            appointment_id=appointment_id,
            status=BillStatus.PENDING,
            due_date=due_date or (timezone.localdate() + timedelta(days=settings.HMS_BILL_DUE_DAYS)),
            notes=notes or "",
            created_by_id=actor_user_id,
            amount_paid=ZERO,
            balance_due=totals["grand_total"],
            **totals,
        )
        _write_items(bill, clean)

        AuditService.log(
            event_code="bill.created",
            entity_type="Bill",
            entity_id=bill.id,
            actor_user_id=actor_user_id,
            metadata={"bill_number": bill.bill_number, "grand_total": str(bill.grand_total)},
        )
        logger.info("bill created number=%s total=%s", bill.bill_number, bill.grand_total)
        return bill

    @staticmethod
    @transaction.atomic
    def create_from_prescription(
        *,
        actor_user_id: int | None,
        prescription_id: UUID,
        consultation_fee=None,
        discount=ZERO,
        tax_rate=ZERO,
        notes: str = "",
    ) -> Bill:
        rx = Prescription.objects.select_for_update().select_related("patient").get(id=prescription_id)
        if rx.status in (PrescriptionStatus.DRAFT, PrescriptionStatus.CANCELLED):
            raise ValidationError({"prescription": f"Cannot bill a {rx.status.lower()} prescription."})

        if Bill.objects.filter(prescription=rx).exclude(status=BillStatus.WRITTEN_OFF).exists():
            logger.warning("rejected duplicate bill for prescription=%s", rx.prescription_code)
            raise BusinessRuleError("BILL_ALREADY_EXISTS", "A bill already exists for this prescription.")

        default_price = _money(settings.HMS_DEFAULT_MEDICATION_PRICE)
        items: list[dict] = []

        fee = _money(consultation_fee) if consultation_fee else ZERO
        if fee > ZERO:
            items.append(
                {
                    "item_type": BillItemType.CONSULTATION,
                    "code": "CONSULT-001",
                    "description": "Consultation fee",
                    "quantity": 1,
                    "unit_price": fee,
                }
            )

        for it in rx.items.select_related("medication").order_by("created_at"):
            med = it.medication
            price = med.selling_price if med.selling_price else default_price
            items.append(
                {
                    "item_type": BillItemType.MEDICATION,
                    "code": med.code,
                    "description": f"{med.name} {med.strength}".strip() + f" ({it.dosage}, {it.frequency})",
                    "quantity": it.total_quantity,
                    "unit_price": price,
                    "medication_id": med.id,
                }
            )

        clean = _clean_items(items)
        totals = compute_totals(clean, discount=discount, tax_rate=tax_rate)

        now = timezone.now()
        bill = Bill.objects.create(
            bill_number=BillService._next_bill_number_locked(),
            patient=rx.patient,
            prescription=rx,
            appointment_id=rx.appointment_id,
            status=BillStatus.ISSUED,
            issued_at=now,
            due_date=timezone.localdate() + timedelta(days=settings.HMS_BILL_DUE_DAYS),
            notes=notes or f"Pharmacy bill for prescription {rx.prescription_code}",
            created_by_id=actor_user_id,
            amount_paid=ZERO,
            balance_due=totals["grand_total"],
            **totals,
        )
        _write_items(bill, clean)

        rx.bill_created = True
        rx.save(update_fields=["bill_created", "updated_at"])

        AuditService.log(
            event_code="bill.created_from_prescription",
            entity_type="Bill",
            entity_id=bill.id,
            actor_user_id=actor_user_id,
            metadata={"prescription_id": str(rx.id), "grand_total": str(bill.grand_total)},
        )
        logger.info("bill %s issued from prescription %s", bill.bill_number, rx.prescription_code)
        return bill

    @staticmethod
    @transaction.atomic
    def update_bill(*, actor_user_id: int | None, bill_id: UUID, data: dict) -> Bill:
        bill = BillService._get_locked(bill_id)
        BillService._ensure_open(bill)

        data = data or {}
        items = data.get("items")
        if items is not None:
            clean = _clean_items(items)
        else:
            clean = [
                {"quantity": i.quantity, "unit_price": i.unit_price}
                for i in bill.items.all()
            ]

        totals = compute_totals(
            clean,
            discount=data.get("discount", bill.discount_total),
            tax_rate=data.get("tax_rate", bill.tax_rate),
        )
        if totals["grand_total"] < bill.amount_paid:
            raise ValidationError({"grand_total": "New total cannot be less than the amount already paid."})

        if items is not None:
            bill.items.all().delete()
            _write_items(bill, clean)

        for k, v in totals.items():
            setattr(bill, k, v)
        bill.balance_due = (bill.grand_total - bill.amount_paid).quantize(CENTS)
        if "notes" in data:
            bill.notes = data["notes"] or ""
        if "due_date" in data:
            bill.due_date = data["due_date"]
        if bill.amount_paid > ZERO:
            bill.status = _status_after_payment(bill)
            if bill.status == BillStatus.PAID and bill.paid_at is None:
                bill.paid_at = timezone.now()
        bill.save()

        AuditService.log(
            event_code="bill.updated",
            entity_type="Bill",
            entity_id=bill.id,
            actor_user_id=actor_user_id,
            metadata={"updated_fields": sorted(data.keys()), "grand_total": str(bill.grand_total)},
        )
        return bill

    @staticmethod
    @transaction.atomic
    def void(*, actor_user_id: int | None, bill_id: UUID, reason: str = "") -> Bill:
        bill = BillService._get_locked(bill_id)
        if bill.status == BillStatus.PAID:
            logger.warning("rejected void of paid bill %s", bill.bill_number)
            raise BusinessRuleError("BILL_ALREADY_PAID", "Cannot void a paid bill.")
        if bill.status == BillStatus.WRITTEN_OFF:
            raise BusinessRuleError("BILL_VOIDED", "The bill is already voided.")

        bill.mark_void()
        if reason:
            bill.notes = (bill.notes + "\n" + f"Void: {reason}").strip()
        bill.save(update_fields=["status", "voided_at", "notes", "updated_at"])

        AuditService.log(
            event_code="bill.voided",
            entity_type="Bill",
            entity_id=bill.id,
            actor_user_id=actor_user_id,
            metadata={"reason": reason},
        )
        logger.info("bill voided number=%s", bill.bill_number)
        return bill

    @staticmethod
    @transaction.atomic
    def reconcile(*, bill_id: UUID, commit: bool = True, actor_user_id: int | None = None) -> dict:
        """
        Recompute amount_paid / balance_due / status from the payment rows.
        Returns a before/after summary; with commit=False nothing is written.
        """
        bill = BillService._get_locked(bill_id)
        before = {
            "amount_paid": bill.amount_paid,
            "balance_due": bill.balance_due,
            "status": bill.status,
        }

        paid = _money(bill.payments.aggregate(s=Sum("amount"))["s"] or ZERO)
        bill.amount_paid = paid
        bill.balance_due = max(bill.grand_total - paid, ZERO).quantize(CENTS)
        if bill.status != BillStatus.WRITTEN_OFF:
            bill.status = _status_after_payment(bill)

        after = {
            "amount_paid": bill.amount_paid,
            "balance_due": bill.balance_due,
            "status": bill.status,
        }
        changed = before != after

        if changed and commit:
            if bill.status == BillStatus.PAID and bill.paid_at is None:
                bill.paid_at = timezone.now()
            bill.save(update_fields=["amount_paid", "balance_due", "status", "paid_at", "updated_at"])
            AuditService.log(
                event_code="bill.reconciled",
                entity_type="Bill",
                entity_id=bill.id,
                actor_user_id=actor_user_id,
                metadata={k: str(v) for k, v in after.items()},
            )
            logger.info("bill reconciled number=%s %s -> %s", bill.bill_number, before["status"], bill.status)

        return {"bill_number": bill.bill_number, "changed": changed, "before": before, "after": after}


class PaymentService:
    @staticmethod
    @transaction.atomic
    def process_payment(
        *,
        actor_user_id: int | None,
        bill_id: UUID,
        amount: Decimal,
        method: str = PaymentMethod.CASH,
        reference: str = "",
        notes: str = "",
    ) -> Payment:
        bill = BillService._get_locked(bill_id)
        BillService._ensure_open(bill)

        amount = _money(amount)
        if amount <= ZERO:
            raise ValidationError({"amount": "Payment amount must be > 0."})
        if amount > bill.balance_due:
            logger.warning(
                "rejected payment bill=%s amount=%s balance=%s", bill.bill_number, amount, bill.balance_due
            )
            raise BusinessRuleError(
                "PAYMENT_AMOUNT_EXCEEDED",
                f"Payment amount exceeds the balance due ({bill.balance_due}).",
            )

        pay = Payment.objects.create(
            bill=bill,
            amount=amount,
            method=method,
            reference=reference or "",
            notes=notes or "",
            recorded_by_id=actor_user_id,
        )

        bill.amount_paid = (bill.amount_paid or ZERO) + pay.amount
        bill.balance_due = (bill.grand_total - bill.amount_paid).quantize(CENTS)

        if bill.amount_paid >= bill.grand_total:
            bill.status = BillStatus.PAID
            bill.paid_at = timezone.now()
            bill.balance_due = ZERO
        else:
            bill.status = BillStatus.PARTIAL

        bill.save(update_fields=["status", "amount_paid", "balance_due", "paid_at", "updated_at"])

        AuditService.log(
            event_code="bill.payment_recorded",
            entity_type="Bill",
            entity_id=bill.id,
            actor_user_id=actor_user_id,
            metadata={"payment_id": str(pay.id), "amount": str(pay.amount), "method": method, "status": bill.status},
        )
        logger.info("payment recorded bill=%s amount=%s -> %s", bill.bill_number, pay.amount, bill.status)
        return pay
