# backend/hms_core/billing/tests/test_billing_services.py
from decimal import Decimal

import pytest
from django.core.management import call_command
from rest_framework.exceptions import ValidationError

from hms_core.billing.models import Bill, BillStatus, Payment
from hms_core.billing.services import BillService, PaymentService, compute_totals
from hms_core.common.api.exceptions import BusinessRuleError
from hms_core.prescriptions.models import Medication
from hms_core.prescriptions.services import PrescriptionService

pytestmark = pytest.mark.django_db


def _bill(patient, actor, *, items=None, **kwargs):
    return BillService.create_bill(
        actor_user_id=actor.id,
        patient_id=patient.id,
        items=items or [{"description": "X-ray", "quantity": 1, "unit_price": "200.00"}],
        **kwargs,
    )


def test_compute_totals_applies_tax_after_discount():
    totals = compute_totals(
        [{"quantity": 2, "unit_price": "50.00"}, {"quantity": 1, "unit_price": "100.00"}],
        discount="20.00",
        tax_rate="10",
    )
    assert totals["subtotal"] == Decimal("200.00")
    assert totals["tax_total"] == Decimal("18.00")
    assert totals["grand_total"] == Decimal("198.00")


def test_compute_totals_rejects_discount_above_subtotal():
    with pytest.raises(ValidationError):
        compute_totals([{"quantity": 1, "unit_price": "10.00"}], discount="11.00")


def test_bill_numbers_are_sequential(patient, billing_staff):
    first = _bill(patient, billing_staff)
    second = _bill(patient, billing_staff)

    assert first.bill_number == "HD000001"
    assert second.bill_number == "HD000002"
    assert first.status == BillStatus.PENDING
    assert first.balance_due == first.grand_total


def test_bill_numbers_keep_counting_past_six_digits(patient, billing_staff):
    a = _bill(patient, billing_staff)
    b = _bill(patient, billing_staff)
    Bill.objects.filter(id=a.id).update(bill_number="HD1000000")
    Bill.objects.filter(id=b.id).update(bill_number="HD999999")

    assert _bill(patient, billing_staff).bill_number == "HD1000001"


def test_partial_then_full_payment(patient, billing_staff):
    bill = _bill(patient, billing_staff)

    PaymentService.process_payment(actor_user_id=billing_staff.id, bill_id=bill.id, amount=Decimal("50"))
    bill.refresh_from_db()
    assert bill.status == BillStatus.PARTIAL
    assert bill.balance_due == Decimal("150.00")

    PaymentService.process_payment(actor_user_id=billing_staff.id, bill_id=bill.id, amount=Decimal("150"))
    bill.refresh_from_db()
    assert bill.status == BillStatus.PAID
    assert bill.balance_due == Decimal("0.00")
    assert bill.paid_at is not None


def test_overpayment_rejected(patient, billing_staff):
    bill = _bill(patient, billing_staff)
    with pytest.raises(BusinessRuleError) as exc:
        PaymentService.process_payment(actor_user_id=billing_staff.id, bill_id=bill.id, amount=Decimal("200.01"))
    assert exc.value.error_code == "PAYMENT_AMOUNT_EXCEEDED"
    assert not Payment.objects.exists()


def test_payment_on_paid_or_voided_bill(patient, billing_staff):
    paid = _bill(patient, billing_staff)
    PaymentService.process_payment(actor_user_id=billing_staff.id, bill_id=paid.id, amount=Decimal("200"))
    with pytest.raises(BusinessRuleError) as exc:
        PaymentService.process_payment(actor_user_id=billing_staff.id, bill_id=paid.id, amount=Decimal("1"))
    assert exc.value.error_code == "BILL_ALREADY_PAID"

    voided = _bill(patient, billing_staff)
    BillService.void(actor_user_id=billing_staff.id, bill_id=voided.id, reason="Duplicate")
    with pytest.raises(BusinessRuleError) as exc:
        PaymentService.process_payment(actor_user_id=billing_staff.id, bill_id=voided.id, amount=Decimal("1"))
    assert exc.value.error_code == "BILL_VOIDED"


def test_void_paid_bill_is_rejected(patient, billing_staff):
    bill = _bill(patient, billing_staff)
    PaymentService.process_payment(actor_user_id=billing_staff.id, bill_id=bill.id, amount=Decimal("200"))
    with pytest.raises(BusinessRuleError):
        BillService.void(actor_user_id=billing_staff.id, bill_id=bill.id, reason="Oops")


def test_update_cannot_drop_total_below_paid(patient, billing_staff):
    bill = _bill(patient, billing_staff)
    PaymentService.process_payment(actor_user_id=billing_staff.id, bill_id=bill.id, amount=Decimal("150"))

    with pytest.raises(ValidationError):
        BillService.update_bill(actor_user_id=billing_staff.id, bill_id=bill.id, data={"discount": Decimal("60")})

    bill = BillService.update_bill(actor_user_id=billing_staff.id, bill_id=bill.id, data={"discount": Decimal("50")})
    assert bill.grand_total == Decimal("150.00")
    assert bill.status == BillStatus.PAID


def test_from_prescription_puts_consultation_first_and_uses_default_price(patient, doctor, pharmacist, medication):
    unpriced = Medication.objects.create(code="MED-NOPRICE", name="Cetirizine", stock_quantity=20)
    rx = PrescriptionService.create(
        actor_user_id=doctor.id,
        patient_id=patient.id,
        items=[
            {"medication_id": medication.id, "dosage": "1 tab", "frequency": "bid", "total_quantity": 2},
            {"medication_id": unpriced.id, "dosage": "1 tab", "frequency": "qd", "total_quantity": 3},
        ],
    )

    bill = BillService.create_from_prescription(
        actor_user_id=pharmacist.id, prescription_id=rx.id, consultation_fee=Decimal("50000")
    )

    items = list(bill.items.order_by("created_at", "id"))
    codes = {i.code: i for i in items}
    assert "CONSULT-001" in codes
    assert codes["MED-NOPRICE"].unit_price == Decimal("10000.00")
    assert codes["MED-AMOX"].line_total == Decimal("30000.00")
    assert bill.grand_total == Decimal("110000.00")
    assert bill.status == BillStatus.ISSUED
    assert bill.due_date is not None

    rx.refresh_from_db()
    assert rx.bill_created is True

    with pytest.raises(BusinessRuleError) as exc:
        BillService.create_from_prescription(actor_user_id=pharmacist.id, prescription_id=rx.id)
    assert exc.value.error_code == "BILL_ALREADY_EXISTS"


def test_reconcile_command_repairs_drift(patient, billing_staff):
    bill = _bill(patient, billing_staff)
    PaymentService.process_payment(actor_user_id=billing_staff.id, bill_id=bill.id, amount=Decimal("80"))
    Bill.objects.filter(id=bill.id).update(amount_paid=Decimal("0"), balance_due=Decimal("200"), status=BillStatus.PENDING)

    dry = BillService.reconcile(bill_id=bill.id, commit=False)
    assert dry["changed"] is True
    bill.refresh_from_db()
    assert bill.status == BillStatus.PENDING

    call_command("reconcile_bill_payments")

    bill.refresh_from_db()
    assert bill.amount_paid == Decimal("80.00")
    assert bill.balance_due == Decimal("120.00")
    assert bill.status == BillStatus.PARTIAL
