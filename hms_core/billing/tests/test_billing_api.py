# backend/hms_core/billing/tests/test_billing_api.py
from decimal import Decimal

import pytest

from hms_core.billing.models import Payment
from hms_core.billing.services import BillService, PaymentService

pytestmark = pytest.mark.django_db

URL = "/api/v1/bills/"


def _bill(patient, actor, price="300.00"):
    return BillService.create_bill(
        actor_user_id=actor.id,
        patient_id=patient.id,
        items=[{"description": "Blood panel", "quantity": 1, "unit_price": price}],
    )


def test_create_bill_via_api(client_for, billing_staff, patient):
    r = client_for(billing_staff).post(
        URL,
        {
            "patient_id": str(patient.id),
            "items": [
                {"description": "Consultation", "item_type": "CONSULTATION", "unit_price": "100.00"},
                {"description": "Bandage", "quantity": "3", "unit_price": "5.00"},
            ],
            "tax_rate": "10",
        },
        format="json",
    )
    assert r.status_code == 201, r.data
    assert r.data["subtotal"] == "115.00"
    assert r.data["grand_total"] == "126.50"
    assert len(r.data["items"]) == 2


def test_payment_post_is_idempotent(client_for, billing_staff, patient):
    bill = _bill(patient, billing_staff)
    client = client_for(billing_staff)
    url = f"{URL}{bill.id}/payments/"

    r1 = client.post(url, {"amount": "100.00", "method": "CARD"}, format="json", HTTP_IDEMPOTENCY_KEY="pay-1")
    r2 = client.post(url, {"amount": "100.00", "method": "CARD"}, format="json", HTTP_IDEMPOTENCY_KEY="pay-1")

    assert r1.status_code == 201, r1.data
    assert r1.data["id"] == r2.data["id"]
    assert Payment.objects.filter(bill=bill).count() == 1


def test_overpayment_error_code(client_for, billing_staff, patient):
    bill = _bill(patient, billing_staff)
    r = client_for(billing_staff).post(f"{URL}{bill.id}/payments/", {"amount": "999.00"}, format="json")

    assert r.status_code == 400
    assert r.data["error"]["code"] == "PAYMENT_AMOUNT_EXCEEDED"


def test_void_then_pay_reports_voided(client_for, billing_staff, patient):
    bill = _bill(patient, billing_staff)
    client = client_for(billing_staff)

    r = client.post(f"{URL}{bill.id}/void/", {"reason": "Entered twice"}, format="json")
    assert r.status_code == 200
    assert r.data["status"] == "WRITTEN_OFF"

    r = client.post(f"{URL}{bill.id}/payments/", {"amount": "1.00"}, format="json")
    assert r.data["error"]["code"] == "BILL_VOIDED"


def test_doctor_cannot_record_payment(client_for, doctor, billing_staff, patient):
    bill = _bill(patient, billing_staff)
    r = client_for(doctor).post(f"{URL}{bill.id}/payments/", {"amount": "10.00"}, format="json")
    assert r.status_code == 403


def test_patient_sees_only_own_bills(client_for, billing_staff, patient_user, other_patient):
    mine = _bill(patient_user.patient, billing_staff)
    theirs = _bill(other_patient, billing_staff)

    client = client_for(patient_user)
    r = client.get(URL)
    assert [row["id"] for row in r.data["results"]] == [str(mine.id)]

    r = client.get(f"{URL}{theirs.id}/")
    assert r.status_code == 403


def test_revenue_stats(client_for, billing_staff, patient):
    bill = _bill(patient, billing_staff, price="400.00")
    PaymentService.process_payment(actor_user_id=billing_staff.id, bill_id=bill.id, amount=Decimal("400"))
    _bill(patient, billing_staff)

    r = client_for(billing_staff).get(f"{URL}revenue-stats/", {"period": "month"})
    assert r.status_code == 200
    assert r.data["total_revenue"] == "400.00"
    assert r.data["total_bills"] == 1
