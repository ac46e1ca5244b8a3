# backend/hms_core/prescriptions/tests/test_prescription_services.py
from decimal import Decimal

import pytest
from rest_framework.exceptions import ValidationError

from hms_core.medical_records.models import Visit, VisitStatus
from hms_core.prescriptions.interactions import check_interactions
from hms_core.prescriptions.models import DispenseRecord, DispenseStatus, Medication, PrescriptionStatus
from hms_core.prescriptions.services import MedicationService, PrescriptionService

pytestmark = pytest.mark.django_db


def _item(med, qty=10, **extra):
    row = {"medication_id": med.id, "dosage": "500mg", "frequency": "3x daily", "total_quantity": qty}
    row.update(extra)
    return row


def _prescribe(patient, doctor, items, **kwargs):
    return PrescriptionService.create(
        actor_user_id=doctor.id,
        patient_id=patient.id,
        items=items,
        diagnosis=kwargs.pop("diagnosis", "Acute bronchitis"),
        **kwargs,
    )


def test_create_is_active_and_records_a_visit(patient, doctor, medication):
    rx = _prescribe(patient, doctor, [_item(medication)])

    assert rx.status == PrescriptionStatus.ACTIVE
    assert rx.dispense_status == DispenseStatus.PENDING
    assert rx.doctor_id == doctor.id
    assert rx.items.count() == 1

    visit = Visit.objects.get(prescription_id=rx.id)
    assert visit.status == VisitStatus.COMPLETED
    assert visit.record.patient_id == patient.id
    assert visit.diagnoses.first().description == "Acute bronchitis"


def test_create_rejects_insufficient_stock(patient, doctor, medication):
    with pytest.raises(ValidationError):
        _prescribe(patient, doctor, [_item(medication, qty=101)])


def test_create_rejects_inactive_medication(patient, doctor, medication):
    Medication.objects.filter(id=medication.id).update(is_active=False)
    with pytest.raises(ValidationError):
        _prescribe(patient, doctor, [_item(medication)])


def test_create_requires_items(patient, doctor):
    with pytest.raises(ValidationError):
        _prescribe(patient, doctor, [])


def test_interaction_warnings_are_stored(patient, doctor):
    warfarin = Medication.objects.create(code="WAR", name="Warfarin", stock_quantity=50)
    aspirin = Medication.objects.create(code="ASP", name="Aspirin 81mg", stock_quantity=50)

    rx = _prescribe(patient, doctor, [_item(warfarin, qty=5), _item(aspirin, qty=5)])

    assert len(rx.interaction_warnings) == 1
    assert rx.interaction_warnings[0]["severity"] == "MAJOR"


def test_check_interactions_accepts_plain_names():
    assert check_interactions(["Simvastatin", "clarithromycin 250mg"])
    assert check_interactions(["paracetamol", "amoxicillin"]) == []


def test_partial_then_full_dispense(patient, doctor, pharmacist, medication):
    rx = _prescribe(patient, doctor, [_item(medication, qty=10)])

    rx = PrescriptionService.dispense(
        actor_user_id=pharmacist.id, prescription_id=rx.id, medication_id=medication.id, quantity=4
    )
    assert rx.dispense_status == DispenseStatus.PARTIAL
    assert rx.status == PrescriptionStatus.ACTIVE

    rx = PrescriptionService.dispense(
        actor_user_id=pharmacist.id, prescription_id=rx.id, medication_id=medication.id, quantity=6
    )
    assert rx.dispense_status == DispenseStatus.DISPENSED
    assert rx.status == PrescriptionStatus.COMPLETED

    medication.refresh_from_db()
    assert medication.stock_quantity == 90


def test_dispense_more_than_prescribed_is_rejected(patient, doctor, pharmacist, medication):
    rx = _prescribe(patient, doctor, [_item(medication, qty=5)])
    with pytest.raises(ValidationError):
        PrescriptionService.dispense(
            actor_user_id=pharmacist.id, prescription_id=rx.id, medication_id=medication.id, quantity=6
        )


def test_dispense_spans_duplicate_medication_lines(patient, doctor, pharmacist, medication):
    rx = _prescribe(patient, doctor, [_item(medication, qty=5), _item(medication, qty=5, dosage="250mg")])

    rx = PrescriptionService.dispense(
        actor_user_id=pharmacist.id, prescription_id=rx.id, medication_id=medication.id, quantity=8
    )
    assert rx.dispense_status == DispenseStatus.PARTIAL
    assert sorted(rx.items.values_list("dispensed_quantity", flat=True)) == [3, 5]
    assert DispenseRecord.objects.filter(item__prescription=rx).count() == 2

    with pytest.raises(ValidationError):
        PrescriptionService.dispense(
            actor_user_id=pharmacist.id, prescription_id=rx.id, medication_id=medication.id, quantity=3
        )

    rx = PrescriptionService.dispense(
        actor_user_id=pharmacist.id, prescription_id=rx.id, medication_id=medication.id, quantity=2
    )
    assert rx.dispense_status == DispenseStatus.DISPENSED
    medication.refresh_from_db()
    assert medication.stock_quantity == 90

def test_cancel_blocks_dispense(patient, doctor, pharmacist, medication):
    rx = _prescribe(patient, doctor, [_item(medication)])
    rx = PrescriptionService.cancel(actor_user_id=doctor.id, prescription_id=rx.id, reason="Allergy reported")
    assert rx.status == PrescriptionStatus.CANCELLED
    assert "Cancelled: Allergy reported" in rx.notes

    with pytest.raises(ValidationError):
        PrescriptionService.dispense(
            actor_user_id=pharmacist.id, prescription_id=rx.id, medication_id=medication.id, quantity=1
        )


def test_draft_can_be_edited_then_activated(patient, doctor, medication):
    rx = _prescribe(patient, doctor, [_item(medication, qty=2)], as_draft=True)
    assert rx.status == PrescriptionStatus.DRAFT

    rx = PrescriptionService.update(
        actor_user_id=doctor.id,
        prescription_id=rx.id,
        data={"items": [_item(medication, qty=7)], "activate": True},
    )
    assert rx.status == PrescriptionStatus.ACTIVE
    assert rx.items.get().total_quantity == 7

    with pytest.raises(ValidationError):
        PrescriptionService.update(actor_user_id=doctor.id, prescription_id=rx.id, data={"notes": "late edit"})


def test_coverage_uses_insurance_price(medication):
    Medication.objects.filter(id=medication.id).update(insurance_covered=True, insurance_price=Decimal("5000.00"))

    info = PrescriptionService.check_coverage(medication_id=medication.id)
    assert info["covered"] is True
    assert info["patient_pays"] == Decimal("5000.00")
    assert info["insurance_pays"] == Decimal("10000.00")


def test_adjust_stock_cannot_go_negative(pharmacist, medication):
    med = MedicationService.adjust_stock(actor_user_id=pharmacist.id, medication_id=medication.id, delta=-95)
    assert med.stock_quantity == 5
    assert med.is_low_stock

    with pytest.raises(ValidationError):
        MedicationService.adjust_stock(actor_user_id=pharmacist.id, medication_id=medication.id, delta=-6)


def test_created_event_payload_is_plain_data(patient, doctor, medication, monkeypatch):
    from hms_core.common import events

    registry = events.defaultdict(list, {k: list(v) for k, v in events._registry.items()})
    monkeypatch.setattr(events, "_registry", registry)
    seen = []
    events.subscribe("prescription.created")(seen.append)

    rx = _prescribe(patient, doctor, [_item(medication)], diagnosis="Sinusitis")

    payload = seen[0]
    assert payload["prescription_id"] == str(rx.id)
    assert payload["patient_id"] == str(patient.id)
    assert payload["diagnosis"] == "Sinusitis"
    assert all(v is None or isinstance(v, (str, int)) for v in payload.values())
