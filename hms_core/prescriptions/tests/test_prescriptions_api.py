# backend/hms_core/prescriptions/tests/test_prescriptions_api.py
import pytest

from hms_core.prescriptions.models import Prescription

pytestmark = pytest.mark.django_db

URL = "/api/v1/prescriptions/"


def _payload(patient, medication, qty=10):
    return {
        "patient_id": str(patient.id),
        "diagnosis": "Sinusitis",
        "items": [
            {
                "medication_id": str(medication.id),
                "dosage": "500mg",
                "frequency": "2x daily",
                "duration_days": 5,
                "total_quantity": qty,
            }
        ],
    }


def test_doctor_creates_prescription(client_for, doctor, patient, medication):
    r = client_for(doctor).post(URL, _payload(patient, medication), format="json")

    assert r.status_code == 201, r.data
    assert r.data["status"] == "ACTIVE"
    assert len(r.data["items"]) == 1


def test_create_is_idempotent(client_for, doctor, patient, medication):
    client = client_for(doctor)
    r1 = client.post(URL, _payload(patient, medication), format="json", HTTP_IDEMPOTENCY_KEY="rx-1")
    r2 = client.post(URL, _payload(patient, medication), format="json", HTTP_IDEMPOTENCY_KEY="rx-1")

    assert r1.data["id"] == r2.data["id"]
    assert Prescription.objects.count() == 1


def test_pharmacist_cannot_prescribe(client_for, pharmacist, patient, medication):
    r = client_for(pharmacist).post(URL, _payload(patient, medication), format="json")
    assert r.status_code == 403


def test_pharmacist_dispenses_via_api(client_for, doctor, pharmacist, patient, medication):
    rx = client_for(doctor).post(URL, _payload(patient, medication, qty=3), format="json").data

    r = client_for(pharmacist).post(
        f"{URL}{rx['id']}/dispense/",
        {"medication_id": str(medication.id), "quantity": 3},
        format="json",
    )
    assert r.status_code == 200, r.data
    assert r.data["dispense_status"] == "DISPENSED"


def test_patient_sees_only_own_prescriptions(client_for, doctor, patient_user, other_patient, medication):
    doc = client_for(doctor)
    doc.post(URL, _payload(patient_user.patient, medication, qty=1), format="json")
    theirs = doc.post(URL, _payload(other_patient, medication, qty=1), format="json").data

    client = client_for(patient_user)
    r = client.get(URL)
    assert r.status_code == 200
    assert r.data["count"] == 1

    r = client.get(f"{URL}{theirs['id']}/")
    assert r.status_code == 403


def test_interaction_check_by_name(client_for, doctor):
    r = client_for(doctor).post(f"{URL}interactions/", {"names": ["warfarin", "ibuprofen"]}, format="json")
    assert r.status_code == 200
    assert r.data[0]["severity"] == "MAJOR"


def test_interaction_check_requires_input(client_for, doctor):
    r = client_for(doctor).post(f"{URL}interactions/", {}, format="json")
    assert r.status_code == 400


def test_medication_soft_delete_and_low_stock(client_for, pharmacist, medication):
    client = client_for(pharmacist)

    r = client.post(f"/api/v1/medications/{medication.id}/adjust-stock/", {"delta": -92}, format="json")
    assert r.status_code == 200
    assert r.data["stock_quantity"] == 8

    r = client.get("/api/v1/medications/low-stock/")
    assert [row["id"] for row in r.data["results"]] == [str(medication.id)]

    r = client.delete(f"/api/v1/medications/{medication.id}/")
    assert r.status_code == 200
    assert r.data["is_active"] is False
