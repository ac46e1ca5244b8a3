# backend/hms_core/lab/tests/test_lab_api.py
import pytest

pytestmark = pytest.mark.django_db

ORDERS = "/api/v1/lab/orders/"
TESTS = "/api/v1/lab/tests/"


def _create_order(client, patient, priority="ROUTINE"):
    r = client.post(
        ORDERS,
        {
            "patient_id": str(patient.id),
            "priority": priority,
            "clinical_notes": "Fatigue",
            "tests": [{"test_code": "CBC", "test_name": "Complete blood count", "sample_type": "blood"}],
        },
        format="json",
    )
    assert r.status_code == 201, r.data
    return r.data


def test_order_to_approved_result(client_for, doctor, lab_tech, patient):
    order = _create_order(client_for(doctor), patient)
    test_id = order["tests"][0]["id"]
    assert order["status"] == "ORDERED"

    tech = client_for(lab_tech)
    assert tech.post(f"{TESTS}{test_id}/collect-sample/").status_code == 200
    assert tech.post(f"{TESTS}{test_id}/start/").status_code == 200

    r = tech.post(
        f"{TESTS}{test_id}/result/",
        {"result_payload": {"value": 2.0, "reference_low": 4.0, "reference_high": 11.0, "critical_low": 2.5}},
        format="json",
    )
    assert r.status_code == 200, r.data
    assert r.data["is_critical"] is True
    assert r.data["version"] == 1

    r = tech.patch(
        f"{TESTS}{test_id}/result/",
        {"result_payload": {"value": 5.0, "reference_low": 4.0, "reference_high": 11.0}},
        format="json",
    )
    assert r.status_code == 200, r.data
    assert r.data["version"] == 2
    assert r.data["is_critical"] is False

    r = client_for(doctor).post(f"{TESTS}{test_id}/approve/")
    assert r.status_code == 200
    assert r.data["status"] == "APPROVED"

    r = client_for(doctor).get(f"{ORDERS}{order['id']}/")
    assert r.data["status"] == "COMPLETED"


def test_lab_tech_cannot_approve(client_for, doctor, lab_tech, patient):
    order = _create_order(client_for(doctor), patient)
    r = client_for(lab_tech).post(f"{TESTS}{order['tests'][0]['id']}/approve/")
    assert r.status_code == 403


def test_cancel_requires_reason(client_for, doctor, patient):
    client = client_for(doctor)
    order = _create_order(client, patient)

    r = client.post(f"{ORDERS}{order['id']}/cancel/", {}, format="json")
    assert r.status_code == 400

    r = client.post(f"{ORDERS}{order['id']}/cancel/", {"reason": "Duplicate order"}, format="json")
    assert r.status_code == 200
    assert r.data["status"] == "CANCELLED"


def test_pending_queue_and_patient_scope(client_for, doctor, lab_tech, patient_user, other_patient):
    doc = client_for(doctor)
    _create_order(doc, patient_user.patient)
    _create_order(doc, other_patient, priority="STAT")

    r = client_for(lab_tech).get(f"{TESTS}pending/")
    assert r.status_code == 200
    assert r.data["count"] == 2
    assert r.data["results"][0]["patient"] == str(other_patient.id)

    r = client_for(patient_user).get(ORDERS)
    assert r.data["count"] == 1

    r = client_for(patient_user).get(f"{TESTS}patient/{other_patient.id}/")
    assert r.status_code == 403
