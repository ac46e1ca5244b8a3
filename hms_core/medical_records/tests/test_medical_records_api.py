# backend/hms_core/medical_records/tests/test_medical_records_api.py
import pytest

from hms_core.medical_records.services import MedicalRecordService

pytestmark = pytest.mark.django_db

BASE = "/api/v1/medical-records/"


def test_get_before_any_record_is_404(client_for, doctor, patient):
    r = client_for(doctor).get(f"{BASE}patient/{patient.id}/")
    assert r.status_code == 404
    assert r.data["error"]["code"] == "not_found"


def test_patch_creates_record(client_for, doctor, patient):
    client = client_for(doctor)
    r = client.patch(f"{BASE}patient/{patient.id}/", {"blood_type": "A+"}, format="json")
    assert r.status_code == 200, r.data
    assert r.data["blood_type"] == "A+"

    r = client.get(f"{BASE}patient/{patient.id}/")
    assert r.status_code == 200
    assert r.data["total_visits"] == 0


def test_add_and_list_visits(client_for, doctor, patient):
    client = client_for(doctor)
    url = f"{BASE}patient/{patient.id}/visits/"

    r = client.post(
        url,
        {
            "chief_complaint": "Fever",
            "vital_signs": {"temperature": 38.6, "weight_kg": 60, "height_cm": 160},
            "diagnoses": [{"description": "Influenza"}],
        },
        format="json",
    )
    assert r.status_code == 201, r.data
    assert r.data["vital_signs"]["bmi"] == 23.4
    visit_id = r.data["id"]

    r = client.get(url)
    assert r.status_code == 200
    assert r.data["count"] == 1

    r = client.post(f"{BASE}visits/{visit_id}/complete/")
    assert r.status_code == 200
    assert r.data["status"] == "COMPLETED"


def test_patient_reads_own_record_but_not_others(client_for, doctor, patient_user, other_patient):
    MedicalRecordService.find_or_create_for_patient(patient_id=patient_user.patient.id)
    MedicalRecordService.find_or_create_for_patient(patient_id=other_patient.id)

    client = client_for(patient_user)
    assert client.get(f"{BASE}patient/{patient_user.patient.id}/").status_code == 200
    assert client.get(f"{BASE}patient/{other_patient.id}/").status_code == 403


def test_patient_cannot_add_visits(client_for, patient_user):
    r = client_for(patient_user).post(
        f"{BASE}patient/{patient_user.patient.id}/visits/", {"chief_complaint": "x"}, format="json"
    )
    assert r.status_code == 403


def test_diagnosis_search_requires_two_chars(client_for, doctor, patient):
    MedicalRecordService.add_visit(
        actor_user_id=doctor.id, patient_id=patient.id, diagnoses=[{"description": "Hypertension"}]
    )
    client = client_for(doctor)

    assert client.get(f"{BASE}search/diagnosis/", {"q": "h"}).status_code == 400

    r = client.get(f"{BASE}search/diagnosis/", {"q": "hyper"})
    assert r.status_code == 200
    assert r.data["count"] == 1
