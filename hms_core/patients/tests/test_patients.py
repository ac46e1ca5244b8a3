# backend/hms_core/patients/tests/test_patients.py
import pytest
from rest_framework.exceptions import ValidationError

from hms_core.audit.models import AuditEvent
from hms_core.patients.models import Patient
from hms_core.patients.selectors import patient_for_user, search_patients
from hms_core.patients.services import PatientService

pytestmark = pytest.mark.django_db

URL = "/api/v1/patients/"


def test_create_patient_assigns_code(receptionist):
    p = PatientService.create_patient(
        actor_user_id=receptionist.id,
        full_name="  Tran Van An ",
        phone="0901234567",
        blood_type="O+",
        not_a_field="ignored",
    )
    assert p.patient_code.startswith("PT")
    assert len(p.patient_code) == 10
    assert p.full_name == "Tran Van An"
    assert p.blood_type == "O+"
    assert AuditEvent.objects.filter(event_code="patient.created", entity_id=p.id).exists()


def test_create_patient_requires_name(receptionist):
    with pytest.raises(ValidationError):
        PatientService.create_patient(actor_user_id=receptionist.id, full_name="   ")


def test_update_only_touches_known_fields(receptionist, patient):
    PatientService.update_patient(
        actor_user_id=receptionist.id,
        patient_id=patient.id,
        data={"phone": "0999", "patient_code": "HACKED"},
    )
    patient.refresh_from_db()
    assert patient.phone == "0999"
    assert patient.patient_code != "HACKED"


def test_deactivate_hides_from_search(receptionist, patient, other_patient):
    PatientService.deactivate_patient(actor_user_id=receptionist.id, patient_id=patient.id)
    PatientService.deactivate_patient(actor_user_id=receptionist.id, patient_id=patient.id)

    assert list(search_patients()) == [other_patient]
    assert set(search_patients(include_inactive=True)) == {patient, other_patient}
    assert AuditEvent.objects.filter(event_code="patient.deactivated").count() == 1


def test_patient_for_user(patient_user, doctor):
    assert patient_for_user(patient_user) == patient_user.patient
    assert patient_for_user(doctor) is None


def test_api_create_and_search(client_for, receptionist):
    client = client_for(receptionist)
    r = client.post(URL, {"full_name": "Le Thi Hoa", "phone": "0988000111"}, format="json")
    assert r.status_code == 201, r.data

    r = client.get(URL, {"q": "0988"})
    assert r.status_code == 200
    assert r.data["count"] == 1
    assert r.data["results"][0]["full_name"] == "Le Thi Hoa"


def test_api_patch_and_deactivate(client_for, nurse, patient):
    client = client_for(nurse)

    r = client.patch(f"{URL}{patient.id}/", {"address": "12 Le Loi"}, format="json")
    assert r.status_code == 200
    assert r.data["address"] == "12 Le Loi"

    r = client.delete(f"{URL}{patient.id}/")
    assert r.status_code == 200
    assert r.data["is_active"] is False
    assert Patient.objects.get(id=patient.id).is_active is False


def test_api_malformed_id_is_404(client_for, receptionist):
    r = client_for(receptionist).get(f"{URL}not-a-uuid/")
    assert r.status_code == 404


def test_patients_cannot_browse_registry(client_for, patient_user):
    r = client_for(patient_user).get(URL)
    assert r.status_code == 403


def test_lab_tech_is_read_only(client_for, lab_tech, patient):
    client = client_for(lab_tech)
    assert client.get(f"{URL}{patient.id}/").status_code == 200
    assert client.post(URL, {"full_name": "X"}, format="json").status_code == 403
