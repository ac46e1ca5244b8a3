# backend/hms_core/medical_records/tests/test_medical_record_services.py
import pytest
from rest_framework.exceptions import ValidationError

from hms_core.medical_records.models import MedicalRecord, RecordStatus, VisitStatus
from hms_core.medical_records.selectors import record_for_patient, search_by_diagnosis
from hms_core.medical_records.services import MedicalRecordService, calculate_bmi

pytestmark = pytest.mark.django_db


@pytest.mark.parametrize(
    "weight,height,expected",
    [
        (70, 175, 22.9),
        ("82.5", "180", 25.5),
        (None, 170, None),
        (70, 0, None),
    ],
)
def test_calculate_bmi(weight, height, expected):
    assert calculate_bmi(weight, height) == expected


def test_find_or_create_is_one_record_per_patient(patient, doctor):
    record, created = MedicalRecordService.find_or_create_for_patient(patient_id=patient.id, actor_user_id=doctor.id)
    again, created_again = MedicalRecordService.find_or_create_for_patient(patient_id=patient.id)

    assert created is True
    assert created_again is False
    assert record.id == again.id
    assert record.record_code.startswith("MR")
    assert MedicalRecord.objects.filter(patient=patient).count() == 1


def test_add_visit_computes_bmi_and_diagnoses(patient, doctor):
    visit = MedicalRecordService.add_visit(
        actor_user_id=doctor.id,
        patient_id=patient.id,
        chief_complaint="Chest pain",
        vital_signs={"systolic": 130, "diastolic": 85, "weight_kg": 70, "height_cm": 175},
        diagnoses=[{"code": "I20.9", "description": "Angina pectoris"}],
    )

    assert visit.status == VisitStatus.IN_PROGRESS
    assert visit.doctor_id == doctor.id
    assert visit.vital_signs["bmi"] == 22.9
    assert visit.diagnoses.get().code == "I20.9"

    record = record_for_patient(patient_id=patient.id)
    assert record.visit_count == 1


def test_archived_record_rejects_visits(patient, doctor):
    MedicalRecordService.update_history(
        actor_user_id=doctor.id, patient_id=patient.id, data={"status": RecordStatus.ARCHIVED}
    )
    with pytest.raises(ValidationError):
        MedicalRecordService.add_visit(actor_user_id=doctor.id, patient_id=patient.id)


def test_update_history_ignores_unknown_fields(patient, doctor):
    record = MedicalRecordService.update_history(
        actor_user_id=doctor.id,
        patient_id=patient.id,
        data={"blood_type": "O+", "allergies": [{"allergen": "Penicillin"}], "record_code": "HACK"},
    )
    assert record.blood_type == "O+"
    assert record.allergies == [{"allergen": "Penicillin"}]
    assert record.record_code != "HACK"
    assert record.last_modified_by_id == doctor.id


def test_surgical_history_appends(patient, doctor):
    MedicalRecordService.add_surgical_history(
        actor_user_id=doctor.id, patient_id=patient.id, entry={"procedure": "Appendectomy"}
    )
    record = MedicalRecordService.add_surgical_history(
        actor_user_id=doctor.id, patient_id=patient.id, entry={"procedure": "Tonsillectomy"}
    )
    assert [e["procedure"] for e in record.surgical_history] == ["Appendectomy", "Tonsillectomy"]

    with pytest.raises(ValidationError):
        MedicalRecordService.add_surgical_history(actor_user_id=doctor.id, patient_id=patient.id, entry={})


def test_visit_status_transitions(patient, doctor):
    visit = MedicalRecordService.add_visit(actor_user_id=doctor.id, patient_id=patient.id)
    visit = MedicalRecordService.complete_visit(actor_user_id=doctor.id, visit_id=visit.id)
    assert visit.status == VisitStatus.COMPLETED
    assert visit.completed_at is not None

    with pytest.raises(ValidationError):
        MedicalRecordService.cancel_visit(actor_user_id=doctor.id, visit_id=visit.id)

    other = MedicalRecordService.add_visit(actor_user_id=doctor.id, patient_id=patient.id)
    other = MedicalRecordService.cancel_visit(actor_user_id=doctor.id, visit_id=other.id)
    with pytest.raises(ValidationError):
        MedicalRecordService.update_visit(actor_user_id=doctor.id, visit_id=other.id, data={"notes": "x"})


def test_search_by_diagnosis_scopes_to_patient(patient, other_patient, doctor):
    for p in (patient, other_patient):
        MedicalRecordService.add_visit(
            actor_user_id=doctor.id,
            patient_id=p.id,
            diagnoses=[{"code": "E11", "description": "Type 2 diabetes mellitus"}],
        )

    assert search_by_diagnosis(q="diabetes").count() == 2
    assert search_by_diagnosis(q="e11", patient_user_id=patient.user_id).count() == 1
    assert search_by_diagnosis(q="asthma").count() == 0
