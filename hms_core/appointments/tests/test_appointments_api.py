# backend/hms_core/appointments/tests/test_appointments_api.py
import pytest

from hms_core.appointments.models import Appointment
from hms_core.appointments.services import AppointmentService

pytestmark = pytest.mark.django_db

URL = "/api/v1/appointments/"


def _payload(patient, doctor, when, **extra):
    body = {
        "patient_id": str(patient.id),
        "doctor_id": doctor.id,
        "appointment_date": when.isoformat(),
        "duration_minutes": 30,
        "reason": "Headache for three days",
    }
    body.update(extra)
    return body


def test_receptionist_books_appointment(client_for, receptionist, patient, doctor, tomorrow_at):
    r = client_for(receptionist).post(URL, _payload(patient, doctor, tomorrow_at(9)), format="json")

    assert r.status_code == 201, r.data
    assert r.data["status"] == "SCHEDULED"
    assert r.data["patient_name"] == patient.full_name


def test_conflict_returns_409(client_for, receptionist, patient, other_patient, doctor, tomorrow_at):
    client = client_for(receptionist)
    assert client.post(URL, _payload(patient, doctor, tomorrow_at(9)), format="json").status_code == 201

    r = client.post(URL, _payload(other_patient, doctor, tomorrow_at(9, 15)), format="json")
    assert r.status_code == 409
    assert r.data["error"]["code"] == "scheduling_conflict"


def test_idempotent_double_post_creates_one(client_for, receptionist, patient, doctor, tomorrow_at):
    client = client_for(receptionist)
    body = _payload(patient, doctor, tomorrow_at(10))

    r1 = client.post(URL, body, format="json", HTTP_IDEMPOTENCY_KEY="appt-001")
    r2 = client.post(URL, body, format="json", HTTP_IDEMPOTENCY_KEY="appt-001")

    assert r1.status_code == 201
    assert r2.status_code == 201
    assert r1.data["id"] == r2.data["id"]
    assert Appointment.objects.count() == 1


def test_patient_books_for_self_without_patient_id(client_for, patient_user, doctor, tomorrow_at):
    body = {
        "doctor_id": doctor.id,
        "appointment_date": tomorrow_at(11).isoformat(),
        "reason": "Follow-up",
    }
    r = client_for(patient_user).post(URL, body, format="json")

    assert r.status_code == 201, r.data
    assert r.json()["patient"] == str(patient_user.patient.id)


def test_patient_cannot_book_for_someone_else(client_for, patient_user, other_patient, doctor, tomorrow_at):
    r = client_for(patient_user).post(URL, _payload(other_patient, doctor, tomorrow_at(11)), format="json")
    assert r.status_code == 403


def test_patient_list_is_scoped_to_own(client_for, patient_user, other_patient, doctor, tomorrow_at):
    mine = AppointmentService.create(
        actor_user_id=doctor.id,
        patient_id=patient_user.patient.id,
        doctor_id=doctor.id,
        appointment_date=tomorrow_at(9),
        reason="Mine",
    )
    AppointmentService.create(
        actor_user_id=doctor.id,
        patient_id=other_patient.id,
        doctor_id=doctor.id,
        appointment_date=tomorrow_at(10),
        reason="Theirs",
    )

    r = client_for(patient_user).get(URL)
    assert r.status_code == 200
    assert [row["id"] for row in r.data["results"]] == [str(mine.id)]


def test_patient_cannot_retrieve_other_patients_appointment(client_for, patient_user, other_patient, doctor, tomorrow_at):
    theirs = AppointmentService.create(
        actor_user_id=doctor.id,
        patient_id=other_patient.id,
        doctor_id=doctor.id,
        appointment_date=tomorrow_at(10),
        reason="Theirs",
    )
    r = client_for(patient_user).get(f"{URL}{theirs.id}/")
    assert r.status_code == 403
    assert r.data["error"]["code"] == "permission_denied"


def test_status_and_cancel_endpoints(client_for, doctor, patient, tomorrow_at):
    client = client_for(doctor)
    appt = client.post(URL, _payload(patient, doctor, tomorrow_at(9)), format="json").data

    r = client.post(f"{URL}{appt['id']}/status/", {"status": "CONFIRMED"}, format="json")
    assert r.status_code == 200
    assert r.data["status"] == "CONFIRMED"

    r = client.post(f"{URL}{appt['id']}/status/", {"status": "COMPLETED"}, format="json")
    assert r.status_code == 400
    assert r.data["error"]["code"] == "validation_error"

    r = client.post(f"{URL}{appt['id']}/cancel/", {"reason": "Doctor unavailable"}, format="json")
    assert r.status_code == 200
    assert r.data["status"] == "CANCELLED"
    assert r.data["cancellation_reason"] == "Doctor unavailable"


def test_pharmacist_cannot_book(client_for, pharmacist, patient, doctor, tomorrow_at):
    r = client_for(pharmacist).post(URL, _payload(patient, doctor, tomorrow_at(9)), format="json")
    assert r.status_code == 403


def test_unauthenticated_is_rejected(api_client):
    r = api_client.get(URL)
    assert r.status_code == 401
    assert r.data["error"]["code"] == "not_authenticated"


def test_available_slots_endpoint(client_for, doctor, tomorrow_at):
    day = tomorrow_at(0).date()
    client = client_for(doctor)
    r = client.post(
        "/api/v1/appointments/schedules/",
        {
            "doctor_id": doctor.id,
            "day_of_week": day.weekday(),
            "start_time": "09:00",
            "end_time": "10:00",
            "slot_duration": 30,
        },
        format="json",
    )
    assert r.status_code == 201, r.data

    r = client.get(
        "/api/v1/appointments/schedules/available-slots/",
        {"doctor": doctor.id, "date": day.isoformat()},
    )
    assert r.status_code == 200
    assert len(r.data) == 2
