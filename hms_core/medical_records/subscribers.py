# backend/hms_core/medical_records/subscribers.py
from uuid import UUID

from hms_core.common.events import subscribe
from hms_core.medical_records.models import VisitStatus
from hms_core.medical_records.services import MedicalRecordService


@subscribe("prescription.created")
def on_prescription_created(payload: dict) -> None:
    diagnosis = (payload.get("diagnosis") or "").strip()
    appointment_id = payload.get("appointment_id")

    MedicalRecordService.add_visit(
        actor_user_id=payload.get("actor_user_id"),
        patient_id=UUID(payload["patient_id"]),
        doctor_id=payload.get("doctor_id"),
        appointment_id=UUID(appointment_id) if appointment_id else None,
        prescription_id=UUID(payload["prescription_id"]),
        diagnoses=[{"description": diagnosis}] if diagnosis else [],
        notes="Prescription issued",
        status=VisitStatus.COMPLETED,
    )


@subscribe("appointment.completed")
def on_appointment_completed(payload: dict) -> None:
    MedicalRecordService.find_or_create_for_patient(
        patient_id=UUID(payload["patient_id"]),
        actor_user_id=payload.get("actor_user_id"),
    )
