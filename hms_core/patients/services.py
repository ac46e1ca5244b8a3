# backend/hms_core/patients/services.py
from __future__ import annotations

from uuid import UUID

from django.db import transaction
from rest_framework.exceptions import ValidationError

from hms_core.audit.services import AuditService
from hms_core.common.codes import numeric_code, unique_code
from hms_core.patients.models import Patient

UPDATABLE_FIELDS = {
    "full_name",
    "date_of_birth",
    "gender",
    "phone",
    "email",
    "address",
    "blood_type",
    "emergency_contact_name",
    "emergency_contact_phone",
    "insurance_provider",
    "insurance_number",
}


class PatientService:
    @staticmethod
    @transaction.atomic
    def create_patient(
        *,
        actor_user_id: int | None,
        full_name: str,
        user_id: int | None = None,
        **fields,
    ) -> Patient:
        if not (full_name or "").strip():
            raise ValidationError({"full_name": "Full name is required."})

        extra = {k: v for k, v in fields.items() if k in UPDATABLE_FIELDS and v is not None}

        patient = Patient.objects.create(
            patient_code=unique_code(Patient, "patient_code", lambda: numeric_code("PT")),
            user_id=user_id,
            full_name=full_name.strip(),
            **extra,
        )

        AuditService.log(
            event_code="patient.created",
            entity_type="Patient",
            entity_id=patient.id,
            actor_user_id=actor_user_id,
            metadata={"patient_code": patient.patient_code},
        )
        return patient

    @staticmethod
    @transaction.atomic
    def update_patient(
        *,
        actor_user_id: int | None,
        patient_id: UUID,
        data: dict,
    ) -> Patient:
        patient = Patient.objects.select_for_update().get(id=patient_id)

        updates = {k: v for k, v in (data or {}).items() if k in UPDATABLE_FIELDS}
        for k, v in updates.items():
            setattr(patient, k, v)
        patient.save()

        AuditService.log(
            event_code="patient.updated",
            entity_type="Patient",
            entity_id=patient.id,
            actor_user_id=actor_user_id,
            metadata={"updated_fields": sorted(updates.keys())},
        )
        return patient

    @staticmethod
    @transaction.atomic
    def deactivate_patient(*, actor_user_id: int | None, patient_id: UUID) -> Patient:
        patient = Patient.objects.select_for_update().get(id=patient_id)
        if patient.is_active:
            patient.is_active = False
            patient.save(update_fields=["is_active", "updated_at"])

            AuditService.log(
                event_code="patient.deactivated",
                entity_type="Patient",
                entity_id=patient.id,
                actor_user_id=actor_user_id,
            )
        return patient
