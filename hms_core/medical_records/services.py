# backend/hms_core/medical_records/services.py
from __future__ import annotations

import logging
from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID

from django.db import transaction
from django.utils import timezone
from rest_framework.exceptions import ValidationError

from hms_core.audit.services import AuditService
from hms_core.common.codes import numeric_code, unique_code
from hms_core.medical_records.models import (
    Diagnosis,
    DiagnosisCertainty,
    DiagnosisType,
    MedicalRecord,
    RecordStatus,
    Visit,
    VisitStatus,
    VisitType,
)
from hms_core.patients.models import Patient

logger = logging.getLogger(__name__)

HISTORY_FIELDS = (
    "blood_type",
    "allergies",
    "chronic_conditions",
    "family_history",
    "immunizations",
    "privacy_level",
    "status",
)

VISIT_FIELDS = (
    "visit_date",
    "visit_type",
    "chief_complaint",
    "symptoms",
    "vital_signs",
    "treatment_plan",
    "notes",
)


def calculate_bmi(weight_kg, height_cm) -> float | None:
    """
    weight / height_m^2, one decimal. None if either input is missing or not positive.
    """
    if weight_kg is None or height_cm is None:
        return None
    try:
        weight = Decimal(str(weight_kg))
        height_m = Decimal(str(height_cm)) / Decimal("100")
    except ArithmeticError:
        return None
    if weight <= 0 or height_m <= 0:
        return None
    return float((weight / (height_m * height_m)).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def _with_bmi(vital_signs: dict | None) -> dict:
    vitals = dict(vital_signs or {})
    bmi = calculate_bmi(vitals.get("weight_kg"), vitals.get("height_cm"))
    if bmi is not None:
        vitals["bmi"] = bmi
    else:
        vitals.pop("bmi", None)
    return vitals


def _create_diagnoses(visit: Visit, diagnoses: list[dict]) -> None:
    Diagnosis.objects.bulk_create(
        [
            Diagnosis(
                visit=visit,
                code=d.get("code") or "",
                description=d["description"],
                diagnosis_type=d.get("diagnosis_type") or DiagnosisType.PRIMARY,
                certainty=d.get("certainty") or DiagnosisCertainty.CONFIRMED,
                notes=d.get("notes") or "",
            )
            for d in diagnoses or []
            if (d.get("description") or "").strip()
        ]
    )


class MedicalRecordService:
    @staticmethod
    @transaction.atomic
    def find_or_create_for_patient(*, patient_id: UUID, actor_user_id: int | None = None) -> tuple[MedicalRecord, bool]:
        record = MedicalRecord.objects.select_for_update().filter(patient_id=patient_id).first()
        if record is not None:
            return record, False

        if not Patient.objects.filter(id=patient_id).exists():
            raise ValidationError({"patient_id": "Patient not found."})

        record = MedicalRecord.objects.create(
            record_code=unique_code(MedicalRecord, "record_code", lambda: numeric_code("MR")),
            patient_id=patient_id,
            created_by_id=actor_user_id,
            last_modified_by_id=actor_user_id,
        )
        AuditService.log(
            event_code="medical_record.created",
            entity_type="MedicalRecord",
            entity_id=record.id,
            actor_user_id=actor_user_id,
            metadata={"patient_id": str(patient_id)},
        )
        logger.info("medical record created code=%s", record.record_code)
        return record, True

    @staticmethod
    @transaction.atomic
    def update_history(*, actor_user_id: int | None, patient_id: UUID, data: dict) -> MedicalRecord:
        record, _ = MedicalRecordService.find_or_create_for_patient(patient_id=patient_id, actor_user_id=actor_user_id)

        updates = {k: v for k, v in (data or {}).items() if k in HISTORY_FIELDS}
        for k, v in updates.items():
            setattr(record, k, v)
        record.last_modified_by_id = actor_user_id
        record.save()

        AuditService.log(
            event_code="medical_record.history_updated",
            entity_type="MedicalRecord",
            entity_id=record.id,
            actor_user_id=actor_user_id,
            metadata={"updated_fields": sorted(updates.keys())},
        )
        return record

    @staticmethod
    @transaction.atomic
    def add_surgical_history(*, actor_user_id: int | None, patient_id: UUID, entry: dict) -> MedicalRecord:
        if not (entry or {}).get("procedure"):
            raise ValidationError({"procedure": "Procedure is required."})

        record, _ = MedicalRecordService.find_or_create_for_patient(patient_id=patient_id, actor_user_id=actor_user_id)
        record.surgical_history = [*(record.surgical_history or []), dict(entry)]
        record.last_modified_by_id = actor_user_id
        record.save(update_fields=["surgical_history", "last_modified_by", "updated_at"])

        AuditService.log(
            event_code="medical_record.surgical_history_added",
            entity_type="MedicalRecord",
            entity_id=record.id,
            actor_user_id=actor_user_id,
            metadata={"procedure": entry["procedure"]},
        )
        return record

    @staticmethod
    @transaction.atomic
    def add_visit(
        *,
        actor_user_id: int | None,
        patient_id: UUID,
        doctor_id: int | None = None,
        appointment_id: UUID | None = None,
        prescription_id: UUID | None = None,
        visit_date=None,
        visit_type: str = VisitType.OUTPATIENT,
        chief_complaint: str = "",
        symptoms: list | None = None,
        vital_signs: dict | None = None,
        treatment_plan: str = "",
        notes: str = "",
        diagnoses: list[dict] | None = None,
        status: str = VisitStatus.IN_PROGRESS,
    ) -> Visit:
        doctor_id = doctor_id or actor_user_id
        if doctor_id is None:
            raise ValidationError({"doctor_id": "A doctor is required."})

        record, _ = MedicalRecordService.find_or_create_for_patient(patient_id=patient_id, actor_user_id=actor_user_id)
        if record.status != RecordStatus.ACTIVE:
            raise ValidationError({"record": "Archived records cannot receive new visits."})

        visit = Visit.objects.create(
            visit_code=unique_code(Visit, "visit_code", lambda: numeric_code("VS")),
            record=record,
            doctor_id=doctor_id,
            appointment_id=appointment_id,
            prescription_id=prescription_id,
            visit_date=visit_date or timezone.now(),
            visit_type=visit_type,
            chief_complaint=chief_complaint or "",
            symptoms=list(symptoms or []),
            vital_signs=_with_bmi(vital_signs),
            treatment_plan=treatment_plan or "",
            notes=notes or "",
            status=status,
            completed_at=timezone.now() if status == VisitStatus.COMPLETED else None,
        )
        _create_diagnoses(visit, diagnoses or [])

        AuditService.log(
            event_code="medical_record.visit_added",
            entity_type="Visit",
            entity_id=visit.id,
            actor_user_id=actor_user_id,
            metadata={"record_id": str(record.id), "diagnoses": len(diagnoses or [])},
        )
        logger.info("visit %s added to record %s", visit.visit_code, record.record_code)
        return visit

    @staticmethod
    @transaction.atomic
    def update_visit(*, actor_user_id: int | None, visit_id: UUID, data: dict) -> Visit:
        visit = Visit.objects.select_for_update().get(id=visit_id)
        if visit.status == VisitStatus.CANCELLED:
            raise ValidationError({"status": "Cancelled visits cannot be changed."})

        data = data or {}
        updates = {k: v for k, v in data.items() if k in VISIT_FIELDS}
        if "vital_signs" in updates:
            updates["vital_signs"] = _with_bmi(updates["vital_signs"])
        for k, v in updates.items():
            if v is None and k in ("chief_complaint", "treatment_plan", "notes"):
                v = ""
            setattr(visit, k, v)
        visit.save()

        if "diagnoses" in data:
            visit.diagnoses.all().delete()
            _create_diagnoses(visit, data["diagnoses"] or [])

        AuditService.log(
            event_code="medical_record.visit_updated",
            entity_type="Visit",
            entity_id=visit.id,
            actor_user_id=actor_user_id,
            metadata={"updated_fields": sorted(set(updates) | ({"diagnoses"} & set(data)))},
        )
        return visit

    @staticmethod
    def _set_visit_status(*, actor_user_id: int | None, visit_id: UUID, status: str, event_code: str) -> Visit:
        visit = Visit.objects.select_for_update().get(id=visit_id)
        if visit.status != VisitStatus.IN_PROGRESS:
            logger.warning("rejected visit %s transition %s -> %s", visit.visit_code, visit.status, status)
            raise ValidationError({"status": f"Cannot change a {visit.status.lower()} visit."})

        visit.status = status
        visit.completed_at = timezone.now() if status == VisitStatus.COMPLETED else None
        visit.save(update_fields=["status", "completed_at", "updated_at"])

        AuditService.log(
            event_code=event_code,
            entity_type="Visit",
            entity_id=visit.id,
            actor_user_id=actor_user_id,
            metadata={"status": status},
        )
        return visit

    @staticmethod
    @transaction.atomic
    def complete_visit(*, actor_user_id: int | None, visit_id: UUID) -> Visit:
        return MedicalRecordService._set_visit_status(
            actor_user_id=actor_user_id,
            visit_id=visit_id,
            status=VisitStatus.COMPLETED,
            event_code="medical_record.visit_completed",
        )

    @staticmethod
    @transaction.atomic
    def cancel_visit(*, actor_user_id: int | None, visit_id: UUID) -> Visit:
        return MedicalRecordService._set_visit_status(
            actor_user_id=actor_user_id,
            visit_id=visit_id,
            status=VisitStatus.CANCELLED,
            event_code="medical_record.visit_cancelled",
        )
