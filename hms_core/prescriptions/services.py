# backend/hms_core/prescriptions/services.py
from __future__ import annotations

import logging
from collections import defaultdict
from decimal import Decimal
from uuid import UUID

from django.db import transaction
from django.db.models import F
from django.utils import timezone
from rest_framework.exceptions import ValidationError

from hms_core.audit.services import AuditService
from hms_core.common.codes import numeric_code, unique_code
from hms_core.common.events import publish
from hms_core.patients.models import Patient
from hms_core.prescriptions.interactions import check_interactions
from hms_core.prescriptions.models import (
    DispenseRecord,
    DispenseStatus,
    Medication,
    Prescription,
    PrescriptionItem,
    PrescriptionStatus,
)

logger = logging.getLogger(__name__)

ITEM_FIELDS = ("dosage", "frequency", "duration_days", "total_quantity", "instructions")


def _load_medications(items: list[dict]) -> dict[UUID, Medication]:
    if not items:
        raise ValidationError({"items": "At least one medication is required."})

    ids = {item["medication_id"] for item in items}
    meds = {m.id: m for m in Medication.objects.filter(id__in=ids)}

    for med_id in ids:
        med = meds.get(med_id)
        if med is None:
            raise ValidationError({"items": f"Medication {med_id} not found."})
        if not med.is_active:
            raise ValidationError({"items": f"Medication {med.name} is not active."})
    return meds


def _check_stock(items: list[dict], meds: dict[UUID, Medication]) -> None:
    wanted: dict[UUID, int] = defaultdict(int)
    for item in items:
        wanted[item["medication_id"]] += int(item["total_quantity"])

    for med_id, qty in wanted.items():
        med = meds[med_id]
        if med.stock_quantity < qty:
            raise ValidationError(
                {"items": f"Insufficient stock for {med.name}: requested {qty}, available {med.stock_quantity}."}
            )


def _item_dicts_from_rows(prescription: Prescription) -> list[dict]:
    return [
        {"medication_id": it.medication_id, "total_quantity": it.total_quantity}
        for it in prescription.items.all()
    ]


def _create_items(prescription: Prescription, items: list[dict]) -> None:
    PrescriptionItem.objects.bulk_create(
        [
            PrescriptionItem(
                prescription=prescription,
                medication_id=item["medication_id"],
                **{k: item[k] for k in ITEM_FIELDS if item.get(k) is not None},
            )
            for item in items
        ]
    )


def _recompute_dispense_status(prescription: Prescription) -> str:
    items = list(prescription.items.all())
    total = sum(it.total_quantity for it in items)
    given = sum(min(it.dispensed_quantity, it.total_quantity) for it in items)

    if given <= 0:
        return DispenseStatus.PENDING
    if given >= total:
        return DispenseStatus.DISPENSED
    return DispenseStatus.PARTIAL


class PrescriptionService:
    @staticmethod
    def _get_locked(prescription_id: UUID) -> Prescription:
        return Prescription.objects.select_for_update().get(id=prescription_id)

    @staticmethod
    @transaction.atomic
    def create(
        *,
        actor_user_id: int,
        patient_id: UUID,
        items: list[dict],
        doctor_id: int | None = None,
        appointment_id: UUID | None = None,
        diagnosis: str = "",
        notes: str = "",
        valid_until=None,
        as_draft: bool = False,
    ) -> Prescription:
        patient = Patient.objects.filter(id=patient_id).first()
        if patient is None or not patient.is_active:
            raise ValidationError({"patient": "Patient not found or inactive."})

        meds = _load_medications(items)
        _check_stock(items, meds)

        warnings = check_interactions(meds.values())
        if warnings:
            logger.warning(
                "prescription for patient=%s has %s interaction warning(s)", patient.patient_code, len(warnings)
            )

        rx = Prescription.objects.create(
            prescription_code=unique_code(Prescription, "prescription_code", lambda: numeric_code("PR")),
            patient=patient,
            doctor_id=doctor_id or actor_user_id,
            appointment_id=appointment_id,
            diagnosis=diagnosis or "",
            notes=notes or "",
            valid_until=valid_until,
            status=PrescriptionStatus.DRAFT if as_draft else PrescriptionStatus.ACTIVE,
            interaction_warnings=warnings,
        )
        _create_items(rx, items)

        AuditService.log(
            event_code="prescription.created",
            entity_type="Prescription",
            entity_id=rx.id,
            actor_user_id=actor_user_id,
            metadata={
                "patient_id": str(patient.id),
                "items": len(items),
                "status": rx.status,
                "interaction_warnings": len(warnings),
            },
        )

        publish(
            "prescription.created",
            {
                "prescription_id": str(rx.id),
                "patient_id": str(patient.id),
                "doctor_id": rx.doctor_id,
                "appointment_id": str(appointment_id) if appointment_id else None,
                "diagnosis": rx.diagnosis,
                "actor_user_id": actor_user_id,
            },
        )
        logger.info("prescription created code=%s status=%s", rx.prescription_code, rx.status)
        return rx

    @staticmethod
    @transaction.atomic
    def update(*, actor_user_id: int | None, prescription_id: UUID, data: dict) -> Prescription:
        rx = PrescriptionService._get_locked(prescription_id)
        if rx.status != PrescriptionStatus.DRAFT:
            raise ValidationError({"status": "Only draft prescriptions can be edited."})

        data = data or {}
        changed = []

        for field in ("diagnosis", "notes"):
            if field in data:
                setattr(rx, field, data[field] or "")
                changed.append(field)
        if "valid_until" in data:
            rx.valid_until = data["valid_until"]
            changed.append("valid_until")

        if "items" in data:
            items = data["items"]
            meds = _load_medications(items)
            rx.items.all().delete()
            _create_items(rx, items)
            rx.interaction_warnings = check_interactions(meds.values())
            changed += ["items", "interaction_warnings"]

        if data.get("activate"):
            items = _item_dicts_from_rows(rx)
            meds = _load_medications(items)
            _check_stock(items, meds)
            rx.status = PrescriptionStatus.ACTIVE
            changed.append("status")

        rx.save()

        AuditService.log(
            event_code="prescription.updated",
            entity_type="Prescription",
            entity_id=rx.id,
            actor_user_id=actor_user_id,
            metadata={"updated_fields": changed},
        )
        return rx

    @staticmethod
    @transaction.atomic
    def dispense(
        *,
        actor_user_id: int | None,
        prescription_id: UUID,
        medication_id: UUID,
        quantity: int,
        notes: str = "",
    ) -> Prescription:
        rx = PrescriptionService._get_locked(prescription_id)
        if rx.status != PrescriptionStatus.ACTIVE:
            raise ValidationError({"status": f"Cannot dispense a {rx.status.lower()} prescription."})
        if quantity <= 0:
            raise ValidationError({"quantity": "Quantity must be positive."})

        items = list(rx.items.select_for_update().filter(medication_id=medication_id).order_by("created_at"))
        if not items:
            raise ValidationError({"medication_id": "Medication is not on this prescription."})

        remaining = sum(it.remaining_quantity for it in items)
        if quantity > remaining:
            logger.warning("rejected dispense code=%s qty=%s remaining=%s", rx.prescription_code, quantity, remaining)
            raise ValidationError({"quantity": f"Quantity exceeds the remaining prescribed amount ({remaining})."})

        med = Medication.objects.select_for_update().get(id=medication_id)
        if med.stock_quantity < quantity:
            raise ValidationError(
                {"quantity": f"Insufficient stock for {med.name}: available {med.stock_quantity}."}
            )

        Medication.objects.filter(id=med.id).update(stock_quantity=F("stock_quantity") - quantity)

        # fill lines oldest first, one record per line touched
        left = quantity
        for item in items:
            take = min(left, item.remaining_quantity)
            if take <= 0:
                continue
            PrescriptionItem.objects.filter(id=item.id).update(dispensed_quantity=F("dispensed_quantity") + take)
            DispenseRecord.objects.create(item=item, quantity=take, dispensed_by_id=actor_user_id, notes=notes or "")
            left -= take
            if not left:
                break

        rx.dispense_status = _recompute_dispense_status(rx)
        if rx.dispense_status == DispenseStatus.DISPENSED:
            rx.status = PrescriptionStatus.COMPLETED
        rx.save(update_fields=["dispense_status", "status", "updated_at"])

        AuditService.log(
            event_code="prescription.dispensed",
            entity_type="Prescription",
            entity_id=rx.id,
            actor_user_id=actor_user_id,
            metadata={
                "medication_id": str(medication_id),
                "quantity": quantity,
                "dispense_status": rx.dispense_status,
            },
        )
        logger.info(
            "dispensed code=%s medication=%s qty=%s -> %s",
            rx.prescription_code,
            med.code,
            quantity,
            rx.dispense_status,
        )
        return rx

    @staticmethod
    @transaction.atomic
    def cancel(*, actor_user_id: int | None, prescription_id: UUID, reason: str) -> Prescription:
        if not (reason or "").strip():
            raise ValidationError({"reason": "Cancellation reason is required."})

        rx = PrescriptionService._get_locked(prescription_id)
        if rx.status not in (PrescriptionStatus.DRAFT, PrescriptionStatus.ACTIVE):
            raise ValidationError({"status": f"Cannot cancel a {rx.status.lower()} prescription."})

        line = f"Cancelled: {reason.strip()}"
        rx.notes = f"{rx.notes}\n{line}" if rx.notes else line
        rx.status = PrescriptionStatus.CANCELLED
        rx.save(update_fields=["notes", "status", "updated_at"])

        AuditService.log(
            event_code="prescription.cancelled",
            entity_type="Prescription",
            entity_id=rx.id,
            actor_user_id=actor_user_id,
            metadata={"reason": reason},
        )
        return rx

    @staticmethod
    @transaction.atomic
    def set_dispense_status(*, actor_user_id: int | None, prescription_id: UUID, status: str) -> Prescription:
        if status not in DispenseStatus.values:
            raise ValidationError({"status": f"Unknown dispense status: {status}"})

        rx = PrescriptionService._get_locked(prescription_id)
        old = rx.dispense_status
        rx.dispense_status = status
        rx.save(update_fields=["dispense_status", "updated_at"])

        AuditService.log(
            event_code="prescription.dispense_status_set",
            entity_type="Prescription",
            entity_id=rx.id,
            actor_user_id=actor_user_id,
            metadata={"from": old, "to": status},
        )
        return rx

    @staticmethod
    def medication_history(*, patient_id: UUID) -> list[dict]:
        items = (
            PrescriptionItem.objects.filter(prescription__patient_id=patient_id)
            .select_related("prescription", "medication")
            .order_by("-prescription__created_at", "created_at")
        )
        return [
            {
                "prescription_id": it.prescription_id,
                "prescription_code": it.prescription.prescription_code,
                "prescribed_at": it.prescription.created_at,
                "prescribed_by": it.prescription.doctor_id,
                "status": it.prescription.status,
                "medication_id": it.medication_id,
                "medication_name": it.medication.name,
                "dosage": it.dosage,
                "frequency": it.frequency,
                "duration_days": it.duration_days,
                "total_quantity": it.total_quantity,
                "dispensed_quantity": it.dispensed_quantity,
            }
            for it in items
        ]

    @staticmethod
    def check_coverage(*, medication_id: UUID) -> dict:
        med = Medication.objects.get(id=medication_id)
        selling = med.selling_price if med.selling_price is not None else Decimal("0.00")
        covered = bool(med.insurance_covered and med.insurance_price is not None)
        patient_pays = med.insurance_price if covered else selling

        return {
            "medication_id": med.id,
            "medication_name": med.name,
            "covered": covered,
            "selling_price": selling,
            "insurance_price": med.insurance_price,
            "patient_pays": patient_pays,
            "insurance_pays": (selling - patient_pays) if covered else Decimal("0.00"),
        }


class MedicationService:
    UPDATABLE_FIELDS = {
        "name",
        "generic_name",
        "category",
        "form",
        "strength",
        "unit",
        "manufacturer",
        "selling_price",
        "insurance_covered",
        "insurance_price",
        "reorder_level",
        "requires_prescription",
        "expiry_date",
        "is_active",
    }

    @staticmethod
    @transaction.atomic
    def create_medication(*, actor_user_id: int | None, code: str, name: str, **fields) -> Medication:
        if Medication.objects.filter(code=code).exists():
            raise ValidationError({"code": "Medication code already exists."})

        extra = {k: v for k, v in fields.items() if k in MedicationService.UPDATABLE_FIELDS | {"stock_quantity"}}
        if int(extra.get("stock_quantity", 0) or 0) < 0:
            raise ValidationError({"stock_quantity": "Stock cannot be negative."})

        med = Medication.objects.create(code=code, name=name, **extra)

        AuditService.log(
            event_code="medication.created",
            entity_type="Medication",
            entity_id=med.id,
            actor_user_id=actor_user_id,
            metadata={"code": code},
        )
        return med

    @staticmethod
    @transaction.atomic
    def update_medication(*, actor_user_id: int | None, medication_id: UUID, data: dict) -> Medication:
        med = Medication.objects.select_for_update().get(id=medication_id)
        updates = {k: v for k, v in (data or {}).items() if k in MedicationService.UPDATABLE_FIELDS}
        for k, v in updates.items():
            setattr(med, k, v)
        med.save()

        AuditService.log(
            event_code="medication.updated",
            entity_type="Medication",
            entity_id=med.id,
            actor_user_id=actor_user_id,
            metadata={"updated_fields": sorted(updates.keys())},
        )
        return med

    @staticmethod
    @transaction.atomic
    def adjust_stock(*, actor_user_id: int | None, medication_id: UUID, delta: int, reason: str = "") -> Medication:
        med = Medication.objects.select_for_update().get(id=medication_id)
        new_qty = med.stock_quantity + int(delta)
        if new_qty < 0:
            logger.warning("rejected stock adjustment medication=%s delta=%s current=%s", med.code, delta, med.stock_quantity)
            raise ValidationError({"delta": f"Stock cannot go negative (current {med.stock_quantity})."})

        old = med.stock_quantity
        med.stock_quantity = new_qty
        med.save(update_fields=["stock_quantity", "updated_at"])

        AuditService.log(
            event_code="medication.stock_adjusted",
            entity_type="Medication",
            entity_id=med.id,
            actor_user_id=actor_user_id,
            metadata={"from": old, "to": new_qty, "delta": int(delta), "reason": reason},
        )
        logger.info("stock adjusted medication=%s %s -> %s", med.code, old, new_qty)
        return med

    @staticmethod
    def stock_info(*, medication_id: UUID) -> dict:
        med = Medication.objects.get(id=medication_id)
        return {
            "medication_id": med.id,
            "current": med.stock_quantity,
            "reorder_level": med.reorder_level,
            "is_low_stock": med.is_low_stock,
            "is_out_of_stock": med.is_out_of_stock,
            "checked_at": timezone.now(),
        }
