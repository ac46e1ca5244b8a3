# backend/hms_core/lab/services.py
from __future__ import annotations

import logging
from uuid import UUID

from django.db import transaction
from django.utils import timezone
from rest_framework.exceptions import ValidationError

from hms_core.audit.services import AuditService
from hms_core.common.codes import numeric_code, unique_code
from hms_core.lab.models import (
    RESULTED_TEST_STATUSES,
    LabOrder,
    LabOrderStatus,
    LabPriority,
    LabResultVersion,
    LabTest,
    LabTestStatus,
)
from hms_core.patients.models import Patient

logger = logging.getLogger(__name__)

ORDER_EDITABLE_FIELDS = ("clinical_notes", "priority")


def _number(value):
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def flag_result(result_payload: dict) -> tuple[bool, bool, list[dict]]:
    """
    Flag a result from its own reference/critical limits:
      value outside reference_low..reference_high -> abnormal
      value outside critical_low..critical_high   -> critical (with reasons)

    Non-numeric values are never flagged.
    """
    payload = result_payload or {}
    value = _number(payload.get("value"))
    if value is None:
        return False, False, []

    abnormal = False
    ref_low, ref_high = _number(payload.get("reference_low")), _number(payload.get("reference_high"))
    if ref_low is not None and value < ref_low:
        abnormal = True
    if ref_high is not None and value > ref_high:
        abnormal = True

    reasons: list[dict] = []
    crit_low, crit_high = _number(payload.get("critical_low")), _number(payload.get("critical_high"))
    if crit_low is not None and value < crit_low:
        reasons.append({"code": "CRITICAL_LOW", "value": value, "threshold": crit_low})
    if crit_high is not None and value > crit_high:
        reasons.append({"code": "CRITICAL_HIGH", "value": value, "threshold": crit_high})

    if reasons:
        abnormal = True
    return abnormal, bool(reasons), reasons


def derive_order_status(statuses: list[str]) -> str:
    """
    Order status is a function of its tests' statuses.
    """
    remaining = [s for s in statuses if s != LabTestStatus.CANCELLED]
    if not remaining:
        return LabOrderStatus.CANCELLED
    if all(s in RESULTED_TEST_STATUSES for s in remaining):
        return LabOrderStatus.COMPLETED
    if any(s in (LabTestStatus.IN_PROGRESS, *RESULTED_TEST_STATUSES) for s in remaining):
        return LabOrderStatus.IN_PROGRESS
    if any(s == LabTestStatus.SAMPLE_COLLECTED for s in remaining):
        return LabOrderStatus.SAMPLE_COLLECTED
    return LabOrderStatus.ORDERED


def _refresh_order_status(order: LabOrder) -> LabOrder:
    new_status = derive_order_status(list(order.tests.values_list("status", flat=True)))
    if new_status == order.status:
        return order

    old = order.status
    order.status = new_status
    order.completed_at = timezone.now() if new_status == LabOrderStatus.COMPLETED else None
    order.save(update_fields=["status", "completed_at", "updated_at"])
    logger.info("lab order %s %s -> %s", order.order_code, old, new_status)
    return order


class LabService:
    """
    Write-model operations for the lab module:
    - orders: create / update / cancel
    - tests: collect sample -> start -> result (versioned) -> approve
    Every test change re-derives the parent order status.
    """

    @staticmethod
    def _get_test_locked(test_id: UUID) -> LabTest:
        test = LabTest.objects.select_for_update().select_related("order").get(id=test_id)
        if test.order.status == LabOrderStatus.CANCELLED:
            raise ValidationError({"order": "The lab order has been cancelled."})
        return test

    @staticmethod
    def _audit_test(event_code: str, test: LabTest, actor_user_id: int | None, **metadata) -> None:
        AuditService.log(
            event_code=event_code,
            entity_type="LabTest",
            entity_id=test.id,
            actor_user_id=actor_user_id,
            metadata={"order_id": str(test.order_id), "status": test.status, **metadata},
        )

    # ----------------------------
    # Orders
    # ----------------------------
    @staticmethod
    @transaction.atomic
    def create_order(
        *,
        actor_user_id: int,
        patient_id: UUID,
        tests: list[dict],
        priority: str = LabPriority.ROUTINE,
        clinical_notes: str = "",
        appointment_id: UUID | None = None,
    ) -> LabOrder:
        if not tests:
            raise ValidationError({"tests": "At least one test is required."})
        if priority not in LabPriority.values:
            raise ValidationError({"priority": f"Unknown priority: {priority}"})

        patient = Patient.objects.filter(id=patient_id).first()
        if patient is None or not patient.is_active:
            raise ValidationError({"patient_id": "Patient not found or inactive."})

        order = LabOrder.objects.create(
            order_code=unique_code(LabOrder, "order_code", lambda: numeric_code("LB")),
            patient=patient,
            ordered_by_id=actor_user_id,
            appointment_id=appointment_id,
            priority=priority,
            clinical_notes=clinical_notes or "",
        )
        LabTest.objects.bulk_create(
            [
                LabTest(
                    order=order,
                    test_code=t["test_code"],
                    test_name=t["test_name"],
                    category=t.get("category") or "",
                    sample_type=t.get("sample_type") or "",
                )
                for t in tests
            ]
        )

        AuditService.log(
            event_code="lab.order_created",
            entity_type="LabOrder",
            entity_id=order.id,
            actor_user_id=actor_user_id,
            metadata={"patient_id": str(patient.id), "tests": len(tests), "priority": priority},
        )
        logger.info("lab order created code=%s tests=%s priority=%s", order.order_code, len(tests), priority)
        return order

    @staticmethod
    @transaction.atomic
    def update_order(*, actor_user_id: int | None, order_id: UUID, data: dict) -> LabOrder:
        order = LabOrder.objects.select_for_update().get(id=order_id)
        if order.status != LabOrderStatus.ORDERED:
            raise ValidationError({"status": "Only orders that have not started can be edited."})

        updates = {k: v for k, v in (data or {}).items() if k in ORDER_EDITABLE_FIELDS}
        if "priority" in updates and updates["priority"] not in LabPriority.values:
            raise ValidationError({"priority": f"Unknown priority: {updates['priority']}"})
        for k, v in updates.items():
            setattr(order, k, v if v is not None else "")
        order.save()

        AuditService.log(
            event_code="lab.order_updated",
            entity_type="LabOrder",
            entity_id=order.id,
            actor_user_id=actor_user_id,
            metadata={"updated_fields": sorted(updates.keys())},
        )
        return order

    @staticmethod
    @transaction.atomic
    def cancel_order(*, actor_user_id: int | None, order_id: UUID, reason: str) -> LabOrder:
        if not (reason or "").strip():
            raise ValidationError({"reason": "Cancellation reason is required."})

        order = LabOrder.objects.select_for_update().get(id=order_id)
        if order.status in (LabOrderStatus.COMPLETED, LabOrderStatus.CANCELLED):
            logger.warning("rejected cancel of lab order %s in %s", order.order_code, order.status)
            raise ValidationError({"status": f"Cannot cancel a {order.status.lower()} lab order."})

        cancelled = order.tests.exclude(status=LabTestStatus.APPROVED).update(
            status=LabTestStatus.CANCELLED, updated_at=timezone.now()
        )

        order.status = LabOrderStatus.CANCELLED
        order.cancellation_reason = reason.strip()
        order.save(update_fields=["status", "cancellation_reason", "updated_at"])

        AuditService.log(
            event_code="lab.order_cancelled",
            entity_type="LabOrder",
            entity_id=order.id,
            actor_user_id=actor_user_id,
            metadata={"reason": reason, "tests_cancelled": cancelled},
        )
        logger.info("lab order cancelled code=%s tests=%s", order.order_code, cancelled)
        return order

    # ----------------------------
    # Test workflow
    # ----------------------------
    @staticmethod
    @transaction.atomic
    def collect_sample(*, actor_user_id: int | None, test_id: UUID) -> LabTest:
        test = LabService._get_test_locked(test_id)
        if test.status != LabTestStatus.PENDING:
            raise ValidationError({"status": f"Sample cannot be collected for a {test.status.lower()} test."})

        test.status = LabTestStatus.SAMPLE_COLLECTED
        test.sample_collected_at = timezone.now()
        test.sample_collected_by_id = actor_user_id
        test.save(update_fields=["status", "sample_collected_at", "sample_collected_by", "updated_at"])

        _refresh_order_status(test.order)
        LabService._audit_test("lab.sample_collected", test, actor_user_id)
        return test

    @staticmethod
    @transaction.atomic
    def start_test(*, actor_user_id: int | None, test_id: UUID) -> LabTest:
        test = LabService._get_test_locked(test_id)
        if test.status != LabTestStatus.SAMPLE_COLLECTED:
            raise ValidationError({"status": "A sample must be collected before the test starts."})

        test.status = LabTestStatus.IN_PROGRESS
        test.started_at = timezone.now()
        test.save(update_fields=["status", "started_at", "updated_at"])

        _refresh_order_status(test.order)
        LabService._audit_test("lab.test_started", test, actor_user_id)
        return test

    @staticmethod
    def _store_result(test: LabTest, *, actor_user_id: int | None, result_payload: dict, result_notes: str) -> None:
        is_abnormal, is_critical, reasons = flag_result(result_payload)

        test.version = int(test.version) + 1
        test.result_payload = result_payload or {}
        test.result_notes = result_notes or ""
        test.is_abnormal = is_abnormal
        test.is_critical = is_critical
        test.critical_reasons = reasons
        test.status = LabTestStatus.COMPLETED
        test.resulted_at = timezone.now()
        test.resulted_by_id = actor_user_id
        test.save()

        LabResultVersion.objects.create(
            test=test,
            version=test.version,
            result_payload=test.result_payload,
            result_notes=test.result_notes,
            is_abnormal=is_abnormal,
            is_critical=is_critical,
            critical_reasons=reasons,
            recorded_by_id=actor_user_id,
        )

        if is_critical:
            logger.warning(
                "critical lab result order=%s test=%s reasons=%s",
                test.order.order_code,
                test.test_code,
                [r["code"] for r in reasons],
            )

    @staticmethod
    @transaction.atomic
    def record_result(
        *,
        actor_user_id: int | None,
        test_id: UUID,
        result_payload: dict,
        result_notes: str = "",
    ) -> LabTest:
        test = LabService._get_test_locked(test_id)
        if test.status not in (LabTestStatus.SAMPLE_COLLECTED, LabTestStatus.IN_PROGRESS):
            raise ValidationError({"status": f"Cannot record a result for a {test.status.lower()} test."})

        LabService._store_result(
            test, actor_user_id=actor_user_id, result_payload=result_payload, result_notes=result_notes
        )
        _refresh_order_status(test.order)
        LabService._audit_test(
            "lab.result_recorded", test, actor_user_id, version=test.version, is_critical=test.is_critical
        )
        return test

    @staticmethod
    @transaction.atomic
    def update_result(
        *,
        actor_user_id: int | None,
        test_id: UUID,
        result_payload: dict,
        result_notes: str = "",
    ) -> LabTest:
        test = LabService._get_test_locked(test_id)
        if test.status == LabTestStatus.APPROVED:
            raise ValidationError({"status": "Approved results cannot be changed."})
        if test.status != LabTestStatus.COMPLETED:
            raise ValidationError({"status": "Only completed results can be updated."})

        LabService._store_result(
            test, actor_user_id=actor_user_id, result_payload=result_payload, result_notes=result_notes
        )
        LabService._audit_test(
            "lab.result_updated", test, actor_user_id, version=test.version, is_critical=test.is_critical
        )
        return test

    @staticmethod
    @transaction.atomic
    def approve_result(*, actor_user_id: int | None, test_id: UUID) -> LabTest:
        test = LabService._get_test_locked(test_id)
        if test.status != LabTestStatus.COMPLETED:
            raise ValidationError({"status": f"Cannot approve a {test.status.lower()} test."})

        test.status = LabTestStatus.APPROVED
        test.approved_at = timezone.now()
        test.approved_by_id = actor_user_id
        test.save(update_fields=["status", "approved_at", "approved_by", "updated_at"])

        _refresh_order_status(test.order)
        LabService._audit_test("lab.result_approved", test, actor_user_id, version=test.version)
        logger.info("lab result approved order=%s test=%s v%s", test.order.order_code, test.test_code, test.version)
        return test
