# backend/hms_core/lab/tests/test_lab_services.py
import pytest
from rest_framework.exceptions import ValidationError

from hms_core.lab.models import LabOrderStatus, LabTestStatus
from hms_core.lab.selectors import pending_tests
from hms_core.lab.services import LabService, derive_order_status, flag_result

pytestmark = pytest.mark.django_db

GLUCOSE = {"value": 5.4, "unit": "mmol/L", "reference_low": 3.9, "reference_high": 6.1, "critical_low": 2.5, "critical_high": 25}


def _order(patient, doctor, *, priority="ROUTINE", n=1):
    tests = [{"test_code": f"T{i}", "test_name": f"Test {i}", "sample_type": "blood"} for i in range(n)]
    return LabService.create_order(actor_user_id=doctor.id, patient_id=patient.id, tests=tests, priority=priority)


def _to_completed(test, tech, payload=None):
    LabService.collect_sample(actor_user_id=tech.id, test_id=test.id)
    LabService.start_test(actor_user_id=tech.id, test_id=test.id)
    return LabService.record_result(actor_user_id=tech.id, test_id=test.id, result_payload=payload or GLUCOSE)


def test_flag_result_normal_abnormal_critical():
    assert flag_result(GLUCOSE) == (False, False, [])

    abnormal, critical, _ = flag_result({**GLUCOSE, "value": 7.0})
    assert (abnormal, critical) == (True, False)

    abnormal, critical, reasons = flag_result({**GLUCOSE, "value": 1.9})
    assert abnormal and critical
    assert reasons[0]["code"] == "CRITICAL_LOW"

    assert flag_result({"value": "positive"}) == (False, False, [])


def test_derive_order_status():
    S = LabTestStatus
    assert derive_order_status([S.PENDING, S.PENDING]) == LabOrderStatus.ORDERED
    assert derive_order_status([S.PENDING, S.SAMPLE_COLLECTED]) == LabOrderStatus.SAMPLE_COLLECTED
    assert derive_order_status([S.COMPLETED, S.PENDING]) == LabOrderStatus.IN_PROGRESS
    assert derive_order_status([S.APPROVED, S.CANCELLED]) == LabOrderStatus.COMPLETED
    assert derive_order_status([S.CANCELLED]) == LabOrderStatus.CANCELLED


def test_workflow_drives_order_status(patient, doctor, lab_tech):
    order = _order(patient, doctor, n=2)
    first, second = order.tests.order_by("test_code")

    LabService.collect_sample(actor_user_id=lab_tech.id, test_id=first.id)
    order.refresh_from_db()
    assert order.status == LabOrderStatus.SAMPLE_COLLECTED

    _to_completed(second, lab_tech)
    order.refresh_from_db()
    assert order.status == LabOrderStatus.IN_PROGRESS

    LabService.start_test(actor_user_id=lab_tech.id, test_id=first.id)
    LabService.record_result(actor_user_id=lab_tech.id, test_id=first.id, result_payload=GLUCOSE)
    order.refresh_from_db()
    assert order.status == LabOrderStatus.COMPLETED
    assert order.completed_at is not None


def test_start_requires_collected_sample(patient, doctor, lab_tech):
    test = _order(patient, doctor).tests.get()
    with pytest.raises(ValidationError):
        LabService.start_test(actor_user_id=lab_tech.id, test_id=test.id)


def test_result_versions_and_critical_flag(patient, doctor, lab_tech):
    test = _order(patient, doctor).tests.get()
    test = _to_completed(test, lab_tech)
    assert test.version == 1
    assert test.is_critical is False

    test = LabService.update_result(
        actor_user_id=lab_tech.id,
        test_id=test.id,
        result_payload={**GLUCOSE, "value": 30},
        result_notes="Re-run",
    )
    assert test.version == 2
    assert test.is_critical is True
    assert test.critical_reasons[0]["code"] == "CRITICAL_HIGH"
    assert list(test.versions.order_by("version").values_list("version", flat=True)) == [1, 2]


def test_approved_result_is_frozen(patient, doctor, lab_tech):
    test = _to_completed(_order(patient, doctor).tests.get(), lab_tech)
    test = LabService.approve_result(actor_user_id=doctor.id, test_id=test.id)
    assert test.status == LabTestStatus.APPROVED

    with pytest.raises(ValidationError):
        LabService.update_result(actor_user_id=lab_tech.id, test_id=test.id, result_payload=GLUCOSE)


def test_cancel_order_keeps_approved_tests(patient, doctor, lab_tech):
    order = _order(patient, doctor, n=2)
    done, open_test = order.tests.order_by("test_code")
    _to_completed(done, lab_tech)
    LabService.approve_result(actor_user_id=doctor.id, test_id=done.id)

    order = LabService.cancel_order(actor_user_id=doctor.id, order_id=order.id, reason="Patient left")
    assert order.status == LabOrderStatus.CANCELLED

    done.refresh_from_db()
    open_test.refresh_from_db()
    assert done.status == LabTestStatus.APPROVED
    assert open_test.status == LabTestStatus.CANCELLED

    with pytest.raises(ValidationError):
        LabService.collect_sample(actor_user_id=lab_tech.id, test_id=open_test.id)


def test_only_unstarted_orders_are_editable(patient, doctor, lab_tech):
    order = _order(patient, doctor)
    order = LabService.update_order(actor_user_id=doctor.id, order_id=order.id, data={"priority": "URGENT"})
    assert order.priority == "URGENT"

    LabService.collect_sample(actor_user_id=lab_tech.id, test_id=order.tests.get().id)
    with pytest.raises(ValidationError):
        LabService.update_order(actor_user_id=doctor.id, order_id=order.id, data={"clinical_notes": "late"})


def test_pending_queue_puts_stat_first(patient, doctor):
    _order(patient, doctor, priority="ROUTINE")
    stat = _order(patient, doctor, priority="STAT")

    first = pending_tests().first()
    assert first.order_id == stat.id
