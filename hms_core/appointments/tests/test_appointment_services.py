# backend/hms_core/appointments/tests/test_appointment_services.py
from datetime import timedelta

import pytest
from django.core.management import call_command
from django.utils import timezone
from rest_framework.exceptions import ValidationError

from hms_core.appointments.models import Appointment, AppointmentStatus
from hms_core.appointments.services import AppointmentService, ScheduleService, can_transition
from hms_core.audit.models import AuditEvent
from hms_core.common.api.exceptions import BusinessRuleError, SchedulingConflict
from hms_core.medical_records.models import MedicalRecord

pytestmark = pytest.mark.django_db


def _book(patient, doctor, when, minutes=30, **extra):
    return AppointmentService.create(
        actor_user_id=doctor.id,
        patient_id=patient.id,
        doctor_id=doctor.id,
        appointment_date=when,
        duration_minutes=minutes,
        reason="Persistent cough",
        **extra,
    )


def test_create_sets_scheduled_code_and_default_location(patient, doctor, tomorrow_at):
    appt = _book(patient, doctor, tomorrow_at(9))

    assert appt.status == AppointmentStatus.SCHEDULED
    assert appt.appointment_code.startswith("AP")
    assert appt.location == "Main Clinic"
    assert AuditEvent.objects.filter(event_code="appointment.created", entity_id=appt.id).exists()


def test_create_rejects_past_date(patient, doctor):
    with pytest.raises(ValidationError):
        _book(patient, doctor, timezone.now() - timedelta(hours=1))


def test_overlapping_booking_is_a_conflict(patient, other_patient, doctor, tomorrow_at):
    _book(patient, doctor, tomorrow_at(9), minutes=60)

    with pytest.raises(SchedulingConflict):
        _book(other_patient, doctor, tomorrow_at(9, 30))


def test_back_to_back_booking_is_allowed(patient, other_patient, doctor, tomorrow_at):
    _book(patient, doctor, tomorrow_at(9), minutes=30)
    second = _book(other_patient, doctor, tomorrow_at(9, 30))
    assert second.status == AppointmentStatus.SCHEDULED


def test_cancelled_appointment_frees_the_slot(patient, other_patient, doctor, tomorrow_at):
    first = _book(patient, doctor, tomorrow_at(10))
    AppointmentService.cancel(actor_user_id=doctor.id, appointment_id=first.id, reason="Patient request")

    again = _book(other_patient, doctor, tomorrow_at(10))
    assert again.id != first.id


def test_without_doctor_picks_first_active_doctor(patient, doctor, tomorrow_at):
    appt = AppointmentService.create(
        actor_user_id=None,
        patient_id=patient.id,
        appointment_date=tomorrow_at(11),
        reason="Checkup",
    )
    assert appt.doctor_id == doctor.id


def test_without_any_doctor_raises_no_doctors_available(patient, tomorrow_at):
    with pytest.raises(BusinessRuleError) as exc:
        AppointmentService.create(
            actor_user_id=None,
            patient_id=patient.id,
            appointment_date=tomorrow_at(11),
            reason="Checkup",
        )
    assert exc.value.error_code == "NO_DOCTORS_AVAILABLE"


def test_transition_table():
    S = AppointmentStatus
    assert can_transition(S.SCHEDULED, S.CONFIRMED)
    assert can_transition(S.RESCHEDULED, S.CONFIRMED)
    assert not can_transition(S.SCHEDULED, S.COMPLETED)
    assert not can_transition(S.COMPLETED, S.CANCELLED)


def test_full_lifecycle_creates_medical_record_on_completion(patient, doctor, tomorrow_at):
    appt = _book(patient, doctor, tomorrow_at(14))
    for status in ("CONFIRMED", "IN_PROGRESS", "COMPLETED"):
        appt = AppointmentService.change_status(actor_user_id=doctor.id, appointment_id=appt.id, status=status)

    assert appt.actual_start_time is not None
    assert appt.actual_end_time is not None
    assert MedicalRecord.objects.filter(patient=patient).exists()


def test_invalid_transition_rejected(patient, doctor, tomorrow_at):
    appt = _book(patient, doctor, tomorrow_at(15))
    with pytest.raises(ValidationError):
        AppointmentService.change_status(actor_user_id=doctor.id, appointment_id=appt.id, status="COMPLETED")


def test_cancel_requires_reason_and_rejects_terminal(patient, doctor, tomorrow_at):
    appt = _book(patient, doctor, tomorrow_at(16))
    with pytest.raises(ValidationError):
        AppointmentService.cancel(actor_user_id=doctor.id, appointment_id=appt.id, reason="  ")

    AppointmentService.cancel(actor_user_id=doctor.id, appointment_id=appt.id, reason="Sick")
    with pytest.raises(ValidationError):
        AppointmentService.cancel(actor_user_id=doctor.id, appointment_id=appt.id, reason="Again")


def test_reschedule_moves_date_and_resets_reminder(patient, doctor, tomorrow_at):
    appt = _book(patient, doctor, tomorrow_at(9))
    Appointment.objects.filter(id=appt.id).update(reminder_sent=True)

    moved = AppointmentService.reschedule(
        actor_user_id=doctor.id, appointment_id=appt.id, new_date=tomorrow_at(13), reason="Doctor busy"
    )
    assert moved.status == AppointmentStatus.RESCHEDULED
    assert moved.rescheduled_from == tomorrow_at(9)
    assert moved.reminder_sent is False


def test_send_reminder_within_window(patient, doctor, mailoutbox):
    appt = _book(patient, doctor, timezone.now() + timedelta(hours=3))
    appt = AppointmentService.send_reminder(actor_user_id=doctor.id, appointment_id=appt.id)

    assert appt.reminder_sent is True
    assert len(mailoutbox) == 1
    assert mailoutbox[0].to == [patient.email]


def test_send_reminder_too_far_away(patient, doctor):
    appt = _book(patient, doctor, timezone.now() + timedelta(days=3))
    with pytest.raises(ValidationError):
        AppointmentService.send_reminder(actor_user_id=doctor.id, appointment_id=appt.id)


def test_scheduled_reminders_command(patient, doctor, mailoutbox):
    due = _book(patient, doctor, timezone.now() + timedelta(hours=24))
    _book(patient, doctor, timezone.now() + timedelta(hours=48))

    call_command("send_appointment_reminders")

    due.refresh_from_db()
    assert due.reminder_sent is True
    assert len(mailoutbox) == 1


def test_available_slots_skip_booked(patient, doctor, tomorrow_at):
    day = tomorrow_at(0).date()
    ScheduleService.create_schedule(
        actor_user_id=doctor.id,
        doctor_id=doctor.id,
        day_of_week=day.weekday(),
        start_time=tomorrow_at(9).time(),
        end_time=tomorrow_at(11).time(),
        slot_duration=30,
    )
    _book(patient, doctor, tomorrow_at(9, 30))

    slots = ScheduleService.available_slots(doctor_id=doctor.id, on_date=day)
    starts = [timezone.localtime(s["start"]).strftime("%H:%M") for s in slots]
    assert starts == ["09:00", "10:00", "10:30"]


def test_duplicate_weekday_schedule_rejected(doctor, tomorrow_at):
    kwargs = dict(
        actor_user_id=doctor.id,
        doctor_id=doctor.id,
        day_of_week=2,
        start_time=tomorrow_at(8).time(),
        end_time=tomorrow_at(12).time(),
    )
    ScheduleService.create_schedule(**kwargs)
    with pytest.raises(ValidationError):
        ScheduleService.create_schedule(**kwargs)


def test_schedule_changes_are_audited(doctor, hospital_admin, tomorrow_at):
    sched = ScheduleService.create_schedule(
        actor_user_id=hospital_admin.id,
        doctor_id=doctor.id,
        day_of_week=4,
        start_time=tomorrow_at(13).time(),
        end_time=tomorrow_at(17).time(),
    )
    ScheduleService.update_schedule(
        actor_user_id=hospital_admin.id, schedule_id=sched.id, data={"slot_duration": 20, "location": "Room 4"}
    )

    events = AuditEvent.objects.filter(entity_type="DoctorSchedule", entity_id=sched.id).order_by("occurred_at")
    assert [e.event_code for e in events] == ["doctor_schedule.created", "doctor_schedule.updated"]
    assert all(e.actor_user_id == hospital_admin.id for e in events)
    assert events[1].metadata["updated_fields"] == ["location", "slot_duration"]
