# backend/hms_core/appointments/services.py
from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from uuid import UUID

from django.conf import settings
from django.contrib.auth import get_user_model
from django.core.mail import send_mail
from django.db import transaction
from django.utils import timezone
from rest_framework.exceptions import ValidationError

from hms_core.appointments.models import (
    ACTIVE_STATUSES,
    MAX_DURATION_MINUTES,
    MIN_DURATION_MINUTES,
    TERMINAL_STATUSES,
    Appointment,
    AppointmentStatus,
    DoctorSchedule,
)
from hms_core.audit.services import AuditService
from hms_core.common.api.errors import BusinessRuleError, SchedulingConflict
from hms_core.common.codes import appointment_code, unique_code
from hms_core.common.events import publish
from hms_core.common.permissions import ROLE_DOCTOR
from hms_core.patients.models import Patient

logger = logging.getLogger(__name__)

User = get_user_model()

S = AppointmentStatus

ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    S.SCHEDULED: frozenset({S.CONFIRMED, S.CANCELLED}),
    S.CONFIRMED: frozenset({S.IN_PROGRESS, S.CANCELLED}),
    S.IN_PROGRESS: frozenset({S.COMPLETED, S.CANCELLED}),
    S.RESCHEDULED: frozenset({S.CONFIRMED, S.CANCELLED}),
    S.COMPLETED: frozenset(),
    S.CANCELLED: frozenset(),
}

RESCHEDULABLE = (S.SCHEDULED, S.CONFIRMED, S.RESCHEDULED)

UPDATABLE_FIELDS = {
    "appointment_date",
    "duration_minutes",
    "appointment_type",
    "mode",
    "location",
    "room",
    "reason",
    "description",
    "symptoms",
    "preparation_instructions",
}


def can_transition(current: str, new: str) -> bool:
    return new in ALLOWED_TRANSITIONS.get(current, frozenset())


def _active_doctors():
    return User.objects.filter(
        is_active=True,
        profile__role=ROLE_DOCTOR,
        profile__is_deleted=False,
    ).select_related("profile")


def _check_duration(duration_minutes: int) -> None:
    if not (MIN_DURATION_MINUTES <= int(duration_minutes) <= MAX_DURATION_MINUTES):
        raise ValidationError(
            {"duration_minutes": f"Duration must be between {MIN_DURATION_MINUTES} and {MAX_DURATION_MINUTES} minutes."}
        )


def _check_future(when: datetime, field: str = "appointment_date") -> None:
    if when <= timezone.now():
        raise ValidationError({field: "Appointment date must be in the future."})


def _check_reason(reason: str) -> None:
    if not (reason or "").strip():
        raise ValidationError({"reason": "Reason is required."})
    if len(reason) > 500:
        raise ValidationError({"reason": "Reason must be at most 500 characters."})


def find_conflicts(*, doctor_id: int, start: datetime, duration_minutes: int, exclude_id: UUID | None = None):
    """
    Active appointments of the doctor whose [start, start+duration) overlaps
    the requested interval. Candidates are bounded by the longest allowed
    duration so the overlap test itself runs on a handful of rows.
    """
    end = start + timedelta(minutes=int(duration_minutes))
    qs = Appointment.objects.filter(
        doctor_id=doctor_id,
        status__in=ACTIVE_STATUSES,
        appointment_date__gte=start - timedelta(minutes=MAX_DURATION_MINUTES),
        appointment_date__lt=end,
    )
    if exclude_id is not None:
        qs = qs.exclude(id=exclude_id)
    return [a for a in qs if a.end_time > start]


def _assert_no_conflict(*, doctor_id: int, start: datetime, duration_minutes: int, exclude_id: UUID | None = None):
    conflicts = find_conflicts(
        doctor_id=doctor_id, start=start, duration_minutes=duration_minutes, exclude_id=exclude_id
    )
    if conflicts:
        logger.warning(
            "scheduling conflict doctor_id=%s start=%s with=%s",
            doctor_id,
            start.isoformat(),
            conflicts[0].appointment_code,
        )
        raise SchedulingConflict()


class AppointmentService:
    @staticmethod
    def _get_locked(appointment_id: UUID) -> Appointment:
        return Appointment.objects.select_for_update().get(id=appointment_id)

    @staticmethod
    def _resolve_doctor(doctor_id: int | None):
        if doctor_id is None:
            doctor = _active_doctors().order_by("date_joined", "id").first()
            if doctor is None:
                raise BusinessRuleError(
                    "NO_DOCTORS_AVAILABLE",
                    "No active doctor is available.",
                    status_code=404,
                )
            return doctor

        doctor = _active_doctors().filter(id=doctor_id).first()
        if doctor is None:
            raise ValidationError({"doctor": "Doctor not found or not active."})
        return doctor

    @staticmethod
    @transaction.atomic
    def create(
        *,
        actor_user_id: int | None,
        patient_id: UUID,
        appointment_date: datetime,
        reason: str,
        doctor_id: int | None = None,
        duration_minutes: int = 30,
        **fields,
    ) -> Appointment:
        patient = Patient.objects.filter(id=patient_id).first()
        if patient is None or not patient.is_active:
            raise ValidationError({"patient": "Patient not found or inactive."})

        doctor = AppointmentService._resolve_doctor(doctor_id)

        _check_future(appointment_date)
        _check_duration(duration_minutes)
        _check_reason(reason)

        # serialize bookings per doctor
        User.objects.select_for_update().filter(id=doctor.id).first()
        _assert_no_conflict(doctor_id=doctor.id, start=appointment_date, duration_minutes=duration_minutes)

        extra = {k: v for k, v in fields.items() if k in UPDATABLE_FIELDS and v is not None}
        if not extra.get("location"):
            extra.pop("location", None)

        appt = Appointment.objects.create(
            appointment_code=unique_code(Appointment, "appointment_code", appointment_code),
            patient=patient,
            doctor=doctor,
            department_id=getattr(doctor.profile, "department_id", None),
            appointment_date=appointment_date,
            duration_minutes=duration_minutes,
            reason=reason.strip(),
            status=S.SCHEDULED,
            created_by_id=actor_user_id,
            **extra,
        )

        AuditService.log(
            event_code="appointment.created",
            entity_type="Appointment",
            entity_id=appt.id,
            actor_user_id=actor_user_id,
            metadata={
                "patient_id": str(patient.id),
                "doctor_id": doctor.id,
                "appointment_date": appointment_date.isoformat(),
            },
        )
        logger.info("appointment created code=%s doctor_id=%s", appt.appointment_code, doctor.id)
        return appt

    @staticmethod
    def _apply_status(appt: Appointment, new_status: str, *, actor_user_id: int | None) -> list[str]:
        """
        Move appt to new_status through the transition table; returns changed fields.
        Caller saves.
        """
        old = appt.status
        if not can_transition(old, new_status):
            logger.warning("rejected appointment transition code=%s %s->%s", appt.appointment_code, old, new_status)
            raise ValidationError({"status": f"Cannot change status from {old} to {new_status}."})

        appt.status = new_status
        changed = ["status"]
        now = timezone.now()

        if new_status == S.IN_PROGRESS:
            appt.actual_start_time = now
            changed.append("actual_start_time")
        elif new_status == S.COMPLETED:
            appt.actual_end_time = now
            changed.append("actual_end_time")
        elif new_status == S.CANCELLED:
            appt.cancelled_by_id = actor_user_id
            appt.cancelled_at = now
            changed += ["cancelled_by", "cancelled_at"]

        logger.info("appointment %s status %s -> %s", appt.appointment_code, old, new_status)
        return changed

    @staticmethod
    def _after_status(appt: Appointment, old_status: str, *, actor_user_id: int | None) -> None:
        AuditService.log(
            event_code="appointment.status_changed",
            entity_type="Appointment",
            entity_id=appt.id,
            actor_user_id=actor_user_id,
            metadata={"from": old_status, "to": appt.status},
        )
        if appt.status == S.COMPLETED:
            publish(
                "appointment.completed",
                {
                    "appointment_id": str(appt.id),
                    "patient_id": str(appt.patient_id),
                    "doctor_id": appt.doctor_id,
                    "actor_user_id": actor_user_id,
                },
            )

    @staticmethod
    @transaction.atomic
    def update(*, actor_user_id: int | None, appointment_id: UUID, data: dict) -> Appointment:
        appt = AppointmentService._get_locked(appointment_id)
        if appt.status in TERMINAL_STATUSES:
            raise ValidationError({"status": f"Cannot update a {appt.status.lower()} appointment."})

        updates = {k: v for k, v in (data or {}).items() if k in UPDATABLE_FIELDS}
        new_status = (data or {}).get("status")

        if "appointment_date" in updates:
            _check_future(updates["appointment_date"])
        if "duration_minutes" in updates:
            _check_duration(updates["duration_minutes"])
        if "reason" in updates:
            _check_reason(updates["reason"])

        if "appointment_date" in updates or "duration_minutes" in updates:
            _assert_no_conflict(
                doctor_id=appt.doctor_id,
                start=updates.get("appointment_date", appt.appointment_date),
                duration_minutes=updates.get("duration_minutes", appt.duration_minutes),
                exclude_id=appt.id,
            )

        for k, v in updates.items():
            setattr(appt, k, v)
        changed = list(updates.keys())

        old_status = appt.status
        if new_status and new_status != old_status:
            changed += AppointmentService._apply_status(appt, new_status, actor_user_id=actor_user_id)

        if changed:
            appt.save(update_fields=sorted(set(changed)) + ["updated_at"])

        AuditService.log(
            event_code="appointment.updated",
            entity_type="Appointment",
            entity_id=appt.id,
            actor_user_id=actor_user_id,
            metadata={"updated_fields": sorted(updates.keys())},
        )
        if appt.status != old_status:
            AppointmentService._after_status(appt, old_status, actor_user_id=actor_user_id)
        return appt

    @staticmethod
    @transaction.atomic
    def change_status(*, actor_user_id: int | None, appointment_id: UUID, status: str) -> Appointment:
        if status not in S.values:
            raise ValidationError({"status": f"Unknown status: {status}"})

        appt = AppointmentService._get_locked(appointment_id)
        old_status = appt.status
        changed = AppointmentService._apply_status(appt, status, actor_user_id=actor_user_id)
        appt.save(update_fields=changed + ["updated_at"])

        AppointmentService._after_status(appt, old_status, actor_user_id=actor_user_id)
        return appt

    @staticmethod
    @transaction.atomic
    def cancel(*, actor_user_id: int | None, appointment_id: UUID, reason: str, notes: str = "") -> Appointment:
        if not (reason or "").strip():
            raise ValidationError({"reason": "Cancellation reason is required."})

        appt = AppointmentService._get_locked(appointment_id)
        if appt.status in TERMINAL_STATUSES:
            logger.warning("rejected cancel of %s appointment code=%s", appt.status, appt.appointment_code)
            raise ValidationError({"status": f"Cannot cancel a {appt.status.lower()} appointment."})

        old_status = appt.status
        changed = AppointmentService._apply_status(appt, S.CANCELLED, actor_user_id=actor_user_id)
        appt.cancellation_reason = reason.strip()
        appt.cancellation_notes = notes or ""
        appt.save(update_fields=changed + ["cancellation_reason", "cancellation_notes", "updated_at"])

        AuditService.log(
            event_code="appointment.cancelled",
            entity_type="Appointment",
            entity_id=appt.id,
            actor_user_id=actor_user_id,
            metadata={"reason": appt.cancellation_reason, "from": old_status},
        )
        return appt

    @staticmethod
    @transaction.atomic
    def reschedule(
        *, actor_user_id: int | None, appointment_id: UUID, new_date: datetime, reason: str = ""
    ) -> Appointment:
        appt = AppointmentService._get_locked(appointment_id)
        if appt.status not in RESCHEDULABLE:
            raise ValidationError({"status": f"Cannot reschedule a {appt.status.lower()} appointment."})

        _check_future(new_date, "new_date")
        _assert_no_conflict(
            doctor_id=appt.doctor_id,
            start=new_date,
            duration_minutes=appt.duration_minutes,
            exclude_id=appt.id,
        )

        old_date = appt.appointment_date
        appt.rescheduled_from = old_date
        appt.appointment_date = new_date
        appt.reschedule_reason = reason or ""
        appt.status = S.RESCHEDULED
        appt.reminder_sent = False
        appt.reminder_sent_at = None
        appt.save(
            update_fields=[
                "rescheduled_from",
                "appointment_date",
                "reschedule_reason",
                "status",
                "reminder_sent",
                "reminder_sent_at",
                "updated_at",
            ]
        )

        AuditService.log(
            event_code="appointment.rescheduled",
            entity_type="Appointment",
            entity_id=appt.id,
            actor_user_id=actor_user_id,
            metadata={"from": old_date.isoformat(), "to": new_date.isoformat(), "reason": reason},
        )
        logger.info("appointment %s rescheduled to %s", appt.appointment_code, new_date.isoformat())
        return appt

    # -------------------------
    # Reminders
    # -------------------------
    @staticmethod
    def _deliver_reminder(appt: Appointment) -> None:
        recipient = appt.patient.email or getattr(appt.patient.user, "email", "")
        if not recipient:
            raise ValidationError({"patient": "Patient has no email address."})

        local_dt = timezone.localtime(appt.appointment_date)
        send_mail(
            subject=f"Appointment reminder {appt.appointment_code}",
            message=(
                f"Dear {appt.patient.full_name},\n\n"
                f"This is a reminder of your appointment on {local_dt:%Y-%m-%d %H:%M} "
                f"at {appt.location}{' room ' + appt.room if appt.room else ''}.\n"
                f"Reason: {appt.reason}\n"
            ),
            from_email=settings.DEFAULT_FROM_EMAIL,
            recipient_list=[recipient],
        )

    @staticmethod
    @transaction.atomic
    def send_reminder(*, actor_user_id: int | None, appointment_id: UUID) -> Appointment:
        appt = (
            Appointment.objects.select_for_update()
            .select_related("patient", "patient__user")
            .get(id=appointment_id)
        )
        now = timezone.now()
        window = timedelta(hours=float(getattr(settings, "HMS_REMINDER_WINDOW_HOURS", 24)))

        if appt.status not in ACTIVE_STATUSES:
            raise ValidationError({"status": "Reminders can only be sent for active appointments."})
        if appt.appointment_date <= now:
            raise ValidationError({"appointment_date": "Cannot send a reminder for a past appointment."})
        if appt.appointment_date - now > window:
            raise ValidationError({"appointment_date": "Appointment is too far away for a reminder."})

        AppointmentService._deliver_reminder(appt)

        appt.reminder_sent = True
        appt.reminder_sent_at = now
        appt.save(update_fields=["reminder_sent", "reminder_sent_at", "updated_at"])

        AuditService.log(
            event_code="appointment.reminder_sent",
            entity_type="Appointment",
            entity_id=appt.id,
            actor_user_id=actor_user_id,
        )
        return appt

    @staticmethod
    def send_scheduled_reminders(*, actor_user_id: int | None = None) -> dict:
        """
        Remind every active appointment starting 23-25h from now that has
        not been reminded yet. One failure doesn't stop the batch.
        """
        now = timezone.now()
        due = (
            Appointment.objects.filter(
                status__in=ACTIVE_STATUSES,
                reminder_sent=False,
                appointment_date__gte=now + timedelta(hours=23),
                appointment_date__lte=now + timedelta(hours=25),
            )
            .select_related("patient", "patient__user")
            .order_by("appointment_date")
        )

        details = []
        successful = 0
        for appt in due:
            try:
                with transaction.atomic():
                    AppointmentService._deliver_reminder(appt)
                    Appointment.objects.filter(id=appt.id).update(reminder_sent=True, reminder_sent_at=timezone.now())
                    AuditService.log(
                        event_code="appointment.reminder_sent",
                        entity_type="Appointment",
                        entity_id=appt.id,
                        actor_user_id=actor_user_id,
                        metadata={"scheduled": True},
                    )
            except ValidationError as e:
                details.append({"appointment_code": appt.appointment_code, "sent": False, "error": str(e.detail)})
                logger.warning("reminder failed code=%s: %s", appt.appointment_code, e.detail)
                continue
            except OSError as e:
                details.append({"appointment_code": appt.appointment_code, "sent": False, "error": str(e)})
                logger.warning("reminder delivery error code=%s: %s", appt.appointment_code, e)
                continue

            successful += 1
            details.append({"appointment_code": appt.appointment_code, "sent": True, "error": None})

        result = {
            "total": len(details),
            "successful": successful,
            "failed": len(details) - successful,
            "details": details,
        }

        logger.info("scheduled reminders total=%s ok=%s", result["total"], successful)
        return result


class ScheduleService:
    @staticmethod
    def _check_window(start_time, end_time) -> None:
        if start_time >= end_time:
            raise ValidationError({"end_time": "start_time must be before end_time."})

    @staticmethod
    @transaction.atomic
    def create_schedule(
        *,
        actor_user_id: int | None,
        doctor_id: int,
        day_of_week: int,
        start_time,
        end_time,
        slot_duration: int = 30,
        max_appointments_per_day: int = 20,
        location: str = "",
        is_active: bool = True,
    ) -> DoctorSchedule:
        if not _active_doctors().filter(id=doctor_id).exists():
            raise ValidationError({"doctor": "Doctor not found or not active."})
        if not 0 <= int(day_of_week) <= 6:
            raise ValidationError({"day_of_week": "day_of_week must be 0 (Monday) to 6 (Sunday)."})
        if not 15 <= int(slot_duration) <= 240:
            raise ValidationError({"slot_duration": "Slot duration must be between 15 and 240 minutes."})
        ScheduleService._check_window(start_time, end_time)

        if DoctorSchedule.objects.filter(doctor_id=doctor_id, day_of_week=day_of_week).exists():
            raise ValidationError({"day_of_week": "Doctor already has a schedule for this weekday."})

        sched = DoctorSchedule.objects.create(
            doctor_id=doctor_id,
            day_of_week=day_of_week,
            start_time=start_time,
            end_time=end_time,
            slot_duration=slot_duration,
            max_appointments_per_day=max_appointments_per_day,
            location=location or "",
            is_active=is_active,
        )

        AuditService.log(
            event_code="doctor_schedule.created",
            entity_type="DoctorSchedule",
            entity_id=sched.id,
            actor_user_id=actor_user_id,
            metadata={"doctor_id": doctor_id, "day_of_week": int(day_of_week)},
        )
        return sched

    @staticmethod
    @transaction.atomic
    def update_schedule(*, actor_user_id: int | None, schedule_id: UUID, data: dict) -> DoctorSchedule:
        sched = DoctorSchedule.objects.select_for_update().get(id=schedule_id)
        allowed = {"start_time", "end_time", "slot_duration", "max_appointments_per_day", "location", "is_active"}
        updates = {k: v for k, v in (data or {}).items() if k in allowed}

        if "slot_duration" in updates and not 15 <= int(updates["slot_duration"]) <= 240:
            raise ValidationError({"slot_duration": "Slot duration must be between 15 and 240 minutes."})
        ScheduleService._check_window(
            updates.get("start_time", sched.start_time),
            updates.get("end_time", sched.end_time),
        )

        for k, v in updates.items():
            setattr(sched, k, v)
        sched.save()

        AuditService.log(
            event_code="doctor_schedule.updated",
            entity_type="DoctorSchedule",
            entity_id=sched.id,
            actor_user_id=actor_user_id,
            metadata={"updated_fields": sorted(updates.keys())},
        )
        return sched

    @staticmethod
    def available_slots(*, doctor_id: int, on_date: date) -> list[dict]:
        """
        Free slot start times for the doctor's schedule window on on_date.
        Empty when there is no active schedule or the daily cap is reached.
        """
        sched = DoctorSchedule.objects.filter(
            doctor_id=doctor_id, day_of_week=on_date.weekday(), is_active=True
        ).first()
        if sched is None:
            return []

        tz = timezone.get_current_timezone()
        day_start = timezone.make_aware(datetime.combine(on_date, datetime.min.time()), tz)
        booked = list(
            Appointment.objects.filter(
                doctor_id=doctor_id,
                status__in=ACTIVE_STATUSES,
                appointment_date__gte=day_start,
                appointment_date__lt=day_start + timedelta(days=1),
            )
        )
        if len(booked) >= sched.max_appointments_per_day:
            return []

        step = timedelta(minutes=sched.slot_duration)
        cursor = timezone.make_aware(datetime.combine(on_date, sched.start_time), tz)
        window_end = timezone.make_aware(datetime.combine(on_date, sched.end_time), tz)
        now = timezone.now()

        slots = []
        while cursor + step <= window_end:
            slot_end = cursor + step
            taken = any(a.appointment_date < slot_end and a.end_time > cursor for a in booked)
            if not taken and cursor > now:
                slots.append({"start": cursor, "end": slot_end})
            cursor = slot_end
        return slots
