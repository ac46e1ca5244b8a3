# backend/hms_core/appointments/api/views.py
from __future__ import annotations

from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import PermissionDenied, ValidationError
from rest_framework.response import Response

from hms_core.appointments.api.serializers import (
    AppointmentCreateSerializer,
    AppointmentSerializer,
    AppointmentStatsSerializer,
    AppointmentUpdateSerializer,
    CancelSerializer,
    DoctorScheduleCreateSerializer,
    DoctorScheduleSerializer,
    DoctorScheduleUpdateSerializer,
    ReminderBatchSerializer,
    RescheduleSerializer,
    SlotSerializer,
    StatusChangeSerializer,
)
from hms_core.appointments.models import Appointment, DoctorSchedule
from hms_core.appointments.selectors import (
    appointment_stats,
    appointments_filtered,
    department_appointments,
    doctor_schedule,
    get_appointment,
    list_schedules,
    patient_appointments,
)
from hms_core.appointments.services import AppointmentService, ScheduleService
from hms_core.common.api.pagination import paginate
from hms_core.common.api.params import date_or_none, int_or_none, pk_uuid
from hms_core.common.idempotency import get_key, load_response, save_response
from hms_core.common.permissions import AppointmentPermission, SchedulePermission, ensure_own_patient, is_patient_only
from hms_core.patients.models import Patient
from hms_core.patients.selectors import patient_for_user

_LIST_PARAMS = [
    OpenApiParameter(name="patient", type=OpenApiTypes.UUID, location=OpenApiParameter.QUERY, required=False),
    OpenApiParameter(name="doctor", type=OpenApiTypes.INT, location=OpenApiParameter.QUERY, required=False),
    OpenApiParameter(name="department", type=OpenApiTypes.UUID, location=OpenApiParameter.QUERY, required=False),
    OpenApiParameter(name="status", type=OpenApiTypes.STR, location=OpenApiParameter.QUERY, required=False),
    OpenApiParameter(
        name="appointment_type", type=OpenApiTypes.STR, location=OpenApiParameter.QUERY, required=False
    ),
    OpenApiParameter(name="date_from", type=OpenApiTypes.DATE, location=OpenApiParameter.QUERY, required=False),
    OpenApiParameter(name="date_to", type=OpenApiTypes.DATE, location=OpenApiParameter.QUERY, required=False),
    OpenApiParameter(name="search", type=OpenApiTypes.STR, location=OpenApiParameter.QUERY, required=False),
]


def _serialize_grouped(days: dict) -> dict:
    return {day: AppointmentSerializer(appts, many=True).data for day, appts in days.items()}


class AppointmentViewSet(viewsets.ViewSet):
    """
    Appointment booking and lifecycle.
    Patient-only callers see and act on their own appointments only.
    """
    permission_classes = [AppointmentPermission]

    serializer_class = AppointmentSerializer
    queryset = Appointment.objects.none()

    def _get_owned(self, request, pk) -> Appointment:
        appt = get_appointment(appointment_id=pk_uuid(pk))
        ensure_own_patient(request.user, appt.patient)
        return appt

    @extend_schema(tags=["Appointments"], responses={200: AppointmentSerializer(many=True)}, parameters=_LIST_PARAMS)
    def list(self, request):
        patient_user_id = request.user.id if is_patient_only(request.user) else None
        qs = appointments_filtered(params=request.query_params, patient_user_id=patient_user_id)
        return paginate(request, qs, AppointmentSerializer)

    @extend_schema(
        tags=["Appointments"],
        request=AppointmentCreateSerializer,
        responses={201: AppointmentSerializer},
    )
    def create(self, request):
        idem = get_key(request)
        if idem:
            cached = load_response(request.user.id, request.method, request.path, idem)
            if cached is not None:
                return Response(cached, status=status.HTTP_201_CREATED)

        ser = AppointmentCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        data = dict(ser.validated_data)

        if is_patient_only(request.user):
            own = patient_for_user(request.user)
            if own is None:
                raise PermissionDenied("No patient record is linked to this account.")
            if data.get("patient_id") not in (None, own.id):
                raise PermissionDenied("You can only book appointments for yourself.")
            data["patient_id"] = own.id
        elif not data.get("patient_id"):
            raise ValidationError({"patient_id": "This field is required."})

        appt = AppointmentService.create(actor_user_id=request.user.id, **data)
        out = AppointmentSerializer(get_appointment(appointment_id=appt.id)).data

        if idem:
            save_response(request.user.id, request.method, request.path, idem, out)

        return Response(out, status=status.HTTP_201_CREATED)

    @extend_schema(tags=["Appointments"], responses={200: AppointmentSerializer})
    def retrieve(self, request, pk=None):
        appt = self._get_owned(request, pk)
        return Response(AppointmentSerializer(appt).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Appointments"], request=AppointmentUpdateSerializer, responses={200: AppointmentSerializer})
    def partial_update(self, request, pk=None):
        ser = AppointmentUpdateSerializer(data=request.data, partial=True)
        ser.is_valid(raise_exception=True)

        appt = AppointmentService.update(
            actor_user_id=request.user.id,
            appointment_id=pk_uuid(pk),
            data=ser.validated_data,
        )
        return Response(AppointmentSerializer(appt).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Appointments"], request=StatusChangeSerializer, responses={200: AppointmentSerializer})
    @action(detail=True, methods=["post"], url_path="status")
    def change_status(self, request, pk=None):
        ser = StatusChangeSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        appt = AppointmentService.change_status(
            actor_user_id=request.user.id,
            appointment_id=pk_uuid(pk),
            status=ser.validated_data["status"],
        )
        return Response(AppointmentSerializer(appt).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Appointments"], request=CancelSerializer, responses={200: AppointmentSerializer})
    @action(detail=True, methods=["post"], url_path="cancel")
    def cancel(self, request, pk=None):
        appt = self._get_owned(request, pk)

        ser = CancelSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        appt = AppointmentService.cancel(
            actor_user_id=request.user.id,
            appointment_id=appt.id,
            reason=ser.validated_data["reason"],
            notes=ser.validated_data.get("notes", ""),
        )
        return Response(AppointmentSerializer(appt).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Appointments"], request=RescheduleSerializer, responses={200: AppointmentSerializer})
    @action(detail=True, methods=["post"], url_path="reschedule")
    def reschedule(self, request, pk=None):
        ser = RescheduleSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        appt = AppointmentService.reschedule(
            actor_user_id=request.user.id,
            appointment_id=pk_uuid(pk),
            new_date=ser.validated_data["new_date"],
            reason=ser.validated_data.get("reason", ""),
        )
        return Response(AppointmentSerializer(appt).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Appointments"], request=None, responses={200: AppointmentSerializer})
    @action(detail=True, methods=["post"], url_path="remind")
    def remind(self, request, pk=None):
        appt = AppointmentService.send_reminder(actor_user_id=request.user.id, appointment_id=pk_uuid(pk))
        return Response(AppointmentSerializer(appt).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Appointments"], request=None, responses={200: ReminderBatchSerializer})
    @action(detail=False, methods=["post"], url_path="reminders/send-scheduled")
    def send_scheduled_reminders(self, request):
        result = AppointmentService.send_scheduled_reminders(actor_user_id=request.user.id)
        return Response(result, status=status.HTTP_200_OK)

    @extend_schema(tags=["Appointments"], responses={200: AppointmentStatsSerializer})
    @action(detail=False, methods=["get"], url_path="stats")
    def stats(self, request):
        return Response(appointment_stats(), status=status.HTTP_200_OK)

    @extend_schema(
        tags=["Appointments"],
        responses={200: OpenApiTypes.OBJECT},
        parameters=[
            OpenApiParameter(
                name="view",
                type=OpenApiTypes.STR,
                location=OpenApiParameter.QUERY,
                required=False,
                enum=["day", "week"],
            ),
            OpenApiParameter(name="date", type=OpenApiTypes.DATE, location=OpenApiParameter.QUERY, required=False),
        ],
    )
    @action(detail=False, methods=["get"], url_path=r"doctor/(?P<doctor_id>\d+)")
    def by_doctor(self, request, doctor_id=None):
        view = request.query_params.get("view", "week")
        if view not in ("day", "week"):
            raise ValidationError({"view": "Must be 'day' or 'week'."})

        data = doctor_schedule(
            doctor_id=int(doctor_id),
            view=view,
            on_date=date_or_none(request.query_params.get("date"), "date"),
        )
        return Response(
            {
                "doctor_id": data["doctor_id"],
                "view": data["view"],
                "start_date": data["start_date"],
                "days": _serialize_grouped(data["days"]),
                "schedules": DoctorScheduleSerializer(data["schedules"], many=True).data,
            },
            status=status.HTTP_200_OK,
        )

    @extend_schema(tags=["Appointments"], responses={200: AppointmentSerializer(many=True)})
    @action(detail=False, methods=["get"], url_path=r"patient/(?P<patient_id>[0-9a-fA-F-]+)")
    def by_patient(self, request, patient_id=None):
        patient = Patient.objects.get(id=pk_uuid(patient_id))
        ensure_own_patient(request.user, patient)
        return paginate(request, patient_appointments(patient_id=patient.id), AppointmentSerializer)

    @extend_schema(
        tags=["Appointments"],
        responses={200: OpenApiTypes.OBJECT},
        parameters=[
            OpenApiParameter(name="date", type=OpenApiTypes.DATE, location=OpenApiParameter.QUERY, required=False),
        ],
    )
    @action(detail=False, methods=["get"], url_path=r"department/(?P<department_id>[0-9a-fA-F-]+)")
    def by_department(self, request, department_id=None):
        data = department_appointments(
            department_id=pk_uuid(department_id),
            on_date=date_or_none(request.query_params.get("date"), "date"),
        )
        for bucket in data["doctors"]:
            bucket["appointments"] = AppointmentSerializer(bucket["appointments"], many=True).data
        return Response(data, status=status.HTTP_200_OK)


class DoctorScheduleViewSet(viewsets.ViewSet):
    permission_classes = [SchedulePermission]

    serializer_class = DoctorScheduleSerializer
    queryset = DoctorSchedule.objects.none()

    @extend_schema(
        tags=["Schedules"],
        responses={200: DoctorScheduleSerializer(many=True)},
        parameters=[
            OpenApiParameter(name="doctor", type=OpenApiTypes.INT, location=OpenApiParameter.QUERY, required=False),
        ],
    )
    def list(self, request):
        qs = list_schedules(doctor_id=int_or_none(request.query_params.get("doctor"), "doctor"))
        return paginate(request, qs, DoctorScheduleSerializer)

    @extend_schema(tags=["Schedules"], request=DoctorScheduleCreateSerializer, responses={201: DoctorScheduleSerializer})
    def create(self, request):
        ser = DoctorScheduleCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        sched = ScheduleService.create_schedule(actor_user_id=request.user.id, **ser.validated_data)
        return Response(DoctorScheduleSerializer(sched).data, status=status.HTTP_201_CREATED)

    @extend_schema(tags=["Schedules"], responses={200: DoctorScheduleSerializer})
    def retrieve(self, request, pk=None):
        sched = DoctorSchedule.objects.get(id=pk_uuid(pk))
        return Response(DoctorScheduleSerializer(sched).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Schedules"], request=DoctorScheduleUpdateSerializer, responses={200: DoctorScheduleSerializer})
    def partial_update(self, request, pk=None):
        ser = DoctorScheduleUpdateSerializer(data=request.data, partial=True)
        ser.is_valid(raise_exception=True)

        sched = ScheduleService.update_schedule(
            actor_user_id=request.user.id,
            schedule_id=pk_uuid(pk),
            data=ser.validated_data,
        )
        return Response(DoctorScheduleSerializer(sched).data, status=status.HTTP_200_OK)

    @extend_schema(
        tags=["Schedules"],
        responses={200: SlotSerializer(many=True)},
        parameters=[
            OpenApiParameter(name="doctor", type=OpenApiTypes.INT, location=OpenApiParameter.QUERY, required=True),
            OpenApiParameter(name="date", type=OpenApiTypes.DATE, location=OpenApiParameter.QUERY, required=True),
        ],
    )
    @action(detail=False, methods=["get"], url_path="available-slots")
    def available_slots(self, request):
        doctor_id = int_or_none(request.query_params.get("doctor"), "doctor")
        on_date = date_or_none(request.query_params.get("date"), "date")
        if doctor_id is None or on_date is None:
            raise ValidationError({"detail": "Both 'doctor' and 'date' query parameters are required."})

        slots = ScheduleService.available_slots(doctor_id=doctor_id, on_date=on_date)
        return Response(SlotSerializer(slots, many=True).data, status=status.HTTP_200_OK)
