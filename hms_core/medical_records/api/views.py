# backend/hms_core/medical_records/api/views.py
from __future__ import annotations

from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import NotFound, ValidationError
from rest_framework.response import Response
from rest_framework.views import APIView

from hms_core.common.api.pagination import paginate
from hms_core.common.api.params import pk_uuid
from hms_core.common.permissions import MedicalRecordPermission, ensure_own_patient, is_patient_only
from hms_core.medical_records.api.serializers import (
    HistoryUpdateSerializer,
    MedicalRecordSerializer,
    SurgicalHistorySerializer,
    VisitCreateSerializer,
    VisitSerializer,
    VisitUpdateSerializer,
)
from hms_core.medical_records.models import MedicalRecord, Visit, VisitStatus
from hms_core.medical_records.selectors import get_visit, record_for_patient, search_by_diagnosis, visits_for_patient
from hms_core.medical_records.services import MedicalRecordService
from hms_core.patients.models import Patient


def _owned_patient(request, pk) -> Patient:
    patient = Patient.objects.get(id=pk_uuid(pk))
    ensure_own_patient(request.user, patient)
    return patient


class PatientMedicalRecordViewSet(viewsets.ViewSet):
    """
    /medical-records/patient/<patient_id>/...
    The URL id is the patient's id, not the record's.
    """
    permission_classes = [MedicalRecordPermission]

    serializer_class = MedicalRecordSerializer
    queryset = MedicalRecord.objects.none()

    @extend_schema(tags=["Medical Records"], responses={200: MedicalRecordSerializer})
    def retrieve(self, request, pk=None):
        patient = _owned_patient(request, pk)
        record = record_for_patient(patient_id=patient.id)
        if record is None:
            raise NotFound("No medical record exists for this patient.")
        return Response(MedicalRecordSerializer(record).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Medical Records"], request=HistoryUpdateSerializer, responses={200: MedicalRecordSerializer})
    def partial_update(self, request, pk=None):
        patient = _owned_patient(request, pk)

        ser = HistoryUpdateSerializer(data=request.data, partial=True)
        ser.is_valid(raise_exception=True)

        MedicalRecordService.update_history(
            actor_user_id=request.user.id,
            patient_id=patient.id,
            data=ser.validated_data,
        )
        return Response(
            MedicalRecordSerializer(record_for_patient(patient_id=patient.id)).data,
            status=status.HTTP_200_OK,
        )

    @extend_schema(
        tags=["Medical Records"],
        responses={200: VisitSerializer(many=True)},
        parameters=[
            OpenApiParameter(name="status", type=OpenApiTypes.STR, location=OpenApiParameter.QUERY, required=False),
        ],
    )
    @action(detail=True, methods=["get"], url_path="visits")
    def visits(self, request, pk=None):
        patient = _owned_patient(request, pk)

        status_value = request.query_params.get("status") or None
        if status_value and status_value not in VisitStatus.values:
            raise ValidationError({"status": f"Unknown status: {status_value}"})
        return paginate(request, visits_for_patient(patient_id=patient.id, status=status_value), VisitSerializer)

    @extend_schema(tags=["Medical Records"], request=VisitCreateSerializer, responses={201: VisitSerializer})
    @visits.mapping.post
    def add_visit(self, request, pk=None):
        patient = _owned_patient(request, pk)

        ser = VisitCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        data = dict(ser.validated_data)
        if "vital_signs" in data:
            data["vital_signs"] = dict(data["vital_signs"])

        visit = MedicalRecordService.add_visit(actor_user_id=request.user.id, patient_id=patient.id, **data)
        return Response(VisitSerializer(get_visit(visit_id=visit.id)).data, status=status.HTTP_201_CREATED)

    @extend_schema(
        tags=["Medical Records"],
        request=SurgicalHistorySerializer,
        responses={201: MedicalRecordSerializer},
    )
    @action(detail=True, methods=["post"], url_path="surgical-history")
    def surgical_history(self, request, pk=None):
        patient = _owned_patient(request, pk)

        ser = SurgicalHistorySerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        MedicalRecordService.add_surgical_history(
            actor_user_id=request.user.id,
            patient_id=patient.id,
            entry=ser.to_entry(),
        )
        return Response(
            MedicalRecordSerializer(record_for_patient(patient_id=patient.id)).data,
            status=status.HTTP_201_CREATED,
        )


class VisitViewSet(viewsets.ViewSet):
    permission_classes = [MedicalRecordPermission]

    serializer_class = VisitSerializer
    queryset = Visit.objects.none()

    @extend_schema(tags=["Medical Records"], responses={200: VisitSerializer})
    def retrieve(self, request, pk=None):
        visit = get_visit(visit_id=pk_uuid(pk))
        ensure_own_patient(request.user, visit.record.patient)
        return Response(VisitSerializer(visit).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Medical Records"], request=VisitUpdateSerializer, responses={200: VisitSerializer})
    def partial_update(self, request, pk=None):
        ser = VisitUpdateSerializer(data=request.data, partial=True)
        ser.is_valid(raise_exception=True)
        data = dict(ser.validated_data)
        if "vital_signs" in data:
            data["vital_signs"] = dict(data["vital_signs"])

        visit = MedicalRecordService.update_visit(actor_user_id=request.user.id, visit_id=pk_uuid(pk), data=data)
        return Response(VisitSerializer(get_visit(visit_id=visit.id)).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Medical Records"], request=None, responses={200: VisitSerializer})
    @action(detail=True, methods=["post"], url_path="complete")
    def complete(self, request, pk=None):
        visit = MedicalRecordService.complete_visit(actor_user_id=request.user.id, visit_id=pk_uuid(pk))
        return Response(VisitSerializer(get_visit(visit_id=visit.id)).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Medical Records"], request=None, responses={200: VisitSerializer})
    @action(detail=True, methods=["post"], url_path="cancel")
    def cancel(self, request, pk=None):
        visit = MedicalRecordService.cancel_visit(actor_user_id=request.user.id, visit_id=pk_uuid(pk))
        return Response(VisitSerializer(get_visit(visit_id=visit.id)).data, status=status.HTTP_200_OK)


class DiagnosisSearchView(APIView):
    """
    GET /medical-records/search/diagnosis/?q=
    """
    permission_classes = [MedicalRecordPermission]

    @extend_schema(
        tags=["Medical Records"],
        responses={200: VisitSerializer(many=True)},
        parameters=[
            OpenApiParameter(name="q", type=OpenApiTypes.STR, location=OpenApiParameter.QUERY, required=True),
        ],
    )
    def get(self, request):
        q = request.query_params.get("q", "").strip()
        if len(q) < 2:
            raise ValidationError({"q": "Provide at least 2 characters."})

        patient_user_id = request.user.id if is_patient_only(request.user) else None
        return paginate(request, search_by_diagnosis(q=q, patient_user_id=patient_user_id), VisitSerializer)
