# backend/hms_core/patients/api/views.py
from __future__ import annotations

from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import status, viewsets
from rest_framework.response import Response

from hms_core.common.api.pagination import paginate
from hms_core.common.api.params import pk_uuid
from hms_core.common.permissions import PatientPermission
from hms_core.patients.api.serializers import (
    PatientCreateSerializer,
    PatientSerializer,
    PatientUpdateSerializer,
)
from hms_core.patients.models import Patient
from hms_core.patients.selectors import get_patient, search_patients
from hms_core.patients.services import PatientService


class PatientViewSet(viewsets.ViewSet):
    permission_classes = [PatientPermission]

    serializer_class = PatientSerializer
    queryset = Patient.objects.none()

    @extend_schema(
        tags=["Patients"],
        responses={200: PatientSerializer(many=True)},
        parameters=[
            OpenApiParameter(name="q", type=OpenApiTypes.STR, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(
                name="include_inactive", type=OpenApiTypes.BOOL, location=OpenApiParameter.QUERY, required=False
            ),
        ],
    )
    def list(self, request):
        q = request.query_params.get("q", "").strip()
        include_inactive = request.query_params.get("include_inactive") in ("1", "true", "True")
        qs = search_patients(q=q, include_inactive=include_inactive)
        return paginate(request, qs, PatientSerializer)

    @extend_schema(tags=["Patients"], request=PatientCreateSerializer, responses={201: PatientSerializer})
    def create(self, request):
        ser = PatientCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        patient = PatientService.create_patient(actor_user_id=request.user.id, **ser.validated_data)
        return Response(PatientSerializer(patient).data, status=status.HTTP_201_CREATED)

    @extend_schema(tags=["Patients"], responses={200: PatientSerializer})
    def retrieve(self, request, pk=None):
        patient = get_patient(patient_id=pk_uuid(pk))
        return Response(PatientSerializer(patient).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Patients"], request=PatientUpdateSerializer, responses={200: PatientSerializer})
    def partial_update(self, request, pk=None):
        ser = PatientUpdateSerializer(data=request.data, partial=True)
        ser.is_valid(raise_exception=True)

        patient = PatientService.update_patient(
            actor_user_id=request.user.id,
            patient_id=pk_uuid(pk),
            data=ser.validated_data,
        )
        return Response(PatientSerializer(patient).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Patients"], responses={200: PatientSerializer})
    def destroy(self, request, pk=None):
        patient = PatientService.deactivate_patient(actor_user_id=request.user.id, patient_id=pk_uuid(pk))
        return Response(PatientSerializer(patient).data, status=status.HTTP_200_OK)
