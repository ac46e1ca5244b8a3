# backend/hms_core/lab/api/views.py
from __future__ import annotations

from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import ValidationError
from rest_framework.response import Response

from hms_core.common.api.pagination import paginate
from hms_core.common.api.params import pk_uuid, uuid_or_none
from hms_core.common.permissions import LabPermission, ensure_own_patient, is_patient_only
from hms_core.lab.api.serializers import (
    LabCancelSerializer,
    LabOrderCreateSerializer,
    LabOrderSerializer,
    LabOrderUpdateSerializer,
    LabResultSerializer,
    LabTestDetailSerializer,
    LabTestSerializer,
)
from hms_core.lab.models import LabOrder, LabOrderStatus, LabPriority, LabTest
from hms_core.lab.selectors import (
    completed_tests,
    get_lab_order,
    get_lab_test,
    lab_orders_filtered,
    patient_results,
    pending_tests,
)
from hms_core.lab.services import LabService
from hms_core.patients.models import Patient


def _patient_scope(request) -> int | None:
    return request.user.id if is_patient_only(request.user) else None


class LabOrderViewSet(viewsets.ViewSet):
    permission_classes = [LabPermission]

    serializer_class = LabOrderSerializer
    queryset = LabOrder.objects.none()

    @extend_schema(
        tags=["Lab"],
        responses={200: LabOrderSerializer(many=True)},
        parameters=[
            OpenApiParameter(name="patient", type=OpenApiTypes.UUID, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="status", type=OpenApiTypes.STR, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="priority", type=OpenApiTypes.STR, location=OpenApiParameter.QUERY, required=False),
        ],
    )
    def list(self, request):
        status_value = request.query_params.get("status") or None
        if status_value and status_value not in LabOrderStatus.values:
            raise ValidationError({"status": f"Unknown status: {status_value}"})
        priority = request.query_params.get("priority") or None
        if priority and priority not in LabPriority.values:
            raise ValidationError({"priority": f"Unknown priority: {priority}"})

        qs = lab_orders_filtered(
            patient_id=uuid_or_none(request.query_params.get("patient"), "patient"),
            status=status_value,
            priority=priority,
            patient_user_id=_patient_scope(request),
        )
        return paginate(request, qs, LabOrderSerializer)

    @extend_schema(tags=["Lab"], request=LabOrderCreateSerializer, responses={201: LabOrderSerializer})
    def create(self, request):
        ser = LabOrderCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        order = LabService.create_order(actor_user_id=request.user.id, **ser.validated_data)
        return Response(LabOrderSerializer(get_lab_order(order_id=order.id)).data, status=status.HTTP_201_CREATED)

    @extend_schema(tags=["Lab"], responses={200: LabOrderSerializer})
    def retrieve(self, request, pk=None):
        order = get_lab_order(order_id=pk_uuid(pk))
        ensure_own_patient(request.user, order.patient)
        return Response(LabOrderSerializer(order).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Lab"], request=LabOrderUpdateSerializer, responses={200: LabOrderSerializer})
    def partial_update(self, request, pk=None):
        ser = LabOrderUpdateSerializer(data=request.data, partial=True)
        ser.is_valid(raise_exception=True)

        order = LabService.update_order(actor_user_id=request.user.id, order_id=pk_uuid(pk), data=ser.validated_data)
        return Response(LabOrderSerializer(get_lab_order(order_id=order.id)).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Lab"], request=LabCancelSerializer, responses={200: LabOrderSerializer})
    @action(detail=True, methods=["post"], url_path="cancel")
    def cancel(self, request, pk=None):
        ser = LabCancelSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        order = LabService.cancel_order(
            actor_user_id=request.user.id,
            order_id=pk_uuid(pk),
            reason=ser.validated_data["reason"],
        )
        return Response(LabOrderSerializer(get_lab_order(order_id=order.id)).data, status=status.HTTP_200_OK)


class LabTestViewSet(viewsets.ViewSet):
    permission_classes = [LabPermission]

    serializer_class = LabTestSerializer
    queryset = LabTest.objects.none()

    @extend_schema(tags=["Lab"], responses={200: LabTestDetailSerializer})
    def retrieve(self, request, pk=None):
        test = get_lab_test(test_id=pk_uuid(pk))
        ensure_own_patient(request.user, test.order.patient)
        return Response(LabTestDetailSerializer(test).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Lab"], request=None, responses={200: LabTestSerializer})
    @action(detail=True, methods=["post"], url_path="collect-sample")
    def collect_sample(self, request, pk=None):
        test = LabService.collect_sample(actor_user_id=request.user.id, test_id=pk_uuid(pk))
        return Response(LabTestSerializer(test).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Lab"], request=None, responses={200: LabTestSerializer})
    @action(detail=True, methods=["post"], url_path="start")
    def start(self, request, pk=None):
        test = LabService.start_test(actor_user_id=request.user.id, test_id=pk_uuid(pk))
        return Response(LabTestSerializer(test).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Lab"], request=LabResultSerializer, responses={200: LabTestSerializer})
    @action(detail=True, methods=["post"], url_path="result")
    def result(self, request, pk=None):
        ser = LabResultSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        test = LabService.record_result(actor_user_id=request.user.id, test_id=pk_uuid(pk), **ser.validated_data)
        return Response(LabTestSerializer(test).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Lab"], request=LabResultSerializer, responses={200: LabTestSerializer})
    @result.mapping.patch
    def update_result(self, request, pk=None):
        ser = LabResultSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        test = LabService.update_result(actor_user_id=request.user.id, test_id=pk_uuid(pk), **ser.validated_data)
        return Response(LabTestSerializer(test).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Lab"], request=None, responses={200: LabTestSerializer})
    @action(detail=True, methods=["post"], url_path="approve")
    def approve(self, request, pk=None):
        test = LabService.approve_result(actor_user_id=request.user.id, test_id=pk_uuid(pk))
        return Response(LabTestSerializer(test).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Lab"], responses={200: LabTestSerializer(many=True)})
    @action(detail=False, methods=["get"], url_path="pending")
    def pending(self, request):
        return paginate(request, pending_tests(patient_user_id=_patient_scope(request)), LabTestSerializer)

    @extend_schema(tags=["Lab"], responses={200: LabTestSerializer(many=True)})
    @action(detail=False, methods=["get"], url_path="completed")
    def completed(self, request):
        return paginate(request, completed_tests(patient_user_id=_patient_scope(request)), LabTestSerializer)

    @extend_schema(tags=["Lab"], responses={200: LabTestSerializer(many=True)})
    @action(detail=False, methods=["get"], url_path=r"patient/(?P<patient_id>[0-9a-fA-F-]+)")
    def by_patient(self, request, patient_id=None):
        patient = Patient.objects.get(id=pk_uuid(patient_id))
        ensure_own_patient(request.user, patient)
        return paginate(request, patient_results(patient_id=patient.id), LabTestSerializer)
