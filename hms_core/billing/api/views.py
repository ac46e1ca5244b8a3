# backend/hms_core/billing/api/views.py
from __future__ import annotations

from uuid import UUID

from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import ValidationError
from rest_framework.response import Response
from rest_framework.views import APIView

from hms_core.billing.api.serializers import (
    BillCreateSerializer,
    BillFromPrescriptionSerializer,
    BillSerializer,
    BillUpdateSerializer,
    PaymentCreateSerializer,
    PaymentSerializer,
    RevenueStatsSerializer,
    VoidBillSerializer,
)
from hms_core.billing.models import Bill, BillStatus, PaymentMethod
from hms_core.billing.selectors import bills_filtered, get_bill, payment_history, revenue_stats
from hms_core.billing.services import BillService, PaymentService
from hms_core.common.api.pagination import paginate
from hms_core.common.api.params import date_or_none, pk_uuid, uuid_or_none
from hms_core.common.idempotency import get_key, load_response, save_response
from hms_core.common.permissions import BillingPermission, PaymentPermission, ensure_own_patient, is_patient_only
from hms_core.patients.models import Patient


def _patient_scope(request) -> int | None:
    return request.user.id if is_patient_only(request.user) else None


def _get_owned_bill(request, bill_id) -> Bill:
    bill = get_bill(bill_id=pk_uuid(bill_id))
    ensure_own_patient(request.user, bill.patient)
    return bill


class BillViewSet(viewsets.ViewSet):
    permission_classes = [BillingPermission]

    serializer_class = BillSerializer
    queryset = Bill.objects.none()

    @extend_schema(
        tags=["Billing"],
        responses={200: BillSerializer(many=True)},
        parameters=[
            OpenApiParameter(name="status", type=OpenApiTypes.STR, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="patient", type=OpenApiTypes.UUID, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="date_from", type=OpenApiTypes.DATE, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="date_to", type=OpenApiTypes.DATE, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="search", type=OpenApiTypes.STR, location=OpenApiParameter.QUERY, required=False),
        ],
    )
    def list(self, request):
        status_value = request.query_params.get("status") or None
        if status_value and status_value not in BillStatus.values:
            raise ValidationError({"status": f"Unknown status: {status_value}"})

        qs = bills_filtered(
            status=status_value,
            patient_id=uuid_or_none(request.query_params.get("patient"), "patient"),
            date_from=date_or_none(request.query_params.get("date_from"), "date_from"),
            date_to=date_or_none(request.query_params.get("date_to"), "date_to"),
            patient_user_id=_patient_scope(request),
            search=request.query_params.get("search", "").strip(),
        )
        return paginate(request, qs, BillSerializer)

    @extend_schema(tags=["Billing"], request=BillCreateSerializer, responses={201: BillSerializer})
    def create(self, request):
        idem = get_key(request)
        if idem:
            cached = load_response(request.user.id, request.method, request.path, idem)
            if cached is not None:
                return Response(cached, status=status.HTTP_201_CREATED)

        ser = BillCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        bill = BillService.create_bill(actor_user_id=request.user.id, **ser.validated_data)
        out = BillSerializer(get_bill(bill_id=bill.id)).data

        if idem:
            save_response(request.user.id, request.method, request.path, idem, out)

        return Response(out, status=status.HTTP_201_CREATED)

    @extend_schema(tags=["Billing"], responses={200: BillSerializer})
    def retrieve(self, request, pk=None):
        return Response(BillSerializer(_get_owned_bill(request, pk)).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Billing"], request=BillUpdateSerializer, responses={200: BillSerializer})
    def partial_update(self, request, pk=None):
        ser = BillUpdateSerializer(data=request.data, partial=True)
        ser.is_valid(raise_exception=True)

        bill = BillService.update_bill(actor_user_id=request.user.id, bill_id=pk_uuid(pk), data=ser.validated_data)
        return Response(BillSerializer(get_bill(bill_id=bill.id)).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Billing"], request=BillFromPrescriptionSerializer, responses={201: BillSerializer})
    @action(detail=False, methods=["post"], url_path="from-prescription")
    def from_prescription(self, request):
        ser = BillFromPrescriptionSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        bill = BillService.create_from_prescription(actor_user_id=request.user.id, **ser.validated_data)
        return Response(BillSerializer(get_bill(bill_id=bill.id)).data, status=status.HTTP_201_CREATED)

    @extend_schema(tags=["Billing"], request=VoidBillSerializer, responses={200: BillSerializer})
    @action(detail=True, methods=["post"], url_path="void")
    def void(self, request, pk=None):
        ser = VoidBillSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        bill = BillService.void(actor_user_id=request.user.id, bill_id=pk_uuid(pk), reason=ser.validated_data["reason"])
        return Response(BillSerializer(get_bill(bill_id=bill.id)).data, status=status.HTTP_200_OK)

    @extend_schema(
        tags=["Billing"],
        responses={200: BillSerializer(many=True)},
        parameters=[
            OpenApiParameter(name="status", type=OpenApiTypes.STR, location=OpenApiParameter.QUERY, required=False),
        ],
    )
    @action(detail=False, methods=["get"], url_path=r"patient/(?P<patient_id>[0-9a-fA-F-]+)")
    def by_patient(self, request, patient_id=None):
        patient = Patient.objects.get(id=pk_uuid(patient_id))
        ensure_own_patient(request.user, patient)

        status_value = request.query_params.get("status") or None
        if status_value and status_value not in BillStatus.values:
            raise ValidationError({"status": f"Unknown status: {status_value}"})
        return paginate(request, bills_filtered(patient_id=patient.id, status=status_value), BillSerializer)

    @extend_schema(
        tags=["Billing"],
        responses={200: PaymentSerializer(many=True)},
        parameters=[
            OpenApiParameter(name="patient", type=OpenApiTypes.UUID, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="method", type=OpenApiTypes.STR, location=OpenApiParameter.QUERY, required=False),
        ],
    )
    @action(detail=False, methods=["get"], url_path="payment-history")
    def payment_history(self, request):
        method = request.query_params.get("method") or None
        if method and method not in PaymentMethod.values:
            raise ValidationError({"method": f"Unknown payment method: {method}"})

        qs = payment_history(
            patient_id=uuid_or_none(request.query_params.get("patient"), "patient"),
            method=method,
            patient_user_id=_patient_scope(request),
        )
        return paginate(request, qs, PaymentSerializer)

    @extend_schema(
        tags=["Billing"],
        responses={200: RevenueStatsSerializer},
        parameters=[
            OpenApiParameter(
                name="period",
                type=OpenApiTypes.STR,
                location=OpenApiParameter.QUERY,
                required=False,
                enum=["day", "week", "month", "year"],
            ),
        ],
    )
    @action(detail=False, methods=["get"], url_path="revenue-stats")
    def revenue_stats(self, request):
        stats = revenue_stats(period=request.query_params.get("period", "month"))
        return Response(RevenueStatsSerializer(stats).data, status=status.HTTP_200_OK)


class BillPaymentsView(APIView):
    """
    /bills/<bill_id>/payments/
    - GET list payments
    - POST record a payment
    """
    permission_classes = [PaymentPermission]

    @extend_schema(
        tags=["Billing"],
        responses={200: PaymentSerializer(many=True)},
    )
    def get(self, request, bill_id: UUID):
        bill = _get_owned_bill(request, bill_id)
        payments = bill.payments.select_related("bill").order_by("-received_at")
        return Response(PaymentSerializer(payments, many=True).data, status=status.HTTP_200_OK)

    @extend_schema(
        tags=["Billing"],
        request=PaymentCreateSerializer,
        responses={201: PaymentSerializer},
    )
    def post(self, request, bill_id: UUID):
        idem = get_key(request)
        if idem:
            cached = load_response(request.user.id, request.method, request.path, idem)
            if cached is not None:
                return Response(cached, status=status.HTTP_201_CREATED)

        ser = PaymentCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        pay = PaymentService.process_payment(
            actor_user_id=request.user.id,
            bill_id=UUID(str(bill_id)),
            **ser.validated_data,
        )
        out = PaymentSerializer(pay).data

        if idem:
            save_response(request.user.id, request.method, request.path, idem, out)

        return Response(out, status=status.HTTP_201_CREATED)
