# backend/hms_core/prescriptions/api/views.py
from __future__ import annotations

from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import ValidationError
from rest_framework.response import Response

from hms_core.common.api.pagination import paginate
from hms_core.common.api.params import int_or_none, pk_uuid, uuid_or_none
from hms_core.common.idempotency import get_key, load_response, save_response
from hms_core.common.permissions import (
    MedicationPermission,
    PrescriptionPermission,
    ensure_own_patient,
    is_patient_only,
)
from hms_core.patients.models import Patient
from hms_core.prescriptions.api.serializers import (
    CancelPrescriptionSerializer,
    CoverageSerializer,
    DispenseSerializer,
    DispenseStatusSerializer,
    InteractionCheckSerializer,
    InteractionSerializer,
    MedicationHistorySerializer,
    MedicationSerializer,
    MedicationWriteSerializer,
    PrescriptionCreateSerializer,
    PrescriptionSerializer,
    PrescriptionUpdateSerializer,
    StockAdjustSerializer,
    StockInfoSerializer,
)
from hms_core.prescriptions.interactions import check_interactions
from hms_core.prescriptions.models import DispenseStatus, Medication, Prescription, PrescriptionStatus
from hms_core.prescriptions.selectors import (
    get_prescription,
    low_stock_medications,
    medications_search,
    pharmacy_queue,
    prescriptions_filtered,
)
from hms_core.prescriptions.services import MedicationService, PrescriptionService


def _choice_or_none(request, name: str, choices) -> str | None:
    value = request.query_params.get(name) or None
    if value and value not in choices:
        raise ValidationError({name: f"Unknown value: {value}"})
    return value


class PrescriptionViewSet(viewsets.ViewSet):
    permission_classes = [PrescriptionPermission]

    serializer_class = PrescriptionSerializer
    queryset = Prescription.objects.none()

    def _get_owned(self, request, pk) -> Prescription:
        rx = get_prescription(prescription_id=pk_uuid(pk))
        ensure_own_patient(request.user, rx.patient)
        return rx

    @extend_schema(
        tags=["Prescriptions"],
        responses={200: PrescriptionSerializer(many=True)},
        parameters=[
            OpenApiParameter(name="patient", type=OpenApiTypes.UUID, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="doctor", type=OpenApiTypes.INT, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="status", type=OpenApiTypes.STR, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(
                name="dispense_status", type=OpenApiTypes.STR, location=OpenApiParameter.QUERY, required=False
            ),
            OpenApiParameter(name="search", type=OpenApiTypes.STR, location=OpenApiParameter.QUERY, required=False),
        ],
    )
    def list(self, request):
        qs = prescriptions_filtered(
            patient_id=uuid_or_none(request.query_params.get("patient"), "patient"),
            doctor_id=int_or_none(request.query_params.get("doctor"), "doctor"),
            status=_choice_or_none(request, "status", PrescriptionStatus.values),
            dispense_status=_choice_or_none(request, "dispense_status", DispenseStatus.values),
            patient_user_id=request.user.id if is_patient_only(request.user) else None,
            search=request.query_params.get("search", "").strip(),
        )
        return paginate(request, qs, PrescriptionSerializer)

    @extend_schema(tags=["Prescriptions"], request=PrescriptionCreateSerializer, responses={201: PrescriptionSerializer})
    def create(self, request):
        idem = get_key(request)
        if idem:
            cached = load_response(request.user.id, request.method, request.path, idem)
            if cached is not None:
                return Response(cached, status=status.HTTP_201_CREATED)

        ser = PrescriptionCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        rx = PrescriptionService.create(actor_user_id=request.user.id, **ser.validated_data)
        out = PrescriptionSerializer(get_prescription(prescription_id=rx.id)).data

        if idem:
            save_response(request.user.id, request.method, request.path, idem, out)

        return Response(out, status=status.HTTP_201_CREATED)

    @extend_schema(tags=["Prescriptions"], responses={200: PrescriptionSerializer})
    def retrieve(self, request, pk=None):
        return Response(PrescriptionSerializer(self._get_owned(request, pk)).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Prescriptions"], request=PrescriptionUpdateSerializer, responses={200: PrescriptionSerializer})
    def partial_update(self, request, pk=None):
        ser = PrescriptionUpdateSerializer(data=request.data, partial=True)
        ser.is_valid(raise_exception=True)

        rx = PrescriptionService.update(
            actor_user_id=request.user.id,
            prescription_id=pk_uuid(pk),
            data=ser.validated_data,
        )
        return Response(PrescriptionSerializer(get_prescription(prescription_id=rx.id)).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Prescriptions"], request=DispenseSerializer, responses={200: PrescriptionSerializer})
    @action(detail=True, methods=["post"], url_path="dispense")
    def dispense(self, request, pk=None):
        ser = DispenseSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        rx = PrescriptionService.dispense(
            actor_user_id=request.user.id,
            prescription_id=pk_uuid(pk),
            medication_id=ser.validated_data["medication_id"],
            quantity=ser.validated_data["quantity"],
            notes=ser.validated_data.get("notes", ""),
        )
        return Response(PrescriptionSerializer(get_prescription(prescription_id=rx.id)).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Prescriptions"], request=CancelPrescriptionSerializer, responses={200: PrescriptionSerializer})
    @action(detail=True, methods=["post"], url_path="cancel")
    def cancel(self, request, pk=None):
        ser = CancelPrescriptionSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        rx = PrescriptionService.cancel(
            actor_user_id=request.user.id,
            prescription_id=pk_uuid(pk),
            reason=ser.validated_data["reason"],
        )
        return Response(PrescriptionSerializer(get_prescription(prescription_id=rx.id)).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Prescriptions"], request=DispenseStatusSerializer, responses={200: PrescriptionSerializer})
    @action(detail=True, methods=["post"], url_path="dispense-status")
    def dispense_status(self, request, pk=None):
        ser = DispenseStatusSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        rx = PrescriptionService.set_dispense_status(
            actor_user_id=request.user.id,
            prescription_id=pk_uuid(pk),
            status=ser.validated_data["status"],
        )
        return Response(PrescriptionSerializer(get_prescription(prescription_id=rx.id)).data, status=status.HTTP_200_OK)

    @extend_schema(
        tags=["Prescriptions"],
        request=InteractionCheckSerializer,
        responses={200: InteractionSerializer(many=True)},
    )
    @action(detail=False, methods=["post"], url_path="interactions")
    def interactions(self, request):
        ser = InteractionCheckSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        ids = ser.validated_data.get("medication_ids") or []
        names = ser.validated_data.get("names") or []
        if not ids and not names:
            raise ValidationError({"medication_ids": "Provide medication_ids or names."})

        meds: list = list(Medication.objects.filter(id__in=ids))
        if len(meds) != len(set(ids)):
            raise ValidationError({"medication_ids": "One or more medications were not found."})
        meds.extend(names)

        return Response(InteractionSerializer(check_interactions(meds), many=True).data, status=status.HTTP_200_OK)

    @extend_schema(
        tags=["Prescriptions"],
        responses={200: PrescriptionSerializer(many=True)},
        parameters=[
            OpenApiParameter(
                name="dispense_status", type=OpenApiTypes.STR, location=OpenApiParameter.QUERY, required=False
            ),
        ],
    )
    @action(detail=False, methods=["get"], url_path="pharmacy-queue")
    def pharmacy_queue(self, request):
        qs = pharmacy_queue(dispense_status=_choice_or_none(request, "dispense_status", DispenseStatus.values))
        return paginate(request, qs, PrescriptionSerializer)

    @extend_schema(tags=["Prescriptions"], responses={200: MedicationHistorySerializer(many=True)})
    @action(detail=False, methods=["get"], url_path=r"history/(?P<patient_id>[0-9a-fA-F-]+)")
    def history(self, request, patient_id=None):
        patient = Patient.objects.get(id=pk_uuid(patient_id))
        ensure_own_patient(request.user, patient)

        rows = PrescriptionService.medication_history(patient_id=patient.id)
        return Response(MedicationHistorySerializer(rows, many=True).data, status=status.HTTP_200_OK)


class MedicationViewSet(viewsets.ViewSet):
    permission_classes = [MedicationPermission]

    serializer_class = MedicationSerializer
    queryset = Medication.objects.none()

    @extend_schema(
        tags=["Medications"],
        responses={200: MedicationSerializer(many=True)},
        parameters=[
            OpenApiParameter(name="q", type=OpenApiTypes.STR, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="category", type=OpenApiTypes.STR, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(
                name="include_inactive", type=OpenApiTypes.BOOL, location=OpenApiParameter.QUERY, required=False
            ),
        ],
    )
    def list(self, request):
        qs = medications_search(
            q=request.query_params.get("q", "").strip(),
            category=request.query_params.get("category") or None,
            include_inactive=request.query_params.get("include_inactive") in ("1", "true", "True"),
        )
        return paginate(request, qs, MedicationSerializer)

    @extend_schema(tags=["Medications"], request=MedicationWriteSerializer, responses={201: MedicationSerializer})
    def create(self, request):
        ser = MedicationWriteSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        med = MedicationService.create_medication(actor_user_id=request.user.id, **ser.validated_data)
        return Response(MedicationSerializer(med).data, status=status.HTTP_201_CREATED)

    @extend_schema(tags=["Medications"], responses={200: MedicationSerializer})
    def retrieve(self, request, pk=None):
        med = Medication.objects.get(id=pk_uuid(pk))
        return Response(MedicationSerializer(med).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Medications"], request=MedicationWriteSerializer, responses={200: MedicationSerializer})
    def partial_update(self, request, pk=None):
        ser = MedicationWriteSerializer(data=request.data, partial=True)
        ser.is_valid(raise_exception=True)

        med = MedicationService.update_medication(
            actor_user_id=request.user.id,
            medication_id=pk_uuid(pk),
            data=ser.validated_data,
        )
        return Response(MedicationSerializer(med).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Medications"], responses={200: MedicationSerializer})
    def destroy(self, request, pk=None):
        med = MedicationService.update_medication(
            actor_user_id=request.user.id,
            medication_id=pk_uuid(pk),
            data={"is_active": False},
        )
        return Response(MedicationSerializer(med).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Medications"], responses={200: StockInfoSerializer})
    @action(detail=True, methods=["get"], url_path="stock")
    def stock(self, request, pk=None):
        info = MedicationService.stock_info(medication_id=pk_uuid(pk))
        return Response(StockInfoSerializer(info).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Medications"], request=StockAdjustSerializer, responses={200: MedicationSerializer})
    @action(detail=True, methods=["post"], url_path="adjust-stock")
    def adjust_stock(self, request, pk=None):
        ser = StockAdjustSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        med = MedicationService.adjust_stock(
            actor_user_id=request.user.id,
            medication_id=pk_uuid(pk),
            delta=ser.validated_data["delta"],
            reason=ser.validated_data.get("reason", ""),
        )
        return Response(MedicationSerializer(med).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Medications"], responses={200: CoverageSerializer})
    @action(detail=True, methods=["get"], url_path="coverage")
    def coverage(self, request, pk=None):
        info = PrescriptionService.check_coverage(medication_id=pk_uuid(pk))
        return Response(CoverageSerializer(info).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Medications"], responses={200: MedicationSerializer(many=True)})
    @action(detail=False, methods=["get"], url_path="low-stock")
    def low_stock(self, request):
        return paginate(request, low_stock_medications(), MedicationSerializer)
