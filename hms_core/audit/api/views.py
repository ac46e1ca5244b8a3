# backend/hms_core/audit/api/views.py
from __future__ import annotations

from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import ValidationError
from rest_framework.response import Response

from hms_core.audit.api.serializers import AuditEventSerializer
from hms_core.audit.models import AuditEvent
from hms_core.audit.selectors import entity_history, get_audit_event, list_audit_events
from hms_core.common.api.pagination import paginate
from hms_core.common.api.params import datetime_or_none, int_or_none, pk_uuid, uuid_or_none
from hms_core.common.permissions import AuditPermission


def _q(name: str, description: str, type_=OpenApiTypes.STR, required: bool = False) -> OpenApiParameter:
    return OpenApiParameter(
        name=name, type=type_, location=OpenApiParameter.QUERY, required=required, description=description
    )


class AuditEventViewSet(viewsets.GenericViewSet):
    """
    Read-only access to the audit trail (admins only).
    """
    permission_classes = [AuditPermission]

    serializer_class = AuditEventSerializer
    queryset = AuditEvent.objects.none()

    @extend_schema(
        tags=["Audit"],
        responses={200: AuditEventSerializer(many=True)},
        parameters=[
            _q("entity_type", "Entity type, e.g. Appointment, Bill, Prescription."),
            _q("entity_id", "Entity UUID.", OpenApiTypes.UUID),
            _q("event_code", "Exact event code, e.g. bill.voided."),
            _q("event_prefix", "Event code prefix, e.g. `bill.` (ignored when event_code is given)."),
            _q("actor_user_id", "Acting user id.", OpenApiTypes.INT),
            _q("occurred_from", "Inclusive lower bound (ISO-8601).", OpenApiTypes.DATETIME),
            _q("occurred_to", "Exclusive upper bound (ISO-8601).", OpenApiTypes.DATETIME),
        ],
    )
    def list(self, request):
        params = request.query_params
        occurred_from = datetime_or_none(params.get("occurred_from"), "occurred_from")
        occurred_to = datetime_or_none(params.get("occurred_to"), "occurred_to")
        if occurred_from and occurred_to and occurred_from >= occurred_to:
            raise ValidationError({"occurred_to": "Must be after occurred_from."})

        qs = list_audit_events(
            entity_type=params.get("entity_type") or None,
            entity_id=uuid_or_none(params.get("entity_id"), "entity_id"),
            event_code=params.get("event_code") or None,
            event_prefix=params.get("event_prefix") or None,
            actor_user_id=int_or_none(params.get("actor_user_id"), "actor_user_id"),
            occurred_from=occurred_from,
            occurred_to=occurred_to,
        )
        return paginate(request, qs, AuditEventSerializer)

    @extend_schema(tags=["Audit"], responses={200: AuditEventSerializer})
    def retrieve(self, request, pk=None):
        return Response(AuditEventSerializer(get_audit_event(event_id=pk_uuid(pk))).data, status=status.HTTP_200_OK)

    @extend_schema(
        tags=["Audit"],
        responses={200: AuditEventSerializer(many=True)},
        parameters=[
            _q("entity_type", "Entity type.", required=True),
            _q("entity_id", "Entity UUID.", OpenApiTypes.UUID, required=True),
        ],
    )
    @action(detail=False, methods=["get"], url_path="history")
    def history(self, request):
        """
        Full timeline of one entity, oldest first, unpaginated.
        """
        entity_type = request.query_params.get("entity_type") or ""
        entity_id = uuid_or_none(request.query_params.get("entity_id"), "entity_id")
        if not entity_type or entity_id is None:
            raise ValidationError({"detail": "entity_type and entity_id are required."})

        rows = entity_history(entity_type=entity_type, entity_id=entity_id)
        return Response(AuditEventSerializer(rows, many=True).data, status=status.HTTP_200_OK)
