# backend/hms_core/audit/selectors.py
from __future__ import annotations

from datetime import datetime
from uuid import UUID

from django.db.models import QuerySet

from hms_core.audit.models import AuditEvent


def _base() -> QuerySet[AuditEvent]:
    return AuditEvent.objects.select_related("actor_user")


def list_audit_events(
    *,
    entity_type: str | None = None,
    entity_id: UUID | None = None,
    event_code: str | None = None,
    event_prefix: str | None = None,
    actor_user_id: int | None = None,
    occurred_from: datetime | None = None,
    occurred_to: datetime | None = None,
) -> QuerySet[AuditEvent]:
    """
    `event_prefix="bill."` matches every bill event; `occurred_to` is exclusive.
    """
    qs = _base()

    if entity_type:
        qs = qs.filter(entity_type=entity_type)
    if entity_id:
        qs = qs.filter(entity_id=entity_id)
    if event_code:
        qs = qs.filter(event_code=event_code)
    elif event_prefix:
        qs = qs.filter(event_code__startswith=event_prefix)
    if actor_user_id is not None:
        qs = qs.filter(actor_user_id=actor_user_id)
    if occurred_from:
        qs = qs.filter(occurred_at__gte=occurred_from)
    if occurred_to:
        qs = qs.filter(occurred_at__lt=occurred_to)

    return qs.order_by("-occurred_at")


def entity_history(*, entity_type: str, entity_id: UUID) -> QuerySet[AuditEvent]:
    # oldest first: reads as a timeline
    return _base().filter(entity_type=entity_type, entity_id=entity_id).order_by("occurred_at")


def get_audit_event(*, event_id: UUID) -> AuditEvent:
    return _base().get(id=event_id)
