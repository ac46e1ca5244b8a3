# backend/hms_core/audit/services.py
from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional
from uuid import UUID

from django.core.serializers.json import DjangoJSONEncoder
from django.db import transaction

from hms_core.audit.models import AuditEvent

logger = logging.getLogger(__name__)

# "<entity>.<verb>", lower snake case, e.g. "bill.payment_recorded"
_EVENT_CODE = re.compile(r"^[a-z_]+(\.[a-z_]+)+$")


@dataclass(frozen=True)
class AuditRecord:
    id: UUID
    event_code: str
    entity_type: str
    entity_id: UUID
    actor_user_id: int | None
    occurred_at: datetime
    metadata: Dict[str, Any]


def _json_safe(metadata: Dict[str, Any]) -> Dict[str, Any]:
    # Decimal amounts, UUIDs and datetimes become JSON strings
    return json.loads(json.dumps(metadata, cls=DjangoJSONEncoder))


class AuditService:
    """
    The only writer of AuditEvent rows.
    """

    @staticmethod
    @transaction.atomic
    def log(
        *,
        event_code: str,
        entity_type: str,
        entity_id: UUID,
        actor_user_id: int | None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> AuditRecord:
        if not _EVENT_CODE.match(event_code or ""):
            raise ValueError(f"Malformed audit event code: {event_code!r}")

        event = AuditEvent.objects.create(
            event_code=event_code,
            entity_type=entity_type,
            entity_id=entity_id,
            actor_user_id=actor_user_id,
            metadata=_json_safe(metadata or {}),
        )
        logger.debug("audit %s %s:%s actor=%s", event_code, entity_type, entity_id, actor_user_id)

        return AuditRecord(
            id=event.id,
            event_code=event.event_code,
            entity_type=event.entity_type,
            entity_id=event.entity_id,
            actor_user_id=event.actor_user_id,
            occurred_at=event.occurred_at,
            metadata=event.metadata,
        )
