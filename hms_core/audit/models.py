# backend/hms_core/audit/models.py
from django.conf import settings
from django.db import models

from hms_core.common.models import UUIDModel


class AuditEvent(UUIDModel):
    """
    Append-only trail of state changes. Services write it through
    AuditService.log in the same transaction as the change itself,
    so a rolled-back action leaves no audit row behind.
    """
    event_code = models.CharField(max_length=128, db_index=True)  # "<entity>.<verb>", e.g. "bill.voided"
    entity_type = models.CharField(max_length=128, db_index=True)  # model name, e.g. "Bill"
    entity_id = models.UUIDField(db_index=True)

    actor_user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        related_name="audit_events",
        null=True,
        blank=True,
    )

    occurred_at = models.DateTimeField(auto_now_add=True, db_index=True)
    metadata = models.JSONField(default=dict, blank=True)

    class Meta:
        db_table = "audit_audit_event"
        ordering = ["-occurred_at"]
        indexes = [
            models.Index(fields=["entity_type", "entity_id"]),
            models.Index(fields=["event_code", "occurred_at"]),
        ]

    def __str__(self) -> str:
        return f"{self.event_code} {self.entity_type}:{self.entity_id}"

    @property
    def is_system(self) -> bool:
        # scheduled jobs and lockouts have no acting user
        return self.actor_user_id is None
