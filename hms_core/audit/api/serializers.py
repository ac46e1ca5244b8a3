# backend/hms_core/audit/api/serializers.py
from rest_framework import serializers

from hms_core.audit.models import AuditEvent


class AuditEventSerializer(serializers.ModelSerializer):
    timestamp = serializers.DateTimeField(source="occurred_at", read_only=True)
    actor_user_id = serializers.IntegerField(read_only=True, allow_null=True)
    actor_username = serializers.SerializerMethodField()

    class Meta:
        model = AuditEvent
        fields = [
            "id",
            "event_code",
            "entity_type",
            "entity_id",
            "actor_user_id",
            "actor_username",
            "timestamp",
            "metadata",
        ]
        read_only_fields = fields

    def get_actor_username(self, obj) -> str | None:
        return obj.actor_user.username if obj.actor_user_id else None
