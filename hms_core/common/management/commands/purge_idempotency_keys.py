# backend/hms_core/common/management/commands/purge_idempotency_keys.py
from django.core.management.base import BaseCommand

from hms_core.common.idempotency import purge_expired


class Command(BaseCommand):
    help = "Delete expired Idempotency-Key records (run daily from cron)."

    def handle(self, *args, **options):
        deleted = purge_expired()
        self.stdout.write(self.style.SUCCESS(f"Expired idempotency records deleted: {deleted}"))
