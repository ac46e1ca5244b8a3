# hms_core/billing/management/commands/reconcile_bill_payments.py
from __future__ import annotations

from django.core.management.base import BaseCommand

from hms_core.billing.models import Bill, BillStatus
from hms_core.billing.services import BillService


class Command(BaseCommand):
    help = "Recompute amount paid, balance and status of every open bill from its payment rows."

    def add_arguments(self, parser):
        parser.add_argument("--dry-run", action="store_true", help="Report differences without saving.")

    def handle(self, *args, **opts):
        dry_run = opts["dry_run"]
        ids = Bill.objects.exclude(status=BillStatus.WRITTEN_OFF).order_by("created_at").values_list("id", flat=True)

        fixed = 0
        for bill_id in ids:
            result = BillService.reconcile(bill_id=bill_id, commit=not dry_run)
            if not result["changed"]:
                continue
            fixed += 1
            before, after = result["before"], result["after"]
            self.stdout.write(
                f"{result['bill_number']}: paid {before['amount_paid']} -> {after['amount_paid']}, "
                f"status {before['status']} -> {after['status']}"
            )

        verb = "would be fixed" if dry_run else "fixed"
        self.stdout.write(self.style.SUCCESS(f"{fixed} bill(s) {verb}."))
