# hms_core/appointments/management/commands/send_appointment_reminders.py
from __future__ import annotations

from django.core.management.base import BaseCommand

from hms_core.appointments.services import AppointmentService


class Command(BaseCommand):
    help = "Email reminders for active appointments starting 23-25 hours from now. Run hourly from cron."

    def add_arguments(self, parser):
        parser.add_argument("--verbose-details", action="store_true", help="Print one line per appointment.")

    def handle(self, *args, **opts):
        result = AppointmentService.send_scheduled_reminders()

        if opts["verbose_details"]:
            for row in result["details"]:
                state = "sent" if row["sent"] else f"FAILED ({row['error']})"
                self.stdout.write(f"{row['appointment_code']}: {state}")

        msg = f"Reminders: total={result['total']} successful={result['successful']} failed={result['failed']}"
        if result["failed"]:
            self.stdout.write(self.style.WARNING(msg))
        else:
            self.stdout.write(self.style.SUCCESS(msg))
