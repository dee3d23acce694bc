from decimal import Decimal

from django.core.management.base import BaseCommand

from drivers.services import drivers_online_past_grace, force_offline_after_grace
from services.billing import apply_overtime_billing, drivers_with_billable_overtime


class Command(BaseCommand):
    help = "Charge overtime hours to drivers whose subscription has expired and take them offline after grace."

    def add_arguments(self, parser):
        parser.add_argument(
            "--driver",
            type=int,
            default=None,
            help="Bill only this driver id (default: every driver with unbilled overtime or past grace).",
        )

    def handle(self, *args, **options):
        driver_id = options["driver"]
        if driver_id is not None:
            driver_ids = [driver_id]
        else:
            driver_ids = sorted(set(drivers_with_billable_overtime()) | set(drivers_online_past_grace()))

        billed_count = 0
        offline_count = 0
        total_charged = Decimal("0")
        for current_id in driver_ids:
            result = apply_overtime_billing(current_id)
            if result is None:
                continue
            if result.hours:
                billed_count += 1
                total_charged += result.charged
            if result.grace_period_ended and force_offline_after_grace(current_id):
                offline_count += 1

        self.stdout.write(
            self.style.SUCCESS(
                f"Checked {len(driver_ids)} driver(s); billed {billed_count} for a total of {total_charged}; "
                f"forced {offline_count} offline."
            )
        )
