from django.core.management.base import BaseCommand

from rides.services.scheduled_rides import expire_unaccepted_rides


class Command(BaseCommand):
    help = "Cancel rides that no driver accepted within the timeout."

    def add_arguments(self, parser):
        parser.add_argument(
            "--timeout",
            type=int,
            default=None,
            help="Minutes a ride may wait for a driver (default: RIDE_AUTO_CANCEL_TIMEOUT_MINUTES).",
        )

    def handle(self, *args, **options):
        cancelled = expire_unaccepted_rides(timeout_minutes=options["timeout"])
        self.stdout.write(self.style.SUCCESS(f"Cancelled {cancelled} unaccepted ride(s)."))
