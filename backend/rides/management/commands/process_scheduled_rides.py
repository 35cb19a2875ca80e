from django.core.management.base import BaseCommand

from rides.scheduled_ride_monitor import ScheduledRideMonitor
from rides.services.scheduled_rides import run_tick


class Command(BaseCommand):
    help = "Start due scheduled bookings and send pre-start reminders."

    def add_arguments(self, parser):
        parser.add_argument(
            "--loop",
            action="store_true",
            help="Keep running a tick every --interval seconds instead of a single pass.",
        )
        parser.add_argument(
            "--interval",
            type=int,
            default=300,
            help="Seconds between ticks when looping (default: 300).",
        )

    def handle(self, *args, **options):
        if options["loop"]:
            monitor = ScheduledRideMonitor(options["interval"])
            self.stdout.write(f"Running scheduled rides tick every {options['interval']}s (Ctrl+C to stop)")
            monitor.start()
            try:
                monitor.join()
            except KeyboardInterrupt:
                monitor.stop()
            return

        report = run_tick()
        if report.skipped:
            self.stdout.write(self.style.WARNING("Another tick is running; nothing done."))
            return
        self.stdout.write(
            self.style.SUCCESS(
                f"Started {report.started} booking(s); sent {report.reminders} reminder(s)."
            )
        )
