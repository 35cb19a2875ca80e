"""Background thread that runs the scheduled rides tick on a fixed interval"""

import logging
import os
import threading
from typing import Optional

from django.conf import settings
from django.db import close_old_connections

from .services.scheduled_rides import TickReport, run_tick

logger = logging.getLogger(__name__)

_monitor_instance: Optional["ScheduledRideMonitor"] = None


class ScheduledRideMonitor:
    def __init__(self, interval_seconds: int):
        self.interval_seconds = interval_seconds
        self._stop_event = threading.Event()
        self._tick_guard = threading.Lock()
        self._thread = threading.Thread(target=self._run, daemon=True)

    def start(self):
        if not self._thread.is_alive():
            logger.info("Starting scheduled ride monitor (interval=%ss)", self.interval_seconds)
            self._thread.start()

    def stop(self):
        self._stop_event.set()

    def join(self, timeout=None):
        self._thread.join(timeout)

    def tick(self) -> TickReport:
        """Run one tick unless the previous one in this process is still going."""
        if not self._tick_guard.acquire(blocking=False):
            logger.info("Previous scheduled rides tick still running, skipping")
            return TickReport(skipped=True)
        try:
            return run_tick()
        finally:
            self._tick_guard.release()

    def _run(self):
        while not self._stop_event.wait(self.interval_seconds):
            try:
                self.tick()
            except Exception:  # pragma: no cover - best effort logging
                logger.exception("Scheduled ride monitor encountered an error")
            finally:
                close_old_connections()


def start_scheduled_ride_monitor():
    global _monitor_instance

    if not getattr(settings, "ENABLE_SCHEDULED_RIDE_MONITOR", False):
        return None

    # Avoid double-start in Django's autoreload parent process
    run_main = os.environ.get("RUN_MAIN")
    if run_main not in (None, "true"):
        return None

    if _monitor_instance is None:
        interval_seconds = getattr(settings, "SCHEDULED_RIDE_INTERVAL_SECONDS", 300)
        _monitor_instance = ScheduledRideMonitor(interval_seconds)
        _monitor_instance.start()
    return _monitor_instance
