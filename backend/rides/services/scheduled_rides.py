"""
Periodic processing of scheduled bookings.

Each tick starts accepted FULL_DAY/RENTAL/DATE_WISE bookings whose start
time has arrived and sends the 60/30/5 minute reminders. Ticks are
serialized across processes by the scheduler lock.
"""

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from django.conf import settings
from django.db import IntegrityError, transaction
from django.utils import timezone

from realtime.notifications import notify_driver_event, notify_rider_event
from rides.models import Ride, RideReminder
from services.concurrency import LockBackendUnavailable, RideLockManager, get_lock_manager
from services.exceptions import RideServiceError

logger = logging.getLogger(__name__)

SCHEDULED_BOOKING_TYPES = ("FULL_DAY", "RENTAL", "DATE_WISE")
REMINDER_THRESHOLDS = (60, 30, 5)
NO_DRIVER_ACCEPTED_TIMEOUT = "NO_DRIVER_ACCEPTED_TIMEOUT"


@dataclass
class TickReport:
    started: int = 0
    reminders: int = 0
    skipped: bool = False

    def as_dict(self):
        return {"started": self.started, "reminders": self.reminders, "skipped": self.skipped}


def reminder_threshold(minutes_until_start: float) -> Optional[int]:
    """Smallest threshold that still covers the time left: 55 -> 60, 20 -> 30, 3 -> 5."""
    if minutes_until_start < 0:
        return None
    for threshold in sorted(REMINDER_THRESHOLDS):
        if minutes_until_start <= threshold:
            return threshold
    return None


def start_due_scheduled_rides(now: Optional[datetime] = None) -> int:
    """Start accepted bookings whose start fell inside the lookback window."""
    from services.ride_management import start_scheduled_ride

    now = now or timezone.now()
    lookback = timedelta(minutes=getattr(settings, "SCHEDULED_START_LOOKBACK_MINUTES", 10))

    due = list(
        Ride.objects.filter(
            status="accepted",
            booking_type__in=SCHEDULED_BOOKING_TYPES,
            driver__isnull=False,
            scheduled_start_time__lte=now,
            scheduled_start_time__gte=now - lookback,
        ).values_list("id", flat=True)
    )

    started = 0
    for ride_id in due:
        try:
            start_scheduled_ride(ride_id, now=now)
            started += 1
        except RideServiceError as exc:
            logger.info("Scheduled ride %s not started: %s", ride_id, exc)
        except Exception:
            logger.exception("Failed to start scheduled ride %s", ride_id)
    return started


def send_booking_reminders(now: Optional[datetime] = None) -> int:
    """Send each reminder threshold at most once per ride."""
    now = now or timezone.now()
    horizon = now + timedelta(minutes=max(REMINDER_THRESHOLDS))

    upcoming = Ride.objects.filter(
        status="accepted",
        booking_type__in=SCHEDULED_BOOKING_TYPES,
        driver__isnull=False,
        scheduled_start_time__gt=now,
        scheduled_start_time__lte=horizon,
    ).select_related("rider", "driver")

    sent = 0
    for ride in upcoming:
        minutes = (ride.scheduled_start_time - now) / timedelta(minutes=1)
        threshold = reminder_threshold(minutes)
        if threshold is None:
            continue

        try:
            with transaction.atomic():
                RideReminder.objects.create(ride=ride, threshold_minutes=threshold)
        except IntegrityError:
            continue

        minutes_left = math.ceil(minutes)
        extra = {"minutes_until_start": minutes_left, "threshold_minutes": threshold}
        message = f"Your booking starts in {minutes_left} minutes"
        notify_driver_event("booking_reminder", ride, ride.driver_id, message=message, extra=extra)
        notify_rider_event("booking_reminder", ride, message=message, extra=extra)
        sent += 1
        logger.info("Sent %d minute reminder for ride %s", threshold, ride.id)
    return sent


def run_tick(now: Optional[datetime] = None, lock_manager: Optional[RideLockManager] = None) -> TickReport:
    """
    One scheduler pass. A tick that cannot take the scheduler lock does
    nothing; another process is already running one.
    """
    lock_manager = lock_manager or get_lock_manager()

    try:
        with lock_manager.hold(lock_manager.scheduler_key, lock_manager.ttl_for("scheduler")) as acquired:
            if not acquired:
                logger.info("Scheduled rides tick already running, skipping")
                return TickReport(skipped=True)

            now = now or timezone.now()
            report = TickReport(
                started=start_due_scheduled_rides(now),
                reminders=send_booking_reminders(now),
            )
    except LockBackendUnavailable as exc:
        logger.warning("Scheduler lock unavailable, skipping tick: %s", exc)
        return TickReport(skipped=True)

    if report.started or report.reminders:
        logger.info("Scheduled rides tick: started %s, reminders %s", report.started, report.reminders)
    return report


def expire_unaccepted_rides(now: Optional[datetime] = None, timeout_minutes: Optional[int] = None) -> int:
    """Cancel, as system, rides still waiting for a driver after the timeout."""
    from services.ride_management import cancel_ride

    now = now or timezone.now()
    if timeout_minutes is None:
        timeout_minutes = getattr(settings, "RIDE_AUTO_CANCEL_TIMEOUT_MINUTES", 5)
    cutoff = now - timedelta(minutes=timeout_minutes)

    stale = list(
        Ride.objects.filter(
            status="requested",
            driver__isnull=True,
            requested_at__lt=cutoff,
        ).values_list("id", flat=True)
    )

    cancelled = 0
    for ride_id in stale:
        try:
            cancel_ride(ride_id, "system", reason=NO_DRIVER_ACCEPTED_TIMEOUT)
            cancelled += 1
        except RideServiceError as exc:
            logger.info("Ride %s not auto-cancelled: %s", ride_id, exc)

    if cancelled:
        logger.info("Auto-cancelled %d ride(s) with no driver after %d minutes", cancelled, timeout_minutes)
    return cancelled
