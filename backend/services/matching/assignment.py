"""
Race-free driver assignment.

The conditional UPDATE (status='requested' AND driver IS NULL) is what
guarantees a single winner; the acceptance lock only lets a second caller
fail fast with a clearer error while the first is still inside this code.
"""

import logging
from typing import Optional

from django.db import transaction
from django.utils import timezone

from drivers.models import DriverProfile
from rides.models import Ride
from services.concurrency import LockBackendUnavailable, RideLockManager, get_lock_manager
from services.exceptions import (
    DriverNotAvailableError,
    DriverNotFoundError,
    RideAlreadyAssignedError,
    RideNotAvailableError,
    RideNotFoundError,
)

logger = logging.getLogger(__name__)

DRIVER_COMMITTED_STATUSES = ("accepted", "arrived", "in_progress")


def _get_driver_profile(driver) -> DriverProfile:
    try:
        profile = DriverProfile.objects.get(user_id=getattr(driver, "id", driver))
    except DriverProfile.DoesNotExist:
        raise DriverNotFoundError(f"Driver {getattr(driver, 'id', driver)} not found")
    if not profile.is_active:
        raise DriverNotAvailableError("Driver account is not active")
    return profile


def _check_date_wise_conflict(ride: Ride, driver_id: int) -> None:
    """Reject a DATE_WISE booking if the driver already holds one on any of its dates."""
    requested_dates = set(ride.booking_meta.get("dates") or [])
    if not requested_dates:
        return

    committed = Ride.objects.filter(
        driver_id=driver_id,
        booking_type="DATE_WISE",
        status__in=DRIVER_COMMITTED_STATUSES,
    ).exclude(pk=ride.pk).values_list("booking_meta", flat=True)

    for meta in committed:
        overlap = requested_dates.intersection((meta or {}).get("dates") or [])
        if overlap:
            raise DriverNotAvailableError(
                f"Driver not available on selected dates: {', '.join(sorted(overlap))}"
            )


def _explain_lost_assignment(ride_id) -> None:
    """Re-read the ride and raise the precise reason the conditional update missed."""
    current = Ride.objects.filter(pk=ride_id).values("status", "driver_id").first()
    if current is None:
        raise RideNotFoundError(f"Ride {ride_id} not found")
    if current["status"] != "requested":
        logger.warning("Assignment lost for ride %s: status is %s", ride_id, current["status"])
        raise RideNotAvailableError(f"Ride is no longer available (status: {current['status']})")
    if current["driver_id"]:
        logger.warning("Assignment lost for ride %s: already has driver %s", ride_id, current["driver_id"])
        raise RideAlreadyAssignedError("Ride already accepted by another driver")
    raise RideAlreadyAssignedError("Ride already accepted by another driver")


def _mark_driver_committed(profile: DriverProfile, ride: Ride) -> None:
    if ride.booking_type == "INSTANT":
        DriverProfile.objects.filter(pk=profile.pk).update(is_busy=True, busy_until=None)
    else:
        # Scheduled: stays free until the window opens
        DriverProfile.objects.filter(pk=profile.pk).update(
            is_busy=False,
            busy_until=ride.scheduled_end_time,
        )


def assign_driver(
    ride_id,
    driver,
    lock_manager: Optional[RideLockManager] = None,
    use_acceptance_lock: bool = True,
) -> Ride:
    """
    Atomically hand a requested ride to ``driver``.

    Args:
        ride_id: Ride primary key
        driver: Driver user instance (or user id)
        lock_manager: Lock manager to use for the optional acceptance lock
        use_acceptance_lock: Take the short acceptance lock before updating

    Returns:
        The refreshed Ride, now ``accepted`` with this driver

    Raises:
        DriverNotFoundError: No driver profile for ``driver``
        DriverNotAvailableError: Driver inactive or booked on overlapping dates
        RideNotFoundError: Unknown ride
        RideNotAvailableError: Ride is no longer ``requested``
        RideAlreadyAssignedError: Another driver holds the ride
    """
    profile = _get_driver_profile(driver)
    driver_id = profile.user_id
    lock_manager = lock_manager or get_lock_manager()

    lock_taken = False
    if use_acceptance_lock:
        try:
            lock_taken = lock_manager.acquire_acceptance_lock(ride_id)
        except LockBackendUnavailable as exc:
            logger.warning("Acceptance lock unavailable for ride %s, relying on conditional update: %s", ride_id, exc)
        else:
            if not lock_taken:
                raise RideAlreadyAssignedError("Another driver is accepting this ride")

    try:
        try:
            ride = Ride.objects.get(pk=ride_id)
        except Ride.DoesNotExist:
            raise RideNotFoundError(f"Ride {ride_id} not found")

        if ride.booking_type == "DATE_WISE":
            _check_date_wise_conflict(ride, driver_id)

        now = timezone.now()
        with transaction.atomic():
            updated = Ride.objects.filter(
                pk=ride_id,
                status="requested",
                driver__isnull=True,
            ).update(driver_id=driver_id, status="accepted", accepted_at=now, updated_at=now)

            if updated == 0:
                _explain_lost_assignment(ride_id)

            ride.refresh_from_db()
            _mark_driver_committed(profile, ride)
    except Exception:
        # Only a failed attempt gives the lock back; a winner keeps it until TTL
        if lock_taken:
            lock_manager.release(lock_manager.acceptance_key(ride_id))
        raise

    logger.info("Driver %s assigned to ride %s", driver_id, ride_id)
    return ride
