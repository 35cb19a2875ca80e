import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from django.db import transaction
from django.utils import timezone

from drivers.models import DriverProfile
from rides.models import Ride
from services.exceptions import DriverNotFoundError, InvalidRideStateError

logger = logging.getLogger(__name__)

DRIVER_ACTIVE_RIDE_STATUSES = ("accepted", "arrived", "in_progress")


@dataclass
class StatusValidationResult:
    corrected: bool
    reason: str
    active_rides_count: int = 0
    previous: Dict[str, Any] = field(default_factory=dict)
    current: Dict[str, Any] = field(default_factory=dict)


# DRIVER STATUS RECONCILIATION
def validate_and_fix_driver_status(driver_id: int) -> StatusValidationResult:
    """
    Recompute ``is_busy`` from the driver's active rides and fix any drift.

    Busy means: an active INSTANT ride, or a scheduled booking that has
    already started. A driver with no active rides is never busy.
    """
    with transaction.atomic():
        profile = DriverProfile.objects.select_for_update().filter(user_id=driver_id).first()
        if profile is None:
            logger.warning("Status validation: driver %s not found", driver_id)
            return StatusValidationResult(corrected=False, reason="Driver not found")

        active = list(
            Ride.objects.filter(driver_id=driver_id, status__in=DRIVER_ACTIVE_RIDE_STATUSES)
            .values("id", "status", "booking_type")
        )
        should_be_busy = any(
            ride["booking_type"] == "INSTANT" or ride["status"] == "in_progress"
            for ride in active
        )
        previous = {"is_busy": profile.is_busy, "busy_until": profile.busy_until}

        if not active:
            if not profile.is_busy and profile.busy_until is None:
                return StatusValidationResult(corrected=False, reason="No active rides, driver free")
            DriverProfile.objects.filter(pk=profile.pk).update(is_busy=False, busy_until=None)
            reason = "No active rides found but driver was marked busy"
            current = {"is_busy": False, "busy_until": None}
        elif should_be_busy and not profile.is_busy:
            DriverProfile.objects.filter(pk=profile.pk).update(is_busy=True)
            reason = "Has an ongoing ride but was not marked busy"
            current = {"is_busy": True, "busy_until": profile.busy_until}
        elif not should_be_busy and profile.is_busy:
            DriverProfile.objects.filter(pk=profile.pk).update(is_busy=False)
            reason = "Only future scheduled bookings, driver should not be busy"
            current = {"is_busy": False, "busy_until": profile.busy_until}
        else:
            return StatusValidationResult(
                corrected=False,
                reason="Status consistent with active rides",
                active_rides_count=len(active),
            )

    logger.info("Driver %s status corrected: %s -> %s (%s)", driver_id, previous, current, reason)
    return StatusValidationResult(
        corrected=True,
        reason=reason,
        active_rides_count=len(active),
        previous=previous,
        current=current,
    )


def release_driver(driver_id: Optional[int]) -> Optional[StatusValidationResult]:
    """Clear the busy flag after a ride ends, then reconcile."""
    if not driver_id:
        return None
    DriverProfile.objects.filter(user_id=driver_id).update(is_busy=False, busy_until=None)
    return validate_and_fix_driver_status(driver_id)


# DRIVER AVAILABILITY
def update_driver_status(profile: DriverProfile, is_online: bool, session_id: Optional[str] = None) -> DriverProfile:
    """
    Go online/offline. Going online records the live session handle;
    going offline clears it and is refused during an active ride.
    """
    if profile is None:
        raise DriverNotFoundError("Driver profile not found")

    if not is_online and Ride.objects.filter(
        driver_id=profile.user_id,
        status__in=DRIVER_ACTIVE_RIDE_STATUSES,
        booking_type="INSTANT",
    ).exists():
        raise InvalidRideStateError("Finish or cancel your active ride before going offline")

    profile.is_online = is_online
    if is_online:
        if session_id is not None:
            profile.session_id = session_id
    else:
        profile.session_id = ""
    profile.save(update_fields=["is_online", "session_id"])

    logger.info("Driver %s is now %s", profile.user_id, "online" if is_online else "offline")
    return profile


def update_driver_location(profile: DriverProfile, lat, lon) -> DriverProfile:
    """
    Update driver location used by the candidate search.
    """
    profile.current_latitude = lat
    profile.current_longitude = lon
    profile.last_location_update = timezone.now()
    profile.save(update_fields=["current_latitude", "current_longitude", "last_location_update"])
    return profile
