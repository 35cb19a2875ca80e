"""
Driver discovery queue.

Ride creation enqueues one Celery job per ride (task id ``ride:<id>``). The
job runs under the ride's matching lock, searches outward for drivers and
notifies them all; when nobody is in range the ride is cancelled as system.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from rides.models import Ride
from realtime.notifications import notify_rider_event
from services.concurrency import RideLockManager, get_lock_manager
from services.exceptions import InvalidRideStateError
from .candidate_search import find_candidates
from .offer_dispatch import dispatch_ride_to_candidates

logger = logging.getLogger(__name__)

NO_DRIVER_FOUND = "NO_DRIVER_FOUND"


@dataclass
class DiscoveryOutcome:
    ride_id: int
    status: str  # dispatched | no_drivers | skipped | locked
    notified_driver_ids: List[int] = field(default_factory=list)
    radius_km: Optional[float] = None

    def as_dict(self):
        return {
            "ride_id": self.ride_id,
            "status": self.status,
            "notified_driver_ids": self.notified_driver_ids,
            "radius_km": self.radius_km,
        }


def enqueue_ride_discovery(ride_id) -> bool:
    """
    Queue the discovery job for a stored ride.

    A failure here leaves the ride ``requested``; the auto-cancel sweep
    picks it up after its timeout.
    """
    from rides.tasks import process_ride_booking

    try:
        process_ride_booking.apply_async(args=(ride_id,), task_id=f"ride:{ride_id}")
    except Exception:
        logger.exception("Failed to enqueue driver discovery for ride %s", ride_id)
        return False

    logger.info("Driver discovery queued for ride %s", ride_id)
    return True


def _cancel_for_no_driver(ride: Ride, lock_manager: RideLockManager) -> None:
    from services.ride_management import cancel_ride

    try:
        result = cancel_ride(ride.pk, "system", reason=NO_DRIVER_FOUND, lock_manager=lock_manager)
    except InvalidRideStateError as exc:
        logger.info("Ride %s not cancelled for missing drivers: %s", ride.pk, exc)
        return

    notify_rider_event(
        "no_drivers_available",
        result.ride,
        message="No drivers are available nearby right now. Please try again.",
        extra={"reason": NO_DRIVER_FOUND},
    )


def process_discovery_job(
    ride_id,
    lock_manager: Optional[RideLockManager] = None,
    now: Optional[datetime] = None,
) -> DiscoveryOutcome:
    """
    Find and notify drivers for one ride.

    Raises:
        LockBackendUnavailable: Lock store is down; the task retries.
    """
    lock_manager = lock_manager or get_lock_manager()
    if not lock_manager.acquire_matching_lock(ride_id):
        logger.info("Discovery for ride %s already running, skipping", ride_id)
        return DiscoveryOutcome(ride_id=ride_id, status="locked")

    try:
        ride = Ride.objects.filter(pk=ride_id).first()
        if ride is None or ride.status != "requested" or ride.driver_id:
            logger.info("Ride %s no longer needs a driver, skipping discovery", ride_id)
            return DiscoveryOutcome(ride_id=ride_id, status="skipped")

        result = find_candidates(
            ride.pickup_latitude,
            ride.pickup_longitude,
            booking_type=ride.booking_type,
            vehicle_type=ride.vehicle_type or None,
            now=now,
        )

        if not result.found:
            logger.info("No drivers found for ride %s after radii %s", ride_id, result.radii_tried)
            _cancel_for_no_driver(ride, lock_manager)
            return DiscoveryOutcome(ride_id=ride_id, status="no_drivers")

        offers = dispatch_ride_to_candidates(ride, result)
        return DiscoveryOutcome(
            ride_id=ride_id,
            status="dispatched",
            notified_driver_ids=[offer.driver_id for offer in offers],
            radius_km=result.radius_km,
        )
    finally:
        lock_manager.release(lock_manager.matching_key(ride_id))
