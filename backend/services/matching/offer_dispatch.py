"""
Offer bookkeeping and driver notifications.

All notified candidates receive the request at once; the first driver whose
accept call wins the conditional assignment gets the ride. ``RideOffer`` rows
record who was told and how it ended for them.
"""

import logging
from typing import List

from django.db import IntegrityError, transaction
from django.utils import timezone

from rides.models import Ride, RideOffer
from realtime.notifications import notify_driver_event
from .candidate_search import CandidateSearchResult

logger = logging.getLogger(__name__)


def dispatch_ride_to_candidates(ride: Ride, result: CandidateSearchResult) -> List[RideOffer]:
    """
    Record an offer per candidate and push ``new_ride_request`` to each.

    Args:
        ride: Ride waiting for a driver
        result: Output of find_candidates

    Returns:
        RideOffer rows for the drivers notified by this call
    """
    offers: List[RideOffer] = []
    start_order = ride.offers.count()

    for index, candidate in enumerate(result.drivers):
        try:
            with transaction.atomic():
                offer = RideOffer.objects.create(
                    ride=ride,
                    driver_id=candidate.driver_id,
                    order=start_order + index,
                    distance_km=candidate.distance_km,
                    search_radius_km=int(result.radius_km or 0),
                )
        except IntegrityError:
            # Already notified by an earlier run of the job
            logger.debug("Driver %s already offered ride %s", candidate.driver_id, ride.id)
            continue

        offers.append(offer)
        notify_driver_event(
            "new_ride_request",
            ride,
            candidate.driver_id,
            message="New ride request near you",
            extra={
                "distance_km": candidate.distance_km,
                "search_radius_km": result.radius_km,
            },
        )

    logger.info(
        "Dispatched ride %s to %d drivers (radius=%skm)",
        ride.id, len(offers), result.radius_km,
    )
    return offers


def settle_offers_after_assignment(ride: Ride, driver_id: int) -> int:
    """
    Mark the winner's offer accepted, expire the rest and tell those drivers
    the ride is gone. Returns the number of drivers told.
    """
    now = timezone.now()
    RideOffer.objects.filter(ride=ride, driver_id=driver_id).update(status="accepted", responded_at=now)

    losers = list(
        RideOffer.objects.filter(ride=ride, status="sent").exclude(driver_id=driver_id).values_list("driver_id", flat=True)
    )
    RideOffer.objects.filter(ride=ride, status="sent").exclude(driver_id=driver_id).update(
        status="expired", responded_at=now
    )

    for other_driver_id in losers:
        notify_driver_event(
            "ride_taken",
            ride,
            other_driver_id,
            message="This ride was accepted by another driver",
        )
    return len(losers)


def withdraw_open_offers(ride: Ride, message: str = "Ride is no longer available") -> int:
    """Expire every open offer for a cancelled ride and notify those drivers."""
    open_driver_ids = list(
        RideOffer.objects.filter(ride=ride, status="sent").values_list("driver_id", flat=True)
    )
    if not open_driver_ids:
        return 0

    RideOffer.objects.filter(ride=ride, status="sent").update(status="expired", responded_at=timezone.now())
    for driver_id in open_driver_ids:
        if driver_id == ride.driver_id:
            continue
        notify_driver_event("ride_cancelled", ride, driver_id, message=message)
    return len(open_driver_ids)
