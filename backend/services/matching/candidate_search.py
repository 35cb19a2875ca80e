"""
Find candidate drivers for a pickup point.

Radii are tried smallest first; the first radius with at least one eligible
driver ends the search. Within a radius, drivers are prefiltered with a
latitude/longitude bounding box in SQL and then ranked by exact haversine
distance, closest first.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Sequence

from django.conf import settings
from django.db.models import Q
from django.utils import timezone

from common.utils import bounding_box, haversine_km
from drivers.models import DriverProfile

logger = logging.getLogger(__name__)

DEFAULT_RADII_KM = (3, 6, 9, 12, 15, 20)
DEFAULT_MAX_CANDIDATES = 10

# Scheduled bookings that may go to drivers committed to a later booking
FUTURE_COMMITMENT_BOOKING_TYPES = ("FULL_DAY", "RENTAL")


@dataclass
class DriverCandidate:
    profile: DriverProfile
    distance_km: float

    @property
    def driver_id(self) -> int:
        return self.profile.user_id


@dataclass
class CandidateSearchResult:
    drivers: List[DriverCandidate] = field(default_factory=list)
    radius_km: Optional[float] = None
    radii_tried: List[float] = field(default_factory=list)

    @property
    def found(self) -> bool:
        return bool(self.drivers)


def eligible_drivers(booking_type: str, vehicle_type: Optional[str] = None, now: Optional[datetime] = None):
    """
    Drivers that may be offered a ride: active, online, reachable and free.

    FULL_DAY/RENTAL bookings also accept drivers whose busy flag is only set
    for a future booking (``busy_until`` still ahead).
    """
    now = now or timezone.now()

    availability = Q(is_busy=False)
    if booking_type in FUTURE_COMMITMENT_BOOKING_TYPES:
        availability |= Q(is_busy=True, busy_until__gt=now)

    queryset = (
        DriverProfile.objects.select_related("user")
        .filter(
            is_active=True,
            is_online=True,
            current_latitude__isnull=False,
            current_longitude__isnull=False,
        )
        .exclude(session_id="")
        .filter(availability)
    )
    if vehicle_type:
        queryset = queryset.filter(vehicle_type=vehicle_type)
    return queryset


def find_candidates(
    latitude,
    longitude,
    booking_type: str = "INSTANT",
    vehicle_type: Optional[str] = None,
    radii: Optional[Sequence[float]] = None,
    limit: Optional[int] = None,
    now: Optional[datetime] = None,
) -> CandidateSearchResult:
    """
    Progressive radius search around (latitude, longitude).

    Args:
        latitude: Pickup latitude
        longitude: Pickup longitude
        booking_type: INSTANT, FULL_DAY, RENTAL or DATE_WISE
        vehicle_type: Optional vehicle type filter
        radii: Ascending radii in km
        limit: Maximum number of candidates returned

    Returns:
        CandidateSearchResult with the drivers of the first radius that had
        any, and that radius. ``radius_km`` is None when nobody was found.
    """
    radii = list(radii or getattr(settings, "DISCOVERY_RADII_KM", DEFAULT_RADII_KM))
    limit = limit or getattr(settings, "DISCOVERY_MAX_CANDIDATES", DEFAULT_MAX_CANDIDATES)
    lat = float(latitude)
    lon = float(longitude)
    base_queryset = eligible_drivers(booking_type, vehicle_type, now)

    result = CandidateSearchResult()
    for radius in radii:
        result.radii_tried.append(radius)
        min_lat, max_lat, min_lon, max_lon = bounding_box(lat, lon, radius)
        in_box = base_queryset.filter(
            current_latitude__gte=min_lat,
            current_latitude__lte=max_lat,
            current_longitude__gte=min_lon,
            current_longitude__lte=max_lon,
        )

        candidates = []
        for profile in in_box:
            distance = haversine_km(lat, lon, profile.current_latitude, profile.current_longitude)
            if distance <= radius:
                candidates.append(DriverCandidate(profile=profile, distance_km=round(distance, 2)))

        if candidates:
            candidates.sort(key=lambda item: item.distance_km)
            result.drivers = candidates[:limit]
            result.radius_km = radius
            logger.info(
                "Found %d drivers within %skm of (%s, %s)",
                len(result.drivers), radius, lat, lon,
            )
            return result

        logger.debug("No drivers within %skm of (%s, %s)", radius, lat, lon)

    logger.info("No drivers found within %skm of (%s, %s)", radii[-1] if radii else 0, lat, lon)
    return result
