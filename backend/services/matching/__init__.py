"""
Driver matching service.

This module handles:
    - Progressive radius search for eligible drivers
    - Notifying candidates and recording offers
    - Race-free assignment of a ride to the first accepting driver
    - The discovery job queued for every new ride
"""

from .candidate_search import CandidateSearchResult, DriverCandidate, find_candidates
from .offer_dispatch import (
    dispatch_ride_to_candidates,
    settle_offers_after_assignment,
    withdraw_open_offers,
)
from .assignment import assign_driver
from .booking_queue import DiscoveryOutcome, enqueue_ride_discovery, process_discovery_job

__all__ = [
    "CandidateSearchResult",
    "DriverCandidate",
    "find_candidates",
    "dispatch_ride_to_candidates",
    "settle_offers_after_assignment",
    "withdraw_open_offers",
    "assign_driver",
    "DiscoveryOutcome",
    "enqueue_ride_discovery",
    "process_discovery_job",
]
