"""
Ride management service - Core ride lifecycle operations.

This module handles:
    - Creating rides (locking, pricing, payment capture)
    - Driver acceptance, arrival, OTP verified start and completion
    - Cancellation with refunds
    - Scheduled booking starts
    - Querying current rides and shared links
"""

from .state_machine import (
    ACTIVE_STATUSES,
    TERMINAL_STATUSES,
    TRANSITIONS,
    can_transition,
    transition,
)
from .ride_lifecycle import (
    RideResult,
    create_ride,
    update_ride,
    accept_ride,
    mark_driver_arrived,
    start_ride,
    complete_ride,
    cancel_ride,
    start_scheduled_ride,
    get_current_rider_ride,
    get_current_driver_ride,
    get_upcoming_bookings,
    get_shared_ride,
    quote_fares,
)

__all__ = [
    # State machine
    "ACTIVE_STATUSES",
    "TERMINAL_STATUSES",
    "TRANSITIONS",
    "can_transition",
    "transition",
    # Lifecycle operations
    "RideResult",
    "create_ride",
    "update_ride",
    "accept_ride",
    "mark_driver_arrived",
    "start_ride",
    "complete_ride",
    "cancel_ride",
    "start_scheduled_ride",
    # Queries
    "get_current_rider_ride",
    "get_current_driver_ride",
    "get_upcoming_bookings",
    "get_shared_ride",
    "quote_fares",
]
