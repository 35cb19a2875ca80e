"""
Notification helpers for pushing ride events to connected clients.

Delivery is best-effort: a missing channel layer or a failed send is logged
and reported as False, never raised into the ride flow.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Dict, Optional

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.utils import timezone

logger = logging.getLogger(__name__)

EARNINGS_GROUP = "earnings_ledger"


def _group_send(group: str, payload: Dict[str, Any]) -> bool:
    channel_layer = get_channel_layer()
    if channel_layer is None:
        logger.warning("No channel layer available; dropped %s for %s", payload.get("type"), group)
        return False

    try:
        async_to_sync(channel_layer.group_send)(group, payload)
    except Exception:
        logger.exception("Failed to send %s to %s", payload.get("type"), group)
        return False

    logger.debug("WS -> %s: %s", group, payload)
    return True


def _ride_data(ride) -> Dict[str, Any]:
    from rides.serializers import RideSerializer
    return RideSerializer(ride).data


# ---------------------- Ride Event Notifications ----------------------

def notify_driver_event(
    event_type: str,
    ride,
    driver_id: Optional[int],
    message: str = "",
    extra: Dict[str, Any] = None,
) -> bool:
    """
    Send an event to a specific driver using their personal group: driver_<driver_id>

    Args:
        event_type: new_ride_request, ride_taken, ride_cancelled, booking_started, booking_reminder
        ride: Ride model instance
        driver_id: Target driver's user ID
        message: Optional message to include
        extra: Additional payload data

    Returns:
        True if sent, False otherwise
    """
    if not driver_id:
        return False

    payload = {
        "type": event_type,
        "ride_id": ride.id,
        "driver_id": driver_id,
        "ride_data": _ride_data(ride),
        **(extra or {}),
    }
    if message:
        payload["message"] = message

    return _group_send(f"driver_{driver_id}", payload)


def notify_rider_event(
    event_type: str,
    ride,
    message: str = "",
    extra: Dict[str, Any] = None,
) -> bool:
    """
    Send a ride event to the rider through: user_<rider_id>

    Args:
        event_type: ride_accepted, no_drivers_available, ride_cancelled, booking_reminder, ...
        ride: Ride model instance
        message: Optional message to include
        extra: Additional payload data
    """
    if not ride.rider_id:
        return False

    payload = {
        "type": event_type,
        "ride_id": ride.id,
        "status": ride.status,
        "ride_data": _ride_data(ride),
        **(extra or {}),
    }
    if message:
        payload["message"] = message

    return _group_send(f"user_{ride.rider_id}", payload)


# ---------------------- Domain Events ----------------------

def publish_ride_status_event(ride, previous_status: str = "") -> bool:
    """
    Fan out ``{ride_id, status, parties}`` after a status transition.

    Sent to the ride group plus each party's personal group.
    """
    payload = {
        "type": "ride_status_changed",
        "ride_id": ride.id,
        "status": ride.status,
        "previous_status": previous_status,
        "parties": {
            "rider_id": ride.rider_id,
            "driver_id": ride.driver_id,
        },
        "timestamp": timezone.now().isoformat(),
    }

    groups = [f"ride_{ride.id}", f"user_{ride.rider_id}"]
    if ride.driver_id:
        groups.append(f"driver_{ride.driver_id}")

    results = [_group_send(group, payload) for group in groups]
    return all(results)


def publish_earnings_event(ride, breakdown: Dict[str, Any], earnings: Dict[str, Any] = None) -> bool:
    """Emit ``{ride_id, breakdown}`` for the accounting side once a ride completes."""

    def _plain(value):
        return float(value) if isinstance(value, Decimal) else value

    payload = {
        "type": "ride_earnings",
        "ride_id": ride.id,
        "driver_id": ride.driver_id,
        "breakdown": {key: _plain(value) for key, value in breakdown.items()},
        "earnings": {key: _plain(value) for key, value in (earnings or {}).items()},
    }
    return _group_send(EARNINGS_GROUP, payload)
