"""
Ride state machine.

    requested -> accepted -> arrived -> in_progress -> completed
    requested/accepted/arrived/in_progress -> cancelled

Every transition is one conditional UPDATE filtered on the allowed source
statuses, so two callers racing on the same ride cannot both succeed.
"""

import logging
from typing import Any, Dict, Iterable, Optional, Tuple

from django.utils import timezone

from rides.models import Ride
from services.exceptions import InvalidRideStateError, RideNotFoundError

logger = logging.getLogger(__name__)

ACTIVE_STATUSES = ("requested", "accepted", "arrived", "in_progress")
TERMINAL_STATUSES = ("completed", "cancelled")

TRANSITIONS: Dict[str, Tuple[Tuple[str, ...], str]] = {
    "accept": (("requested",), "accepted"),
    "arrive": (("accepted",), "arrived"),
    "start": (("accepted", "arrived"), "in_progress"),
    "complete": (("in_progress",), "completed"),
    "cancel": (ACTIVE_STATUSES, "cancelled"),
}


def can_transition(event: str, status: str) -> bool:
    allowed, _ = TRANSITIONS[event]
    return status in allowed


def transition(
    ride_id,
    event: str,
    conditions: Optional[Dict[str, Any]] = None,
    from_statuses: Optional[Iterable[str]] = None,
    **fields,
) -> Ride:
    """
    Move a ride along ``event`` and write ``fields`` in the same UPDATE.

    Args:
        ride_id: Ride primary key
        event: Key of TRANSITIONS
        conditions: Extra filters the row must match (e.g. driver_id)
        from_statuses: Narrower set of source statuses than the table allows
        **fields: Columns written together with the new status

    Returns:
        The refreshed Ride

    Raises:
        RideNotFoundError: Unknown ride
        InvalidRideStateError: Ride is not in a status this event accepts,
            or no longer matches ``conditions``
    """
    allowed, target = TRANSITIONS[event]
    if from_statuses is not None:
        allowed = tuple(status for status in allowed if status in set(from_statuses))

    updated = Ride.objects.filter(
        pk=ride_id,
        status__in=allowed,
        **(conditions or {}),
    ).update(status=target, updated_at=timezone.now(), **fields)

    if updated == 0:
        current = Ride.objects.filter(pk=ride_id).values_list("status", flat=True).first()
        if current is None:
            raise RideNotFoundError(f"Ride {ride_id} not found")
        if current not in allowed:
            raise InvalidRideStateError(f"Cannot {event} a ride that is {current}")
        raise InvalidRideStateError(f"Ride {ride_id} no longer matches the expected state for {event}")

    logger.info("Ride %s -> %s (%s)", ride_id, target, event)
    return Ride.objects.select_related("rider", "driver").get(pk=ride_id)
