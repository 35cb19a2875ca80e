"""WebSocket consumer delivering ride events to riders and drivers."""

import logging
from typing import Any, Dict, Set

from channels.db import database_sync_to_async
from channels.generic.websocket import AsyncJsonWebsocketConsumer
from django.db.models import Q

from drivers.models import DriverProfile
from rides.models import Ride

logger = logging.getLogger(__name__)


@database_sync_to_async
def bind_driver_session(user_id: int, channel_name: str) -> bool:
    return DriverProfile.objects.filter(user_id=user_id).update(session_id=channel_name) > 0


@database_sync_to_async
def release_driver_session(user_id: int, channel_name: str) -> None:
    # A newer connection may already own the session
    DriverProfile.objects.filter(user_id=user_id, session_id=channel_name).update(session_id="")


@database_sync_to_async
def is_ride_party(ride_id, user_id: int) -> bool:
    return Ride.objects.filter(pk=ride_id).filter(Q(rider_id=user_id) | Q(driver_id=user_id)).exists()


class RideEventConsumer(AsyncJsonWebsocketConsumer):
    """
    One socket per user.

    Riders join ``user_<id>``; drivers also join ``driver_<id>`` and their
    channel name becomes the driver's session id. Either party can subscribe
    to ``ride_<id>`` for status events.
    """

    async def connect(self):
        self.user = self.scope.get("user")
        if self.user is None or self.user.is_anonymous:
            await self.close()
            return

        self.user_id = self.user.id
        self.role = getattr(self.user, "role", None)
        self.joined_groups: Set[str] = set()

        await self._join_group(f"user_{self.user_id}")
        if self.role == "driver":
            await self._join_group(f"driver_{self.user_id}")
            await bind_driver_session(self.user_id, self.channel_name)

        await self.accept()
        await self.send_json({
            "type": "connection_established",
            "user_id": self.user_id,
            "role": self.role,
        })

    async def disconnect(self, close_code):
        for group in list(getattr(self, "joined_groups", ())):
            await self._leave_group(group)
        if getattr(self, "role", None) == "driver":
            await release_driver_session(self.user_id, self.channel_name)

    async def receive_json(self, data: Dict[str, Any]):
        msg_type = data.get("type")

        if msg_type == "ping":
            await self.send_json({"type": "pong"})
        elif msg_type == "subscribe_ride":
            ride_id = data.get("ride_id")
            if ride_id is None or not await is_ride_party(ride_id, self.user_id):
                await self.send_json({"type": "error", "message": "Ride not found"})
                return
            await self._join_group(f"ride_{ride_id}")
            await self.send_json({"type": "subscribed", "ride_id": ride_id})
        elif msg_type == "unsubscribe_ride":
            await self._leave_group(f"ride_{data.get('ride_id')}")
        else:
            await self.send_json({"type": "error", "message": f"Unknown message type: {msg_type}"})

    async def _join_group(self, group_name: str):
        await self.channel_layer.group_add(group_name, self.channel_name)
        self.joined_groups.add(group_name)

    async def _leave_group(self, group_name: str):
        await self.channel_layer.group_discard(group_name, self.channel_name)
        self.joined_groups.discard(group_name)

    # ---------------------- Group event handlers ----------------------

    async def forward_event(self, event):
        """Push a server-side group event to the client unchanged."""
        await self.send_json(event)

    new_ride_request = forward_event
    ride_taken = forward_event
    ride_accepted = forward_event
    driver_arrived = forward_event
    ride_started = forward_event
    ride_completed = forward_event
    ride_cancelled = forward_event
    ride_status_changed = forward_event
    no_drivers_available = forward_event
    booking_started = forward_event
    booking_reminder = forward_event
