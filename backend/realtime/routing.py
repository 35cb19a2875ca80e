"""WebSocket URL routing for the realtime app."""

from django.urls import re_path

from .consumers import RideEventConsumer

websocket_urlpatterns = [
    # URL: ws://localhost:8000/ws/rides/?token=<access token>
    re_path(r"ws/rides/$", RideEventConsumer.as_asgi(), name="ride-events-ws"),
]
