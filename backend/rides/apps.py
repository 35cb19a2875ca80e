"""Rides app configuration."""

from django.apps import AppConfig


class RidesConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'rides'

    def ready(self):
        # Celery beat drives the tick in production; the thread is for single-process setups
        from .scheduled_ride_monitor import start_scheduled_ride_monitor
        start_scheduled_ride_monitor()
