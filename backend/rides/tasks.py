"""Celery tasks for ride-related background processing."""

import logging

from celery import shared_task
from django.db import DatabaseError

from services.concurrency import LockBackendUnavailable

logger = logging.getLogger(__name__)


@shared_task(
    bind=True,
    autoretry_for=(DatabaseError, LockBackendUnavailable),
    retry_backoff=True,
    max_retries=3,
)
def process_ride_booking(self, ride_id: int):
    """
    Driver discovery for a newly created ride.

    Queued with task id ``ride:<id>``; retried with backoff while the
    database or lock store is unavailable.
    """
    from services.matching.booking_queue import process_discovery_job

    outcome = process_discovery_job(ride_id)
    logger.info("Discovery job for ride %s finished: %s", ride_id, outcome.status)
    return outcome.as_dict()


@shared_task
def run_scheduled_rides_tick():
    """Start due scheduled bookings and send pre-start reminders."""
    from rides.services.scheduled_rides import run_tick

    return run_tick().as_dict()


@shared_task
def auto_cancel_unaccepted_rides(timeout_minutes: int = None):
    """Cancel rides nobody accepted within the timeout."""
    from rides.services.scheduled_rides import expire_unaccepted_rides

    return expire_unaccepted_rides(timeout_minutes=timeout_minutes)
