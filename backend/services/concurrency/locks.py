"""
Redis-backed short-TTL locks.

Locks are plain keys written with ``SET key value NX EX ttl``: whoever wrote
the key holds the lock until it is deleted or the TTL runs out. Acquisition
never waits; callers decide whether to reject or retry.

Families (distinct prefixes so clearing one never touches another):
- creation:   per rider, held while a ride request is validated and stored
- matching:   per ride, held by the discovery worker
- acceptance: per ride, held while a driver's accept call runs
- scheduler:  single key, held by the instance running a scheduling tick
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Dict, Iterator, Optional

import redis
from django.conf import settings

logger = logging.getLogger(__name__)


# ---------------------- Configuration ----------------------

LOCK_CONFIG = {
    # Key prefixes
    "CREATION_PREFIX": "ride_creation_lock:",
    "MATCHING_PREFIX": "{ride-booking}:lock:",
    "ACCEPTANCE_PREFIX": "ride_lock:",
    "SCHEDULER_KEY": "scheduled_rides:tick_lock",

    # TTL values (seconds)
    "CREATION_TTL": 5,
    "MATCHING_TTL": 30,
    "ACCEPTANCE_TTL": 15,
    "SCHEDULER_TTL": 240,
}

ACTIVE_RIDE_STATUSES = ("requested", "accepted", "arrived", "in_progress")


class LockBackendUnavailable(Exception):
    """Raised when the lock store cannot be reached."""
    pass


# ---------------------- Redis Connection ----------------------

def get_redis_client() -> redis.Redis:
    """Get Redis client for lock keys."""
    return redis.Redis.from_url(
        getattr(settings, 'REDIS_URL', settings.CELERY_BROKER_URL),
        decode_responses=True,
        socket_timeout=2,
        socket_connect_timeout=2,
    )


class RideLockManager:
    """
    Acquire/release ride locks.

    With ``enabled=False`` every acquire succeeds without touching Redis
    (ENABLE_DISTRIBUTED_LOCK=false).
    """

    def __init__(self, redis_client: Optional[redis.Redis] = None, enabled: bool = True):
        self.enabled = enabled
        self._redis = redis_client if (redis_client is not None or not enabled) else get_redis_client()
        self._config = dict(LOCK_CONFIG)
        ttls = getattr(settings, 'RIDE_LOCK_TTLS', {})
        for family in ("creation", "matching", "acceptance"):
            if family in ttls:
                self._config[f"{family.upper()}_TTL"] = ttls[family]

    # ---------------------- Key builders ----------------------

    def creation_key(self, rider_id) -> str:
        return f"{self._config['CREATION_PREFIX']}{rider_id}"

    def matching_key(self, ride_id) -> str:
        return f"{self._config['MATCHING_PREFIX']}{ride_id}"

    def acceptance_key(self, ride_id) -> str:
        return f"{self._config['ACCEPTANCE_PREFIX']}{ride_id}"

    @property
    def scheduler_key(self) -> str:
        return self._config["SCHEDULER_KEY"]

    def ttl_for(self, family: str) -> int:
        return int(self._config[f"{family.upper()}_TTL"])

    # ---------------------- Primitives ----------------------

    def acquire(self, key: str, ttl: int, value: str = "1") -> bool:
        """
        Try to take ``key`` for ``ttl`` seconds.

        Returns:
            True if this caller now holds the lock, False if someone else does.

        Raises:
            LockBackendUnavailable: Redis could not be reached.
        """
        if not self.enabled:
            return True
        try:
            acquired = self._redis.set(key, value, nx=True, ex=int(ttl))
        except redis.RedisError as exc:
            raise LockBackendUnavailable(f"Lock store unavailable while acquiring {key}: {exc}") from exc
        return bool(acquired)

    def release(self, key: str) -> bool:
        """Delete ``key``. Safe to call for keys that are gone already."""
        if not self.enabled:
            return True
        try:
            self._redis.delete(key)
            return True
        except redis.RedisError as exc:
            logger.warning("Failed to release lock %s: %s", key, exc)
            return False

    def is_locked(self, key: str) -> bool:
        if not self.enabled:
            return False
        try:
            return bool(self._redis.exists(key))
        except redis.RedisError as exc:
            raise LockBackendUnavailable(f"Lock store unavailable while checking {key}: {exc}") from exc

    @contextmanager
    def hold(self, key: str, ttl: int, value: str = "1") -> Iterator[bool]:
        """
        Context manager form of acquire/release.

        Yields whether the lock was taken; only a lock taken here is released.
        """
        acquired = self.acquire(key, ttl, value)
        try:
            yield acquired
        finally:
            if acquired:
                self.release(key)

    # ---------------------- Ride specific ----------------------

    def acquire_creation_lock(self, rider_id) -> bool:
        return self.acquire(self.creation_key(rider_id), self.ttl_for("creation"))

    def acquire_matching_lock(self, ride_id) -> bool:
        return self.acquire(self.matching_key(ride_id), self.ttl_for("matching"))

    def acquire_acceptance_lock(self, ride_id) -> bool:
        return self.acquire(self.acceptance_key(ride_id), self.ttl_for("acceptance"))

    def cleanup_stale(self, rider_id) -> Dict[str, object]:
        """
        Decide what to do with a rider's creation lock.

        If durable storage shows no active ride for the rider, any leftover
        creation lock is simply left to expire through its TTL; keys are never
        scanned. Returns a small report for logging.
        """
        from rides.models import Ride

        has_active = Ride.objects.filter(
            rider_id=rider_id,
            status__in=ACTIVE_RIDE_STATUSES,
        ).exists()

        report = {"rider_id": rider_id, "has_active_ride": has_active, "lock_present": None}
        if has_active or not self.enabled:
            return report

        try:
            report["lock_present"] = self.is_locked(self.creation_key(rider_id))
        except LockBackendUnavailable as exc:
            logger.warning("Stale lock check skipped for rider %s: %s", rider_id, exc)
            return report

        if report["lock_present"]:
            logger.info(
                "Rider %s has no active ride; creation lock left to expire via TTL",
                rider_id,
            )
        return report

    def clear_ride_keys(self, ride_id) -> Dict[str, bool]:
        """Best-effort removal of matching and acceptance keys for a finished ride."""
        return {
            "matching": self.release(self.matching_key(ride_id)),
            "acceptance": self.release(self.acceptance_key(ride_id)),
        }


# ---------------------- Singleton Instance ----------------------

_lock_manager: Optional[RideLockManager] = None


def get_lock_manager() -> RideLockManager:
    """Get singleton RideLockManager configured from settings."""
    global _lock_manager
    if _lock_manager is None:
        _lock_manager = RideLockManager(
            enabled=getattr(settings, 'ENABLE_DISTRIBUTED_LOCK', True),
        )
    return _lock_manager
