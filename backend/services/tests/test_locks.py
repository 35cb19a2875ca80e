from django.test import TestCase

from services.concurrency import LockBackendUnavailable, RideLockManager
from services.exceptions import RideLockHeldError
from services.ride_management import create_ride
from .helpers import BrokenRedis, FakeRedis, make_pricing, make_rider, ride_request


class RideLockManagerTests(TestCase):
	def setUp(self):
		self.redis = FakeRedis()
		self.locks = RideLockManager(redis_client=self.redis)

	def test_second_acquire_fails_until_released(self):
		self.assertTrue(self.locks.acquire_creation_lock(7))
		self.assertFalse(self.locks.acquire_creation_lock(7))

		self.locks.release(self.locks.creation_key(7))
		self.assertTrue(self.locks.acquire_creation_lock(7))

	def test_families_use_distinct_keys_and_ttls(self):
		self.locks.acquire_creation_lock(1)
		self.locks.acquire_matching_lock(1)
		self.locks.acquire_acceptance_lock(1)

		self.assertEqual(len(self.redis.store), 3)
		self.assertEqual(self.redis.ttls[self.locks.creation_key(1)], 5)
		self.assertEqual(self.redis.ttls[self.locks.matching_key(1)], 30)
		self.assertEqual(self.redis.ttls[self.locks.acceptance_key(1)], 15)

	def test_hold_releases_only_a_lock_it_took(self):
		with self.locks.hold(self.locks.scheduler_key, 60) as acquired:
			self.assertTrue(acquired)
			self.assertTrue(self.locks.is_locked(self.locks.scheduler_key))
		self.assertFalse(self.locks.is_locked(self.locks.scheduler_key))

		self.redis.set(self.locks.scheduler_key, "other")
		with self.locks.hold(self.locks.scheduler_key, 60) as acquired:
			self.assertFalse(acquired)
		self.assertTrue(self.locks.is_locked(self.locks.scheduler_key))

	def test_clear_ride_keys_leaves_creation_lock(self):
		self.locks.acquire_creation_lock(3)
		self.locks.acquire_matching_lock(3)
		self.locks.acquire_acceptance_lock(3)

		self.locks.clear_ride_keys(3)

		self.assertEqual(list(self.redis.store), [self.locks.creation_key(3)])

	def test_unreachable_backend_raises_on_acquire(self):
		locks = RideLockManager(redis_client=BrokenRedis())

		with self.assertRaises(LockBackendUnavailable):
			locks.acquire_matching_lock(1)
		self.assertFalse(locks.release(locks.matching_key(1)))

	def test_disabled_manager_never_blocks(self):
		locks = RideLockManager(enabled=False)

		self.assertTrue(locks.acquire_creation_lock(1))
		self.assertTrue(locks.acquire_creation_lock(1))
		self.assertFalse(locks.is_locked(locks.creation_key(1)))

	def test_cleanup_stale_reports_leftover_lock(self):
		rider = make_rider()
		self.locks.acquire_creation_lock(rider.id)

		report = self.locks.cleanup_stale(rider.id)

		self.assertFalse(report["has_active_ride"])
		self.assertTrue(report["lock_present"])
		# Left for the TTL, never deleted here
		self.assertTrue(self.locks.is_locked(self.locks.creation_key(rider.id)))


class CreationLockTests(TestCase):
	def setUp(self):
		make_pricing()
		self.rider = make_rider()

	def test_creation_rejected_while_lock_is_held(self):
		locks = RideLockManager(redis_client=FakeRedis())
		locks.acquire_creation_lock(self.rider.id)

		with self.assertRaises(RideLockHeldError):
			create_ride(self.rider, ride_request(), lock_manager=locks)

	def test_creation_releases_its_lock(self):
		locks = RideLockManager(redis_client=FakeRedis())

		create_ride(self.rider, ride_request(), lock_manager=locks)

		self.assertFalse(locks.is_locked(locks.creation_key(self.rider.id)))

	def test_creation_continues_when_lock_store_is_down(self):
		locks = RideLockManager(redis_client=BrokenRedis())

		with self.assertLogs("services.ride_management.ride_lifecycle", level="WARNING") as logs:
			result = create_ride(self.rider, ride_request(), lock_manager=locks)

		self.assertTrue(result.success)
		self.assertTrue(any("Degraded mode" in line for line in logs.output))
