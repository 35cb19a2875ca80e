import threading
from datetime import timedelta
from decimal import Decimal

from django.db import connection
from django.test import TestCase, TransactionTestCase
from django.utils import timezone

from drivers.models import DriverProfile
from rides.models import RideOffer
from services.exceptions import DriverNotAvailableError, RideConflictError
from services.matching import assign_driver, dispatch_ride_to_candidates, find_candidates
from services.ride_management import accept_ride
from .helpers import PICKUP, make_driver, make_ride, make_rider

# ~8.5 km and ~14 km due north of the pickup
NEAR_LAT = PICKUP[0] + 0.076
FAR_LAT = PICKUP[0] + 0.126


class CandidateSearchTests(TestCase):
	def test_first_radius_with_drivers_wins(self):
		near = make_driver("near", lat=NEAR_LAT)
		make_driver("far", lat=FAR_LAT)

		result = find_candidates(*PICKUP)

		self.assertEqual(result.radius_km, 9)
		self.assertEqual([c.driver_id for c in result.drivers], [near.id])
		self.assertEqual(result.radii_tried, [3, 6, 9])

	def test_candidates_sorted_by_distance(self):
		second = make_driver("second", lat=PICKUP[0] + 0.01)
		first = make_driver("first", lat=PICKUP[0] + 0.001)

		result = find_candidates(*PICKUP)

		self.assertEqual([c.driver_id for c in result.drivers], [first.id, second.id])

	def test_unreachable_offline_and_busy_drivers_are_skipped(self):
		make_driver("offline", is_online=False)
		make_driver("no_session", session_id="")
		make_driver("busy", is_busy=True)
		make_driver("inactive", is_active=False)

		self.assertFalse(find_candidates(*PICKUP).found)

	def test_vehicle_type_filter(self):
		make_driver("hatch", vehicle_type="hatchback")
		suv = make_driver("suv", vehicle_type="suv")

		result = find_candidates(*PICKUP, vehicle_type="suv")

		self.assertEqual([c.driver_id for c in result.drivers], [suv.id])

	def test_full_day_booking_may_use_driver_committed_later(self):
		driver = make_driver("later", is_busy=True, busy_until=timezone.now() + timedelta(hours=3))

		self.assertFalse(find_candidates(*PICKUP, booking_type="INSTANT").found)
		result = find_candidates(*PICKUP, booking_type="FULL_DAY")
		self.assertEqual([c.driver_id for c in result.drivers], [driver.id])


class AssignmentTests(TestCase):
	def setUp(self):
		self.rider = make_rider()
		self.driver_one = make_driver("driver_one")
		self.driver_two = make_driver("driver_two", lat=PICKUP[0] + 0.002)
		self.ride = make_ride(self.rider)
		dispatch_ride_to_candidates(self.ride, find_candidates(*PICKUP))

	def test_dispatch_records_one_offer_per_driver(self):
		offers = RideOffer.objects.filter(ride=self.ride).order_by("order")

		self.assertEqual([o.driver_id for o in offers], [self.driver_one.id, self.driver_two.id])
		self.assertTrue(all(o.status == "sent" for o in offers))

	def test_redispatch_does_not_duplicate_offers(self):
		again = dispatch_ride_to_candidates(self.ride, find_candidates(*PICKUP))

		self.assertEqual(again, [])
		self.assertEqual(RideOffer.objects.filter(ride=self.ride).count(), 2)

	def test_exactly_one_driver_wins(self):
		accept_ride(self.driver_one, self.ride.id)

		with self.assertRaises(RideConflictError):
			accept_ride(self.driver_two, self.ride.id)

		self.ride.refresh_from_db()
		self.assertEqual(self.ride.status, "accepted")
		self.assertEqual(self.ride.driver_id, self.driver_one.id)
		self.assertEqual(
			dict(RideOffer.objects.filter(ride=self.ride).values_list("driver_id", "status")),
			{self.driver_one.id: "accepted", self.driver_two.id: "expired"},
		)
		self.assertTrue(DriverProfile.objects.get(user=self.driver_one).is_busy)
		self.assertFalse(DriverProfile.objects.get(user=self.driver_two).is_busy)

	def test_scheduled_assignment_keeps_driver_free_until_start(self):
		rider = make_rider("planner")
		start = timezone.now() + timedelta(days=1)
		booking = make_ride(
			rider,
			booking_type="FULL_DAY",
			scheduled_start_time=start,
			scheduled_end_time=start + timedelta(hours=8),
			fare=Decimal("1500"),
		)

		assign_driver(booking.id, self.driver_one)

		profile = DriverProfile.objects.get(user=self.driver_one)
		self.assertFalse(profile.is_busy)
		self.assertEqual(profile.busy_until, start + timedelta(hours=8))

	def test_date_wise_overlap_is_rejected(self):
		other_rider = make_rider("other")
		make_ride(
			other_rider,
			booking_type="DATE_WISE",
			booking_meta={"dates": ["2030-05-01", "2030-05-02"]},
			status="accepted",
			driver=self.driver_one,
		)
		third_rider = make_rider("third")
		clash = make_ride(third_rider, booking_type="DATE_WISE", booking_meta={"dates": ["2030-05-02"]})

		with self.assertRaises(DriverNotAvailableError):
			assign_driver(clash.id, self.driver_one)


class ConcurrentAssignmentTests(TransactionTestCase):
	"""Drivers accept the same ride from separate threads and connections."""

	def race(self, ride, drivers):
		barrier = threading.Barrier(len(drivers))
		outcomes = []
		outcomes_lock = threading.Lock()

		def attempt(driver):
			try:
				barrier.wait(timeout=10)
				assign_driver(ride.id, driver)
				outcome = ("won", driver.id)
			except RideConflictError:
				outcome = ("lost", driver.id)
			except Exception as exc:
				outcome = ("error", repr(exc))
			finally:
				connection.close()
			with outcomes_lock:
				outcomes.append(outcome)

		threads = [threading.Thread(target=attempt, args=(driver,)) for driver in drivers]
		for thread in threads:
			thread.start()
		for thread in threads:
			thread.join(timeout=30)
		return outcomes

	def test_exactly_one_of_many_simultaneous_drivers_wins(self):
		rider = make_rider()
		drivers = [make_driver(f"racer_{n}") for n in range(4)]
		ride = make_ride(rider)

		outcomes = self.race(ride, drivers)

		self.assertEqual([o for o in outcomes if o[0] == "error"], [])
		winners = [driver_id for kind, driver_id in outcomes if kind == "won"]
		self.assertEqual(len(winners), 1)
		self.assertEqual(len([o for o in outcomes if o[0] == "lost"]), 3)
		ride.refresh_from_db()
		self.assertEqual(ride.status, "accepted")
		self.assertEqual(ride.driver_id, winners[0])
		self.assertEqual(
			list(DriverProfile.objects.filter(is_busy=True).values_list("user_id", flat=True)),
			winners,
		)

	def test_two_drivers_racing_repeatedly_never_share_a_ride(self):
		rider = make_rider()
		drivers = [make_driver("racer_a"), make_driver("racer_b")]

		for _ in range(5):
			ride = make_ride(rider)
			outcomes = self.race(ride, drivers)

			self.assertEqual(sorted(kind for kind, _ in outcomes), ["lost", "won"])
			ride.refresh_from_db()
			self.assertEqual(ride.status, "accepted")
			ride.status = "completed"
			ride.save(update_fields=["status"])
			DriverProfile.objects.update(is_busy=False)
