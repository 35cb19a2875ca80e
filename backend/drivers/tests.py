from datetime import timedelta

from django.test import TestCase
from django.utils import timezone
from rest_framework.test import APIRequestFactory, force_authenticate

from services.exceptions import InvalidRideStateError
from services.tests.helpers import make_driver, make_ride, make_rider
from .models import DriverProfile
from .services import release_driver, update_driver_status, validate_and_fix_driver_status
from .views import DriverCurrentRideView, DriverStatusView


class DriverStatusValidatorTests(TestCase):
	def setUp(self):
		self.driver = make_driver()
		self.rider = make_rider()

	def profile(self):
		return DriverProfile.objects.get(user=self.driver)

	def test_busy_driver_without_rides_is_freed(self):
		DriverProfile.objects.filter(user=self.driver).update(is_busy=True)

		result = validate_and_fix_driver_status(self.driver.id)

		self.assertTrue(result.corrected)
		self.assertFalse(self.profile().is_busy)

	def test_driver_on_instant_ride_is_marked_busy(self):
		make_ride(self.rider, driver=self.driver, status='accepted')

		result = validate_and_fix_driver_status(self.driver.id)

		self.assertTrue(result.corrected)
		self.assertEqual(result.active_rides_count, 1)
		self.assertTrue(self.profile().is_busy)

	def test_future_booking_does_not_make_driver_busy(self):
		start = timezone.now() + timedelta(days=1)
		make_ride(
			self.rider,
			driver=self.driver,
			status='accepted',
			booking_type='FULL_DAY',
			scheduled_start_time=start,
			scheduled_end_time=start + timedelta(hours=8),
		)
		DriverProfile.objects.filter(user=self.driver).update(is_busy=True)

		result = validate_and_fix_driver_status(self.driver.id)

		self.assertTrue(result.corrected)
		self.assertFalse(self.profile().is_busy)

	def test_consistent_status_is_left_alone(self):
		self.assertFalse(validate_and_fix_driver_status(self.driver.id).corrected)

	def test_unknown_driver_is_reported(self):
		self.assertEqual(validate_and_fix_driver_status(999999).reason, 'Driver not found')

	def test_release_clears_busy_until(self):
		DriverProfile.objects.filter(user=self.driver).update(is_busy=True, busy_until=timezone.now() + timedelta(hours=2))

		release_driver(self.driver.id)

		profile = self.profile()
		self.assertFalse(profile.is_busy)
		self.assertIsNone(profile.busy_until)


class DriverAvailabilityTests(TestCase):
	def setUp(self):
		self.factory = APIRequestFactory()
		self.driver = make_driver()
		self.rider = make_rider()

	def test_going_offline_clears_session(self):
		profile = update_driver_status(self.driver.driver_profile, False)

		self.assertFalse(profile.is_online)
		self.assertEqual(profile.session_id, '')

	def test_cannot_go_offline_during_instant_ride(self):
		make_ride(self.rider, driver=self.driver, status='in_progress')

		with self.assertRaises(InvalidRideStateError):
			update_driver_status(self.driver.driver_profile, False)

	def test_status_endpoint_goes_online_with_session(self):
		request = self.factory.put('/', {'is_online': True, 'session_id': 'specific.abc'}, format='json')
		force_authenticate(request, user=self.driver)

		response = DriverStatusView.as_view()(request)

		self.assertEqual(response.status_code, 200)
		self.assertEqual(DriverProfile.objects.get(user=self.driver).session_id, 'specific.abc')

	def test_rider_cannot_use_driver_endpoints(self):
		request = self.factory.get('/')
		force_authenticate(request, user=self.rider)

		self.assertEqual(DriverStatusView.as_view()(request).status_code, 403)

	def test_current_ride_reconciles_busy_flag(self):
		make_ride(self.rider, driver=self.driver, status='accepted')
		request = self.factory.get('/')
		force_authenticate(request, user=self.driver)

		response = DriverCurrentRideView.as_view()(request)

		self.assertEqual(response.status_code, 200)
		self.assertTrue(DriverProfile.objects.get(user=self.driver).is_busy)
