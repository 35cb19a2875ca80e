from datetime import timedelta
from decimal import Decimal
from io import StringIO
from unittest.mock import patch

from django.core.management import call_command
from django.test import TestCase
from django.utils import timezone
from rest_framework.test import APIRequestFactory, force_authenticate

from drivers.models import DriverProfile
from passengers.views.rides import (
	PassengerCancelRideView,
	PassengerCreateRideView,
	PassengerRideDetailView,
	SharedRideView,
)
from services.concurrency import RideLockManager
from services.matching import enqueue_ride_discovery, process_discovery_job
from services.ride_management import accept_ride, create_ride
from services.tests.helpers import FakeRedis, make_driver, make_pricing, make_ride, make_rider, ride_request
from .models import Ride, RideOffer, RideReminder
from .scheduled_ride_monitor import ScheduledRideMonitor
from .tasks import process_ride_booking
from .services.scheduled_rides import (
	expire_unaccepted_rides,
	reminder_threshold,
	run_tick,
	send_booking_reminders,
	start_due_scheduled_rides,
)
from .views import accept_ride as accept_ride_view
from .views import complete_ride as complete_ride_view
from .views import start_ride as start_ride_view
from .views import upcoming_bookings


def scheduled_booking(rider, driver, start, status='accepted'):
	return make_ride(
		rider,
		driver=driver,
		status=status,
		booking_type='FULL_DAY',
		scheduled_start_time=start,
		scheduled_end_time=start + timedelta(hours=8),
		fare=Decimal('1500'),
	)


class DiscoveryJobTests(TestCase):
	def setUp(self):
		self.rider = make_rider()
		self.ride = make_ride(self.rider)

	def test_nearby_drivers_are_notified(self):
		driver = make_driver('driver_one')

		outcome = process_discovery_job(self.ride.id)

		self.assertEqual(outcome.status, 'dispatched')
		self.assertEqual(outcome.notified_driver_ids, [driver.id])
		self.assertEqual(outcome.radius_km, 3)
		self.assertTrue(RideOffer.objects.filter(ride=self.ride, driver=driver, status='sent').exists())

	def test_no_drivers_cancels_ride_as_system(self):
		outcome = process_discovery_job(self.ride.id)

		self.ride.refresh_from_db()
		self.assertEqual(outcome.status, 'no_drivers')
		self.assertEqual(self.ride.status, 'cancelled')
		self.assertEqual(self.ride.cancelled_by, 'system')
		self.assertEqual(self.ride.cancellation_reason, 'NO_DRIVER_FOUND')

	def test_ride_that_no_longer_needs_a_driver_is_skipped(self):
		Ride.objects.filter(pk=self.ride.pk).update(status='cancelled')

		self.assertEqual(process_discovery_job(self.ride.id).status, 'skipped')

	def test_job_already_running_is_skipped(self):
		locks = RideLockManager(redis_client=FakeRedis())
		locks.acquire_matching_lock(self.ride.id)

		outcome = process_discovery_job(self.ride.id, lock_manager=locks)

		self.assertEqual(outcome.status, 'locked')
		self.ride.refresh_from_db()
		self.assertEqual(self.ride.status, 'requested')

	def test_matching_lock_released_after_job(self):
		locks = RideLockManager(redis_client=FakeRedis())
		make_driver('driver_one')

		process_discovery_job(self.ride.id, lock_manager=locks)

		self.assertFalse(locks.is_locked(locks.matching_key(self.ride.id)))

	@patch('rides.tasks.process_ride_booking')
	def test_enqueue_uses_ride_task_id(self, mock_task):
		self.assertTrue(enqueue_ride_discovery(self.ride.id))
		mock_task.apply_async.assert_called_once_with(args=(self.ride.id,), task_id='ride:%d' % self.ride.id)

	@patch('rides.tasks.process_ride_booking')
	def test_enqueue_failure_is_reported_not_raised(self, mock_task):
		mock_task.apply_async.side_effect = ConnectionError('broker down')
		self.assertFalse(enqueue_ride_discovery(self.ride.id))

	def test_task_runs_discovery_job(self):
		make_driver('driver_one')

		result = process_ride_booking.apply(args=(self.ride.id,)).get()

		self.assertEqual(result['status'], 'dispatched')

	def test_created_ride_is_queued_after_commit(self):
		make_pricing()
		rider = make_rider('another')

		with patch('rides.tasks.process_ride_booking') as mock_task:
			with self.captureOnCommitCallbacks(execute=True):
				ride = create_ride(rider, ride_request()).ride

		mock_task.apply_async.assert_called_once_with(args=(ride.id,), task_id='ride:%d' % ride.id)


class ScheduledRideTests(TestCase):
	def setUp(self):
		self.rider = make_rider()
		self.driver = make_driver('driver_one')
		self.now = timezone.now()

	def test_reminder_threshold_picks_smallest_covering_threshold(self):
		self.assertEqual(reminder_threshold(55), 60)
		self.assertEqual(reminder_threshold(20), 30)
		self.assertEqual(reminder_threshold(3), 5)
		self.assertIsNone(reminder_threshold(61))

	def test_reminder_sent_once_per_threshold(self):
		ride = scheduled_booking(self.rider, self.driver, self.now + timedelta(minutes=55))

		self.assertEqual(send_booking_reminders(self.now), 1)
		self.assertEqual(send_booking_reminders(self.now + timedelta(minutes=1)), 0)
		self.assertEqual(list(RideReminder.objects.filter(ride=ride).values_list('threshold_minutes', flat=True)), [60])

		# Next threshold once inside 30 minutes
		self.assertEqual(send_booking_reminders(self.now + timedelta(minutes=26)), 1)
		self.assertEqual(RideReminder.objects.filter(ride=ride).count(), 2)

	def test_due_booking_is_started(self):
		ride = scheduled_booking(self.rider, self.driver, self.now - timedelta(minutes=2))

		self.assertEqual(start_due_scheduled_rides(self.now), 1)

		ride.refresh_from_db()
		self.assertEqual(ride.status, 'in_progress')
		self.assertIsNotNone(ride.actual_start_time)
		self.assertTrue(DriverProfile.objects.get(user=self.driver).is_busy)

	def test_booking_outside_lookback_is_left_alone(self):
		scheduled_booking(self.rider, self.driver, self.now - timedelta(hours=2))

		self.assertEqual(start_due_scheduled_rides(self.now), 0)

	def test_tick_reports_work_done(self):
		scheduled_booking(self.rider, self.driver, self.now - timedelta(minutes=1))
		other = make_rider('other')
		scheduled_booking(other, self.driver, self.now + timedelta(minutes=4))

		report = run_tick(self.now)

		self.assertEqual(report.as_dict(), {'started': 1, 'reminders': 1, 'skipped': False})

	def test_tick_skipped_while_another_instance_holds_lock(self):
		locks = RideLockManager(redis_client=FakeRedis())
		locks.acquire(locks.scheduler_key, 60)
		ride = scheduled_booking(self.rider, self.driver, self.now - timedelta(minutes=1))

		report = run_tick(self.now, lock_manager=locks)

		self.assertTrue(report.skipped)
		ride.refresh_from_db()
		self.assertEqual(ride.status, 'accepted')

	def test_monitor_skips_overlapping_tick(self):
		monitor = ScheduledRideMonitor(300)
		monitor._tick_guard.acquire()
		try:
			self.assertTrue(monitor.tick().skipped)
		finally:
			monitor._tick_guard.release()

	def test_command_runs_single_pass(self):
		out = StringIO()
		call_command('process_scheduled_rides', stdout=out)
		self.assertIn('Started 0 booking(s); sent 0 reminder(s).', out.getvalue())


class AutoCancelTests(TestCase):
	def setUp(self):
		self.rider = make_rider()
		self.ride = make_ride(self.rider)

	def test_stale_requested_ride_is_cancelled(self):
		Ride.objects.filter(pk=self.ride.pk).update(requested_at=timezone.now() - timedelta(minutes=10))

		self.assertEqual(expire_unaccepted_rides(timeout_minutes=5), 1)

		self.ride.refresh_from_db()
		self.assertEqual(self.ride.status, 'cancelled')
		self.assertEqual(self.ride.cancelled_by, 'system')
		self.assertEqual(self.ride.cancellation_reason, 'NO_DRIVER_ACCEPTED_TIMEOUT')

	def test_recent_ride_is_kept(self):
		self.assertEqual(expire_unaccepted_rides(timeout_minutes=5), 0)

		self.ride.refresh_from_db()
		self.assertEqual(self.ride.status, 'requested')

	def test_command_reports_count(self):
		Ride.objects.filter(pk=self.ride.pk).update(requested_at=timezone.now() - timedelta(minutes=10))
		out = StringIO()

		call_command('auto_cancel_rides', timeout=5, stdout=out)

		self.assertIn('Cancelled 1 unaccepted ride(s).', out.getvalue())


class RideApiTests(TestCase):
	def setUp(self):
		make_pricing()
		self.factory = APIRequestFactory()
		self.rider = make_rider()
		self.driver = make_driver('driver_one')

	def post(self, view, user, data=None, **kwargs):
		request = self.factory.post('/', data or {}, format='json')
		force_authenticate(request, user=user)
		return view(request, **kwargs)

	def test_rider_books_ride_and_gets_otps(self):
		response = self.post(PassengerCreateRideView.as_view(), self.rider, ride_request())

		self.assertEqual(response.status_code, 201)
		self.assertEqual(len(response.data['start_otp']), 4)
		self.assertEqual(response.data['ride']['status'], 'requested')
		self.assertNotIn('start_otp', response.data['ride'])

	def test_duplicate_booking_returns_conflict(self):
		self.post(PassengerCreateRideView.as_view(), self.rider, ride_request())
		response = self.post(PassengerCreateRideView.as_view(), self.rider, ride_request())

		self.assertEqual(response.status_code, 409)
		self.assertEqual(response.data['error'], 'active_ride_exists')

	def test_driver_cannot_book_ride(self):
		response = self.post(PassengerCreateRideView.as_view(), self.driver, ride_request())
		self.assertEqual(response.status_code, 403)

	def test_driver_accepts_and_second_driver_conflicts(self):
		ride = create_ride(self.rider, ride_request()).ride
		other = make_driver('driver_two')

		first = self.post(accept_ride_view, self.driver, ride_id=ride.id)
		second = self.post(accept_ride_view, other, ride_id=ride.id)

		self.assertEqual(first.status_code, 200)
		self.assertEqual(first.data['ride']['status'], 'accepted')
		self.assertEqual(second.status_code, 409)

	def test_rider_cannot_use_driver_actions(self):
		ride = create_ride(self.rider, ride_request()).ride

		response = self.post(accept_ride_view, self.rider, ride_id=ride.id)

		self.assertEqual(response.status_code, 403)

	def test_wrong_otp_is_rejected(self):
		ride = create_ride(self.rider, ride_request()).ride
		accept_ride(self.driver, ride.id)
		wrong = '1000' if ride.start_otp != '1000' else '1001'

		response = self.post(start_ride_view, self.driver, {'otp': wrong}, ride_id=ride.id)

		self.assertEqual(response.status_code, 400)
		self.assertEqual(response.data['error'], 'invalid_otp')

	def test_trip_through_the_api(self):
		ride = create_ride(self.rider, ride_request()).ride
		self.post(accept_ride_view, self.driver, ride_id=ride.id)

		started = self.post(start_ride_view, self.driver, {'otp': ride.start_otp}, ride_id=ride.id)
		completed = self.post(complete_ride_view, self.driver, {'otp': ride.stop_otp}, ride_id=ride.id)

		self.assertEqual(started.data['ride']['status'], 'in_progress')
		self.assertEqual(completed.status_code, 200)
		self.assertEqual(completed.data['ride']['status'], 'completed')

	def test_rider_cancel_returns_refund_summary(self):
		ride = create_ride(self.rider, ride_request()).ride

		response = self.post(PassengerCancelRideView.as_view(), self.rider, {'reason': 'Plans changed'}, ride_id=ride.id)

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['ride']['status'], 'cancelled')
		self.assertIn('refund', response.data)

	def test_otp_edit_is_rejected(self):
		ride = create_ride(self.rider, ride_request()).ride
		request = self.factory.patch('/', {'start_otp': '1111'}, format='json')
		force_authenticate(request, user=self.rider)

		response = PassengerRideDetailView.as_view()(request, ride_id=ride.id)

		self.assertEqual(response.status_code, 400)
		self.assertEqual(response.data['error'], 'otp_immutable')

	def test_shared_link_needs_no_login(self):
		data = ride_request(ride_for='OTHER', passenger={'name': 'Asha', 'phone': '9811111111'})
		ride = create_ride(self.rider, data).ride
		request = self.factory.get('/')

		response = SharedRideView.as_view()(request, token=ride.share_token)

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['status'], 'requested')

	def test_malformed_share_token_is_rejected(self):
		response = SharedRideView.as_view()(self.factory.get('/'), token='short')
		self.assertEqual(response.status_code, 400)

	def test_upcoming_bookings_for_driver(self):
		scheduled_booking(self.rider, self.driver, timezone.now() + timedelta(days=1))
		request = self.factory.get('/')
		force_authenticate(request, user=self.driver)

		response = upcoming_bookings(request)

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['count'], 1)
