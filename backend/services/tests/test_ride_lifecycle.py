from datetime import timedelta
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import TestCase
from django.utils import timezone

from drivers.models import DriverProfile
from pricing.models import Coupon, CouponUsage
from rides.models import Ride, RideEarning
from services.exceptions import (
	ActiveRideExistsError,
	InvalidOtpError,
	InvalidRideStateError,
	RideNotAvailableError,
	RideNotFoundError,
	RideValidationError,
)
from services.ride_management import (
	accept_ride,
	can_transition,
	cancel_ride,
	complete_ride,
	create_ride,
	get_current_driver_ride,
	get_shared_ride,
	mark_driver_arrived,
	quote_fares,
	start_ride,
	transition,
	update_ride,
)
from .helpers import make_driver, make_pricing, make_rider, ride_request

User = get_user_model()


class CreateRideTests(TestCase):
	def setUp(self):
		make_pricing()
		self.rider = make_rider(wallet=Decimal("500"))

	def test_instant_ride_is_priced_and_stored(self):
		ride = create_ride(self.rider, ride_request()).ride

		self.assertEqual(ride.status, "requested")
		self.assertEqual(ride.fare, Decimal("240.00"))
		self.assertEqual(ride.fare_breakdown["final"], 240.0)
		self.assertEqual(ride.payment_status, "pending")

	def test_otps_are_four_digits(self):
		ride = create_ride(self.rider, ride_request()).ride

		for otp in (ride.start_otp, ride.stop_otp):
			self.assertEqual(len(otp), 4)
			self.assertTrue(1000 <= int(otp) <= 9999)

	def test_second_active_ride_is_rejected(self):
		create_ride(self.rider, ride_request())

		with self.assertRaises(ActiveRideExistsError):
			create_ride(self.rider, ride_request())
		self.assertEqual(Ride.objects.filter(rider=self.rider).count(), 1)

	def test_unknown_service_is_rejected(self):
		with self.assertRaises(RideValidationError) as ctx:
			create_ride(self.rider, ride_request(service="helicopter"))
		self.assertEqual(ctx.exception.code, "unknown_service")

	def test_vehicle_type_maps_to_service_and_dispatch_filter(self):
		ride = create_ride(self.rider, ride_request(service="sedan")).ride

		self.assertEqual(ride.service, "cerca_medium")
		self.assertEqual(ride.vehicle_type, "sedan")

	def test_missing_duration_is_estimated(self):
		data = ride_request()
		del data["estimated_duration"]

		ride = create_ride(self.rider, data).ride

		self.assertEqual(ride.estimated_duration, 18)

	def test_implausible_client_distance_is_replaced(self):
		ride = create_ride(self.rider, ride_request(distance_in_km=5000)).ride

		self.assertLess(ride.distance_in_km, Decimal("5"))

	def test_wallet_payment_is_captured(self):
		ride = create_ride(self.rider, ride_request(payment_method="WALLET")).ride

		self.rider.refresh_from_db()
		self.assertEqual(ride.payment_status, "paid")
		self.assertEqual(ride.wallet_amount_used, Decimal("240.00"))
		self.assertEqual(self.rider.wallet_balance, Decimal("260.00"))

	def test_insufficient_wallet_leaves_no_ride(self):
		poor = make_rider("poor", wallet=Decimal("10"))

		with self.assertRaises(RideValidationError) as ctx:
			create_ride(poor, ride_request(payment_method="WALLET"))

		self.assertEqual(ctx.exception.code, "insufficient_balance")
		self.assertFalse(Ride.objects.filter(rider=poor).exists())

	def test_hybrid_payment_splits_wallet_and_gateway(self):
		ride = create_ride(
			self.rider,
			ride_request(payment_method="hybrid", wallet_amount_used=100, gateway_payment_id="pay_abc"),
		).ride

		self.assertEqual(ride.wallet_amount_used, Decimal("100.00"))
		self.assertEqual(ride.gateway_amount_paid, Decimal("140.00"))
		self.assertEqual(ride.payment_status, "paid")

	def test_hybrid_without_gateway_payment_is_rejected(self):
		with self.assertRaises(RideValidationError):
			create_ride(self.rider, ride_request(payment_method="hybrid", wallet_amount_used=100))

	def test_promo_discount_is_applied_and_recorded(self):
		now = timezone.now()
		Coupon.objects.create(
			code="flat40",
			coupon_type="fixed",
			discount_value=Decimal("40"),
			start_date=now - timedelta(days=1),
			valid_until=now + timedelta(days=1),
		)

		ride = create_ride(self.rider, ride_request(promo_code="FLAT40")).ride

		self.assertEqual(ride.fare, Decimal("200.00"))
		self.assertEqual(ride.discount, Decimal("40.00"))
		self.assertEqual(CouponUsage.objects.filter(ride=ride).count(), 1)
		self.assertEqual(Coupon.objects.get(code="FLAT40").usage_count, 1)

	def test_unknown_promo_is_rejected(self):
		with self.assertRaises(RideValidationError) as ctx:
			create_ride(self.rider, ride_request(promo_code="NOPE"))
		self.assertEqual(ctx.exception.code, "invalid_promo")

	def test_full_day_booking_in_the_past_is_rejected(self):
		start = timezone.now() - timedelta(hours=1)
		data = ride_request(
			booking_type="FULL_DAY",
			booking_meta={"start_time": start.isoformat(), "end_time": (start + timedelta(hours=8)).isoformat()},
		)

		with self.assertRaises(RideValidationError):
			create_ride(self.rider, data)

	def test_date_wise_dates_are_sorted_and_deduplicated(self):
		year = timezone.now().year + 1
		data = ride_request(
			booking_type="DATE_WISE",
			booking_meta={"dates": [f"{year}-03-05", f"{year}-03-01", f"{year}-03-05"]},
		)

		ride = create_ride(self.rider, data).ride

		self.assertEqual(ride.booking_meta["dates"], [f"{year}-03-01", f"{year}-03-05"])
		self.assertEqual(ride.fare, Decimal("1000.00"))
		self.assertEqual(ride.scheduled_start_time.date().isoformat(), f"{year}-03-01")

	def test_booking_for_someone_else_creates_share_link(self):
		data = ride_request(ride_for="OTHER", passenger={"name": "Asha", "phone": "9811111111"})

		ride = create_ride(self.rider, data).ride

		self.assertEqual(len(ride.share_token), 43)
		self.assertEqual(get_shared_ride(ride.share_token).pk, ride.pk)

	def test_quotes_every_enabled_service(self):
		quotes = quote_fares(ride_request())

		self.assertEqual([q["service"] for q in quotes["quotes"]], ["cerca_large", "cerca_medium", "cerca_small"])
		self.assertEqual(quotes["quotes"][1]["fare"], 240.0)


class RideProgressTests(TestCase):
	def setUp(self):
		make_pricing()
		self.rider = make_rider()
		self.driver = make_driver()
		self.ride = create_ride(self.rider, ride_request()).ride
		accept_ride(self.driver, self.ride.id)

	def test_wrong_start_otp_keeps_ride_waiting(self):
		with self.assertRaises(InvalidOtpError):
			start_ride(self.driver, self.ride.id, "0000")

		self.ride.refresh_from_db()
		self.assertEqual(self.ride.status, "accepted")

	def test_full_trip_recalculates_fare_and_records_earnings(self):
		mark_driver_arrived(self.driver, self.ride.id)
		start_ride(self.driver, self.ride.id, self.ride.start_otp)
		self.assertEqual(get_current_driver_ride(self.driver).pk, self.ride.pk)

		with self.assertRaises(InvalidOtpError):
			complete_ride(self.driver, self.ride.id, "0000")

		ride = complete_ride(self.driver, self.ride.id, self.ride.stop_otp).ride

		# Finished immediately: 80 base + 120 distance, no time component
		self.assertEqual(ride.status, "completed")
		self.assertEqual(ride.fare, Decimal("200.00"))
		self.assertEqual(ride.payment_status, "paid")
		self.assertIsNotNone(ride.actual_end_time)
		self.assertIsNotNone(ride.completed_at)

		earning = RideEarning.objects.get(ride=ride)
		self.assertEqual(earning.platform_fee, Decimal("20.00"))
		self.assertEqual(earning.driver_earning, Decimal("180.00"))
		self.assertEqual(earning.platform_fee + earning.driver_earning, ride.fare)

		self.assertFalse(DriverProfile.objects.get(user=self.driver).is_busy)
		self.assertEqual(User.objects.get(pk=self.rider.pk).completed_rides, 1)
		self.assertEqual(User.objects.get(pk=self.driver.pk).completed_rides, 1)
		self.assertIsNone(get_current_driver_ride(self.driver))

	def test_other_driver_cannot_start_ride(self):
		stranger = make_driver("stranger")

		with self.assertRaises(RideNotAvailableError):
			start_ride(stranger, self.ride.id, self.ride.start_otp)

	def test_transition_from_terminal_state_is_rejected(self):
		cancel_ride(self.ride.id, "driver", actor=self.driver)

		with self.assertRaises(InvalidRideStateError):
			transition(self.ride.id, "start")
		with self.assertRaises(RideNotFoundError):
			transition(999999, "start")

	def test_start_allowed_from_accepted_or_arrived_only(self):
		self.assertTrue(can_transition("start", "accepted"))
		self.assertTrue(can_transition("start", "arrived"))
		self.assertFalse(can_transition("start", "requested"))
		self.assertFalse(can_transition("cancel", "completed"))


class RideUpdateGuardrailTests(TestCase):
	def setUp(self):
		make_pricing()
		self.rider = make_rider()
		self.other_rider = make_rider("other")
		self.driver = make_driver()
		self.ride = create_ride(self.rider, ride_request()).ride

	def test_otps_can_never_change(self):
		with self.assertRaises(RideValidationError) as ctx:
			update_ride(self.ride.id, {"start_otp": "1111"})
		self.assertEqual(ctx.exception.code, "otp_immutable")

	def test_unknown_fields_are_rejected(self):
		with self.assertRaises(RideValidationError):
			update_ride(self.ride.id, {"fare": 1})

	def test_addresses_change_while_requested(self):
		ride = update_ride(self.ride.id, {"pickup_address": "Gate 2"})
		self.assertEqual(ride.pickup_address, "Gate 2")

	def test_rider_and_passenger_locked_after_acceptance(self):
		accept_ride(self.driver, self.ride.id)

		with self.assertRaises(InvalidRideStateError):
			update_ride(self.ride.id, {"rider": self.other_rider})
		with self.assertRaises(InvalidRideStateError):
			update_ride(self.ride.id, {"passenger": {"name": "Ravi", "phone": "9822222222"}})
		with self.assertRaises(InvalidRideStateError):
			update_ride(self.ride.id, {"dropoff_address": "Elsewhere"})


class CancelRideTests(TestCase):
	def setUp(self):
		make_pricing()
		self.rider = make_rider(wallet=Decimal("500"))
		self.driver = make_driver()

	def test_rider_cancels_requested_cash_ride(self):
		ride = create_ride(self.rider, ride_request()).ride

		result = cancel_ride(ride.id, "rider", reason="Changed plans", actor=self.rider)

		self.assertEqual(result.ride.status, "cancelled")
		self.assertEqual(result.ride.cancelled_by, "rider")
		self.assertFalse(result.extra["refund"]["refunded"])

	def test_cancel_twice_is_rejected(self):
		ride = create_ride(self.rider, ride_request()).ride
		cancel_ride(ride.id, "rider", actor=self.rider)

		with self.assertRaises(InvalidRideStateError):
			cancel_ride(ride.id, "rider", actor=self.rider)

	def test_only_own_ride_can_be_cancelled(self):
		ride = create_ride(self.rider, ride_request()).ride
		intruder = make_rider("intruder")

		with self.assertRaises(RideNotFoundError):
			cancel_ride(ride.id, "rider", actor=intruder)

	def test_cancel_after_acceptance_charges_fee_and_frees_driver(self):
		ride = create_ride(self.rider, ride_request(payment_method="WALLET")).ride
		accept_ride(self.driver, ride.id)

		result = cancel_ride(ride.id, "rider", actor=self.rider)

		self.assertEqual(result.extra["refund"]["cancellation_fee"], 50.0)
		self.assertEqual(result.extra["refund"]["refund_amount"], 190.0)
		self.assertEqual(result.ride.payment_status, "refunded")
		self.assertFalse(DriverProfile.objects.get(user=self.driver).is_busy)
		self.rider.refresh_from_db()
		self.assertEqual(self.rider.wallet_balance, Decimal("450.00"))

	def test_cancellation_expires_share_link(self):
		data = ride_request(ride_for="OTHER", passenger={"name": "Asha", "phone": "9811111111"})
		ride = create_ride(self.rider, data).ride

		cancel_ride(ride.id, "rider", actor=self.rider)

		with self.assertRaises(InvalidRideStateError):
			get_shared_ride(ride.share_token)
