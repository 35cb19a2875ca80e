from datetime import timedelta
from decimal import Decimal
from types import SimpleNamespace

from django.test import SimpleTestCase
from django.utils import timezone

from services.exceptions import EarningsConsistencyWarning, RideValidationError
from services.pricing import (
	PricingSnapshot,
	PromoContext,
	PromoSnapshot,
	VehicleTier,
	apply_promo,
	estimate_duration_minutes,
	flat_fare,
	money,
	quote,
	recalculate,
	resolve_actual_duration,
	split_earnings,
	with_promo,
)


def snapshot(per_minute_rate="2"):
	medium = VehicleTier(key="cerca_medium", name="Cerca Medium", base_price=Decimal("80"), per_minute_rate=Decimal(per_minute_rate))
	return PricingSnapshot(
		per_km_rate=Decimal("12"),
		minimum_fare=Decimal("100"),
		platform_fee_percent=Decimal("10"),
		driver_commission_percent=Decimal("90"),
		tiers={"cerca_medium": medium},
	)


def booked_ride(**fields):
	values = {
		"booking_type": "INSTANT",
		"service": "cerca_medium",
		"distance_in_km": Decimal("10"),
		"estimated_duration": 30,
		"fare": Decimal("250"),
		"fare_breakdown": {},
	}
	values.update(fields)
	return SimpleNamespace(**values)


class QuoteTests(SimpleTestCase):
	def setUp(self):
		self.pricing = snapshot()
		self.tier = self.pricing.tier("cerca_medium")

	def test_quote_adds_base_distance_and_time(self):
		breakdown = quote(self.tier, 10, 20, self.pricing)

		self.assertEqual(breakdown.base, Decimal("80.00"))
		self.assertEqual(breakdown.distance, Decimal("120.00"))
		self.assertEqual(breakdown.time, Decimal("40.00"))
		self.assertEqual(breakdown.subtotal, Decimal("240.00"))
		self.assertEqual(breakdown.final, Decimal("240.00"))

	def test_short_trip_is_raised_to_minimum_fare(self):
		breakdown = quote(self.tier, Decimal("0.5"), 2, self.pricing)

		self.assertEqual(breakdown.subtotal, Decimal("90.00"))
		self.assertEqual(breakdown.after_minimum, Decimal("100.00"))
		self.assertEqual(breakdown.final, Decimal("100.00"))

	def test_negative_distance_is_rejected(self):
		with self.assertRaises(RideValidationError):
			quote(self.tier, -1, 10, self.pricing)

	def test_breakdown_serializes_to_floats(self):
		data = quote(self.tier, 10, 20, self.pricing).as_dict()

		self.assertEqual(data["final"], 240.0)
		self.assertNotIn("capped", data)

	def test_money_rounds_half_away_from_zero(self):
		self.assertEqual(money("2.345"), Decimal("2.35"))
		self.assertEqual(money(None), Decimal("0.00"))

	def test_duration_estimate_rounds_up(self):
		self.assertEqual(estimate_duration_minutes(10), 18)
		self.assertEqual(estimate_duration_minutes(0), 0)


class PromoTests(SimpleTestCase):
	def setUp(self):
		self.now = timezone.now()
		self.breakdown = quote(snapshot().tier("cerca_medium"), 20, 40, snapshot())  # 80 + 240 + 80
		self.context = PromoContext(user_id=1, now=self.now, service="cerca_medium")

	def promo(self, **fields):
		values = {
			"code": "SAVE10",
			"coupon_type": "percentage",
			"discount_value": Decimal("10"),
			"start_date": self.now - timedelta(days=1),
			"valid_until": self.now + timedelta(days=1),
			"max_discount_amount": Decimal("30"),
		}
		values.update(fields)
		return PromoSnapshot(**values)

	def test_percentage_discount_respects_cap(self):
		result = apply_promo(self.breakdown, self.promo(), self.context)

		self.assertTrue(result.applied)
		self.assertEqual(result.discount, Decimal("30.00"))
		self.assertEqual(result.final_fare, Decimal("370.00"))

	def test_expired_promo_gives_reason_and_no_discount(self):
		result = apply_promo(self.breakdown, self.promo(valid_until=self.now - timedelta(minutes=1)), self.context)

		self.assertFalse(result.applied)
		self.assertEqual(result.discount, Decimal("0.00"))
		self.assertEqual(result.reason, "Coupon has expired")

	def test_new_user_promo_rejected_after_first_ride(self):
		context = PromoContext(user_id=1, now=self.now, user_completed_rides=3)
		result = apply_promo(self.breakdown, self.promo(coupon_type="new_user", discount_value=Decimal("50")), context)

		self.assertEqual(result.reason, "Coupon is only valid on your first ride")

	def test_fixed_discount_never_exceeds_fare(self):
		result = apply_promo(self.breakdown, self.promo(coupon_type="fixed", discount_value=Decimal("1000")), self.context)
		breakdown = with_promo(self.breakdown, result)

		self.assertEqual(breakdown.discount, Decimal("400.00"))
		self.assertEqual(breakdown.final, Decimal("0.00"))


class FlatFareTests(SimpleTestCase):
	def test_rental_is_priced_per_day(self):
		breakdown = flat_fare("RENTAL", {"days": 3}, snapshot())
		self.assertEqual(breakdown.final, Decimal("2100.00"))

	def test_date_wise_is_priced_per_date(self):
		breakdown = flat_fare("DATE_WISE", {"dates": ["2030-01-01", "2030-01-03"]}, snapshot())
		self.assertEqual(breakdown.final, Decimal("1000.00"))

	def test_rental_without_days_is_rejected(self):
		with self.assertRaises(RideValidationError):
			flat_fare("RENTAL", {}, snapshot())


class RecalculationTests(SimpleTestCase):
	def test_shorter_trip_is_capped_at_booked_fare(self):
		# Rates went up since booking: 80 + 120 + 20 * 5 = 300
		breakdown = recalculate(booked_ride(), 20, snapshot(per_minute_rate="5"))

		self.assertTrue(breakdown.capped)
		self.assertEqual(breakdown.final, Decimal("250.00"))

	def test_longer_trip_is_not_capped(self):
		breakdown = recalculate(booked_ride(), 40, snapshot())

		self.assertFalse(breakdown.capped)
		self.assertEqual(breakdown.final, Decimal("280.00"))

	def test_shorter_trip_below_booked_fare_is_charged_actual(self):
		breakdown = recalculate(booked_ride(), 10, snapshot())

		self.assertEqual(breakdown.final, Decimal("220.00"))

	def test_scheduled_booking_keeps_flat_fare(self):
		ride = booked_ride(booking_type="FULL_DAY", fare=Decimal("1500"))

		self.assertEqual(recalculate(ride, 600, snapshot()).final, Decimal("1500.00"))

	def test_zero_duration_falls_back_to_timestamps(self):
		start = timezone.now()
		self.assertEqual(resolve_actual_duration(0, start, start + timedelta(minutes=12)), 12)
		self.assertEqual(resolve_actual_duration(7, start, start + timedelta(minutes=12)), 7)


class EarningsSplitTests(SimpleTestCase):
	def test_commission_split_adds_up(self):
		split = split_earnings(Decimal("200"), Decimal("10"), Decimal("90"))

		self.assertEqual(split.platform_fee, Decimal("20.00"))
		self.assertEqual(split.driver_earning, Decimal("180.00"))
		self.assertFalse(split.adjusted)

	def test_without_commission_driver_gets_remainder(self):
		split = split_earnings(Decimal("199.99"), Decimal("10"))

		self.assertEqual(split.platform_fee + split.driver_earning, Decimal("199.99"))

	def test_inconsistent_split_is_corrected_with_warning(self):
		with self.assertWarns(EarningsConsistencyWarning):
			split = split_earnings(Decimal("200"), Decimal("10"), Decimal("85"))

		self.assertTrue(split.adjusted)
		self.assertEqual(split.driver_earning, Decimal("180.00"))
