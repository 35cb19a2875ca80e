"""
Fare computation.

Pure functions: callers pass in a ``PricingSnapshot`` (and promo snapshots)
read beforehand, nothing here touches the database. All money is ``Decimal``
rounded to 2 places with halves going away from zero.
"""

import logging
import warnings
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_CEILING
from typing import Any, Dict, Optional

from services.exceptions import RideValidationError, EarningsConsistencyWarning
from .promo import (
    PromoContext,
    PromoSnapshot,
    calculate_discount,
    check_promo_eligibility,
    money,
)

logger = logging.getLogger(__name__)

EARNINGS_TOLERANCE = Decimal("0.01")
AVERAGE_CITY_SPEED_KMH = Decimal("35")


# ---------------------- Snapshots ----------------------

@dataclass(frozen=True)
class VehicleTier:
    key: str
    base_price: Decimal
    per_minute_rate: Decimal
    name: str = ""
    enabled: bool = True


@dataclass(frozen=True)
class PricingSnapshot:
    per_km_rate: Decimal
    minimum_fare: Decimal
    cancellation_fee: Decimal = Decimal("50")
    platform_fee_percent: Decimal = Decimal("0")
    driver_commission_percent: Optional[Decimal] = None
    full_day_rate: Decimal = Decimal("1500")
    rental_per_day_rate: Decimal = Decimal("700")
    date_wise_per_date_rate: Decimal = Decimal("500")
    tiers: Dict[str, VehicleTier] = field(default_factory=dict)

    def tier(self, key: str) -> Optional[VehicleTier]:
        return self.tiers.get(key)


@dataclass(frozen=True)
class FareBreakdown:
    base: Decimal
    distance: Decimal
    time: Decimal
    subtotal: Decimal
    after_minimum: Decimal
    discount: Decimal = Decimal("0.00")
    final: Decimal = Decimal("0.00")
    capped: bool = False

    def as_dict(self) -> Dict[str, Any]:
        data = {
            "base": float(self.base),
            "distance": float(self.distance),
            "time": float(self.time),
            "subtotal": float(self.subtotal),
            "after_minimum": float(self.after_minimum),
            "discount": float(self.discount),
            "final": float(self.final),
        }
        if self.capped:
            data["capped"] = True
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FareBreakdown":
        return cls(
            base=money(data.get("base", 0)),
            distance=money(data.get("distance", 0)),
            time=money(data.get("time", 0)),
            subtotal=money(data.get("subtotal", 0)),
            after_minimum=money(data.get("after_minimum", 0)),
            discount=money(data.get("discount", 0)),
            final=money(data.get("final", 0)),
            capped=bool(data.get("capped", False)),
        )


@dataclass(frozen=True)
class PromoResult:
    discount: Decimal
    final_fare: Decimal
    applied: bool = False
    reason: str = ""


@dataclass(frozen=True)
class EarningsSplit:
    platform_fee: Decimal
    driver_earning: Decimal
    adjusted: bool = False


# ---------------------- Quote ----------------------

def quote(tier: VehicleTier, distance_km, duration_min, pricing: PricingSnapshot) -> FareBreakdown:
    """
    Price a trip: base + distance * per_km + duration * per_minute, floored
    at the minimum fare.
    """
    distance_km = Decimal(str(distance_km or 0))
    duration_min = Decimal(str(duration_min or 0))
    if distance_km < 0 or duration_min < 0:
        raise RideValidationError("Distance and duration must not be negative")

    base = money(tier.base_price)
    distance = money(distance_km * Decimal(str(pricing.per_km_rate)))
    time = money(duration_min * Decimal(str(tier.per_minute_rate)))
    subtotal = money(base + distance + time)
    after_minimum = max(subtotal, money(pricing.minimum_fare))

    return FareBreakdown(
        base=base,
        distance=distance,
        time=time,
        subtotal=subtotal,
        after_minimum=after_minimum,
        discount=Decimal("0.00"),
        final=after_minimum,
    )


def estimate_duration_minutes(distance_km) -> int:
    """Rough city estimate used when the client sends no duration."""
    distance_km = Decimal(str(distance_km or 0))
    if distance_km <= 0:
        return 0
    minutes = distance_km / AVERAGE_CITY_SPEED_KMH * 60
    return int(minutes.to_integral_value(rounding=ROUND_CEILING))


# ---------------------- Promo ----------------------

def apply_promo(
    breakdown: FareBreakdown,
    promo: Optional[PromoSnapshot],
    context: Optional[PromoContext],
) -> PromoResult:
    """
    Validate ``promo`` for ``context`` and compute the discount on the
    after-minimum fare. Ineligible promos give a zero discount and a reason.
    """
    if promo is None or context is None:
        return PromoResult(discount=Decimal("0.00"), final_fare=breakdown.after_minimum)

    eligible, reason = check_promo_eligibility(promo, context, breakdown.after_minimum)
    if not eligible:
        return PromoResult(
            discount=Decimal("0.00"),
            final_fare=breakdown.after_minimum,
            applied=False,
            reason=reason,
        )

    discount = calculate_discount(promo, breakdown.after_minimum)
    return PromoResult(
        discount=discount,
        final_fare=money(breakdown.after_minimum - discount),
        applied=discount > 0,
    )


def with_promo(breakdown: FareBreakdown, result: PromoResult) -> FareBreakdown:
    return replace(breakdown, discount=result.discount, final=result.final_fare)


# ---------------------- Flat pricing ----------------------

def flat_fare(booking_type: str, booking_meta: Dict[str, Any], pricing: PricingSnapshot) -> FareBreakdown:
    """
    Fixed pricing for scheduled bookings:
        FULL_DAY  -> full day rate
        RENTAL    -> per day rate * days
        DATE_WISE -> per date rate * number of dates
    """
    if booking_type == "FULL_DAY":
        amount = money(pricing.full_day_rate)
    elif booking_type == "RENTAL":
        days = int(booking_meta.get("days") or 0)
        if days < 1:
            raise RideValidationError("Rental bookings need at least one day")
        amount = money(Decimal(str(pricing.rental_per_day_rate)) * days)
    elif booking_type == "DATE_WISE":
        dates = booking_meta.get("dates") or []
        if not dates:
            raise RideValidationError("Date-wise bookings need at least one date")
        amount = money(Decimal(str(pricing.date_wise_per_date_rate)) * len(dates))
    else:
        raise RideValidationError(f"No flat pricing for booking type {booking_type}")

    return FareBreakdown(
        base=amount,
        distance=Decimal("0.00"),
        time=Decimal("0.00"),
        subtotal=amount,
        after_minimum=amount,
        discount=Decimal("0.00"),
        final=amount,
    )


# ---------------------- Recalculation ----------------------

def resolve_actual_duration(actual_duration, start: Optional[datetime], end: Optional[datetime]) -> int:
    """Stored duration, falling back to the timestamps when it is missing or zero."""
    duration = int(actual_duration or 0)
    if duration == 0 and start and end:
        from_timestamps = round((end - start) / timedelta(minutes=1))
        if from_timestamps > 0:
            logger.warning(
                "Stored duration is 0 but timestamps span %d min; using timestamps",
                from_timestamps,
            )
            duration = from_timestamps
    return duration


def recalculate(
    ride,
    actual_duration_min,
    pricing: PricingSnapshot,
    promo: Optional[PromoSnapshot] = None,
    promo_context: Optional[PromoContext] = None,
) -> FareBreakdown:
    """
    Re-price a finished trip with its actual duration.

    ``ride`` only needs ``booking_type``, ``service``, ``distance_in_km``,
    ``estimated_duration``, ``fare`` and ``fare_breakdown``.

    When the trip was shorter than estimated, the result never exceeds the
    fare quoted at booking. A longer trip is not capped.
    Non-INSTANT bookings keep their flat fare.
    """
    original_fare = money(ride.fare)

    if ride.booking_type != "INSTANT":
        logger.info("Skipping recalculation for %s booking", ride.booking_type)
        if ride.fare_breakdown:
            return replace(FareBreakdown.from_dict(ride.fare_breakdown), final=original_fare)
        return FareBreakdown(
            base=original_fare,
            distance=Decimal("0.00"),
            time=Decimal("0.00"),
            subtotal=original_fare,
            after_minimum=original_fare,
            final=original_fare,
        )

    tier = pricing.tier(ride.service)
    if tier is None:
        raise RideValidationError(f"Vehicle service not found: {ride.service}")

    actual = int(actual_duration_min or 0)
    fresh = quote(tier, ride.distance_in_km, actual, pricing)
    if promo is not None:
        fresh = with_promo(fresh, apply_promo(fresh, promo, promo_context))

    estimated = int(ride.estimated_duration or 0)
    if estimated > 0 and actual < estimated and fresh.final > original_fare:
        logger.info(
            "Actual duration %dmin shorter than estimated %dmin; capping fare at %s",
            actual,
            estimated,
            original_fare,
        )
        original_discount = FareBreakdown.from_dict(ride.fare_breakdown).discount if ride.fare_breakdown else fresh.discount
        return replace(fresh, final=original_fare, discount=original_discount, capped=True)

    return fresh


# ---------------------- Earnings ----------------------

def split_earnings(final_fare, platform_fee_percent, driver_commission_percent=None) -> EarningsSplit:
    """
    Split a fare between platform and driver. Percentages are whole numbers.

    With a commission configured the driver gets ``fare * commission%``,
    otherwise ``fare - platform fee``. The two parts must add up to the fare
    within 0.01; any gap is absorbed by the driver share.
    """
    fare = money(final_fare)
    hundred = Decimal("100")

    platform_fee = money(fare * Decimal(str(platform_fee_percent or 0)) / hundred)
    if driver_commission_percent is not None and Decimal(str(driver_commission_percent)) > 0:
        driver_earning = money(fare * Decimal(str(driver_commission_percent)) / hundred)
    else:
        driver_earning = money(fare - platform_fee)

    gap = fare - (platform_fee + driver_earning)
    if abs(gap) > EARNINGS_TOLERANCE:
        corrected = money(fare - platform_fee)
        message = (
            f"Earnings split mismatch: fare {fare}, platform fee {platform_fee}, "
            f"driver earning {driver_earning}; driver earning corrected to {corrected}"
        )
        logger.warning(message)
        warnings.warn(message, EarningsConsistencyWarning, stacklevel=2)
        return EarningsSplit(platform_fee=platform_fee, driver_earning=corrected, adjusted=True)

    return EarningsSplit(platform_fee=platform_fee, driver_earning=driver_earning)
